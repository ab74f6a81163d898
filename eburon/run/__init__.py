from eburon.run.accumulator import RunAccumulator
from eburon.run.models import AgentRunRequest, RunResult, Step
from eburon.run.orchestrator import AgentRunOrchestrator


__all__ = [
    "AgentRunOrchestrator",
    "AgentRunRequest",
    "RunAccumulator",
    "RunResult",
    "Step",
]
