import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import List, Optional

from pydantic import BaseModel, Field

from eburon.agent.events import AgentEvent, EventSink, discard_event
from eburon.llm import LLM
from eburon.schema import AgentState, Memory, Message, Usage
from eburon.utils.logger import logger


class BaseAgent(BaseModel, ABC):
    """
    Abstract base class for agents.

    Holds the conversation memory, the execution state and the step counter,
    and drives ``step()`` until the agent finishes or runs out of steps.
    """

    name: str = Field(..., description="Unique name of the agent")
    description: Optional[str] = None

    system_prompt: Optional[str] = None
    next_step_prompt: Optional[str] = None

    llm: LLM
    memory: Memory = Field(default_factory=Memory)
    state: AgentState = AgentState.IDLE

    max_steps: int = 20
    current_step: int = 0
    # Monotonic time after which no new step starts
    deadline: Optional[float] = None

    usage: Usage = Field(default_factory=Usage)
    event_sink: EventSink = Field(default=discard_event, exclude=True)

    class Config:
        arbitrary_types_allowed = True
        extra = "allow"

    @asynccontextmanager
    async def state_context(self, new_state: AgentState):
        """Switch to ``new_state`` for the duration of the block; errors mark ERROR."""
        if not isinstance(new_state, AgentState):
            raise ValueError(f"Invalid state: {new_state}")

        previous_state = self.state
        self.state = new_state
        try:
            yield
        except Exception:
            self.state = AgentState.ERROR
            raise
        finally:
            if self.state != AgentState.ERROR:
                self.state = previous_state

    async def emit(self, event: AgentEvent) -> None:
        await self.event_sink(event)

    def update_memory(self, role: str, content: str, **kwargs) -> None:
        message_map = {
            "user": Message.user_message,
            "system": Message.system_message,
            "assistant": Message.assistant_message,
        }
        if role not in message_map:
            raise ValueError(f"Unsupported message role: {role}")
        self.memory.add_message(message_map[role](content, **kwargs))

    async def run(self, request: Optional[str] = None) -> str:
        """
        Execute the agent's main loop.

        Returns:
            The concatenated text the model produced over all steps
        """
        if self.state != AgentState.IDLE:
            raise RuntimeError(f"Cannot run agent from state: {self.state}")

        if request:
            self.update_memory("user", request)

        results: List[str] = []
        async with self.state_context(AgentState.RUNNING):
            while self.current_step < self.max_steps and self.state != AgentState.FINISHED:
                if self.deadline is not None and time.monotonic() >= self.deadline:
                    raise TimeoutError(
                        f"Run deadline reached before step {self.current_step + 1}"
                    )
                self.current_step += 1
                logger.info(f"Executing step {self.current_step}/{self.max_steps}")
                step_result = await self.step()
                if step_result:
                    results.append(step_result)

            if self.current_step >= self.max_steps and self.state != AgentState.FINISHED:
                logger.warning(f"Terminated: reached max steps ({self.max_steps})")
                self.state = AgentState.FINISHED

        return "".join(results)

    @abstractmethod
    async def step(self) -> str:
        """Execute a single step; returns the text the model produced in it."""

    @property
    def messages(self) -> List[Message]:
        return self.memory.messages
