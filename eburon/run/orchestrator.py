"""Runs one task through the browser agent, blocking or as an event stream"""

import asyncio
import contextlib
import random
import re
import time
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from pydantic import BaseModel

from eburon.agent.browser import BrowserAgent
from eburon.agent.events import AgentEvent
from eburon.config import LLMSettings, config
from eburon.exceptions import OrchestratorFault, ValidationError
from eburon.llm import LLM
from eburon.run.accumulator import RunAccumulator
from eburon.run.models import AgentRunRequest, RunResult
from eburon.run.transport import format_sse
from eburon.session.models import BrowserProvider
from eburon.session.provisioning import BrowserProvisioner
from eburon.utils.logger import logger

DisconnectCheck = Callable[[], Awaitable[bool]]

_TOKEN_RE = re.compile(r"\S+\s*|\s+")


def chunk_text(text: str, size: int) -> List[str]:
    """Split text into pieces of about ``size`` chars on whitespace boundaries"""
    if not text:
        return []
    if size <= 0 or len(text) <= size:
        return [text]
    pieces: List[str] = []
    current = ""
    for token in _TOKEN_RE.findall(text):
        if current and len(current) + len(token) > size:
            pieces.append(current)
            current = ""
        current += token
    if current:
        pieces.append(current)
    return pieces


class Pacing(BaseModel):
    """Per-chunk delay bounds in milliseconds"""

    min_ms: int
    max_ms: int

    @classmethod
    def from_request(cls, lag_min: Optional[int], lag_max: Optional[int]) -> "Pacing":
        settings = config.stream
        ceiling = settings.max_lag_ms
        low = settings.lag_ms_min if lag_min is None else lag_min
        high = settings.lag_ms_max if lag_max is None else lag_max
        low = min(max(low, 0), ceiling)
        high = min(max(high, 0), ceiling)
        if low > high:
            low, high = high, low
        return cls(min_ms=low, max_ms=high)

    def delay(self) -> float:
        return random.uniform(self.min_ms, self.max_ms) / 1000


class PreparedRun(BaseModel):
    session_id: str
    task: str
    server_target: str
    llm_settings: LLMSettings
    pacing: Pacing


class _Done:
    pass


class _Failed:
    def __init__(self, error: BaseException):
        self.error = error


def describe_error(error: BaseException) -> str:
    return str(error) or type(error).__name__


async def _stop(task: asyncio.Task) -> None:
    """Cancel a task and wait until it has unwound"""
    if not task.done():
        task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class AgentRunOrchestrator:
    """
    Wraps a task into a bounded agent run against one browser session.

    Both modes feed the same RunAccumulator, so a streamed run's ``final``
    frame carries exactly what a blocking run returns.
    """

    def __init__(
        self,
        provider: BrowserProvider,
        provisioner: BrowserProvisioner,
        llm_factory: Callable[[LLMSettings], LLM] = LLM,
    ):
        self.provider = provider
        self.provisioner = provisioner
        self.llm_factory = llm_factory

    async def prepare(self, request: AgentRunRequest) -> PreparedRun:
        """
        Validate the request and resolve its backend.

        Nothing touches the browser or the model until the request is complete
        and the selected backend is fully configured.
        """
        if not request.session_id or not request.task:
            raise ValidationError("Missing sessionId or task")

        llm_settings = config.resolve_backend(request.server_target)
        config.require_e2b_api_key()

        # Best-effort; stray tabs between runs corrupt the live view.
        await self.provisioner.normalize_to_single_page(request.session_id)

        return PreparedRun(
            session_id=request.session_id,
            task=request.task,
            server_target=llm_settings.name,
            llm_settings=llm_settings,
            pacing=Pacing.from_request(request.lag_ms_min, request.lag_ms_max),
        )

    def _agent(self, prepared: PreparedRun, stream: bool, sink) -> BrowserAgent:
        return BrowserAgent.create(
            provider=self.provider,
            session_id=prepared.session_id,
            llm=self.llm_factory(prepared.llm_settings),
            stream=stream,
            event_sink=sink,
        )

    async def run(
        self, request: AgentRunRequest, prepared: Optional[PreparedRun] = None
    ) -> RunResult:
        """
        Blocking mode: run to completion under the wall-clock deadline.

        The deadline is checked between agent steps, so a step already in
        progress (its tool calls included) may finish. A step that overruns
        the deadline by more than the configured grace is cancelled.
        """
        prepared = prepared or await self.prepare(request)
        accumulator = RunAccumulator(prepared.server_target)

        async def sink(event: AgentEvent) -> None:
            accumulator.apply(event)

        agent = self._agent(prepared, stream=False, sink=sink)
        deadline = config.agent.run_timeout
        started = time.time()
        agent.deadline = time.monotonic() + deadline
        try:
            await asyncio.wait_for(
                agent.run(prepared.task), timeout=deadline + config.agent.deadline_grace
            )
        except asyncio.TimeoutError:
            logger.error(f"Agent run on {prepared.session_id} exceeded {deadline}s")
            return accumulator.finalize(error=f"Agent run exceeded {deadline}s")
        except Exception as e:
            logger.exception(f"Agent run on {prepared.session_id} failed")
            return accumulator.finalize(error=describe_error(e))

        result = accumulator.finalize()
        logger.info(
            f"Agent run on {prepared.session_id} finished in {time.time() - started:.1f}s "
            f"after {result.step_count} step(s)"
        )
        return result

    async def stream(
        self,
        request: AgentRunRequest,
        prepared: Optional[PreparedRun] = None,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> AsyncIterator[str]:
        """
        Streaming mode: yield SSE frames as the agent works.

        The agent runs as a producer task writing events into a queue; this
        generator consumes them through the accumulator. Exactly one ``final``
        frame ends every stream that was not abandoned by its client. A client
        disconnect cancels the producer, abandoning the model stream and any
        remaining tool calls.
        """
        prepared = prepared or await self.prepare(request)
        accumulator = RunAccumulator(prepared.server_target)
        queue: asyncio.Queue = asyncio.Queue()

        async def sink(event: AgentEvent) -> None:
            queue.put_nowait(event)

        agent = self._agent(prepared, stream=True, sink=sink)

        async def produce() -> None:
            try:
                await agent.run(prepared.task)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                queue.put_nowait(_Failed(e))
                return
            queue.put_nowait(_Done())

        yield format_sse(
            "init",
            {
                "sessionId": prepared.session_id,
                "serverTarget": prepared.server_target,
                "lagMsMin": prepared.pacing.min_ms,
                "lagMsMax": prepared.pacing.max_ms,
            },
        )

        producer = asyncio.create_task(produce())
        try:
            error: Optional[str] = None
            try:
                while True:
                    try:
                        item = await asyncio.wait_for(queue.get(), timeout=1.0)
                    except asyncio.TimeoutError:
                        if is_disconnected is not None and await is_disconnected():
                            logger.info(
                                f"Client left run on {prepared.session_id}; cancelling"
                            )
                            return
                        continue

                    if isinstance(item, _Done):
                        break
                    if isinstance(item, _Failed):
                        logger.error(
                            f"Agent run on {prepared.session_id} failed: {item.error}"
                        )
                        error = describe_error(item.error)
                        break

                    try:
                        frames = accumulator.apply(item)
                    except OrchestratorFault as e:
                        logger.error(f"Run protocol violation: {e.message}")
                        error = e.message
                        break

                    for name, data in frames:
                        if name != "text-delta":
                            yield format_sse(name, data)
                            continue
                        for piece in chunk_text(data["text"], config.stream.chunk_chars):
                            yield format_sse(name, {**data, "text": piece})
                            delay = prepared.pacing.delay()
                            if delay > 0:
                                await asyncio.sleep(delay)
            except Exception as e:
                logger.exception(f"Streaming run on {prepared.session_id} broke")
                error = describe_error(e)

            # Stop the agent before the final frame so nothing runs after it.
            await _stop(producer)
            for name, data in accumulator.close(error):
                yield format_sse(name, data)
            result = accumulator.finalize(error)
            yield format_sse("final", result.to_payload())
        finally:
            await _stop(producer)
