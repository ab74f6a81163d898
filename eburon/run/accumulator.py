"""Folds agent events into the step record and the frames a client sees"""

from typing import Dict, List, Optional, Set, Tuple

from eburon.agent.events import AgentEvent, AgentEventType
from eburon.exceptions import OrchestratorFault
from eburon.run.models import (
    ExecutedCode,
    RunResult,
    Step,
    TextItem,
    ToolCallItem,
    ToolResultItem,
)
from eburon.run.transport import normalize_payload
from eburon.schema import Usage
from eburon.utils.logger import logger

Frame = Tuple[str, dict]

SCRIPT_TOOL = "playwright_execute"


class RunAccumulator:
    """
    State machine shared by streamed and blocking runs.

    ``apply`` takes one agent event, updates the record and returns the frames
    that event produces. ``finalize`` closes the run and builds the terminal
    result. Step numbers are assigned here, in order of arrival, so they stay
    contiguous whatever the agent reports.

    Content that arrives before any start-step opens step 1 implicitly; the
    start-step that follows is adopted by that step instead of opening step 2.
    """

    def __init__(self, server_target: str):
        self.server_target = server_target
        self.steps: List[Step] = []
        self.usage = Usage()
        self.finish_reason: Optional[str] = None
        self._open: Optional[Step] = None
        self._implicit = False
        self._fragments: List[str] = []
        self._calls: Dict[str, ToolCallItem] = {}
        self._results: Set[str] = set()
        self._codes: Dict[str, ExecutedCode] = {}
        self._finished = False

    @property
    def response(self) -> str:
        return "".join(self._fragments)

    def apply(self, event: AgentEvent) -> List[Frame]:
        if self._finished:
            raise OrchestratorFault(f"Event {event.type.value} after the run finished")

        handlers = {
            AgentEventType.START_STEP: self._on_start_step,
            AgentEventType.TEXT_DELTA: self._on_text,
            AgentEventType.TOOL_CALL: self._on_tool_call,
            AgentEventType.TOOL_RESULT: self._on_tool_result,
            AgentEventType.TOOL_ERROR: self._on_tool_result,
            AgentEventType.FINISH_STEP: self._on_finish_step,
            AgentEventType.FINISH: self._on_finish,
            AgentEventType.PASSTHROUGH: self._on_passthrough,
        }
        return handlers[event.type](event)

    def _open_step(self, implicit: bool) -> List[Frame]:
        step = Step(step_number=len(self.steps) + 1)
        self.steps.append(step)
        self._open = step
        self._implicit = implicit
        return [("start-step", {"stepNumber": step.step_number})]

    def _ensure_step(self) -> List[Frame]:
        if self._open is not None:
            return []
        logger.debug("Content before start-step; opening step implicitly")
        return self._open_step(implicit=True)

    def _close_step(self, finish_reason: Optional[str], usage: Optional[Usage] = None) -> List[Frame]:
        step = self._open
        step.finish_reason = finish_reason
        self._open = None
        self._implicit = False
        if usage is not None:
            self.usage = self.usage + usage
        return [
            (
                "finish-step",
                {
                    "stepNumber": step.step_number,
                    "finishReason": finish_reason,
                    "usage": (usage or Usage()).to_payload(),
                },
            )
        ]

    def _on_start_step(self, event: AgentEvent) -> List[Frame]:
        if self._open is not None and self._implicit:
            self._implicit = False
            return []
        frames = []
        if self._open is not None:
            logger.warning(f"Step {self._open.step_number} never finished; closing it")
            frames += self._close_step(None)
        return frames + self._open_step(implicit=False)

    def _on_text(self, event: AgentEvent) -> List[Frame]:
        if not event.text:
            return []
        frames = self._ensure_step()
        content = self._open.content
        if content and isinstance(content[-1], TextItem):
            content[-1].text += event.text
        else:
            content.append(TextItem(text=event.text))
        self._fragments.append(event.text)
        text_id = f"text-{self._open.step_number}-{len(content) - 1}"
        frames.append(
            (
                "text-delta",
                {"id": text_id, "stepNumber": self._open.step_number, "text": event.text},
            )
        )
        return frames

    def _on_tool_call(self, event: AgentEvent) -> List[Frame]:
        if event.tool_call_id in self._calls:
            raise OrchestratorFault(f"Duplicate tool call id {event.tool_call_id}")
        frames = self._ensure_step()
        tool_input = event.input or {}
        code = tool_input.get("code") if event.tool_name == SCRIPT_TOOL else None
        item = ToolCallItem(
            tool_call_id=event.tool_call_id,
            tool_name=event.tool_name,
            input=tool_input,
            code=code if isinstance(code, str) else None,
        )
        self._open.content.append(item)
        self._calls[item.tool_call_id] = item
        if item.code is not None:
            self._codes[item.tool_call_id] = ExecutedCode(code=item.code)
        frames.append(
            (
                "tool-call",
                {
                    "toolCallId": item.tool_call_id,
                    "toolName": item.tool_name,
                    "input": normalize_payload(tool_input),
                    "stepNumber": self._open.step_number,
                },
            )
        )
        return frames

    def _on_tool_result(self, event: AgentEvent) -> List[Frame]:
        call = self._calls.get(event.tool_call_id)
        if call is None:
            raise OrchestratorFault(
                f"Tool result for unknown call {event.tool_call_id} ({event.tool_name})"
            )
        if event.tool_call_id in self._results:
            logger.warning(f"Dropping duplicate result for tool call {event.tool_call_id}")
            return []
        self._results.add(event.tool_call_id)

        frames = self._ensure_step()
        success = event.type == AgentEventType.TOOL_RESULT
        error = None if success else str(event.error or "Tool execution failed")
        item = ToolResultItem(
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            success=success,
            result=normalize_payload(event.result) if success else None,
            error=error,
        )
        self._open.content.append(item)

        executed = self._codes.get(call.tool_call_id)
        if executed is not None:
            executed.success = success
            executed.result = item.result
            executed.error = error

        if success:
            frames.append(
                (
                    "tool-result",
                    {
                        "toolCallId": item.tool_call_id,
                        "toolName": item.tool_name,
                        "result": item.result,
                        "success": True,
                    },
                )
            )
        else:
            frames.append(
                (
                    "tool-error",
                    {
                        "toolCallId": item.tool_call_id,
                        "toolName": item.tool_name,
                        "error": {"name": "ToolExecutionError", "message": error, "stack": None},
                        "success": False,
                    },
                )
            )
        return frames

    def _on_finish_step(self, event: AgentEvent) -> List[Frame]:
        if self._open is None:
            logger.warning("finish-step without an open step; ignoring")
            return []
        self.finish_reason = event.finish_reason
        return self._close_step(event.finish_reason, event.usage)

    def _on_finish(self, event: AgentEvent) -> List[Frame]:
        if event.finish_reason is not None:
            self.finish_reason = event.finish_reason
        if event.usage is not None:
            self.usage = event.usage
        return []

    def _on_passthrough(self, event: AgentEvent) -> List[Frame]:
        return [(event.name or "message", normalize_payload(event.payload))]

    def close(self, error: Optional[str] = None) -> List[Frame]:
        """Close a step left open by an aborted or truncated run"""
        if self._open is None:
            return []
        return self._close_step("error" if error else "unknown")

    def finalize(self, error: Optional[str] = None) -> RunResult:
        """Close whatever is open and build the terminal result"""
        self.close(error)
        self._finished = True
        for call_id, executed in self._codes.items():
            if call_id not in self._results:
                executed.success = False
                executed.error = "Tool call did not complete"
        return RunResult(
            success=error is None,
            response=self.response,
            executed_codes=list(self._codes.values()),
            steps=self.steps,
            step_count=len(self.steps),
            usage=self.usage,
            server_target=self.server_target,
            finish_reason=self.finish_reason if error is None else "error",
            error=error,
        )
