"""Typed events an agent run reports while it works"""

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, Field

from eburon.schema import Usage


class AgentEventType(str, Enum):
    START_STEP = "start-step"
    TEXT_DELTA = "text-delta"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"
    TOOL_ERROR = "tool-error"
    FINISH_STEP = "finish-step"
    FINISH = "finish"
    # Anything the backend streams that the run record does not model,
    # e.g. reasoning deltas. Forwarded to the client untouched.
    PASSTHROUGH = "passthrough"


class AgentEvent(BaseModel):
    """
    One occurrence inside the agent loop.

    Which fields are set depends on ``type``: text deltas carry ``text``;
    tool events carry ``tool_call_id`` and ``tool_name`` plus ``input``,
    ``result`` or ``error``; step and finish events carry ``finish_reason``
    and ``usage``; passthrough events carry ``name`` and ``payload``.
    """

    type: AgentEventType
    step: Optional[int] = None
    text: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    input: Optional[Dict[str, Any]] = None
    result: Any = None
    error: Any = None
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None
    name: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


EventSink = Callable[[AgentEvent], Awaitable[None]]


async def discard_event(event: AgentEvent) -> None:
    return None
