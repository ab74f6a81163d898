from eburon.agent.base import BaseAgent
from eburon.agent.browser import BrowserAgent
from eburon.agent.events import AgentEvent, AgentEventType
from eburon.agent.toolcall import ToolCallAgent


__all__ = [
    "AgentEvent",
    "AgentEventType",
    "BaseAgent",
    "BrowserAgent",
    "ToolCallAgent",
]
