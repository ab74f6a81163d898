from eburon.session.models import BrowserProvider
from eburon.tool.base import BaseTool, ToolFailure, ToolResult
from eburon.tool.computer import COMPUTER_TOOLS
from eburon.tool.playwright_execute import PlaywrightExecute
from eburon.tool.tool_collection import ToolCollection


def browser_tools(provider: BrowserProvider, session_id: str) -> ToolCollection:
    """The full tool surface bound to one browser session"""
    tools = [PlaywrightExecute(provider=provider, session_id=session_id)]
    tools += [tool(provider=provider, session_id=session_id) for tool in COMPUTER_TOOLS]
    return ToolCollection(*tools)


__all__ = [
    "BaseTool",
    "PlaywrightExecute",
    "ToolCollection",
    "ToolFailure",
    "ToolResult",
    "browser_tools",
]
