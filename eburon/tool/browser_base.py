"""Base class for tools that act on one browser session"""

from typing import Optional

from pydantic import PrivateAttr

from eburon.exceptions import ToolError
from eburon.session.models import BrowserProvider
from eburon.tool.base import BaseTool, ToolFailure, ToolResult


class BrowserToolBase(BaseTool):
    """
    Base class for tools bound to a provider and a session id.
    The agent binds every tool to the session the run targets.
    """

    _provider: Optional[BrowserProvider] = PrivateAttr(default=None)
    _session_id: Optional[str] = PrivateAttr(default=None)

    def __init__(
        self,
        provider: Optional[BrowserProvider] = None,
        session_id: Optional[str] = None,
        **data,
    ):
        super().__init__(**data)
        self._provider = provider
        self._session_id = session_id

    @property
    def provider(self) -> Optional[BrowserProvider]:
        return self._provider

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def success_response(self, output) -> ToolResult:
        """Create a success response."""
        return ToolResult(output=output)

    def fail_response(self, msg: str) -> ToolResult:
        """Create a failure response."""
        return ToolFailure(error=msg)

    def require_session(self) -> str:
        if self._provider is None or not self._session_id:
            raise ToolError(f"{self.name} is not bound to a browser session")
        return self._session_id
