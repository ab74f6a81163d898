"""Browser session data and the capability surface of a browser provider"""

from datetime import datetime
from typing import AsyncIterator, Dict, List, Literal, Optional, Protocol

from pydantic import BaseModel, Field

from eburon.schema import CamelModel


class BrowserSession(CamelModel):
    """One provisioned remote browser"""

    session_id: str
    live_view_url: str
    cdp_ws_url: Optional[str] = Field(
        None, description="Opaque low-level control channel, passed through untouched"
    )
    spin_up_time: int = Field(0, description="Milliseconds from request to ready")


class ProvisionedBrowser(BaseModel):
    """What a provider hands back right after creating a browser"""

    session_id: str
    live_view_url: Optional[str] = None
    cdp_ws_url: Optional[str] = None


class SessionSummary(BaseModel):
    """A provider-side session as reported by ``list``"""

    session_id: str
    deleted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class ScreenRegion(BaseModel):
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


MouseButton = Literal["left", "right", "middle"]


class ScriptResult(BaseModel):
    """Envelope returned by a page-context script execution"""

    success: bool
    result: Optional[object] = None
    error: Optional[str] = None


class BrowserProvider(Protocol):
    """Capabilities consumed from the remote browser-session provider.

    ``delete_by_id`` raises ``SessionNotFound`` when the provider does not know
    the id; every other failure surfaces as ``ProviderError``.
    """

    async def create(self, headless: bool = False) -> ProvisionedBrowser: ...

    async def delete_by_id(self, session_id: str) -> None: ...

    def list(self) -> AsyncIterator[SessionSummary]: ...

    async def execute_script(
        self, session_id: str, code: str, timeout_sec: int = 60
    ) -> ScriptResult: ...

    async def capture_screenshot(
        self, session_id: str, region: Optional[ScreenRegion] = None
    ) -> bytes: ...

    async def move_mouse(
        self, session_id: str, x: int, y: int, hold_keys: Optional[List[str]] = None
    ) -> None: ...

    async def click_mouse(
        self,
        session_id: str,
        x: int,
        y: int,
        button: MouseButton = "left",
        click_type: Literal["click", "down", "up"] = "click",
        num_clicks: int = 1,
        hold_keys: Optional[List[str]] = None,
    ) -> None: ...

    async def drag_mouse(
        self,
        session_id: str,
        path: List[List[int]],
        button: MouseButton = "left",
        hold_keys: Optional[List[str]] = None,
    ) -> None: ...

    async def scroll(
        self,
        session_id: str,
        x: int,
        y: int,
        delta_x: int = 0,
        delta_y: int = 0,
        hold_keys: Optional[List[str]] = None,
    ) -> None: ...

    async def type_text(self, session_id: str, text: str, delay_ms: int = 0) -> None: ...

    async def press_key(
        self,
        session_id: str,
        keys: List[str],
        duration_ms: int = 0,
        hold_keys: Optional[List[str]] = None,
    ) -> None: ...

    async def set_cursor_visibility(self, session_id: str, hidden: bool) -> None: ...
