"""Host-level input tools that act on the live view like a person would"""

import base64
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from eburon.session.models import ScreenRegion
from eburon.tool.base import ToolResult
from eburon.tool.browser_base import BrowserToolBase

HoldKeys = Optional[List[str]]

_HOLD_KEYS_DESCRIPTION = "Modifier keys held during the action, e.g. ['ctrl', 'shift']"


class ScreenshotInput(BaseModel):
    region: Optional[ScreenRegion] = Field(
        None, description="Capture only this rectangle of the screen"
    )


class MoveMouseInput(BaseModel):
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    hold_keys: HoldKeys = Field(None, description=_HOLD_KEYS_DESCRIPTION)


class ClickMouseInput(BaseModel):
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    button: Literal["left", "right", "middle"] = "left"
    click_type: Literal["click", "down", "up"] = Field(
        "click", description="'down' and 'up' press or release without clicking"
    )
    num_clicks: int = Field(1, ge=1, le=3)
    hold_keys: HoldKeys = Field(None, description=_HOLD_KEYS_DESCRIPTION)


class DragMouseInput(BaseModel):
    path: List[List[int]] = Field(
        ..., min_length=2, description="Points [[x, y], ...] from start to end"
    )
    button: Literal["left", "right", "middle"] = "left"
    hold_keys: HoldKeys = Field(None, description=_HOLD_KEYS_DESCRIPTION)

    @field_validator("path")
    @classmethod
    def check_points(cls, path: List[List[int]]) -> List[List[int]]:
        for point in path:
            if len(point) != 2 or point[0] < 0 or point[1] < 0:
                raise ValueError("every point must be [x, y] with non-negative values")
        return path


class ScrollInput(BaseModel):
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    delta_x: int = Field(0, description="Wheel notches; positive scrolls right")
    delta_y: int = Field(0, description="Wheel notches; positive scrolls down")
    hold_keys: HoldKeys = Field(None, description=_HOLD_KEYS_DESCRIPTION)


class TypeTextInput(BaseModel):
    text: str = Field(..., min_length=1)
    delay_ms: int = Field(0, ge=0, le=1000, description="Delay between keystrokes")


class PressKeyInput(BaseModel):
    keys: List[str] = Field(
        ..., min_length=1, description="Keys or combos, e.g. ['Return'] or ['ctrl+a']"
    )
    duration_ms: int = Field(0, ge=0, le=10000, description="Hold the keys this long")
    hold_keys: HoldKeys = Field(None, description=_HOLD_KEYS_DESCRIPTION)


class CursorVisibilityInput(BaseModel):
    hidden: bool


class ComputerScreenshot(BrowserToolBase):
    name: str = "computer_screenshot"
    description: str = (
        "Capture a PNG screenshot of the browser desktop, optionally limited to a region. "
        "Use it to see the page before clicking by coordinates."
    )
    input_model = ScreenshotInput

    async def execute(self, region: Optional[dict] = None, **kwargs) -> ToolResult:
        session_id = self.require_session()
        image = await self.provider.capture_screenshot(
            session_id, ScreenRegion(**region) if region else None
        )
        return ToolResult(
            output={"format": "png", "bytes": len(image)},
            base64_image=base64.b64encode(image).decode("ascii"),
        )


class ComputerMoveMouse(BrowserToolBase):
    name: str = "computer_move_mouse"
    description: str = "Move the mouse pointer to screen coordinates."
    input_model = MoveMouseInput

    async def execute(self, x: int, y: int, hold_keys: HoldKeys = None, **kwargs) -> ToolResult:
        await self.provider.move_mouse(self.require_session(), x, y, hold_keys=hold_keys)
        return self.success_response(f"Moved mouse to ({x}, {y})")


class ComputerClickMouse(BrowserToolBase):
    name: str = "computer_click_mouse"
    description: str = "Click, press or release a mouse button at screen coordinates."
    input_model = ClickMouseInput

    async def execute(
        self,
        x: int,
        y: int,
        button: str = "left",
        click_type: str = "click",
        num_clicks: int = 1,
        hold_keys: HoldKeys = None,
        **kwargs,
    ) -> ToolResult:
        await self.provider.click_mouse(
            self.require_session(),
            x,
            y,
            button=button,
            click_type=click_type,
            num_clicks=num_clicks,
            hold_keys=hold_keys,
        )
        if click_type == "click":
            return self.success_response(
                f"Clicked {button} button {num_clicks}x at ({x}, {y})"
            )
        return self.success_response(f"Mouse {button} {click_type} at ({x}, {y})")


class ComputerDragMouse(BrowserToolBase):
    name: str = "computer_drag_mouse"
    description: str = "Press a mouse button, move along a path of points and release."
    input_model = DragMouseInput

    async def execute(
        self,
        path: List[List[int]],
        button: str = "left",
        hold_keys: HoldKeys = None,
        **kwargs,
    ) -> ToolResult:
        await self.provider.drag_mouse(
            self.require_session(), path, button=button, hold_keys=hold_keys
        )
        start, end = path[0], path[-1]
        return self.success_response(
            f"Dragged from ({start[0]}, {start[1]}) to ({end[0]}, {end[1]})"
        )


class ComputerScroll(BrowserToolBase):
    name: str = "computer_scroll"
    description: str = "Scroll the mouse wheel at screen coordinates."
    input_model = ScrollInput

    async def execute(
        self,
        x: int,
        y: int,
        delta_x: int = 0,
        delta_y: int = 0,
        hold_keys: HoldKeys = None,
        **kwargs,
    ) -> ToolResult:
        if not delta_x and not delta_y:
            return self.fail_response("delta_x or delta_y must be non-zero")
        await self.provider.scroll(
            self.require_session(),
            x,
            y,
            delta_x=delta_x,
            delta_y=delta_y,
            hold_keys=hold_keys,
        )
        return self.success_response(f"Scrolled ({delta_x}, {delta_y}) at ({x}, {y})")


class ComputerTypeText(BrowserToolBase):
    name: str = "computer_type_text"
    description: str = "Type text with the keyboard into the focused element."
    input_model = TypeTextInput

    async def execute(self, text: str, delay_ms: int = 0, **kwargs) -> ToolResult:
        await self.provider.type_text(self.require_session(), text, delay_ms=delay_ms)
        return self.success_response(f"Typed {len(text)} characters")


class ComputerPressKey(BrowserToolBase):
    name: str = "computer_press_key"
    description: str = "Press keys or key combinations, optionally holding them down."
    input_model = PressKeyInput

    async def execute(
        self,
        keys: List[str],
        duration_ms: int = 0,
        hold_keys: HoldKeys = None,
        **kwargs,
    ) -> ToolResult:
        await self.provider.press_key(
            self.require_session(), keys, duration_ms=duration_ms, hold_keys=hold_keys
        )
        return self.success_response(f"Pressed {' '.join(keys)}")


class ComputerSetCursorVisibility(BrowserToolBase):
    name: str = "computer_set_cursor_visibility"
    description: str = "Hide or show the mouse cursor overlay in the live view."
    input_model = CursorVisibilityInput

    async def execute(self, hidden: bool, **kwargs) -> ToolResult:
        await self.provider.set_cursor_visibility(self.require_session(), hidden)
        return self.success_response("Cursor hidden" if hidden else "Cursor visible")


COMPUTER_TOOLS = (
    ComputerScreenshot,
    ComputerMoveMouse,
    ComputerClickMouse,
    ComputerDragMouse,
    ComputerScroll,
    ComputerTypeText,
    ComputerPressKey,
    ComputerSetCursorVisibility,
)
