"""Browser provider backed by E2B desktop sandboxes"""

import asyncio
import json
import re
import shlex
import uuid
from io import BytesIO
from typing import AsyncIterator, Dict, List, Optional

from e2b import NotFoundException
from PIL import Image

from eburon.config import E2BSettings, config
from eburon.e2b.sandbox import (
    BROWSER_ROLE,
    BrowserSandbox,
    connect_sandbox,
    create_sandbox,
    kill_sandbox,
    list_sandboxes,
)
from eburon.exceptions import ProviderError, SessionNotFound
from eburon.session.models import (
    MouseButton,
    ProvisionedBrowser,
    ScreenRegion,
    ScriptResult,
    SessionSummary,
)
from eburon.utils.logger import logger

RESULT_MARKER = "__EBURON_RESULT__"
RUNNER_DIR = "/tmp/eburon"
RUNNER_PATH = f"{RUNNER_DIR}/runner.js"

# Runs user code against the desktop Chromium. Prints exactly one JSON
# envelope between markers so page console noise on stdout is ignored.
SCRIPT_RUNNER = r"""
const fs = require("fs");
const { chromium } = require("playwright");

const MARK = "__EBURON_RESULT__";
const AsyncFunction = Object.getPrototypeOf(async function () {}).constructor;

function emit(envelope) {
  let text;
  try {
    text = JSON.stringify(envelope);
  } catch (err) {
    text = JSON.stringify({
      success: false,
      result: null,
      error: "Result is not JSON serializable: " + err.message,
    });
  }
  process.stdout.write("\n" + MARK + text + MARK + "\n");
}

(async () => {
  const [codePath, timeoutMs] = process.argv.slice(2);
  const code = fs.readFileSync(codePath, "utf8");
  let timer;
  try {
    const browser = await chromium.connectOverCDP("__CDP_ENDPOINT__");
    const context = browser.contexts()[0] || (await browser.newContext());
    const page = context.pages()[0] || (await context.newPage());
    const run = new AsyncFunction("page", "context", "browser", code);
    const timeout = new Promise((_, reject) => {
      timer = setTimeout(
        () => reject(new Error(`Script timed out after ${timeoutMs}ms`)),
        Number(timeoutMs)
      );
    });
    const result = await Promise.race([run(page, context, browser), timeout]);
    emit({ success: true, result: result === undefined ? null : result, error: null });
  } catch (err) {
    emit({ success: false, result: null, error: String((err && err.message) || err) });
  } finally {
    clearTimeout(timer);
    // Exit without closing: the browser is shared with the live view.
    process.exit(0);
  }
})();
"""

_RESULT_RE = re.compile(
    re.escape(RESULT_MARKER) + r"(.*?)" + re.escape(RESULT_MARKER), re.DOTALL
)

XDOTOOL_BUTTONS = {"left": 1, "middle": 2, "right": 3}

# Browser-style key names the model tends to use, mapped to X keysyms.
KEY_ALIASES = {
    "control": "ctrl",
    "cmd": "super",
    "meta": "super",
    "command": "super",
    "option": "alt",
    "enter": "Return",
    "return": "Return",
    "esc": "Escape",
    "escape": "Escape",
    "backspace": "BackSpace",
    "delete": "Delete",
    "tab": "Tab",
    "space": "space",
    "arrowup": "Up",
    "arrowdown": "Down",
    "arrowleft": "Left",
    "arrowright": "Right",
    "pageup": "Page_Up",
    "pagedown": "Page_Down",
    "home": "Home",
    "end": "End",
}


def to_keysym(key: str) -> str:
    parts = [KEY_ALIASES.get(part.lower(), part) for part in key.split("+")]
    return "+".join(parts)


def parse_script_output(stdout: str, stderr: str = "") -> ScriptResult:
    """Extract the runner envelope from the command output"""
    match = _RESULT_RE.search(stdout or "")
    if not match:
        detail = (stderr or stdout or "no output").strip()
        return ScriptResult(
            success=False, error=f"Script runner produced no result: {detail[-2000:]}"
        )
    try:
        envelope = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        return ScriptResult(success=False, error=f"Invalid script result: {e}")
    return ScriptResult(
        success=bool(envelope.get("success")),
        result=envelope.get("result"),
        error=envelope.get("error"),
    )


def crop_png(image_bytes: bytes, region: ScreenRegion) -> bytes:
    img = Image.open(BytesIO(image_bytes))
    width, height = img.size
    box = (
        min(region.x, width),
        min(region.y, height),
        min(region.x + region.width, width),
        min(region.y + region.height, height),
    )
    if box[2] <= box[0] or box[3] <= box[1]:
        raise ProviderError(
            f"Region {region.model_dump()} is outside the {width}x{height} screen"
        )
    output = BytesIO()
    img.crop(box).save(output, format="PNG")
    return output.getvalue()


class E2BBrowserProvider:
    """
    Drives headful Chromium desktops hosted in E2B sandboxes.

    Scripts run through Node Playwright connected over CDP to the browser the
    live view shows; host input goes through xdotool on the sandbox display.
    """

    def __init__(self, settings: Optional[E2BSettings] = None):
        self._settings = settings
        self._sandboxes: Dict[str, BrowserSandbox] = {}
        self._lock = asyncio.Lock()

    @property
    def settings(self) -> E2BSettings:
        settings = self._settings or config.e2b
        if not settings.e2b_api_key:
            settings = settings.model_copy(
                update={"e2b_api_key": config.require_e2b_api_key()}
            )
        return settings

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _sandbox(self, session_id: str) -> BrowserSandbox:
        async with self._lock:
            sandbox = self._sandboxes.get(session_id)
            if sandbox is None:
                try:
                    sandbox = await connect_sandbox(session_id, self.settings)
                except NotFoundException as e:
                    raise SessionNotFound(session_id) from e
                except Exception as e:
                    raise ProviderError(
                        f"Failed to connect to browser session {session_id}: {e}"
                    ) from e
                self._sandboxes[session_id] = sandbox
            return sandbox

    async def _exec(self, session_id: str, command: str, timeout: int = 30):
        sandbox = await self._sandbox(session_id)
        try:
            return await self._run(lambda: sandbox.exec(command, timeout=timeout))
        except Exception as e:
            raise ProviderError(f"Command failed in session {session_id}: {e}") from e

    async def _xdotool(self, session_id: str, *args: str, hold_keys: Optional[List[str]] = None):
        # One xdotool process per action: `key` and `type` swallow trailing args.
        xdotool = f"DISPLAY={self.settings.display} xdotool"
        held = [shlex.quote(to_keysym(k)) for k in hold_keys or []]
        actions = " && ".join(f"{xdotool} {action}" for action in args)
        if held:
            # Held keys are always released, even when an action fails.
            command = (
                f"{xdotool} keydown {' '.join(held)} && {{ {actions}; }}; "
                f"status=$?; {xdotool} keyup {' '.join(reversed(held))}; exit $status"
            )
        else:
            command = actions
        result = await self._exec(session_id, command)
        if not result.ok:
            raise ProviderError(f"xdotool failed: {result.result.strip()}")

    async def create(self, headless: bool = False) -> ProvisionedBrowser:
        if headless:
            logger.warning("Headless browsers have no live view; creating a headful one")
        settings = self.settings
        try:
            sandbox = await create_sandbox(settings)
        except Exception as e:
            raise ProviderError(f"Failed to create browser sandbox: {e}") from e

        async with self._lock:
            self._sandboxes[sandbox.id] = sandbox
        if not sandbox.desktop_ready:
            # A live view onto a desktop whose browser never started is unusable.
            return ProvisionedBrowser(session_id=sandbox.id)
        try:
            live_view_url = sandbox.live_view_url
            cdp_ws_url = sandbox.cdp_ws_url
        except Exception as e:
            logger.warning(f"Sandbox {sandbox.id} exposes no live view: {e}")
            live_view_url, cdp_ws_url = None, None
        return ProvisionedBrowser(
            session_id=sandbox.id, live_view_url=live_view_url, cdp_ws_url=cdp_ws_url
        )

    async def delete_by_id(self, session_id: str) -> None:
        api_key = self.settings.e2b_api_key
        async with self._lock:
            self._sandboxes.pop(session_id, None)
        try:
            killed = await self._run(kill_sandbox, session_id, api_key)
        except NotFoundException as e:
            raise SessionNotFound(session_id) from e
        except Exception as e:
            raise ProviderError(f"Failed to delete browser session {session_id}: {e}") from e
        if not killed:
            raise SessionNotFound(session_id)

    async def list(self) -> AsyncIterator[SessionSummary]:
        try:
            sandboxes = await self._run(list_sandboxes, self.settings.e2b_api_key)
        except Exception as e:
            raise ProviderError(f"Failed to list browser sessions: {e}") from e
        for info in sandboxes:
            metadata = dict(info.metadata or {})
            if metadata.get("role") != BROWSER_ROLE:
                continue
            yield SessionSummary(
                session_id=info.sandbox_id,
                started_at=getattr(info, "started_at", None),
                metadata=metadata,
            )

    async def execute_script(
        self, session_id: str, code: str, timeout_sec: int = 60
    ) -> ScriptResult:
        sandbox = await self._sandbox(session_id)
        settings = self.settings
        code_path = f"{RUNNER_DIR}/script_{uuid.uuid4().hex}.js"
        runner = SCRIPT_RUNNER.replace(
            "__CDP_ENDPOINT__", f"http://127.0.0.1:{settings.cdp_port}"
        )

        def run_script():
            sandbox.filesystem_write(RUNNER_PATH, runner)
            sandbox.filesystem_write(code_path, code)
            command = (
                f"cd {RUNNER_DIR} && NODE_PATH=$(npm root -g) "
                f"node {RUNNER_PATH} {code_path} {timeout_sec * 1000}; "
                f"rm -f {code_path}"
            )
            return sandbox.exec(command, timeout=timeout_sec + 5)

        try:
            result = await self._run(run_script)
        except Exception as e:
            raise ProviderError(f"Script execution failed: {e}") from e
        return parse_script_output(result.stdout, result.stderr)

    async def capture_screenshot(
        self, session_id: str, region: Optional[ScreenRegion] = None
    ) -> bytes:
        sandbox = await self._sandbox(session_id)
        command = (
            f"DISPLAY={self.settings.display} import -window root png:- | base64 -w 0"
        )
        try:
            image_bytes = await self._run(lambda: sandbox.read_base64(command))
        except Exception as e:
            raise ProviderError(f"Screenshot failed: {e}") from e
        if not image_bytes:
            raise ProviderError("Screenshot command returned no image")
        if region is not None:
            image_bytes = crop_png(image_bytes, region)
        return image_bytes

    async def move_mouse(
        self, session_id: str, x: int, y: int, hold_keys: Optional[List[str]] = None
    ) -> None:
        await self._xdotool(session_id, f"mousemove {x} {y}", hold_keys=hold_keys)

    async def click_mouse(
        self,
        session_id: str,
        x: int,
        y: int,
        button: MouseButton = "left",
        click_type: str = "click",
        num_clicks: int = 1,
        hold_keys: Optional[List[str]] = None,
    ) -> None:
        number = XDOTOOL_BUTTONS[button]
        if click_type == "down":
            action = f"mousedown {number}"
        elif click_type == "up":
            action = f"mouseup {number}"
        else:
            action = f"click --repeat {num_clicks} {number}"
        await self._xdotool(session_id, f"mousemove {x} {y}", action, hold_keys=hold_keys)

    async def drag_mouse(
        self,
        session_id: str,
        path: List[List[int]],
        button: MouseButton = "left",
        hold_keys: Optional[List[str]] = None,
    ) -> None:
        number = XDOTOOL_BUTTONS[button]
        (start_x, start_y), rest = path[0], path[1:]
        actions = [f"mousemove {start_x} {start_y}", f"mousedown {number}"]
        actions += [f"mousemove {x} {y}" for x, y in rest]
        actions.append(f"mouseup {number}")
        await self._xdotool(session_id, *actions, hold_keys=hold_keys)

    async def scroll(
        self,
        session_id: str,
        x: int,
        y: int,
        delta_x: int = 0,
        delta_y: int = 0,
        hold_keys: Optional[List[str]] = None,
    ) -> None:
        actions = [f"mousemove {x} {y}"]
        if delta_y:
            actions.append(f"click --repeat {abs(delta_y)} {5 if delta_y > 0 else 4}")
        if delta_x:
            actions.append(f"click --repeat {abs(delta_x)} {7 if delta_x > 0 else 6}")
        await self._xdotool(session_id, *actions, hold_keys=hold_keys)

    async def type_text(self, session_id: str, text: str, delay_ms: int = 0) -> None:
        await self._xdotool(session_id, f"type --delay {delay_ms} -- {shlex.quote(text)}")

    async def press_key(
        self,
        session_id: str,
        keys: List[str],
        duration_ms: int = 0,
        hold_keys: Optional[List[str]] = None,
    ) -> None:
        keysyms = " ".join(shlex.quote(to_keysym(k)) for k in keys)
        if duration_ms > 0:
            actions = [
                f"keydown {keysyms}",
                f"sleep {duration_ms / 1000:.3f}",
                f"keyup {keysyms}",
            ]
        else:
            actions = [f"key {keysyms}"]
        await self._xdotool(session_id, *actions, hold_keys=hold_keys)

    async def set_cursor_visibility(self, session_id: str, hidden: bool) -> None:
        display = self.settings.display
        command = "pkill -x unclutter || true"
        if hidden:
            command += (
                f"; DISPLAY={display} nohup unclutter -idle 0 -root "
                "> /dev/null 2>&1 &"
            )
        result = await self._exec(session_id, command)
        if not result.ok:
            raise ProviderError(f"Failed to toggle cursor: {result.result.strip()}")
