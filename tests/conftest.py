"""Shared fakes: an in-memory browser provider and a scripted model backend."""

import asyncio
import json
from typing import Callable, Dict, List, Optional

import pytest

from eburon.config import LLMSettings, config
from eburon.exceptions import ProviderError, SessionNotFound
from eburon.llm import LLM, LLMResponse, StreamPart
from eburon.schema import Function, ToolCall, Usage
from eburon.session import BrowserProvisioner, SessionRegistry
from eburon.session.models import ProvisionedBrowser, ScriptResult, SessionSummary

# Screenshot payload; only its bytes matter to the fakes
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"fake-screen" * 8


class FakeProvider:
    """Browser provider that keeps sessions in a dict and records every call"""

    def __init__(self):
        self.sessions: Dict[str, SessionSummary] = {}
        self.created = 0
        self.create_delay = 0.0
        self.live_view = True
        self.fail_create = False
        self.fail_delete = False
        self.fail_list = False
        self.script_handler: Optional[Callable[[str], ScriptResult]] = None
        self.scripts: List[str] = []
        self.deleted: List[str] = []
        self.calls: List[tuple] = []

    async def create(self, headless: bool = False) -> ProvisionedBrowser:
        self.calls.append(("create", headless))
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.fail_create:
            raise ProviderError("Failed to create browser sandbox: quota exceeded")
        self.created += 1
        session_id = f"sess-{self.created}"
        self.sessions[session_id] = SessionSummary(session_id=session_id)
        return ProvisionedBrowser(
            session_id=session_id,
            live_view_url=f"https://6080-{session_id}.e2b.test/vnc.html" if self.live_view else None,
            cdp_ws_url=f"wss://9222-{session_id}.e2b.test",
        )

    async def delete_by_id(self, session_id: str) -> None:
        self.calls.append(("delete", session_id))
        if self.fail_delete:
            raise ProviderError("Failed to delete: upstream unavailable")
        if session_id not in self.sessions:
            raise SessionNotFound(session_id)
        del self.sessions[session_id]
        self.deleted.append(session_id)

    async def list(self):
        self.calls.append(("list",))
        if self.fail_list:
            raise ProviderError("Failed to list browser sessions")
        for summary in list(self.sessions.values()):
            yield summary

    async def execute_script(self, session_id: str, code: str, timeout_sec: int = 60) -> ScriptResult:
        self.calls.append(("script", session_id, timeout_sec))
        self.scripts.append(code)
        if "bringToFront" in code:
            return ScriptResult(success=True, result={"kept": "about:blank", "closed": 0, "total": 1})
        if self.script_handler is not None:
            return self.script_handler(code)
        return ScriptResult(success=True, result="Example Domain")

    async def capture_screenshot(self, session_id: str, region=None) -> bytes:
        self.calls.append(("screenshot", session_id, region))
        return PNG_BYTES

    async def move_mouse(self, session_id, x, y, hold_keys=None):
        self.calls.append(("move", session_id, x, y, hold_keys))

    async def click_mouse(self, session_id, x, y, button="left", click_type="click", num_clicks=1, hold_keys=None):
        self.calls.append(("click", session_id, x, y, button, click_type, num_clicks, hold_keys))

    async def drag_mouse(self, session_id, path, button="left", hold_keys=None):
        self.calls.append(("drag", session_id, path, button, hold_keys))

    async def scroll(self, session_id, x, y, delta_x=0, delta_y=0, hold_keys=None):
        self.calls.append(("scroll", session_id, x, y, delta_x, delta_y, hold_keys))

    async def type_text(self, session_id, text, delay_ms=0):
        self.calls.append(("type", session_id, text, delay_ms))

    async def press_key(self, session_id, keys, duration_ms=0, hold_keys=None):
        self.calls.append(("key", session_id, keys, duration_ms, hold_keys))

    async def set_cursor_visibility(self, session_id, hidden):
        self.calls.append(("cursor", session_id, hidden))

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


def tool_call(call_id: str, name: str, arguments) -> ToolCall:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return ToolCall(id=call_id, function=Function(name=name, arguments=arguments))


def turn(content: str = "", *calls: ToolCall, finish_reason: Optional[str] = None, tokens: int = 10) -> LLMResponse:
    """One scripted model turn"""
    return LLMResponse(
        content=content,
        tool_calls=list(calls),
        finish_reason=finish_reason or ("tool-calls" if calls else "stop"),
        usage=Usage(input_tokens=tokens, output_tokens=tokens, total_tokens=2 * tokens),
    )


class ScriptedLLM(LLM):
    """Model backend that replays prepared turns instead of calling an API"""

    def __init__(self, turns: List[LLMResponse], settings: Optional[LLMSettings] = None, text: str = ""):
        self.settings = settings or LLMSettings(
            name="vps", model="fake", base_url="http://localhost:11434/v1", api_key="ollama"
        )
        self.model = self.settings.model
        self.turns = list(turns)
        self.text = text
        self.requests: List[dict] = []
        self.gate: Optional[asyncio.Event] = None

    def _next(self) -> LLMResponse:
        if self.turns:
            return self.turns.pop(0)
        return turn("Done.")

    async def ask(self, messages, system_msgs=None) -> str:
        self.requests.append({"messages": messages, "system_msgs": system_msgs})
        return self.text

    async def ask_tool(self, messages, system_msgs=None, tools=None, tool_choice=None) -> LLMResponse:
        self.requests.append({"messages": list(messages), "tools": tools})
        if self.gate is not None:
            await self.gate.wait()
        return self._next()

    async def stream_tool(self, messages, system_msgs=None, tools=None, tool_choice=None):
        self.requests.append({"messages": list(messages), "tools": tools})
        if self.gate is not None:
            await self.gate.wait()
        response = self._next()
        # Split text so the stream carries several deltas
        for i in range(0, len(response.content), 5):
            yield StreamPart(type="text-delta", text=response.content[i : i + 5])
        for call in response.tool_calls:
            yield StreamPart(type="tool-call", tool_call=call)
        yield StreamPart(type="finish", finish_reason=response.finish_reason, usage=response.usage)


@pytest.fixture(autouse=True)
def console_env(monkeypatch):
    """Credentials for the default profile; the cloud profile starts unconfigured"""
    monkeypatch.setenv("E2B_API_KEY", "e2b_test_key")
    for name in (
        "OLLAMA_BASE_URL",
        "OLLAMA_API_KEY",
        "OLLAMA_MODEL",
        "OLLAMA_CLOUD_BASE_URL",
        "OLLAMA_CLOUD_API_KEY",
        "OLLAMA_CLOUD_MODEL",
        "VPS_SSH_HOST",
        "VPS_SSH_USER",
        "VPS_SSH_PASSWORD",
        "VPS_SSH_PORT",
        "VPS_DEPLOY_TOKEN",
        "OPENCLAW_BIN",
        "OPENCLAW_WORKSPACE_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    return config


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry(recent_window_ms=15000)


@pytest.fixture
def provisioner(provider, registry) -> BrowserProvisioner:
    return BrowserProvisioner(provider, registry)
