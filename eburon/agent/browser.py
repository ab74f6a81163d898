"""Agent that drives one remote browser session"""

from eburon.agent.events import EventSink, discard_event
from eburon.agent.toolcall import ToolCallAgent
from eburon.config import config
from eburon.llm import LLM
from eburon.prompt.eburon import SYSTEM_PROMPT
from eburon.session.models import BrowserProvider
from eburon.tool import browser_tools


class BrowserAgent(ToolCallAgent):
    """
    Browser automation agent bound to a single session.
    Has the Playwright execution tool plus the host-input computer tools.
    """

    name: str = "eburon"
    description: str = "Autonomous agent operating a sandboxed browser"

    system_prompt: str = SYSTEM_PROMPT
    max_steps: int = 20

    session_id: str

    @classmethod
    def create(
        cls,
        provider: BrowserProvider,
        session_id: str,
        llm: LLM,
        stream: bool = False,
        event_sink: EventSink = discard_event,
        max_steps: int = None,
    ) -> "BrowserAgent":
        return cls(
            llm=llm,
            session_id=session_id,
            available_tools=browser_tools(provider, session_id),
            stream=stream,
            event_sink=event_sink,
            max_steps=max_steps or config.agent.max_steps,
        )
