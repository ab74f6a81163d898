from eburon.config import config
from eburon.exceptions import ValidationError
from eburon.llm import LLM
from eburon.prompt.eburon import ENHANCE_PROMPT
from eburon.schema import Message
from eburon.utils.logger import logger


async def enhance_prompt(prompt: str, server_target: str = None, llm_factory=LLM) -> str:
    """Rewrite a rough task into a direct instruction for the browser agent"""
    if not prompt or not prompt.strip():
        raise ValidationError("Prompt is required")

    settings = config.resolve_backend(server_target)
    llm = llm_factory(settings)
    text = await llm.ask(
        [Message.user_message(prompt)],
        system_msgs=[Message.system_message(ENHANCE_PROMPT)],
    )
    logger.info(f"Enhanced prompt with {settings.name} ({len(prompt)} -> {len(text)} chars)")
    return text.strip()
