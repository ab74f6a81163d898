"""Chat-completion client for the OpenAI-compatible model backends"""

import uuid
from typing import AsyncIterator, Dict, List, Literal, Optional, Union

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from eburon.config import LLMSettings
from eburon.schema import (
    TOOL_CHOICE_TYPE,
    Function,
    Message,
    ToolCall,
    ToolChoice,
    Usage,
)
from eburon.utils.logger import logger

FINISH_REASONS = {
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "stop": "stop",
    "length": "length",
    "content_filter": "content-filter",
}


def map_finish_reason(reason: Optional[str], has_tool_calls: bool = False) -> str:
    # Some Ollama models report "stop" even when the turn ends in tool calls.
    if has_tool_calls:
        return "tool-calls"
    if reason is None:
        return "unknown"
    return FINISH_REASONS.get(reason, "other")


def usage_from(raw) -> Usage:
    if raw is None:
        return Usage()
    prompt_tokens = getattr(raw, "prompt_tokens", 0) or 0
    completion_tokens = getattr(raw, "completion_tokens", 0) or 0
    return Usage(
        input_tokens=prompt_tokens,
        output_tokens=completion_tokens,
        total_tokens=getattr(raw, "total_tokens", 0)
        or prompt_tokens + completion_tokens,
    )


class LLMResponse(BaseModel):
    """One completed model turn"""

    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: str = "unknown"
    usage: Usage = Field(default_factory=Usage)


class StreamPart(BaseModel):
    """A typed piece of a streamed model turn"""

    type: Literal["text-delta", "reasoning-delta", "tool-call", "finish"]
    text: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None


class LLM:
    """Tool-calling completions against one backend profile"""

    def __init__(self, settings: LLMSettings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self.model = settings.model
        self.client = client or AsyncOpenAI(
            api_key=settings.api_key, base_url=settings.base_url
        )

    def _build_request(
        self,
        messages: List[Union[Message, dict]],
        system_msgs: Optional[List[Message]],
        tools: Optional[List[dict]],
        tool_choice: TOOL_CHOICE_TYPE,  # type: ignore
    ) -> Dict:
        all_messages = list(system_msgs or []) + list(messages)
        params = {
            "model": self.model,
            "messages": [
                m.to_dict() if isinstance(m, Message) else m for m in all_messages
            ],
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = tool_choice
        return params

    async def ask(
        self,
        messages: List[Union[Message, dict]],
        system_msgs: Optional[List[Message]] = None,
    ) -> str:
        """Plain completion without tools"""
        params = self._build_request(messages, system_msgs, None, ToolChoice.NONE)
        response = await self.client.chat.completions.create(**params)
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def ask_tool(
        self,
        messages: List[Union[Message, dict]],
        system_msgs: Optional[List[Message]] = None,
        tools: Optional[List[dict]] = None,
        tool_choice: TOOL_CHOICE_TYPE = ToolChoice.AUTO,  # type: ignore
    ) -> LLMResponse:
        """
        Ask the model for one turn and wait for the whole answer.

        Returns:
            LLMResponse with text, tool calls, mapped finish reason and usage
        """
        params = self._build_request(messages, system_msgs, tools, tool_choice)
        response = await self.client.chat.completions.create(**params)
        if not response.choices:
            raise ValueError("Invalid or empty response from LLM")

        choice = response.choices[0]
        tool_calls = [
            ToolCall(
                id=tc.id or f"call_{uuid.uuid4().hex[:12]}",
                function=Function(
                    name=tc.function.name, arguments=tc.function.arguments or "{}"
                ),
            )
            for tc in choice.message.tool_calls or []
        ]
        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=tool_calls,
            finish_reason=map_finish_reason(choice.finish_reason, bool(tool_calls)),
            usage=usage_from(response.usage),
        )

    async def stream_tool(
        self,
        messages: List[Union[Message, dict]],
        system_msgs: Optional[List[Message]] = None,
        tools: Optional[List[dict]] = None,
        tool_choice: TOOL_CHOICE_TYPE = ToolChoice.AUTO,  # type: ignore
    ) -> AsyncIterator[StreamPart]:
        """
        Stream one turn as typed parts.

        Text and reasoning come through as they arrive. Tool calls are yielded
        once their argument fragments are complete, right before the single
        closing ``finish`` part that carries the finish reason and usage.
        """
        params = self._build_request(messages, system_msgs, tools, tool_choice)
        params["stream"] = True
        params["stream_options"] = {"include_usage": True}
        stream = await self.client.chat.completions.create(**params)

        pending: Dict[int, Dict[str, str]] = {}
        finish_reason = None
        usage = Usage()
        async for chunk in stream:
            if getattr(chunk, "usage", None):
                usage = usage_from(chunk.usage)
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            if delta is not None:
                reasoning = getattr(delta, "reasoning", None) or getattr(
                    delta, "reasoning_content", None
                )
                if reasoning:
                    yield StreamPart(type="reasoning-delta", text=reasoning)
                if delta.content:
                    yield StreamPart(type="text-delta", text=delta.content)
                for fragment in delta.tool_calls or []:
                    slot = pending.setdefault(
                        fragment.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if fragment.id:
                        slot["id"] = fragment.id
                    if fragment.function is not None:
                        if fragment.function.name:
                            slot["name"] += fragment.function.name
                        if fragment.function.arguments:
                            slot["arguments"] += fragment.function.arguments
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        for index in sorted(pending):
            slot = pending[index]
            if not slot["name"]:
                logger.warning(f"Dropping streamed tool call #{index} without a name")
                continue
            yield StreamPart(
                type="tool-call",
                tool_call=ToolCall(
                    id=slot["id"] or f"call_{uuid.uuid4().hex[:12]}",
                    function=Function(name=slot["name"], arguments=slot["arguments"] or "{}"),
                ),
            )
        yield StreamPart(
            type="finish",
            finish_reason=map_finish_reason(finish_reason, bool(pending)),
            usage=usage,
        )
