import json
import time
from typing import List, Optional

from pydantic import Field

from eburon.agent.base import BaseAgent
from eburon.agent.events import AgentEvent, AgentEventType
from eburon.schema import TOOL_CHOICE_TYPE, AgentState, Message, ToolCall, ToolChoice, Usage
from eburon.tool import ToolCollection, ToolResult
from eburon.utils.logger import logger


class ToolCallAgent(BaseAgent):
    """
    Base agent class for handling tool/function calls.
    Implements the think/act pattern: each step asks the model for one turn,
    then runs the tool calls of that turn one after another.
    """

    name: str = "toolcall"
    description: str = "an agent that can execute tool calls."

    available_tools: ToolCollection = Field(default_factory=ToolCollection)
    tool_choices: TOOL_CHOICE_TYPE = ToolChoice.AUTO  # type: ignore

    stream: bool = Field(False, description="Stream model turns instead of waiting")

    tool_calls: List[ToolCall] = Field(default_factory=list)
    last_finish_reason: Optional[str] = None

    _step_text: str = ""
    _step_usage: Usage = Usage()

    async def step(self) -> str:
        """Execute a single step: think and act."""
        await self.emit(AgentEvent(type=AgentEventType.START_STEP, step=self.current_step))
        should_act = await self.think()
        if should_act:
            await self.act()
        else:
            self.state = AgentState.FINISHED

        await self.emit(
            AgentEvent(
                type=AgentEventType.FINISH_STEP,
                step=self.current_step,
                finish_reason=self.last_finish_reason,
                usage=self._step_usage,
            )
        )
        return self._step_text

    async def think(self) -> bool:
        """Ask the model for the next turn; True when it requested tools"""
        think_start = time.time()
        if self.next_step_prompt:
            self.memory.add_message(Message.user_message(self.next_step_prompt))

        request = dict(
            messages=self.messages,
            system_msgs=(
                [Message.system_message(self.system_prompt)] if self.system_prompt else None
            ),
            tools=self.available_tools.to_params(),
            tool_choice=self.tool_choices,
        )
        if self.stream:
            content, tool_calls, finish_reason, usage = await self._think_streaming(request)
        else:
            response = await self.llm.ask_tool(**request)
            content, tool_calls = response.content, response.tool_calls
            finish_reason, usage = response.finish_reason, response.usage
            if content:
                await self.emit(
                    AgentEvent(type=AgentEventType.TEXT_DELTA, step=self.current_step, text=content)
                )

        self._step_text = content
        self._step_usage = usage
        self.usage = self.usage + usage
        self.last_finish_reason = finish_reason
        self.tool_calls = tool_calls

        logger.info(
            f"Step {self.current_step}/{self.max_steps} thought for "
            f"{time.time() - think_start:.1f}s: {len(content)} chars, "
            f"tools={[tc.function.name for tc in tool_calls] or 'none'}"
        )

        if tool_calls:
            self.memory.add_message(
                Message.from_tool_calls(content=content, tool_calls=tool_calls)
            )
            return True
        if content:
            self.memory.add_message(Message.assistant_message(content))
        return False

    async def _think_streaming(self, request: dict):
        content: List[str] = []
        tool_calls: List[ToolCall] = []
        finish_reason, usage = None, Usage()
        async for part in self.llm.stream_tool(**request):
            if part.type == "text-delta":
                content.append(part.text)
                await self.emit(
                    AgentEvent(
                        type=AgentEventType.TEXT_DELTA, step=self.current_step, text=part.text
                    )
                )
            elif part.type == "reasoning-delta":
                await self.emit(
                    AgentEvent(
                        type=AgentEventType.PASSTHROUGH,
                        step=self.current_step,
                        name="reasoning-delta",
                        payload={"text": part.text},
                    )
                )
            elif part.type == "tool-call":
                tool_calls.append(part.tool_call)
            elif part.type == "finish":
                finish_reason, usage = part.finish_reason, part.usage or Usage()
        return "".join(content), tool_calls, finish_reason, usage

    async def act(self) -> None:
        """Execute the step's tool calls sequentially and record their results"""
        images = []
        for command in self.tool_calls:
            result = await self.execute_tool(command)
            self.memory.add_message(
                Message.tool_message(
                    content=self._observation(command.function.name, result),
                    name=command.function.name,
                    tool_call_id=command.id,
                )
            )
            if result.base64_image:
                images.append((command.function.name, result.base64_image))

        # Tool messages cannot carry images, so screenshots follow as user turns.
        for tool_name, image in images:
            self.memory.add_message(
                Message.user_message(f"Screenshot returned by {tool_name}", base64_image=image)
            )

    async def execute_tool(self, command: ToolCall) -> ToolResult:
        """Run one tool call; every failure comes back as an error result"""
        name = command.function.name
        try:
            args = json.loads(command.function.arguments or "{}")
            if not isinstance(args, dict):
                raise ValueError("arguments must be a JSON object")
        except ValueError as e:
            await self.emit(
                AgentEvent(
                    type=AgentEventType.TOOL_CALL,
                    step=self.current_step,
                    tool_call_id=command.id,
                    tool_name=name,
                    input={"raw": command.function.arguments},
                )
            )
            error = f"Error parsing arguments for {name}: {e}"
            logger.error(error)
            result = ToolResult(error=error)
            await self._emit_result(command, result)
            return result

        await self.emit(
            AgentEvent(
                type=AgentEventType.TOOL_CALL,
                step=self.current_step,
                tool_call_id=command.id,
                tool_name=name,
                input=args,
            )
        )
        result = await self.available_tools.execute(name=name, tool_input=args)
        logger.info(
            f"Tool '{name}' {'succeeded' if result.success else 'failed: ' + str(result.error)}"
        )
        await self._emit_result(command, result)
        return result

    async def _emit_result(self, command: ToolCall, result: ToolResult) -> None:
        if result.success:
            event = AgentEvent(
                type=AgentEventType.TOOL_RESULT,
                step=self.current_step,
                tool_call_id=command.id,
                tool_name=command.function.name,
                result=result.output,
            )
        else:
            event = AgentEvent(
                type=AgentEventType.TOOL_ERROR,
                step=self.current_step,
                tool_call_id=command.id,
                tool_name=command.function.name,
                error=result.error,
            )
        await self.emit(event)

    @staticmethod
    def _observation(name: str, result: ToolResult) -> str:
        if result.base64_image and result.success:
            return f"Screenshot captured; the image follows. {result}"
        return str(result) or f"Tool '{name}' completed with no output"

    async def run(self, request: Optional[str] = None) -> str:
        text = await super().run(request)
        await self.emit(
            AgentEvent(
                type=AgentEventType.FINISH,
                step=self.current_step,
                finish_reason=self.last_finish_reason,
                usage=self.usage,
            )
        )
        return text
