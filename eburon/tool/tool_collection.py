"""Collection classes for managing multiple tools."""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError as InputValidationError

from eburon.exceptions import EburonError, ToolError
from eburon.tool.base import BaseTool, ToolFailure, ToolResult
from eburon.utils.logger import logger


def describe_validation_error(error: InputValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "input"
        problems.append(f"{location}: {item.get('msg')}")
    return "Invalid input - " + "; ".join(problems)


class ToolCollection:
    """A collection of defined tools."""

    def __init__(self, *tools: BaseTool):
        self.tools = tools
        self.tool_map = {tool.name: tool for tool in tools}

    def __iter__(self):
        return iter(self.tools)

    def to_params(self) -> List[Dict[str, Any]]:
        return [tool.to_param() for tool in self.tools]

    async def execute(
        self, *, name: str, tool_input: Optional[Dict[str, Any]] = None
    ) -> ToolResult:
        """
        Validate and run one tool call.

        Never raises: unknown tools, invalid input and failures inside the tool
        all come back as a ToolFailure the agent can read and react to.
        """
        tool = self.tool_map.get(name)
        if not tool:
            return ToolFailure(error=f"Tool {name} is invalid")
        try:
            arguments = tool.validate_input(tool_input or {})
        except InputValidationError as e:
            return ToolFailure(error=describe_validation_error(e))

        try:
            result = await tool(**arguments)
        except ToolError as e:
            return ToolFailure(error=e.message)
        except EburonError as e:
            logger.warning(f"Tool '{name}' failed: {e.message}")
            return ToolFailure(error=e.message)
        except Exception as e:
            logger.exception(f"Tool '{name}' raised unexpectedly")
            return ToolFailure(error=f"{type(e).__name__}: {e}")

        if not isinstance(result, ToolResult):
            result = ToolResult(output=result)
        return result

    def get_tool(self, name: str) -> Optional[BaseTool]:
        return self.tool_map.get(name)
