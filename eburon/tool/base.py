import json
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Optional, Type

from pydantic import BaseModel, Field


class BaseTool(ABC, BaseModel):
    """
    A named operation the agent can call.

    ``input_model`` validates the call arguments; its JSON schema is what the
    model sees as the tool's parameters.
    """

    name: str
    description: str
    input_model: ClassVar[Optional[Type[BaseModel]]] = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def parameters(self) -> Dict[str, Any]:
        if self.input_model is None:
            return {"type": "object", "properties": {}}
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        return schema

    def validate_input(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        """Validate arguments; raises pydantic.ValidationError when they do not fit"""
        if self.input_model is None:
            return dict(tool_input)
        return self.input_model.model_validate(tool_input).model_dump()

    async def __call__(self, **kwargs) -> Any:
        """Execute the tool with given parameters."""
        return await self.execute(**kwargs)

    @abstractmethod
    async def execute(self, **kwargs) -> Any:
        """Execute the tool with given parameters."""

    def to_param(self) -> Dict:
        """Convert tool to function call format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolResult(BaseModel):
    """Represents the result of a tool execution."""

    output: Any = Field(default=None)
    error: Optional[str] = Field(default=None)
    base64_image: Optional[str] = Field(default=None)

    class Config:
        arbitrary_types_allowed = True

    @property
    def success(self) -> bool:
        return self.error is None

    def __bool__(self):
        return any(getattr(self, field) for field in self.model_fields)

    def __str__(self):
        if self.error:
            return f"Error: {self.error}"
        if self.output is None:
            return ""
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, default=str)


class ToolFailure(ToolResult):
    """A ToolResult that represents a failure."""
