"""Run request, step record and terminal result shapes"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, Field

from eburon.schema import CamelModel, Usage


class AgentRunRequest(CamelModel):
    """Body of an agent run; both the web client's and the generic field names are accepted"""

    session_id: Optional[str] = None
    task: Optional[str] = None
    server_target: Optional[str] = Field(
        None, validation_alias=AliasChoices("serverTarget", "backendSelection", "server_target")
    )
    stream: bool = Field(
        False, validation_alias=AliasChoices("stream", "streamRequested")
    )
    lag_ms_min: Optional[int] = Field(
        None, validation_alias=AliasChoices("lagMsMin", "pacingMin", "lag_ms_min")
    )
    lag_ms_max: Optional[int] = Field(
        None, validation_alias=AliasChoices("lagMsMax", "pacingMax", "lag_ms_max")
    )


class TextItem(CamelModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallItem(CamelModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    code: Optional[str] = None


class ToolResultItem(CamelModel):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    success: bool
    result: Any = None
    error: Optional[str] = None


ContentItem = Annotated[
    Union[TextItem, ToolCallItem, ToolResultItem], Field(discriminator="type")
]


class Step(CamelModel):
    step_number: int
    finish_reason: Optional[str] = None
    content: List[ContentItem] = Field(default_factory=list)

    def to_payload(self) -> dict:
        # finishReason stays present while null so clients can tell an open step
        return self.model_dump(by_alias=True)


class ExecutedCode(CamelModel):
    code: str
    success: bool = True
    result: Any = None
    error: Optional[str] = None


class RunResult(CamelModel):
    """Terminal summary of a run, identical for streamed and blocking runs"""

    success: bool
    response: str = ""
    executed_codes: List[ExecutedCode] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)
    step_count: int = 0
    usage: Usage = Field(default_factory=Usage)
    server_target: str
    finish_reason: Optional[str] = None
    error: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {
            "success": self.success,
            "response": self.response,
            "executedCodes": [
                code.model_dump(by_alias=True) for code in self.executed_codes
            ],
            "steps": [step.to_payload() for step in self.steps],
            "stepCount": self.step_count,
            "usage": self.usage.to_payload(),
            "serverTarget": self.server_target,
            "finishReason": self.finish_reason,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload
