"""Consumer side of a run stream, mirroring what the web console does with it"""

import json
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

Event = Tuple[str, Any]


def _parse_frame(raw: str) -> Optional[Event]:
    name = "message"
    data_lines: List[str] = []
    for line in raw.split("\n"):
        if line.startswith("event:"):
            name = line[len("event:") :].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:") :].strip())
    if not data_lines:
        return None
    try:
        return name, json.loads("".join(data_lines))
    except json.JSONDecodeError:
        # Malformed frames are skipped; the stream goes on.
        return None


class SSEParser:
    """Incremental frame splitter; frames end at a blank line"""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> Iterator[Event]:
        self._buffer += chunk.replace("\r\n", "\n")
        while "\n\n" in self._buffer:
            raw, self._buffer = self._buffer.split("\n\n", 1)
            event = _parse_frame(raw)
            if event is not None:
                yield event


def parse_sse_stream(chunks: Iterable[str]) -> Iterator[Event]:
    parser = SSEParser()
    for chunk in chunks:
        yield from parser.feed(chunk)


class RunRecord(BaseModel):
    """
    One run as the console shows it.

    ``success`` is None while pending and becomes True or False exactly once,
    when the final frame arrives.
    """

    task: str = ""
    server_target: Optional[str] = None
    success: Optional[bool] = None
    response: str = ""
    step_count: int = 0
    steps: List[dict] = Field(default_factory=list)
    executed_codes: List[dict] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.success is None

    def apply(self, event: str, data: Any) -> None:
        if self.success is not None:
            return
        if event == "text-delta" and isinstance(data, dict) and isinstance(data.get("text"), str):
            self.response += data["text"]
        elif event == "start-step":
            self.step_count += 1
        elif event == "final" and isinstance(data, dict):
            self.apply_result(data)

    def apply_result(self, data: dict) -> None:
        """Replace the streamed state with a terminal payload"""
        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        self.success = bool(data.get("success", False))
        self.response = data.get("response") or ""
        self.steps = data.get("steps") or []
        self.executed_codes = data.get("executedCodes") or []
        self.step_count = data.get("stepCount", len(self.steps))
        self.server_target = data.get("serverTarget") or self.server_target
        self.error = error

    def fail(self, message: str) -> None:
        """Transport-level failure, e.g. the request never reached the server"""
        if self.success is None:
            self.success = False
            self.error = message
