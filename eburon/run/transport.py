"""Server-sent event encoding for run streams"""

import json
import traceback
from typing import Any, Dict

from pydantic import BaseModel

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def normalize_error(err: Any) -> Dict[str, Any]:
    """Render an error as ``{name, message, stack}``"""
    if isinstance(err, BaseException):
        return {
            "name": type(err).__name__,
            "message": str(err) or type(err).__name__,
            "stack": "".join(
                traceback.format_exception(type(err), err, err.__traceback__)
            ),
        }
    if isinstance(err, dict) and "message" in err:
        return {
            "name": err.get("name", "Error"),
            "message": str(err["message"]),
            "stack": err.get("stack"),
        }
    return {"name": "Error", "message": str(err), "stack": None}


def normalize_payload(value: Any) -> Any:
    """Make a payload JSON-safe, rendering any embedded exception as a plain error object"""
    if isinstance(value, BaseException):
        return normalize_error(value)
    if isinstance(value, BaseModel):
        return normalize_payload(value.model_dump(by_alias=True))
    if isinstance(value, dict):
        return {str(key): normalize_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_payload(item) for item in value]
    return value


def format_sse(event: str, data: Any) -> str:
    """Encode one frame: ``event: <name>\\ndata: <json>\\n\\n``"""
    body = json.dumps(normalize_payload(data), default=str, ensure_ascii=False)
    return f"event: {event}\ndata: {body}\n\n"
