"""Tests for SSE encoding and the client-side stream consumer."""

import json

from pydantic import BaseModel

from eburon.run.client import RunRecord, SSEParser, parse_sse_stream
from eburon.run.transport import format_sse, normalize_error, normalize_payload


class TestFormatSse:
    def test_frame_layout(self):
        frame = format_sse("text-delta", {"text": "hi"})
        assert frame == 'event: text-delta\ndata: {"text": "hi"}\n\n'

    def test_unicode_is_kept(self):
        frame = format_sse("text-delta", {"text": "héllo ✓"})
        assert "héllo ✓" in frame

    def test_exceptions_become_plain_objects(self):
        frame = format_sse("tool-error", {"error": ValueError("bad input")})
        data = json.loads(frame.split("data: ", 1)[1])
        assert data["error"]["name"] == "ValueError"
        assert data["error"]["message"] == "bad input"
        assert "stack" in data["error"]

    def test_models_are_serialised(self):
        class Point(BaseModel):
            x: int

        assert normalize_payload({"p": Point(x=1), "items": (1, 2)}) == {
            "p": {"x": 1},
            "items": [1, 2],
        }


class TestNormalizeError:
    def test_dict_with_message(self):
        assert normalize_error({"message": "oops"}) == {
            "name": "Error",
            "message": "oops",
            "stack": None,
        }

    def test_anything_else(self):
        assert normalize_error(42) == {"name": "Error", "message": "42", "stack": None}

    def test_exception_without_message(self):
        assert normalize_error(TimeoutError())["message"] == "TimeoutError"


class TestSSEParser:
    def test_frames_split_across_chunks(self):
        frame = format_sse("text-delta", {"text": "hello"}) + format_sse("final", {"success": True})
        chunks = [frame[:7], frame[7:30], frame[30:]]
        assert list(parse_sse_stream(chunks)) == [
            ("text-delta", {"text": "hello"}),
            ("final", {"success": True}),
        ]

    def test_crlf_line_endings(self):
        parser = SSEParser()
        events = list(parser.feed('event: init\r\ndata: {"a": 1}\r\n\r\n'))
        assert events == [("init", {"a": 1})]

    def test_malformed_frames_are_skipped(self):
        stream = "event: text-delta\ndata: {broken\n\n" + format_sse("final", {"success": False})
        assert list(parse_sse_stream([stream])) == [("final", {"success": False})]

    def test_frame_without_event_name(self):
        assert list(parse_sse_stream(['data: {"x": 1}\n\n'])) == [("message", {"x": 1})]

    def test_incomplete_frame_waits_for_more(self):
        parser = SSEParser()
        assert list(parser.feed('event: init\ndata: {"a": 1}\n')) == []
        assert list(parser.feed("\n")) == [("init", {"a": 1})]


class TestRunRecord:
    def test_streamed_state(self):
        record = RunRecord(task="title")
        record.apply("start-step", {"stepNumber": 1})
        record.apply("text-delta", {"text": "Example "})
        record.apply("text-delta", {"text": "Domain"})
        record.apply("reasoning-delta", {"text": "ignored"})

        assert record.pending
        assert record.step_count == 1
        assert record.response == "Example Domain"

    def test_final_replaces_streamed_state(self):
        record = RunRecord(task="title")
        record.apply("text-delta", {"text": "partial"})
        record.apply(
            "final",
            {
                "success": True,
                "response": "Example Domain",
                "steps": [{"stepNumber": 1}],
                "stepCount": 1,
                "serverTarget": "vps",
                "executedCodes": [],
            },
        )
        assert record.success is True
        assert record.response == "Example Domain"
        assert record.server_target == "vps"

    def test_terminal_state_is_final(self):
        record = RunRecord(task="title")
        record.apply("final", {"success": False, "error": {"message": "boom"}})
        record.apply("final", {"success": True, "response": "late"})
        record.apply("text-delta", {"text": "late"})

        assert record.success is False
        assert record.error == "boom"
        assert record.response == ""

    def test_transport_failure(self):
        record = RunRecord(task="title")
        record.fail("Network error")
        assert record.success is False
        assert record.error == "Network error"
