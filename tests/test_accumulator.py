"""Tests for RunAccumulator, the state machine behind both run modes."""

import pytest

from eburon.agent.events import AgentEvent, AgentEventType
from eburon.exceptions import OrchestratorFault
from eburon.run.accumulator import RunAccumulator
from eburon.run.models import TextItem, ToolCallItem, ToolResultItem
from eburon.schema import Usage

E = AgentEventType


def ev(type_, **kwargs) -> AgentEvent:
    return AgentEvent(type=type_, **kwargs)


def usage(tokens: int) -> Usage:
    return Usage(input_tokens=tokens, output_tokens=tokens, total_tokens=2 * tokens)


def apply_all(acc: RunAccumulator, events):
    frames = []
    for event in events:
        frames.extend(acc.apply(event))
    return frames


def script_step(call_id="call-1", code="return await page.title();", result="Example Domain"):
    return [
        ev(E.START_STEP),
        ev(E.TEXT_DELTA, text="Opening "),
        ev(E.TEXT_DELTA, text="the page."),
        ev(E.TOOL_CALL, tool_call_id=call_id, tool_name="playwright_execute", input={"code": code}),
        ev(E.TOOL_RESULT, tool_call_id=call_id, tool_name="playwright_execute", result=result),
        ev(E.FINISH_STEP, finish_reason="tool-calls", usage=usage(5)),
    ]


class TestStepRecord:
    def test_text_deltas_merge_into_one_item(self):
        acc = RunAccumulator("vps")
        apply_all(acc, script_step())

        step = acc.steps[0]
        assert step.step_number == 1
        assert step.finish_reason == "tool-calls"
        assert isinstance(step.content[0], TextItem)
        assert step.content[0].text == "Opening the page."
        assert isinstance(step.content[1], ToolCallItem)
        assert step.content[1].code == "return await page.title();"
        assert isinstance(step.content[2], ToolResultItem)
        assert step.content[2].success is True

    def test_response_is_concatenation_of_every_fragment(self):
        acc = RunAccumulator("vps")
        apply_all(acc, script_step())
        apply_all(
            acc,
            [
                ev(E.START_STEP),
                ev(E.TEXT_DELTA, text=" The title is "),
                ev(E.TEXT_DELTA, text="Example Domain."),
                ev(E.FINISH_STEP, finish_reason="stop"),
            ],
        )
        result = acc.finalize()
        assert result.response == "Opening the page. The title is Example Domain."

    def test_step_numbers_are_contiguous(self):
        acc = RunAccumulator("vps")
        for i in range(3):
            apply_all(acc, script_step(call_id=f"call-{i}"))
        assert [s.step_number for s in acc.steps] == [1, 2, 3]

    def test_every_call_gets_exactly_one_result(self):
        acc = RunAccumulator("vps")
        apply_all(acc, script_step())
        frames = acc.apply(
            ev(E.TOOL_RESULT, tool_call_id="call-1", tool_name="playwright_execute", result="again")
        )
        assert frames == []
        results = [c for c in acc.steps[0].content if isinstance(c, ToolResultItem)]
        assert len(results) == 1

    def test_result_for_unknown_call_is_a_fault(self):
        acc = RunAccumulator("vps")
        acc.apply(ev(E.START_STEP))
        with pytest.raises(OrchestratorFault):
            acc.apply(ev(E.TOOL_RESULT, tool_call_id="ghost", tool_name="playwright_execute"))

    def test_duplicate_call_id_is_a_fault(self):
        acc = RunAccumulator("vps")
        apply_all(acc, script_step())
        with pytest.raises(OrchestratorFault):
            acc.apply(
                ev(E.TOOL_CALL, tool_call_id="call-1", tool_name="computer_screenshot", input={})
            )

    def test_tool_error_is_recorded_and_run_continues(self):
        acc = RunAccumulator("vps")
        apply_all(
            acc,
            [
                ev(E.START_STEP),
                ev(E.TOOL_CALL, tool_call_id="c1", tool_name="playwright_execute", input={"code": "}{"}),
                ev(E.TOOL_ERROR, tool_call_id="c1", tool_name="playwright_execute", error="SyntaxError"),
                ev(E.FINISH_STEP, finish_reason="tool-calls"),
            ],
        )
        apply_all(acc, script_step(call_id="c2"))
        result = acc.finalize()

        failed = result.steps[0].content[1]
        assert failed.success is False
        assert failed.error == "SyntaxError"
        assert result.success is True
        assert result.step_count == 2
        assert [c.success for c in result.executed_codes] == [False, True]


class TestImplicitStep:
    def test_content_before_start_step_opens_step_one(self):
        acc = RunAccumulator("vps")
        frames = acc.apply(ev(E.TEXT_DELTA, text="early"))
        assert [name for name, _ in frames] == ["start-step", "text-delta"]
        assert frames[1][1]["stepNumber"] == 1

    def test_late_start_step_is_adopted(self):
        acc = RunAccumulator("vps")
        acc.apply(ev(E.TEXT_DELTA, text="early"))
        assert acc.apply(ev(E.START_STEP)) == []
        acc.apply(ev(E.FINISH_STEP, finish_reason="stop"))
        assert len(acc.steps) == 1

    def test_start_step_without_finish_closes_previous(self):
        acc = RunAccumulator("vps")
        acc.apply(ev(E.START_STEP))
        frames = acc.apply(ev(E.START_STEP))
        assert [name for name, _ in frames] == ["finish-step", "start-step"]
        assert acc.steps[0].finish_reason is None
        assert acc.steps[1].step_number == 2


class TestFrames:
    def test_frame_sequence_for_a_tool_step(self):
        acc = RunAccumulator("vps")
        frames = apply_all(acc, script_step())
        assert [name for name, _ in frames] == [
            "start-step",
            "text-delta",
            "text-delta",
            "tool-call",
            "tool-result",
            "finish-step",
        ]
        text_ids = {data["id"] for name, data in frames if name == "text-delta"}
        assert text_ids == {"text-1-0"}
        assert frames[3][1] == {
            "toolCallId": "call-1",
            "toolName": "playwright_execute",
            "input": {"code": "return await page.title();"},
            "stepNumber": 1,
        }
        assert frames[-1][1]["usage"] == {"inputTokens": 5, "outputTokens": 5, "totalTokens": 10}

    def test_tool_error_frame(self):
        acc = RunAccumulator("vps")
        frames = apply_all(
            acc,
            [
                ev(E.TOOL_CALL, tool_call_id="c1", tool_name="computer_scroll", input={}),
                ev(E.TOOL_ERROR, tool_call_id="c1", tool_name="computer_scroll", error="bad delta"),
            ],
        )
        name, data = frames[-1]
        assert name == "tool-error"
        assert data["success"] is False
        assert data["error"]["message"] == "bad delta"

    def test_passthrough_is_forwarded(self):
        acc = RunAccumulator("vps")
        frames = acc.apply(ev(E.PASSTHROUGH, name="reasoning-delta", payload={"text": "hmm"}))
        assert frames == [("reasoning-delta", {"text": "hmm"})]

    def test_nothing_after_finalize(self):
        acc = RunAccumulator("vps")
        acc.finalize()
        with pytest.raises(OrchestratorFault):
            acc.apply(ev(E.TEXT_DELTA, text="late"))


class TestFinalize:
    def test_usage_sums_steps_unless_finish_reports_total(self):
        acc = RunAccumulator("vps")
        apply_all(acc, script_step(call_id="a"))
        apply_all(acc, script_step(call_id="b"))
        assert acc.usage.total_tokens == 20

        acc.apply(ev(E.FINISH, finish_reason="stop", usage=usage(50)))
        result = acc.finalize()
        assert result.usage.total_tokens == 100
        assert result.finish_reason == "stop"

    def test_error_closes_open_step(self):
        acc = RunAccumulator("cloud-eu")
        acc.apply(ev(E.START_STEP))
        acc.apply(ev(E.TOOL_CALL, tool_call_id="c1", tool_name="playwright_execute", input={"code": "x"}))
        result = acc.finalize(error="model backend unreachable")

        assert result.success is False
        assert result.error == "model backend unreachable"
        assert result.finish_reason == "error"
        assert result.steps[0].finish_reason == "error"
        assert result.executed_codes[0].success is False
        assert result.executed_codes[0].error == "Tool call did not complete"

    def test_payload_shape(self):
        acc = RunAccumulator("vps")
        apply_all(acc, script_step())
        payload = acc.finalize().to_payload()

        assert set(payload) == {
            "success",
            "response",
            "executedCodes",
            "steps",
            "stepCount",
            "usage",
            "serverTarget",
            "finishReason",
        }
        assert payload["executedCodes"] == [
            {
                "code": "return await page.title();",
                "success": True,
                "result": "Example Domain",
                "error": None,
            }
        ]
        step = payload["steps"][0]
        assert step["stepNumber"] == 1
        assert step["content"][1]["type"] == "tool-call"
        assert step["content"][1]["toolName"] == "playwright_execute"
