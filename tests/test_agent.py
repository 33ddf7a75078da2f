"""tests/test_agent.py

The turn state machine: history window, reply parsing, the single tool round
and failure propagation. The router is a Mock scripted per test.
"""

from __future__ import annotations

import json
from unittest.mock import Mock, patch

import pytest

from agent import HISTORY_WINDOW, AgentOrchestrator, TextReply, ToolCall, TurnState, parse_reply
from models import Message
from outcome import BackendHTTPError, NoActiveConfig, Outcome, ToolNotFound
from prompts import TOOL_CALL_CLOSE, TOOL_CALL_OPEN, tool_failure_prompt


def _router(*replies, active=None):
    router = Mock()
    router.configs.get_active.return_value = active
    router.generate.side_effect = list(replies)
    return router


def _history(n: int):
    return [Message(content=f"m{i}", is_from_user=(i % 2 == 0)) for i in range(n)]


def _call(tool_name, parameters, reasoning="need it"):
    return json.dumps({"reasoning": reasoning, "tool_name": tool_name, "parameters": parameters})


@pytest.fixture
def orchestrator_for(registry):
    made = []

    def build(router, **kwargs):
        orch = AgentOrchestrator(router, registry, **kwargs)
        made.append(orch)
        return orch

    yield build
    for orch in made:
        orch.close()


# ---------------------------------------------------------------------------
# parse_reply
# ---------------------------------------------------------------------------

def test_plain_text_is_unchanged():
    reply = parse_reply("Just an answer.")
    assert reply == TextReply("Just an answer.")


def test_delimited_call():
    text = f"Sure. {TOOL_CALL_OPEN}{_call('time', {})}{TOOL_CALL_CLOSE}"
    reply = parse_reply(text)
    assert isinstance(reply, ToolCall)
    assert reply.request.tool_name == "time"
    assert reply.request.parameters == {}
    assert reply.request.reasoning == "need it"


def test_delimited_call_in_code_fence():
    text = f"{TOOL_CALL_OPEN}\n```json\n{_call('calculator', {'expression': '2+2'})}\n```\n{TOOL_CALL_CLOSE}"
    assert parse_reply(text).request.parameters == {"expression": "2+2"}


def test_brace_span_embedded_in_prose():
    text = f"Let me check the time. {_call('time', {})} One moment."
    reply = parse_reply(text)
    assert isinstance(reply, ToolCall)
    assert reply.request.tool_name == "time"


def test_brace_fallback_can_be_disabled():
    text = f"Let me check. {_call('time', {})}"
    assert parse_reply(text, allow_brace_fallback=False) == TextReply(text)


@pytest.mark.parametrize(
    "text",
    [
        "Use {curly} braces like this.",
        '{"tool_name": "time"}',
        '{"tool_name": "", "parameters": {}}',
        '{"tool_name": "time", "parameters": "now"}',
        '{"parameters": {}}',
        "[1, 2, 3]",
        "} backwards {",
    ],
)
def test_non_calls_are_text(text):
    assert parse_reply(text) == TextReply(text)


def test_malformed_delimited_block_is_text():
    text = f"{TOOL_CALL_OPEN}not json{TOOL_CALL_CLOSE}"
    assert parse_reply(text) == TextReply(text)


# ---------------------------------------------------------------------------
# history window
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("n", [0, 5, 10, 50])
def test_history_window(orchestrator_for, n):
    orch = orchestrator_for(_router())
    built = orch.build_history(_history(n))

    assert len(built) == 1 + min(n, HISTORY_WINDOW)
    assert built[0].is_system
    assert built[0].content == orch.system_prompt
    expected = [f"m{i}" for i in range(max(0, n - HISTORY_WINDOW), n)]
    assert [m.content for m in built[1:]] == expected


def test_system_prompt_lists_tools(orchestrator_for, registry):
    orch = orchestrator_for(_router())
    for name in registry.list_tools():
        assert f"- {name}(" in orch.system_prompt
    assert TOOL_CALL_OPEN in orch.system_prompt


def test_generate_receives_windowed_history(orchestrator_for):
    router = _router(Outcome.success("hello"))
    orch = orchestrator_for(router)

    orch.process_message("hi", _history(50))

    prompt, history, _config = router.generate.call_args[0]
    assert prompt == "hi"
    assert len(history) == 1 + HISTORY_WINDOW


# ---------------------------------------------------------------------------
# turns
# ---------------------------------------------------------------------------

def test_plain_reply_single_generation(orchestrator_for):
    router = _router(Outcome.success("Hello there"))
    turn = orchestrator_for(router).run_turn("hi", [])

    assert turn.outcome.value == "Hello there"
    assert router.generate.call_count == 1
    assert turn.states == [
        TurnState.BUILD_PROMPT, TurnState.AWAIT_MODEL, TurnState.PARSE_TOOL_CALL, TurnState.DONE,
    ]


def test_embedded_time_call_triggers_followup(orchestrator_for):
    first = f"Let me check. {_call('time', {})}"
    router = _router(Outcome.success(first), Outcome.success("It is noon."))
    orch = orchestrator_for(router)

    with patch("tools.clock._now") as now:
        now.return_value.strftime.return_value = "2024-03-01 12:00:00 UTC"
        turn = orch.run_turn("what time is it?", [])

    assert turn.outcome.value == "It is noon."
    assert router.generate.call_count == 2
    followup = router.generate.call_args_list[1][0][0]
    assert followup.startswith('The user asked: "what time is it?"')
    assert "I used the time tool and got this result:\nThe current local time is: 2024-03-01 12:00:00 UTC" in followup
    assert "Do not mention the tool usage explicitly" in followup
    assert turn.tool_outcome.ok
    assert turn.states[-2:] == [TurnState.AWAIT_FOLLOWUP, TurnState.DONE]


def test_unknown_tool_produces_explained_failure(orchestrator_for):
    router = _router(
        Outcome.success(_call("fly_to_moon", {})),
        Outcome.success("Sorry, I can't do that."),
    )
    turn = orchestrator_for(router).run_turn("fly me to the moon", [])

    assert turn.outcome.value == "Sorry, I can't do that."
    assert isinstance(turn.tool_outcome.error, ToolNotFound)
    followup = router.generate.call_args_list[1][0][0]
    assert followup == tool_failure_prompt("fly me to the moon", "Tool 'fly_to_moon' not found")


def test_second_reply_is_never_reparsed(orchestrator_for):
    again = _call("calculator", {"expression": "1+1"})
    router = _router(Outcome.success(_call("calculator", {"expression": "2+2"})), Outcome.success(again))
    turn = orchestrator_for(router).run_turn("sum", [])

    assert turn.outcome.value == again
    assert router.generate.call_count == 2


def test_first_generation_failure(orchestrator_for):
    err = BackendHTTPError("OpenAI", 500, "boom")
    router = _router(Outcome.failure(err))
    turn = orchestrator_for(router).run_turn("hi", [])

    assert turn.state is TurnState.FAILED
    assert turn.outcome.error is err


def test_followup_failure_propagates(orchestrator_for):
    err = BackendHTTPError("Claude", None, "request timed out after 60s")
    router = _router(Outcome.success(_call("calculator", {"expression": "2+2"})), Outcome.failure(err))
    turn = orchestrator_for(router).run_turn("2+2?", [])

    assert turn.outcome.error is err
    assert turn.tool_outcome.ok


def test_no_active_config_fails_turn(orchestrator_for):
    router = _router(Outcome.failure(NoActiveConfig()))
    res = orchestrator_for(router).process_message("hi", [])
    assert isinstance(res.error, NoActiveConfig)


def test_config_is_pinned_for_both_generations(orchestrator_for, openai_config):
    router = _router(
        Outcome.success(_call("calculator", {"expression": "2+2"})),
        Outcome.success("4"),
        active=openai_config,
    )
    orchestrator_for(router).run_turn("2+2?", [])

    configs = [c[0][2] for c in router.generate.call_args_list]
    assert configs == [openai_config, openai_config]
    router.configs.get_active.assert_called_once()


def test_strict_mode_ignores_bare_json(orchestrator_for):
    text = _call("time", {})
    router = _router(Outcome.success(text))
    res = orchestrator_for(router, allow_brace_fallback=False).process_message("hi", [])
    assert res.value == text
    assert router.generate.call_count == 1


def test_unexpected_exception_becomes_failed_turn(orchestrator_for):
    router = _router()
    router.generate.side_effect = RuntimeError("wires crossed")
    turn = orchestrator_for(router).run_turn("hi", [])
    assert turn.state is TurnState.FAILED
    assert "wires crossed" in str(turn.outcome.error)


def test_submit_runs_in_background(orchestrator_for):
    router = _router(Outcome.success("async hello"))
    future = orchestrator_for(router).submit("hi", [])
    assert future.result(timeout=5).value == "async hello"
