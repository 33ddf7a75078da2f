"""tests/test_session_cli.py

ChatSession persistence and the `lilah` command line.
"""

from __future__ import annotations

import json
from unittest.mock import Mock, patch

import pytest

import main as cli
from models import Message
from outcome import BackendHTTPError, Outcome
from session import ChatSession


def _orchestrator(*results):
    orch = Mock()
    orch.process_message.side_effect = list(results)
    return orch


# ---------------------------------------------------------------------------
# ChatSession
# ---------------------------------------------------------------------------

def test_send_persists_both_sides(message_store):
    orch = _orchestrator(Outcome.success("Hi!"))
    session = ChatSession(orch, message_store, conversation_id="c1")

    res = session.send("Hello")

    assert res.value == "Hi!"
    assert [(m.content, m.is_from_user) for m in session.history()] == [("Hello", True), ("Hi!", False)]


def test_send_passes_prior_history_only(message_store):
    message_store.append(Message(content="earlier", is_from_user=True, conversation_id="c1"))
    orch = _orchestrator(Outcome.success("ok"))

    ChatSession(orch, message_store, conversation_id="c1").send("now")

    prompt, history = orch.process_message.call_args[0]
    assert prompt == "now"
    assert [m.content for m in history] == ["earlier"]


def test_failed_turn_keeps_only_user_message(message_store):
    orch = _orchestrator(Outcome.failure(BackendHTTPError("OpenAI", 503, "unavailable")))
    session = ChatSession(orch, message_store)

    res = session.send("Hello")

    assert not res.ok
    assert [m.content for m in session.history()] == ["Hello"]


def test_clear(message_store):
    session = ChatSession(_orchestrator(Outcome.success("a"), Outcome.success("b")), message_store)
    session.send("1")
    session.send("2")
    assert session.clear() == 4
    assert session.history() == []


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@pytest.fixture
def run_cli(tmp_path, capsys):
    db = tmp_path / "cli.db"

    def run(*argv):
        with patch.object(cli, "configure_logging"):
            code = cli.main(["--db", str(db), *argv])
        return code, capsys.readouterr().out

    return run


@pytest.fixture
def models_json(tmp_path):
    path = tmp_path / "models.json"
    path.write_text(json.dumps({
        "default_model": "claude",
        "models": [
            {"name": "claude", "kind": "claude", "api_key": "k1"},
            {"name": "gpt", "kind": "openai", "model_name": "gpt-4o-mini", "api_key": "k2"},
        ],
    }))
    return path


def test_list_tools(run_cli):
    code, out = run_cli("--list-tools")
    assert code == 0
    assert "calculator" in out and "phone_control" in out


def test_import_activate_and_list(run_cli, models_json):
    code, out = run_cli("--models", str(models_json), "--list-models")
    assert code == 0
    assert "Imported 2 model config(s)" in out
    assert "* claude" in out

    code, out = run_cli("--activate", "gpt", "--list-models")
    assert code == 0
    assert "Active model: gpt" in out
    assert "* gpt" in out and "  claude" in out


def test_activate_unknown(run_cli):
    code, out = run_cli("--activate", "nope")
    assert code == 1
    assert out.startswith("[error]")


def test_missing_models_file(run_cli, tmp_path):
    code, out = run_cli("--models", str(tmp_path / "absent.json"))
    assert code == 1
    assert "[error]" in out


def test_query_without_active_model(run_cli):
    code, out = run_cli("--query", "hello")
    assert code == 1
    assert out.strip() == "[error] No active model configuration found"


def test_query_and_clear(run_cli, models_json):
    run_cli("--models", str(models_json))
    reply = {"content": [{"type": "text", "text": "Hello from Claude"}]}
    resp = Mock(status_code=200, text="")
    resp.json.return_value = reply
    with patch("adapters.base.requests.post", return_value=resp):
        code, out = run_cli("--conversation", "t1", "--query", "hi")
    assert code == 0
    assert out.strip() == "Hello from Claude"

    code, out = run_cli("--conversation", "t1", "--clear")
    assert "Cleared 2 message(s) from 't1'" in out


def test_repl_exits_on_eof(run_cli):
    with patch("builtins.input", side_effect=EOFError):
        code, out = run_cli()
    assert code == 0
    assert "bye!" in out


def test_setup_flags_alone_do_not_start_repl(run_cli, models_json):
    with patch("builtins.input") as prompt:
        code, out = run_cli("--models", str(models_json))
        assert code == 0
        code, out = run_cli("--activate", "gpt")
        assert code == 0
    prompt.assert_not_called()
    assert "Active model: gpt" in out


def test_repl_exits_when_stdin_is_unreadable(run_cli):
    with patch("builtins.input", side_effect=OSError("stdin closed")):
        code, out = run_cli()
    assert code == 0
    assert "bye!" in out


def test_default_models_json_seeds_empty_store(run_cli, models_json, monkeypatch):
    monkeypatch.setenv("LILAH_MODELS_JSON", str(models_json))
    code, out = run_cli("--list-models")
    assert code == 0
    assert "* claude" in out and "  gpt" in out


def test_default_models_json_ignored_when_store_has_configs(run_cli, models_json, tmp_path, monkeypatch):
    run_cli("--models", str(models_json))
    run_cli("--activate", "gpt")
    other = tmp_path / "other.json"
    other.write_text(json.dumps({"models": [{"name": "extra", "kind": "openai", "api_key": "k3"}]}))
    monkeypatch.setenv("LILAH_MODELS_JSON", str(other))

    code, out = run_cli("--list-models")

    assert "extra" not in out
    assert "* gpt" in out
