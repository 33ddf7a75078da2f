"""tests/test_router.py

Backend selection, the cached embedded handle and activation.
"""

from __future__ import annotations

import threading
from unittest.mock import Mock, patch

from models import ModelConfig, ModelKind
from outcome import BackendInitError, BackendUnimplemented, NoActiveConfig, Outcome
from router import BackendRouter


def _loader(text="from local"):
    handle = Mock(return_value={"choices": [{"text": text}]})
    return Mock(return_value=handle), handle


def test_no_active_config(config_store):
    res = BackendRouter(config_store).generate("hi", [])
    assert isinstance(res.error, NoActiveConfig)


def test_gemini_and_custom_are_unimplemented(config_store):
    router = BackendRouter(config_store)
    for kind, label in ((ModelKind.REMOTE_GEMINI, "Gemini"), (ModelKind.REMOTE_CUSTOM, "Custom API")):
        cfg = ModelConfig(id=kind.value, name=kind.value, kind=kind, api_key="k", is_active=True)
        config_store.upsert(cfg)
        with patch("adapters.base.requests.post") as post:
            res = router.generate("hi", [])
        post.assert_not_called()
        assert isinstance(res.error, BackendUnimplemented)
        assert str(res.error) == f"{label} integration not yet implemented"


def test_remote_dispatch_uses_active_config(config_store, openai_config):
    config_store.upsert(openai_config)
    openai = Mock()
    openai.generate.return_value = Outcome.success("remote")
    router = BackendRouter(config_store, remote={ModelKind.REMOTE_OPENAI: openai})

    res = router.generate("hi", [])

    assert res.value == "remote"
    called_cfg = openai.generate.call_args[0][2]
    assert called_cfg.id == "gpt"


def test_explicit_config_overrides_store(config_store, openai_config, claude_config):
    config_store.upsert(openai_config)
    claude = Mock()
    claude.generate.return_value = Outcome.success("claude")
    router = BackendRouter(config_store, remote={ModelKind.REMOTE_CLAUDE: claude, ModelKind.REMOTE_OPENAI: Mock()})
    assert router.generate("hi", [], claude_config).value == "claude"


def test_local_handle_is_cached(config_store, local_config):
    local_config.is_active = True
    config_store.upsert(local_config)
    loader, handle = _loader()
    router = BackendRouter(config_store, local_loader=loader)

    assert router.generate("one", []).value == "from local"
    assert router.generate("two", []).value == "from local"
    assert loader.call_count == 1
    assert handle.call_count == 2
    assert router.local_loaded


def test_invalidate_releases_handle(config_store, local_config):
    local_config.is_active = True
    config_store.upsert(local_config)
    loader, handle = _loader()
    router = BackendRouter(config_store, local_loader=loader)

    router.generate("one", [])
    router.invalidate()
    assert not router.local_loaded
    handle.close.assert_called_once()

    router.generate("two", [])
    assert loader.call_count == 2


def test_local_config_change_reloads(config_store, local_config, tmp_path):
    local_config.is_active = True
    config_store.upsert(local_config)
    loader, _ = _loader()
    router = BackendRouter(config_store, local_loader=loader)
    router.generate("one", [])

    other = tmp_path / "other.gguf"
    other.write_bytes(b"GGUF")
    local_config.model_path = str(other)
    router.save_config(local_config)
    router.generate("two", [])

    assert loader.call_count == 2
    assert loader.call_args[0][0] == str(other)


def test_local_init_failure_is_not_cached(config_store, local_config):
    local_config.is_active = True
    config_store.upsert(local_config)
    router = BackendRouter(config_store, local_loader=Mock(side_effect=RuntimeError("bad gguf")))

    res = router.generate("hi", [])

    assert isinstance(res.error, BackendInitError)
    assert not router.local_loaded


def test_activate_switches_and_invalidates(config_store, local_config, openai_config):
    local_config.is_active = True
    config_store.upsert(local_config)
    openai_config.is_active = False
    config_store.upsert(openai_config)
    loader, _ = _loader()
    router = BackendRouter(config_store, local_loader=loader)
    router.generate("warm up", [])

    res = router.activate("gpt")

    assert res.ok and res.value.id == "gpt"
    assert config_store.get_active().id == "gpt"
    assert not router.local_loaded


def test_saving_another_active_config_releases_local_handle(config_store, local_config, openai_config):
    local_config.is_active = True
    config_store.upsert(local_config)
    loader, handle = _loader()
    router = BackendRouter(config_store, local_loader=loader)
    router.generate("warm up", [])
    assert router.local_loaded

    openai_config.is_active = True
    router.save_config(openai_config)

    assert config_store.get_active().id == "gpt"
    assert not router.local_loaded
    handle.close.assert_called_once()


def test_saving_inactive_unrelated_config_keeps_local_handle(config_store, local_config, openai_config):
    local_config.is_active = True
    config_store.upsert(local_config)
    router = BackendRouter(config_store, local_loader=_loader()[0])
    router.generate("warm up", [])

    openai_config.is_active = False
    router.save_config(openai_config)

    assert config_store.get_active().id == "tiny"
    assert router.local_loaded


def test_deleting_cached_config_releases_local_handle(config_store, local_config):
    local_config.is_active = True
    config_store.upsert(local_config)
    router = BackendRouter(config_store, local_loader=_loader()[0])
    router.generate("warm up", [])

    assert router.delete_config("tiny")
    assert not router.local_loaded


def test_activate_unknown_id(config_store, openai_config):
    config_store.upsert(openai_config)
    res = BackendRouter(config_store).activate("nope")
    assert isinstance(res.error, NoActiveConfig)
    assert config_store.get_active().id == "gpt"


def test_invalidate_waits_for_inflight_local_generation(config_store, local_config):
    local_config.is_active = True
    config_store.upsert(local_config)
    started, release = threading.Event(), threading.Event()

    def slow_handle(*args, **kwargs):
        started.set()
        release.wait(2)
        return {"choices": [{"text": "finished"}]}

    router = BackendRouter(config_store, local_loader=Mock(return_value=Mock(side_effect=slow_handle)))
    results = []
    worker = threading.Thread(target=lambda: results.append(router.generate("hi", [])))
    worker.start()
    assert started.wait(2)

    invalidator = threading.Thread(target=router.invalidate)
    invalidator.start()
    invalidator.join(0.1)
    assert invalidator.is_alive()

    release.set()
    worker.join(2)
    invalidator.join(2)
    assert results[0].value == "finished"
    assert not router.local_loaded
