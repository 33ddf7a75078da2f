"""tests/conftest.py

Shared fixtures: in-memory stores, sample configs and a scripted device.
"""

from __future__ import annotations

import os
import tempfile
from unittest.mock import Mock

import pytest

# keep the app home (logs, db, .env) out of the real ~/.lilah
os.environ.setdefault("LILAH_HOME", tempfile.mkdtemp(prefix="lilah-test-"))

from models import Message, ModelConfig, ModelKind
from outcome import Outcome
from stores import ConfigStore, MessageStore
from tools.device import AppInfo, ElementInfo
from tools.registry import ToolRegistry


@pytest.fixture
def config_store():
    store = ConfigStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def message_store():
    store = MessageStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def openai_config() -> ModelConfig:
    return ModelConfig(
        id="gpt",
        name="gpt",
        kind=ModelKind.REMOTE_OPENAI,
        model_name="gpt-4o-mini",
        api_key="sk-test-0000000000",
        is_active=True,
        max_tokens=256,
        temperature=0.5,
    )


@pytest.fixture
def claude_config() -> ModelConfig:
    return ModelConfig(
        id="claude",
        name="claude",
        kind=ModelKind.REMOTE_CLAUDE,
        api_key="anthropic-test-key",
        max_tokens=300,
        temperature=0.7,
        top_k=20,
    )


@pytest.fixture
def local_config(tmp_path) -> ModelConfig:
    weights = tmp_path / "tiny.gguf"
    weights.write_bytes(b"GGUF")
    return ModelConfig(id="tiny", name="tiny", kind=ModelKind.LOCAL, model_path=str(weights))


@pytest.fixture
def sample_history() -> list:
    return [
        Message(content="Hello!", is_from_user=True),
        Message(content="Hi there! How can I help you?", is_from_user=False),
        Message(content="What's 2+2?", is_from_user=True),
        Message(content="4", is_from_user=False),
    ]


@pytest.fixture
def fake_device() -> Mock:
    """A DeviceController whose every action succeeds."""
    device = Mock()
    device.tap.return_value = Outcome.success("Tapped at (10.0, 20.0)")
    device.swipe.return_value = Outcome.success("Swiped")
    device.type_text.return_value = Outcome.success("Typed text")
    device.press_button.return_value = Outcome.success("Pressed button")
    device.open_app.return_value = Outcome.success("Opened app")
    device.list_apps.return_value = Outcome.success([
        AppInfo("Maps", "com.google.maps"),
        AppInfo("Camera", "com.android.camera", is_system=True),
    ])
    device.get_screen_content.return_value = Outcome.success("Screen: Home")
    device.find_element.return_value = Outcome.success([ElementInfo("OK", "confirm button", "[0,0][10,10]")])
    device.make_call.return_value = Outcome.success("Calling 555")
    device.send_sms.return_value = Outcome.success("SMS sent")
    device.set_volume.return_value = Outcome.success("Volume set")
    device.take_screenshot.return_value = Outcome.success("Screenshot saved")
    return device


@pytest.fixture
def registry(fake_device):
    reg = ToolRegistry(fake_device, timeout=5.0)
    yield reg
    reg.close()
