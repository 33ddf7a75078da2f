# tools/device.py - device/automation tool family
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from loguru import logger

from outcome import Outcome, ToolExecutionError, ToolParameterError
from tools.tool_schema import get_choice, get_float, get_int, get_str

BUTTONS = ["back", "home", "recent_apps"]
VOLUME_TYPES = ["media", "ring", "alarm", "notification"]
MAX_LISTED_APPS = 20


@dataclass(frozen=True)
class AppInfo:
    name: str
    package_name: str
    is_system: bool = False


@dataclass(frozen=True)
class ElementInfo:
    text: str
    description: str = ""
    bounds: str = ""


class DeviceController(Protocol):
    """
    Host-side automation collaborator. Every method returns
    Outcome.success(...) or Outcome.failure(<AgentError with a reason>).
    """

    def tap(self, x: float, y: float) -> Outcome: ...
    def swipe(self, start_x: float, start_y: float, end_x: float, end_y: float, duration_ms: int = 500) -> Outcome: ...
    def type_text(self, text: str) -> Outcome: ...
    def press_button(self, button: str) -> Outcome: ...
    def open_app(self, package: str) -> Outcome: ...
    def list_apps(self) -> Outcome: ...                # success(List[AppInfo])
    def get_screen_content(self) -> Outcome: ...
    def find_element(self, text: str) -> Outcome: ...  # success(List[ElementInfo])
    def make_call(self, number: str) -> Outcome: ...
    def send_sms(self, number: str, message: str) -> Outcome: ...
    def set_volume(self, volume_type: str, level: int) -> Outcome: ...
    def take_screenshot(self) -> Outcome: ...


class UnavailableDeviceController:
    """Default on hosts with no automation service: every action fails with a reason."""

    reason = "Device control is not available on this host. Accessibility service may not be enabled."

    def _fail(self, *_: Any, **__: Any) -> Outcome:
        return Outcome.failure(ToolExecutionError("device", self.reason))

    tap = swipe = type_text = press_button = open_app = list_apps = _fail
    get_screen_content = find_element = make_call = send_sms = set_volume = take_screenshot = _fail


class DeviceTools:
    """Binds a DeviceController to the uniform (params) -> text tool contract."""

    def __init__(self, controller: Optional[DeviceController] = None):
        self.controller = controller or UnavailableDeviceController()

    @staticmethod
    def _unwrap(tool: str, res: Outcome) -> Any:
        if not isinstance(res, Outcome):
            raise ToolExecutionError(tool, f"device controller returned {type(res).__name__}, expected Outcome")
        if res.ok:
            return res.value
        err = res.error
        reason = getattr(err, "reason", None) or str(err)
        raise ToolExecutionError(tool, reason)

    # ----- single tools -----

    def tap(self, params: Mapping[str, Any]) -> str:
        x = get_float("tap", params, "x")
        y = get_float("tap", params, "y")
        return str(self._unwrap("tap", self.controller.tap(x, y)))

    def swipe(self, params: Mapping[str, Any]) -> str:
        coords = [get_float("swipe", params, n) for n in ("start_x", "start_y", "end_x", "end_y")]
        duration = get_int("swipe", params, "duration", required=False, default=500)
        if duration <= 0:
            raise ToolParameterError("swipe", "duration", "Invalid 'duration' parameter: must be positive")
        return str(self._unwrap("swipe", self.controller.swipe(*coords, duration_ms=duration)))

    def type_text(self, params: Mapping[str, Any]) -> str:
        text = get_str("type", params, "text")
        return str(self._unwrap("type", self.controller.type_text(text)))

    def press_button(self, params: Mapping[str, Any]) -> str:
        raw = (get_str("press_button", params, "button") or "").strip().lower()
        button = {"recent": "recent_apps", "recents": "recent_apps"}.get(raw, raw)
        if button not in BUTTONS:
            raise ToolParameterError("press_button", "button", f"Invalid 'button' parameter: expected one of {', '.join(BUTTONS)}")
        return str(self._unwrap("press_button", self.controller.press_button(button)))

    def call(self, params: Mapping[str, Any]) -> str:
        number = get_str("call", params, "number")
        return str(self._unwrap("call", self.controller.make_call(number)))

    def sms(self, params: Mapping[str, Any]) -> str:
        number = get_str("sms", params, "number")
        message = get_str("sms", params, "message")
        return str(self._unwrap("sms", self.controller.send_sms(number, message)))

    def set_volume(self, params: Mapping[str, Any]) -> str:
        vtype = get_choice("set_volume", params, "type", VOLUME_TYPES)
        level = get_int("set_volume", params, "level")
        clamped = max(0, min(100, level))
        if clamped != level:
            logger.debug("set_volume: level {} clamped to {}", level, clamped)
        return str(self._unwrap("set_volume", self.controller.set_volume(vtype, clamped)))

    def open_app(self, params: Mapping[str, Any]) -> str:
        package = get_str("open_app", params, "package")
        return str(self._unwrap("open_app", self.controller.open_app(package)))

    def list_apps(self, params: Mapping[str, Any]) -> str:
        apps: List[AppInfo] = self._unwrap("list_apps", self.controller.list_apps()) or []
        shown = sorted(apps, key=lambda a: a.name.lower())[:MAX_LISTED_APPS]
        return "Installed apps:\n" + "\n".join(f"{a.name} ({a.package_name})" for a in shown)

    def get_screen_content(self, params: Mapping[str, Any]) -> str:
        return str(self._unwrap("get_screen_content", self.controller.get_screen_content()))

    def find_element(self, params: Mapping[str, Any]) -> str:
        text = get_str("find_element", params, "text")
        elements: List[ElementInfo] = self._unwrap("find_element", self.controller.find_element(text)) or []
        if not elements:
            return f"No elements found with text: {text}"
        return "Found elements:\n" + "\n".join(
            f"Text: {e.text}, Description: {e.description}, Bounds: {e.bounds}" for e in elements
        )

    def screenshot(self, params: Mapping[str, Any]) -> str:
        return str(self._unwrap("screenshot", self.controller.take_screenshot()))

    # ----- grouped forms -----

    def phone_control(self, params: Mapping[str, Any]) -> str:
        action = (get_str("phone_control", params, "action") or "").strip().lower()
        buttons = {"back": "back", "home": "home", "recent": "recent_apps"}
        if action in buttons:
            return self.press_button({"button": buttons[action]})
        dispatch: Dict[str, Callable[[Mapping[str, Any]], str]] = {
            "tap": self.tap,
            "swipe": self.swipe,
            "type": self.type_text,
            "call": self.call,
            "sms": self.sms,
            "volume": self.set_volume,
        }
        fn = dispatch.get(action)
        if fn is None:
            raise ToolParameterError("phone_control", "action", f"Unknown action: {action}")
        return fn(params)

    def app_control(self, params: Mapping[str, Any]) -> str:
        action = (get_str("app_control", params, "action") or "").strip().lower()
        dispatch: Dict[str, Callable[[Mapping[str, Any]], str]] = {
            "open": self.open_app,
            "list": self.list_apps,
            "screen_content": self.get_screen_content,
            "find": self.find_element,
        }
        fn = dispatch.get(action)
        if fn is None:
            raise ToolParameterError("app_control", "action", f"Unknown action: {action}")
        return fn(params)

    def as_tools(self) -> Dict[str, Callable[[Mapping[str, Any]], str]]:
        return {
            "tap": self.tap,
            "swipe": self.swipe,
            "type": self.type_text,
            "press_button": self.press_button,
            "call": self.call,
            "sms": self.sms,
            "set_volume": self.set_volume,
            "open_app": self.open_app,
            "list_apps": self.list_apps,
            "get_screen_content": self.get_screen_content,
            "find_element": self.find_element,
            "screenshot": self.screenshot,
            "phone_control": self.phone_control,
            "app_control": self.app_control,
        }
