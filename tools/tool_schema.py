# tools/tool_schema.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from outcome import ToolParameterError

# A parameter value as the model sends it: one tagged scalar.
ParamValue = Union[str, int, float, bool]

# ---------- Canonical tool specs ----------
# Keep in sync with the tools registered in tools/registry.py. Rendered into
# the system prompt and the CLI tool listing.
# params: name -> (type, required, description)
TOOL_SPECS: Dict[str, Dict[str, Any]] = {
    "calculator": {
        "description": "Evaluate a simple expression: a op b [op c ...] with one of + - * /, or sqrt(x), sin(x), cos(x) (degrees).",
        "params": {"expression": ("string", True, "e.g. '2+2' or 'sqrt(9)'")},
    },
    "time": {
        "description": "Current date and time, optionally in an IANA timezone.",
        "params": {"timezone": ("string", False, "e.g. 'Europe/Paris'; local time when omitted")},
    },
    "web_search": {
        "description": "Search the web.",
        "params": {"query": ("string", True, "search query")},
    },
    "weather": {
        "description": "Current weather for a location.",
        "params": {"location": ("string", True, "city or place name")},
    },
    # Device control
    "tap": {
        "description": "Tap the screen at a coordinate.",
        "params": {"x": ("number", True, "X coordinate"), "y": ("number", True, "Y coordinate")},
    },
    "swipe": {
        "description": "Swipe from one coordinate to another.",
        "params": {
            "start_x": ("number", True, "starting X"),
            "start_y": ("number", True, "starting Y"),
            "end_x": ("number", True, "ending X"),
            "end_y": ("number", True, "ending Y"),
            "duration": ("integer", False, "milliseconds, default 500"),
        },
    },
    "type": {
        "description": "Type text into the focused input field.",
        "params": {"text": ("string", True, "text to type")},
    },
    "press_button": {
        "description": "Press a system button.",
        "params": {"button": ("string", True, "one of back, home, recent_apps")},
    },
    "call": {
        "description": "Start a phone call.",
        "params": {"number": ("string", True, "phone number")},
    },
    "sms": {
        "description": "Open the SMS composer with a number and message.",
        "params": {"number": ("string", True, "phone number"), "message": ("string", True, "message body")},
    },
    "set_volume": {
        "description": "Set a volume stream level.",
        "params": {
            "type": ("string", True, "one of media, ring, alarm, notification"),
            "level": ("integer", True, "0-100"),
        },
    },
    "open_app": {
        "description": "Open an installed app by package name.",
        "params": {"package": ("string", True, "e.g. com.android.settings")},
    },
    "list_apps": {
        "description": "List installed apps.",
        "params": {},
    },
    "get_screen_content": {
        "description": "Describe the current screen (UI hierarchy and visible text).",
        "params": {},
    },
    "find_element": {
        "description": "Find UI elements by visible text.",
        "params": {"text": ("string", True, "text to look for")},
    },
    "screenshot": {
        "description": "Capture the screen and return where the image was saved.",
        "params": {},
    },
    # Grouped forms kept for prompts written against the older catalogue
    "phone_control": {
        "description": "Device action by name: tap, swipe, type, back, home, recent, call, sms, volume.",
        "params": {"action": ("string", True, "action name; other parameters as for the single tools")},
    },
    "app_control": {
        "description": "App action by name: open, list, screen_content, find.",
        "params": {"action": ("string", True, "action name; other parameters as for the single tools")},
    },
}


def render_tool_catalogue(names: Optional[List[str]] = None) -> str:
    """One line per tool: name(param: type[?]) - description."""
    lines = []
    for name in names or sorted(TOOL_SPECS):
        spec = TOOL_SPECS.get(name)
        if not spec:
            continue
        params = ", ".join(
            f"{p}: {typ}{'' if req else '?'}" for p, (typ, req, _desc) in spec["params"].items()
        )
        lines.append(f"- {name}({params}) - {spec['description']}")
    return "\n".join(lines)


# ---------- Typed extraction ----------

_MISSING = object()


def _raw(tool: str, params: Mapping[str, Any], name: str, required: bool) -> Any:
    val = params.get(name, _MISSING) if params else _MISSING
    if val is _MISSING or val is None or (isinstance(val, str) and not val.strip()):
        if required:
            raise ToolParameterError(tool, name, f"Missing '{name}' parameter")
        return _MISSING
    if isinstance(val, (dict, list, tuple, set)):
        raise ToolParameterError(tool, name, f"Invalid '{name}' parameter: expected a scalar value")
    return val


def get_str(tool: str, params: Mapping[str, Any], name: str, required: bool = True, default: Optional[str] = None) -> Optional[str]:
    val = _raw(tool, params, name, required)
    if val is _MISSING:
        return default
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val)


def get_float(tool: str, params: Mapping[str, Any], name: str, required: bool = True, default: Optional[float] = None) -> Optional[float]:
    val = _raw(tool, params, name, required)
    if val is _MISSING:
        return default
    if isinstance(val, bool):
        raise ToolParameterError(tool, name, f"Invalid '{name}' parameter: expected a number")
    try:
        return float(val)
    except (TypeError, ValueError):
        raise ToolParameterError(tool, name, f"Invalid '{name}' parameter: expected a number, got {val!r}")


def get_int(tool: str, params: Mapping[str, Any], name: str, required: bool = True, default: Optional[int] = None) -> Optional[int]:
    val = _raw(tool, params, name, required)
    if val is _MISSING:
        return default
    if isinstance(val, bool):
        raise ToolParameterError(tool, name, f"Invalid '{name}' parameter: expected an integer")
    if isinstance(val, int):
        return val
    if isinstance(val, float) and val.is_integer():
        return int(val)
    try:
        return int(str(val).strip())
    except ValueError:
        raise ToolParameterError(tool, name, f"Invalid '{name}' parameter: expected an integer, got {val!r}")


def get_choice(tool: str, params: Mapping[str, Any], name: str, choices: List[str]) -> str:
    val = (get_str(tool, params, name) or "").strip().lower()
    if val not in choices:
        raise ToolParameterError(tool, name, f"Invalid '{name}' parameter: expected one of {', '.join(choices)}, got {val!r}")
    return val
