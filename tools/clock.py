# tools/clock.py
from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from outcome import ToolParameterError
from tools.tool_schema import get_str

_FMT = "%Y-%m-%d %H:%M:%S %Z"


def _now(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz) if tz is not None else datetime.now().astimezone()


def current_time(params: Mapping[str, Any]) -> str:
    name = get_str("time", params, "timezone", required=False)
    if not name:
        return f"The current local time is: {_now().strftime(_FMT)}"
    try:
        tz = ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        raise ToolParameterError("time", "timezone", f"Unknown timezone: {name}")
    return f"The current time in {name} is: {_now(tz).strftime(_FMT)}"
