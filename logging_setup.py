# logging_setup.py
from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Optional, Union
from loguru import logger

# -----------------------------
# Globals
# -----------------------------
_SINK_IDS: list[int] = []
_LAST_CFG = {
    "console": True,
    "log_file": None,
    "rotation": "5 MB",
    "retention": 10,  # keep last 10 files
    "enqueue": True,
}
_DEFAULT_FMT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "{level:<7} | "
    "{name}:{line} | "
    "{message}"
)

_VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}

# api keys that slip into a message (Bearer tokens, sk-..., x-api-key values)
_SECRET_RX = re.compile(r"(Bearer\s+|x-api-key['\"]?\s*[:=]\s*['\"]?|\bsk-)[A-Za-z0-9_\-\.]{6,}", re.IGNORECASE)


# -----------------------------
# Helpers
# -----------------------------
def _resolve_level(level: Optional[str]) -> str:
    """Explicit arg, else env LILAH_LOG_LEVEL, else INFO."""
    val = (level or os.getenv("LILAH_LOG_LEVEL") or "INFO").strip().upper()
    val = {"WARN": "WARNING"}.get(val, val)
    return val if val in _VALID_LEVELS else "INFO"


def _normalize_retention(value: Union[int, str]) -> Union[int, str]:
    """int → number of files; "10 files" → 10; anything else is a loguru duration."""
    if isinstance(value, str):
        m = re.match(r"^(\d+)\s*files?$", value.strip().lower())
        if m:
            return int(m.group(1))
    return value


def _coerce_log_file(path_like: Optional[Union[str, Path]]) -> str:
    """None → ~/.lilah/logs/app.log; a directory gets 'app.log' inside."""
    if path_like is None:
        from config_home import LOG_DIR
        log_path = LOG_DIR / "app.log"
    else:
        log_path = Path(path_like)
        if log_path.suffix == "":
            log_path = log_path / "app.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return str(log_path)


def _scrub(record) -> bool:
    record["message"] = _SECRET_RX.sub(lambda m: m.group(1) + "******", record["message"])
    return True


def _remove_existing_sinks():
    global _SINK_IDS
    try:
        for sid in _SINK_IDS:
            logger.remove(sid)
    finally:
        _SINK_IDS = []


def _reconfigure(level: str):
    global _SINK_IDS
    _remove_existing_sinks()
    _LAST_CFG["level"] = level
    # drop loguru's default stderr handler once we own the sinks
    try:
        logger.remove(0)
    except ValueError:
        pass

    if _LAST_CFG.get("console", True):
        _SINK_IDS.append(
            logger.add(
                sys.stderr,
                level=level,
                format=_DEFAULT_FMT,
                filter=_scrub,
                enqueue=_LAST_CFG.get("enqueue", True),
            )
        )

    if _LAST_CFG.get("log_file") is not False:
        _SINK_IDS.append(
            logger.add(
                _coerce_log_file(_LAST_CFG.get("log_file")),
                level=level,
                format=_DEFAULT_FMT,
                filter=_scrub,
                rotation=_LAST_CFG.get("rotation", "5 MB"),
                retention=_normalize_retention(_LAST_CFG.get("retention", 10)),
                encoding="utf-8",
                enqueue=_LAST_CFG.get("enqueue", True),
            )
        )


# -----------------------------
# Public API
# -----------------------------
def configure_logging(
    level: Optional[str] = None,
    *,
    console: bool = True,
    log_file: Union[str, Path, None, bool] = None,
    rotation: str = "5 MB",
    retention: Union[int, str] = 10,
    enqueue: bool = True,
) -> None:
    """
    Configure Loguru once at app start.

    Args:
        level: "DEBUG"/"INFO"/"WARNING"/... (env fallback: LILAH_LOG_LEVEL)
        console: also log to stderr
        log_file: file path or directory; False disables the file sink
        rotation: Loguru rotation policy (e.g., "5 MB", "1 day")
        retention: number of files (int) or duration string (e.g., "7 days")
        enqueue: use multiprocessing-safe queue
    """
    _LAST_CFG.update(
        dict(
            console=console,
            log_file=log_file,
            rotation=rotation,
            retention=retention,
            enqueue=enqueue,
        )
    )
    _reconfigure(_resolve_level(level))


def set_level(level: str) -> None:
    """Change level at runtime."""
    _reconfigure(_resolve_level(level))


def enable_debug() -> None:
    set_level("DEBUG")


def current_config() -> dict:
    """Active base config (without dynamic sink IDs)."""
    return {
        "level": _resolve_level(None),
        **_LAST_CFG,
        "sinks": len(_SINK_IDS),
    }
