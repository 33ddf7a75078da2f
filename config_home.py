# config_home.py - Lilah home directory, .env loading & runtime settings
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

# ---------- App home ----------

def _resolve_home() -> Path:
    env = os.getenv("LILAH_HOME", "").strip()
    base = Path(os.path.expanduser(env)) if env else (Path.home() / ".lilah")
    try:
        base.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Failed to create Lilah home at '{}': {}", str(base), e)
        base = Path.cwd() / ".lilah"
        base.mkdir(parents=True, exist_ok=True)
    return base

APP_DIR: Path = _resolve_home()
LOG_DIR: Path = APP_DIR / "logs"

# Single-file, app-scoped artifacts
ENV_PATH: Path = APP_DIR / ".env"
MODELS_JSON_PATH: Path = APP_DIR / "models.json"
DB_PATH: Path = APP_DIR / "lilah.db"

# ---------- helpers ----------

def load_env(extra: Optional[Path] = None) -> None:
    """Load ~/.lilah/.env, then ./.env (or `extra`). Existing env vars win."""
    for p in (ENV_PATH, extra or Path.cwd() / ".env"):
        if p.exists():
            load_dotenv(p, override=False)
            logger.debug("Loaded env from '{}'", str(p))


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        val = float(raw)
    except ValueError:
        logger.warning("{}='{}' is not a number; using {}", name, raw, default)
        return default
    if val <= 0:
        logger.warning("{}={} must be positive; using {}", name, val, default)
        return default
    return val


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}

# ---------- Settings ----------

@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    http_timeout: float = 60.0
    tool_timeout: float = 30.0
    db_path: Path = DB_PATH
    models_json: Path = MODELS_JSON_PATH
    strict_tool_calls: bool = False
    log_file: Path = LOG_DIR / "app.log"


def load_settings() -> Settings:
    load_env()
    s = Settings(
        log_level=(os.getenv("LILAH_LOG_LEVEL") or "INFO").strip().upper(),
        http_timeout=_env_float("LILAH_HTTP_TIMEOUT", 60.0),
        tool_timeout=_env_float("LILAH_TOOL_TIMEOUT", 30.0),
        db_path=Path(os.path.expanduser(os.getenv("LILAH_DB_PATH") or str(DB_PATH))),
        models_json=Path(os.path.expanduser(os.getenv("LILAH_MODELS_JSON") or str(MODELS_JSON_PATH))),
        strict_tool_calls=_env_bool("LILAH_STRICT_TOOL_CALLS", False),
    )
    logger.debug("Settings loaded: {}", s)
    return s


__all__ = [
    "APP_DIR",
    "LOG_DIR",
    "ENV_PATH",
    "MODELS_JSON_PATH",
    "DB_PATH",
    "Settings",
    "load_env",
    "load_settings",
]
