# models.py
import json
import os
import re
import uuid
from datetime import datetime, timezone
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List

from loguru import logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Message:
    content: str
    is_from_user: bool
    conversation_id: str = "default"
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)
    # injected system instructions; providers put these in their system slot
    is_system: bool = False

    @classmethod
    def system(cls, content: str, conversation_id: str = "default") -> "Message":
        return cls(content=content, is_from_user=False, conversation_id=conversation_id, is_system=True)

    @property
    def role(self) -> str:
        if self.is_system:
            return "system"
        return "user" if self.is_from_user else "assistant"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "is_from_user": self.is_from_user,
            "conversation_id": self.conversation_id,
            "timestamp": self.timestamp.isoformat(),
            "is_system": self.is_system,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Message":
        ts = d.get("timestamp")
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        elif isinstance(ts, (int, float)):
            ts = datetime.fromtimestamp(ts, tz=timezone.utc)
        return cls(
            content=d.get("content") or "",
            is_from_user=bool(d.get("is_from_user", False)),
            conversation_id=d.get("conversation_id") or "default",
            id=d.get("id") or _new_id(),
            timestamp=ts or _utcnow(),
            is_system=bool(d.get("is_system", False)),
        )


class ModelKind(str, Enum):
    LOCAL = "local"
    REMOTE_OPENAI = "openai"
    REMOTE_GEMINI = "gemini"
    REMOTE_CLAUDE = "claude"
    REMOTE_CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Any) -> "ModelKind":
        if isinstance(value, ModelKind):
            return value
        raw = str(value or "").strip().lower()
        aliases = {
            "anthropic": cls.REMOTE_CLAUDE,
            "google": cls.REMOTE_GEMINI,
            "llama": cls.LOCAL,
            "gguf": cls.LOCAL,
        }
        if raw in aliases:
            return aliases[raw]
        for k in cls:
            if raw in {k.value, k.name.lower()}:
                return k
        raise ValueError(f"Unknown model kind: {value!r}")

    @property
    def is_remote(self) -> bool:
        return self is not ModelKind.LOCAL


DEFAULT_MODEL_NAMES = {
    ModelKind.REMOTE_OPENAI: "gpt-3.5-turbo",
    ModelKind.REMOTE_CLAUDE: "claude-3-5-sonnet-20240620",
}

_id_safe_rx = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass
class ModelConfig:
    id: str
    name: str
    kind: ModelKind
    model_path: Optional[str] = None      # LOCAL only
    model_name: Optional[str] = None      # remote kinds
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None     # name of env var holding api_key
    is_active: bool = False
    max_tokens: int = 512
    temperature: float = 0.8
    top_k: int = 40

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModelConfig":
        name = d.get("name") or ""
        kind = ModelKind.parse(d.get("kind") or d.get("provider") or "openai")
        api_key_env = d.get("api_key_env")
        api_key = d.get("api_key")
        if not api_key and api_key_env:
            api_key = os.getenv(api_key_env)
            if not api_key:
                logger.warning("ModelConfig '{}': env '{}' is not set", name, api_key_env)
        m = cls(
            id=d.get("id") or _id_safe_rx.sub("_", name.strip().lower()) or _new_id(),
            name=name,
            kind=kind,
            model_path=d.get("model_path"),
            model_name=d.get("model_name") or d.get("model"),
            api_endpoint=d.get("api_endpoint") or d.get("endpoint"),
            api_key=api_key,
            api_key_env=api_key_env,
            is_active=bool(d.get("is_active", False)),
            max_tokens=int(d.get("max_tokens", 512)),
            temperature=float(d.get("temperature", 0.8)),
            top_k=int(d.get("top_k", 40)),
        )
        logger.debug(
            "ModelConfig.from_dict → id='{}', name='{}', kind='{}', model='{}', active={}",
            m.id, m.name, m.kind.value, m.model_name or m.model_path, m.is_active,
        )
        return m

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["kind"] = self.kind.value
        if self.api_key_env:
            # key lives in the environment; don't persist it
            d["api_key"] = None
        return d

    def is_remote(self) -> bool:
        return self.kind.is_remote

    def resolved_model(self) -> str:
        resolved = self.model_name or DEFAULT_MODEL_NAMES.get(self.kind) or self.name
        logger.debug("ModelConfig.resolved_model → {}", resolved)
        return resolved

    def resolved_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        return os.getenv(self.api_key_env) if self.api_key_env else None

    def validate(self) -> List[str]:
        problems: List[str] = []
        if not self.name:
            problems.append("name is required")
        if self.kind is ModelKind.LOCAL and not self.model_path:
            problems.append("model_path is required for local models")
        if self.kind in (ModelKind.REMOTE_OPENAI, ModelKind.REMOTE_CLAUDE) and not self.resolved_api_key():
            problems.append(f"api_key is required for {self.kind.value} models")
        if self.max_tokens <= 0:
            problems.append("max_tokens must be positive")
        if not 0.0 <= self.temperature <= 2.0:
            problems.append("temperature must be between 0 and 2")
        if self.top_k < 1:
            problems.append("top_k must be at least 1")
        return problems


def load_models_json(path: str) -> List[ModelConfig]:
    """
    Accepts either:
    {
      "default_model": "claude",
      "models": [ {...}, {...} ]
    }
    or legacy:
    {
      "default_llm_model": "gpt-4o",
      "llm_models": [ {...}, {...} ]
    }
    Exactly one config comes back active when any exist: the default, else
    the first entry flagged is_active, else none.
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        logger.error("Model config not found at path='{}'", str(cfg_path.resolve()))
        raise FileNotFoundError(f"Model config not found at: {cfg_path.resolve()}")

    logger.info("Loading model config from '{}'", str(cfg_path.resolve()))
    try:
        data = json.loads(cfg_path.read_text(encoding="utf-8"))
    except Exception as e:
        logger.exception("Failed to parse model config JSON: {}", e)
        raise

    if isinstance(data, dict) and "models" in data:
        entries = data["models"]
        default_name = data.get("default_model")
    elif isinstance(data, dict) and "llm_models" in data:
        entries = data["llm_models"]
        default_name = data.get("default_llm_model")
    else:
        logger.error("Invalid model config: expected 'models' or 'llm_models' array")
        raise ValueError("Invalid model config: expected 'models' or 'llm_models' array.")

    if not isinstance(entries, list):
        logger.error("Invalid model list in config (entries type = {})", type(entries).__name__)
        raise ValueError("Invalid model list in config.")

    configs: List[ModelConfig] = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning("Skipping invalid model entry (not a dict): {}", entry)
            continue
        try:
            m = ModelConfig.from_dict(entry)
        except (ValueError, TypeError) as e:
            logger.warning("Skipping model entry {}: {}", entry.get("name"), e)
            continue
        if not m.name:
            logger.warning("Skipping model with empty name: {}", entry)
            continue
        configs.append(m)

    active_id: Optional[str] = None
    if default_name:
        for m in configs:
            if default_name in (m.name, m.id):
                active_id = m.id
                break
        else:
            logger.warning("default_model '{}' not in config; ignoring", default_name)
    if active_id is None:
        active_id = next((m.id for m in configs if m.is_active), None)
    for m in configs:
        m.is_active = m.id == active_id

    logger.info("Loaded {} model config(s); active='{}'", len(configs), active_id)
    if not configs:
        logger.warning("No models loaded from '{}'. Check your config.", str(cfg_path.resolve()))
    return configs
