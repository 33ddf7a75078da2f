# stores.py - SQLite-backed message & model-config stores
from __future__ import annotations

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union

from loguru import logger

from models import Message, ModelConfig, ModelKind


def _connect(db_path: Union[str, Path]) -> sqlite3.Connection:
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(str(db_path), check_same_thread=False, isolation_level=None)
    con.row_factory = sqlite3.Row
    return con


class _SqliteStore:
    """One connection per store; every statement runs under the store lock."""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._con = _connect(db_path)
        self._lock = threading.RLock()
        with self._lock:
            self._init_schema()

    def _init_schema(self) -> None:  # pragma: no cover - overridden
        raise NotImplementedError

    def close(self) -> None:
        with self._lock:
            self._con.close()


# =============================================================================
# Messages
# =============================================================================

class MessageStore(_SqliteStore):
    def _init_schema(self) -> None:
        self._con.execute(
            """
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                content TEXT NOT NULL,
                is_from_user INTEGER NOT NULL,     -- 0/1
                is_system INTEGER DEFAULT 0,       -- 0/1
                ts TEXT NOT NULL                   -- ISO-8601, UTC
            )
            """
        )
        self._con.execute("CREATE INDEX IF NOT EXISTS idx_messages_conv_ts ON messages(conversation_id, ts ASC)")

    def append(self, message: Message) -> Message:
        with self._lock:
            self._con.execute(
                "INSERT INTO messages(id, conversation_id, content, is_from_user, is_system, ts) VALUES (?,?,?,?,?,?)",
                (
                    message.id, message.conversation_id, message.content,
                    1 if message.is_from_user else 0, 1 if message.is_system else 0,
                    message.timestamp.isoformat(),
                ),
            )
        logger.debug("MessageStore.append → conv='{}' user={} chars={}",
                     message.conversation_id, message.is_from_user, len(message.content))
        return message

    def list_by_conversation(self, conversation_id: str) -> List[Message]:
        with self._lock:
            rows = self._con.execute(
                "SELECT * FROM messages WHERE conversation_id=? ORDER BY ts ASC, rowid ASC",
                (conversation_id,),
            ).fetchall()
        return [
            Message(
                id=r["id"],
                content=r["content"],
                is_from_user=bool(r["is_from_user"]),
                conversation_id=r["conversation_id"],
                timestamp=datetime.fromisoformat(r["ts"]),
                is_system=bool(r["is_system"]),
            )
            for r in rows
        ]

    def delete_conversation(self, conversation_id: str) -> int:
        with self._lock:
            cur = self._con.execute("DELETE FROM messages WHERE conversation_id=?", (conversation_id,))
        logger.info("Deleted {} message(s) from conversation '{}'", cur.rowcount, conversation_id)
        return cur.rowcount

    def delete_all(self) -> int:
        with self._lock:
            cur = self._con.execute("DELETE FROM messages")
        logger.info("Deleted all messages ({})", cur.rowcount)
        return cur.rowcount


# =============================================================================
# Model configs
# =============================================================================

_CONFIG_COLUMNS = (
    "id", "name", "kind", "model_path", "model_name", "api_endpoint", "api_key",
    "api_key_env", "is_active", "max_tokens", "temperature", "top_k",
)


class ConfigStore(_SqliteStore):
    """
    Invariant: at most one row has is_active = 1. Activation and active upserts
    are a single transaction, never deactivate-then-activate in two steps.
    """

    def _init_schema(self) -> None:
        self._con.execute(
            """
            CREATE TABLE IF NOT EXISTS model_configs (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                kind TEXT NOT NULL,
                model_path TEXT,
                model_name TEXT,
                api_endpoint TEXT,
                api_key TEXT,
                api_key_env TEXT,
                is_active INTEGER NOT NULL DEFAULT 0,
                max_tokens INTEGER NOT NULL DEFAULT 512,
                temperature REAL NOT NULL DEFAULT 0.8,
                top_k INTEGER NOT NULL DEFAULT 40
            )
            """
        )

    def _row_to_config(self, r: sqlite3.Row) -> ModelConfig:
        d = dict(r)
        d["is_active"] = bool(d["is_active"])
        d["kind"] = ModelKind.parse(d["kind"])
        return ModelConfig(**d)

    def list(self) -> List[ModelConfig]:
        with self._lock:
            rows = self._con.execute("SELECT * FROM model_configs ORDER BY name ASC").fetchall()
        return [self._row_to_config(r) for r in rows]

    def get(self, config_id: str) -> Optional[ModelConfig]:
        with self._lock:
            r = self._con.execute("SELECT * FROM model_configs WHERE id=?", (config_id,)).fetchone()
        return self._row_to_config(r) if r else None

    def find(self, name_or_id: str) -> Optional[ModelConfig]:
        with self._lock:
            r = self._con.execute(
                "SELECT * FROM model_configs WHERE id=? OR name=? ORDER BY (id=?) DESC LIMIT 1",
                (name_or_id, name_or_id, name_or_id),
            ).fetchone()
        return self._row_to_config(r) if r else None

    def get_active(self) -> Optional[ModelConfig]:
        with self._lock:
            r = self._con.execute("SELECT * FROM model_configs WHERE is_active=1 LIMIT 1").fetchone()
        return self._row_to_config(r) if r else None

    def upsert(self, config: ModelConfig) -> ModelConfig:
        d = config.to_dict()
        values = tuple(int(d[c]) if c == "is_active" else d[c] for c in _CONFIG_COLUMNS)
        placeholders = ",".join("?" for _ in _CONFIG_COLUMNS)
        with self._lock:
            self._con.execute("BEGIN IMMEDIATE")
            try:
                if config.is_active:
                    self._con.execute("UPDATE model_configs SET is_active=0 WHERE id<>?", (config.id,))
                self._con.execute(
                    f"INSERT OR REPLACE INTO model_configs({','.join(_CONFIG_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                self._con.execute("COMMIT")
            except sqlite3.Error:
                self._con.execute("ROLLBACK")
                raise
        logger.info("ConfigStore.upsert → id='{}' kind='{}' active={}", config.id, config.kind.value, config.is_active)
        return config

    def import_models(self, configs: Iterable[ModelConfig]) -> int:
        """Upsert each config; problems reported by validate() are logged and the config is kept."""
        n = 0
        for c in configs:
            problems = c.validate()
            if problems:
                logger.warning("ConfigStore.import_models: '{}' has problems: {}", c.name, "; ".join(problems))
            self.upsert(c)
            n += 1
        return n

    def delete(self, config_id: str) -> bool:
        with self._lock:
            cur = self._con.execute("DELETE FROM model_configs WHERE id=?", (config_id,))
        logger.info("ConfigStore.delete → id='{}' removed={}", config_id, cur.rowcount)
        return cur.rowcount > 0

    def set_active_exclusive(self, config_id: str) -> bool:
        """Activate one config and deactivate all others in one statement. Unknown id changes nothing."""
        with self._lock:
            self._con.execute("BEGIN IMMEDIATE")
            try:
                exists = self._con.execute("SELECT 1 FROM model_configs WHERE id=?", (config_id,)).fetchone()
                if not exists:
                    self._con.execute("ROLLBACK")
                    logger.warning("ConfigStore.set_active_exclusive: unknown id '{}'", config_id)
                    return False
                self._con.execute(
                    "UPDATE model_configs SET is_active = CASE WHEN id=? THEN 1 ELSE 0 END",
                    (config_id,),
                )
                self._con.execute("COMMIT")
            except sqlite3.Error:
                self._con.execute("ROLLBACK")
                raise
        logger.info("ConfigStore: active config → '{}'", config_id)
        return True
