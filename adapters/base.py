# adapters/base.py
from __future__ import annotations

import time
from typing import Any, Dict, List, Sequence

import requests
from loguru import logger

from models import Message, ModelConfig
from outcome import BackendHTTPError, Outcome


class Backend:
    """A text-generation capability: (prompt, history, config) -> Outcome[str]."""

    provider = "backend"

    def generate(self, prompt: str, history: Sequence[Message], config: ModelConfig) -> Outcome:
        raise NotImplementedError

    def close(self) -> None:
        pass


def chat_messages(history: Sequence[Message], prompt: str) -> List[Dict[str, str]]:
    """[{role, content}] for history + the current prompt as the final user turn."""
    msgs = [{"role": m.role, "content": m.content} for m in history]
    msgs.append({"role": "user", "content": prompt})
    return msgs


class HTTPBackend(Backend):
    def __init__(self, timeout: float = 60.0, session: Any = None):
        self.timeout = timeout
        # requests module or a requests.Session; both expose .post
        self.http = session or requests

    def _post_json(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Outcome:
        logger.info("{}.post → url='{}' model='{}'", self.provider, url, payload.get("model"))
        t0 = time.time()
        try:
            resp = self.http.post(url, headers=headers, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            logger.error("{}.post ✗ timeout after {}s: {}", self.provider, self.timeout, e)
            return Outcome.failure(BackendHTTPError(self.provider, None, f"request timed out after {self.timeout:.0f}s"))
        except requests.RequestException as e:
            logger.error("{}.post ✗ transport error: {}", self.provider, e)
            return Outcome.failure(BackendHTTPError(self.provider, None, str(e)))
        dt = (time.time() - t0) * 1000.0
        logger.info("{}.post ← status={} time_ms≈{:.0f}", self.provider, resp.status_code, dt)

        if not 200 <= resp.status_code < 300:
            body = (getattr(resp, "text", "") or "")[:500]
            reason = getattr(resp, "reason", "") or ""
            if resp.status_code == 401:
                logger.error("{}.post: 401 Unauthorized", self.provider)
            else:
                logger.error("{}.post: HTTP {} {}", self.provider, resp.status_code, body)
            return Outcome.failure(BackendHTTPError(self.provider, resp.status_code, body or reason))
        try:
            data = resp.json()
        except ValueError as e:
            logger.error("{}.post: non-JSON body: {}", self.provider, e)
            return Outcome.failure(BackendHTTPError(self.provider, resp.status_code, f"invalid JSON response: {e}"))
        if not isinstance(data, dict):
            return Outcome.failure(BackendHTTPError(self.provider, resp.status_code, "unexpected response shape"))
        return Outcome.success(data)
