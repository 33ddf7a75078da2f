# adapters/anthropic.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from adapters.base import HTTPBackend
from models import Message, ModelConfig
from outcome import BackendHTTPError, EmptyCompletion, Outcome

DEFAULT_ENDPOINT = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"


def to_messages_api(history: Sequence[Message], prompt: str):
    """
    Split history into (system, messages) for the Messages API.
    System-instruction messages are joined into `system`; the rest must
    alternate user/assistant starting with user, so same-role neighbours are
    merged and leading assistant turns dropped.
    """
    system_parts: List[str] = []
    msgs: List[Dict[str, str]] = []
    turns = [(m.role, m.content) for m in history] + [("user", prompt)]
    for role, content in turns:
        if role == "system":
            system_parts.append(content)
            continue
        if not msgs and role != "user":
            continue
        if msgs and msgs[-1]["role"] == role:
            msgs[-1]["content"] += "\n\n" + content
        else:
            msgs.append({"role": role, "content": content})
    system = "\n\n".join(p.strip() for p in system_parts if p.strip()) or None
    return system, msgs


class AnthropicAdapter(HTTPBackend):
    provider = "Claude"

    def _headers(self, config: ModelConfig) -> Dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": config.resolved_api_key() or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def url(self, config: ModelConfig) -> str:
        return (config.api_endpoint or DEFAULT_ENDPOINT).rstrip("/") + "/v1/messages"

    def build_payload(self, prompt: str, history: Sequence[Message], config: ModelConfig) -> Dict[str, Any]:
        system, messages = to_messages_api(history, prompt)
        payload: Dict[str, Any] = {
            "model": config.resolved_model(),
            "max_tokens": config.max_tokens,
            "messages": messages,
        }
        if config.temperature is not None:
            payload["temperature"] = config.temperature
        if config.top_k is not None:
            payload["top_k"] = config.top_k
        if system:
            payload["system"] = system
        return payload

    @staticmethod
    def extract_text(data: Dict[str, Any]) -> Optional[str]:
        for block in data.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
                return block["text"]
        return None

    def generate(self, prompt: str, history: Sequence[Message], config: ModelConfig) -> Outcome:
        if not config.resolved_api_key():
            return Outcome.failure(BackendHTTPError(self.provider, 401, "API key is not configured"))
        payload = self.build_payload(prompt, history, config)
        res = self._post_json(self.url(config), self._headers(config), payload)
        if not res.ok:
            return res
        text = self.extract_text(res.value)
        if text is None:
            logger.warning("anthropic.generate: no text block (stop_reason='{}')", res.value.get("stop_reason"))
            return Outcome.failure(EmptyCompletion(self.provider))
        usage = res.value.get("usage") or {}
        logger.info("anthropic.generate ✓ chars={} in_tokens={} out_tokens={}",
                    len(text), usage.get("input_tokens"), usage.get("output_tokens"))
        return Outcome.success(text)
