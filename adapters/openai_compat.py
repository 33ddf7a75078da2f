# adapters/openai_compat.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from adapters.base import HTTPBackend, chat_messages
from models import Message, ModelConfig
from outcome import BackendHTTPError, EmptyCompletion, Outcome

DEFAULT_ENDPOINT = "https://api.openai.com/v1"


class OpenAICompatAdapter(HTTPBackend):
    provider = "OpenAI"

    def _headers(self, config: ModelConfig) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.resolved_api_key() or ''}",
        }

    def url(self, config: ModelConfig) -> str:
        return (config.api_endpoint or DEFAULT_ENDPOINT).rstrip("/") + "/chat/completions"

    def build_payload(
        self,
        prompt: str,
        history: Sequence[Message],
        config: ModelConfig,
        top_p: Optional[float] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": config.resolved_model(),
            "messages": chat_messages(history, prompt),
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }
        if top_p is not None:
            payload["top_p"] = top_p
        payload["stream"] = False
        return payload

    @staticmethod
    def extract_text(data: Dict[str, Any]) -> Optional[str]:
        choices: List[Dict[str, Any]] = data.get("choices") or []
        if not choices:
            return None
        msg = choices[0].get("message") or {}
        content = msg.get("content")
        return content if isinstance(content, str) and content else None

    def generate(self, prompt: str, history: Sequence[Message], config: ModelConfig) -> Outcome:
        if not config.resolved_api_key():
            return Outcome.failure(BackendHTTPError(self.provider, 401, "API key is not configured"))
        payload = self.build_payload(prompt, history, config)
        logger.debug("openai_compat.generate: messages={} max_tokens={}", len(payload["messages"]), config.max_tokens)
        res = self._post_json(self.url(config), self._headers(config), payload)
        if not res.ok:
            return res
        text = self.extract_text(res.value)
        if text is None:
            logger.warning("openai_compat.generate: no choices/content in response id='{}'", res.value.get("id"))
            return Outcome.failure(EmptyCompletion(self.provider))
        logger.info("openai_compat.generate ✓ chars={} finish='{}'",
                    len(text), (res.value.get("choices") or [{}])[0].get("finish_reason"))
        return Outcome.success(text)
