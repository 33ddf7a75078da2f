# adapters/local.py - embedded on-device inference via llama.cpp
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from loguru import logger

from adapters.base import Backend
from models import Message, ModelConfig
from outcome import BackendInferenceError, BackendInitError, EmptyCompletion, Outcome

# loader(model_path, config) -> handle; the handle is called like llama_cpp.Llama
Loader = Callable[[str, ModelConfig], Any]


def llama_cpp_loader(model_path: str, config: ModelConfig) -> Any:
    from llama_cpp import Llama  # optional extra: pip install lilah-agent[local]

    return Llama(
        model_path=model_path,
        n_ctx=max(2048, config.max_tokens * 4),
        verbose=False,
    )


def render_transcript(history: Sequence[Message], prompt: str) -> str:
    lines = []
    for m in history:
        if m.is_system:
            lines.append(m.content.strip())
            lines.append("")
        else:
            lines.append(f"{'User' if m.is_from_user else 'Assistant'}: {m.content}")
    lines.append(f"User: {prompt}")
    lines.append("Assistant:")
    return "\n".join(lines)


class LocalBackend(Backend):
    """
    Owns one live inference handle. Not thread-safe on its own; the router
    serializes access.
    """

    provider = "Local"

    def __init__(self, config: ModelConfig, loader: Optional[Loader] = None):
        self.config = config
        self.loader = loader or llama_cpp_loader
        self._handle: Any = None

    @property
    def loaded(self) -> bool:
        return self._handle is not None

    def initialize(self) -> Outcome:
        if self._handle is not None:
            return Outcome.success(self)
        path = self.config.model_path
        if not path:
            return Outcome.failure(BackendInitError(path, "model_path is not set"))
        if not Path(path).expanduser().exists():
            return Outcome.failure(BackendInitError(path, "model file does not exist"))
        logger.info("LocalBackend: loading '{}' (max_tokens={} temp={} top_k={})",
                    path, self.config.max_tokens, self.config.temperature, self.config.top_k)
        try:
            self._handle = self.loader(str(Path(path).expanduser()), self.config)
        except ImportError as e:
            logger.error("LocalBackend: llama-cpp-python is not installed: {}", e)
            return Outcome.failure(BackendInitError(path, "llama-cpp-python is not installed (pip install lilah-agent[local])"))
        except Exception as e:
            logger.exception("LocalBackend: load failed: {}", e)
            return Outcome.failure(BackendInitError(path, str(e)))
        return Outcome.success(self)

    def generate(self, prompt: str, history: Sequence[Message], config: ModelConfig) -> Outcome:
        init = self.initialize()
        if not init.ok:
            return init
        text_in = render_transcript(history, prompt)
        try:
            out = self._handle(
                text_in,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                top_k=config.top_k,
                stop=["\nUser:"],
            )
        except Exception as e:
            logger.exception("LocalBackend: inference failed: {}", e)
            return Outcome.failure(BackendInferenceError(self.provider, str(e)))
        choices = (out or {}).get("choices") or []
        text = (choices[0].get("text") or "").strip() if choices else ""
        if not text:
            return Outcome.failure(EmptyCompletion(self.provider))
        logger.info("LocalBackend.generate ✓ chars={}", len(text))
        return Outcome.success(text)

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        closer = getattr(handle, "close", None)
        if callable(closer):
            try:
                closer()
            except Exception as e:
                logger.warning("LocalBackend: close failed: {}", e)
        logger.info("LocalBackend: released '{}'", self.config.model_path)
