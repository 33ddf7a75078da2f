# router.py
from __future__ import annotations

import threading
from typing import Dict, Optional, Sequence, Tuple

from loguru import logger

from adapters.anthropic import AnthropicAdapter
from adapters.base import Backend
from adapters.local import Loader, LocalBackend
from adapters.openai_compat import OpenAICompatAdapter
from models import Message, ModelConfig, ModelKind
from outcome import AgentError, BackendInferenceError, BackendUnimplemented, NoActiveConfig, Outcome
from stores import ConfigStore


class BackendRouter:
    """
    Picks the active ModelConfig and forwards a generation to the matching
    backend. Owns the one cached embedded-model handle.

    History is passed through untouched; windowing happens in the orchestrator.
    """

    def __init__(
        self,
        configs: ConfigStore,
        http_timeout: float = 60.0,
        local_loader: Optional[Loader] = None,
        remote: Optional[Dict[ModelKind, Backend]] = None,
    ):
        self.configs = configs
        self.local_loader = local_loader
        self.remote: Dict[ModelKind, Backend] = remote or {
            ModelKind.REMOTE_OPENAI: OpenAICompatAdapter(timeout=http_timeout),
            ModelKind.REMOTE_CLAUDE: AnthropicAdapter(timeout=http_timeout),
        }
        # guards _local and every call into it
        self._local_lock = threading.Lock()
        self._local: Optional[LocalBackend] = None
        self._local_key: Optional[Tuple[str, Optional[str]]] = None
        logger.info("BackendRouter init → remote={} http_timeout={}s",
                    [k.value for k in self.remote], http_timeout)

    # --------------------------- generation ---------------------------

    def generate(self, prompt: str, history: Sequence[Message], config: Optional[ModelConfig] = None) -> Outcome:
        try:
            if config is None:
                config = self.configs.get_active()
            if config is None:
                logger.warning("BackendRouter.generate: no active config")
                return Outcome.failure(NoActiveConfig())
            logger.info("BackendRouter.generate → config='{}' kind='{}' history={}",
                        config.name, config.kind.value, len(history))

            if config.kind is ModelKind.LOCAL:
                return self._generate_local(prompt, history, config)
            if config.kind in (ModelKind.REMOTE_GEMINI, ModelKind.REMOTE_CUSTOM):
                label = "Gemini" if config.kind is ModelKind.REMOTE_GEMINI else "Custom API"
                logger.info("BackendRouter: {} backend is a placeholder", label)
                return Outcome.failure(BackendUnimplemented(label))
            backend = self.remote.get(config.kind)
            if backend is None:
                return Outcome.failure(BackendUnimplemented(config.kind.value))
            return backend.generate(prompt, history, config)
        except AgentError as e:
            return Outcome.failure(e)
        except Exception as e:
            logger.exception("BackendRouter.generate: unexpected failure: {}", e)
            provider = config.kind.value if config is not None else "backend"
            return Outcome.failure(BackendInferenceError(provider, str(e)))

    def _generate_local(self, prompt: str, history: Sequence[Message], config: ModelConfig) -> Outcome:
        key = (config.id, config.model_path)
        with self._local_lock:
            if self._local is not None and self._local_key != key:
                logger.info("BackendRouter: local config changed {} → {}; reloading", self._local_key, key)
                self._release_local()
            if self._local is None:
                backend = LocalBackend(config, loader=self.local_loader)
                init = backend.initialize()
                if not init.ok:
                    return init
                self._local, self._local_key = backend, key
            return self._local.generate(prompt, history, config)

    # --------------------------- lifecycle ---------------------------

    def _release_local(self) -> None:
        if self._local is not None:
            self._local.close()
        self._local, self._local_key = None, None

    def invalidate(self) -> None:
        """Release the cached local handle; waits for an in-flight local generation."""
        with self._local_lock:
            had = self._local is not None
            self._release_local()
        if had:
            logger.info("BackendRouter: local model handle invalidated")

    @property
    def local_loaded(self) -> bool:
        return self._local is not None and self._local.loaded

    def activate(self, config_id: str) -> Outcome:
        if not self.configs.set_active_exclusive(config_id):
            return Outcome.failure(NoActiveConfig(f"No model configuration with id '{config_id}'"))
        self.invalidate()
        return Outcome.success(self.configs.get(config_id))

    def _caches(self, config_id: str) -> bool:
        with self._local_lock:
            return self._local_key is not None and self._local_key[0] == config_id

    def save_config(self, config: ModelConfig) -> ModelConfig:
        problems = config.validate()
        if problems:
            logger.warning("BackendRouter.save_config: '{}' has problems: {}", config.name, "; ".join(problems))
        saved = self.configs.upsert(config)
        # an active upsert deactivates every other config, so any cached handle is stale
        if config.is_active or self._caches(config.id):
            self.invalidate()
        return saved

    def delete_config(self, config_id: str) -> bool:
        removed = self.configs.delete(config_id)
        if self._caches(config_id):
            self.invalidate()
        return removed

    def close(self) -> None:
        self.invalidate()
