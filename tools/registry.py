# tools/registry.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, Mapping, Optional, Set

from loguru import logger
from logging_decorators import log_call

from outcome import AgentError, Outcome, ToolExecutionError, ToolNotFound, ToolParameterError
from tools.calculator import calculator
from tools.clock import current_time
from tools.device import DeviceController, DeviceTools
from tools.tool_schema import TOOL_SPECS
from tools.web_tools import weather, web_search

ToolFn = Callable[[Mapping[str, Any]], str]


class ToolRegistry:
    """
    Name -> tool with a uniform contract: tool(parameters) -> text.
    The public surface:
      - execute(name, parameters) -> Outcome[str]   (never raises)
      - list_tools() -> set[str]
    Tools run on a worker pool so a slow device or network call can't block
    the caller; each call is bounded by `timeout` seconds.
    """

    def __init__(self, device: Optional[DeviceController] = None, max_workers: int = 4, timeout: float = 30.0):
        self.tools: Dict[str, ToolFn] = {}
        self.timeout = timeout
        self.device = DeviceTools(device)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tool")
        self._register_builtin_tools()
        logger.info("ToolRegistry ready with {} tool(s) (timeout={}s)", len(self.tools), timeout)

    # ---------------- registration & dispatch ----------------

    def register(self, name: str, fn: ToolFn) -> None:
        wrapped = log_call(
            f"tool:{name}",
            slow_ms=1000,
            redact={"api_key", "authorization", "message"},
        )(fn)
        if name in self.tools:
            logger.warning("Replacing tool '{}'", name)
        self.tools[name] = wrapped
        logger.debug("Registered tool '{}'", name)

    def list_tools(self) -> Set[str]:
        return set(self.tools)

    def describe(self, name: str) -> Optional[Dict[str, Any]]:
        return TOOL_SPECS.get(name)

    def _run(self, name: str, fn: ToolFn, params: Mapping[str, Any]) -> Outcome:
        try:
            return Outcome.success(fn(params))
        except AgentError as e:
            logger.info("tool '{}' failed: {}", name, e)
            return Outcome.failure(e)
        except Exception as e:
            logger.exception("tool '{}' raised: {}", name, e)
            return Outcome.failure(ToolExecutionError(name, str(e) or type(e).__name__))

    def execute(self, name: str, parameters: Optional[Mapping[str, Any]] = None) -> Outcome:
        fn = self.tools.get(name)
        if fn is None:
            logger.warning("execute: unknown tool '{}'", name)
            return Outcome.failure(ToolNotFound(name))
        if parameters is None:
            parameters = {}
        if not isinstance(parameters, Mapping):
            return Outcome.failure(ToolParameterError(name, "parameters", "Parameters must be an object"))
        logger.info("→ {}({})", name, ", ".join(f"{k}={v!r}" for k, v in parameters.items() if k != "message"))
        try:
            future = self._pool.submit(self._run, name, fn, dict(parameters))
        except RuntimeError as e:
            # pool already shut down
            return Outcome.failure(ToolExecutionError(name, f"tool runner unavailable: {e}"))
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            logger.error("tool '{}' timed out after {}s", name, self.timeout)
            return Outcome.failure(ToolExecutionError(name, f"timed out after {self.timeout:.0f}s"))

    def close(self) -> None:
        self._pool.shutdown(wait=False)

    # -------------------- built-in tools ---------------------

    def _register_builtin_tools(self) -> None:
        self.register("calculator", calculator)
        self.register("time", current_time)
        self.register("web_search", web_search)
        self.register("weather", weather)
        for name, fn in self.device.as_tools().items():
            self.register(name, fn)
