# outcome.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


# ---------------- Error taxonomy ----------------

class AgentError(Exception):
    """Base for every failure that travels as a value between components."""

    kind = "agent_error"


class NoActiveConfig(AgentError):
    kind = "no_active_config"

    def __init__(self, message: str = "No active model configuration found"):
        super().__init__(message)


class BackendInitError(AgentError):
    kind = "backend_init"

    def __init__(self, model_path: Optional[str], reason: str):
        self.model_path = model_path
        self.reason = reason
        super().__init__(f"Failed to initialize local model '{model_path or '<unset>'}': {reason}")


class BackendInferenceError(AgentError):
    kind = "backend_inference"

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider} inference failed: {reason}")


class BackendHTTPError(AgentError):
    kind = "backend_http"

    def __init__(self, provider: str, status: Optional[int], message: str):
        self.provider = provider
        self.status = status
        self.message = message
        where = f"HTTP {status}" if status is not None else "transport error"
        super().__init__(f"{provider} API error ({where}): {message}")


class BackendUnimplemented(AgentError):
    kind = "backend_unimplemented"

    def __init__(self, backend_kind: str):
        self.backend_kind = backend_kind
        super().__init__(f"{backend_kind} integration not yet implemented")


class EmptyCompletion(AgentError):
    kind = "empty_completion"

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Empty response from {provider}")


class ToolNotFound(AgentError):
    kind = "tool_not_found"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' not found")


class ToolParameterError(AgentError):
    kind = "tool_parameter"

    def __init__(self, tool_name: str, parameter: str, reason: str):
        self.tool_name = tool_name
        self.parameter = parameter
        self.reason = reason
        super().__init__(f"{tool_name}: {reason}")


class ToolExecutionError(AgentError):
    kind = "tool_execution"

    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"{tool_name}: {reason}")


# ---------------- Outcome ----------------

@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    success(value) or failure(error). Returned across every component boundary
    in place of raising.
    """
    value: Optional[T] = None
    error: Optional[AgentError] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AgentError) -> "Outcome[Any]":
        if not isinstance(error, AgentError):
            raise TypeError(f"Outcome.failure expects an AgentError, got {type(error).__name__}")
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def map(self, fn: Callable[[T], U]) -> "Outcome[U]":
        if not self.ok:
            return self  # type: ignore[return-value]
        return Outcome.success(fn(self.value))

    def __repr__(self) -> str:
        if self.ok:
            return f"Outcome.success({self.value!r})"
        return f"Outcome.failure({type(self.error).__name__}: {self.error})"
