# logging_decorators.py
from __future__ import annotations
import time, functools, inspect
from typing import Any, Callable, Dict, Iterable
from loguru import logger

_REDACT_DEFAULT = {"api_key", "authorization", "x-api-key", "password", "token", "secret"}

def _redact(obj: Any, redact_keys: set[str], max_len: int, max_items: int) -> Any:
    """Lightweight redaction + truncation for logs."""
    if isinstance(obj, dict):
        return {
            k: ("******" if str(k).lower() in redact_keys else _redact(v, redact_keys, max_len, max_items))
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple, set)):
        seq = list(obj)
        cut = min(len(seq), max_items)
        trimmed = [_redact(x, redact_keys, max_len, max_items) for x in seq[:cut]]
        if len(seq) > cut:
            trimmed.append(f"... (+{len(seq)-cut} more)")
        return trimmed
    if isinstance(obj, str) and len(obj) > max_len:
        return obj[:max_len] + f"...(+{len(obj)-max_len} chars)"
    return obj

def _default_summary(ret: Any) -> Dict[str, Any]:
    """Tools return text; Outcomes carry ok/error."""
    if isinstance(ret, str):
        return {"chars": len(ret)}
    if hasattr(ret, "ok") and hasattr(ret, "error"):
        if ret.ok:
            return {"ok": True, "chars": len(str(ret.value or ""))}
        return {"ok": False, "error": type(ret.error).__name__}
    return {"type": type(ret).__name__}

def log_call(
    name: str | None = None,
    *,
    level: str = "DEBUG",
    slow_ms: int = 800,                # warn if slower than this
    redact: Iterable[str] = _REDACT_DEFAULT,
    arg_max_len: int = 200,
    arg_max_items: int = 20,
    summarize: Callable[[Any], Dict[str, Any]] | None = None,
):
    """
    Decorator to log entry/exit, args, duration, and failures.
    Exceptions are logged and re-raised; the caller decides how to surface them.
    """
    redact_keys = {str(k).lower() for k in redact}
    summary_fn = summarize or _default_summary

    def decorator(fn: Callable):
        if getattr(fn, "__logged__", False):
            return fn

        qual = name or fn.__name__

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                ba = inspect.signature(fn).bind_partial(*args, **kwargs)
                call_args = {k: v for k, v in ba.arguments.items() if k not in {"self", "cls"}}
                call_args = _redact(call_args, redact_keys, arg_max_len, arg_max_items)
            except (TypeError, ValueError):
                call_args = "<uninspectable>"

            lg = logger.opt(depth=1)
            lg.log(level, "→ {} args={}", qual, call_args)

            t0 = time.perf_counter()
            try:
                ret = fn(*args, **kwargs)
            except Exception as e:
                dur_ms = (time.perf_counter() - t0) * 1000.0
                lg.warning("✗ {} failed in {:.0f}ms: {}", qual, dur_ms, e)
                raise
            dur_ms = (time.perf_counter() - t0) * 1000.0
            summary = summary_fn(ret)
            if dur_ms >= slow_ms:
                lg.warning("✓ {} done in {:.0f}ms (SLOW) summary={}", qual, dur_ms, summary)
            else:
                lg.log(level, "✓ {} done in {:.0f}ms summary={}", qual, dur_ms, summary)
            return ret

        wrapper.__logged__ = True
        return wrapper

    # allow bare @log_call
    if callable(name):
        fn, name = name, None
        return decorator(fn)
    return decorator
