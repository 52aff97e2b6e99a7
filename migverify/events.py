from __future__ import annotations

from typing import Any, Optional

from .common import PrintLogger

_fallback: Optional[PrintLogger] = None


def _default_logger() -> PrintLogger:
    global _fallback
    if _fallback is None:
        _fallback = PrintLogger()
    return _fallback


def emit_log(*, level: str, msg: str, logger: Optional[PrintLogger] = None, **fields: Any) -> None:
    """Route a structured event to ``logger`` (or a process default when omitted)."""

    target = logger or _default_logger()
    target.log(level, msg, **fields)


__all__ = ["emit_log"]
