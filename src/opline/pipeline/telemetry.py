"""Telemetry primitives — Span, operation_span, trace_span.

Near-zero overhead when disabled (single ContextVar.get per call).
When enabled, every operation invocation builds a span tree (one child per
pipeline stage, nested operations as children) and ``run_safe`` injects the
root span into ``OperationResult.meta``.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

import structlog

from opline.pipeline.result import OperationResult

# ── Context variables ────────────────────────────────────────────────

_telemetry_enabled: ContextVar[bool] = ContextVar("_telemetry_enabled", default=False)
_current_span: ContextVar[Span | None] = ContextVar("_current_span", default=None)


# ── Span ─────────────────────────────────────────────────────────────


@dataclass
class Span:
    """Hierarchical timing span."""

    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None
    annotations: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000

    def end(self) -> None:
        self.end_time = time.perf_counter()

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.annotations:
            result["annotations"] = self.annotations
        if self.children:
            result["children"] = [c.to_dict() for c in self.children]
        return result


# ── Context managers ─────────────────────────────────────────────────


@contextmanager
def trace_span(name: str) -> Generator[Span | None]:
    """Create a child span under the current span.

    Yields None when telemetry is disabled or no span is active.
    """
    if not _telemetry_enabled.get():
        yield None
        return

    parent = _current_span.get()
    if parent is None:
        yield None
        return

    child = Span(name=name, parent=parent)
    parent.children.append(child)

    token = _current_span.set(child)
    try:
        yield child
    finally:
        child.end()
        _current_span.reset(token)


@contextmanager
def operation_span(name: str) -> Generator[Span | None]:
    """Span for one operation invocation; root span unless nested.

    Yields None when telemetry is disabled.
    """
    if not _telemetry_enabled.get():
        yield None
        return

    parent = _current_span.get()
    span = Span(name=name, parent=parent)
    if parent is not None:
        parent.children.append(span)

    token = _current_span.set(span)
    ok = False
    try:
        yield span
        ok = True
    finally:
        span.end()
        _current_span.reset(token)
        _log_span(span, ok=ok)


def _log_span(span: Span, *, ok: bool) -> None:
    log = structlog.get_logger("opline.telemetry")
    log.debug(
        "span.complete",
        span_name=span.name,
        duration_ms=round(span.duration_ms, 2),
        ok=ok,
        children=len(span.children),
    )


def inject_meta(result: OperationResult, span: Span) -> OperationResult:
    """Create a new OperationResult with span data merged into meta.

    Uses model_copy(update=...) since OperationResult is frozen.
    """
    telemetry = {"telemetry": span.to_dict()}
    existing_meta = result.meta or {}
    merged_meta = {**existing_meta, **telemetry}
    return result.model_copy(update={"meta": merged_meta})


# ── Public helpers ───────────────────────────────────────────────────


def enable_telemetry() -> None:
    """Enable span collection for the current context."""
    _telemetry_enabled.set(True)


def disable_telemetry() -> None:
    """Disable span collection for the current context."""
    _telemetry_enabled.set(False)


def get_current_span() -> Span | None:
    """Get the current active span (for manual annotation)."""
    if not _telemetry_enabled.get():
        return None
    return _current_span.get()
