"""Tracing helpers for fetch and geocode stages."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def _logger():
    return structlog.get_logger("accountmap.trace")


def set_context(*, run_id: str) -> None:
    bind_contextvars(run_id=run_id)
    _logger().debug("trace_context", run_id=run_id)


def clear_context() -> None:
    clear_contextvars()


@contextlib.contextmanager
def span(*, name: str, target: Optional[str] = None) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        _logger().info("trace_span", span=name, target=target, elapsed_ms=elapsed_ms)


def log_retry(attempt: int, *, target: str, reason: str) -> None:
    _logger().warning("fetch_retry", attempt=attempt, target=target, reason=reason)


def log_page_result(*, page: int, records: int, has_next: bool) -> None:
    _logger().info("page_result", page=page, records=records, has_next=has_next)
