"""Trace id support using structlog contextvars.

Every scan resolution runs under a trace id. The id is echoed in the
X-Trace-ID response header and stored as the request_id of any correction the
resolution leads to, so a stored correction can be tied back to its logs.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from contextlib import contextmanager

import structlog.contextvars as contextvars


def generate_trace_id() -> str:
    """Generate a unique trace ID (32 hex characters)."""
    return uuid.uuid4().hex


def get_trace_id() -> str | None:
    """Get the current trace ID from context."""
    return contextvars.get_contextvars().get("trace_id")


def set_trace_id(trace_id: str) -> None:
    """Set trace ID in context."""
    contextvars.bind_contextvars(trace_id=trace_id)


def clear_trace_id() -> None:
    """Clear trace ID from context."""
    contextvars.clear_contextvars()


@contextmanager
def trace_context(trace_id: str | None = None) -> Generator[str]:
    """Bind a trace id for the duration of the block.

    Restores whatever context was bound before on exit.

    Args:
        trace_id: Optional trace ID to use. If None, generates a new one.

    Yields:
        The trace ID being used
    """
    old_context = dict(contextvars.get_contextvars())

    if trace_id is None:
        trace_id = generate_trace_id()

    contextvars.clear_contextvars()
    contextvars.bind_contextvars(trace_id=trace_id)

    try:
        yield trace_id
    finally:
        contextvars.clear_contextvars()
        if old_context:
            contextvars.bind_contextvars(**old_context)
