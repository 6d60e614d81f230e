"""Context propagation for per-invocation reconcile IDs."""

from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

reconcile_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "reconcile_id", default=None
)


def new_reconcile_id() -> str:
    """Generate a short random reconcile ID."""
    return uuid.uuid4().hex[:12]


def get_reconcile_id() -> str | None:
    """Get the reconcile ID of the current invocation, if any."""
    return reconcile_id.get()


@contextmanager
def with_reconcile_id(rid: str | None = None) -> Iterator[str]:
    """Context manager binding a reconcile ID for the duration of a block.

    Args:
        rid: Reconcile ID to use (generated when omitted)

    Yields:
        The reconcile ID
    """
    rid = rid or new_reconcile_id()
    token = reconcile_id.set(rid)
    try:
        yield rid
    finally:
        reconcile_id.reset(token)


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get a dictionary of context values.

    Args:
        additional: Additional key-value pairs to include

    Returns:
        Dictionary with context values including reconcile_id
    """
    ctx: dict[str, Any] = {}

    rid = get_reconcile_id()
    if rid:
        ctx["reconcile_id"] = rid

    if additional:
        ctx.update(additional)

    return ctx
