"""
core/context.py -- Ambient request deadline carried in a ContextVar.

Every engine operation runs "inside" a request. Instead of threading a context
argument through each call, the HTTP layer opens a deadline scope and the
engine calls check_deadline() at its checkpoints:

    with deadline(5.0):
        service.create_token(login, password)

ContextVar values are per-thread and per-asyncio-task, so concurrent requests
served from FastAPI's thread pool never see each other's deadline. Outside a
deadline scope check_deadline() is a no-op.

Layer rule: core/ is the kernel. No imports from api/, auth/, or storage/.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_deadline_var: ContextVar[float | None] = ContextVar("deadline", default=None)


class DeadlineExceeded(Exception):
    """Raised by check_deadline() once the ambient deadline has passed."""


@contextmanager
def deadline(seconds: float | None) -> Iterator[None]:
    """Run the enclosed block with a deadline `seconds` from now.

    Nested scopes never extend an outer deadline -- the earlier one wins.
    None leaves the current deadline untouched.
    """
    if seconds is None:
        yield
        return
    expires_at = time.monotonic() + seconds
    current = _deadline_var.get()
    if current is not None:
        expires_at = min(expires_at, current)
    reset_token = _deadline_var.set(expires_at)
    try:
        yield
    finally:
        _deadline_var.reset(reset_token)


def remaining() -> float | None:
    """Seconds left before the ambient deadline, or None without one."""
    expires_at = _deadline_var.get()
    if expires_at is None:
        return None
    return expires_at - time.monotonic()


def check_deadline() -> None:
    """Raise DeadlineExceeded if the ambient deadline has passed."""
    left = remaining()
    if left is not None and left <= 0:
        raise DeadlineExceeded("request deadline exceeded")
