"""Cooperative cancellation for long-running approximations.

Two layers are checked together:
- a process-wide "please stop" flag that stays set until explicitly cleared
- a per-call token bound to the evaluating thread with ``cancellation_scope``

Every unbounded loop in the engine calls ``check_cancelled()`` once per
iteration.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from .logging_config import get_logger
from .types import CancelledError

logger = get_logger("cancellation")

_please_stop = threading.Event()
_local = threading.local()


class CancellationToken:
    """Per-call interrupt request; affects only the scope it is bound to."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


def request_stop() -> None:
    """Ask every in-flight evaluation to stop. Stays set until clear_stop()."""
    logger.debug("Global stop requested")
    _please_stop.set()


def clear_stop() -> None:
    """Reset the global stop flag so that new evaluations may proceed."""
    _please_stop.clear()


def stop_requested() -> bool:
    return _please_stop.is_set()


def current_token() -> CancellationToken | None:
    stack = getattr(_local, "stack", None)
    if not stack:
        return None
    return stack[-1]


@contextmanager
def cancellation_scope(token: CancellationToken) -> Iterator[CancellationToken]:
    """Bind ``token`` to the current thread for the duration of the block."""
    stack = getattr(_local, "stack", None)
    if stack is None:
        stack = []
        _local.stack = stack
    stack.append(token)
    try:
        yield token
    finally:
        stack.pop()


def check_cancelled() -> None:
    """Raise CancelledError if either the global flag or the bound token is set."""
    if _please_stop.is_set():
        raise CancelledError("Evaluation cancelled by global stop request")
    stack = getattr(_local, "stack", None)
    if stack and stack[-1].cancelled:
        raise CancelledError()
