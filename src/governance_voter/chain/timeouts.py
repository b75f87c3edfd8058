"""Uniform timeout wrapper for chain calls.

Every RPC interaction in a voting round goes through :func:`call_with_timeout`,
which turns the three possible endings of a call (value, timeout, exception)
into a :class:`CallResult` instead of raising. Callers branch on the result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CallStatus(str, Enum):
    """How a timed call ended."""

    OK = "ok"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Outcome of a timed call."""

    status: CallStatus
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status is CallStatus.OK

    @property
    def timed_out(self) -> bool:
        return self.status is CallStatus.TIMED_OUT

    @property
    def failed(self) -> bool:
        return self.status is CallStatus.ERROR

    def describe(self) -> str:
        """Short human-readable description for logs and records."""
        if self.ok:
            return "ok"
        if self.timed_out:
            return "timed out"
        return f"{type(self.error).__name__}: {self.error}"


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    *,
    label: str = "call",
) -> CallResult[T]:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    A timed-out call is cancelled locally; work already handed to the node
    (e.g. a broadcast transaction) is not undone.

    Args:
        awaitable: Coroutine or future to wait on.
        timeout: Seconds to wait before giving up.
        label: Name used in log lines.

    Returns:
        A CallResult carrying the value, the timeout, or the exception.
    """
    try:
        value = await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs", label, timeout)
        return CallResult(status=CallStatus.TIMED_OUT)
    except Exception as e:
        logger.warning("%s failed: %s", label, e)
        return CallResult(status=CallStatus.ERROR, error=e)
    return CallResult(status=CallStatus.OK, value=value)
