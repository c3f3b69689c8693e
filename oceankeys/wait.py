"""Polling helpers for waiting on the eventually-consistent read path."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from .clients import BaseKeyClient
from .constants import DEFAULT_POLL_INTERVAL
from .errors import TimeoutFailure
from .models import SshKey

logger = logging.getLogger(__name__)

T = TypeVar("T")

KeyPredicate = Callable[[Sequence[SshKey]], bool]
Sleeper = Callable[[float], Awaitable[None]]


async def list_until(
    client: BaseKeyClient,
    condition: KeyPredicate,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Sleeper = asyncio.sleep,
    description: str = "condition",
) -> list[SshKey]:
    """List keys over and over until ``condition`` holds for the result.

    There is no attempt limit and no deadline here; wrap the call in
    :func:`with_deadline` to bound it. Errors raised by ``list_keys`` are
    not retried.

    Returns:
        The key listing that satisfied ``condition``.
    """
    attempt = 0
    while True:
        attempt += 1
        keys = await client.list_keys()
        if condition(keys):
            logger.debug(f"{description} satisfied after {attempt} listing(s)")
            return keys
        logger.debug(
            f"{description} not yet satisfied (attempt {attempt}, {len(keys)} keys); "
            f"sleeping {interval}s"
        )
        await sleep(interval)


async def with_deadline(awaitable: Awaitable[T], timeout: float, step: str) -> T:
    """Await ``awaitable``, raising ``TimeoutFailure`` after ``timeout`` seconds."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except TimeoutFailure:
        raise
    except asyncio.TimeoutError as e:
        raise TimeoutFailure(step, timeout) from e
