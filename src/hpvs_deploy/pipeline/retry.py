"""
hpvs_deploy.pipeline.retry - Bounded Retry for Transient Failures
===================================================================

Runs one cloud call under a RetryPolicy. Only TransientError is retried;
every other DeployError propagates on the first occurrence.

    attempt 0 ──TransientError──→ sleep(calculate_delay(0)) ──→ attempt 1
        ...
    attempt max_retries ──TransientError──→ raise

With the default policy (max_retries=0) the first TransientError is raised
unchanged.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from hpvs_deploy.core.config import RetryPolicy
from hpvs_deploy.core.exceptions import TransientError


logger = structlog.get_logger()

T = TypeVar("T")


async def call_with_retry(
    policy: RetryPolicy,
    operation: Callable[[], Awaitable[T]],
    *,
    name: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await `operation()`, retrying TransientError up to policy.max_retries times.

    Args:
        policy: Retry limits and backoff.
        operation: Zero-argument coroutine factory; called once per attempt.
        name: Operation name for log events.
        sleep: Awaitable sleep, replaceable in tests.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except TransientError as e:
            if attempt >= policy.max_retries:
                raise
            delay = policy.calculate_delay(attempt)
            logger.warning(
                "cloud_call_retrying",
                operation=name,
                attempt=attempt + 1,
                max_retries=policy.max_retries,
                delay=round(delay, 2),
                error_code=e.error_code,
            )
            await sleep(delay)
            attempt += 1
