"""Bounded retry with a constant interval between attempts."""

from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..exceptions import RetryExhaustedError
from .log import UserLogger

DEFAULT_INTERVAL = 1.0


class ConstantRetryTask:
    """Task retried a fixed number of times with a fixed pause.

    Args:
        max_retries: Maximum number of attempts (0 is treated as 1)
        interval: Seconds to wait between attempts
        payload: Coroutine function performing one attempt
    """

    def __init__(
        self,
        max_retries: int,
        interval: float,
        payload: Callable[[], Awaitable[None]],
    ) -> None:
        self.max_retries = max_retries if max_retries > 0 else 1
        self.interval = interval if interval >= 0 else DEFAULT_INTERVAL
        self.payload = payload

    async def do(self, retry_count: int) -> None:
        await self.payload()


async def run_task(logger: UserLogger, name: str, task: ConstantRetryTask) -> None:
    """Run a task until it succeeds or runs out of attempts.

    Args:
        logger: Progress logger
        name: Task label printed before every attempt
        task: Task to run

    Raises:
        RetryExhaustedError: If every attempt failed, chained to the last error
        asyncio.CancelledError: If cancelled while running or waiting
    """

    def log_retry(retry_state: RetryCallState) -> None:
        logger.infof("%s failed, next retry in %ss", name, task.interval)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(task.max_retries),
        wait=wait_fixed(task.interval),
        retry=retry_if_exception_type(Exception),
        before_sleep=log_retry,
    )

    try:
        async for attempt in retrying:
            with attempt:
                logger.info(name)
                await task.do(attempt.retry_state.attempt_number - 1)
    except RetryError as e:
        last_error = e.last_attempt.exception()
        raise RetryExhaustedError(
            f"{name!r}: task failed too many times, last error: {last_error}"
        ) from last_error
