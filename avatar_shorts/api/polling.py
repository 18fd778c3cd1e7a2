"""
Polling Engine
==============

One generic driver for every long-running external job.

Each stage supplies only closures (status check, classifier, result and
error extractors) plus its status vocabulary; the loop itself is shared.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

import httpx

from ..core.cancellation import CancelToken
from ..core.exceptions import (
    ExternalJobFailed,
    MalformedSuccessResponse,
    PollingTimedOut,
    ProviderError,
)

logger = logging.getLogger(__name__)


StatusCheck = Callable[[], Awaitable[Any]]
Classifier = Callable[[Any], Optional[str]]
Extractor = Callable[[Any], Optional[str]]

# A failed status check says nothing about the job itself, so every one of
# these is retried until the poll budget runs out. ValueError covers
# undecodable JSON bodies.
TRANSIENT_ERRORS = (httpx.TransportError, httpx.HTTPStatusError, ProviderError, ValueError)


async def _pause(seconds: float, cancel_token: Optional[CancelToken]) -> None:
    """Sleep between polls without blocking other runs."""
    if cancel_token is not None:
        await cancel_token.sleep(seconds)
    else:
        await asyncio.sleep(seconds)


async def poll_until_done(
    check_status: StatusCheck,
    classify: Classifier,
    extract_result: Extractor,
    extract_error: Extractor,
    success_tag: str,
    failure_tag_prefix: Union[str, Tuple[str, ...]],
    interval: float,
    timeout: float,
    max_attempts: Optional[int] = None,
    cancel_token: Optional[CancelToken] = None,
    label: str = "job",
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """
    Poll an external job until it succeeds, fails, or runs out of time.

    Args:
        check_status: Coroutine function returning the raw status response
        classify: Maps a response to its status token
        extract_result: Pulls the result locator out of a success response
        extract_error: Pulls a human-readable message out of a failure response
        success_tag: Status token meaning the job is done
        failure_tag_prefix: Prefix (or tuple of prefixes) marking failure tokens
        interval: Seconds to sleep between checks
        timeout: Wall-clock budget measured from the first tick
        max_attempts: Optional cap on the number of status checks
        cancel_token: Wakes the loop early and raises Cancelled
        label: Job description for log lines and error details
        clock: Monotonic time source

    Returns:
        The result locator of the successful job

    Raises:
        PollingTimedOut: timeout or max_attempts exhausted
        ExternalJobFailed: the job reported a failure status
        MalformedSuccessResponse: success status without a result
        Cancelled: the cancel token tripped
    """
    success = success_tag.lower()
    if isinstance(failure_tag_prefix, str):
        failure_prefixes = (failure_tag_prefix.lower(),)
    else:
        failure_prefixes = tuple(prefix.lower() for prefix in failure_tag_prefix)

    start_time = clock()
    attempt = 0
    last_error: Optional[BaseException] = None

    while True:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        elapsed = clock() - start_time
        if elapsed >= timeout:
            raise PollingTimedOut(
                f"{label} timed out after {timeout:g} seconds",
                job_id=label,
                timeout_seconds=timeout,
                attempts=attempt,
                details={"last_error": str(last_error)} if last_error else None,
            )
        if max_attempts is not None and attempt >= max_attempts:
            raise PollingTimedOut(
                f"{label} still pending after {attempt} status checks",
                job_id=label,
                timeout_seconds=timeout,
                attempts=attempt,
                details={"last_error": str(last_error)} if last_error else None,
            )

        attempt += 1
        logger.debug(f"{label}: poll attempt {attempt}" + (f"/{max_attempts}" if max_attempts else ""))

        try:
            response = await check_status()
        except TRANSIENT_ERRORS as e:
            last_error = e
            logger.warning(f"{label}: status check failed, retrying: {e}")
            await _pause(interval, cancel_token)
            continue

        status = (classify(response) or "").strip().lower()

        if status == success:
            result = extract_result(response)
            if not result:
                raise MalformedSuccessResponse(
                    f"{label} reported {success_tag} without a result",
                    job_id=label,
                )
            logger.info(f"{label}: completed after {attempt} status checks")
            return result

        if status and status.startswith(failure_prefixes):
            message = extract_error(response) or f"{label} failed with status {status}"
            logger.error(f"{label}: failed: {message}")
            raise ExternalJobFailed(message, job_id=label, status=status)

        logger.debug(f"{label}: status {status or 'unknown'}, waiting {interval:g}s")
        await _pause(interval, cancel_token)
