"""
Base Stage Adapter
==================

Abstract base class for the external job services of the pipeline.

Every adapter exposes the same contract:

    handle = await adapter.submit(stage_input)
    result_url = await adapter.poll(handle, cancel_token)

and differs only in request encoding and in how it reads status responses.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any, Tuple, Union
from urllib.parse import urlparse

import httpx

from ..core.cancellation import CancelToken
from ..core.config import StageConfig
from ..core.exceptions import FormatIncompatible, ProviderError, SubmissionRejected
from ..core.security import redact_api_key
from .polling import poll_until_done

logger = logging.getLogger(__name__)


ARCHIVE_SUFFIXES = (".zip", ".tar", ".gz", ".tgz", ".7z", ".rar")


# =============================================================================
# Data Classes
# =============================================================================


class OutcomeStatus(Enum):
    """Classification of a single status check."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PollOutcome:
    """Tagged result of one status check: pending, succeeded or failed."""

    status: OutcomeStatus
    result_locator: Optional[str] = None
    error_detail: Optional[str] = None

    @classmethod
    def pending(cls) -> "PollOutcome":
        return cls(OutcomeStatus.PENDING)

    @classmethod
    def succeeded(cls, result_locator: str) -> "PollOutcome":
        return cls(OutcomeStatus.SUCCEEDED, result_locator=result_locator)

    @classmethod
    def failed(cls, error_detail: str) -> "PollOutcome":
        return cls(OutcomeStatus.FAILED, error_detail=error_detail)

    @property
    def is_terminal(self) -> bool:
        return self.status != OutcomeStatus.PENDING


@dataclass(frozen=True)
class JobHandle:
    """
    Opaque reference to a submitted job.

    Only the adapter that created a handle reads its fields.
    """

    stage: str
    job_id: str
    poll_url: Optional[str] = None

    # Set when the service answered synchronously
    immediate_result: Optional[str] = None


def ensure_direct_video_url(url: str, stage: Optional[str] = None) -> str:
    """
    Reject artifact URLs that point at an archive instead of a video.

    Raises:
        FormatIncompatible: when the URL path ends in an archive suffix
    """
    path = urlparse(url).path.lower()
    if path.endswith(ARCHIVE_SUFFIXES):
        raise FormatIncompatible(
            f"Expected a direct video URL but got an archive ({path.rsplit('.', 1)[-1]})",
            url=url,
            provider=stage,
        )
    return url


# =============================================================================
# Base Adapter Class
# =============================================================================


class BaseStageAdapter(ABC):
    """
    Abstract base class for stage adapters.

    Features:
    - Lazily created, lock-protected HTTP client
    - Uniform SubmissionRejected on refused submissions
    - Polling delegated to the shared polling engine
    """

    # Status vocabulary, overridden per service
    success_tag: str = "done"
    failure_tag_prefix: Union[str, Tuple[str, ...]] = ("error", "fail")

    def __init__(
        self,
        config: StageConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: Stage settings (credentials, endpoints, poll budget)
            client: Optional pre-built HTTP client (closed by its owner)
        """
        self.config = config
        self.api_key = config.api_key
        self.base_url = config.base_url.rstrip("/")
        self.request_timeout = config.request_timeout
        self.poll_interval = config.poll_interval
        self.poll_timeout = config.poll_timeout
        self.max_attempts = config.max_attempts

        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Abstract Methods (must be implemented by subclasses)
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def stage_name(self) -> str:
        """Return the pipeline stage this adapter drives."""
        pass

    @abstractmethod
    def _get_headers(self) -> Dict[str, str]:
        """Return auth headers for this service."""
        pass

    @abstractmethod
    async def submit(self, stage_input: Any) -> JobHandle:
        """
        Submit a job to the external service.

        Raises:
            SubmissionRejected: on non-2xx or an unusable response
        """
        pass

    @abstractmethod
    async def _check_job_status(self, handle: JobHandle) -> Dict[str, Any]:
        """Fetch the raw status document for a job."""
        pass

    @abstractmethod
    def _extract_status(self, data: Dict[str, Any]) -> Optional[str]:
        """Extract the status token from a status document."""
        pass

    @abstractmethod
    def _extract_result(self, data: Dict[str, Any]) -> Optional[str]:
        """Extract the result locator from a success document."""
        pass

    @abstractmethod
    def _extract_error(self, data: Dict[str, Any]) -> Optional[str]:
        """Extract the error message from a failure document."""
        pass

    # -------------------------------------------------------------------------
    # Shared Implementation Methods
    # -------------------------------------------------------------------------

    async def poll(self, handle: JobHandle, cancel_token: Optional[CancelToken] = None) -> str:
        """
        Drive a submitted job to completion.

        Returns:
            The job's result locator (a remote URL)
        """
        if handle.immediate_result:
            return handle.immediate_result

        return await poll_until_done(
            check_status=lambda: self._check_job_status(handle),
            classify=self._extract_status,
            extract_result=self._extract_result,
            extract_error=self._extract_error,
            success_tag=self.success_tag,
            failure_tag_prefix=self.failure_tag_prefix,
            interval=self.poll_interval,
            timeout=self.poll_timeout,
            max_attempts=self.max_attempts,
            cancel_token=cancel_token,
            label=f"{self.stage_name} job {handle.job_id}",
        )

    async def run(self, stage_input: Any, cancel_token: Optional[CancelToken] = None) -> str:
        """Submit a job and wait for its result."""
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        handle = await self.submit(stage_input)
        logger.info(f"{self.stage_name}: submitted job {handle.job_id}")
        return await self.poll(handle, cancel_token)

    async def check(self, handle: JobHandle) -> PollOutcome:
        """Run a single status check and classify it."""
        if handle.immediate_result:
            return PollOutcome.succeeded(handle.immediate_result)

        data = await self._check_job_status(handle)
        status = (self._extract_status(data) or "").strip().lower()
        prefixes = self.failure_tag_prefix
        if isinstance(prefixes, str):
            prefixes = (prefixes,)

        if status == self.success_tag.lower():
            result = self._extract_result(data)
            if result:
                return PollOutcome.succeeded(result)
            return PollOutcome.failed("success reported without a result")
        if status and status.startswith(tuple(p.lower() for p in prefixes)):
            return PollOutcome.failed(self._extract_error(data) or status)
        return PollOutcome.pending()

    # -------------------------------------------------------------------------
    # HTTP Helpers
    # -------------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (task-safe)."""
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.request_timeout))
            return self._client

    async def _submit_request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        Send a submission request and decode its JSON body.

        Raises:
            SubmissionRejected: unreachable service, non-2xx, or non-JSON body
        """
        client = await self._get_client()
        try:
            response = await client.request(method, url, headers=self._get_headers(), **kwargs)
        except httpx.HTTPError as e:
            raise SubmissionRejected(
                f"{self.stage_name} service unreachable: {redact_api_key(str(e))}",
                provider=self.stage_name,
                reason="unreachable",
            )

        if not response.is_success:
            body = redact_api_key(response.text)
            logger.error(f"{self.stage_name} submission rejected: {response.status_code} - {body[:200]}")
            raise SubmissionRejected(
                f"{self.stage_name} rejected the job with status {response.status_code}",
                provider=self.stage_name,
                status_code=response.status_code,
                response_body=body,
            )

        try:
            return response.json()
        except ValueError:
            raise SubmissionRejected(
                f"{self.stage_name} returned a non-JSON submission response",
                provider=self.stage_name,
                status_code=response.status_code,
                response_body=redact_api_key(response.text),
            )

    async def _status_request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        Send a status request.

        Raises:
            ProviderError: on non-2xx or a body that is not a JSON object.
                Always recoverable, the poll budget decides when to stop.
        """
        client = await self._get_client()
        response = await client.request(method, url, headers=self._get_headers(), **kwargs)
        if not response.is_success:
            raise ProviderError(
                f"{self.stage_name} status check failed with status {response.status_code}",
                provider=self.stage_name,
                status_code=response.status_code,
                response_body=redact_api_key(response.text),
                recoverable=True,
            )

        data = response.json()
        if not isinstance(data, dict):
            raise ProviderError(
                f"{self.stage_name} status check returned {type(data).__name__}, expected an object",
                provider=self.stage_name,
                status_code=response.status_code,
                response_body=redact_api_key(response.text),
                recoverable=True,
            )
        return data

    def _require_job_id(self, job_id: Optional[str], data: Dict[str, Any]) -> str:
        if not job_id:
            raise SubmissionRejected(
                f"{self.stage_name} accepted the job but returned no job id",
                provider=self.stage_name,
                reason="missing_job_id",
                response_body=redact_api_key(str(data)),
            )
        return str(job_id)

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
                self._client = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
