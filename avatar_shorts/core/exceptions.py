"""
Custom Exceptions
=================

Unified exception hierarchy for every stage of the shorts pipeline.
"""

from typing import Optional, Dict, Any


class ShortsError(Exception):
    """Base exception for all Avatar Shorts errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.recoverable = recoverable

    @property
    def status_code(self) -> Optional[int]:
        return self.details.get("status_code")

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(ShortsError):
    """Configuration-related errors (including missing credentials)."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(message, details=details, **kwargs)


class ValidationError(ShortsError):
    """Input validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, details=details, **kwargs)


class SecurityError(ShortsError):
    """Security-related errors (path traversal, blocked hosts, etc.)."""

    def __init__(
        self,
        message: str,
        attempted_path: Optional[str] = None,
        security_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if attempted_path:
            # Don't expose full paths in error details
            details["attempted_path"] = "***REDACTED***"
        if security_type:
            details["security_type"] = security_type
        super().__init__(message, recoverable=False, details=details, **kwargs)


class ProviderError(ShortsError):
    """Errors returned by an external service."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if provider:
            details["provider"] = provider
        if status_code:
            details["status_code"] = status_code
        if response_body:
            # Truncate large responses
            details["response_body"] = response_body[:500] if len(response_body) > 500 else response_body

        # Server-side and throttling errors are worth another status check
        recoverable = kwargs.pop("recoverable", status_code in (429, 500, 502, 503, 504) if status_code else False)
        super().__init__(message, recoverable=recoverable, details=details, **kwargs)


class SubmissionRejected(ProviderError):
    """A stage's submit call was refused (non-2xx, unreachable, or unusable input)."""

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if reason:
            details["reason"] = reason
        kwargs.setdefault("recoverable", False)
        super().__init__(message, details=details, **kwargs)


class FormatIncompatible(SubmissionRejected):
    """
    An artifact URL does not point at a directly usable video.

    Reported under the ``SubmissionRejected`` kind: the next stage would refuse
    the input, so it is surfaced instead of being rewritten.
    """

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if url:
            details["url"] = url[:200]
        super().__init__(
            message,
            reason="format_incompatible",
            code="SubmissionRejected",
            details=details,
            **kwargs,
        )


class PollingTimedOut(ShortsError):
    """A job did not reach a terminal state in time."""

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        attempts: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if job_id:
            details["job_id"] = job_id
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        if attempts:
            details["attempts"] = attempts
        super().__init__(message, details=details, **kwargs)


class ExternalJobFailed(ShortsError):
    """An external job reported a terminal failure status."""

    def __init__(self, message: str, job_id: Optional[str] = None, status: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if job_id:
            details["job_id"] = job_id
        if status:
            details["status"] = status
        super().__init__(message, recoverable=False, details=details, **kwargs)


class MalformedSuccessResponse(ShortsError):
    """A job claimed success but carried no usable result."""

    def __init__(self, message: str, job_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if job_id:
            details["job_id"] = job_id
        super().__init__(message, recoverable=False, details=details, **kwargs)


class DownloadFailed(ShortsError):
    """An artifact download returned something other than HTTP 200."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if url:
            details["url"] = url[:200]
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details=details, **kwargs)


class EmptyArtifact(ShortsError):
    """A download succeeded at the HTTP layer but produced zero bytes."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if url:
            details["url"] = url[:200]
        super().__init__(message, details=details, **kwargs)


class CompositingFailed(ShortsError):
    """The external compositing tool exited non-zero, hung, or produced nothing."""

    def __init__(
        self,
        message: str,
        diagnostic_output: str = "",
        exit_code: Optional[int] = None,
        timed_out: bool = False,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if exit_code is not None:
            details["exit_code"] = exit_code
        if timed_out:
            details["timed_out"] = True
        super().__init__(message, details=details, **kwargs)
        self.diagnostic_output = diagnostic_output


class Cancelled(ShortsError):
    """The run was cancelled or ran past its deadline."""

    def __init__(self, message: str = "Pipeline cancelled", **kwargs):
        super().__init__(message, recoverable=False, **kwargs)


class PipelineError(ShortsError):
    """
    The single failure object returned by the orchestrator.

    Carries the stage that failed, the kind of the original error and its
    message. ``status_code`` is the upstream HTTP status where one exists.
    """

    def __init__(
        self,
        stage: str,
        kind: str,
        detail: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(f"{stage} failed ({kind}): {detail}", details=details)
        self.stage = stage
        self.kind = kind
        self.detail = detail
        self.upstream_status = status_code

    @property
    def status_code(self) -> Optional[int]:
        return self.upstream_status

    @classmethod
    def from_error(cls, stage: str, error: ShortsError) -> "PipelineError":
        """Attach a stage name to a stage-level error."""
        return cls(
            stage=stage,
            kind=error.code,
            detail=error.message,
            status_code=error.status_code,
            details=dict(error.details),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "error": self.message,
            "stage": self.stage,
            "kind": self.kind,
            "detail": self.detail,
        }
        if self.upstream_status is not None:
            data["status_code"] = self.upstream_status
        return data
