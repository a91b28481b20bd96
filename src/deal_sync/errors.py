"""
Custom exceptions and error handling for the HubSpot deal sync engine.

Provides:
- Typed exception hierarchy for different failure modes
- Error context preservation for debugging
- Partial success handling for batch writes
- Mapping of httpx responses/exceptions onto the hierarchy
"""

from dataclasses import dataclass, field
from typing import Any

import httpx


class DealSyncError(Exception):
    """Base exception for all deal sync errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(DealSyncError):
    """Base class for client-related errors."""

    pass


class HubSpotError(ClientError):
    """
    A HubSpot request failed.

    Raised for every non-2xx response. ``status`` is the HTTP status code,
    or None when the request never produced a response.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.status = status


class HubSpotAuthError(HubSpotError):
    """Token missing, expired, or lacking the required scopes (401/403)."""

    pass


class HubSpotNotFoundError(HubSpotError):
    """Requested object does not exist (404)."""

    pass


class HubSpotRateLimitError(HubSpotError):
    """Rate limit exceeded on the HubSpot API (429)."""

    def __init__(
        self,
        message: str,
        status: int | None = 429,
        retry_after: float | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, status=status, context=context)
        self.retry_after = retry_after


class HubSpotConnectionError(HubSpotError):
    """Network failure or timeout before a response was received."""

    pass


class PersistenceError(ClientError):
    """Error from the deal store."""

    pass


# =============================================================================
# Sync Errors
# =============================================================================


class SyncError(DealSyncError):
    """Base class for sync-related errors."""

    pass


class PipelineNotFoundError(SyncError):
    """The requested pipeline id is not among the portal's deal pipelines."""

    def __init__(self, pipeline_id: str, available: list[str] | None = None):
        super().__init__(
            f"Pipeline '{pipeline_id}' not found",
            context={'pipeline_id': pipeline_id, 'available': available or []},
        )
        self.pipeline_id = pipeline_id
        self.available = available or []


class EngagementFetchError(SyncError):
    """One retrieval strategy failed for one engagement type."""

    def __init__(
        self,
        message: str,
        engagement_type: str,
        strategy: str,
        context: dict[str, Any] | None = None,
    ):
        ctx = dict(context or {})
        ctx.setdefault('engagement_type', engagement_type)
        ctx.setdefault('strategy', strategy)
        super().__init__(message, context=ctx)
        self.engagement_type = engagement_type
        self.strategy = strategy


class SyncAbortedError(SyncError):
    """The sync budget ran out or was cancelled."""

    pass


class SyncTimeoutError(SyncAbortedError):
    """The sync budget's deadline passed."""

    pass


class SyncCancelledError(SyncAbortedError):
    """The caller cancelled the sync budget."""

    pass


# =============================================================================
# Partial Success Handling
# =============================================================================


@dataclass
class ItemResult:
    """Result for a single item in a batch operation."""

    item_id: str | None
    success: bool
    error: DealSyncError | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PartialSuccessResult:
    """
    Result of a batch operation that may partially succeed.

    Allows processing to continue even when some items fail,
    while preserving error context for debugging.
    """

    succeeded: list[ItemResult] = field(default_factory=list)
    failed: list[ItemResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total_count(self) -> int:
        return self.success_count + self.failure_count

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0

    def add_success(
        self,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a successful item."""
        self.succeeded.append(
            ItemResult(item_id=item_id, success=True, data=data or {})
        )

    def add_failure(
        self,
        error: DealSyncError,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a failed item."""
        self.failed.append(
            ItemResult(item_id=item_id, success=False, error=error, data=data or {})
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'total_count': self.total_count,
            'all_succeeded': self.all_succeeded,
            'succeeded_ids': [r.item_id for r in self.succeeded if r.item_id],
            'failed_ids': [r.item_id for r in self.failed if r.item_id],
            'errors': [
                {'item_id': r.item_id, 'error': str(r.error)}
                for r in self.failed
                if r.error
            ],
        }


# =============================================================================
# Error Handling Utilities
# =============================================================================


def error_from_response(response: httpx.Response) -> HubSpotError:
    """
    Build a typed HubSpotError from a non-2xx response.

    The message comes from the body's ``message`` field when the body is
    JSON, otherwise a generic string.

    Args:
        response: The failed response

    Returns:
        HubSpotError subclass matching the status code
    """
    status = response.status_code
    detail = None
    try:
        body = response.json()
        if isinstance(body, dict):
            detail = body.get('message')
    except ValueError:
        detail = None
    detail = detail or 'Unknown error'

    message = f"HubSpot API error: {status} - {detail}"
    try:
        ctx = {'path': response.request.url.path}
    except RuntimeError:
        # Response built without a request
        ctx = {}

    if status in (401, 403):
        return HubSpotAuthError(message, status=status, context=ctx)
    if status == 404:
        return HubSpotNotFoundError(message, status=status, context=ctx)
    if status == 429:
        retry_after = None
        raw = response.headers.get('Retry-After')
        if raw:
            try:
                retry_after = float(raw)
            except ValueError:
                retry_after = None
        return HubSpotRateLimitError(
            message, status=status, retry_after=retry_after, context=ctx
        )
    return HubSpotError(message, status=status, context=ctx)


def wrap_http_error(exc: httpx.HTTPError, context: dict[str, Any] | None = None) -> HubSpotError:
    """
    Wrap an httpx transport exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        HubSpotConnectionError carrying the original error
    """
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if isinstance(exc, httpx.TimeoutException):
        return HubSpotConnectionError(f"HubSpot request timed out: {exc}", context=ctx)
    return HubSpotConnectionError(f"HubSpot request failed: {exc}", context=ctx)
