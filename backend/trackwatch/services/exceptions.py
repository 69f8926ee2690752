"""
Typed Exception Hierarchy for Trackwatch

This module defines the exceptions raised by tracker adapters and the
download client session, together with the retry helpers used for
transient network failures.

Exception Hierarchy:
    TrackwatchError (base, non-retryable)
    ├── NetworkRetryableError (retryable with exponential backoff)
    ├── AuthExpiredError (one re-authentication per call, then fatal)
    ├── InvalidCredentialsError (permanent)
    ├── TrackerAPIError (tracker-side failure)
    │   ├── UnknownTrackerError (permanent, no tracker for the URL host)
    │   ├── IdentityNotFoundError (bounded retries exhausted, "hash is empty")
    │   └── NotAPayloadError (tracker served an HTML page instead of a torrent)
    ├── DownloadClientError (download client failure)
    │   └── EntryNotFoundError (hash unknown to the download client)
    └── NotificationError (notification channel rejected a message)

The @retry_on_network_error decorator retries coroutine functions with:
    - Configurable number of retries
    - Exponential backoff: base_delay * 2^n seconds
    - Logging of every retry attempt
"""

import asyncio
import functools
import logging
from typing import Callable, TypeVar, ParamSpec

logger = logging.getLogger(__name__)

# Type variables for generic decorator typing
P = ParamSpec('P')
T = TypeVar('T')


# ============================================================================
# Exception Hierarchy
# ============================================================================

class TrackwatchError(Exception):
    """
    Base exception for all engine errors (non-retryable).

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code if applicable
        response_data: Raw response data for debugging
    """

    def __init__(self, message: str, status_code: int = None, response_data: dict = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_data = response_data

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.__class__.__name__} (HTTP {self.status_code}): {self.message}"
        return f"{self.__class__.__name__}: {self.message}"


class NetworkRetryableError(TrackwatchError):
    """
    Transient network failure (retryable).

    Use this for:
    - Connection timeouts
    - DNS resolution failures
    - Temporary service unavailability (HTTP 502/503/504)
    - Rate limiting (HTTP 429)

    Periodic callers simply retry on their next tick.
    """

    def __init__(self, message: str, original_exception: Exception = None, retry_after: int = None):
        """
        Initialize NetworkRetryableError.

        Args:
            message: Human-readable error description
            original_exception: Original exception that triggered this error
            retry_after: Suggested retry delay in seconds (e.g., from Retry-After header)
        """
        super().__init__(message)
        self.original_exception = original_exception
        self.retry_after = retry_after


class AuthExpiredError(TrackwatchError):
    """
    Session was rejected even after one re-authentication.

    Raised on the second authorization failure inside a single call so that
    revoked credentials never cause an endless login loop.
    """
    pass


class InvalidCredentialsError(TrackwatchError):
    """Login was refused because the username or password is wrong."""
    pass


class TrackerAPIError(TrackwatchError):
    """Base exception for tracker-side failures."""
    pass


class UnknownTrackerError(TrackerAPIError):
    """No configured tracker handles the URL's host."""

    def __init__(self, url: str, message: str = None):
        super().__init__(message or f"no suitable tracker found for URL: {url}")
        self.url = url


class IdentityNotFoundError(TrackerAPIError):
    """
    Tracker never returned a content hash.

    Raised after the bounded fetch-then-relogin loop is exhausted. The
    message is always "hash is empty".
    """

    def __init__(self, url: str = None, attempts: int = None):
        super().__init__("hash is empty")
        self.url = url
        self.attempts = attempts


class NotAPayloadError(TrackerAPIError):
    """Downloaded body is an HTML page rather than a torrent file."""
    pass


class DownloadClientError(TrackwatchError):
    """Base exception for download client (qBittorrent) failures."""
    pass


class EntryNotFoundError(DownloadClientError):
    """The download client has no entry for the requested hash."""

    def __init__(self, torrent_hash: str):
        super().__init__(f"torrent {torrent_hash} not found in download client")
        self.torrent_hash = torrent_hash


class NotificationError(TrackwatchError):
    """Notification channel rejected a message."""
    pass


# ============================================================================
# Retry Decorator
# ============================================================================

def retry_on_network_error(
    max_retries: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: int = 2,
    retryable_exceptions: tuple = (NetworkRetryableError,)
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for automatic retry of a coroutine function with exponential
    backoff on network errors.

    delay = min(base_delay * (exponential_base ^ attempt), max_delay)

    Args:
        max_retries: Maximum number of retry attempts (default: 5)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)
        exponential_base: Base for exponential calculation (default: 2)
        retryable_exceptions: Tuple of exception types to retry

    Returns:
        Decorated function with retry logic

    Example:
        @retry_on_network_error(max_retries=3)
        async def send_message(text):
            ...
    """

    def _delay_for(attempt: int, error: Exception) -> float:
        delay = min(base_delay * (exponential_base ** attempt), max_delay)
        if isinstance(error, NetworkRetryableError) and error.retry_after:
            delay = min(error.retry_after, max_delay)
        return delay

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    if attempt >= max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func.__name__}. "
                            f"Final error: {e}"
                        )
                        raise
                    delay = _delay_for(attempt, e)
                    logger.warning(
                        f"Attempt {attempt + 1}/{max_retries} failed for {func.__name__}: {e}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                except TrackwatchError as e:
                    logger.error(f"Non-retryable error in {func.__name__}: {e}. Not retrying.")
                    raise

        return wrapper

    return decorator


# ============================================================================
# Convenience Functions
# ============================================================================

def classify_http_error(status_code: int, message: str, response_data: dict = None) -> TrackwatchError:
    """
    Classify an HTTP error status into the matching exception type.

    Args:
        status_code: HTTP status code
        message: Error message
        response_data: Optional response data for debugging

    Returns:
        Exception instance (not raised) for the status code
    """
    if status_code == 429:
        retry_after = None
        if response_data and 'retry_after' in response_data:
            retry_after = int(response_data['retry_after'])
        return NetworkRetryableError(
            message=f"Rate limited: {message}",
            retry_after=retry_after
        )

    if status_code in (502, 503, 504):
        return NetworkRetryableError(
            message=f"Service temporarily unavailable (HTTP {status_code}): {message}"
        )

    if status_code in (401, 403):
        return AuthExpiredError(
            message=message,
            status_code=status_code,
            response_data=response_data
        )

    return TrackerAPIError(
        message=message,
        status_code=status_code,
        response_data=response_data
    )
