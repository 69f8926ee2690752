"""
API Schemas Package

Contains Pydantic models for API requests and responses.
These schemas are used for OpenAPI documentation and validation.
"""

from trackwatch.schemas.responses import (
    SuccessResponse,
    TrackedItemResponse,
    AddTorrentResponse,
    CheckInfoResponse,
    HealthResponse,
    ServiceHealthResponse,
)

from trackwatch.schemas.requests import (
    AddTorrentRequest,
    RemoveTorrentRequest,
    WatchRequest,
)

__all__ = [
    # Responses
    'SuccessResponse',
    'TrackedItemResponse',
    'AddTorrentResponse',
    'CheckInfoResponse',
    'HealthResponse',
    'ServiceHealthResponse',
    # Requests
    'AddTorrentRequest',
    'RemoveTorrentRequest',
    'WatchRequest',
]
