"""
API Response Schemas

Pydantic models for standardized API responses.
Used for OpenAPI documentation and response validation.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


# ============================================================================
# Base Response Models
# ============================================================================

class SuccessResponse(BaseModel):
    """Standard success response."""
    success: bool = Field(True, description="Operation success status")
    message: str = Field(..., description="Success message")


# ============================================================================
# Torrent Responses
# ============================================================================

class TrackedItemResponse(BaseModel):
    """A tracked torrent."""
    id: int = Field(..., description="Tracked torrent ID")
    url: str = Field(..., description="Tracker page URL")
    title: str = Field("", description="Display title")
    name: str = Field("", description="Release name reported by the tracker")
    hash: str = Field("", description="Lowercase hex info-hash")
    save_path: str = Field("", description="Save path in the download client")
    watch_every: int = Field(0, description="Watch interval in minutes, 0 when not watched")

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": 1,
                "url": "https://kinozal.tv/details.php?id=1234567",
                "title": "Some Show / Season 1",
                "name": "Some.Show.S01.1080p",
                "hash": "0123456789abcdef0123456789abcdef01234567",
                "save_path": "/downloads/series",
                "watch_every": 30
            }
        }
    }


class AddTorrentResponse(BaseModel):
    """Outcome of adding a torrent page."""
    status: str = Field(..., description="success or duplicate")
    item: Optional[TrackedItemResponse] = Field(None, description="Stored torrent, when known")
    error: Optional[str] = Field(None, description="Reason for a duplicate")


class CheckInfoResponse(BaseModel):
    """Last check outcome of one tracked URL."""
    last_check_time: str = Field(..., description="RFC 3339 timestamp")
    last_check_success: bool = Field(..., description="Whether the check succeeded")


# ============================================================================
# Health Check Responses
# ============================================================================

class ServiceHealthResponse(BaseModel):
    """Health status for a single service."""
    service: str = Field(..., description="Service name")
    status: str = Field(..., description="Health status (healthy, unhealthy, degraded)")
    message: Optional[str] = Field(None, description="Status message")
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    version: Optional[str] = Field(None, description="Service version if available")


class HealthResponse(BaseModel):
    """Overall health response."""
    status: str = Field(..., description="Overall status (healthy, degraded, unhealthy)")
    timestamp: str = Field(..., description="Check timestamp")
    version: str = Field(..., description="Application version")
    services: Dict[str, ServiceHealthResponse] = Field(default_factory=dict)
    engine: Optional[Dict[str, Any]] = Field(None, description="Watcher and supervisor status")
