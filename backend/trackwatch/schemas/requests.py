"""
API Request Schemas

Pydantic models for API requests.
Used for OpenAPI documentation and request validation.
"""

from pydantic import BaseModel, Field, field_validator


class AddTorrentRequest(BaseModel):
    """Request model for tracking a new torrent page."""
    url: str = Field(
        ...,
        description="Tracker page URL",
        max_length=1000,
        examples=["https://kinozal.tv/details.php?id=1234567"]
    )
    download_path: str = Field(
        "",
        description="Save path in the download client. Empty for the default.",
        max_length=1000,
        examples=["/downloads/movies"]
    )

    @field_validator('url')
    @classmethod
    def strip_url(cls, value: str) -> str:
        return value.strip()

    model_config = {
        "json_schema_extra": {
            "example": {
                "url": "https://rutracker.org/forum/viewtopic.php?t=6543210",
                "download_path": "/downloads/series"
            }
        }
    }


class RemoveTorrentRequest(BaseModel):
    """Request model for removing a tracked torrent."""
    id: int = Field(..., description="Tracked torrent ID", ge=1)


class WatchRequest(BaseModel):
    """Request model for setting the watch interval."""
    id: int = Field(..., description="Tracked torrent ID", ge=1)
    watch_every: int = Field(
        ...,
        description="Check interval in minutes, 0 to stop watching",
        ge=0,
        examples=[30]
    )
