"""
Torrent API Routes for Trackwatch

RESTful endpoints for the tracked torrents.

API Endpoints:
    GET    /api/torrents        - List tracked torrents
    GET    /api/download-paths  - Save paths known to the download client
    POST   /api/add             - Track a tracker page and push its torrent
    DELETE /api/remove          - Stop tracking and remove torrent and files
    POST   /api/watch           - Set the watch interval of a torrent
    GET    /api/check-info      - Last check outcome per tracked URL

Usage:
    These routes are registered in main.py. They only talk to the
    WatchService found on the application state.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request

from ..schemas.requests import AddTorrentRequest, RemoveTorrentRequest, WatchRequest
from ..schemas.responses import (
    AddTorrentResponse,
    CheckInfoResponse,
    SuccessResponse,
    TrackedItemResponse,
)
from ..services.exceptions import TrackwatchError
from ..services.ingest_service import STATUS_FAILURE
from ..services.watch_service import WatchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["torrents"])


def get_watch_service(request: Request) -> WatchService:
    """FastAPI dependency returning the engine's front-end facade."""
    return request.app.state.engine.service


@router.get("/torrents", response_model=List[TrackedItemResponse])
async def list_torrents(service: WatchService = Depends(get_watch_service)):
    items = await service.list_tracked_items()
    return [item.to_dict() for item in items]


@router.get("/download-paths", response_model=List[str])
async def list_download_paths(service: WatchService = Depends(get_watch_service)):
    """Distinct save paths of the download client, most frequently used first."""
    try:
        return await service.download_paths()
    except TrackwatchError as e:
        logger.error(f"✗ Could not list download paths: {e}")
        raise HTTPException(status_code=502, detail=e.message)


@router.post("/add", response_model=AddTorrentResponse)
async def add_torrent(body: AddTorrentRequest, service: WatchService = Depends(get_watch_service)):
    """
    Track a tracker page.

    Returns:
        200: Torrent added ("success") or already in the client ("duplicate")
        400: Empty URL or no tracker for the URL's host
        502: Tracker or download client failure
    """
    if not body.url:
        raise HTTPException(status_code=400, detail="url is required")

    result = await service.submit_url(body.url, body.download_path)
    if result.status == STATUS_FAILURE:
        status_code = 400 if result.error_type == "UnknownTrackerError" else 502
        raise HTTPException(status_code=status_code, detail=result.error)

    return result.to_dict()


@router.delete("/remove", response_model=SuccessResponse)
async def remove_torrent(body: RemoveTorrentRequest, service: WatchService = Depends(get_watch_service)):
    try:
        item = await service.remove_item(body.id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TrackwatchError as e:
        logger.error(f"✗ Could not remove torrent {body.id}: {e}")
        raise HTTPException(status_code=502, detail=e.message)

    return {"success": True, "message": f"Torrent {item.title or item.url} removed"}


@router.post("/watch", response_model=TrackedItemResponse)
async def set_watch(body: WatchRequest, service: WatchService = Depends(get_watch_service)):
    try:
        item = await service.set_watch(body.id, body.watch_every)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return item.to_dict()


@router.get("/check-info", response_model=Dict[str, CheckInfoResponse])
async def check_info(service: WatchService = Depends(get_watch_service)):
    return await service.check_infos()
