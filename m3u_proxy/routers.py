from pathlib import Path
import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from m3u_proxy import __version__
from m3u_proxy.config import ConfigError, load_proxy_config, settings
from m3u_proxy.services import (
    refresh_and_process,
    refresh_scheduler
)
from m3u_proxy.services.refresh_coordinator import get_refresh_coordinator


logger = logging.getLogger(__name__)

main_router = APIRouter()

MEDIA_TYPES = {
    ".m3u": "audio/x-mpegurl",
    ".xml": "application/xml",
}


@main_router.get("/")
async def root() -> dict:
    """Root endpoint with service information"""
    next_run = refresh_scheduler.get_next_run_time()

    return {
        "service": "m3u-proxy",
        "version": __version__,
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "refresh": "/refresh - Manually trigger a full refresh (POST)",
            "exports": "/exports/{filename} - Generated playlists and guides",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check() -> dict:
    """Health check endpoint"""
    return {
        "status": "ok",
        **get_refresh_coordinator().status(),
        **refresh_scheduler.status(),
    }


@main_router.post("/refresh")
async def trigger_refresh() -> dict:
    """
    Manually trigger a full refresh

    Downloads every source, rebuilds its playlists and filters its guide
    """
    logger.info("Manual refresh triggered via API")
    result = await refresh_and_process(trigger="api")

    if "error" in result:
        raise HTTPException(status_code=500, detail=result["error"])

    return result


@main_router.get("/exports/{filename}")
async def get_export(filename: str) -> FileResponse:
    """
    Serve a generated playlist or guide

    Only names produced by the current configuration are served.
    """
    try:
        config = load_proxy_config(settings.config_path)
    except ConfigError as exc:
        logger.error(f"Cannot serve {filename}: {exc}")
        raise HTTPException(status_code=500, detail="Proxy configuration unavailable")

    if filename not in config.export_filenames():
        raise HTTPException(status_code=404, detail=f"Unknown export: {filename}")

    path = Path(config.export_folder) / filename
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"{filename} has not been generated yet")

    return FileResponse(path, media_type=MEDIA_TYPES.get(path.suffix, "application/octet-stream"))
