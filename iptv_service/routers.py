import asyncio
from datetime import date, datetime
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse, PlainTextResponse, Response

from iptv_service.dependencies import ServiceRegistry, get_registry
from iptv_service.errors import ConfigurationError, EmptyResultError, IptvError
from iptv_service.schemas import DiypEPGResponse, DiypProgram, HealthResponse, RefreshResponse
from iptv_service.services.guide_renderer import find_day_programs, render_guide
from iptv_service.services.playlist_renderer import (
    DIYP_CATCHUP_SOURCE,
    KODI_CATCHUP_SOURCE,
    CatchUpMode,
    PlaylistFormat,
    PlaylistOptions,
    parse_catchup_mode,
    render_playlist,
)
from iptv_service.services.scheduler_service import CHANNEL_JOB_ID, GUIDE_JOB_ID
from iptv_service.utils.timezone import today_in


logger = logging.getLogger(__name__)

main_router = APIRouter()

Registry = Annotated[ServiceRegistry, Depends(get_registry)]


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _time_format_source(cs_format: str) -> str:
    return KODI_CATCHUP_SOURCE if cs_format == "1" else DIYP_CATCHUP_SOURCE


def _catchup_source(mode: CatchUpMode, cs_format: str, custom: str | None) -> str:
    """Pick the catch-up suffix/query handed to the renderer for a mode"""
    if mode is CatchUpMode.CUSTOM:
        if custom:
            return custom
        logger.warning("Custom catch-up mode without catchupSource, falling back to DIYP format")
        return DIYP_CATCHUP_SOURCE
    return _time_format_source(cs_format)


def _render(registry: ServiceRegistry, fmt: PlaylistFormat, options: PlaylistOptions) -> Response:
    snapshot = registry.directory.current()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Channel list not loaded yet")

    try:
        playlist = render_playlist(snapshot, fmt, options)
    except EmptyResultError as exc:
        logger.error("Failed to render %s playlist: %s", fmt.value, exc)
        raise HTTPException(status_code=404, detail=str(exc))

    return PlainTextResponse(
        playlist.content,
        headers={
            "X-Rendered-Channels": str(playlist.rendered),
            "X-Skipped-Channels": str(len(playlist.skipped)),
        },
    )


@main_router.get("/")
async def root(registry: Registry) -> dict:
    """Root endpoint with service information"""
    return {
        "service": "IPTV Service",
        "version": "0.1.0",
        "next_channel_refresh": _isoformat(registry.scheduler.get_next_run_time(CHANNEL_JOB_ID)),
        "next_guide_refresh": _isoformat(registry.scheduler.get_next_run_time(GUIDE_JOB_ID)),
        "endpoints": {
            "m3u": "/channel/m3u - Extended M3U playlist",
            "txt": "/channel/txt - Grouped channel list",
            "xmltv": "/epg/xml - XMLTV program guide",
            "diyp": "/epg/json?ch=<name>&date=<YYYY-MM-DD> - DIYP program guide",
            "health": "/health - Health check",
        },
    }


@main_router.get("/health", response_model=HealthResponse)
async def health_check(registry: Registry) -> HealthResponse:
    """Health check endpoint"""
    snapshot = registry.directory.current()
    guide = registry.guide.current()
    return HealthResponse(
        status="ok" if snapshot is not None else "degraded",
        scheduler_running=registry.scheduler.running,
        channels=len(snapshot) if snapshot else 0,
        guide_channels=len(guide) if guide else 0,
        channels_refreshed_at=_isoformat(snapshot.refreshed_at) if snapshot else None,
        guide_refreshed_at=_isoformat(guide.refreshed_at) if guide else None,
    )


@main_router.get("/channel/m3u")
async def get_m3u(
    request: Request,
    registry: Registry,
    catch_up: Annotated[str, Query(alias="CatchUp")] = "0",
    cs_format: Annotated[str, Query(alias="csFormat")] = "0",
    custom_source: Annotated[str | None, Query(alias="catchupSource")] = None,
    multicast_first: Annotated[bool, Query(alias="multiFirst")] = True,
    udpxy: Annotated[str | None, Query()] = None,
) -> Response:
    """
    Extended M3U playlist

    Args:
        CatchUp: Catch-up mode 0-4 (default, append, flussonic, xdomo, custom)
        csFormat: Time format suffix for modes 0/1 (0 = DIYP, 1 = Kodi)
        catchupSource: Raw query string for mode 4
        multiFirst: Prefer multicast endpoints
        udpxy: Name of the udpxy proxy to rewrite multicast URLs through
    """
    try:
        mode = parse_catchup_mode(catch_up)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    options = PlaylistOptions(
        proxy_base_url=registry.settings.default_udpxy_url(udpxy),
        prefer_multicast=multicast_first,
        catchup_mode=mode,
        catchup_source=_catchup_source(mode, cs_format, custom_source),
        logo_base_url=f"{str(request.base_url).rstrip('/')}/logo",
        logo_exists=registry.logos.exists,
    )
    return _render(registry, PlaylistFormat.M3U, options)


@main_router.get("/channel/txt")
async def get_txt(
    registry: Registry,
    multicast_first: Annotated[bool, Query(alias="multiFirst")] = True,
    udpxy: Annotated[str | None, Query()] = None,
) -> Response:
    """Grouped channel list ("group,#genre#" headers)"""
    options = PlaylistOptions(
        proxy_base_url=registry.settings.default_udpxy_url(udpxy),
        prefer_multicast=multicast_first,
    )
    return _render(registry, PlaylistFormat.TXT, options)


@main_router.get("/epg/xml")
async def get_xmltv(
    registry: Registry,
    back_days: Annotated[int, Query(alias="backDays", ge=0)] = 0,
) -> Response:
    """XMLTV program guide, optionally limited to the last `backDays` days of history"""
    guide = registry.guide.current()
    if guide is None or not len(guide):
        raise HTTPException(status_code=404, detail="Program guide not loaded yet")

    content = render_guide(guide, back_days=back_days, today=today_in(registry.tz))
    return Response(content=content, media_type="application/xml")


def _parse_day(value: str | None, registry: ServiceRegistry) -> date:
    if not value:
        return today_in(registry.tz)
    for fmt in ("%Y-%m-%d", "%Y%m%d"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise HTTPException(status_code=400, detail=f"Invalid date: {value}. Use YYYY-MM-DD")


@main_router.get("/epg/json", response_model=DiypEPGResponse)
async def get_diyp_epg(
    registry: Registry,
    ch: Annotated[str, Query(min_length=1)],
    day: Annotated[str | None, Query(alias="date")] = None,
) -> DiypEPGResponse:
    """Single-day listing of one channel in DIYP format"""
    target = _parse_day(day, registry)
    guide = registry.guide.current()
    listing = find_day_programs(guide or (), ch, target)

    programs = []
    if listing is not None:
        programs = [
            DiypProgram(
                start=program.start.strftime("%H:%M"),
                end=program.end.strftime("%H:%M"),
                title=program.name,
            )
            for program in listing.programs
        ]
    return DiypEPGResponse(channel_name=ch, date=target.isoformat(), epg_data=programs)


@main_router.get("/logo/{filename}")
async def get_logo(filename: str, registry: Registry) -> FileResponse:
    """Serve a channel logo file"""
    path = registry.logos.path_for(filename)
    if path is None or not path.is_file():
        raise HTTPException(status_code=404, detail="Logo not found")
    return FileResponse(path, media_type="image/png")


@main_router.post("/refresh/channels", response_model=RefreshResponse)
async def refresh_channels(registry: Registry) -> RefreshResponse:
    """Manually refresh the channel directory (single attempt)"""
    logger.info("Manual channel refresh triggered via API")
    try:
        result = await registry.coordinator.execute("channels", registry.directory.refresh)
    except (IptvError, asyncio.TimeoutError) as exc:
        logger.error("Manual channel refresh failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))

    if result["status"] == "skipped":
        return RefreshResponse(status="skipped", message=result["message"])
    return RefreshResponse(status="success", count=len(result["result"]))


@main_router.post("/refresh/epg", response_model=RefreshResponse)
async def refresh_epg(registry: Registry) -> RefreshResponse:
    """Manually refresh the program guide"""
    logger.info("Manual guide refresh triggered via API")
    try:
        result = await registry.coordinator.execute(
            "epg", lambda: registry.guide.refresh(registry.directory)
        )
    except IptvError as exc:
        logger.error("Manual guide refresh failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))

    if result["status"] == "skipped":
        return RefreshResponse(status="skipped", message=result["message"])
    return RefreshResponse(status="success", count=len(result["result"]))
