"""FastAPI application serving recording data and chart specs."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from uvicorn import Config, Server

from ensayo_viewer import __version__
from ensayo_viewer.config.settings import Settings, load_settings
from ensayo_viewer.errors import AmbiguousChannel, InvalidArgument, SourceUnavailable, UnknownDevice, ViewerError

from .data_access import ViewerServices, build_services, parse_channels, parse_time_range
from .schemas import ChartBundle, HealthStatus

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

_services: Optional[ViewerServices] = None


def get_services() -> ViewerServices:
    global _services  # noqa: PLW0603
    if _services is None:
        _services = build_services(load_settings())
    return _services


def _budget(max_points: Optional[int], services: ViewerServices) -> int:
    if max_points is None:
        return services.settings.sampling.point_budget
    if max_points < 1:
        raise InvalidArgument("maxPoints must be at least 1")
    return max_points


@router.get("/health")
async def health() -> Dict[str, Any]:
    return HealthStatus(timestamp=datetime.now(tz=timezone.utc).isoformat()).model_dump()


@router.get("/ensayos")
async def list_ensayos(services: ViewerServices = Depends(get_services)) -> List[Dict[str, Any]]:
    return [row.model_dump() for row in services.list_ensayos()]


@router.get("/tables")
async def list_tables(services: ViewerServices = Depends(get_services)) -> List[Dict[str, str]]:
    return [row.model_dump() for row in services.list_tables()]


@router.get("/channels/all")
async def all_channels(services: ViewerServices = Depends(get_services)) -> Dict[str, List[Dict[str, Any]]]:
    return {device: [row.model_dump() for row in rows] for device, rows in services.all_channels().items()}


@router.get("/channels/{table}")
async def table_channels(table: str, services: ViewerServices = Depends(get_services)) -> List[Dict[str, Any]]:
    return [row.model_dump() for row in services.channels(table)]


@router.get("/data/{table}")
async def table_data(
    table: str,
    ensayo: str = Query(""),
    channels: str = Query(""),
    startTime: Optional[str] = Query(None),
    endTime: Optional[str] = Query(None),
    maxPoints: Optional[int] = Query(None),
    method: Optional[str] = Query(None),
    services: ViewerServices = Depends(get_services),
) -> Dict[str, Any]:
    channel_list = parse_channels(channels)
    if not ensayo or not channel_list:
        raise InvalidArgument("Missing required parameters: ensayo, channels")
    window = parse_time_range(startTime, endTime)
    response = await services.executor.execute(
        table,
        ensayo,
        channel_list,
        window,
        _budget(maxPoints, services),
        method=method,
    )
    return response.to_payload()


@router.get("/data")
async def data(
    ensayo: str = Query(""),
    channels: str = Query(""),
    startTime: Optional[str] = Query(None),
    endTime: Optional[str] = Query(None),
    maxPoints: Optional[int] = Query(None),
    method: Optional[str] = Query(None),
    services: ViewerServices = Depends(get_services),
) -> Dict[str, Any]:
    window = parse_time_range(startTime, endTime)
    response = await services.get_data(
        parse_channels(channels),
        ensayo,
        window,
        _budget(maxPoints, services),
        method=method,
    )
    return response.to_payload()


@router.get("/charts")
async def charts(
    ensayo: str = Query(""),
    channels: str = Query(""),
    startTime: Optional[str] = Query(None),
    endTime: Optional[str] = Query(None),
    maxPoints: Optional[int] = Query(None),
    zoomStart: float = Query(0.0, ge=0.0, le=100.0),
    zoomEnd: float = Query(100.0, ge=0.0, le=100.0),
    services: ViewerServices = Depends(get_services),
) -> Dict[str, Any]:
    """Overview plus detail for a selection.

    An explicit ``startTime``/``endTime`` window sets the detail view;
    otherwise the detail view follows the span the slider leaves visible.
    """
    selection = parse_channels(channels)
    if not ensayo or not selection:
        return ChartBundle().model_dump()
    window = parse_time_range(startTime, endTime)
    session = services.session(_budget(maxPoints, services))

    if not await session.load(selection, ensayo):
        raise session.exception
    visible = session.apply_slider(zoomStart, zoomEnd)
    if window is None and (zoomStart, zoomEnd) != (0.0, 100.0):
        window = visible
    if window is not None and not await session.zoom(window):
        raise session.exception

    bundle = ChartBundle(
        overview=session.overview_spec,
        detail=session.detail_spec,
        metadata=session.metadata.metadata(),
    )
    return bundle.model_dump()


@router.get("/stats/{table}")
async def stats(
    table: str,
    ensayo: str = Query(""),
    services: ViewerServices = Depends(get_services),
) -> Dict[str, Any]:
    result = await services.stats(table, ensayo)
    return result.model_dump()


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    origins = settings.server.cors_origins if settings else ["*"]
    application = FastAPI(title="Ensayo Viewer", version=__version__)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    application.include_router(router)

    @application.exception_handler(UnknownDevice)
    async def _unknown_device(request: Request, exc: UnknownDevice) -> JSONResponse:
        return _error_response(404, exc)

    @application.exception_handler(InvalidArgument)
    async def _invalid_argument(request: Request, exc: InvalidArgument) -> JSONResponse:
        return _error_response(400, exc)

    @application.exception_handler(AmbiguousChannel)
    async def _ambiguous_channel(request: Request, exc: AmbiguousChannel) -> JSONResponse:
        return _error_response(409, exc)

    @application.exception_handler(SourceUnavailable)
    async def _source_unavailable(request: Request, exc: SourceUnavailable) -> JSONResponse:
        LOGGER.error("Source unavailable for %s: %s", request.url.path, exc)
        return _error_response(503, exc)

    @application.exception_handler(ViewerError)
    async def _viewer_error(request: Request, exc: ViewerError) -> JSONResponse:
        LOGGER.error("Request %s failed: %s", request.url.path, exc)
        return _error_response(500, exc)

    @application.get("/", include_in_schema=False)
    async def root_redirect() -> RedirectResponse:
        return RedirectResponse(url="/docs")

    return application


app = create_app()


def start_ui(host: str, port: int, open_browser: bool = True, settings: Optional[Settings] = None) -> None:
    """Start the API server via uvicorn."""
    global _services, app  # noqa: PLW0603
    if settings is not None:
        _services = build_services(settings)
        app = create_app(settings)

    config = Config(app=app, host=host, port=port, log_level="info")
    server = Server(config=config)

    if open_browser:
        url = f"http://{host}:{port}/docs"

        def _open() -> None:
            webbrowser.open(url)

        async def _serve() -> None:
            asyncio.get_running_loop().call_later(1.0, _open)
            await server.serve()

        asyncio.run(_serve())
        return

    asyncio.run(server.serve())
