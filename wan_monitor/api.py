"""
FastAPI application exposing WAN link status.

Endpoints
---------
- GET /health            -> Simple liveness check
- GET /api/isp-status    -> Poll the firewall, update the tracker, return both
- GET /api/system-info   -> SNMP system group (SNMP mode only)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from wan_monitor import acquisition
from wan_monitor.config import Settings, settings as default_settings
from wan_monitor.errors import AcquisitionError
from wan_monitor.schemas import ErrorResponse, InterfaceStatus, StatusResponse, SystemInfo
from wan_monitor.snmp_client import SnmpAcquisitionClient
from wan_monitor.tracker import StateTracker, short_window_seconds, utcnow

logger = logging.getLogger(__name__)

Fetcher = Callable[[Settings], Awaitable[List[InterfaceStatus]]]


def _json(model) -> JSONResponse:
    """Serialize with camelCase aliases, leaving out fields never set."""
    status_code = 500 if isinstance(model, ErrorResponse) else 200
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True, exclude_unset=True),
    )


def create_app(
    settings: Optional[Settings] = None,
    fetcher: Optional[Fetcher] = None,
) -> FastAPI:
    """
    Build the application.

    The tracker is created once per app (in the lifespan) and lives until
    shutdown; `fetcher` replaces the acquisition facade in tests.
    """
    settings = settings or default_settings
    fetcher = fetcher or acquisition.get_wan_statuses

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.require()
        app.state.settings = settings
        app.state.tracker = StateTracker()
        # Polls are serialized: the tracker is not safe under concurrent updates.
        app.state.poll_lock = asyncio.Lock()
        logger.info(
            "Monitoring %s via %s",
            ", ".join(settings.sonicwall_wan_interfaces),
            settings.fetch_method,
        )
        yield

    app = FastAPI(
        title="WAN Link Monitor API",
        version="0.1.0",
        lifespan=lifespan,
    )

    # -----------------------------------------------------------------------
    # Dependencies
    # -----------------------------------------------------------------------

    def get_settings(request: Request) -> Settings:
        return request.app.state.settings

    def get_tracker(request: Request) -> StateTracker:
        return request.app.state.tracker

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/health")
    def health() -> dict:
        """Simple liveness endpoint used for health checks."""
        return {"status": "ok"}

    @app.get("/api/isp-status", response_model=StatusResponse)
    async def isp_status(
        request: Request,
        settings: Settings = Depends(get_settings),
        tracker: StateTracker = Depends(get_tracker),
    ):
        """
        Run one poll and return it together with the tracker snapshot.

        A failed poll returns HTTP 500 with {"ok": false, "error": ...}
        and leaves the tracked state exactly as it was.
        """
        async with request.app.state.poll_lock:
            try:
                statuses = await fetcher(settings)
            except AcquisitionError as exc:
                logger.warning("Poll failed: %s", exc)
                return _json(ErrorResponse(ok=False, error=str(exc)))

            tracker.process(statuses)
            snapshot = tracker.snapshot()
            window = short_window_seconds(settings.poll_interval_seconds)
            bandwidth = tracker.bandwidth_summary(window)

        return _json(
            StatusResponse(
                ok=True,
                fetched_at=utcnow(),
                statuses=statuses,
                server_started_at=snapshot.server_started_at,
                isp_states=snapshot.isp_states,
                event_log=snapshot.event_log,
                isp_names={s.name: settings.display_name(s.name) for s in statuses},
                bandwidth=bandwidth,
                short_window_seconds=window,
            )
        )

    @app.get("/api/system-info", response_model=SystemInfo)
    async def system_info(settings: Settings = Depends(get_settings)):
        """SNMP system group of the firewall; only available with FETCH_METHOD=snmp."""
        if settings.fetch_method != "snmp":
            raise HTTPException(status_code=404, detail="System info requires FETCH_METHOD=snmp")
        info = await SnmpAcquisitionClient(settings).get_system_info()
        if info is None:
            raise HTTPException(status_code=503, detail="SNMP agent did not answer")
        return _json(info)

    return app


app = create_app()
