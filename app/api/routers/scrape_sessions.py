"""
Scrape session endpoints: start, process, stop, live status and lookups.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from app.api.dependencies import Principal, require_principal
from app.config import EventStreamSettings, get_event_stream_settings
from app.domain.scrape_session import ScrapeSession, SessionProgress
from app.schemas.scrape_session import (
    BusinessResponse,
    LogEntryResponse,
    ProcessScrapeRequest,
    ProcessScrapeResponse,
    ProviderLookupRequest,
    ProviderLookupResponse,
    SessionListResponse,
    SessionProgressResponse,
    SessionSnapshotResponse,
    SessionSummaryResponse,
    StartScrapeRequest,
    StartScrapeResponse,
    StopScrapeResponse,
)
from app.scraping.errors import PersistenceError, SessionNotFoundError
from app.scraping.providers.phone import normalize_phone
from app.services.event_bus import stream_events
from app.services.scrape_runtime import ScrapeRuntime, default_session_config, get_scrape_runtime
from app.validators.scrape_session_validator import ScrapeRequestValidationError

router = APIRouter(tags=["scrape-sessions"])


def _progress_response(progress: SessionProgress) -> SessionProgressResponse:
    return SessionProgressResponse(**progress.to_dict())


def _not_found(exc: SessionNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _persistence_failed(exc: PersistenceError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/scrape/start", response_model=StartScrapeResponse)
def start_scrape(
    payload: StartScrapeRequest,
    principal: Principal = Depends(require_principal),
    runtime: ScrapeRuntime = Depends(get_scrape_runtime),
) -> StartScrapeResponse:
    try:
        session = runtime.session_service.start(
            owner_id=principal.user_id,
            towns=payload.towns,
            industries=payload.industries,
            config=payload.config,
        )
    except ScrapeRequestValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_dict()) from exc
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc

    return StartScrapeResponse(session_id=session.id)


@router.post("/scrape/process", response_model=ProcessScrapeResponse)
def process_scrape(
    payload: ProcessScrapeRequest,
    principal: Principal = Depends(require_principal),
    runtime: ScrapeRuntime = Depends(get_scrape_runtime),
) -> ProcessScrapeResponse:
    try:
        result = runtime.orchestrator.step(payload.session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc

    return ProcessScrapeResponse(
        status=result.status,
        progress=_progress_response(result.progress),
        has_more=result.has_more,
    )


@router.post("/scrape/stop/{session_id}", response_model=StopScrapeResponse)
def stop_scrape(
    session_id: str,
    principal: Principal = Depends(require_principal),
    runtime: ScrapeRuntime = Depends(get_scrape_runtime),
) -> StopScrapeResponse:
    try:
        result = runtime.session_service.stop(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc

    return StopScrapeResponse(status=result.status, businesses_collected=result.businesses_collected)


@router.get("/scrape/status/{session_id}")
async def stream_scrape_status(
    session_id: str,
    request: Request,
    principal: Principal = Depends(require_principal),
    runtime: ScrapeRuntime = Depends(get_scrape_runtime),
    stream_settings: EventStreamSettings = Depends(get_event_stream_settings),
) -> StreamingResponse:
    try:
        subscription = runtime.event_bus.subscribe(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc

    return StreamingResponse(
        stream_events(
            subscription,
            heartbeat_seconds=stream_settings.heartbeat_seconds,
            close_delay_seconds=stream_settings.close_delay_seconds,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/scrape/status-poll/{session_id}", response_model=SessionSnapshotResponse)
def poll_scrape_status(
    session_id: str,
    principal: Principal = Depends(require_principal),
    runtime: ScrapeRuntime = Depends(get_scrape_runtime),
) -> SessionSnapshotResponse:
    try:
        session = runtime.session_service.snapshot(
            session_id,
            log_limit=runtime.settings.log_snapshot_limit,
        )
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc

    return _snapshot_response(session)


@router.get("/scrape/sessions", response_model=SessionListResponse)
def list_scrape_sessions(
    principal: Principal = Depends(require_principal),
    runtime: ScrapeRuntime = Depends(get_scrape_runtime),
) -> SessionListResponse:
    try:
        sessions = runtime.session_service.list_sessions(owner_id=principal.user_id)
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc

    return SessionListResponse(
        sessions=[
            SessionSummaryResponse(
                session_id=session.id,
                status=session.status,
                progress=_progress_response(session.progress),
                created_at=session.created_at,
                completed_at=session.completed_at,
            )
            for session in sessions
        ]
    )


@router.post("/lookup", response_model=ProviderLookupResponse)
def lookup_provider(
    payload: ProviderLookupRequest,
    principal: Principal = Depends(require_principal),
    runtime: ScrapeRuntime = Depends(get_scrape_runtime),
) -> ProviderLookupResponse:
    if not normalize_phone(payload.phone_number):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Phone number must contain digits.",
        )

    lookup_service = runtime.lookup_service_factory(default_session_config(runtime.settings))
    try:
        phone_number, provider = lookup_service.lookup_single(payload.phone_number)
    finally:
        lookup_service.cleanup()
    return ProviderLookupResponse(phone_number=phone_number, provider=provider)


def _snapshot_response(session: ScrapeSession) -> SessionSnapshotResponse:
    return SessionSnapshotResponse(
        session_id=session.id,
        status=session.status,
        towns=list(session.towns),
        industries=list(session.industries),
        progress=_progress_response(session.progress),
        businesses=[BusinessResponse(**business.to_dict()) for business in session.results],
        logs=[
            LogEntryResponse(timestamp=entry.timestamp, message=entry.message, level=entry.level)
            for entry in session.logs
        ],
        created_at=session.created_at,
        completed_at=session.completed_at,
    )
