"""HTTP server - periodic trigger endpoints and the viewer/registration API."""
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel

from database.db import db
from database.models import SessionType
from webinar.config import Config
from webinar.container import ServiceContainer
from webinar.services.registration_service import RegistrationError
from webinar.services.viewer_service import ViewerContext
from webinar.utils.auth import is_authorized
from webinar.utils.datetime_utils import isoformat_utc

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

INVALID_TOKEN_DETAIL = "invalid or expired access token"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    logger.info("Starting webinar engine API...")
    try:
        config = Config.from_env()
        await db.connect()
        await db.require_schema()
        container = await ServiceContainer.create(config)
    except Exception as e:
        logger.error(f"Failed to start API server: {e}", exc_info=True)
        raise

    app.state.container = container
    try:
        yield
    finally:
        logger.info("Shutting down webinar engine API...")
        await container.cleanup()
        await db.disconnect()


app = FastAPI(
    lifespan=lifespan,
    title="Evergreen Webinar Engine",
    description="Session scheduling, access control and notifications for recurring webinars",
    version="1.0.0",
)


class _ProgressPayload(BaseModel):
    token: str
    positionSeconds: float


class _RegisterPayload(BaseModel):
    email: str
    firstName: Optional[str] = None
    sessionId: Optional[int] = None


def _container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="service not ready")
    return container


def _require_cron_secret(request: Request, container: ServiceContainer) -> None:
    if not is_authorized(request.headers, container.config.cron_secret):
        raise HTTPException(status_code=401, detail="unauthorized")


async def _viewer_from_token(container: ServiceContainer, token: str) -> ViewerContext:
    # Same response for unknown, malformed and orphaned tokens.
    registration = await container.token_service.resolve(token)
    if registration is None:
        raise HTTPException(status_code=401, detail=INVALID_TOKEN_DETAIL)
    ctx = await container.viewer_service.load_context(int(registration.id))
    if ctx is None:
        raise HTTPException(status_code=401, detail=INVALID_TOKEN_DETAIL)
    return ctx


@app.post("/api/cron/generate-sessions")
async def cron_generate_sessions(request: Request):
    container = _container(request)
    _require_cron_secret(request, container)

    now = container.clock.now()
    report = await container.session_scheduler.generate_all(now)

    enqueued = 0
    try:
        enqueued = await container.notification_scheduler.enqueue_for_upcoming_sessions(now)
    except Exception as e:
        logger.error(f"Notification backfill failed: {e}", exc_info=True)

    return {
        "processed": report.processed,
        "created": report.created,
        "existing": report.existing,
        "notificationsEnqueued": enqueued,
        "errors": [{"webinarId": err.webinar_id, "error": err.error} for err in report.errors],
    }


@app.api_route("/api/cron/process-notifications", methods=["GET", "POST"])
async def cron_process_notifications(request: Request):
    container = _container(request)
    _require_cron_secret(request, container)

    result = await container.notification_scheduler.process_due_jobs(container.clock.now())
    return {"sent": result.sent, "failed": result.failed, "skipped": result.skipped}


@app.get("/api/webinar/access-state")
async def access_state(request: Request, token: str = Query("")):
    container = _container(request)
    ctx = await _viewer_from_token(container, token)

    decision = await container.viewer_service.access_state(ctx, container.clock.now())
    return {
        "phase": decision.phase.value,
        "allowedCeiling": decision.allowed_ceiling,
        "elapsedSeconds": decision.elapsed_seconds,
        "secondsUntilStart": decision.seconds_until_start,
        "allowSeeking": decision.allow_seeking,
        "waitingRoomOpen": decision.waiting_room_open,
        "maxVideoPosition": float(ctx.registration.max_video_position or 0.0),
        "webinarId": ctx.registration.webinar_id,
        "sessionId": int(ctx.session.id),
        "sessionType": ctx.timing.session_type.value,
        "scheduledAt": isoformat_utc(ctx.timing.scheduled_at),
        "durationSeconds": ctx.timing.duration_seconds,
    }


@app.post("/api/webinar/progress")
async def record_progress(request: Request, payload: _ProgressPayload):
    container = _container(request)
    ctx = await _viewer_from_token(container, payload.token)

    result = await container.viewer_service.record_progress(
        int(ctx.registration.id),
        payload.positionSeconds,
        container.clock.now(),
    )
    return {"accepted": result.accepted, "maxVideoPosition": result.max_video_position}


@app.get("/api/webinar/chat")
async def chat_window(
    request: Request,
    token: str = Query(""),
    from_seconds: float = Query(0.0, alias="from"),
    to_seconds: Optional[float] = Query(None, alias="to"),
):
    container = _container(request)
    ctx = await _viewer_from_token(container, token)

    decision = container.viewer_service.decide(ctx, container.clock.now())
    if to_seconds is None:
        to_seconds = decision.elapsed_seconds
    entries = await container.chat_feed.fetch_for_viewer(
        ctx.registration.webinar_id,
        ctx.timing,
        decision,
        from_seconds,
        to_seconds,
    )
    return {"entries": [entry.to_dict() for entry in entries]}


@app.post("/api/webinar/{webinar_id}/register")
async def register(request: Request, webinar_id: str, payload: _RegisterPayload):
    container = _container(request)
    try:
        result = await container.registration_service.register(
            webinar_id,
            payload.email,
            container.clock.now(),
            first_name=payload.firstName,
            session_id=payload.sessionId,
        )
    except RegistrationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {
        "registrationId": result.registration_id,
        "accessToken": result.access_token,
        "sessionId": result.session_id,
        "scheduledAt": isoformat_utc(result.scheduled_at),
        "created": result.created,
    }


@app.get("/api/webinar/{webinar_id}/sessions")
async def upcoming_sessions(request: Request, webinar_id: str, limit: int = Query(10, ge=1, le=100)):
    container = _container(request)
    sessions = await container.session_scheduler.list_upcoming_sessions(
        webinar_id,
        container.clock.now(),
        limit=limit,
    )
    return {
        "webinarId": webinar_id,
        "sessions": [
            {
                "id": int(s.id),
                "scheduledAt": isoformat_utc(s.scheduled_at),
                "sessionType": SessionType(s.session_type).value,
                "durationSeconds": int(s.duration_seconds),
            }
            for s in sessions
        ],
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        database_ok = await db.health_check()
        return {"status": "ok" if database_ok else "degraded", "database_ok": database_ok, "version": "1.0.0"}
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
