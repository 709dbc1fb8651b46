from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.recruiting.auth import (
    AuthContext,
    get_auth_context,
    get_settings,
    require_roles,
    security,
)
from backend.recruiting.errors import (
    CoreError,
    ErrorCode,
    InvalidRequestError,
    UnauthorizedError,
)
from backend.recruiting.models import (
    CalendarSweepResponse,
    InboundMessageRequest,
    InboundMessageResponse,
    StatusHistoryItem,
    StatusTransitionRequest,
    StatusTransitionResponse,
    UnlockProfileRequest,
    UnlockProfileResponse,
    UnlockSummary,
)
from backend.recruiting.observability import MetricsRegistry, configure_logging, observe_request
from backend.recruiting.persistence import Database
from backend.recruiting.services.calendar_sweep import run_completed_event_sweep
from backend.recruiting.services.message_signals import (
    KeywordSignalClassifier,
    MessageSignalClassifier,
    apply_message_signal,
)
from backend.recruiting.services.side_effects import AuditTrail, BestEffortDispatcher, Notifier
from backend.recruiting.services.status_engine import StatusEngine
from backend.recruiting.services.unlock import UnlockService
from backend.recruiting.services.webhooks import (
    SignatureVerificationError,
    verify_message_hook_signature,
)
from backend.recruiting.services.workflow import display_label
from backend.recruiting.settings import Settings, load_settings
from backend.recruiting.store import RecruitingStore

logger = logging.getLogger("talent_core.api")

HTTP_ERROR_CODES = {
    401: ErrorCode.unauthorized,
    403: ErrorCode.unauthorized,
    404: ErrorCode.not_found,
    405: ErrorCode.invalid_request,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.dispatcher.shutdown(wait=True)
    app.state.db.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    app = FastAPI(title="Talent Core API", version="0.1.0", lifespan=lifespan)
    configure_logging()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    settings = settings or load_settings()
    metrics = MetricsRegistry()
    db = Database(settings.database_url)
    store = RecruitingStore(db)
    if settings.side_effects_async:
        dispatcher = BestEffortDispatcher.threaded(
            workers=settings.side_effect_workers, metrics=metrics
        )
    else:
        dispatcher = BestEffortDispatcher(metrics=metrics)
    audit = AuditTrail(store, dispatcher)
    notifier = Notifier(store, dispatcher)

    app.state.settings = settings
    app.state.metrics = metrics
    app.state.db = db
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.status_engine = StatusEngine(store, notifier, metrics=metrics)
    app.state.unlock_service = UnlockService(
        store,
        audit,
        notifier,
        cost_credits=settings.unlock_cost_credits,
        allowed_roles=settings.unlock_roles,
        metrics=metrics,
    )
    app.state.signal_classifier = KeywordSignalClassifier()

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        return await observe_request(request, call_next, metrics=app.state.metrics)

    register_error_handlers(app)
    app.include_router(build_router())
    return app


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CoreError)
    async def core_error_handler(request: Request, exc: CoreError) -> JSONResponse:
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            "request_error path=%s code=%s status=%s error=%s",
            request.url.path,
            exc.code.value,
            exc.http_status,
            exc.message,
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        code = HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.invalid_request)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail), "code": code.value},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("request_invalid path=%s errors=%s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request data.",
                "code": ErrorCode.invalid_request.value,
                "details": [
                    {
                        "field": ".".join(str(part) for part in error["loc"]),
                        "message": error["msg"],
                    }
                    for error in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("request_unhandled path=%s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "An unexpected error occurred.",
                "code": ErrorCode.internal.value,
            },
        )


def get_store(request: Request) -> RecruitingStore:
    return request.app.state.store


def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics


def get_status_engine(request: Request) -> StatusEngine:
    return request.app.state.status_engine


def get_unlock_service(request: Request) -> UnlockService:
    return request.app.state.unlock_service


def get_signal_classifier(request: Request) -> MessageSignalClassifier:
    return request.app.state.signal_classifier


def build_router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @router.get("/health/ready")
    def readiness(request: Request) -> JSONResponse:
        if not request.app.state.db.ping():
            return JSONResponse(
                status_code=503,
                content={"status": "unavailable", "detail": "database unavailable"},
            )
        return JSONResponse(content={"status": "ready"})

    @router.get("/metrics", response_class=PlainTextResponse)
    def metrics(request: Request) -> Response:
        registry = get_metrics(request)
        return PlainTextResponse(registry.to_prometheus())

    @router.api_route("/unlock-profile", methods=["GET", "PUT", "PATCH", "DELETE"])
    def unlock_profile_wrong_method() -> None:
        raise InvalidRequestError("Method not allowed. Use POST.", http_status=405)

    @router.post("/unlock-profile")
    def unlock_profile(
        request: Request,
        body: Any = Body(default=None),
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ) -> JSONResponse:
        try:
            payload = UnlockProfileRequest.model_validate(body)
        except ValidationError as exc:
            raise InvalidRequestError("Missing or invalid candidateId in request body.") from exc
        actor = get_auth_context(request, credentials)
        result = get_unlock_service(request).unlock(payload.candidate_id, actor)
        response = UnlockProfileResponse(
            candidate=result.candidate,
            credits_remaining=result.credits_remaining,
            unlock=UnlockSummary.from_record(result.unlock),
        )
        return JSONResponse(content=response.model_dump(mode="json", by_alias=True))

    @router.post(
        "/applications/{application_id}/status",
        response_model=StatusTransitionResponse,
    )
    def change_status(
        application_id: str,
        payload: StatusTransitionRequest,
        request: Request,
        context: AuthContext = Depends(require_roles("recruiter", "admin")),
    ) -> StatusTransitionResponse:
        result = get_status_engine(request).record_manual_change(
            application_id,
            payload.new_status,
            recruiter_id=context.user_id,
            notes=payload.notes,
            expected_status=payload.expected_status,
        )
        return StatusTransitionResponse(
            application_id=result.application_id,
            old_status=result.old_status,
            new_status=result.new_status,
            changed=result.changed,
        )

    @router.get(
        "/applications/{application_id}/status-history",
        response_model=list[StatusHistoryItem],
    )
    def status_history(
        application_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles("recruiter", "candidate", "admin")),
    ) -> list[StatusHistoryItem]:
        rows = get_status_engine(request).history(application_id)
        return [
            StatusHistoryItem(
                id=row.id,
                old_status=row.old_status,
                new_status=row.new_status,
                label=display_label(row.new_status),
                changed_by=row.changed_by,
                change_type=row.change_type,
                trigger_source=row.trigger_source,
                trigger_id=row.trigger_id,
                notes=row.notes,
                created_at_utc=row.created_at_utc,
            )
            for row in rows
        ]

    @router.post(
        "/calendar-events/{event_id}/scheduled",
        response_model=StatusTransitionResponse,
    )
    def calendar_event_scheduled(
        event_id: str,
        request: Request,
        context: AuthContext = Depends(require_roles("service", "recruiter", "admin")),
    ) -> StatusTransitionResponse:
        result = get_status_engine(request).handle_calendar_event_scheduled(
            event_id, changed_by=context.user_id
        )
        return StatusTransitionResponse(
            application_id=result.application_id,
            old_status=result.old_status,
            new_status=result.new_status,
            changed=result.changed,
        )

    @router.post("/jobs/calendar-sweep", response_model=CalendarSweepResponse)
    def calendar_sweep(
        request: Request,
        _: AuthContext = Depends(require_roles("service", "admin")),
    ) -> CalendarSweepResponse:
        settings = get_settings(request)
        report = run_completed_event_sweep(
            store=get_store(request),
            engine=get_status_engine(request),
            lookback_minutes=settings.calendar_sweep_lookback_minutes,
        )
        return CalendarSweepResponse(
            scanned=report.scanned,
            transitioned=report.transitioned,
            completed_events=report.completed_events,
            skipped=report.skipped,
            failed=report.failed,
        )

    @router.post("/messages/inbound", response_model=InboundMessageResponse)
    async def inbound_message(
        request: Request,
        _: AuthContext = Depends(require_roles("service", "admin")),
    ) -> InboundMessageResponse:
        settings = get_settings(request)
        raw_body = await request.body()
        try:
            verify_message_hook_signature(
                headers=request.headers,
                raw_body=raw_body,
                secret=settings.message_hook_secret,
            )
        except SignatureVerificationError as exc:
            raise UnauthorizedError(str(exc), http_status=403) from exc

        try:
            payload = InboundMessageRequest.model_validate(json.loads(raw_body.decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
            raise InvalidRequestError("Invalid message payload.") from exc

        outcome = await run_in_threadpool(
            apply_message_signal,
            engine=get_status_engine(request),
            classifier=get_signal_classifier(request),
            message_id=payload.message_id,
            application_id=payload.application_id,
            sender_id=payload.sender_id,
            sender_type=payload.sender_type,
            text=payload.text,
        )
        return InboundMessageResponse(
            message_id=payload.message_id,
            signal=outcome.signal.name if outcome.signal else None,
            new_status=outcome.result.new_status if outcome.result else None,
            changed=bool(outcome.result and outcome.result.changed),
        )

    return router


app = create_app()
