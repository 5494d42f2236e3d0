from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from upsell_navigator.adapters.crew.client import CrewClient
from upsell_navigator.app.api.middleware import (
    ALLOWED_HEADERS,
    ALLOWED_METHODS,
    ALLOWED_ORIGINS,
    CORS_HEADERS,
    options_preflight,
)
from upsell_navigator.app.config.loader import load_settings
from upsell_navigator.app.models.config import ServiceSettings
from upsell_navigator.app.models.run import TERMINAL_STATUSES, AnalysisRunView, WebhookAck
from upsell_navigator.engine.status import relay_status
from upsell_navigator.engine.submission import AnalysisSubmission, submit_analysis
from upsell_navigator.engine.webhook import ingest_webhook
from upsell_navigator.persistence.dynamo_runs import AnalysisRunRecord, DynamoRuns
from upsell_navigator.persistence.memory_runs import InMemoryRuns
from upsell_navigator.util.errors import (
    NotFoundError,
    PersistenceError,
    RemoteError,
    SubmissionError,
    TransportError,
    ValidationError,
)
from upsell_navigator.util.logging import get_logger, log_event
from upsell_navigator.util.metrics import CloudWatchMetrics

logger = get_logger("upsell_navigator.api")


def _view(record: AnalysisRunRecord) -> AnalysisRunView:
    return AnalysisRunView.model_validate(record.to_dict())


async def _read_upload(upload: Optional[UploadFile], limit: int) -> Optional[bytes]:
    if upload is None:
        return None
    # one byte past the limit is enough to reject oversized files
    return await upload.read(limit + 1)


def get_settings(request: Request) -> ServiceSettings:
    return request.app.state.settings


def get_runs(request: Request):
    return request.app.state.runs


def get_crew_client(request: Request) -> CrewClient:
    return request.app.state.crew_client


def get_metrics(request: Request) -> CloudWatchMetrics:
    return request.app.state.metrics


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        log_event(
            logger,
            "request_rejected",
            level=logging.ERROR,
            path=request.url.path,
            problems=exc.problems,
        )
        return JSONResponse(status_code=400, content={"error": str(exc), "problems": exc.problems})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc), "run_id": exc.run_id})

    @app.exception_handler(SubmissionError)
    async def submission_error_handler(request: Request, exc: SubmissionError) -> JSONResponse:
        request.app.state.metrics.record_remote_error(operation="kickoff")
        return JSONResponse(
            status_code=502,
            content={
                "error": "Failed to start analysis",
                "message": str(exc),
                "status": exc.status_code,
                "details": exc.body,
            },
        )

    @app.exception_handler(RemoteError)
    async def remote_error_handler(request: Request, exc: RemoteError) -> JSONResponse:
        request.app.state.metrics.record_remote_error(operation="status")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "Failed to fetch status from analysis service",
                "status": exc.status_code,
                "details": exc.body,
            },
        )

    @app.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
        request.app.state.metrics.record_remote_error(operation="transport")
        return JSONResponse(
            status_code=502,
            content={"error": "Analysis service unreachable", "message": exc.reason},
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        log_event(
            logger,
            "persistence_failed",
            level=logging.ERROR,
            path=request.url.path,
            reason=exc.reason,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to persist analysis run", "details": exc.reason},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(exc)},
            # runs outside the CORS middleware
            headers={"Access-Control-Allow-Origin": CORS_HEADERS["Access-Control-Allow-Origin"]},
        )


def create_app(
    settings: Optional[ServiceSettings] = None,
    *,
    runs_repo=None,
    crew_client: Optional[CrewClient] = None,
    metrics: Optional[CloudWatchMetrics] = None,
) -> FastAPI:
    settings = settings or load_settings()
    if runs_repo is None:
        runs_repo = DynamoRuns(settings.runs_table) if settings.runs_table else InMemoryRuns()
    crew_client = crew_client or CrewClient.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.crew_client.aclose()

    app = FastAPI(title="Upsell Navigator", lifespan=lifespan)
    app.state.settings = settings
    app.state.runs = runs_repo
    app.state.crew_client = crew_client
    app.state.metrics = metrics or CloudWatchMetrics.from_env()
    app.add_middleware(BaseHTTPMiddleware, dispatch=options_preflight)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
    )
    _register_error_handlers(app)

    @app.get("/v1/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/analyses", status_code=201)
    async def create_analysis(
        live_name: Optional[str] = Form(default=None),
        sales_result: Optional[str] = Form(default=None),
        participants_csv: Optional[UploadFile] = File(default=None, alias="participantes.csv"),
        chat_txt: Optional[UploadFile] = File(default=None, alias="chat.txt"),
        transcription_txt: Optional[UploadFile] = File(default=None, alias="transcricao.txt"),
        settings: ServiceSettings = Depends(get_settings),
        runs=Depends(get_runs),
        client: CrewClient = Depends(get_crew_client),
        metrics: CloudWatchMetrics = Depends(get_metrics),
    ) -> AnalysisRunView:
        limit = settings.max_upload_bytes
        submission = AnalysisSubmission(
            live_name=live_name,
            sales_result=sales_result,
            participants_csv=await _read_upload(participants_csv, limit),
            chat_txt=await _read_upload(chat_txt, limit),
            transcription_txt=await _read_upload(transcription_txt, limit),
        )
        try:
            record = await submit_analysis(submission, settings=settings, client=client, runs=runs)
        except ValidationError:
            metrics.record_submission(accepted=False)
            raise
        metrics.record_submission(accepted=True)
        return _view(record)

    @app.get("/v1/analyses")
    async def list_analyses(
        limit: int = Query(default=20, ge=1, le=100),
        runs=Depends(get_runs),
    ) -> List[AnalysisRunView]:
        return [_view(record) for record in runs.list_recent(limit)]

    @app.get("/v1/analyses/{run_id}")
    async def get_analysis(run_id: str, runs=Depends(get_runs)) -> AnalysisRunView:
        return _view(runs.get(run_id))

    @app.post("/crewai-webhook")
    async def crewai_webhook(
        request: Request,
        runs=Depends(get_runs),
        metrics: CloudWatchMetrics = Depends(get_metrics),
    ) -> WebhookAck:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError("webhook body must be valid JSON") from exc
        outcome = ingest_webhook(payload, runs)
        if not outcome.applied:
            metrics.record_stale_webhook()
        elif outcome.record.status in TERMINAL_STATUSES:
            metrics.record_run_outcome(status=outcome.record.status)
        return WebhookAck(data=_view(outcome.record))

    @app.get("/crewai-status")
    async def crewai_status(
        task_id: Optional[str] = None,
        run_id: Optional[str] = None,
        x_user_authorization: Optional[str] = Header(default=None),
        client: CrewClient = Depends(get_crew_client),
    ) -> Response:
        remote = await relay_status(task_id or run_id, client, user_scope=x_user_authorization)
        return Response(
            content=remote.content,
            status_code=remote.status_code,
            media_type=remote.content_type,
        )

    return app


app = create_app()
