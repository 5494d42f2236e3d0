from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from upsell_navigator.app.models.run import (
    ALLOWED_PREDECESSORS,
    COMPLETED,
    FAILED,
    PROCESSING,
    SUBMITTED,
)
from upsell_navigator.persistence.dynamo_runs import AnalysisRunRecord
from upsell_navigator.util.errors import StaleUpdateError, ValidationError
from upsell_navigator.util.logging import get_logger, log_event

DOCX_DATA_URI_PREFIX = (
    "data:application/vnd.openxmlformats-officedocument.wordprocessingml.document;base64,"
)
DEFAULT_FAILURE_MESSAGE = "Analysis failed without diagnostic details"

STATUS_TOKENS = {
    "completed": COMPLETED,
    "complete": COMPLETED,
    "success": COMPLETED,
    "succeeded": COMPLETED,
    "done": COMPLETED,
    "finished": COMPLETED,
    "failed": FAILED,
    "failure": FAILED,
    "error": FAILED,
    "errored": FAILED,
    "cancelled": FAILED,
    "canceled": FAILED,
    "submitted": SUBMITTED,
    "queued": SUBMITTED,
    "pending": SUBMITTED,
}

logger = get_logger("upsell_navigator.webhook")


@dataclass
class WebhookOutcome:
    record: AnalysisRunRecord
    applied: bool


def map_status(token: Any) -> str:
    if not isinstance(token, str):
        return PROCESSING
    return STATUS_TOKENS.get(token.strip().lower(), PROCESSING)


def resolve_report_url(payload: Dict[str, Any]) -> Optional[str]:
    if payload.get("report_url"):
        return str(payload["report_url"])
    if payload.get("report_base64"):
        return f"{DOCX_DATA_URI_PREFIX}{payload['report_base64']}"
    result = payload.get("result")
    if isinstance(result, dict) and result.get("report_url"):
        return str(result["report_url"])
    metadata = payload.get("report_metadata")
    if isinstance(metadata, dict):
        url = metadata.get("url") or metadata.get("report_url")
        if url:
            return str(url)
    return None


def stringify_error(error: Any) -> str:
    if isinstance(error, str):
        return error
    return json.dumps(error, default=str)


def parse_progress(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    progress = int(number)
    return max(0, min(100, progress))


def build_changes(payload: Dict[str, Any], current: AnalysisRunRecord) -> Dict[str, Any]:
    status = map_status(payload.get("status"))
    changes: Dict[str, Any] = {"status": status}

    report_url = resolve_report_url(payload)
    if report_url and not current.report_url:
        changes["report_url"] = report_url

    if status == COMPLETED:
        changes["progress"] = 100
    else:
        progress = parse_progress(payload.get("progress"))
        if progress is not None and progress > current.progress:
            changes["progress"] = progress

    if status == FAILED:
        error = payload.get("error")
        changes["error_message"] = (
            stringify_error(error) if error not in (None, "") else DEFAULT_FAILURE_MESSAGE
        )
    return changes


def ingest_webhook(payload: Any, runs: Any) -> WebhookOutcome:
    """Apply one callback from the analysis service to its run record.

    Terminal statuses are sticky: a delivery whose status cannot follow the
    stored one is dropped and the stored record is returned unchanged.
    """
    if not isinstance(payload, dict):
        raise ValidationError("webhook body must be a JSON object")
    run_id = payload.get("run_id")
    if not run_id or not str(run_id).strip():
        raise ValidationError("run_id is required")
    run_id = str(run_id).strip()
    log_event(logger, "webhook_received", run_id=run_id, status=payload.get("status"))

    current = runs.get(run_id)
    changes = build_changes(payload, current)
    status = changes["status"]
    try:
        record = runs.update(run_id, changes, allowed_statuses=ALLOWED_PREDECESSORS[status])
    except StaleUpdateError as exc:
        log_event(
            logger, "webhook_stale_dropped", run_id=run_id, current=exc.current.status, incoming=status
        )
        return WebhookOutcome(record=exc.current, applied=False)
    log_event(logger, "webhook_applied", run_id=run_id, status=record.status, progress=record.progress)
    return WebhookOutcome(record=record, applied=True)
