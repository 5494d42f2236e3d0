from __future__ import annotations

import logging
import re
import unicodedata
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from upsell_navigator.app.models.config import ServiceSettings
from upsell_navigator.app.models.run import SUBMITTED
from upsell_navigator.engine.normalize.decode import decode_upload
from upsell_navigator.engine.normalize.headers import normalize_csv, normalize_text
from upsell_navigator.persistence.dynamo_runs import AnalysisRunRecord, utcnow_iso
from upsell_navigator.util.errors import SubmissionError, TransportError, ValidationError
from upsell_navigator.util.logging import get_logger, log_event

# multipart part names expected by the analysis service
PART_NAMES = {
    "participants_csv": "participantes.csv",
    "chat_txt": "chat.txt",
    "transcription_txt": "transcricao.txt",
}

logger = get_logger("upsell_navigator.submission")


class KickoffClient(Protocol):
    async def kickoff_json(self, body: Dict[str, Any]) -> str: ...

    async def kickoff_multipart(self, inputs: Dict[str, Any], files: Dict[str, str]) -> str: ...


class RunCreator(Protocol):
    def create(self, record: AnalysisRunRecord) -> AnalysisRunRecord: ...


@dataclass
class AnalysisSubmission:
    live_name: Optional[str]
    sales_result: Optional[str]
    participants_csv: Optional[bytes]
    chat_txt: Optional[bytes]
    transcription_txt: Optional[bytes]

    def validate(self, *, max_upload_bytes: int) -> None:
        problems: List[str] = []
        for field in ("live_name", "sales_result"):
            value = getattr(self, field)
            if value is None or not value.strip():
                problems.append(f"{field} is required")
        for slot in PART_NAMES:
            payload = getattr(self, slot)
            if not payload:
                problems.append(f"{slot} is required")
            elif len(payload) > max_upload_bytes:
                problems.append(f"{slot} exceeds {max_upload_bytes} bytes")
        if problems:
            raise ValidationError(problems)


def report_filename(live_name: str) -> str:
    folded = unicodedata.normalize("NFKD", live_name).encode("ascii", "ignore").decode("ascii")
    slug = "-".join(re.findall(r"[a-z0-9]+", folded.lower()))
    return f"{slug or 'analise'}.docx"


def prepare_files(submission: AnalysisSubmission, *, encoding: str) -> Dict[str, str]:
    texts = {
        slot: decode_upload(getattr(submission, slot), slot=slot, encoding=encoding)
        for slot in PART_NAMES
    }
    texts["participants_csv"] = normalize_csv(texts["participants_csv"])
    texts["chat_txt"] = normalize_text(texts["chat_txt"])
    texts["transcription_txt"] = normalize_text(texts["transcription_txt"])
    return texts


def build_inputs(live_name: str, sales_result: str, settings: ServiceSettings) -> Dict[str, Any]:
    inputs: Dict[str, Any] = {
        "live_name": live_name,
        "sales_result": sales_result,
        "filename": report_filename(live_name),
    }
    if settings.webhook_url:
        inputs["webhook_url"] = settings.webhook_url
    return inputs


async def submit_analysis(
    submission: AnalysisSubmission,
    *,
    settings: ServiceSettings,
    client: KickoffClient,
    runs: RunCreator,
) -> AnalysisRunRecord:
    """Validate, normalize and kick off one analysis, then record it as submitted.

    Nothing is persisted unless the kickoff returns a run identifier.
    """
    submission.validate(max_upload_bytes=settings.max_upload_bytes)
    live_name = submission.live_name.strip()
    sales_result = submission.sales_result.strip()
    texts = prepare_files(submission, encoding=settings.upload_encoding)
    inputs = build_inputs(live_name, sales_result, settings)

    try:
        if settings.kickoff_format == "multipart":
            files = {PART_NAMES[slot]: text for slot, text in texts.items()}
            run_id = await client.kickoff_multipart(inputs, files)
        else:
            run_id = await client.kickoff_json({**inputs, **texts})
    except SubmissionError as exc:
        log_event(
            logger,
            "kickoff_failed",
            level=logging.ERROR,
            status_code=exc.status_code,
            reason=str(exc),
        )
        raise
    except TransportError as exc:
        log_event(logger, "kickoff_failed", level=logging.ERROR, reason=exc.reason)
        raise

    now = utcnow_iso()
    record = AnalysisRunRecord(
        id=str(uuid.uuid4()),
        run_id=run_id,
        live_name=live_name,
        sales_result=sales_result,
        status=SUBMITTED,
        progress=0,
        created_at=now,
        updated_at=now,
    )
    runs.create(record)
    log_event(logger, "analysis_submitted", run_id=run_id, kickoff_format=settings.kickoff_format)
    return record
