from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

SUBMITTED = "submitted"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

RUN_STATUSES = (SUBMITTED, PROCESSING, COMPLETED, FAILED)
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED})

# statuses a record may hold for an update to the key status to be applied
ALLOWED_PREDECESSORS = {
    SUBMITTED: frozenset({SUBMITTED}),
    PROCESSING: frozenset({SUBMITTED, PROCESSING}),
    COMPLETED: frozenset({SUBMITTED, PROCESSING, COMPLETED}),
    FAILED: frozenset({SUBMITTED, PROCESSING, FAILED}),
}


class AnalysisRunView(BaseModel):
    id: str
    run_id: str
    live_name: str
    sales_result: str
    status: str
    progress: int
    report_url: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class WebhookAck(BaseModel):
    success: bool = True
    data: AnalysisRunView
