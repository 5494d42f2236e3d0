from __future__ import annotations

import logging
from typing import Optional

from upsell_navigator.adapters.crew.client import CrewClient, RemoteResponse
from upsell_navigator.util.errors import RemoteError, TransportError, ValidationError
from upsell_navigator.util.logging import get_logger, log_event

logger = get_logger("upsell_navigator.status")


async def relay_status(
    task_id: Optional[str],
    client: CrewClient,
    *,
    user_scope: Optional[str] = None,
) -> RemoteResponse:
    if not task_id or not task_id.strip():
        raise ValidationError("missing required parameter: task_id or run_id")
    task_id = task_id.strip()
    try:
        response = await client.status(task_id, user_scope=user_scope)
    except RemoteError as exc:
        log_event(
            logger,
            "status_relay_failed",
            level=logging.ERROR,
            task_id=task_id,
            status_code=exc.status_code,
        )
        raise
    except TransportError as exc:
        log_event(logger, "status_relay_failed", level=logging.ERROR, task_id=task_id, reason=exc.reason)
        raise
    log_event(logger, "status_relayed", task_id=task_id, status_code=response.status_code)
    return response
