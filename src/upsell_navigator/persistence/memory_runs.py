from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from upsell_navigator.persistence.dynamo_runs import AnalysisRunRecord, check_changes, utcnow_iso
from upsell_navigator.util.errors import NotFoundError, PersistenceError, StaleUpdateError


class InMemoryRuns:
    def __init__(self) -> None:
        self._data: Dict[str, AnalysisRunRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: AnalysisRunRecord) -> AnalysisRunRecord:
        with self._lock:
            if record.run_id in self._data:
                raise PersistenceError(f"run {record.run_id} already exists")
            self._data[record.run_id] = replace(record)
        return record

    def update(
        self,
        run_id: str,
        changes: Dict[str, Any],
        *,
        allowed_statuses: Optional[Iterable[str]] = None,
    ) -> AnalysisRunRecord:
        check_changes(changes)
        with self._lock:
            current = self._data.get(run_id)
            if current is None:
                raise NotFoundError(run_id)
            if allowed_statuses is not None and current.status not in set(allowed_statuses):
                raise StaleUpdateError(replace(current))
            updated = replace(current, updated_at=utcnow_iso(), **changes)
            self._data[run_id] = updated
            return replace(updated)

    def get(self, run_id: str) -> AnalysisRunRecord:
        record = self._data.get(run_id)
        if record is None:
            raise NotFoundError(run_id)
        return replace(record)

    def list_recent(self, limit: int = 20) -> List[AnalysisRunRecord]:
        records = sorted(self._data.values(), key=lambda record: record.created_at, reverse=True)
        return [replace(record) for record in records[:limit]]
