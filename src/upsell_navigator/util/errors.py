from __future__ import annotations

from typing import Any, Iterable, List, Optional


class RetryableError(Exception):
    """Indicates a failure that may succeed on retry."""


class NonRetryableError(Exception):
    """Indicates a failure that should not be retried."""


class ValidationError(NonRetryableError):
    """Input rejected before any side effect."""

    def __init__(self, problems: Iterable[str] | str) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems: List[str] = list(problems)
        super().__init__("; ".join(self.problems))


class NotFoundError(NonRetryableError):
    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"analysis run not found: {run_id}")


class StaleUpdateError(NonRetryableError):
    """Raised when a guarded update targets a record whose status no longer allows it."""

    def __init__(self, current: Any) -> None:
        self.current = current
        super().__init__(f"update rejected for run {current.run_id} in status {current.status}")


class RemoteError(NonRetryableError):
    """Non-2xx response from the analysis service."""

    def __init__(self, status_code: int, body: str, message: Optional[str] = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"analysis service returned {status_code}")


class SubmissionError(RemoteError):
    """Kickoff was refused by the analysis service."""


class TransportError(RetryableError):
    """The analysis service could not be reached."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class PersistenceError(RetryableError):
    """The run store rejected or failed a write."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
