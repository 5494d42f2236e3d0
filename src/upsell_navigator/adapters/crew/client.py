from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from upsell_navigator.app.models.config import ServiceSettings
from upsell_navigator.util.errors import RemoteError, SubmissionError, TransportError

RUN_ID_KEYS = ("run_id", "kickoff_id", "task_id")


@dataclass
class RemoteResponse:
    status_code: int
    content: bytes
    content_type: str


class CrewClient:
    """Async client for the remote analysis service (kickoff and status)."""

    def __init__(
        self,
        *,
        base_url: str,
        bearer_token: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.bearer_token = bearer_token
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: ServiceSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CrewClient":
        return cls(
            base_url=settings.crew_api_base,
            bearer_token=settings.crew_bearer_token,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.bearer_token}"}

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {path} failed: {exc.__class__.__name__}: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise TransportError(f"{method} {path} failed: invalid analysis service url") from exc

    async def kickoff_json(self, body: Dict[str, Any]) -> str:
        response = await self._send("POST", "/kickoff", json=body, headers=self._headers())
        return self._run_id_from(response)

    async def kickoff_multipart(self, inputs: Dict[str, Any], files: Dict[str, str]) -> str:
        parts = {
            name: (name, content.encode("utf-8"), "text/csv" if name.endswith(".csv") else "text/plain")
            for name, content in files.items()
        }
        response = await self._send(
            "POST",
            "/kickoff",
            data={"inputs": json.dumps(inputs, ensure_ascii=False)},
            files=parts,
            headers=self._headers(),
        )
        return self._run_id_from(response)

    def _run_id_from(self, response: httpx.Response) -> str:
        if not response.is_success:
            raise SubmissionError(response.status_code, response.text)
        try:
            body = response.json()
        except ValueError as exc:
            raise SubmissionError(
                response.status_code, response.text, "kickoff response is not JSON"
            ) from exc
        if isinstance(body, dict):
            for key in RUN_ID_KEYS:
                value = body.get(key)
                if value:
                    return str(value)
        raise SubmissionError(
            response.status_code, response.text, "kickoff response carries no run identifier"
        )

    async def status(self, task_id: str, *, user_scope: Optional[str] = None) -> RemoteResponse:
        headers = self._headers()
        if user_scope:
            headers["X-User-Authorization"] = user_scope
        response = await self._send("GET", f"/status/{quote(task_id, safe='')}", headers=headers)
        if not response.is_success:
            raise RemoteError(response.status_code, response.text)
        return RemoteResponse(
            status_code=response.status_code,
            content=response.content,
            content_type=response.headers.get("content-type", "application/json"),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
