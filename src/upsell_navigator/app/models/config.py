from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


class ServiceSettings(BaseModel):
    crew_api_base: str = ""
    crew_bearer_token: str = Field(default="", repr=False)
    public_base_url: Optional[str] = None
    runs_table: Optional[str] = None
    kickoff_format: Literal["json", "multipart"] = "json"
    max_upload_bytes: int = Field(default=DEFAULT_MAX_UPLOAD_BYTES, gt=0)
    upload_encoding: str = "utf-8"
    request_timeout_seconds: Optional[float] = Field(default=None, gt=0)

    @field_validator("crew_api_base", "public_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.rstrip("/")

    @property
    def webhook_url(self) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url}/crewai-webhook"
