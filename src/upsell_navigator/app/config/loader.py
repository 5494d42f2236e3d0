from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import pydantic
import yaml

from upsell_navigator.app.models.config import ServiceSettings

ENV_FIELDS = {
    "CREW_API_BASE": "crew_api_base",
    "CREW_BEARER_TOKEN": "crew_bearer_token",
    "PUBLIC_BASE_URL": "public_base_url",
    "RUNS_TABLE": "runs_table",
    "KICKOFF_FORMAT": "kickoff_format",
    "MAX_UPLOAD_BYTES": "max_upload_bytes",
    "UPLOAD_ENCODING": "upload_encoding",
    "REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
}


def _read_yaml(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"settings file {path} must contain a mapping")
    return data


def load_settings(
    path: str | Path | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ServiceSettings:
    """Build settings from an optional YAML file overlaid with environment variables."""
    env = os.environ if environ is None else environ
    path = path or env.get("SETTINGS_FILE")
    data: Dict[str, Any] = _read_yaml(path) if path else {}
    for env_name, field in ENV_FIELDS.items():
        value = env.get(env_name)
        if value is not None and value != "":
            data[field] = value
    try:
        return ServiceSettings.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValueError(f"invalid settings: {exc}") from exc
