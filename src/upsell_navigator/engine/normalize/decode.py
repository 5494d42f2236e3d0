from __future__ import annotations

from upsell_navigator.util.errors import ValidationError


def decode_upload(payload: bytes, *, slot: str, encoding: str = "utf-8") -> str:
    try:
        return payload.decode(encoding)
    except UnicodeDecodeError as exc:
        raise ValidationError(f"{slot}: not valid {encoding} text ({exc.reason})") from exc
    except LookupError as exc:
        raise ValidationError(f"{slot}: unknown encoding {encoding}") from exc
