from __future__ import annotations

import base64
import json
from dataclasses import dataclass

from arena.api.errors import APIError


class CursorError(ValueError):
    pass


@dataclass(frozen=True)
class RunCursor:
    """Keyset position in the newest-first run history."""

    created_at: float
    run_id: str

    def as_key(self) -> tuple[float, str]:
        return (self.created_at, self.run_id)


def encode_cursor(cursor: RunCursor) -> str:
    raw = json.dumps({"t": cursor.created_at, "id": cursor.run_id}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(value: str) -> RunCursor:
    s = (value or "").strip()
    if not s:
        raise CursorError("Empty cursor")

    pad = "=" * ((4 - (len(s) % 4)) % 4)
    try:
        raw = base64.urlsafe_b64decode((s + pad).encode("ascii")).decode("utf-8")
        obj = json.loads(raw)
        return RunCursor(created_at=float(obj["t"]), run_id=str(obj["id"]))
    except Exception as e:
        raise CursorError("Invalid cursor") from e


def cursor_from_query(value: str | None) -> RunCursor | None:
    """Decode an optional `cursor` query parameter, mapping bad input to a 400."""
    if not value:
        return None
    try:
        return decode_cursor(value)
    except CursorError as e:
        raise APIError(status_code=400, code="invalid_argument", message=str(e)) from e
