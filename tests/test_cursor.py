from __future__ import annotations

import pytest

from arena.api.errors import APIError
from arena.api.pagination import CursorError, RunCursor, cursor_from_query, decode_cursor, encode_cursor


def test_cursor_roundtrip() -> None:
    c = RunCursor(created_at=123.456, run_id="0b7c2a4e-3f0e-4d55-9a53-1f0c1f1f4c11")
    decoded = decode_cursor(encode_cursor(c))
    assert decoded.created_at == pytest.approx(c.created_at)
    assert decoded.run_id == c.run_id


def test_cursor_invalid() -> None:
    with pytest.raises(CursorError):
        decode_cursor("not-a-valid-cursor")


def test_cursor_query_maps_bad_input_to_400() -> None:
    assert cursor_from_query(None) is None
    with pytest.raises(APIError) as e:
        cursor_from_query("%%%")
    assert e.value.status_code == 400
    assert e.value.code == "invalid_argument"
