"""Cursor-based pagination over already-authorised rows."""

import base64
import binascii
import json
from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

MAX_PAGE_SIZE = 1000

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of visible rows."""

    items: list[T]
    total: int
    next_cursor: str | None = None
    has_next: bool
    limit: int = Field(ge=1)


def encode_cursor(key: Any) -> str:
    """Encode the key of the last row on a page.

    Args:
        key: JSON-serialisable key value (usually the row id)

    Returns:
        URL-safe base64 cursor string
    """
    json_str = json.dumps({"key": key}, separators=(",", ":"), default=str)
    return base64.urlsafe_b64encode(json_str.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> Any:
    """Decode a cursor back into the key it names.

    Raises:
        ValueError: If cursor is invalid or malformed
    """
    try:
        json_str = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        return json.loads(json_str)["key"]
    except (KeyError, TypeError, json.JSONDecodeError, binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid cursor: {e}") from e


def row_key(row: Mapping[str, Any], key: str) -> Any:
    return row.get(key)


def cursor_key(value: Any) -> Any:
    """The form a key takes after a trip through a cursor (UUIDs and datetimes become strings)."""
    return json.loads(json.dumps(value, default=str))


def paginate_rows(
    rows: Sequence[Mapping[str, Any]], limit: int, cursor: str | None = None, key: str = "id"
) -> tuple[list[Mapping[str, Any]], bool, str | None]:
    """Slice one page out of ``rows`` after the row named by ``cursor``.

    Rows keep their input order. A cursor naming a key that is not among
    ``rows`` is rejected like a malformed one, so a cursor taken from a row
    that has since become invisible reveals nothing.

    Returns:
        Tuple of (page_rows, has_next, next_cursor)

    Raises:
        ValueError: If limit is out of range or the cursor is invalid
    """
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}")

    start = 0
    if cursor is not None:
        after = decode_cursor(cursor)
        for i, row in enumerate(rows):
            if cursor_key(row_key(row, key)) == after:
                start = i + 1
                break
        else:
            raise ValueError("Invalid cursor: unknown position")

    page = list(rows[start : start + limit])
    has_next = start + limit < len(rows)
    next_cursor = encode_cursor(row_key(page[-1], key)) if has_next and page else None
    return page, has_next, next_cursor
