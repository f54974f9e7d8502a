from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from typing import Any


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def escape_csv_value(value: Any) -> str:
    """
    Quote a single field only when it contains a comma, double quote or line
    break; inner quotes are doubled.
    """
    s = _cell(value)
    if not s:
        return ""
    out = io.StringIO()
    # The terminator's characters are what trigger quoting of line breaks.
    csv.writer(out, lineterminator="\r\n").writerow([s])
    return out.getvalue()[: -len("\r\n")]


def to_csv(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(list(header))
    for row in rows:
        w.writerow([_cell(v) for v in row])
    return out.getvalue()


def to_csv_bytes(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> bytes:
    return to_csv(header, rows).encode("utf-8")
