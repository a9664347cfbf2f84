"""CSV and XLSX import/export helpers for the admin dataset tools.

Two datasets exist, each with a fixed header:

  respondents — one row per respondent
  responses   — one row per stored answer, keyed by phone + question code

Answer values are written as JSON (``"Academia"``, ``["A", "B"]``, ``5``)
so they survive the round trip with their type intact.  CSV files follow
RFC 4180; XLSX workbooks carry the same columns on a single ``Data`` sheet
and are read and written through pandas with the openpyxl engine.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Iterable, Literal

import pandas as pd

DatasetFormat = Literal["csv", "xlsx"]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSX_SHEET = "Data"

RESPONDENT_HEADER = [
    "id",
    "full_name",
    "phone_normalized",
    "current_phase",
    "status",
    "created_at",
    "last_seen_at",
]

RESPONSE_HEADER = [
    "phone_normalized",
    "full_name",
    "phase_code",
    "question_code",
    "answer",
    "answer_text",
    "is_finalized",
    "answered_at",
]

HEADERS: dict[str, list[str]] = {
    "respondents": RESPONDENT_HEADER,
    "responses": RESPONSE_HEADER,
}

# Columns an import row cannot do without
REQUIRED_COLUMNS: dict[str, list[str]] = {
    "respondents": ["phone_normalized"],
    "responses": ["phone_normalized", "question_code", "answer"],
}

ParsedRows = tuple[list[tuple[int, dict[str, str]]], list[dict[str, Any]]]


def encode_answer(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def decode_answer(raw: str) -> Any:
    """Parse a JSON answer cell; plain text that is not JSON stays a string."""
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _records(kind: str, rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    header = HEADERS[kind]
    return [{k: _cell(r.get(k)) for k in header} for r in rows]


def build_export_csv(kind: str, rows: Iterable[dict[str, Any]]) -> bytes:
    """Serialise *rows* with the header of *kind*.  Unknown keys are dropped."""
    buf = io.StringIO(newline="")
    writer = csv.DictWriter(buf, fieldnames=HEADERS[kind], extrasaction="ignore")
    writer.writeheader()
    writer.writerows(_records(kind, rows))
    return buf.getvalue().encode("utf-8")


def build_export_xlsx(kind: str, rows: Iterable[dict[str, Any]]) -> bytes:
    """Same columns as :func:`build_export_csv`, as a one-sheet workbook."""
    frame = pd.DataFrame(_records(kind, rows), columns=HEADERS[kind])
    buf = io.BytesIO()
    frame.to_excel(buf, index=False, sheet_name=XLSX_SHEET, engine="openpyxl")
    return buf.getvalue()


def _collect(
    kind: str,
    fieldnames: list[str],
    records: Iterable[tuple[int, dict[str, Any]]],
) -> ParsedRows:
    required = REQUIRED_COLUMNS[kind]
    errors: list[dict[str, Any]] = []

    missing_header = [c for c in required if c not in fieldnames]
    if missing_header:
        errors.append({"line": 1, "message": f"missing column(s): {', '.join(missing_header)}"})
        return [], errors

    rows: list[tuple[int, dict[str, str]]] = []
    for line, row in records:
        clean = {str(k): str(v or "").strip() for k, v in row.items() if k is not None}
        if not any(clean.values()):
            continue
        blank = [c for c in required if not clean.get(c)]
        if blank:
            errors.append({"line": line, "message": f"missing {', '.join(blank)}"})
            continue
        rows.append((line, clean))
    return rows, errors


def parse_import_csv(kind: str, data: bytes) -> ParsedRows:
    """Parse an upload into ``(line, row)`` pairs plus per-line errors.

    Rows missing a required column are reported and left out.  A missing
    required header is reported once against line 1.  Raises
    ``UnicodeDecodeError`` when the bytes are not UTF-8.
    """
    text = (data or b"").decode("utf-8-sig")
    reader = csv.DictReader(io.StringIO(text))
    fieldnames = list(reader.fieldnames or [])
    # physical line number; the reader skips blank lines
    records = ((reader.line_num, row) for row in reader)
    return _collect(kind, fieldnames, records)


def parse_import_xlsx(kind: str, data: bytes) -> ParsedRows:
    """Parse the first sheet of a workbook the way :func:`parse_import_csv` does.

    Line numbers are sheet row numbers (the header is row 1).  Every cell
    is read as text.  Raises ``ValueError`` or ``zipfile.BadZipFile`` when
    the bytes are not a workbook.
    """
    frame = pd.read_excel(
        io.BytesIO(data or b""),
        sheet_name=0,
        dtype=str,
        keep_default_na=False,
        engine="openpyxl",
    )
    fieldnames = [str(c).strip() for c in frame.columns]
    frame.columns = fieldnames
    records = (
        (i + 2, row) for i, row in enumerate(frame.to_dict(orient="records"))
    )
    return _collect(kind, fieldnames, records)
