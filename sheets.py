# sheets.py
# -----------------------------------------------------------------------------
# Spreadsheet bridge: courtesy events <-> Korean-labelled rows.
# - Export writes one sheet (경조사목록) through pandas/openpyxl.
# - Import reads the first sheet and issues one create per row concurrently.
# -----------------------------------------------------------------------------

from __future__ import annotations

import importlib.util
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import IO, Any, Dict, List, Mapping, Optional, Sequence, Union

import anyio
import pandas as pd

from courtesy import CourtesyEvent, coerce_checklist, event_type_label, normalize_event_type
from dates import format_date

logger = logging.getLogger(__name__)

COL_DATE = "날짜"
COL_COMPANY = "회사명"
COL_TYPE = "구분"
COL_WREATH = "화환보냄"
COL_MONEY = "경조금보냄"
COL_TELEGRAM = "전보보냄"
COL_DONE = "완료여부"
COL_NOTE = "메모"

COLUMNS: List[str] = [
    COL_DATE, COL_COMPANY, COL_TYPE,
    COL_WREATH, COL_MONEY, COL_TELEGRAM,
    COL_DONE, COL_NOTE,
]
FLAG_COLUMNS: Dict[str, str] = {
    "wreath": COL_WREATH,
    "money": COL_MONEY,
    "telegram": COL_TELEGRAM,
}
SHEET_NAME = "경조사목록"
DONE_LABEL = "완료"
OPEN_LABEL = "진행중"
UNKNOWN_COMPANY = "Unknown"
ACCEPTED_SUFFIXES = [".xlsx", ".xls"]

_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T]")


def codec_available() -> bool:
    """True when pandas can write .xlsx (openpyxl installed)."""
    return importlib.util.find_spec("openpyxl") is not None


def export_filename(today: Optional[date] = None) -> str:
    return f"경조사관리_{format_date(today or date.today())}.xlsx"


# --- Export -------------------------------------------------------------------
def event_to_row(event: Mapping[str, Any]) -> Dict[str, str]:
    checklist = coerce_checklist(event.get("checklist"))
    row = {
        COL_DATE: str(event.get("date") or ""),
        COL_COMPANY: str(event.get("company_name") or ""),
        COL_TYPE: event_type_label(str(event.get("event_type") or "")),
    }
    for key, col in FLAG_COLUMNS.items():
        row[col] = "O" if checklist[key] else "X"
    row[COL_DONE] = DONE_LABEL if event.get("is_completed") else OPEN_LABEL
    row[COL_NOTE] = str(event.get("note") or "")
    return row


def write_workbook(events: Sequence[Mapping[str, Any]], target: Union[str, IO[bytes]]) -> int:
    """Write events to `target` (path or binary buffer); returns rows written."""
    df = pd.DataFrame([event_to_row(e) for e in events], columns=COLUMNS)
    df.to_excel(target, sheet_name=SHEET_NAME, index=False, engine="openpyxl")
    return len(df)


# --- Import -------------------------------------------------------------------
def read_workbook(source: Union[str, IO[bytes]]) -> List[Dict[str, Any]]:
    """First sheet as row dicts; blank cells are dropped from each row."""
    df = pd.read_excel(source, sheet_name=0, dtype=str)
    rows: List[Dict[str, Any]] = []
    for rec in df.to_dict(orient="records"):
        rows.append({str(k): v for k, v in rec.items() if not _blank(v)})
    return rows


def _blank(value: Any) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return isinstance(value, str) and not value.strip()


def _cell(row: Mapping[str, Any], col: str, strip: bool = True) -> str:
    value = row.get(col)
    if _blank(value):
        return ""
    if isinstance(value, (datetime, date)):
        return format_date(value)
    text = str(value)
    return text.strip() if strip else text


def _date_cell(row: Mapping[str, Any], today: date) -> str:
    text = _cell(row, COL_DATE)
    if not text:
        return format_date(today)
    # Excel date cells come back as "YYYY-MM-DD 00:00:00".
    m = _DATE_PREFIX.match(text)
    return m.group(1) if m else text


def row_to_event(row: Mapping[str, Any], today: Optional[date] = None) -> CourtesyEvent:
    """Map one sheet row to a create payload, filling the documented defaults."""
    today = today or date.today()
    type_text = _cell(row, COL_TYPE)
    return {
        "company_name": _cell(row, COL_COMPANY) or UNKNOWN_COMPANY,
        "date": _date_cell(row, today),
        "event_type": normalize_event_type(type_text) if type_text else "other",
        "checklist": {key: _cell(row, col) == "O" for key, col in FLAG_COLUMNS.items()},  # type: ignore[typeddict-item]
        "note": _cell(row, COL_NOTE, strip=False),
        "is_completed": _cell(row, COL_DONE) == DONE_LABEL,
    }


@dataclass(frozen=True)
class ImportReport:
    total: int
    created: int

    @property
    def failed(self) -> int:
        return self.total - self.created


async def import_rows(
    store: Any,
    user_id: Optional[str],
    rows: Sequence[Mapping[str, Any]],
    today: Optional[date] = None,
) -> ImportReport:
    """
    One store.create_event per row, all in flight at once. Every create runs
    to completion regardless of the others; `created` counts the successes.
    Listeners get a single refresh once every insert has finished.
    """
    if not user_id:
        return ImportReport(total=len(rows), created=0)

    payloads = [row_to_event(r, today) for r in rows]
    results: List[bool] = [False] * len(payloads)

    async def _one(i: int, payload: CourtesyEvent) -> None:
        results[i] = bool(await store.create_event(user_id, payload, notify=False))

    async with anyio.create_task_group() as tg:
        for i, payload in enumerate(payloads):
            tg.start_soon(_one, i, payload)

    if any(results):
        await store.refresh(user_id)

    report = ImportReport(total=len(payloads), created=sum(results))
    if report.failed:
        logger.warning("import: %d of %d rows failed", report.failed, report.total)
    return report
