# actions.py
# -----------------------------------------------------------------------------
# What the app's buttons do, minus Shiny: each function takes the session's
# ViewState / store / user id and returns what the UI should show next.
# app.py handlers read inputs, call one of these, then redraw.
# -----------------------------------------------------------------------------

from __future__ import annotations

import io
import logging
from typing import IO, Any, List, Optional, Sequence, Tuple, Union

import anyio

from courtesy import CHECKLIST_KEYS, CourtesyEvent, apply_toggle
from sheets import ImportReport, codec_available, import_rows, read_workbook, write_workbook
from view_state import ViewState

logger = logging.getLogger(__name__)

# (text, notification type) pairs for ui.notification_show.
Notice = Tuple[str, str]

READ_FAILED_TEXT = "엑셀 파일을 읽지 못했습니다."


def export_bytes(events: Sequence[CourtesyEvent]) -> Optional[bytes]:
    """Workbook bytes for the download, or None when there is nothing to export."""
    if not events:
        return None
    if not codec_available():
        logger.warning("export skipped: openpyxl not installed")
        return None
    buf = io.BytesIO()
    write_workbook(events, buf)
    return buf.getvalue()


def import_notices(report: ImportReport) -> List[Notice]:
    # The headline counts input rows, failures get their own line.
    notices = [(f"{report.total}건의 데이터가 성공적으로 불러와졌습니다.", "message")]
    if report.failed:
        notices.append((f"{report.failed}건은 저장에 실패했습니다.", "warning"))
    return notices


async def import_workbook(
    store: Any,
    user_id: Optional[str],
    source: Union[str, IO[bytes]],
    name: str = "",
) -> List[Notice]:
    """Read an uploaded workbook and create one event per row."""
    if user_id is None or not codec_available():
        return []
    try:
        rows = await anyio.to_thread.run_sync(read_workbook, source)
    except Exception as e:
        logger.error("reading %s failed: %r", name or source, e)
        return [(READ_FAILED_TEXT, "error")]
    report = await import_rows(store, user_id, rows)
    return import_notices(report)


async def toggle_item(
    store: Any,
    user_id: Optional[str],
    events: Sequence[CourtesyEvent],
    event_id: str,
    key: str,
) -> bool:
    """Flip one checklist flag of a listed event."""
    if key not in CHECKLIST_KEYS:
        return False
    ev = next((e for e in events if str(e.get("id")) == event_id), None)
    if ev is None:
        return False
    toggled = apply_toggle(ev, key)
    return await store.set_checklist_item(
        user_id, event_id, key, toggled["checklist"][key], ev["checklist"],
    )


async def submit_new_event(view: ViewState, store: Any, user_id: Optional[str], **fields: str) -> bool:
    """
    Copy modal fields into the form buffer and create the event.
    True means the modal should close; the buffer is reset then.
    """
    view.update_form(**fields)
    payload = view.submission()
    if payload is None or user_id is None:
        return False
    if not await store.create_event(user_id, payload):
        return False
    view.reset_form()
    return True


async def confirm_delete(view: ViewState, store: Any, user_id: Optional[str]) -> Optional[str]:
    """Leave the confirm step and delete its target. Returns the deleted id."""
    target = view.delete.confirm()
    if not target:
        return None
    if not await store.delete_event(user_id, target):
        return None
    return target
