# courtesy.py
# -----------------------------------------------------------------------------
# Courtesy-event records: types, checklist, completion flag, day filter and
# the new-event form buffer. Pure helpers, no I/O.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, TypedDict

# Enum key -> display label (also the spreadsheet 구분 value).
EVENT_TYPES: Dict[str, str] = {
    "wedding": "결혼",
    "funeral": "장례",
    "opening": "개업",
    "other": "기타",
}
DEFAULT_EVENT_TYPE = "wedding"

# Checklist key -> button label.
CHECKLIST_KEYS: Dict[str, str] = {
    "wreath": "화환",
    "money": "경조금",
    "telegram": "전보/방문",
}


class Checklist(TypedDict):
    wreath: bool
    money: bool
    telegram: bool


class CourtesyEvent(TypedDict, total=False):
    id: str
    company_name: str
    event_type: str
    date: str
    note: str
    checklist: Checklist
    is_completed: bool
    created_at: Optional[str]


def empty_checklist() -> Checklist:
    return {"wreath": False, "money": False, "telegram": False}


def coerce_checklist(raw: Optional[Mapping[str, Any]]) -> Checklist:
    """Keep exactly the three known keys, missing ones as False."""
    raw = raw or {}
    return {
        "wreath": bool(raw.get("wreath", False)),
        "money": bool(raw.get("money", False)),
        "telegram": bool(raw.get("telegram", False)),
    }


def all_checked(checklist: Mapping[str, Any]) -> bool:
    return all(bool(checklist.get(k, False)) for k in CHECKLIST_KEYS)


def checked_count(checklist: Mapping[str, Any]) -> int:
    return sum(1 for k in CHECKLIST_KEYS if checklist.get(k))


def normalize_event_type(value: Any, default: str = "other") -> str:
    """Accept an enum key or its Korean label; anything else maps to `default`."""
    text = str(value or "").strip()
    if text in EVENT_TYPES:
        return text
    for key, label in EVENT_TYPES.items():
        if text == label:
            return key
    return default


def event_type_label(event_type: str) -> str:
    return EVENT_TYPES.get(event_type, EVENT_TYPES["other"])


def checklist_patch(key: str, value: bool, checklist: Mapping[str, Any]) -> Dict[str, bool]:
    """
    Partial update for one checklist toggle.

    `checklist` is the full map before the toggle; the new `value` is applied
    first so `is_completed` reflects the state after this write.
    """
    if key not in CHECKLIST_KEYS:
        raise ValueError(f"unknown checklist key: {key!r}")
    updated = dict(coerce_checklist(checklist))
    updated[key] = bool(value)
    return {key: bool(value), "is_completed": all_checked(updated)}


def apply_toggle(event: CourtesyEvent, key: str) -> CourtesyEvent:
    """Return a copy of `event` with `key` flipped and is_completed recomputed."""
    current = coerce_checklist(event.get("checklist"))
    patch = checklist_patch(key, not current[key], current)
    checklist = dict(current)
    checklist[key] = patch[key]
    out: CourtesyEvent = dict(event)  # type: ignore[assignment]
    out["checklist"] = checklist  # type: ignore[typeddict-item]
    out["is_completed"] = patch["is_completed"]
    return out


def events_on(events: Iterable[CourtesyEvent], date_str: str) -> List[CourtesyEvent]:
    """Events whose date string is exactly `date_str`."""
    return [e for e in events if e.get("date") == date_str]


# --- New-event form buffer --------------------------------------------------- #
class NewEventForm(TypedDict):
    company_name: str
    event_type: str
    date: str
    note: str
    checklist: Checklist


def blank_form(date_str: str = "") -> NewEventForm:
    return {
        "company_name": "",
        "event_type": DEFAULT_EVENT_TYPE,
        "date": date_str,
        "note": "",
        "checklist": empty_checklist(),
    }


def form_payload(form: Mapping[str, Any]) -> Optional[CourtesyEvent]:
    """
    Turn a form buffer into a create payload, or None when company name or
    date is empty.
    """
    company = str(form.get("company_name") or "").strip()
    date_str = str(form.get("date") or "").strip()
    if not company or not date_str:
        return None
    checklist = coerce_checklist(form.get("checklist"))
    return {
        "company_name": company,
        "event_type": normalize_event_type(form.get("event_type"), DEFAULT_EVENT_TYPE),
        "date": date_str,
        "note": str(form.get("note") or ""),
        "checklist": checklist,
        "is_completed": False,
    }
