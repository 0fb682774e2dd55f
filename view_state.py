# view_state.py
# -----------------------------------------------------------------------------
# UI state that is independent of Shiny: selected day, visible month, the
# add-event modal with its form buffer, and the delete confirmation flow.
# app.py keeps one ViewState per session and mirrors it into reactive values.
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, List, Optional

from courtesy import (
    CourtesyEvent,
    NewEventForm,
    blank_form,
    events_on,
    form_payload,
)
from dates import clamp_day, format_date, step_month


class DeleteFlow:
    """
    Idle <-> PendingDelete(event_id).

    request(id) arms the flow, confirm() disarms it and hands back the id to
    delete, cancel() disarms it with no effect.
    """

    def __init__(self) -> None:
        self.target: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.target is not None

    def request(self, event_id: str) -> None:
        self.target = str(event_id)

    def confirm(self) -> Optional[str]:
        target, self.target = self.target, None
        return target

    def cancel(self) -> None:
        self.target = None


class ViewState:
    def __init__(self, today: Optional[date] = None):
        today = today or date.today()
        self.selected: date = today
        self.year: int = today.year
        self.month: int = today.month
        self.add_open: bool = False
        self.form: NewEventForm = blank_form(format_date(today))
        self.delete = DeleteFlow()

    # ---- Selection / navigation ---------------------------------------------
    @property
    def selected_str(self) -> str:
        return format_date(self.selected)

    def select_day(self, day: int) -> date:
        """Select `day` of the visible month and pre-fill the form date."""
        self.selected = clamp_day(self.year, self.month, day)
        self.form["date"] = self.selected_str
        return self.selected

    def prev_month(self) -> None:
        self.year, self.month = step_month(self.year, self.month, -1)

    def next_month(self) -> None:
        self.year, self.month = step_month(self.year, self.month, 1)

    def go_today(self, today: Optional[date] = None) -> None:
        today = today or date.today()
        self.year, self.month = today.year, today.month
        self.selected = today
        self.form["date"] = self.selected_str

    # ---- Derived ---------------------------------------------------------------
    def day_events(self, events: Iterable[CourtesyEvent]) -> List[CourtesyEvent]:
        return events_on(events, self.selected_str)

    # ---- Add-event modal -------------------------------------------------------
    def open_add(self) -> None:
        self.add_open = True

    def close_add(self) -> None:
        self.add_open = False

    def update_form(self, **fields: Any) -> None:
        for k, v in fields.items():
            if k not in self.form:
                raise KeyError(k)
            self.form[k] = v  # type: ignore[literal-required]

    def submission(self) -> Optional[CourtesyEvent]:
        """Create payload for the current buffer, None when incomplete."""
        return form_payload(self.form)

    def reset_form(self) -> None:
        """After a successful create: fresh buffer dated on the selection."""
        self.form = blank_form(self.selected_str)
        self.add_open = False
