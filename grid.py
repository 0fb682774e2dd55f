# grid.py
# -----------------------------------------------------------------------------
# Month grid: cell model (pure) + Shiny tags. Clicks are delegated in app.py's
# CUSTOM_JS via the .day-tile-btn class and data-day attribute.
# -----------------------------------------------------------------------------

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, TypedDict

from shiny import ui

from courtesy import CourtesyEvent
from dates import WEEKDAY_LABELS, days_in_month, first_weekday, format_date

MAX_DOTS = 3


class DayCell(TypedDict):
    day: int
    date: str
    is_today: bool
    is_selected: bool
    dots: List[str]  # "done" | "open", one per event, at most MAX_DOTS
    more: bool


def _index_by_date(events: Iterable[CourtesyEvent]) -> Dict[str, List[CourtesyEvent]]:
    indexed: Dict[str, List[CourtesyEvent]] = defaultdict(list)
    for e in events:
        indexed[e.get("date") or ""].append(e)
    return indexed


def month_cells(
    year: int,
    month: int,
    events: Iterable[CourtesyEvent],
    selected: Optional[date],
    today: date,
) -> List[Optional[DayCell]]:
    """Leading None blanks (Sunday=0 offset) followed by one cell per day."""
    indexed = _index_by_date(events)
    cells: List[Optional[DayCell]] = [None] * first_weekday(year, month)

    for d in range(1, days_in_month(year, month) + 1):
        current = date(year, month, d)
        day_events = indexed.get(format_date(current), [])
        cells.append({
            "day": d,
            "date": format_date(current),
            "is_today": current == today,
            "is_selected": current == selected,
            "dots": ["done" if e.get("is_completed") else "open" for e in day_events[:MAX_DOTS]],
            "more": len(day_events) > MAX_DOTS,
        })
    return cells


def day_tile_button(cell: DayCell) -> ui.TagChild:
    tile_class = "day-tile selected" if cell["is_selected"] else "day-tile"
    num_class = "day-num today" if cell["is_today"] else "day-num"

    dots: List[ui.TagChild] = [ui.span(class_=f"status-dot {kind}") for kind in cell["dots"]]
    if cell["more"]:
        dots.append(ui.span("+", class_="status-more"))

    return ui.tags.button(
        ui.div(
            ui.span(str(cell["day"]), class_=num_class),
            ui.div(*dots, class_="dot-row"),
            class_=tile_class,
        ),
        class_="day-tile-btn",
        **{"data-day": str(cell["day"]), "data-date": cell["date"], "type": "button"}
    )


def calendar_grid(
    year: int,
    month: int,
    events: Iterable[CourtesyEvent],
    selected: Optional[date],
    today: Optional[date] = None,
) -> ui.TagChild:
    today = today or date.today()
    header = [
        ui.div(label, class_="weekday sunday" if i == 0 else "weekday")
        for i, label in enumerate(WEEKDAY_LABELS)
    ]
    tiles: List[ui.TagChild] = []
    for cell in month_cells(year, month, events, selected, today):
        if cell is None:
            tiles.append(ui.div(class_="day-blank"))
        else:
            tiles.append(day_tile_button(cell))
    return ui.div(*header, *tiles, class_="month-grid")
