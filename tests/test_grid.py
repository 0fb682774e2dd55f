"""Tests for the month grid."""

from datetime import date

from grid import calendar_grid, month_cells


def _day(cells, n):
    return next(c for c in cells if c is not None and c["day"] == n)


def test_leading_blanks_and_day_count():
    cells = month_cells(2024, 2, [], None, date(2024, 2, 1))
    # 2024-02-01 is a Thursday.
    assert cells[:4] == [None, None, None, None]
    days = [c for c in cells if c is not None]
    assert [c["day"] for c in days] == list(range(1, 30))
    assert days[-1]["date"] == "2024-02-29"


def test_today_and_selected_markers():
    cells = month_cells(2024, 5, [], date(2024, 5, 12), date(2024, 5, 10))
    assert _day(cells, 10)["is_today"] and not _day(cells, 10)["is_selected"]
    assert _day(cells, 12)["is_selected"] and not _day(cells, 12)["is_today"]
    assert not _day(cells, 11)["is_today"]


def test_dots_follow_completion_and_cap_at_three(make_event):
    events = [
        make_event(date="2024-05-10", wreath=True, money=True, telegram=True),
        make_event(date="2024-05-10"),
        make_event(date="2024-05-10"),
        make_event(date="2024-05-10"),
        make_event(date="2024-05-11"),
    ]
    cells = month_cells(2024, 5, events, None, date(2024, 1, 1))
    assert _day(cells, 10)["dots"] == ["done", "open", "open"]
    assert _day(cells, 10)["more"] is True
    assert _day(cells, 11)["dots"] == ["open"]
    assert _day(cells, 11)["more"] is False
    assert _day(cells, 12)["dots"] == []


def test_exactly_three_events_has_no_overflow(make_event):
    events = [make_event(date="2024-05-10") for _ in range(3)]
    cell = _day(month_cells(2024, 5, events, None, date(2024, 1, 1)), 10)
    assert len(cell["dots"]) == 3
    assert cell["more"] is False


def test_render_contains_header_and_tiles(make_event):
    html = str(calendar_grid(2024, 5, [make_event(date="2024-05-10")], date(2024, 5, 10), date(2024, 5, 1)))
    assert html.count('class="weekday') == 7
    assert "weekday sunday" in html
    assert html.count('class="day-blank"') == 3
    assert html.count("day-tile-btn") == 31
    assert 'data-date="2024-05-10"' in html
    assert "status-dot open" in html
    assert "day-tile selected" in html
    assert "day-num today" in html
