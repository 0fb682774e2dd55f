"""Tests for the spreadsheet bridge."""

import io
from datetime import date, datetime

import pytest

from sheets import (
    COLUMNS,
    ImportReport,
    event_to_row,
    export_filename,
    import_rows,
    read_workbook,
    row_to_event,
    write_workbook,
)
from supa import SupaClient

TODAY = date(2024, 5, 10)
UID = "user-1"


class TestExportRows:
    def test_row_layout(self, make_event):
        row = event_to_row(make_event(
            company="ACME", date="2024-05-10", event_type="funeral",
            wreath=True, telegram=True, note="부친상",
        ))
        assert list(row) == COLUMNS
        assert row == {
            "날짜": "2024-05-10",
            "회사명": "ACME",
            "구분": "장례",
            "화환보냄": "O",
            "경조금보냄": "X",
            "전보보냄": "O",
            "완료여부": "진행중",
            "메모": "부친상",
        }

    def test_completed_label(self, make_event):
        row = event_to_row(make_event(wreath=True, money=True, telegram=True))
        assert row["완료여부"] == "완료"

    def test_filename(self):
        assert export_filename(TODAY) == "경조사관리_2024-05-10.xlsx"


class TestImportRows:
    def test_defaults_for_missing_cells(self):
        ev = row_to_event({}, TODAY)
        assert ev == {
            "company_name": "Unknown",
            "date": "2024-05-10",
            "event_type": "other",
            "checklist": {"wreath": False, "money": False, "telegram": False},
            "note": "",
            "is_completed": False,
        }

    def test_flags_are_case_sensitive(self):
        ev = row_to_event({"화환보냄": "O", "경조금보냄": "o", "전보보냄": "X"}, TODAY)
        assert ev["checklist"] == {"wreath": True, "money": False, "telegram": False}

    def test_completion_label(self):
        assert row_to_event({"완료여부": "완료"}, TODAY)["is_completed"] is True
        assert row_to_event({"완료여부": "진행중"}, TODAY)["is_completed"] is False

    @pytest.mark.parametrize("cell,expected", [
        ("결혼", "wedding"),
        ("개업", "opening"),
        ("funeral", "funeral"),
        ("돌잔치", "other"),
    ])
    def test_type_cell(self, cell, expected):
        assert row_to_event({"구분": cell}, TODAY)["event_type"] == expected

    @pytest.mark.parametrize("cell", [
        "2024-06-01",
        "2024-06-01 00:00:00",
        datetime(2024, 6, 1),
        date(2024, 6, 1),
    ])
    def test_date_cell_shapes(self, cell):
        assert row_to_event({"날짜": cell}, TODAY)["date"] == "2024-06-01"

    def test_note_whitespace_is_kept(self):
        ev = row_to_event({"회사명": " ACME ", "메모": "  화환 2개\n리본 문구 확인  "}, TODAY)
        assert ev["company_name"] == "ACME"
        assert ev["note"] == "  화환 2개\n리본 문구 확인  "

    def test_nan_cells_count_as_missing(self):
        ev = row_to_event({"회사명": float("nan"), "메모": float("nan")}, TODAY)
        assert ev["company_name"] == "Unknown"
        assert ev["note"] == ""


class TestWorkbook:
    def test_export_then_import_round_trip(self, make_event):
        events = [
            make_event(company="ACME", date="2024-05-10", event_type="wedding", note="장남 결혼"),
            make_event(company="Globex", date="2024-05-11", event_type="funeral", wreath=True, money=True, telegram=True),
            make_event(company="Initech", date="2024-06-01", event_type="opening", money=True),
            make_event(company="Hooli", date="2024-07-07", event_type="other", note="  오후 2시  "),
        ]
        buf = io.BytesIO()
        assert write_workbook(events, buf) == 4
        buf.seek(0)

        back = [row_to_event(r, TODAY) for r in read_workbook(buf)]

        assert len(back) == len(events)
        for orig, ev in zip(events, back):
            assert ev["company_name"] == orig["company_name"]
            assert ev["date"] == orig["date"]
            assert ev["event_type"] == orig["event_type"]
            assert ev["checklist"] == orig["checklist"]
            assert ev["note"] == orig["note"]
            assert ev["is_completed"] == orig["is_completed"]

    def test_sheet_name_and_headers(self, make_event):
        import pandas as pd

        buf = io.BytesIO()
        write_workbook([make_event()], buf)
        buf.seek(0)
        sheets = pd.read_excel(buf, sheet_name=None)
        assert list(sheets) == ["경조사목록"]
        assert list(sheets["경조사목록"].columns) == COLUMNS


@pytest.mark.anyio
class TestImportThroughStore:
    async def test_every_row_is_created(self, config, fake_client, snapshot):
        store = SupaClient(config, client=fake_client)
        rows = [
            {"날짜": "2024-05-10", "회사명": "ACME", "구분": "결혼"},
            {"회사명": "Globex"},
            {"날짜": "2024-01-01", "회사명": "Initech", "완료여부": "완료",
             "화환보냄": "O", "경조금보냄": "O", "전보보냄": "O"},
        ]

        report = await import_rows(store, UID, rows, TODAY)

        assert report == ImportReport(total=3, created=3)
        events = await snapshot(store, UID)
        assert events[0]["company_name"] == "Initech"
        assert events[0]["is_completed"] is True
        by_name = {e["company_name"]: e for e in events}
        assert set(by_name) == {"Initech", "ACME", "Globex"}
        assert by_name["Globex"]["date"] == "2024-05-10"
        assert by_name["Globex"]["event_type"] == "other"
        assert by_name["ACME"]["event_type"] == "wedding"

    async def test_failed_rows_do_not_stop_others(self, config, fake_client, snapshot):
        store = SupaClient(config, client=fake_client)
        fake_client.reject_insert = lambda payload: payload["company_name"] == "Bad"
        rows = [{"회사명": "Good"}, {"회사명": "Bad"}, {"회사명": "Fine"}]

        report = await import_rows(store, UID, rows, TODAY)

        assert report.total == 3
        assert report.created == 2
        assert report.failed == 1
        assert sorted(e["company_name"] for e in await snapshot(store, UID)) == ["Fine", "Good"]

    async def test_listeners_get_one_complete_delivery(self, config, fake_client):
        store = SupaClient(config, client=fake_client)
        deliveries = []
        await store.subscribe(UID, deliveries.append)
        rows = [{"회사명": f"C{i:02d}", "날짜": f"2024-05-{i + 1:02d}"} for i in range(20)]
        fake_client.select_delays.extend([0.05] * 5)

        report = await import_rows(store, UID, rows, TODAY)

        assert report == ImportReport(total=20, created=20)
        assert [len(d) for d in deliveries] == [0, 20]
        assert [e["company_name"] for e in deliveries[-1]] == [f"C{i:02d}" for i in range(20)]

    async def test_nothing_created_means_no_delivery(self, config, fake_client):
        store = SupaClient(config, client=fake_client)
        deliveries = []
        await store.subscribe(UID, deliveries.append)
        fake_client.fail_ops.add("insert")

        report = await import_rows(store, UID, [{"회사명": "ACME"}], TODAY)

        assert report.created == 0
        assert deliveries == [[]]

    async def test_no_identity_creates_nothing(self, config, fake_client):
        store = SupaClient(config, client=fake_client)
        report = await import_rows(store, None, [{"회사명": "ACME"}], TODAY)
        assert report == ImportReport(total=1, created=0)
        assert fake_client.calls == []
