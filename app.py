# app.py
# ------------------------------------------------------------------------------
# Secretary Mate - 경조사 매니저
# Courtesy-event calendar (weddings, funerals, openings) with per-event
# checklist, backed by Supabase. Run with: shiny run app.py
# ------------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from shiny import App, reactive, render, ui

from actions import confirm_delete, export_bytes, import_workbook, submit_new_event, toggle_item
from courtesy import CHECKLIST_KEYS, CourtesyEvent, NewEventForm, checked_count, event_type_label
from dates import day_title, format_date, month_title
from grid import calendar_grid
from sheets import ACCEPTED_SUFFIXES, codec_available, export_filename
from supa import Identity, Subscription, connect
from supabase_client import SupaConfig, create_supabase, load_config_or_none
from view_state import ViewState

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="[%(asctime)s] [%(levelname)-7s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------------------

APP_TITLE = "Secretary Mate"
EMPTY_DAY_TEXT = "등록된 경조사 일정이 없습니다."
OFFLINE_TEXT = "저장소에 연결할 수 없습니다. 서버 설정을 확인하세요."

TYPE_CHOICES: Dict[str, str] = {
    "wedding": "결혼 (축하)",
    "funeral": "장례 (조의)",
    "opening": "개업 (축하)",
    "other": "기타",
}

# ------------------------------------------------------------------------------
# Injected CSS & JS
# ------------------------------------------------------------------------------

CUSTOM_CSS = """
body { background: #f9fafb; }
.app-header { background: #fff; border-bottom: 1px solid #e5e7eb; }
.month-grid {
    display: grid; grid-template-columns: repeat(7, 1fr);
    border-left: 1px solid #e5e7eb; border-bottom: 1px solid #e5e7eb;
    border-radius: 8px; overflow: hidden; text-align: center;
}
.weekday { padding: 6px 0; background: #f9fafb; color: #4b5563; border-right: 1px solid #e5e7eb; }
.weekday.sunday { color: #ef4444; }
.day-blank { min-height: 64px; background: rgba(249, 250, 251, 0.3); }
.day-tile-btn { background: none; border: none; padding: 0; margin: 0; width: 100%; cursor: pointer; }
.day-tile {
    min-height: 64px; padding-top: 4px; background: #fff;
    border-top: 1px solid #f3f4f6; border-right: 1px solid #f3f4f6;
    display: flex; flex-direction: column; align-items: center;
}
.day-tile.selected { background: #eef2ff; font-weight: 600; }
.day-tile-btn:hover .day-tile { background: #eef2ff; }
.day-num { width: 28px; height: 28px; line-height: 28px; border-radius: 50%; }
.day-num.today { background: #4f46e5; color: #fff; }
.dot-row { display: flex; gap: 3px; margin-top: 3px; }
.status-dot { width: 6px; height: 6px; border-radius: 50%; }
.status-dot.done { background: #22c55e; }
.status-dot.open { background: #fb923c; }
.status-more { font-size: 8px; color: #9ca3af; line-height: 6px; }
.event-card { background: #fff; border: 1px solid #e5e7eb; border-radius: 12px; overflow: hidden; margin-bottom: 12px; }
.event-card.completed { border-color: #bbf7d0; background: rgba(240, 253, 244, 0.3); }
.type-badge { font-size: 0.75rem; padding: 1px 8px; border-radius: 999px; border: 1px solid; }
.type-wedding { background: #fce7f3; color: #be185d; border-color: #fbcfe8; }
.type-funeral { background: #f3f4f6; color: #374151; border-color: #e5e7eb; }
.type-opening { background: #dbeafe; color: #1d4ed8; border-color: #bfdbfe; }
.type-other { background: #f3e8ff; color: #7e22ce; border-color: #e9d5ff; }
.done-badge { font-size: 0.75rem; padding: 1px 8px; border-radius: 999px; background: #dcfce7; color: #15803d; font-weight: 700; }
.progress-track { height: 4px; background: #f3f4f6; }
.progress-fill { height: 100%; background: #6366f1; }
.event-card.completed .progress-fill { background: #22c55e; }
.check-row { display: grid; grid-template-columns: repeat(3, 1fr); background: rgba(249, 250, 251, 0.5); }
.check-btn { border: none; background: none; padding: 10px; color: #9ca3af; }
.check-btn.on { color: #4f46e5; background: rgba(238, 242, 255, 0.5); }
.empty-day { background: #fff; border: 1px dashed #d1d5db; border-radius: 12px; padding: 32px; text-align: center; color: #9ca3af; }
"""

CUSTOM_JS = """
$(document).ready(function() {
    // 1. Delegated Calendar Day Click
    $(document).off('click', '.day-tile-btn').on('click', '.day-tile-btn', function() {
        Shiny.setInputValue('js_day_click', {day: $(this).data('day')}, {priority: 'event'});
    });

    // 2. Delegated Checklist Toggle
    $(document).off('click', '.check-btn').on('click', '.check-btn', function() {
        Shiny.setInputValue('js_toggle', {id: String($(this).data('id')), key: $(this).data('key')}, {priority: 'event'});
    });

    // 3. Delegated Delete Request
    $(document).off('click', '.delete-btn').on('click', '.delete-btn', function(e) {
        e.stopPropagation();
        Shiny.setInputValue('js_delete_request', {id: String($(this).data('id'))}, {priority: 'event'});
    });

    // 4. Session persistence: hand the stored refresh token to the server,
    //    and keep whatever token the server sends back.
    var SESSION_KEY = 'secretary-mate-session';
    function sendStoredSession() {
        var token = '';
        try { token = window.localStorage.getItem(SESSION_KEY) || ''; } catch (e) {}
        Shiny.setInputValue('stored_session', {refresh_token: token});
    }
    if (Shiny.shinyapp && Shiny.shinyapp.isConnected()) {
        sendStoredSession();
    } else {
        $(document).one('shiny:connected', sendStoredSession);
    }
    Shiny.addCustomMessageHandler('store_session', function(msg) {
        try {
            if (msg && msg.refresh_token) window.localStorage.setItem(SESSION_KEY, msg.refresh_token);
        } catch (e) {}
    });
});
"""

# ------------------------------------------------------------------------------
# UI Components
# ------------------------------------------------------------------------------

def checklist_button(event: CourtesyEvent, key: str) -> ui.TagChild:
    on = bool(event["checklist"].get(key))
    return ui.tags.button(
        ui.div(CHECKLIST_KEYS[key], class_="small fw-medium"),
        ui.div("●" if on else "○"),
        class_="check-btn on" if on else "check-btn",
        **{"type": "button", "data-id": str(event["id"]), "data-key": key}
    )


def event_card(event: CourtesyEvent) -> ui.TagChild:
    etype = event.get("event_type") or "other"
    done = bool(event.get("is_completed"))
    pct = round(checked_count(event["checklist"]) / len(CHECKLIST_KEYS) * 100)
    note = (event.get("note") or "").strip()

    header = ui.div(
        ui.div(
            ui.div(
                ui.span(event_type_label(etype), class_=f"type-badge type-{etype}"),
                ui.span("✓ 완료", class_="done-badge") if done else None,
                class_="d-flex align-items-center gap-2 mb-1",
            ),
            ui.h5(event.get("company_name") or "", class_="fw-bold mb-0"),
            ui.p(note, class_="small text-secondary mt-1 mb-0") if note else None,
        ),
        ui.tags.button(
            "🗑",
            class_="btn btn-link text-secondary delete-btn p-1",
            title="삭제",
            **{"type": "button", "data-id": str(event["id"])}
        ),
        class_="p-3 d-flex align-items-start justify-content-between",
    )
    return ui.div(
        header,
        ui.div(ui.div(class_="progress-fill", style=f"width:{pct}%;"), class_="progress-track"),
        ui.div(*[checklist_button(event, k) for k in CHECKLIST_KEYS], class_="check-row"),
        class_="event-card completed" if done else "event-card",
    )


def empty_day() -> ui.TagChild:
    return ui.div(
        ui.p(EMPTY_DAY_TEXT, class_="mb-1"),
        ui.input_action_link("btn_add_from_empty", "+ 새 일정 추가하기"),
        class_="empty-day",
    )

# ------------------------------------------------------------------------------
# Main App
# ------------------------------------------------------------------------------

page = ui.page_fluid(
    ui.head_content(
        ui.tags.title(APP_TITLE),
        ui.tags.style(CUSTOM_CSS),
        ui.tags.script(CUSTOM_JS),
    ),
    ui.div(
        ui.h4(APP_TITLE, class_="mb-0 fw-bold"),
        ui.div(
            ui.input_file(
                "xl_upload", None,
                accept=ACCEPTED_SUFFIXES,
                button_label="엑셀 불러오기",
                placeholder="",
                width="200px",
            ),
            ui.output_ui("export_slot"),
            ui.input_action_button("btn_add_open", "+ 일정 추가", class_="btn btn-primary"),
            class_="ms-auto d-flex align-items-center gap-2 flex-wrap",
        ),
        class_="app-header d-flex align-items-center gap-3 flex-wrap p-3 mb-3",
    ),
    ui.div(
        ui.card(
            ui.div(
                ui.h5(ui.output_text("month_label", inline=True), class_="mb-0 fw-bold"),
                ui.div(
                    ui.input_action_button("btn_prev", "‹", class_="btn btn-light btn-sm"),
                    ui.input_action_button("btn_today", "오늘", class_="btn btn-light btn-sm"),
                    ui.input_action_button("btn_next", "›", class_="btn btn-light btn-sm"),
                    class_="ms-auto d-flex gap-1",
                ),
                class_="d-flex align-items-center mb-3",
            ),
            ui.output_ui("calendar"),
        ),
        ui.h5(ui.output_text("day_label", inline=True), class_="fw-bold mt-4 mb-3 ps-2 border-start border-4 border-primary"),
        ui.output_ui("day_list"),
        class_="container pb-5",
        style="max-width: 768px;",
    ),
)

# ------------------------------------------------------------------------------
# Server
# ------------------------------------------------------------------------------

def make_server(
    config: Optional[SupaConfig],
    *,
    client_factory: Callable[[SupaConfig], Any] = create_supabase,
):
    """
    Server function bound to `config`; one supabase client per session.
    With no config, or a client that cannot be built, sessions run offline.
    """

    def server(input, output, session):
        auth, db = connect(config, client_factory)
        view = ViewState()

        # State
        identity: reactive.Value[Optional[Identity]] = reactive.Value(None)
        auth_ready: reactive.Value[bool] = reactive.Value(False)
        events: reactive.Value[List[CourtesyEvent]] = reactive.Value([])
        view_rev: reactive.Value[int] = reactive.Value(0)

        live: Dict[str, Optional[Subscription]] = {"sub": None}
        started = {"auth": False}
        saved: Dict[str, Optional[str]] = {"refresh_token": None}

        def touch() -> None:
            with reactive.isolate():
                view_rev.set(view_rev.get() + 1)

        def uid() -> Optional[str]:
            with reactive.isolate():
                ident = identity.get()
            return ident.uid if ident else None

        def _drop_subscription() -> None:
            if live["sub"] is not None:
                live["sub"].cancel()
                live["sub"] = None

        unsubscribe_auth = auth.on_change(identity.set)

        def _on_ended() -> None:
            _drop_subscription()
            unsubscribe_auth()

        session.on_ended(_on_ended)

        async def _remember_session() -> None:
            # Refresh tokens rotate; keep the browser's copy current.
            token = await auth.session_refresh_token()
            if token and token != saved["refresh_token"]:
                saved["refresh_token"] = token
                await session.send_custom_message("store_session", {"refresh_token": token})

        @reactive.Effect
        @reactive.event(input.stored_session)
        async def _init():
            if started["auth"]:
                return
            started["auth"] = True
            data = input.stored_session()
            stored = str(data.get("refresh_token") or "") if isinstance(data, dict) else ""
            ident = await auth.start(stored)
            logger.info("session started (identity=%s, stored_token=%s)", ident.uid if ident else None, bool(stored))
            auth_ready.set(True)
            if auth.offline:
                ui.notification_show(OFFLINE_TEXT, type="error", duration=None)
                return
            await _remember_session()

        @reactive.Effect
        async def _sync_subscription():
            ident = identity.get()
            _drop_subscription()
            events.set([])
            if ident is not None:
                live["sub"] = await db.subscribe(ident.uid, events.set)

        @reactive.Effect
        async def _poll():
            reactive.invalidate_later(db.config.poll_seconds)
            if live["sub"] is not None:
                await db.refresh(live["sub"].user_id)
                await _remember_session()

        # ---- Outputs --------------------------------------------------------

        @render.text
        def month_label():
            view_rev.get()
            return month_title(view.year, view.month)

        @render.text
        def day_label():
            view_rev.get()
            return day_title(view.selected)

        @render.ui
        def calendar():
            view_rev.get()
            return calendar_grid(view.year, view.month, events.get(), view.selected)

        @render.ui
        def day_list():
            view_rev.get()
            if not auth_ready.get():
                return ui.div(ui.div(class_="spinner-border text-primary"), class_="text-center p-4")
            day_events = view.day_events(events.get())
            if not day_events:
                return empty_day()
            return ui.div(*[event_card(e) for e in day_events])

        @render.ui
        def export_slot():
            if events.get() and codec_available():
                return ui.download_button("xl_download", "엑셀 내보내기", class_="btn btn-outline-success")
            return ui.tags.button("엑셀 내보내기", class_="btn btn-outline-success", disabled="", type="button")

        @render.download(filename=lambda: export_filename())
        def xl_download():
            with reactive.isolate():
                data = export_bytes(events.get())
            if data is not None:
                yield data

        # ---- Calendar navigation --------------------------------------------

        @reactive.Effect
        @reactive.event(input.js_day_click)
        def _on_day_click():
            data = input.js_day_click()
            if not isinstance(data, dict):
                return
            try:
                day = int(data.get("day", 0))
            except (TypeError, ValueError):
                return
            if day < 1:
                return
            view.select_day(day)
            touch()

        @reactive.Effect
        @reactive.event(input.btn_prev)
        def _prev_month():
            view.prev_month()
            touch()

        @reactive.Effect
        @reactive.event(input.btn_next)
        def _next_month():
            view.next_month()
            touch()

        @reactive.Effect
        @reactive.event(input.btn_today)
        def _today():
            view.go_today()
            touch()

        # ---- Checklist ----------------------------------------------------------

        @reactive.Effect
        @reactive.event(input.js_toggle)
        async def _on_toggle():
            data = input.js_toggle()
            if not isinstance(data, dict):
                return
            eid, key = str(data.get("id") or ""), str(data.get("key") or "")
            with reactive.isolate():
                current = events.get()
            await toggle_item(db, uid(), current, eid, key)

        # ---- Add-event modal ------------------------------------------------

        def _show_add():
            view.open_add()
            ui.modal_show(add_event_modal(view.form))

        @reactive.Effect
        @reactive.event(input.btn_add_open)
        def _add_open():
            _show_add()

        @reactive.Effect
        @reactive.event(input.btn_add_from_empty)
        def _add_from_empty():
            _show_add()

        @reactive.Effect
        @reactive.event(input.add_cancel)
        def _add_cancel():
            view.close_add()
            ui.modal_remove()

        @reactive.Effect
        @reactive.event(input.add_submit)
        async def _add_submit():
            picked = input.ev_date()
            created = await submit_new_event(
                view, db, uid(),
                company_name=input.ev_company() or "",
                event_type=input.ev_type() or "wedding",
                date=format_date(picked) if isinstance(picked, date) else "",
                note=input.ev_note() or "",
            )
            if created:
                ui.modal_remove()
                touch()

        # ---- Delete confirmation --------------------------------------------

        @reactive.Effect
        @reactive.event(input.js_delete_request)
        def _delete_request():
            data = input.js_delete_request()
            eid = data.get("id") if isinstance(data, dict) else data
            if not eid:
                return
            view.delete.request(str(eid))
            ui.modal_show(delete_modal())

        @reactive.Effect
        @reactive.event(input.del_cancel)
        def _delete_cancel():
            view.delete.cancel()
            ui.modal_remove()

        @reactive.Effect
        @reactive.event(input.del_confirm)
        async def _delete_confirm():
            ui.modal_remove()
            await confirm_delete(view, db, uid())

        # ---- Spreadsheet import ---------------------------------------------

        @reactive.Effect
        @reactive.event(input.xl_upload)
        async def _import():
            files = input.xl_upload()
            if not files:
                return
            notices = await import_workbook(db, uid(), files[0]["datapath"], files[0].get("name", ""))
            for text, kind in notices:
                ui.notification_show(text, type=kind)

    return server

# ------------------------------------------------------------------------------
# Modals
# ------------------------------------------------------------------------------

def add_event_modal(form: NewEventForm) -> ui.TagChild:
    picked: Optional[str] = form["date"] or None
    return ui.modal(
        ui.input_date("ev_date", "날짜", value=picked),
        ui.input_text("ev_company", "회사명 (거래처)", value=form["company_name"], placeholder="(주)한국무역"),
        ui.row(
            ui.column(6, ui.input_select("ev_type", "구분", choices=TYPE_CHOICES, selected=form["event_type"])),
            ui.column(6, ui.input_text("ev_note", "메모", value=form["note"], placeholder="김부장님 장남")),
        ),
        title="새 경조사 등록",
        footer=ui.div(
            ui.input_action_button("add_cancel", "취소", class_="btn btn-light me-2"),
            ui.input_action_button("add_submit", "등록하기", class_="btn btn-primary"),
            class_="d-flex justify-content-end",
        ),
        easy_close=False, size="m",
    )


def delete_modal() -> ui.TagChild:
    return ui.modal(
        ui.p("이 경조사 기록을 정말 삭제하시겠습니까?", class_="mb-1"),
        ui.p("삭제 후에는 복구할 수 없습니다.", class_="text-secondary"),
        title="일정 삭제",
        footer=ui.div(
            ui.input_action_button("del_cancel", "취소", class_="btn btn-light me-2"),
            ui.input_action_button("del_confirm", "삭제", class_="btn btn-danger"),
            class_="d-flex justify-content-end",
        ),
        easy_close=False, size="s",
    )


app = App(page, server=make_server(load_config_or_none()))
