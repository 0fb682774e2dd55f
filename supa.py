# supa.py
# -----------------------------------------------------------------------------
# Supabase identity + courtesy-event store for Shiny (async-safe wrappers).
# - Runs sync supabase-py calls off-thread via anyio.to_thread.run_sync.
# - Defensive response handling (obj/dict/list), no .data on None.
# - Every store change re-delivers the user's complete, date-ordered list to
#   all listeners; consumers replace their copy wholesale on each delivery.
# - Failures are logged and reported as False / empty, never raised.
# - Without a client (missing config, client build failure) both classes run
#   offline: no identity, no rows, every write reports False.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import anyio

from courtesy import (
    CHECKLIST_KEYS,
    CourtesyEvent,
    checklist_patch,
    coerce_checklist,
    normalize_event_type,
)
from supabase_client import SupaConfig, create_supabase

logger = logging.getLogger(__name__)

EventsListener = Callable[[List[CourtesyEvent]], None]

# Stands in for a missing config so table/tenant names keep their defaults.
OFFLINE_CONFIG = SupaConfig(url="", key="")


# --- Identity ----------------------------------------------------------------
@dataclass(frozen=True)
class Identity:
    uid: str
    is_anonymous: bool = False


IdentityListener = Callable[[Optional[Identity]], None]


class SupaAuth:
    """
    Session bootstrap on top of supabase-py's GoTrue client.

    Parameters
    ----------
    config : SupaConfig or None
        `auth_token` (and optionally `refresh_token`) select a token session;
        without a token a stored session is restored or an anonymous one is
        created.
    client : Any
        A supabase client, or None to run offline.
    """

    def __init__(self, config: Optional[SupaConfig], *, client: Any):
        self.config = config or OFFLINE_CONFIG
        self.client = client
        self._identity: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []

    @property
    def offline(self) -> bool:
        return self.client is None

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    def on_change(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register `listener`; it is called now with the current identity and
        again on every change. Returns an unsubscribe callable.
        """
        self._listeners.append(listener)
        listener(self._identity)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_identity(self, identity: Optional[Identity]) -> None:
        if identity == self._identity:
            return
        self._identity = identity
        for listener in list(self._listeners):
            listener(identity)

    async def start(self, stored_refresh_token: str = "") -> Optional[Identity]:
        """
        Establish a session. Order: bootstrap token from config, then the
        browser's stored refresh token, then a fresh anonymous sign-in.
        Returns the identity, or None when sign-in failed.
        """
        if self.offline:
            logger.warning("no supabase backend; running without identity")
            self._set_identity(None)
            return None

        token = self.config.auth_token
        refresh = self.config.refresh_token

        def _restore():
            try:
                resp = self.client.auth.refresh_session(stored_refresh_token)
            except Exception as e:
                logger.info("stored session not restored: %r", e)
                return None
            return resp if getattr(resp, "user", None) is not None else None

        def _sign_in():
            if token and refresh:
                return self.client.auth.set_session(token, refresh)
            if token:
                resp = self.client.auth.get_user(token)
                # get_user only validates; PostgREST still needs the bearer.
                self.client.postgrest.auth(token)
                return resp
            if stored_refresh_token:
                resp = _restore()
                if resp is not None:
                    return resp
            return self.client.auth.sign_in_anonymously()

        try:
            resp = await anyio.to_thread.run_sync(_sign_in)
        except Exception as e:
            logger.error("auth sign-in failed: %r", e)
            self._set_identity(None)
            return None

        user = getattr(resp, "user", None)
        uid = getattr(user, "id", None) if user is not None else None
        if not uid:
            logger.error("auth sign-in returned no user")
            self._set_identity(None)
            return None

        identity = Identity(uid=str(uid), is_anonymous=bool(getattr(user, "is_anonymous", False)))
        self._set_identity(identity)
        return identity

    async def session_refresh_token(self) -> Optional[str]:
        """Refresh token of the live session, for the browser to keep."""
        if self.offline:
            return None
        try:
            session = await anyio.to_thread.run_sync(self.client.auth.get_session)
        except Exception as e:
            logger.warning("auth get_session failed: %r", e)
            return None
        return getattr(session, "refresh_token", None) or None


# --- Event store ---------------------------------------------------------------
class Subscription:
    """Handle for one events listener; cancel() detaches it."""

    def __init__(self, store: "SupaClient", user_id: str, listener: EventsListener):
        self._store = store
        self.user_id = user_id
        self.listener = listener
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._detach(self)


class SupaClient:
    """
    Per-user courtesy-event collection in a Supabase table.

    Parameters
    ----------
    config : SupaConfig or None
        `events_table` and `app_id` select the table and the tenant.
        Expected columns: see schema.sql.
    client : Any
        A supabase client (share the one from SupaAuth so requests carry the
        session), or None to run offline.
    """

    def __init__(self, config: Optional[SupaConfig], *, client: Any):
        config = config or OFFLINE_CONFIG
        self.config = config
        self.client = client
        self.events_table = config.events_table
        self.app_id = config.app_id
        self._subs: Dict[str, List[Subscription]] = {}
        # One fetch-and-deliver at a time per user, so deliveries land in
        # fetch order and the last one is never older than an earlier one.
        self._locks: Dict[str, anyio.Lock] = {}

    def _scoped(self, q: Any, user_id: str) -> Any:
        return q.eq("app_id", self.app_id).eq("user_id", user_id)

    def _lock(self, user_id: str) -> anyio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = anyio.Lock()
        return lock

    # ---------------------------- List / subscribe -------------------------- #
    async def _fetch(self, user_id: str) -> Optional[List[CourtesyEvent]]:
        if self.client is None:
            return None

        def _q():
            q = self.client.table(self.events_table).select("*")
            return self._scoped(q, user_id).order("date", desc=False).execute()

        try:
            resp = await anyio.to_thread.run_sync(_q)
        except Exception as e:
            logger.warning("fetch events(%s) failed: %r", user_id, e)
            return None

        data = _extract_data(resp) or []
        if isinstance(data, dict):
            data = [data]
        events = []
        for r in data:
            if r.get("id") is None:
                logger.warning("fetch events(%s): dropped row without id", user_id)
                continue
            events.append(_row_to_event(r))
        return events

    async def subscribe(self, user_id: str, listener: EventsListener) -> Subscription:
        """Attach `listener` and deliver the current snapshot to it."""
        sub = Subscription(self, user_id, listener)
        self._subs.setdefault(user_id, []).append(sub)
        async with self._lock(user_id):
            rows = await self._fetch(user_id)
            if rows is not None and sub.active:
                listener(rows)
        return sub

    def _detach(self, sub: Subscription) -> None:
        subs = self._subs.get(sub.user_id, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subs.pop(sub.user_id, None)

    async def refresh(self, user_id: Optional[str]) -> bool:
        """
        Re-query and deliver the full list to every listener of `user_id`.
        A failed query delivers nothing; listeners keep their last snapshot.
        """
        if not user_id or not self._subs.get(user_id):
            return False
        async with self._lock(user_id):
            rows = await self._fetch(user_id)
            if rows is None:
                return False
            for sub in list(self._subs.get(user_id, [])):
                if sub.active:
                    sub.listener(list(rows))
        return True

    # ------------------------------ Writes ---------------------------------- #
    async def create_event(
        self,
        user_id: Optional[str],
        candidate: Mapping[str, Any],
        *,
        notify: bool = True,
    ) -> bool:
        """
        Insert one event. company_name and date are required; created_at is
        filled by the server and is_completed defaults to False.
        With notify=False listeners are not refreshed (bulk callers refresh
        once at the end).
        """
        if not user_id or self.client is None:
            logger.debug("create_event skipped: no identity")
            return False
        if not str(candidate.get("company_name") or "").strip() or not str(candidate.get("date") or "").strip():
            logger.warning("create_event rejected: company_name and date are required")
            return False

        payload = _event_to_row(candidate, app_id=self.app_id, user_id=user_id)

        def _q():
            return self.client.table(self.events_table).insert(payload).execute()

        try:
            await anyio.to_thread.run_sync(_q)
        except Exception as e:
            logger.warning("create_event failed: %r", e)
            return False

        if notify:
            await self.refresh(user_id)
        return True

    async def set_checklist_item(
        self,
        user_id: Optional[str],
        event_id: str,
        key: str,
        value: bool,
        checklist: Mapping[str, Any],
    ) -> bool:
        """
        Write one checklist flag plus the recomputed is_completed.
        `checklist` is the full map before this toggle.
        """
        patch = checklist_patch(key, value, checklist)
        if not user_id or self.client is None:
            logger.debug("set_checklist_item skipped: no identity")
            return False

        def _q():
            q = self.client.table(self.events_table).update(patch).eq("id", event_id)
            return self._scoped(q, user_id).execute()

        try:
            await anyio.to_thread.run_sync(_q)
        except Exception as e:
            logger.warning("set_checklist_item(%s, %s) failed: %r", event_id, key, e)
            return False

        await self.refresh(user_id)
        return True

    async def delete_event(self, user_id: Optional[str], event_id: str) -> bool:
        if not user_id or not event_id or self.client is None:
            return False

        def _q():
            q = self.client.table(self.events_table).delete().eq("id", event_id)
            return self._scoped(q, user_id).execute()

        try:
            await anyio.to_thread.run_sync(_q)
        except Exception as e:
            logger.warning("delete_event(%s) failed: %r", event_id, e)
            return False

        await self.refresh(user_id)
        return True


def connect(
    config: Optional[SupaConfig],
    client_factory: Callable[[SupaConfig], Any] = create_supabase,
) -> Tuple[SupaAuth, SupaClient]:
    """
    Build the identity client and the store over one shared supabase client.
    A missing config or a failing factory yields an offline pair.
    """
    client = None
    if config is None:
        logger.error("supabase not configured; running offline")
    else:
        try:
            client = client_factory(config)
        except Exception as e:
            logger.error("supabase client creation failed; running offline: %r", e)
    return SupaAuth(config, client=client), SupaClient(config, client=client)


# --- Internal helpers -------------------------------------------------------- #
def _extract_data(resp: Any) -> Optional[Any]:
    """
    Normalise supabase response shapes:
    - APIResponse with .data
    - dict with 'data' key
    - None
    """
    if resp is None:
        return None
    data = getattr(resp, "data", None)
    if data is None and isinstance(resp, dict):
        data = resp.get("data")
    return data


def _row_to_event(row: Mapping[str, Any]) -> CourtesyEvent:
    checklist = coerce_checklist({k: row.get(k) for k in CHECKLIST_KEYS})
    created = row.get("created_at")
    return {
        "id": str(row["id"]),
        "company_name": str(row.get("company_name") or ""),
        "event_type": normalize_event_type(row.get("event_type")),
        "date": str(row.get("date") or ""),
        "note": str(row.get("note") or ""),
        "checklist": checklist,
        # Stored flag, not recomputed on read.
        "is_completed": bool(row.get("is_completed", False)),
        "created_at": str(created) if created is not None else None,
    }


def _event_to_row(event: Mapping[str, Any], *, app_id: str, user_id: str) -> Dict[str, Any]:
    checklist = coerce_checklist(event.get("checklist"))
    row: Dict[str, Any] = {
        "app_id": app_id,
        "user_id": user_id,
        "company_name": str(event.get("company_name") or "").strip(),
        "event_type": normalize_event_type(event.get("event_type"), "wedding"),
        "date": str(event.get("date") or "").strip(),
        "note": str(event.get("note") or ""),
        "is_completed": bool(event.get("is_completed", False)),
    }
    row.update(checklist)
    return row


__all__ = [
    "Identity", "SupaAuth",
    "Subscription", "SupaClient",
    "connect",
]
