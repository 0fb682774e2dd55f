# supabase_client.py
# -----------------------------------------------------------------------------
# Backend configuration for Secretary Mate.
# - Reads SUPABASE_* / COURTESY_* from the environment (.env honoured, never
#   overriding real environment variables).
# - Produces an explicit SupaConfig that is handed to SupaAuth / SupaClient;
#   nothing here caches a client at module level.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when the backend configuration is missing or malformed."""


@dataclass(frozen=True)
class SupaConfig:
    """Connection parameters for the Supabase project."""

    url: str
    key: str
    schema: str = "public"
    events_table: str = "events"
    app_id: str = "default-app-id"
    auth_token: str = ""
    refresh_token: str = ""
    poll_seconds: float = 15.0


def _env(env: Mapping[str, str], name: str, default: str = "") -> str:
    return (env.get(name) or default).strip()


def load_config(env: Optional[Mapping[str, str]] = None) -> SupaConfig:
    """
    Build a SupaConfig from `env` (defaults to os.environ after loading .env).
    """
    if env is None:
        load_dotenv(override=False)
        env = os.environ

    url = _env(env, "SUPABASE_URL")
    key = _env(env, "SUPABASE_SERVICE_KEY") or _env(env, "SUPABASE_ANON_KEY")
    if not url or not key:
        raise ConfigError(
            "Supabase credentials missing. Set SUPABASE_URL and SUPABASE_SERVICE_KEY "
            "(or SUPABASE_ANON_KEY) as environment variables."
        )

    raw_poll = _env(env, "COURTESY_POLL_SECONDS", "15")
    try:
        poll_seconds = float(raw_poll)
    except ValueError as e:
        raise ConfigError(f"COURTESY_POLL_SECONDS must be a number, got {raw_poll!r}") from e
    if poll_seconds <= 0:
        raise ConfigError("COURTESY_POLL_SECONDS must be positive")

    return SupaConfig(
        url=url,
        key=key,
        schema=_env(env, "SUPABASE_SCHEMA", "public"),
        events_table=_env(env, "COURTESY_EVENTS_TABLE", "events"),
        app_id=_env(env, "COURTESY_APP_ID", "default-app-id"),
        auth_token=_env(env, "COURTESY_AUTH_TOKEN"),
        refresh_token=_env(env, "COURTESY_REFRESH_TOKEN"),
        poll_seconds=poll_seconds,
    )


def load_config_or_none(env: Optional[Mapping[str, str]] = None) -> Optional[SupaConfig]:
    """load_config, but a bad or missing config is logged and yields None."""
    try:
        return load_config(env)
    except ConfigError as e:
        logger.error("%s", e)
        return None


def create_supabase(config: SupaConfig) -> Any:
    """Create a supabase-py client bound to the configured schema."""
    try:
        from supabase import create_client  # lazy import so config tests never need it
    except ImportError as e:
        raise ConfigError(
            "Supabase client library isn’t available. Install `supabase>=2`."
        ) from e
    try:
        # Newer releases
        from supabase.client import ClientOptions
    except ImportError:
        # Older releases
        from supabase.lib.client_options import ClientOptions

    return create_client(config.url, config.key, options=ClientOptions(schema=config.schema))
