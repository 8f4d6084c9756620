from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import streamlit as st
from streamlit.errors import StreamlitSecretNotFoundError

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BUCKET = "azubidocument"
DEFAULT_TIMEZONE = "Europe/Berlin"
DATA_FOLDER_NAME = "AzubiTracker"


def _get_secret(name: str, env: Mapping[str, str] | None = None) -> Optional[str]:
    try:
        value = st.secrets.get(name)
        if value:
            return str(value).strip()
    except (StreamlitSecretNotFoundError, FileNotFoundError):
        value = None
    env_map: Mapping[str, str] = env if env is not None else os.environ
    raw = env_map.get(name)
    return raw.strip() if raw and raw.strip() else None


def resolve_data_directory(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> Path:
    """Resolve the folder that holds the local JSON documents."""

    if path is not None:
        return Path(path).expanduser()

    env_map: Mapping[str, str] = env if env is not None else os.environ
    configured = env_map.get("AZUBI_DATA_DIR")
    if configured:
        return Path(configured).expanduser()
    return Path(".data") / DATA_FOLDER_NAME


@dataclass(frozen=True)
class AppConfig:
    """Settings resolved once per session and handed to every collaborator."""

    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    storage_bucket: str = DEFAULT_BUCKET
    data_dir: Path = Path(".data") / DATA_FOLDER_NAME
    timezone_name: str = DEFAULT_TIMEZONE

    @property
    def remote_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def has_api_key(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def timezone(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone_name)
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")

    def with_api_key(self, api_key: Optional[str]) -> "AppConfig":
        """Return a copy where a user-entered key takes priority over the ambient one."""

        if api_key and api_key.strip():
            return replace(self, openai_api_key=api_key.strip())
        return self


def load_config(*, env: Mapping[str, str] | None = None) -> AppConfig:
    """Read secrets first, then environment variables."""

    return AppConfig(
        openai_api_key=_get_secret("OPENAI_API_KEY", env),
        openai_base_url=_get_secret("OPENAI_BASE_URL", env),
        openai_model=_get_secret("OPENAI_MODEL", env) or DEFAULT_MODEL,
        supabase_url=(_get_secret("SUPABASE_URL", env) or "").rstrip("/") or None,
        supabase_anon_key=_get_secret("SUPABASE_ANON_KEY", env),
        storage_bucket=_get_secret("SUPABASE_BUCKET", env) or DEFAULT_BUCKET,
        data_dir=resolve_data_directory(env=env),
        timezone_name=_get_secret("AZUBI_TIMEZONE", env) or DEFAULT_TIMEZONE,
    )


__all__ = [
    "AppConfig",
    "DATA_FOLDER_NAME",
    "DEFAULT_BUCKET",
    "DEFAULT_MODEL",
    "DEFAULT_TIMEZONE",
    "load_config",
    "resolve_data_directory",
]
