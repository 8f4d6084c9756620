from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict

import pytest
import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from azubi_tracker.models import UserData  # noqa: E402
from azubi_tracker.state import configure_storage, init_state  # noqa: E402
from azubi_tracker.storage import LocalStorageBackend  # noqa: E402

TEST_EMAIL = "anna.muster@example.de"


@pytest.fixture()
def session_state(monkeypatch: pytest.MonkeyPatch) -> Dict[str, object]:
    state: Dict[str, object] = {}
    monkeypatch.setattr(st, "session_state", state, raising=False)
    return state


@pytest.fixture()
def local_backend(tmp_path: Path, session_state: Dict[str, object]) -> LocalStorageBackend:
    backend = LocalStorageBackend(tmp_path, TEST_EMAIL)
    configure_storage(backend)
    init_state(UserData())
    return backend
