from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from azubi_tracker.auth import (
    AuthError,
    AuthService,
    InputValidationError,
    LocalUserDirectory,
    build_auth_service,
    validate_credentials,
)
from azubi_tracker.config import AppConfig
from azubi_tracker.integrations.supabase import SupabaseClient
from azubi_tracker.models import UserProfile


def _local_service(tmp_path: Path) -> AuthService:
    return AuthService(directory=LocalUserDirectory(tmp_path, rounds=4))


def _remote_service(handler) -> AuthService:  # type: ignore[no-untyped-def]
    client = SupabaseClient(
        "https://demo.supabase.co",
        "anon-key",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    return AuthService(supabase=client)


@pytest.mark.parametrize(
    ("name", "email", "password", "field"),
    [
        ("A", "anna@example.de", "geheim123", "name"),
        ("Anna", "anna.example.de", "geheim123", "email"),
        ("Anna", "anna@example.de", "kurz", "password"),
    ],
)
def test_validation_reports_offending_field(name: str, email: str, password: str, field: str) -> None:
    with pytest.raises(InputValidationError) as exc_info:
        validate_credentials(email, password, name=name)

    assert exc_info.value.field == field


def test_local_register_and_login(tmp_path: Path) -> None:
    service = _local_service(tmp_path)

    result = service.register("Anna Muster", "anna@example.de", "geheim123")
    profile = service.login("ANNA@example.de", "geheim123")

    assert result.user is not None
    assert not result.requires_confirmation
    assert profile.id == result.user.id
    assert profile.is_local
    assert profile.first_name == "Anna"
    stored = json.loads((tmp_path / "auth_users.json").read_text(encoding="utf-8"))
    assert stored[0]["password_hash"] != "geheim123"


def test_local_login_errors(tmp_path: Path) -> None:
    service = _local_service(tmp_path)
    service.register("Anna Muster", "anna@example.de", "geheim123")

    with pytest.raises(AuthError):
        service.register("Anna Muster", "anna@example.de", "anderes123")
    with pytest.raises(AuthError) as wrong_password:
        service.login("anna@example.de", "falsch123")
    with pytest.raises(AuthError):
        service.login("ben@example.de", "geheim123")

    assert wrong_password.value.message == ("Falsches Passwort.", "Incorrect password.")


def test_local_password_update(tmp_path: Path) -> None:
    service = _local_service(tmp_path)
    profile = service.register("Anna Muster", "anna@example.de", "geheim123").user
    assert profile is not None

    service.update_password(profile, "neues-passwort")

    assert service.login("anna@example.de", "neues-passwort").email == "anna@example.de"
    with pytest.raises(AuthError):
        service.login("anna@example.de", "geheim123")


def test_remote_registration_awaiting_confirmation() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/signup"
        assert json.loads(request.content)["data"] == {"full_name": "Anna Muster"}
        return httpx.Response(200, json={"id": "u1", "email": "anna@example.de"})

    result = _remote_service(handler).register("Anna Muster", "anna@example.de", "geheim123")

    assert result.requires_confirmation
    assert result.user is None


def test_remote_login_builds_profile() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["grant_type"] == "password"
        return httpx.Response(
            200,
            json={
                "access_token": "tok",
                "user": {"id": "u1", "user_metadata": {"full_name": "Anna Muster"}},
            },
        )

    profile = _remote_service(handler).login("anna@example.de", "geheim123")

    assert profile == UserProfile(id="u1", name="Anna Muster", email="anna@example.de", access_token="tok")
    assert not profile.is_local


def test_remote_login_unconfirmed_email() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Email not confirmed"})

    with pytest.raises(AuthError) as exc_info:
        _remote_service(handler).login("anna@example.de", "geheim123")

    assert exc_info.value.message[1] == "Please confirm your email address before signing in."


def test_remote_password_update_needs_session() -> None:
    service = _remote_service(lambda request: httpx.Response(200, json={}))

    with pytest.raises(AuthError):
        service.update_password(UserProfile(id="u1", name="Anna", email="anna@example.de"), "geheim123")


def test_build_auth_service_picks_backend(tmp_path: Path) -> None:
    assert not build_auth_service(AppConfig(data_dir=tmp_path)).is_remote
    remote = AppConfig(supabase_url="https://demo.supabase.co", supabase_anon_key="anon", data_dir=tmp_path)
    assert build_auth_service(remote).is_remote
