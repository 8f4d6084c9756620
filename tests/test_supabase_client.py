from __future__ import annotations

import json

import httpx
import pytest

from azubi_tracker.integrations.supabase import SupabaseClient, SupabaseError


def _client(handler, **kwargs) -> SupabaseClient:  # type: ignore[no-untyped-def]
    return SupabaseClient(
        "https://demo.supabase.co/",
        "anon-key",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


def test_select_sends_filters_and_auth_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "t1"}, "ignored"])

    rows = _client(handler, access_token="user-token").select("todos", filters={"user_id": "u1"})

    assert rows == [{"id": "t1"}]
    request = seen[0]
    assert str(request.url).startswith("https://demo.supabase.co/rest/v1/todos")
    assert request.url.params["select"] == "*"
    assert request.url.params["user_id"] == "eq.u1"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer user-token"


def test_anon_key_is_bearer_without_session() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    _client(handler).select("files")

    assert seen[0].headers["Authorization"] == "Bearer anon-key"


def test_upsert_with_conflict_column() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    _client(handler).upsert("user_progress", {"user_id": "u1", "xp": 10}, on_conflict="user_id")

    assert seen[0].url.params["on_conflict"] == "user_id"
    assert json.loads(seen[0].content) == [{"user_id": "u1", "xp": 10}]


def test_upsert_of_empty_list_sends_nothing() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    _client(handler).upsert("todos", [])


def test_delete_requires_filter() -> None:
    with pytest.raises(SupabaseError):
        _client(lambda request: httpx.Response(204)).delete("todos", filters={})


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"message": "JWT expired"}, "JWT expired"),
        ({"msg": "User already registered"}, "User already registered"),
        ({"error": "invalid_grant", "error_description": "Email not confirmed"}, "Email not confirmed"),
    ],
)
def test_error_message_extraction(payload: dict[str, str], expected: str) -> None:
    client = _client(lambda request: httpx.Response(400, json=payload))

    with pytest.raises(SupabaseError) as exc_info:
        client.select("todos")

    assert str(exc_info.value) == expected
    assert exc_info.value.status_code == 400


def test_transport_errors_become_supabase_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(SupabaseError):
        _client(handler).select("todos")


def test_signed_url_is_absolute_with_download_name() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/storage/v1/object/sign/azubidocument/u1/f1"
        assert json.loads(request.content) == {"expiresIn": 60}
        return httpx.Response(200, json={"signedURL": "/object/sign/azubidocument/u1/f1?token=t"})

    url = _client(handler).create_signed_url("u1/f1", expires_in=60, download_name="Mein Vertrag.pdf")

    assert url == (
        "https://demo.supabase.co/storage/v1/object/sign/azubidocument/u1/f1?token=t&download=Mein%20Vertrag.pdf"
    )


def test_update_password_uses_user_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "u1"})

    _client(handler).update_password("session-token", "geheim123")

    assert seen[0].method == "PUT"
    assert seen[0].headers["Authorization"] == "Bearer session-token"

