from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class SupabaseError(RuntimeError):
    """Raised when a Supabase REST, storage, or auth request fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SupabaseClient:
    """Thin httpx wrapper around the PostgREST, storage, and GoTrue endpoints."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        bucket: str = "azubidocument",
        access_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.bucket = bucket
        self.access_token = access_token
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self, extra: Mapping[str, str] | None = None, *, token: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.access_token or self.anon_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        token: Optional[str] = None,
    ) -> httpx.Response:
        try:
            response = self._client.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json,
                content=content,
                headers=self._headers(headers, token=token),
            )
        except httpx.HTTPError as exc:
            raise SupabaseError(f"Supabase request failed: {exc}") from exc
        if response.status_code >= 400:
            raise SupabaseError(_extract_error_message(response), status_code=response.status_code)
        return response

    # PostgREST tables

    def select(self, table: str, *, filters: Mapping[str, str] | None = None) -> list[dict[str, Any]]:
        params = {"select": "*"}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        response = self._request("GET", f"/rest/v1/{table}", params=params)
        data = _json_body(response)
        if not isinstance(data, list):
            raise SupabaseError(f"Unexpected response for table {table}.")
        return [row for row in data if isinstance(row, dict)]

    def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]] | Mapping[str, Any],
        *,
        on_conflict: Optional[str] = None,
    ) -> None:
        params = {"on_conflict": on_conflict} if on_conflict else None
        payload = [dict(rows)] if isinstance(rows, Mapping) else [dict(row) for row in rows]
        if not payload:
            return
        self._request(
            "POST",
            f"/rest/v1/{table}",
            params=params,
            json=payload,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def delete(self, table: str, *, filters: Mapping[str, str]) -> None:
        if not filters:
            raise SupabaseError("Refusing to delete without a filter.")
        params = {column: f"eq.{value}" for column, value in filters.items()}
        self._request("DELETE", f"/rest/v1/{table}", params=params)

    # Storage bucket

    def upload_object(self, path: str, data: bytes, *, content_type: str = "application/octet-stream") -> None:
        self._request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{_quote_path(path)}",
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )

    def create_signed_url(self, path: str, *, expires_in: int, download_name: Optional[str] = None) -> str:
        response = self._request(
            "POST",
            f"/storage/v1/object/sign/{self.bucket}/{_quote_path(path)}",
            json={"expiresIn": expires_in},
        )
        data = _json_body(response)
        signed = data.get("signedURL") or data.get("signedUrl") if isinstance(data, dict) else None
        if not isinstance(signed, str) or not signed:
            raise SupabaseError("Supabase did not return a signed URL.")
        url = f"{self.url}/storage/v1{signed}" if signed.startswith("/") else signed
        if download_name:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}download={quote(download_name)}"
        return url

    def delete_object(self, paths: Sequence[str]) -> None:
        if not paths:
            return
        self._request("DELETE", f"/storage/v1/object/{self.bucket}", json={"prefixes": list(paths)})

    # Auth

    def sign_up(self, email: str, password: str, *, full_name: str) -> dict[str, Any]:
        response = self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": {"full_name": full_name}},
        )
        return _json_object(response)

    def sign_in(self, email: str, password: str) -> dict[str, Any]:
        response = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _json_object(response)

    def recover(self, email: str) -> None:
        self._request("POST", "/auth/v1/recover", json={"email": email})

    def update_password(self, access_token: str, password: str) -> None:
        self._request("PUT", "/auth/v1/user", json={"password": password}, token=access_token)

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/auth/v1/logout", token=access_token)


def _quote_path(path: str) -> str:
    return "/".join(quote(segment, safe="") for segment in path.split("/"))


def _json_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise SupabaseError("Supabase returned invalid JSON.") from exc


def _json_object(response: httpx.Response) -> dict[str, Any]:
    data = _json_body(response)
    if not isinstance(data, dict):
        raise SupabaseError("Supabase returned an unexpected response.")
    return data


def _extract_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"Supabase request failed (status {response.status_code})."
    if isinstance(payload, dict):
        for key in ("message", "msg", "error_description", "error"):
            message = payload.get(key)
            if isinstance(message, str) and message:
                return message
    return f"Supabase request failed (status {response.status_code})."


__all__ = ["DEFAULT_TIMEOUT_SECONDS", "SupabaseClient", "SupabaseError"]
