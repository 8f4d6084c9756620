"""Sign-up, sign-in and password handling.

Supabase auth is used when it is configured. Otherwise accounts live in a
local JSON directory next to the user documents, with bcrypt password hashes.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

import bcrypt
import httpx

from azubi_tracker.config import AppConfig
from azubi_tracker.constants import MIN_NAME_LENGTH, MIN_PASSWORD_LENGTH
from azubi_tracker.i18n import Bilingual
from azubi_tracker.integrations.supabase import SupabaseClient, SupabaseError
from azubi_tracker.models import UserProfile

LOGGER = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERS_FILENAME = "auth_users.json"
LOCAL_ID_PREFIX = "local-"


class InputValidationError(ValueError):
    """A form field failed validation; ``field`` names the offending input."""

    def __init__(self, field: str, message: Bilingual) -> None:
        super().__init__(message if isinstance(message, str) else message[1])
        self.field = field
        self.message = message


class AuthError(RuntimeError):
    """Sign-up or sign-in was refused."""

    def __init__(self, message: Bilingual) -> None:
        super().__init__(message if isinstance(message, str) else message[1])
        self.message = message


@dataclass(frozen=True)
class RegistrationResult:
    user: Optional[UserProfile]
    requires_confirmation: bool = False


def validate_email(email: str) -> None:
    if not EMAIL_PATTERN.match(email.strip()):
        raise InputValidationError(
            "email", ("Bitte eine gültige E-Mail-Adresse eingeben.", "Please enter a valid email address.")
        )


def validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InputValidationError(
            "password",
            (
                f"Das Passwort muss mindestens {MIN_PASSWORD_LENGTH} Zeichen lang sein.",
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
            ),
        )


def validate_name(name: str) -> None:
    if len(name.strip()) < MIN_NAME_LENGTH:
        raise InputValidationError(
            "name",
            (
                f"Der Name muss mindestens {MIN_NAME_LENGTH} Zeichen lang sein.",
                f"Name must be at least {MIN_NAME_LENGTH} characters long.",
            ),
        )


def validate_credentials(email: str, password: str, *, name: Optional[str] = None) -> None:
    """Check form input in display order: name (when registering), email, password."""

    if name is not None:
        validate_name(name)
    validate_email(email)
    validate_password(password)


class LocalUserDirectory:
    """Accounts stored in a JSON file; passwords are bcrypt hashes."""

    def __init__(self, data_dir: str | Path, *, rounds: int = 12) -> None:
        self.path = Path(data_dir) / USERS_FILENAME
        self.rounds = rounds

    def _load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as file_handle:
                users = json.load(file_handle)
        except (OSError, ValueError) as exc:
            LOGGER.error("Auth directory %s unreadable: %s", self.path, exc)
            return []
        return [user for user in users if isinstance(user, dict)] if isinstance(users, list) else []

    def _save(self, users: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as file_handle:
            json.dump(users, file_handle, ensure_ascii=False, indent=2)

    def _find(self, users: list[dict[str, Any]], email: str) -> Optional[dict[str, Any]]:
        wanted = email.strip().lower()
        for user in users:
            if str(user.get("email", "")).lower() == wanted:
                return user
        return None

    def _hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def register(self, name: str, email: str, password: str) -> UserProfile:
        users = self._load()
        if self._find(users, email) is not None:
            raise AuthError(
                (
                    "Es gibt bereits ein Konto mit dieser E-Mail. Bitte melde dich an.",
                    "User with this email already exists. Please sign in.",
                )
            )
        record = {
            "id": f"{LOCAL_ID_PREFIX}{uuid4()}",
            "name": name.strip(),
            "email": email.strip(),
            "password_hash": self._hash(password),
        }
        users.append(record)
        self._save(users)
        return UserProfile(id=record["id"], name=record["name"], email=record["email"])

    def login(self, email: str, password: str) -> UserProfile:
        user = self._find(self._load(), email)
        if user is None:
            raise AuthError(("Konto nicht gefunden. Bitte zuerst registrieren.", "Account not found. Please register first."))
        stored_hash = str(user.get("password_hash", "")).encode("utf-8")
        try:
            matches = bcrypt.checkpw(password.encode("utf-8"), stored_hash)
        except ValueError:
            matches = False
        if not matches:
            raise AuthError(("Falsches Passwort.", "Incorrect password."))
        return UserProfile(id=user.get("id"), name=str(user.get("name", "")), email=str(user.get("email", email)))

    def update_password(self, email: str, password: str) -> None:
        users = self._load()
        user = self._find(users, email)
        if user is None:
            raise AuthError(("Konto nicht gefunden.", "Account not found."))
        user["password_hash"] = self._hash(password)
        self._save(users)


def _profile_from_supabase(payload: dict[str, Any], *, email: str, name: Optional[str] = None) -> UserProfile:
    user = payload.get("user") if isinstance(payload.get("user"), dict) else payload
    metadata = user.get("user_metadata") if isinstance(user.get("user_metadata"), dict) else {}
    return UserProfile(
        id=str(user.get("id")),
        name=name or metadata.get("full_name") or email.split("@")[0],
        email=email,
        access_token=payload.get("access_token"),
    )


class AuthService:
    """Front door for the login screen and the settings dialog."""

    def __init__(
        self,
        *,
        supabase: Optional[SupabaseClient] = None,
        directory: Optional[LocalUserDirectory] = None,
    ) -> None:
        if supabase is None and directory is None:
            raise ValueError("Either a Supabase client or a local user directory is required.")
        self.supabase = supabase
        self.directory = directory

    @property
    def is_remote(self) -> bool:
        return self.supabase is not None

    def register(self, name: str, email: str, password: str) -> RegistrationResult:
        validate_credentials(email, password, name=name)
        email = email.strip()
        if self.supabase is None:
            return RegistrationResult(user=self.directory.register(name, email, password))  # type: ignore[union-attr]

        try:
            payload = self.supabase.sign_up(email, password, full_name=name.strip())
        except SupabaseError as exc:
            raise AuthError(str(exc)) from exc

        if not payload.get("access_token"):
            # Supabase answers with the bare user while the email is unconfirmed.
            return RegistrationResult(user=None, requires_confirmation=True)
        return RegistrationResult(user=_profile_from_supabase(payload, email=email, name=name.strip()))

    def login(self, email: str, password: str) -> UserProfile:
        validate_credentials(email, password)
        email = email.strip()
        if self.supabase is None:
            return self.directory.login(email, password)  # type: ignore[union-attr]

        try:
            payload = self.supabase.sign_in(email, password)
        except SupabaseError as exc:
            if "not confirmed" in str(exc).lower():
                raise AuthError(
                    (
                        "Bitte bestätige deine E-Mail-Adresse, bevor du dich anmeldest.",
                        "Please confirm your email address before signing in.",
                    )
                ) from exc
            raise AuthError(str(exc)) from exc
        if not isinstance(payload.get("user"), dict):
            raise AuthError(("Anmeldung fehlgeschlagen.", "Login failed."))
        return _profile_from_supabase(payload, email=email)

    def reset_password(self, email: str) -> None:
        """Send a reset link; local accounts have no mail delivery, so this is a no-op there."""

        validate_email(email)
        if self.supabase is None:
            return
        try:
            self.supabase.recover(email.strip())
        except SupabaseError as exc:
            raise AuthError(str(exc)) from exc

    def update_password(self, profile: UserProfile, password: str) -> None:
        validate_password(password)
        if self.supabase is None:
            self.directory.update_password(profile.email, password)  # type: ignore[union-attr]
            return
        if not profile.access_token:
            raise AuthError(("Sitzung abgelaufen. Bitte erneut anmelden.", "Session expired. Please sign in again."))
        try:
            self.supabase.update_password(profile.access_token, password)
        except SupabaseError as exc:
            raise AuthError(str(exc)) from exc

    def logout(self, profile: Optional[UserProfile]) -> None:
        if self.supabase is None or profile is None or not profile.access_token:
            return
        try:
            self.supabase.sign_out(profile.access_token)
        except SupabaseError as exc:
            LOGGER.warning("Supabase sign-out failed: %s", exc)


def build_auth_service(config: AppConfig, *, http_client: Optional[httpx.Client] = None) -> AuthService:
    if config.remote_enabled:
        client = SupabaseClient(
            config.supabase_url or "",
            config.supabase_anon_key or "",
            bucket=config.storage_bucket,
            client=http_client,
        )
        return AuthService(supabase=client)
    return AuthService(directory=LocalUserDirectory(config.data_dir))


__all__ = [
    "AuthError",
    "AuthService",
    "EMAIL_PATTERN",
    "InputValidationError",
    "LocalUserDirectory",
    "RegistrationResult",
    "build_auth_service",
    "validate_credentials",
    "validate_email",
    "validate_name",
    "validate_password",
]
