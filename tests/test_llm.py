from __future__ import annotations

import httpx
import pytest
from openai import APITimeoutError

from azubi_tracker import llm
from azubi_tracker.config import AppConfig
from azubi_tracker.llm import (
    LLMError,
    MissingCredentialsError,
    get_openai_client,
    parse_json_payload,
    require_client,
    strip_code_fences,
)
from azubi_tracker.llm_schemas import WeeklyReportPayload


def _timeout() -> APITimeoutError:
    return APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/responses"))


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert parse_json_payload('```JSON\n["x"]\n```') == ["x"]
    assert parse_json_payload(None) is None


def test_missing_key_yields_no_client() -> None:
    assert get_openai_client(AppConfig()) is None
    with pytest.raises(MissingCredentialsError):
        require_client(None)


def test_retries_transient_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(llm.time, "sleep", lambda _: None)
    attempts = {"count": 0}

    def _call() -> str:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise _timeout()
        return "ok"

    assert llm._with_retries(_call, max_attempts=3) == "ok"
    assert attempts["count"] == 3


def test_gives_up_after_max_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(llm.time, "sleep", lambda _: None)

    def _call() -> str:
        raise _timeout()

    with pytest.raises(LLMError):
        llm._with_retries(_call, max_attempts=2)


def test_unexpected_errors_are_wrapped() -> None:
    def _call() -> str:
        raise KeyError("output")

    with pytest.raises(LLMError):
        llm._with_retries(_call, max_attempts=3)


def test_report_payload_coercion() -> None:
    payload = WeeklyReportPayload.model_validate(
        {"betrieblicheTaetigkeiten": ["Kasse", "Lager"], "unterweisung": None, "gesamtstunden": 38}
    )

    assert payload.betrieblicheTaetigkeiten == "Kasse\nLager"
    assert payload.unterweisung == ""
    assert payload.berufsschule == ""
    assert payload.gesamtstunden == "38"
