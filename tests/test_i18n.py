from __future__ import annotations

from azubi_tracker.i18n import LANGUAGE_KEY, get_language, set_language, translate_text, translate_value


def test_german_is_the_default(session_state: dict[str, object]) -> None:
    assert get_language() == "de"
    assert session_state[LANGUAGE_KEY] == "de"
    assert translate_text(("Aufgaben", "Tasks")) == "Aufgaben"


def test_switching_to_english(session_state: dict[str, object]) -> None:
    set_language("en")

    assert translate_text(("Aufgaben", "Tasks")) == "Tasks"
    assert translate_text("Berichtsheft") == "Berichtsheft"
    assert translate_value([("Ja", "Yes"), 3, {"label": ("Nein", "No")}]) == ["Yes", 3, {"label": "No"}]
