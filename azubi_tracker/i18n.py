"""German/English switch for UI strings written as ``(de, en)`` pairs."""

from __future__ import annotations

from functools import wraps
from typing import Iterable, Literal, Mapping, Union

import streamlit as st
from streamlit.delta_generator import DeltaGenerator

LanguageCode = Literal["de", "en"]
Bilingual = Union[str, tuple[str, str]]

DEFAULT_LANGUAGE: LanguageCode = "de"
LANGUAGE_KEY = "language"
LANGUAGE_OPTIONS: dict[str, LanguageCode] = {"Deutsch": "de", "English": "en"}

LOCALIZED_METHODS: tuple[str, ...] = (
    "title",
    "header",
    "subheader",
    "markdown",
    "caption",
    "info",
    "warning",
    "error",
    "success",
    "button",
    "download_button",
    "radio",
    "selectbox",
    "checkbox",
    "text_input",
    "text_area",
    "date_input",
    "file_uploader",
    "metric",
    "expander",
    "form_submit_button",
)


def get_language() -> LanguageCode:
    language = st.session_state.get(LANGUAGE_KEY)
    if language in ("de", "en"):
        return language
    st.session_state[LANGUAGE_KEY] = DEFAULT_LANGUAGE
    return DEFAULT_LANGUAGE


def set_language(language: LanguageCode) -> None:
    st.session_state[LANGUAGE_KEY] = language


def translate_text(text: Bilingual) -> str:
    """Pick the German or English half of a ``(de, en)`` pair; plain strings pass through."""

    if isinstance(text, tuple) and len(text) == 2:
        german, english = text
        return german if get_language() == "de" else english
    return text


def _is_pair(value: object) -> bool:
    return isinstance(value, tuple) and len(value) == 2 and all(isinstance(part, str) for part in value)


def translate_value(value: object) -> object:
    if _is_pair(value):
        return translate_text(value)  # type: ignore[arg-type]
    if isinstance(value, list):
        return [translate_value(item) for item in value]
    if isinstance(value, Mapping):
        return {key: translate_value(item) for key, item in value.items()}
    return value


def _localize(method_name: str) -> None:
    original = getattr(DeltaGenerator, method_name, None)
    if original is None or getattr(original, "_is_localized", False):
        return

    @wraps(original)
    def wrapper(self: DeltaGenerator, *args: object, **kwargs: object):
        args = tuple(translate_value(arg) for arg in args)
        kwargs = {name: value if name == "key" else translate_value(value) for name, value in kwargs.items()}
        return original(self, *args, **kwargs)

    setattr(wrapper, "_is_localized", True)
    setattr(DeltaGenerator, method_name, wrapper)

    # ``st.<method>`` is bound to the main container at import time; rebind it to the wrapper.
    module_level = getattr(st, method_name, None)
    owner = getattr(module_level, "__self__", None)
    if isinstance(owner, DeltaGenerator):
        setattr(st, method_name, getattr(owner, method_name))


def localize_streamlit(methods: Iterable[str] | None = None) -> None:
    """Let Streamlit widgets accept ``(de, en)`` pairs for labels and messages."""

    for method_name in methods or LOCALIZED_METHODS:
        _localize(method_name)


__all__ = [
    "Bilingual",
    "DEFAULT_LANGUAGE",
    "LANGUAGE_KEY",
    "LANGUAGE_OPTIONS",
    "LanguageCode",
    "get_language",
    "localize_streamlit",
    "set_language",
    "translate_text",
    "translate_value",
]
