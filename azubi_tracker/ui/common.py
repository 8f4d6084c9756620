from __future__ import annotations

import streamlit as st

from azubi_tracker.i18n import get_language
from azubi_tracker.models import TaskCategory

CATEGORY_ICONS: dict[TaskCategory, str] = {
    TaskCategory.WORKPLACE: "💼",
    TaskCategory.SCHOOL: "🎓",
    TaskCategory.OTHER: "👤",
}


def category_badge(category: TaskCategory) -> str:
    label = category.label if get_language() == "de" else category.label_en
    return f"{CATEGORY_ICONS[category]} {label}"


def inject_styles() -> None:
    st.markdown(
        """
        <style>
            :root {
                --azubi-primary: #e3001b;
                --azubi-secondary: #f59e0b;
                --azubi-surface: #0f172a;
                --azubi-border: #1e293b;
            }

            .block-container {
                padding-top: 1.2rem;
                max-width: 1400px;
            }

            div[data-testid="stMetric"] {
                background: var(--azubi-surface);
                border: 1px solid var(--azubi-border);
                border-radius: 14px;
                padding: 12px;
            }

            div[data-testid="stProgress"] > div > div > div {
                background-color: var(--azubi-secondary);
            }

            section[data-testid="stSidebar"] {
                border-right: 3px solid var(--azubi-primary);
            }
        </style>
        """,
        unsafe_allow_html=True,
    )


__all__ = ["CATEGORY_ICONS", "category_badge", "inject_styles"]
