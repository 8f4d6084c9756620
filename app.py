from __future__ import annotations

import logging
import os
from datetime import date, datetime
from typing import Optional

import streamlit as st
from openai import OpenAI

from azubi_tracker.assistant import build_system_instruction, error_reply, stream_reply, welcome_message
from azubi_tracker.auth import AuthError, AuthService, InputValidationError, build_auth_service
from azubi_tracker.charts import build_weekly_completion_figure, weekly_completion_counts
from azubi_tracker.config import AppConfig, load_config
from azubi_tracker.constants import (
    CUSTOM_API_KEY,
    MAX_INLINE_FILE_BYTES,
    NAVIGATION_KEY,
    SS_CHAT,
    SS_CHAT_CANCEL,
    SS_QUIZ,
    SS_REPORT,
)
from azubi_tracker.files import FileTooLargeError, add_file, delete_file, format_size, process_upload, recent_files
from azubi_tracker.gamification import calculate_progress_to_next_level, is_report_completed, toggle_report_completion
from azubi_tracker.i18n import LANGUAGE_OPTIONS, get_language, localize_streamlit, set_language, translate_text
from azubi_tracker.knowledge import QuizSession, answer_card, generate_flashcards, start_quiz
from azubi_tracker.llm import LLMError, MissingCredentialsError, get_openai_client
from azubi_tracker.models import ChatMessage, ReportStyle, TaskCategory, TaskRecord, UserProfile
from azubi_tracker.report_pdf import RenderingError, TemplateUnreadableError, render_report_pdf, report_filename
from azubi_tracker.reporting import (
    ReportFailure,
    ReportSession,
    ReportStatus,
    build_report_request,
    days_until_sunday,
    format_date_range,
    report_period,
    run_generation,
)
from azubi_tracker.state import (
    configure_storage,
    get_files,
    get_progress,
    get_storage,
    get_tasks,
    get_user,
    load_user_state,
    needs_sync,
    reset_state,
    set_user,
)
from azubi_tracker.storage import PersistenceError, select_storage_backend
from azubi_tracker.tasks import (
    EmptyTaskError,
    add_task,
    add_tasks,
    completion_rate,
    delete_task,
    filter_tasks,
    pending_count,
    suggest_tasks,
    toggle_task,
    update_task,
)
from azubi_tracker.ui.common import category_badge, inject_styles

LOGGER = logging.getLogger(__name__)

APP_TITLE = "Azubi Tracker"
TEMPLATE_KEY = "report_template"
CONFIG_KEY = "app_config"
PAGES: dict[str, tuple[str, str]] = {
    "dashboard": ("Übersicht", "Dashboard"),
    "tasks": ("Aufgaben", "Tasks & Notes"),
    "report": ("Berichtsheft", "Report book"),
    "knowledge": ("Wissen & Quiz", "Knowledge & quiz"),
    "files": ("Dokumente", "Documents"),
    "assistant": ("KI-Mentor", "AI mentor"),
    "about": ("Über", "About"),
}
PERSISTENCE_FAILED = (
    "Speichern fehlgeschlagen. Die Änderung wurde zurückgenommen.",
    "Saving failed. The change was reverted.",
)
MISSING_KEY_HINT = (
    "Kein API-Schlüssel hinterlegt. Bitte in den Einstellungen (Seitenleiste) eintragen.",
    "No API key configured. Please add one in the settings (sidebar).",
)


def _configure_logging() -> None:
    level_name = os.getenv("AZUBI_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _active_config() -> AppConfig:
    config = st.session_state.get(CONFIG_KEY)
    if not isinstance(config, AppConfig):
        config = load_config()
        st.session_state[CONFIG_KEY] = config
    return config.with_api_key(st.session_state.get(CUSTOM_API_KEY))


def _sign_in(profile: UserProfile, config: AppConfig) -> None:
    reset_state()
    set_user(profile)
    configure_storage(select_storage_backend(config, profile))
    load_user_state()
    LOGGER.info("Signed in %s (%s storage)", profile.email, "local" if profile.is_local else "remote")


def _sign_out(auth_service: AuthService) -> None:
    auth_service.logout(get_user())
    reset_state()
    st.session_state.pop(TEMPLATE_KEY, None)
    st.rerun()


def _show_validation_error(exc: InputValidationError) -> None:
    st.error(exc.message)


def render_login(auth_service: AuthService, config: AppConfig) -> None:
    st.title(APP_TITLE)
    st.caption(("Dein digitaler Begleiter durch die Ausbildung.", "Your digital companion through the apprenticeship."))
    if not auth_service.is_remote:
        st.info(
            (
                "Lokaler Modus: Konten und Daten werden nur auf diesem Rechner gespeichert.",
                "Local mode: accounts and data are stored on this machine only.",
            )
        )

    login_tab, register_tab, reset_tab = st.tabs(
        [
            translate_text(("Anmelden", "Sign in")),
            translate_text(("Registrieren", "Register")),
            translate_text(("Passwort vergessen", "Forgot password")),
        ]
    )

    with login_tab:
        with st.form("login_form"):
            email = st.text_input(("E-Mail", "Email"))
            password = st.text_input(("Passwort", "Password"), type="password")
            submitted = st.form_submit_button(("Anmelden", "Sign in"), type="primary")
        if submitted:
            try:
                profile = auth_service.login(email, password)
            except InputValidationError as exc:
                _show_validation_error(exc)
            except AuthError as exc:
                st.error(exc.message)
            else:
                _sign_in(profile, config)
                st.rerun()

    with register_tab:
        with st.form("register_form"):
            name = st.text_input(("Vollständiger Name", "Full name"))
            email = st.text_input(("E-Mail", "Email"), key="register_email")
            password = st.text_input(("Passwort", "Password"), type="password", key="register_password")
            submitted = st.form_submit_button(("Konto erstellen", "Create account"), type="primary")
        if submitted:
            try:
                result = auth_service.register(name, email, password)
            except InputValidationError as exc:
                _show_validation_error(exc)
            except AuthError as exc:
                st.error(exc.message)
            else:
                if result.requires_confirmation or result.user is None:
                    st.success(
                        (
                            "Fast geschafft! Bitte bestätige deine E-Mail-Adresse und melde dich dann an.",
                            "Almost done! Please confirm your email address, then sign in.",
                        )
                    )
                else:
                    _sign_in(result.user, config)
                    st.rerun()

    with reset_tab:
        with st.form("reset_form"):
            email = st.text_input(("E-Mail", "Email"), key="reset_email")
            submitted = st.form_submit_button(("Link senden", "Send link"))
        if submitted:
            try:
                auth_service.reset_password(email)
            except InputValidationError as exc:
                _show_validation_error(exc)
            except AuthError as exc:
                st.error(exc.message)
            else:
                if auth_service.is_remote:
                    st.success(
                        (
                            "Falls ein Konto existiert, wurde eine E-Mail versendet.",
                            "If an account exists, an email was sent.",
                        )
                    )
                else:
                    st.info(("Im lokalen Modus gibt es keinen E-Mail-Versand.", "Local mode cannot send emails."))


def render_settings_panel(auth_service: AuthService, profile: UserProfile, config: AppConfig) -> None:
    with st.sidebar.expander(translate_text(("Einstellungen", "Settings")), expanded=False):
        language_label = st.radio(
            ("Sprache", "Language"),
            list(LANGUAGE_OPTIONS.keys()),
            index=list(LANGUAGE_OPTIONS.values()).index(get_language()),
            horizontal=True,
        )
        if LANGUAGE_OPTIONS[language_label] != get_language():
            set_language(LANGUAGE_OPTIONS[language_label])
            st.rerun()

        api_key = st.text_input(
            ("Eigener OpenAI API-Schlüssel", "Custom OpenAI API key"),
            value=st.session_state.get(CUSTOM_API_KEY, ""),
            type="password",
        )
        if api_key != st.session_state.get(CUSTOM_API_KEY, ""):
            st.session_state[CUSTOM_API_KEY] = api_key.strip()
        st.caption(
            ("KI-Funktionen aktiv." if config.has_api_key else "Kein Schlüssel: KI-Funktionen sind deaktiviert.",
             "AI features enabled." if config.has_api_key else "No key: AI features are disabled.")
        )

        with st.form("password_form", clear_on_submit=True):
            new_password = st.text_input(("Neues Passwort", "New password"), type="password")
            if st.form_submit_button(("Passwort ändern", "Change password")):
                try:
                    auth_service.update_password(profile, new_password)
                except InputValidationError as exc:
                    _show_validation_error(exc)
                except AuthError as exc:
                    st.error(exc.message)
                else:
                    st.success(("Passwort aktualisiert.", "Password updated."))

        if st.button(("Abmelden", "Sign out"), use_container_width=True):
            _sign_out(auth_service)


def render_sidebar(profile: UserProfile) -> str:
    st.sidebar.title(APP_TITLE)
    st.sidebar.caption(f"{profile.name} · {profile.email}")
    progress = get_progress()
    within_level, per_level, ratio = calculate_progress_to_next_level(progress)
    st.sidebar.progress(ratio, text=f"Level {progress.level} · {within_level} / {per_level} XP")

    selection = st.sidebar.radio(
        translate_text(("Bereich wählen", "Choose section")),
        list(PAGES.keys()),
        format_func=lambda key: translate_text(PAGES[key]),
        key=NAVIGATION_KEY,
        label_visibility="collapsed",
    )
    if needs_sync():
        st.sidebar.warning(
            (
                "Offline gespeichert. Die Cloud wird beim nächsten Speichern abgeglichen.",
                "Saved offline. The cloud copy is reconciled on the next save.",
            )
        )
    st.sidebar.divider()
    return selection


def render_dashboard(profile: UserProfile, config: AppConfig) -> None:
    tasks = get_tasks()
    files = get_files()
    progress = get_progress()
    today = datetime.now(config.timezone).date()
    period = report_period(today)

    st.header(translate_text(("Hallo", "Hello")) + f", {profile.first_name}!")
    st.caption(today.strftime("%d.%m.%Y"))

    within_level, per_level, ratio = calculate_progress_to_next_level(progress)
    st.progress(ratio, text=f"Level {progress.level} · {within_level} / {per_level} XP")

    report_col, pending_col, rate_col, files_col = st.columns(4)
    report_label = translate_text(("Bericht KW", "Report CW")) + f" {period.week_number}"
    with report_col:
        if is_report_completed(period.period_id):
            st.metric(report_label, translate_text(("Erledigt", "Done")))
        else:
            days_left = days_until_sunday(today)
            st.metric(
                report_label,
                translate_text(("Offen", "Open")),
                delta=translate_text((f"{days_left} Tage übrig", f"{days_left} days left")),
                delta_color="inverse",
            )
    pending_col.metric(translate_text(("Offene Aufgaben", "Pending tasks")), pending_count(tasks))
    rate_col.metric(translate_text(("Erledigungsquote", "Completion rate")), f"{completion_rate(tasks)} %")
    files_col.metric(translate_text(("Gespeicherte Dokumente", "Saved documents")), len(files))

    st.plotly_chart(
        build_weekly_completion_figure(weekly_completion_counts(tasks, period, config.timezone)),
        use_container_width=True,
    )

    st.subheader(("Neueste Dokumente", "Recent documents"))
    latest = recent_files(files)
    if not latest:
        st.caption(("Noch keine Dateien hochgeladen.", "No files uploaded yet."))
    for stored in latest:
        st.markdown(f"📄 **{stored.name}** · {format_size(stored.size)}")


def _run_with_persistence(action, *args, **kwargs) -> bool:
    try:
        action(*args, **kwargs)
    except PersistenceError as exc:
        LOGGER.error("Persistence failed: %s", exc)
        st.error(PERSISTENCE_FAILED)
        return False
    return True


def _render_task_editor(task: TaskRecord) -> None:
    categories = list(TaskCategory)
    with st.form(f"task_edit_{task.id}"):
        text = st.text_input(("Text", "Text"), value=task.text)
        category = st.selectbox(
            ("Kategorie", "Category"),
            categories,
            index=categories.index(task.category),
            format_func=category_badge,
        )
        due_date = st.date_input(("Fällig am", "Due on"), value=task.due_date)
        saved = st.form_submit_button(("Speichern", "Save"))
    if not saved:
        return
    try:
        update_task(task.id, text=text, category=category, due_date=due_date)
    except EmptyTaskError:
        st.error(("Bitte einen Aufgabentext eingeben.", "Please enter a task text."))
    except PersistenceError as exc:
        LOGGER.error("Task not updated: %s", exc)
        st.error(PERSISTENCE_FAILED)
    else:
        st.rerun()


def render_tasks(config: AppConfig, client: Optional[OpenAI]) -> None:
    st.header(PAGES["tasks"])

    with st.form("new_task_form", clear_on_submit=True):
        text_col, category_col, due_col = st.columns([3, 1, 1])
        text = text_col.text_input(("Was hast du heute gemacht?", "What did you do today?"))
        category = category_col.selectbox(
            ("Kategorie", "Category"),
            list(TaskCategory),
            format_func=category_badge,
        )
        due_date = due_col.date_input(("Fällig am", "Due on"), value=None)
        submitted = st.form_submit_button(("Hinzufügen", "Add"), type="primary")
    if submitted:
        try:
            add_task(text, category, due_date)
        except EmptyTaskError:
            st.error(("Bitte einen Aufgabentext eingeben.", "Please enter a task text."))
        except PersistenceError as exc:
            LOGGER.error("Task not created: %s", exc)
            st.error(PERSISTENCE_FAILED)
        else:
            st.rerun()

    if st.button(("✨ Aufgaben vorschlagen", "✨ Suggest tasks"), disabled=client is None):
        with st.spinner(translate_text(("Denke nach...", "Thinking..."))):
            try:
                suggestions = suggest_tasks(client=client, model=config.openai_model)
            except MissingCredentialsError:
                st.warning(MISSING_KEY_HINT)
            except LLMError as exc:
                LOGGER.warning("Task suggestions failed: %s", exc)
                st.error(("Vorschläge konnten nicht geladen werden.", "Could not load suggestions."))
            else:
                if _run_with_persistence(add_tasks, suggestions):
                    st.rerun()
    if client is None:
        st.caption(MISSING_KEY_HINT)

    filter_options: list[Optional[TaskCategory]] = [None, *TaskCategory]
    selected = st.radio(
        ("Filter", "Filter"),
        filter_options,
        format_func=lambda option: translate_text(("Alle", "All")) if option is None else category_badge(option),
        horizontal=True,
    )
    visible = filter_tasks(get_tasks(), selected)
    if not visible:
        st.info(("Keine Aufgaben gefunden.", "No tasks found."))

    for task in visible:
        check_col, text_col, delete_col = st.columns([0.6, 8, 1])
        check_col.checkbox(
            "done",
            value=task.completed,
            key=f"task_done_{task.id}",
            label_visibility="collapsed",
            on_change=_run_with_persistence,
            args=(toggle_task, task.id),
        )
        due = f" · 📅 {task.due_date.strftime('%d.%m.%Y')}" if task.due_date else ""
        label = f"~~{task.text}~~" if task.completed else task.text
        text_col.markdown(f"{label}  \n<small>{category_badge(task.category)}{due}</small>", unsafe_allow_html=True)
        if delete_col.button("🗑️", key=f"task_delete_{task.id}"):
            if _run_with_persistence(delete_task, task.id):
                st.rerun()
        with st.expander(("Bearbeiten", "Edit")):
            _render_task_editor(task)


def _report_session() -> ReportSession:
    raw = st.session_state.get(SS_REPORT)
    if isinstance(raw, ReportSession):
        return raw
    return ReportSession.model_validate(raw) if raw else ReportSession()


def _store_report_session(session: ReportSession) -> None:
    st.session_state[SS_REPORT] = session.model_dump()


def render_report(config: AppConfig, client: Optional[OpenAI]) -> None:
    st.header(PAGES["report"])
    today = datetime.now(config.timezone).date()

    settings_col, style_col, number_col = st.columns(3)
    anchor: date = settings_col.date_input(("Woche", "Week"), value=today, format="DD.MM.YYYY")
    style = style_col.selectbox(("Stil", "Style"), list(ReportStyle), format_func=lambda item: item.label)
    report_number = number_col.text_input(("Ausbildungsnachweis Nr.", "Report no."))

    request = build_report_request(anchor, get_tasks(), config.timezone)
    period = request.period
    st.caption(
        f"KW {period.week_number} · {format_date_range(period)} · "
        + translate_text(
            (
                f"{len(request.workplace_tasks)} Betrieb, {len(request.school_tasks)} Berufsschule",
                f"{len(request.workplace_tasks)} workplace, {len(request.school_tasks)} school",
            )
        )
    )
    if request.task_count == 0:
        st.info(
            (
                "In dieser Woche sind noch keine Aufgaben erledigt.",
                "No tasks were completed in this week yet.",
            )
        )

    session = _report_session()
    if session.period_id not in (None, period.period_id):
        session = ReportSession()
        _store_report_session(session)

    if st.button(
        ("✨ Bericht erstellen", "✨ Generate report")
        if session.status is not ReportStatus.READY
        else ("🔄 Neu erstellen", "🔄 Regenerate"),
        type="primary",
    ):
        with st.spinner(translate_text(("Bericht wird erstellt...", "Generating report..."))):
            session = run_generation(
                session,
                request,
                style=style,
                report_number=report_number.strip() or None,
                client=client,
                model=config.openai_model,
            )
        _store_report_session(session)

    if session.status is ReportStatus.FAILED:
        if session.failure is ReportFailure.MISSING_CREDENTIALS:
            st.warning(MISSING_KEY_HINT)
        else:
            st.error(("Erstellung fehlgeschlagen. Bitte erneut versuchen.", "Generation failed. Please try again."))

    if session.status is ReportStatus.READY:
        content = session.content
        edited = session.edit(
            workplace_activities=st.text_area(
                ("Betriebliche Tätigkeiten", "Workplace activities"), value=content.workplace_activities, height=200
            ),
            instruction=st.text_area(("Unterweisungen / Schulungen", "Instruction"), value=content.instruction, height=180),
            school_topics=st.text_area(("Berufsschule", "Vocational school"), value=content.school_topics, height=140),
            total_hours=st.text_input(("Gesamtstunden", "Total hours"), value=content.total_hours),
        )
        if edited != session:
            session = edited
            _store_report_session(session)

    st.subheader(("PDF-Vorlage", "PDF template"))
    upload = st.file_uploader(("Leeres Berichtsheft-Formular (PDF)", "Blank report form (PDF)"), type=["pdf"])
    if upload is not None:
        st.session_state[TEMPLATE_KEY] = upload.getvalue()
    template_bytes = st.session_state.get(TEMPLATE_KEY)

    if session.can_render and template_bytes:
        try:
            pdf_bytes = render_report_pdf(template_bytes, session.content)
        except TemplateUnreadableError as exc:
            st.error(str(exc))
        except RenderingError as exc:
            st.error(translate_text(("PDF konnte nicht erzeugt werden: ", "PDF could not be created: ")) + str(exc))
        else:
            st.download_button(
                ("📄 PDF herunterladen", "📄 Download PDF"),
                data=pdf_bytes,
                file_name=report_filename(period.week_number),
                mime="application/pdf",
            )
    else:
        st.download_button(
            ("📄 PDF herunterladen", "📄 Download PDF"),
            data=b"",
            file_name=report_filename(period.week_number),
            disabled=True,
        )

    done = is_report_completed(period.period_id)
    toggle_label = (
        ("↩️ Als offen markieren", "↩️ Mark as open")
        if done
        else ("✅ Als erledigt markieren (+100 XP)", "✅ Mark as done (+100 XP)")
    )
    if st.button(toggle_label):
        _, completed = toggle_report_completion(period.period_id)
        if completed:
            st.balloons()
        st.rerun()


def _quiz_session() -> QuizSession:
    raw = st.session_state.get(SS_QUIZ)
    if isinstance(raw, QuizSession):
        return raw
    return QuizSession.model_validate(raw) if raw else QuizSession()


def _store_quiz(session: QuizSession) -> None:
    st.session_state[SS_QUIZ] = session.model_dump()


def render_knowledge(config: AppConfig, client: Optional[OpenAI]) -> None:
    st.header(PAGES["knowledge"])
    with st.form("quiz_topic_form"):
        topic = st.text_input(
            ("Thema (z. B. 'Exotische Früchte', 'Kassencodes')", "Topic (e.g. 'Exotic fruits', 'Checkout codes')")
        )
        submitted = st.form_submit_button(("Quiz erstellen", "Generate quiz"), type="primary")
    if submitted and topic.strip():
        with st.spinner(translate_text(("Lernkarten werden erstellt...", "Generating study material..."))):
            try:
                cards = generate_flashcards(topic, client=client, model=config.openai_model)
            except MissingCredentialsError:
                st.warning(MISSING_KEY_HINT)
                cards = []
            except LLMError as exc:
                LOGGER.warning("Flashcard generation failed: %s", exc)
                st.error(("Lernkarten konnten nicht erstellt werden.", "Could not generate flashcards."))
                cards = []
        if cards:
            _store_quiz(start_quiz(topic, cards))

    session = _quiz_session()
    if session.finished:
        st.success(
            translate_text(("Geschafft! Ergebnis: ", "Finished! Score: ")) + f"{session.score} / {len(session.cards)} (+50 XP)"
        )
        return

    card = session.current
    if card is None:
        st.caption(("Gib ein Thema ein, um zu starten.", "Enter a topic to start."))
        return

    st.caption(f"{session.index + 1} / {len(session.cards)} · {session.topic}")
    st.subheader(card.question)
    if not session.show_answer:
        if st.button(("Antwort zeigen", "Show answer")):
            _store_quiz(session.reveal())
            st.rerun()
        return

    st.info(card.answer)
    right_col, wrong_col = st.columns(2)
    if right_col.button(("✅ Gewusst (+20 XP)", "✅ Knew it (+20 XP)"), use_container_width=True):
        _store_quiz(answer_card(session, True))
        st.rerun()
    if wrong_col.button(("❌ Nicht gewusst", "❌ Didn't know"), use_container_width=True):
        _store_quiz(answer_card(session, False))
        st.rerun()


def render_files(profile: UserProfile, config: AppConfig) -> None:
    st.header(PAGES["files"])
    remote = config.remote_enabled and not profile.is_local
    st.caption(
        ("Dateien werden in der Cloud gespeichert.", "Files are stored in the cloud.")
        if remote
        else (
            f"Dateien bis {format_size(MAX_INLINE_FILE_BYTES)} werden lokal gespeichert.",
            f"Files up to {format_size(MAX_INLINE_FILE_BYTES)} are stored locally.",
        )
    )

    with st.form("upload_form", clear_on_submit=True):
        upload = st.file_uploader(("Datei hochladen", "Upload file"))
        submitted = st.form_submit_button(("Speichern", "Save"), type="primary")
    if submitted and upload is not None:
        try:
            stored = process_upload(upload.name, upload.getvalue(), upload.type, remote=remote)
        except FileTooLargeError as exc:
            st.error(str(exc))
        else:
            if _run_with_persistence(add_file, stored):
                st.rerun()

    backend = get_storage()
    files = get_files()
    if not files:
        st.info(("Noch keine Dateien hochgeladen.", "No files uploaded yet."))
        return

    hydrated = backend.hydrate_files(files) if backend is not None else []
    for entry in hydrated:
        icon = "🖼️" if entry.is_image else "📄"
        name_col, action_col, delete_col = st.columns([6, 2, 1])
        warning = "" if entry.is_persisted else " ⚠️ " + translate_text(("nicht gespeichert", "not persisted"))
        name_col.markdown(
            f"{icon} **{entry.name}**  \n<small>{format_size(entry.size)} · "
            f"{entry.uploaded_at.strftime('%d.%m.%Y')}{warning}</small>",
            unsafe_allow_html=True,
        )
        if entry.data is not None:
            action_col.download_button(
                "⬇️", data=entry.data, file_name=entry.name, mime=entry.mime_type, key=f"dl_{entry.id}"
            )
        elif entry.url:
            action_col.link_button("⬇️", entry.url)
        if delete_col.button("🗑️", key=f"file_delete_{entry.id}"):
            if _run_with_persistence(delete_file, entry.id):
                st.rerun()


def _chat_messages() -> list[ChatMessage]:
    raw = st.session_state.get(SS_CHAT)
    if not raw:
        messages = [welcome_message(get_language())]
        st.session_state[SS_CHAT] = [message.model_dump() for message in messages]
        return messages
    messages = [item if isinstance(item, ChatMessage) else ChatMessage.model_validate(item) for item in raw]
    # A rerun interrupted the previous stream; keep what arrived so far.
    if any(message.is_streaming for message in messages):
        messages = [message.model_copy(update={"is_streaming": False}) for message in messages]
        _store_chat(messages)
    return messages


def _store_chat(messages: list[ChatMessage]) -> None:
    st.session_state[SS_CHAT] = [message.model_dump() for message in messages]


def _request_cancel() -> None:
    st.session_state[SS_CHAT_CANCEL] = True


def render_assistant(profile: UserProfile, config: AppConfig, client: Optional[OpenAI]) -> None:
    st.header(PAGES["assistant"])
    messages = _chat_messages()
    if st.button(("🔄 Neues Gespräch", "🔄 New conversation")):
        st.session_state.pop(SS_CHAT, None)
        st.rerun()

    for message in messages:
        with st.chat_message("assistant" if message.role == "model" else "user"):
            st.markdown(message.text)

    prompt = st.chat_input(translate_text(("Frag deinen Mentor...", "Ask your mentor...")))
    if not prompt:
        return

    language = get_language()
    user_message = ChatMessage(role="user", text=prompt)
    reply = ChatMessage(role="model", is_streaming=True)
    messages = [*messages, user_message]
    with st.chat_message("user"):
        st.markdown(prompt)

    st.session_state[SS_CHAT_CANCEL] = False
    instructions = build_system_instruction(
        name=profile.name or "Azubi",
        tasks=get_tasks(),
        files=get_files(),
        language=language,
    )
    with st.chat_message("assistant"):
        st.button(("⏹ Stopp", "⏹ Stop"), on_click=_request_cancel)
        placeholder = st.empty()
        try:
            for partial in stream_reply(
                client=client,
                model=config.openai_model,
                instructions=instructions,
                history=messages,
                should_cancel=lambda: bool(st.session_state.get(SS_CHAT_CANCEL)),
            ):
                reply = reply.model_copy(update={"text": partial})
                placeholder.markdown(partial + "▌")
                _store_chat([*messages, reply])
        except LLMError as exc:
            _store_chat([*messages, error_reply(exc, language)])
            st.rerun()

    if reply.text:
        messages = [*messages, reply.model_copy(update={"is_streaming": False})]
    _store_chat(messages)
    st.rerun()


def render_about() -> None:
    st.header(PAGES["about"])
    st.markdown(
        translate_text(
            (
                "**Azubi Tracker** begleitet Auszubildende im Einzelhandel: Aufgaben festhalten, "
                "das wöchentliche Berichtsheft mit KI erstellen und als PDF ausfüllen, Warenkunde üben "
                "und Dokumente ablegen. Für erledigte Aufgaben, Quizfragen und Berichte gibt es XP.",
                "**Azubi Tracker** supports retail apprentices: log tasks, draft the weekly report book with AI "
                "and fill it into a PDF, practise product knowledge and keep documents. Completed tasks, quiz "
                "answers and reports earn XP.",
            )
        )
    )


def main() -> None:
    st.set_page_config(page_title=APP_TITLE, page_icon="🛒", layout="wide", initial_sidebar_state="expanded")
    _configure_logging()
    localize_streamlit()
    inject_styles()

    config = _active_config()
    auth_service = build_auth_service(config)
    profile = get_user()
    if profile is None:
        render_login(auth_service, config)
        return

    if get_storage() is None:
        _sign_in(profile, config)

    client = get_openai_client(config)
    selection = render_sidebar(profile)
    render_settings_panel(auth_service, profile, config)

    if selection == "dashboard":
        render_dashboard(profile, config)
    elif selection == "tasks":
        render_tasks(config, client)
    elif selection == "report":
        render_report(config, client)
    elif selection == "knowledge":
        render_knowledge(config, client)
    elif selection == "files":
        render_files(profile, config)
    elif selection == "assistant":
        render_assistant(profile, config, client)
    else:
        render_about()


if __name__ == "__main__":
    main()
