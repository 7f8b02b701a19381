"""Streamlit front end for the Non-Traffic Citation application."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

import streamlit as st

from citation_intake.models.application import ApplicationStatus
from citation_intake.orchestration import (
    SessionContext,
    SessionController,
    SessionEvent,
    SessionEventType,
    build_controller,
)
from citation_intake.utils import Config, setup_logging
from citation_intake.validation.schema import FieldSpec


APP_TITLE = "Non Traffic Citation Application"
CONFIG_PATH = "config.yaml"

VIEWS = ["New Application", "Track Applications"]

STATUS_COLORS: Dict[str, str] = {
    "complete": "#16a34a",
    "current": "#2563eb",
    "upcoming": "#cbd5f5",
}

TOAST_ICONS: Dict[SessionEventType, str] = {
    SessionEventType.DRAFT_RESTORED: "📂",
    SessionEventType.DRAFT_SAVED: "💾",
    SessionEventType.SAVE_FAILED: "⚠️",
    SessionEventType.STORAGE_WARNING: "⚠️",
    SessionEventType.VALIDATION_FAILED: "❗",
    SessionEventType.SUBMIT_SUCCEEDED: "✅",
    SessionEventType.SUBMIT_FAILED: "❌",
}


def request_view(view: str, track_id: Optional[str] = None) -> None:
    """Queue a view switch; applied before the view widgets are created."""

    st.session_state.pending_view = view
    if track_id is not None:
        st.session_state.pending_track_id = track_id


def hand_off_submission(identifier: str) -> None:
    """Switch to the tracking view for the application just submitted."""

    request_view(VIEWS[1], track_id=identifier)


def init_state() -> None:
    if "controller" not in st.session_state:
        config = Config.load(CONFIG_PATH)
        setup_logging(
            level=config.logging.level,
            log_format=config.logging.format,
            log_file=config.logging.file or None,
        )
        controller = build_controller(config, on_submitted=hand_off_submission)
        controller.store.reconcile()
        controller.start()
        st.session_state.controller = controller

    st.session_state.setdefault("view", VIEWS[0])
    st.session_state.setdefault("track_id", "")
    if "pending_view" in st.session_state:
        st.session_state.view = st.session_state.pop("pending_view")
    if "pending_track_id" in st.session_state:
        st.session_state.track_id = st.session_state.pop("pending_track_id")


def get_controller() -> SessionController:
    return st.session_state.controller


def widget_key(controller: SessionController, path: str) -> str:
    # Keys are scoped per application so a new session never shows stale input
    return f"{controller.application_id}::{path}"


def to_widget_value(spec: FieldSpec, value: Any) -> Any:
    """Convert a stored document value into what the widget expects."""

    if spec.input_type == "date":
        try:
            return date.fromisoformat(value) if value else None
        except ValueError:
            return None
    if spec.input_type == "time":
        try:
            return time.fromisoformat(value) if value else None
        except ValueError:
            return None
    return value


def from_widget_value(spec: FieldSpec, value: Any) -> Any:
    """Convert a widget value back into the document representation."""

    if spec.input_type == "date":
        return value.isoformat() if value else ""
    if spec.input_type == "time":
        return value.strftime("%H:%M") if value else ""
    if value is None:
        return spec.default
    return value


def on_field_change(path: str, key: str) -> None:
    controller = get_controller()
    spec = controller.schema.field(path)
    controller.set_field(path, from_widget_value(spec, st.session_state.get(key)))


def render_field(controller: SessionController, spec: FieldSpec) -> None:
    """Render one field from its schema metadata."""

    key = widget_key(controller, spec.path)
    if key not in st.session_state:
        st.session_state[key] = to_widget_value(spec, controller.get_field(spec.path))

    common = {"key": key, "on_change": on_field_change, "args": (spec.path, key)}
    if spec.input_type == "checkbox":
        st.checkbox(spec.label, **common)
    elif spec.input_type == "select":
        values = [""] + [value for value, _ in spec.options]
        labels = {value: label for value, label in spec.options}
        labels[""] = spec.placeholder or "Select..."
        if st.session_state[key] not in values:
            st.session_state[key] = ""
        st.selectbox(spec.label, values, format_func=lambda v: labels.get(v, v), **common)
    elif spec.input_type == "textarea":
        st.text_area(spec.label, placeholder=spec.placeholder, **common)
    elif spec.input_type == "date":
        st.date_input(spec.label, format="YYYY-MM-DD", **common)
    elif spec.input_type == "time":
        st.time_input(spec.label, step=60, **common)
    else:
        st.text_input(spec.label, placeholder=spec.placeholder, **common)

    error = controller.last_errors.get(spec.path)
    if error:
        st.markdown(f"<div class='field-error'>{error}</div>", unsafe_allow_html=True)


def get_step_status(controller: SessionController) -> Dict[int, str]:
    statuses: Dict[int, str] = {}
    for step in controller.catalog.steps:
        if step.id < controller.current_step_id:
            statuses[step.id] = "complete"
        elif step.id == controller.current_step_id:
            statuses[step.id] = "current"
        else:
            statuses[step.id] = "upcoming"
    return statuses


def render_progress_banner(controller: SessionController) -> None:
    """Render the step indicator across the top of the form."""

    step_status = get_step_status(controller)
    segments: List[str] = ["<div class='stepper'>"]
    total = len(controller.catalog)

    for step in controller.catalog.steps:
        status = step_status[step.id]
        marker = "&#10003;" if status == "complete" else str(step.id)
        segments.append(
            f"<div class='stepper__item stepper__item--{status}' title='{step.title}'>{marker}</div>"
        )
        if step.id < total:
            segments.append(f"<div class='stepper__connector stepper__connector--{status}'></div>")

    segments.append("</div>")
    st.markdown("".join(segments), unsafe_allow_html=True)

    current = controller.get_current_step()
    st.subheader(current.title)
    st.caption(current.description)


def render_events(controller: SessionController) -> None:
    """Show queued controller notifications as toasts."""

    for event in controller.events.drain():
        icon = TOAST_ICONS.get(event.type)
        st.toast(describe_event(event), icon=icon)


def describe_event(event: SessionEvent) -> str:
    if event.type in (SessionEventType.DRAFT_SAVED, SessionEventType.SUBMIT_SUCCEEDED) and event.application_id:
        return f"{event.message} Application ID: {event.application_id}"
    if event.type == SessionEventType.VALIDATION_FAILED and event.errors:
        return f"{event.message} ({len(event.errors)} fields)"
    return event.message


def render_navigation(controller: SessionController) -> None:
    prev_col, save_col, next_col = st.columns([1, 1, 1])

    with prev_col:
        if st.button("Previous", disabled=controller.is_first_step, use_container_width=True):
            controller.previous()
            st.rerun()

    with save_col:
        if st.button("Save Draft", use_container_width=True):
            controller.save_draft()
            st.rerun()

    with next_col:
        if controller.is_last_step:
            if st.button("Submit Application", type="primary", use_container_width=True):
                result = controller.submit()
                if not result.valid:
                    first_path = next(iter(result.errors))
                    jump_to_field_step(controller, first_path)
                st.rerun()
        elif st.button("Next", type="primary", use_container_width=True):
            controller.next()
            st.rerun()


def jump_to_field_step(controller: SessionController, path: str) -> None:
    """Walk back to the earliest step that renders the failing field."""

    while not controller.is_first_step and path not in controller.catalog.fields_for(
        controller.current_step_id, controller.schema
    ):
        controller.previous()


def render_form(controller: SessionController) -> None:
    st.markdown(
        f"<div class='app-id'>Application ID: <code>{controller.application_id}</code></div>",
        unsafe_allow_html=True,
    )
    render_progress_banner(controller)

    with st.container(border=True):
        for path in controller.catalog.fields_for(controller.current_step_id, controller.schema):
            render_field(controller, controller.schema.field(path))

    if controller.last_errors:
        st.error(f"{len(controller.last_errors)} field(s) need attention before submitting.")

    render_navigation(controller)


def format_timestamp(value: Optional[str]) -> str:
    if not value:
        return "-"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%b %d, %Y %I:%M %p")
    except ValueError:
        return value


def render_tracking(controller: SessionController) -> None:
    """List submitted applications and resumable drafts."""

    store = controller.store
    st.subheader("Submitted Applications")

    entries = store.list_index()
    if entries:
        st.dataframe(
            [
                {
                    "Application ID": entry.identifier,
                    "Defendant": entry.display_name,
                    "Status": entry.status.value,
                    "Submitted": format_timestamp(entry.submitted_at),
                }
                for entry in reversed(entries)
            ],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No applications have been submitted yet.")

    track_id = st.text_input("Look up an application", key="track_id", placeholder="NTC-...")
    if track_id:
        record = store.load(track_id.strip())
        if record is None:
            st.warning(f"No application found for {track_id}")
        else:
            st.markdown(
                f"**{record.document.display_name()}** &middot; status `{record.status.value}` "
                f"&middot; submitted {format_timestamp(record.submitted_at)}"
            )
            st.json(record.to_payload(), expanded=False)

    st.divider()
    st.subheader("Drafts")
    drafts = [r for r in store.list_records() if r.status != ApplicationStatus.SUBMITTED]
    if not drafts:
        st.caption("No saved drafts.")
    for record in drafts:
        col_info, col_action = st.columns([4, 1])
        with col_info:
            st.markdown(
                f"`{record.identifier}` &middot; {record.document.display_name()} "
                f"&middot; updated {format_timestamp(record.updated_at)}"
            )
        with col_action:
            is_current = record.identifier == controller.application_id and not controller.is_finalized
            if st.button("Resume", key=f"resume::{record.identifier}", disabled=is_current):
                controller.context = SessionContext(application_id=record.identifier)
                controller.start()
                request_view(VIEWS[0])
                st.rerun()


# --------------------------- STREAMLIT UI ---------------------------

st.set_page_config(page_title=APP_TITLE, layout="centered")
init_state()
controller = get_controller()

st.markdown(
    f"""
    <style>
    .stepper {{
        display: flex;
        align-items: center;
        margin: 0.5rem 0 1rem 0;
    }}
    .stepper__item {{
        width: 2rem;
        height: 2rem;
        border-radius: 50%;
        display: flex;
        align-items: center;
        justify-content: center;
        font-size: 0.8rem;
        font-weight: 600;
        border: 2px solid {STATUS_COLORS['upcoming']};
        color: #6b7280;
        background: white;
    }}
    .stepper__item--complete {{
        border-color: {STATUS_COLORS['complete']};
        background: {STATUS_COLORS['complete']};
        color: white;
    }}
    .stepper__item--current {{
        border-color: {STATUS_COLORS['current']};
        background: {STATUS_COLORS['current']};
        color: white;
    }}
    .stepper__connector {{
        flex: 1;
        height: 3px;
        margin: 0 0.25rem;
        background: {STATUS_COLORS['upcoming']};
    }}
    .stepper__connector--complete {{ background: {STATUS_COLORS['complete']}; }}
    .app-id {{ color: #4b5563; margin-bottom: 0.5rem; }}
    .field-error {{ color: #b91c1c; font-size: 0.85rem; margin-top: -0.5rem; margin-bottom: 0.5rem; }}
    </style>
    """,
    unsafe_allow_html=True,
)


# --------------------------- SIDEBAR ---------------------------

with st.sidebar:
    st.header("Citation Intake")
    st.radio("View", VIEWS, key="view")

    st.divider()
    st.markdown(f"**Application ID**  \n`{controller.application_id}`")
    if controller.is_finalized:
        st.success("Submitted")
    elif controller.last_save_ok is False:
        st.warning("Draft not saved")
    else:
        st.caption("Draft saved automatically")

    if st.button("Start New Application"):
        controller.start_new_session()
        request_view(VIEWS[0])
        st.rerun()


st.title(APP_TITLE)

if st.session_state.view == VIEWS[1]:
    render_tracking(controller)
elif controller.is_finalized:
    st.success(f"Application {controller.application_id} was submitted.")
    st.caption("Start a new application from the sidebar, or track it in the tracking view.")
else:
    render_form(controller)

render_events(controller)
