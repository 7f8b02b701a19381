"""Tests for the guided form session controller."""

import json

import pytest

from citation_intake.models import ApplicationDocument, ApplicationStatus
from citation_intake.orchestration import (
    EventBus,
    SessionContext,
    SessionController,
    SessionEventType,
    StepCatalog,
    StepEdge,
    build_controller,
)
from citation_intake.storage import DraftStore
from citation_intake.storage.draft_store import INDEX_KEY
from citation_intake.utils.config import Config, StorageConfig
from citation_intake.utils.errors import (
    SessionError,
    SessionFinalizedError,
    UnknownFieldError,
)
from citation_intake.utils.logging import get_context


def event_types(events):
    return [event.type for event in events.history]


def test_fresh_session(controller, store, events):
    """Test starting without an active draft."""
    identifier = controller.application_id

    assert identifier.startswith("NTC-")
    assert not controller.context.restored
    assert store.get_active_identifier() == identifier
    assert store.load(identifier).status == ApplicationStatus.DRAFT
    assert controller.current_step_id == 1
    assert controller.get_field("financial.jcpAtjCjeaOag") == "40.25"
    assert SessionEventType.DRAFT_RESTORED not in event_types(events)
    assert get_context()["application_id"] == identifier


def test_restores_active_draft(store, events):
    identifier = store.generate_identifier()
    document = ApplicationDocument.empty()
    document.set("defendant.firstName", "Jane")
    store.save(identifier, document)

    controller = SessionController(store, events=events)
    controller.start()

    assert controller.application_id == identifier
    assert controller.context.restored
    assert controller.get_field("defendant.firstName") == "Jane"
    assert events.history[0].type == SessionEventType.DRAFT_RESTORED
    assert events.history[0].message == "Draft loaded successfully"


def test_pointer_without_record_starts_fresh_under_same_identifier(store, events):
    identifier = store.generate_identifier()

    controller = SessionController(store, events=events)
    controller.start()

    assert controller.application_id == identifier
    assert not controller.context.restored
    assert controller.get_field("defendant.firstName") == ""


def test_corrupt_draft_starts_fresh_with_warning(store, medium, events):
    identifier = store.generate_identifier()
    medium.set_item(DraftStore.record_key(identifier), "{broken")

    controller = SessionController(store, events=events)
    controller.start()

    assert controller.application_id == identifier
    assert not controller.context.restored
    assert SessionEventType.STORAGE_WARNING in event_types(events)
    assert store.load(identifier) is not None


def test_submitted_record_is_never_resumed(store, medium):
    store.finalize("NTC-1-abc", ApplicationDocument.empty())
    medium.set_item("applications:current", "NTC-1-abc")

    controller = SessionController(store)
    controller.start()

    assert controller.application_id != "NTC-1-abc"
    assert store.load("NTC-1-abc").status == ApplicationStatus.SUBMITTED


def test_injected_context_keeps_sessions_apart(store):
    first = SessionController(store, context=SessionContext(application_id="NTC-1-aaa"))
    second = SessionController(store, context=SessionContext(application_id="NTC-2-bbb"))
    first.start()
    second.start()

    first.set_field("defendant.firstName", "Ann")
    second.set_field("defendant.firstName", "Bob")

    assert store.load("NTC-1-aaa").document.get("defendant.firstName") == "Ann"
    assert store.load("NTC-2-bbb").document.get("defendant.firstName") == "Bob"


def test_requires_start(store):
    controller = SessionController(store)

    with pytest.raises(SessionError):
        controller.get_field("citationNumber")


def test_set_field_autosaves(controller, store):
    assert controller.set_field("defendant.lastName", "Doe") is True
    assert controller.set_field("defendant.lastName", "Doe") is False

    assert store.load(controller.application_id).document.get("defendant.lastName") == "Doe"
    assert controller.last_save_ok is True


def test_unknown_field(controller):
    with pytest.raises(UnknownFieldError):
        controller.set_field("defendant.nickname", "JD")
    with pytest.raises(KeyError):
        controller.get_field("nope")


def test_check_field(controller):
    controller.set_field("court.zipCode", "1234")

    assert controller.check_field("court.zipCode") == "Invalid zip code"
    assert controller.check_field("court.state") is None


def test_save_failure_keeps_editing(controller, medium, events):
    """Test that a failing write is reported and the input kept in memory."""
    medium.fail_writes(DraftStore.record_key(controller.application_id))

    assert controller.set_field("defendant.firstName", "Jane") is True

    assert controller.get_field("defendant.firstName") == "Jane"
    assert controller.last_save_ok is False
    failed = [event for event in events.history if event.type == SessionEventType.SAVE_FAILED]
    assert failed and failed[0].reason

    medium.write_failures.clear()
    assert controller.save_draft() is True
    assert events.history[-1].type == SessionEventType.DRAFT_SAVED
    assert controller.last_save_ok is True


def test_save_draft(controller, events):
    assert controller.save_draft() is True

    event = events.history[-1]
    assert event.type == SessionEventType.DRAFT_SAVED
    assert event.message == "Draft saved successfully!"
    assert event.application_id == controller.application_id


def test_navigation_bounds(controller):
    assert controller.is_first_step
    assert controller.previous().id == 1

    for _ in range(20):
        controller.next()

    assert controller.current_step_id == 11
    assert controller.is_last_step
    assert controller.get_current_step().title == "Additional Information"


def test_navigation_round_trip(controller):
    controller.next()
    controller.next()
    start = controller.current_step_id

    for _ in range(10):
        controller.next()
    for _ in range(10):
        controller.previous()

    assert controller.current_step_id == 1
    for _ in range(2):
        controller.next()
    assert controller.current_step_id == start


def test_navigation_never_validates(controller):
    controller.set_field("court.zipCode", "bad")

    assert controller.next().id == 2
    assert controller.last_errors == {}


def test_conditional_step_edge(store):
    """Test skipping the juvenile step for adult defendants."""
    catalog = StepCatalog(edges=[
        StepEdge(3, 5, lambda document: not document.get("juvenile.isJuvenile")),
    ])
    controller = SessionController(store, catalog=catalog)
    controller.start()

    controller.next()
    controller.next()
    assert controller.next().id == 5
    assert controller.previous().id == 3

    controller.set_field("juvenile.isJuvenile", True)
    assert controller.next().id == 4


def test_jane_doe_scenario(controller, store, events):
    """Test a rejected submission followed by a corrected one."""
    identifier = controller.application_id
    controller.set_field("defendant.firstName", "Jane")
    controller.set_field("defendant.lastName", "Doe")
    controller.set_field("defendant.state", "PAX")

    result = controller.submit()

    assert not result.valid
    assert result.errors == {"defendant.state": "State must be 2 characters"}
    assert result.status == ApplicationStatus.DRAFT
    assert store.load(identifier).status == ApplicationStatus.DRAFT
    assert events.history[-1].type == SessionEventType.VALIDATION_FAILED
    assert events.history[-1].errors == result.errors

    controller.set_field("defendant.state", "PA")
    result = controller.submit()

    assert result.valid
    assert result.submitted
    assert result.record.status == ApplicationStatus.SUBMITTED
    entry = store.find_index_entry(identifier)
    assert entry.display_name == "Jane Doe"
    assert store.get_active_identifier() is None
    assert controller.last_errors == {}
    assert events.history[-1].type == SessionEventType.SUBMIT_SUCCEEDED
    assert events.history[-1].message == "Application submitted successfully!"


def test_finalized_session_is_frozen(controller, store):
    controller.set_field("defendant.firstName", "Jane")
    controller.submit()
    identifier = controller.application_id

    with pytest.raises(SessionFinalizedError):
        controller.set_field("defendant.firstName", "John")
    with pytest.raises(SessionFinalizedError):
        controller.submit()
    assert store.load(identifier).document.get("defendant.firstName") == "Jane"

    controller.start_new_session()

    assert controller.application_id != identifier
    assert controller.get_field("defendant.firstName") == ""
    assert controller.set_field("defendant.firstName", "John") is True
    assert store.get_active_identifier() == controller.application_id


def test_submit_failure_leaves_draft(controller, store, medium, events):
    medium.fail_writes(INDEX_KEY)

    result = controller.submit()

    assert result.valid
    assert not result.submitted
    assert result.reason
    assert events.history[-1].type == SessionEventType.SUBMIT_FAILED
    assert events.history[-1].message == "Failed to submit application. Please try again."
    assert store.load(controller.application_id).status == ApplicationStatus.DRAFT
    assert not controller.is_finalized

    medium.write_failures.clear()
    assert controller.submit().submitted


def test_post_submission_handoff(store):
    handed_off = []
    controller = SessionController(store, on_submitted=handed_off.append)
    controller.start()

    controller.submit()

    assert handed_off == [controller.application_id]


def test_failing_handoff_does_not_undo_submission(store):
    def broken_handoff(identifier):
        raise RuntimeError("navigation failed")

    controller = SessionController(store, on_submitted=broken_handoff)
    controller.start()

    assert controller.submit().submitted
    assert controller.is_finalized


def test_failing_listener_does_not_break_session(controller, events):
    def broken_listener(event):
        raise RuntimeError("render failed")

    events.subscribe(broken_listener)

    assert controller.save_draft() is True
    assert events.history[-1].type == SessionEventType.DRAFT_SAVED


def test_unsubscribe(controller, events):
    received = []
    unsubscribe = events.subscribe(received.append)
    controller.save_draft()
    unsubscribe()
    controller.save_draft()

    assert len(received) == 1
    assert received[0].to_dict()["type"] == "draft-saved"


def test_unknown_fields_are_kept_through_submission(store, medium):
    medium.set_item(DraftStore.record_key("NTC-1-abc"), json.dumps({
        "status": "draft",
        "document": {"defendant": {"firstName": "Jane", "nickname": "JD"}},
    }))
    controller = SessionController(store, context=SessionContext(application_id="NTC-1-abc"))
    controller.start()

    controller.submit()
    payload = json.loads(medium.get_item(DraftStore.record_key("NTC-1-abc")))

    assert payload["status"] == "submitted"
    assert payload["document"]["defendant"]["nickname"] == "JD"


def test_build_controller_from_config(tmp_path):
    config = Config(storage=StorageConfig(backend="file", data_dir=str(tmp_path)))
    events = EventBus()

    controller = build_controller(config, events=events)
    controller.start()
    controller.set_field("defendant.firstName", "Jane")

    restored = build_controller(config, events=events)
    restored.start()

    assert restored.application_id == controller.application_id
    assert restored.get_field("defendant.firstName") == "Jane"
    assert events.history[-1].type == SessionEventType.DRAFT_RESTORED


def seed_pending(medium, identifier):
    medium.set_item(DraftStore.record_key(identifier), json.dumps({
        "status": "pending_index",
        "submittedAt": "2024-05-01T12:00:00.000Z",
        "document": {"defendant": {"firstName": "Jane", "lastName": "Doe"}},
    }))
    medium.set_item(INDEX_KEY, json.dumps([{
        "id": identifier,
        "submittedAt": "2024-05-01T12:00:00.000Z",
        "status": "submitted",
        "displayName": "Jane Doe",
    }]))
    medium.set_item("applications:current", identifier)


def test_start_completes_interrupted_submission(store, medium):
    """Test that a record left mid-submission is finished, never reopened."""
    seed_pending(medium, "NTC-1-abc")

    controller = SessionController(store)
    controller.start()

    assert controller.application_id != "NTC-1-abc"
    assert not controller.context.restored
    record = store.load("NTC-1-abc")
    assert record.status == ApplicationStatus.SUBMITTED
    assert record.submitted_at == "2024-05-01T12:00:00.000Z"
    assert [entry.identifier for entry in store.list_index()] == ["NTC-1-abc"]
    assert store.get_active_identifier() == controller.application_id


def test_start_leaves_pending_record_when_completion_fails(store, medium):
    seed_pending(medium, "NTC-1-abc")
    record_key = DraftStore.record_key("NTC-1-abc")
    medium.fail_when = lambda key, value: key == record_key

    controller = SessionController(store, context=SessionContext(application_id="NTC-1-abc"))
    controller.start()
    controller.set_field("defendant.firstName", "John")

    assert controller.application_id != "NTC-1-abc"
    assert json.loads(medium.get_item(record_key))["status"] == "pending_index"

    medium.fail_when = None
    assert store.reconcile() == ["NTC-1-abc"]
    assert store.load("NTC-1-abc").document.get("defendant.firstName") == "Jane"


def test_storage_warnings_stay_with_their_session(store, medium):
    first_events, second_events = EventBus(), EventBus()
    first = SessionController(store, events=first_events)
    first.start()
    medium.set_item(DraftStore.record_key("NTC-2-bbb"), "{broken")

    second = SessionController(
        store, context=SessionContext(application_id="NTC-2-bbb"), events=second_events
    )
    second.start()

    warnings = [e for e in second_events.history if e.type == SessionEventType.STORAGE_WARNING]
    assert warnings and warnings[0].application_id == "NTC-2-bbb"
    assert SessionEventType.STORAGE_WARNING not in event_types(first_events)
    assert store.warning_handler is None
