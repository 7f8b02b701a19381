"""Session controller for one guided citation application."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..models.application import ApplicationDocument, ApplicationRecord, ApplicationStatus
from ..storage.draft_store import DraftStore
from ..storage.kv_store import create_medium
from ..utils.config import Config
from ..utils.errors import (
    ErrorContext,
    FinalizationError,
    SessionError,
    SessionFinalizedError,
    StorageError,
)
from ..utils.logging import clear_context, set_context
from ..validation.schema import CITATION_SCHEMA, FormSchema, build_schema
from ..validation.validator import SchemaValidator
from .events import EventBus, SessionEvent, SessionEventType
from .steps import StepCatalog, StepDefinition

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """
    Identity of the session a controller drives.

    Passed to the controller instead of living in process-wide state, so
    independent sessions never share an identifier.

    Attributes:
        application_id: Identifier of the application being edited; None
            until the session starts (or to resume the store's active one)
        restored: True when the document came from a saved draft
        finalized: True once the application has been submitted
    """
    application_id: Optional[str] = None
    restored: bool = False
    finalized: bool = False


@dataclass
class SubmissionResult:
    """
    Outcome of a submit() call.

    Attributes:
        valid: Whether the document passed validation
        status: Status of the application after the call
        errors: Field path -> message when validation failed
        record: The submitted record on success
        reason: Failure description when finalization failed
    """
    valid: bool
    status: ApplicationStatus
    errors: Dict[str, str] = field(default_factory=dict)
    record: Optional[ApplicationRecord] = None
    reason: Optional[str] = None

    @property
    def submitted(self) -> bool:
        return self.status == ApplicationStatus.SUBMITTED


class SessionController:
    """
    Orchestrates the document, the step pointer, autosave and submission.

    All calls are synchronous. Storage failures never abort editing: they
    are turned into events and the in-memory document stays authoritative.
    """

    def __init__(
        self,
        store: DraftStore,
        context: Optional[SessionContext] = None,
        catalog: Optional[StepCatalog] = None,
        validator: Optional[SchemaValidator] = None,
        events: Optional[EventBus] = None,
        on_submitted: Optional[Callable[[str], None]] = None,
        drop_extra_fields_on_submit: bool = False
    ):
        """
        Initialize the controller.

        Args:
            store: DraftStore persisting this session
            context: Session identity; a fresh one when omitted
            catalog: Step catalog (the 11-step citation catalog by default)
            validator: Validator for submission (built from the store's
                schema by default)
            events: Bus the notifications go to
            on_submitted: Post-submission handoff, called with the identifier
            drop_extra_fields_on_submit: Strip preserved unknown fields from
                the submitted record
        """
        # Warnings go to this session's bus; the injected store is not mutated
        self._outer_warning_handler = store.warning_handler
        self.store = store.with_warning_handler(self._on_storage_warning)
        self.context = context or SessionContext()
        self.schema: FormSchema = store.schema
        self.catalog = catalog or StepCatalog()
        self.validator = validator or SchemaValidator(self.schema)
        self.events = events or EventBus()
        self.on_submitted = on_submitted
        self.drop_extra_fields_on_submit = drop_extra_fields_on_submit

        self._document: Optional[ApplicationDocument] = None
        self._current_step = self.catalog.first_id
        self._history: List[int] = []
        self.last_save_ok: Optional[bool] = None
        self.last_errors: Dict[str, str] = {}
        self.record: Optional[ApplicationRecord] = None

    # Session lifecycle

    def start(self) -> SessionContext:
        """
        Restore the active draft or begin a fresh application.

        The identifier comes from the injected context, else from the
        store's active pointer. A usable draft under it is adopted and a
        draft-restored event emitted; an absent or unreadable one starts an
        empty document under the same identifier. A submitted record is
        never resumed, and a pending_index one is completed rather than
        reopened. Without any identifier a new one is generated.

        Returns:
            The session context
        """
        identifier = self.context.application_id or self.store.get_active_identifier()
        document: Optional[ApplicationDocument] = None
        restored = False

        if identifier:
            record = self.store.load(identifier)
            if record is None:
                logger.info(f"No usable draft for {identifier}; starting fresh")
            elif record.is_submitted:
                logger.info(f"{identifier} is already submitted; starting a new application")
                identifier = None
            elif record.is_pending:
                if self.store.complete_pending(record):
                    logger.info(f"Completed interrupted submission {identifier}; starting a new application")
                else:
                    logger.warning(f"{identifier} is still mid-submission; starting a new application")
                identifier = None
            else:
                document = record.document
                restored = True

        if identifier is None:
            identifier = self.store.generate_identifier()
        elif self.store.get_active_identifier() != identifier:
            try:
                self.store.set_active_identifier(identifier)
            except StorageError as e:
                self._on_storage_warning(e.context)

        self.context.application_id = identifier
        self.context.restored = restored
        self.context.finalized = False
        self._document = document or ApplicationDocument.empty(self.schema)
        self._current_step = self.catalog.first_id
        self._history = []
        self.last_errors = {}
        self.record = None
        set_context(application_id=identifier)

        if restored:
            logger.info(f"Restored draft {identifier}")
            self.events.emit(SessionEvent(
                type=SessionEventType.DRAFT_RESTORED,
                message="Draft loaded successfully",
                application_id=identifier,
            ))
        else:
            logger.info(f"Started application {identifier}")

        self._persist()
        return self.context

    def start_new_session(self) -> SessionContext:
        """Begin a new application with a fresh identifier."""
        if self.context.application_id and not self.context.finalized:
            logger.info(f"Leaving draft {self.context.application_id} in storage")
        self.context = SessionContext(application_id=self.store.generate_identifier())
        return self.start()

    @property
    def application_id(self) -> Optional[str]:
        return self.context.application_id

    @property
    def document(self) -> ApplicationDocument:
        """Copy of the current document."""
        return self._require_started().copy()

    @property
    def is_finalized(self) -> bool:
        return self.context.finalized

    def _require_started(self) -> ApplicationDocument:
        if self._document is None:
            raise SessionError.not_started()
        return self._document

    def _require_editable(self) -> ApplicationDocument:
        document = self._require_started()
        if self.context.finalized:
            raise SessionFinalizedError.for_identifier(self.context.application_id)
        return document

    # Fields

    def get_field(self, path: str) -> Any:
        """
        Read a field value.

        Raises:
            UnknownFieldError: If the schema does not declare the path
        """
        return self._require_started().get(path)

    def set_field(self, path: str, value: Any) -> bool:
        """
        Write a field value and autosave the draft.

        Args:
            path: Dotted field path
            value: New value; format problems surface at submission

        Returns:
            True if the value changed

        Raises:
            UnknownFieldError: If the schema does not declare the path
            SessionFinalizedError: If the application was already submitted
        """
        document = self._require_editable()
        changed = document.set(path, value)
        if changed:
            self._persist()
        return changed

    def check_field(self, path: str) -> Optional[str]:
        """Immediate feedback for one field; never blocks navigation."""
        return self.validator.validate_field(path, self.get_field(path))

    # Navigation

    @property
    def current_step_id(self) -> int:
        return self._current_step

    @property
    def is_first_step(self) -> bool:
        return self._current_step == self.catalog.first_id

    @property
    def is_last_step(self) -> bool:
        return self._current_step == self.catalog.last_id

    def get_current_step(self) -> StepDefinition:
        return self.catalog.get(self._current_step)

    def next(self) -> StepDefinition:
        """Move forward one step; a no-op on the last step."""
        target = self.catalog.next_id(self._current_step, self._document)
        if target != self._current_step:
            self._history.append(self._current_step)
            self._current_step = target
        return self.get_current_step()

    def previous(self) -> StepDefinition:
        """Move back along the path taken; a no-op on the first step."""
        if self._history:
            self._current_step = self._history.pop()
        else:
            self._current_step = self.catalog.previous_id(self._current_step)
        return self.get_current_step()

    # Persistence

    def _persist(self) -> bool:
        identifier = self.context.application_id
        try:
            self.store.save(identifier, self._document)
        except StorageError as e:
            self.last_save_ok = False
            logger.warning(f"Autosave of {identifier} failed: {e}")
            self.events.emit(SessionEvent(
                type=SessionEventType.SAVE_FAILED,
                message="Your draft could not be saved and may not survive a restart",
                application_id=identifier,
                reason=e.context.message,
            ))
            return False
        self.last_save_ok = True
        return True

    def save_draft(self) -> bool:
        """
        Save now and confirm to the user.

        Returns:
            True if the draft was written
        """
        self._require_editable()
        saved = self._persist()
        if saved:
            self.events.emit(SessionEvent(
                type=SessionEventType.DRAFT_SAVED,
                message="Draft saved successfully!",
                application_id=self.context.application_id,
            ))
        return saved

    def _on_storage_warning(self, context: ErrorContext) -> None:
        self.events.emit(SessionEvent(
            type=SessionEventType.STORAGE_WARNING,
            message=context.message,
            application_id=self.context.application_id,
            reason=context.fallback_action,
        ))
        if self._outer_warning_handler is not None:
            self._outer_warning_handler(context)

    # Submission

    def submit(self) -> SubmissionResult:
        """
        Validate the whole document and finalize it.

        Invalid documents stay drafts and their errors are returned and
        emitted. Finalization failures leave the application a draft that
        can be submitted again.

        Returns:
            SubmissionResult

        Raises:
            SessionFinalizedError: If the application was already submitted
        """
        document = self._require_editable()
        identifier = self.context.application_id

        result = self.validator.validate(document)
        self.last_errors = dict(result.errors)
        if not result.valid:
            self.events.emit(SessionEvent(
                type=SessionEventType.VALIDATION_FAILED,
                message="Please correct the highlighted fields",
                application_id=identifier,
                errors=dict(result.errors),
            ))
            return SubmissionResult(valid=False, status=ApplicationStatus.DRAFT, errors=dict(result.errors))

        try:
            record = self.store.finalize(
                identifier, document, drop_extra_fields=self.drop_extra_fields_on_submit
            )
        except (FinalizationError, StorageError) as e:
            logger.error(f"Submission of {identifier} failed: {e}")
            self.events.emit(SessionEvent(
                type=SessionEventType.SUBMIT_FAILED,
                message="Failed to submit application. Please try again.",
                application_id=identifier,
                reason=e.context.message,
            ))
            return SubmissionResult(valid=True, status=ApplicationStatus.DRAFT, reason=e.context.message)

        self.context.finalized = True
        self.record = record
        clear_context()
        self.events.emit(SessionEvent(
            type=SessionEventType.SUBMIT_SUCCEEDED,
            message="Application submitted successfully!",
            application_id=identifier,
        ))

        if self.on_submitted is not None:
            try:
                self.on_submitted(identifier)
            except Exception:
                logger.exception(f"Post-submission handoff failed for {identifier}")

        return SubmissionResult(valid=True, status=ApplicationStatus.SUBMITTED, record=record)


def build_controller(
    config: Optional[Config] = None,
    context: Optional[SessionContext] = None,
    events: Optional[EventBus] = None,
    on_submitted: Optional[Callable[[str], None]] = None
) -> SessionController:
    """
    Wire a controller from configuration.

    Args:
        config: Loaded Config (defaults when omitted)
        context: Optional session identity to resume
        events: Optional event bus
        on_submitted: Optional post-submission handoff

    Returns:
        SessionController (not yet started)
    """
    config = config or Config()
    schema = build_schema(config.form) if config.form else CITATION_SCHEMA
    store = DraftStore(
        medium=create_medium(config.storage),
        schema=schema,
        max_retries=config.storage.finalize_max_retries,
        retry_backoff_seconds=config.storage.retry_backoff_seconds,
    )
    return SessionController(store, context=context, events=events, on_submitted=on_submitted)
