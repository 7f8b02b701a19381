"""Draft persistence for citation applications.

Maps application identifiers to records in a key-value medium, keeps the
append-only index of submitted applications and the pointer to the active
(in-progress) application. The store is the only component that reads or
writes the medium.

Stored layout:
    application:<identifier>   record envelope with the nested document
    applications:index         JSON list of index entries
    applications:current       identifier of the in-progress application
"""

import copy
import json
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, TypeVar

from ..models.application import (
    ApplicationDocument,
    ApplicationIndexEntry,
    ApplicationRecord,
    ApplicationStatus,
)
from ..utils.errors import (
    ErrorContext,
    ErrorType,
    FinalizationError,
    RecordFrozenError,
    StorageError,
    handle_storage_error,
)
from ..validation.schema import CITATION_SCHEMA, FormSchema

logger = logging.getLogger(__name__)

RECORD_PREFIX = "application:"
INDEX_KEY = "applications:index"
ACTIVE_KEY = "applications:current"

IDENTIFIER_PREFIX = "NTC"
SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 9

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a trailing Z."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_identifier(moment: datetime) -> str:
    """
    Mint an application identifier.

    Args:
        moment: Creation time; its epoch milliseconds form the middle part

    Returns:
        Identifier of the form NTC-<milliseconds>-<9 base-36 characters>
    """
    millis = int(moment.timestamp() * 1000)
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{IDENTIFIER_PREFIX}-{millis}-{suffix}"


class DraftStore:
    """
    Durable mapping from application identifier to application record.

    Provides methods for:
    - Minting identifiers and tracking the active application
    - Loading (fail-soft), saving and deleting drafts
    - Two-phase finalization into a submitted record plus an index entry
    - Reconciling finalizations interrupted between the two phases
    """

    def __init__(
        self,
        medium,
        schema: FormSchema = CITATION_SCHEMA,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.05,
        warning_handler: Optional[Callable[[ErrorContext], None]] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize DraftStore.

        Args:
            medium: KeyValueMedium holding the records
            schema: Schema stored documents are merged against on load
            max_retries: Attempts per write during finalization
            retry_backoff_seconds: Base delay, doubled after each failed attempt
            warning_handler: Optional callback for recoverable read problems
            clock: Source of the current UTC time
        """
        self.medium = medium
        self.schema = schema
        self.max_retries = max(1, max_retries)
        self.retry_backoff_seconds = retry_backoff_seconds
        self.warning_handler = warning_handler
        self.clock = clock

    @staticmethod
    def record_key(identifier: str) -> str:
        return f"{RECORD_PREFIX}{identifier}"

    def with_warning_handler(self, handler: Optional[Callable[[ErrorContext], None]]) -> "DraftStore":
        """
        Copy of this store that reports recoverable problems to ``handler``.

        The copy shares the medium, schema and retry settings; this store is
        left untouched, so sessions sharing a medium keep their warnings apart.
        """
        bound = copy.copy(self)
        bound.warning_handler = handler
        return bound

    # Low-level medium access

    def _read_json(self, key: str) -> Any:
        try:
            raw = self.medium.get_item(key)
        except UnicodeDecodeError as e:
            raise StorageError.corrupt_record(key=key, reason="undecodable bytes", error=e) from e
        except OSError as e:
            raise StorageError.read_failed(key=key, error=e) from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StorageError.corrupt_record(key=key, reason="undecodable JSON", error=e) from e

    def _write_json(self, key: str, value: Any) -> None:
        try:
            self.medium.set_item(key, json.dumps(value))
        except (OSError, TypeError, ValueError) as e:
            handle_storage_error(e, key=key, operation='write', logger=logger)

    def _warn(self, context: ErrorContext) -> None:
        logger.warning(f"Recoverable storage problem: {context.message}")
        if self.warning_handler is not None:
            self.warning_handler(context)

    # Active application pointer

    def generate_identifier(self) -> str:
        """
        Mint a fresh identifier and record it as the active application.

        Identifiers already holding a record are never handed out again.

        A failure to write the active pointer goes to the warning handler;
        the identifier is still usable for the session.

        Returns:
            The new identifier
        """
        while True:
            identifier = new_identifier(self.clock())
            try:
                taken = self.medium.get_item(self.record_key(identifier)) is not None
            except UnicodeDecodeError:
                taken = True
            except OSError:
                taken = False
            if not taken:
                break

        logger.info(f"Generated application identifier {identifier}")
        try:
            self.set_active_identifier(identifier)
        except StorageError as e:
            self._warn(e.context)
        return identifier

    def get_active_identifier(self) -> Optional[str]:
        """Identifier of the in-progress application, if any (fail-soft)."""
        try:
            value = self.medium.get_item(ACTIVE_KEY)
        except UnicodeDecodeError as e:
            self._warn(StorageError.corrupt_record(key=ACTIVE_KEY, reason="undecodable bytes", error=e).context)
            return None
        except OSError as e:
            self._warn(StorageError.read_failed(key=ACTIVE_KEY, error=e).context)
            return None
        if value is None:
            return None
        value = value.strip()
        return value or None

    def set_active_identifier(self, identifier: str) -> None:
        try:
            self.medium.set_item(ACTIVE_KEY, identifier)
        except OSError as e:
            handle_storage_error(e, key=ACTIVE_KEY, operation='write', logger=logger)

    def clear_active_identifier(self) -> None:
        try:
            self.medium.remove_item(ACTIVE_KEY)
        except OSError as e:
            handle_storage_error(e, key=ACTIVE_KEY, operation='write', logger=logger)

    # Records

    def load(self, identifier: str) -> Optional[ApplicationRecord]:
        """
        Load the record stored under an identifier.

        Corrupt or unreadable payloads are reported to the warning handler
        and treated as absent.

        Args:
            identifier: Application identifier

        Returns:
            ApplicationRecord, or None if absent or unusable
        """
        key = self.record_key(identifier)
        try:
            payload = self._read_json(key)
        except StorageError as e:
            self._warn(e.context)
            return None
        if payload is None:
            return None

        try:
            return ApplicationRecord.from_payload(identifier, payload, schema=self.schema)
        except ValueError as e:
            self._warn(StorageError.corrupt_record(key=key, reason=str(e), error=e).context)
            return None

    def _ensure_editable(self, identifier: str) -> None:
        existing = self.load(identifier)
        if existing is None:
            return
        if existing.is_submitted:
            raise RecordFrozenError.submitted(identifier)
        if existing.is_pending:
            raise RecordFrozenError.pending(identifier)

    def save(self, identifier: str, document: ApplicationDocument) -> ApplicationRecord:
        """
        Upsert a draft record; the last save wins.

        Args:
            identifier: Application identifier
            document: Current document, extra fields included

        Returns:
            The record as written

        Raises:
            RecordFrozenError: If the stored record is submitted or
                mid-submission (pending_index)
            StorageError: If the medium rejects the write
        """
        self._ensure_editable(identifier)

        record = ApplicationRecord(
            identifier=identifier,
            document=document.copy(),
            status=ApplicationStatus.DRAFT,
            updated_at=isoformat(self.clock()),
        )
        self._write_json(self.record_key(identifier), record.to_payload())
        logger.debug(f"Saved draft {identifier}")
        return record

    def delete(self, identifier: str) -> bool:
        """
        Delete a draft record.

        Args:
            identifier: Application identifier

        Returns:
            True if a record was removed

        Raises:
            RecordFrozenError: If the record is submitted or mid-submission
                (it is, or is about to be, indexed)
            StorageError: If the medium rejects the removal
        """
        self._ensure_editable(identifier)

        key = self.record_key(identifier)
        try:
            removed = self.medium.remove_item(key)
        except OSError as e:
            handle_storage_error(e, key=key, operation='write', logger=logger)

        if self.get_active_identifier() == identifier:
            self.clear_active_identifier()

        if removed:
            logger.info(f"Deleted draft {identifier}")
        return removed

    def list_records(self) -> List[ApplicationRecord]:
        """
        Load every readable record, most recently updated first.

        Returns:
            List of ApplicationRecord
        """
        try:
            keys = self.medium.keys(RECORD_PREFIX)
        except OSError as e:
            self._warn(StorageError.read_failed(key=RECORD_PREFIX, error=e).context)
            return []

        records = []
        for key in keys:
            record = self.load(key[len(RECORD_PREFIX):])
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.updated_at or "", reverse=True)
        return records

    # Index

    def list_index(self) -> List[ApplicationIndexEntry]:
        """
        Submitted application summaries in submission order.

        Returns:
            List of ApplicationIndexEntry (malformed entries skipped)
        """
        try:
            payload = self._read_json(INDEX_KEY)
        except StorageError as e:
            self._warn(e.context)
            return []
        if payload is None:
            return []
        if not isinstance(payload, list):
            self._warn(StorageError.corrupt_record(key=INDEX_KEY, reason="index is not a list").context)
            return []

        entries = []
        for item in payload:
            try:
                entries.append(ApplicationIndexEntry.from_dict(item))
            except (ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed index entry: {e}")
        return entries

    def find_index_entry(self, identifier: str) -> Optional[ApplicationIndexEntry]:
        for entry in self.list_index():
            if entry.identifier == identifier:
                return entry
        return None

    def _read_index_for_update(self) -> List[Any]:
        try:
            payload = self._read_json(INDEX_KEY)
        except StorageError as e:
            if e.context.error_type != ErrorType.STORAGE_CORRUPT_RECORD:
                raise
            payload = self._quarantine_index()
        if payload is None:
            return []
        if not isinstance(payload, list):
            return self._quarantine_index()
        return payload

    def _quarantine_index(self) -> List[Any]:
        """Move an undecodable index aside so appending can resume."""
        try:
            raw = self.medium.get_item(INDEX_KEY)
        except UnicodeDecodeError as e:
            # Undecodable bytes are kept with replacement characters
            raw = e.object.decode("utf-8", errors="replace")
        backup_key = f"{INDEX_KEY}.corrupt-{int(self.clock().timestamp() * 1000)}"
        self.medium.set_item(backup_key, raw or "")
        self._warn(
            StorageError.corrupt_record(
                key=INDEX_KEY, reason=f"unreadable index moved to {backup_key}"
            ).context
        )
        return []

    def _append_index(self, entry: ApplicationIndexEntry) -> None:
        try:
            items = self._read_index_for_update()
        except OSError as e:
            handle_storage_error(e, key=INDEX_KEY, operation='read', logger=logger)
        if any(isinstance(item, dict) and item.get("id") == entry.identifier for item in items):
            logger.debug(f"Index already lists {entry.identifier}")
            return
        items.append(entry.to_dict())
        self._write_json(INDEX_KEY, items)

    def _remove_index_entry(self, identifier: str) -> None:
        items = self._read_index_for_update()
        kept = [item for item in items if not (isinstance(item, dict) and item.get("id") == identifier)]
        if len(kept) != len(items):
            self._write_json(INDEX_KEY, kept)

    # Finalization

    def _with_retries(self, operation: Callable[[], T], description: str) -> T:
        last_error: Optional[StorageError] = None
        for attempt in range(self.max_retries):
            try:
                return operation()
            except StorageError as e:
                last_error = e
                logger.warning(
                    f"{description} failed (attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1 and self.retry_backoff_seconds > 0:
                    time.sleep(self.retry_backoff_seconds * (2 ** attempt))
        raise last_error

    def _write_record(self, record: ApplicationRecord) -> None:
        self._write_json(self.record_key(record.identifier), record.to_payload())

    def _compensate(self, record: ApplicationRecord, remove_index_entry: bool) -> None:
        """Best-effort return to a draft after a failed finalization."""
        if remove_index_entry:
            try:
                self._remove_index_entry(record.identifier)
            except (StorageError, OSError) as e:
                logger.error(f"Could not withdraw index entry for {record.identifier}: {e}")

        draft = ApplicationRecord(
            identifier=record.identifier,
            document=record.document,
            status=ApplicationStatus.DRAFT,
            updated_at=isoformat(self.clock()),
        )
        try:
            self._write_record(draft)
        except StorageError as e:
            # Left as pending_index; reconcile() will complete it
            logger.error(f"Could not revert {record.identifier} to draft: {e}")

    def finalize(
        self,
        identifier: str,
        document: ApplicationDocument,
        drop_extra_fields: bool = False
    ) -> ApplicationRecord:
        """
        Freeze a document into a submitted record and index it.

        Runs as two phases over the non-transactional medium:
        1. write the record as pending_index with submittedAt stamped
        2. append the index entry (no-op if already present)
        3. write the record as submitted
        4. clear the active pointer

        Each write is retried with exponential backoff. When retries run out
        the store withdraws what it wrote and leaves the record a draft.

        Args:
            identifier: Application identifier
            document: Document to freeze
            drop_extra_fields: Discard preserved unknown fields in the
                submitted record

        Returns:
            The submitted ApplicationRecord

        Raises:
            RecordFrozenError: If the identifier was already submitted
            FinalizationError: If the record or index could not be written
        """
        existing = self.load(identifier)
        if existing is not None and existing.is_submitted:
            raise RecordFrozenError.submitted(identifier)

        frozen = document.without_extra_fields() if drop_extra_fields else document.copy()
        submitted_at = isoformat(self.clock())
        pending = ApplicationRecord(
            identifier=identifier,
            document=frozen,
            status=ApplicationStatus.PENDING_INDEX,
            submitted_at=submitted_at,
            updated_at=submitted_at,
        )

        try:
            self._with_retries(lambda: self._write_record(pending), f"Record update for {identifier}")
        except StorageError as e:
            raise FinalizationError.record_update_failed(identifier, self.max_retries, e) from e

        entry = ApplicationIndexEntry(
            identifier=identifier,
            submitted_at=submitted_at,
            status=ApplicationStatus.SUBMITTED,
            display_name=frozen.display_name(),
        )
        try:
            self._with_retries(lambda: self._append_index(entry), f"Index append for {identifier}")
        except StorageError as e:
            self._compensate(pending, remove_index_entry=False)
            raise FinalizationError.index_append_failed(identifier, self.max_retries, e) from e

        submitted = ApplicationRecord(
            identifier=identifier,
            document=frozen,
            status=ApplicationStatus.SUBMITTED,
            submitted_at=submitted_at,
            updated_at=submitted_at,
        )
        try:
            self._with_retries(lambda: self._write_record(submitted), f"Record update for {identifier}")
        except StorageError as e:
            self._compensate(pending, remove_index_entry=True)
            raise FinalizationError.record_update_failed(identifier, self.max_retries, e) from e

        self._release_active(identifier)
        logger.info(f"Finalized application {identifier} ({entry.display_name})")
        return submitted

    def _release_active(self, identifier: str) -> None:
        try:
            if self.get_active_identifier() == identifier:
                self.clear_active_identifier()
        except StorageError as e:
            # A stale pointer is harmless: a submitted record is never resumed
            logger.warning(f"Could not clear active pointer for {identifier}: {e}")

    def complete_pending(self, record: ApplicationRecord) -> bool:
        """
        Finish one finalization interrupted after phase 1.

        The record gets its index entry (if missing) and is marked submitted
        with its original submittedAt.

        Args:
            record: A record in pending_index status

        Returns:
            True if the record is now submitted
        """
        submitted_at = record.submitted_at or isoformat(self.clock())
        entry = ApplicationIndexEntry(
            identifier=record.identifier,
            submitted_at=submitted_at,
            status=ApplicationStatus.SUBMITTED,
            display_name=record.document.display_name(),
        )
        submitted = ApplicationRecord(
            identifier=record.identifier,
            document=record.document,
            status=ApplicationStatus.SUBMITTED,
            submitted_at=submitted_at,
            updated_at=submitted_at,
        )
        try:
            self._with_retries(lambda: self._append_index(entry), f"Index append for {record.identifier}")
            self._with_retries(lambda: self._write_record(submitted), f"Record update for {record.identifier}")
        except StorageError as e:
            logger.error(f"Reconciliation of {record.identifier} failed: {e}")
            return False
        self._release_active(record.identifier)
        logger.info(f"Reconciled interrupted submission {record.identifier}")
        return True

    def reconcile(self) -> List[str]:
        """
        Complete every finalization interrupted after phase 1.

        Returns:
            Identifiers that were completed
        """
        return [
            record.identifier
            for record in self.list_records()
            if record.is_pending and self.complete_pending(record)
        ]
