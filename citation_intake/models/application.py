"""Application document, record and index data models."""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..validation.schema import CITATION_SCHEMA, ROOT_SECTION, FormSchema
from ..utils.errors import UnknownFieldError

logger = logging.getLogger(__name__)

DISPLAY_NAME_FALLBACK = "N/A"

# Keys that belong to the record envelope, never to the document
RECORD_KEYS = ("applicationId", "status", "submittedAt", "updatedAt", "document")


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    PENDING_INDEX = "pending_index"
    SUBMITTED = "submitted"


class ApplicationDocument:
    """
    Structured answers of one citation application.

    Known fields live in a flat path -> value mapping fixed by the schema.
    Anything else found in a loaded snapshot is kept in ``extra_fields`` and
    written back verbatim by ``to_dict``:

    - unknown fields of a known section under ``extra_fields[section]``
    - unknown top-level keys under ``extra_fields[key]``

    Attributes:
        schema: FormSchema the document conforms to
        extra_fields: Tagged bag of fields the schema does not declare
    """

    def __init__(
        self,
        schema: FormSchema = CITATION_SCHEMA,
        values: Optional[Dict[str, Any]] = None,
        extra_fields: Optional[Dict[str, Any]] = None
    ):
        self.schema = schema
        self._values: Dict[str, Any] = {spec.path: spec.default for spec in schema.fields}
        for path, value in (values or {}).items():
            self.set(path, value)
        self.extra_fields: Dict[str, Any] = copy.deepcopy(extra_fields) if extra_fields else {}

    @classmethod
    def empty(cls, schema: FormSchema = CITATION_SCHEMA) -> "ApplicationDocument":
        """Fresh document filled with schema defaults."""
        return cls(schema=schema)

    @classmethod
    def from_dict(
        cls,
        raw: Dict[str, Any],
        schema: FormSchema = CITATION_SCHEMA
    ) -> "ApplicationDocument":
        """
        Merge a loosely-typed stored tree into a document, field by field.

        Missing or mistyped known fields fall back to the schema default.
        Unknown fields are preserved in ``extra_fields``.

        Args:
            raw: Nested mapping as stored (sections of field -> value)
            schema: Schema to merge against

        Returns:
            ApplicationDocument
        """
        document = cls(schema=schema)
        sections = set(schema.sections)

        for key, value in raw.items():
            if key in schema and schema.field(key).section == ROOT_SECTION:
                document._merge_value(key, value)
            elif key in sections:
                if not isinstance(value, dict):
                    logger.warning(f"Section '{key}' is not a mapping; using defaults")
                    continue
                for name, field_value in value.items():
                    path = f"{key}.{name}"
                    if path in schema:
                        document._merge_value(path, field_value)
                    else:
                        document.extra_fields.setdefault(key, {})[name] = copy.deepcopy(field_value)
            else:
                document.extra_fields[key] = copy.deepcopy(value)

        return document

    def _merge_value(self, path: str, value: Any) -> None:
        spec = self.schema.field(path)
        if value is None:
            return
        if spec.value_type == "bool":
            if isinstance(value, bool):
                self._values[path] = value
            else:
                logger.warning(f"Ignoring non-boolean stored value for '{path}'")
        elif isinstance(value, str):
            self._values[path] = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            self._values[path] = str(value)
        else:
            logger.warning(f"Ignoring non-text stored value for '{path}'")

    def get(self, path: str) -> Any:
        """
        Read a field value.

        Raises:
            UnknownFieldError: If the schema does not declare the path
        """
        if path not in self._values:
            raise UnknownFieldError.for_path(path)
        return self._values[path]

    def set(self, path: str, value: Any) -> bool:
        """
        Write a field value.

        Args:
            path: Dotted field path
            value: New value (validated later, never here)

        Returns:
            True if the stored value changed

        Raises:
            UnknownFieldError: If the schema does not declare the path
        """
        if path not in self._values:
            raise UnknownFieldError.for_path(path)
        if self._values[path] == value and type(self._values[path]) is type(value):
            return False
        self._values[path] = value
        return True

    def flat_values(self) -> Dict[str, Any]:
        """Known fields as a path -> value mapping."""
        return dict(self._values)

    def without_extra_fields(self) -> "ApplicationDocument":
        return ApplicationDocument(schema=self.schema, values=self._values)

    def copy(self) -> "ApplicationDocument":
        return ApplicationDocument(
            schema=self.schema,
            values=self._values,
            extra_fields=self.extra_fields
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Nested representation for persistence, extra fields included.

        Returns:
            Dict with root-level fields, one dict per section, and any
            preserved unknown keys
        """
        tree: Dict[str, Any] = {}
        for spec in self.schema.fields:
            value = copy.deepcopy(self._values[spec.path])
            if spec.section == ROOT_SECTION:
                tree[spec.name] = value
            else:
                tree.setdefault(spec.section, {})[spec.name] = value

        sections = set(self.schema.sections)
        for key, value in self.extra_fields.items():
            if key in sections and isinstance(value, dict):
                for name, field_value in value.items():
                    tree[key].setdefault(name, copy.deepcopy(field_value))
            elif key not in tree:
                tree[key] = copy.deepcopy(value)
        return tree

    def display_name(self) -> str:
        """Defendant name for listings, or "N/A" when both names are empty."""
        first = self._values.get("defendant.firstName") or ""
        last = self._values.get("defendant.lastName") or ""
        return f"{first} {last}".strip() or DISPLAY_NAME_FALLBACK

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ApplicationDocument):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"ApplicationDocument(display_name={self.display_name()!r}, extra_fields={len(self.extra_fields)})"


@dataclass
class ApplicationRecord:
    """
    Persisted unit of one application.

    Attributes:
        identifier: Application identifier (NTC-<ms>-<suffix>)
        document: The application document
        status: Lifecycle status
        submitted_at: ISO-8601 UTC timestamp, set once at finalization
        updated_at: ISO-8601 UTC timestamp of the last write
    """
    identifier: str
    document: ApplicationDocument
    status: ApplicationStatus = ApplicationStatus.DRAFT
    submitted_at: Optional[str] = None
    updated_at: Optional[str] = field(default=None, compare=False)

    @property
    def is_submitted(self) -> bool:
        return self.status == ApplicationStatus.SUBMITTED

    @property
    def is_pending(self) -> bool:
        return self.status == ApplicationStatus.PENDING_INDEX

    def to_payload(self) -> Dict[str, Any]:
        """
        Convert record to the stored JSON shape.

        Returns:
            Dictionary with the record envelope and the nested document
        """
        payload: Dict[str, Any] = {
            "applicationId": self.identifier,
            "status": self.status.value,
            "updatedAt": self.updated_at,
            "document": self.document.to_dict(),
        }
        if self.submitted_at:
            payload["submittedAt"] = self.submitted_at
        return payload

    @classmethod
    def from_payload(
        cls,
        identifier: str,
        payload: Any,
        schema: FormSchema = CITATION_SCHEMA
    ) -> "ApplicationRecord":
        """
        Build a record from a decoded stored payload.

        Accepts the enveloped shape ({"status", "document": {...}}) and the
        legacy flat shape where document sections sit beside "status".

        Args:
            identifier: Identifier the payload was stored under
            payload: Decoded JSON value
            schema: Schema to merge the document against

        Returns:
            ApplicationRecord

        Raises:
            ValueError: If the payload is not a JSON object
        """
        if not isinstance(payload, dict):
            raise ValueError(f"expected an object, got {type(payload).__name__}")

        if isinstance(payload.get("document"), dict):
            raw_document = payload["document"]
        else:
            raw_document = {k: v for k, v in payload.items() if k not in RECORD_KEYS}

        raw_status = payload.get("status", ApplicationStatus.DRAFT.value)
        try:
            status = ApplicationStatus(raw_status)
        except ValueError:
            logger.warning(f"Unknown status {raw_status!r} for {identifier}; treating as draft")
            status = ApplicationStatus.DRAFT

        submitted_at = payload.get("submittedAt")
        updated_at = payload.get("updatedAt")
        return cls(
            identifier=identifier,
            document=ApplicationDocument.from_dict(raw_document, schema=schema),
            status=status,
            submitted_at=submitted_at if isinstance(submitted_at, str) else None,
            updated_at=updated_at if isinstance(updated_at, str) else None,
        )


@dataclass
class ApplicationIndexEntry:
    """
    Summary of a finalized application, listed without loading the record.

    Attributes:
        identifier: Application identifier
        submitted_at: Submission timestamp
        status: Status at indexing time
        display_name: Defendant name or "N/A"
    """
    identifier: str
    submitted_at: str
    status: ApplicationStatus
    display_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.identifier,
            "submittedAt": self.submitted_at,
            "status": self.status.value,
            "displayName": self.display_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApplicationIndexEntry":
        """
        Parse an index entry.

        Raises:
            ValueError: If required keys are missing or malformed
        """
        try:
            return cls(
                identifier=str(data["id"]),
                submitted_at=str(data.get("submittedAt") or ""),
                status=ApplicationStatus(data.get("status", ApplicationStatus.SUBMITTED.value)),
                display_name=str(
                    data.get("displayName") or data.get("defendantName") or DISPLAY_NAME_FALLBACK
                ),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed index entry: {e}") from e
