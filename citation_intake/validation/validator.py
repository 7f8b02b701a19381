"""Whole-document and per-field validation against the form schema."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .schema import CITATION_SCHEMA, FieldSpec, FormSchema

logger = logging.getLogger(__name__)

EXPECTED_TEXT = "Expected text"
EXPECTED_BOOLEAN = "Expected true or false"


@dataclass
class ValidationResult:
    """
    Outcome of validating a document.

    Attributes:
        valid: True when no field failed its constraint
        errors: Field path -> display message for every failing field
    """
    valid: bool
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": dict(self.errors)}


class SchemaValidator:
    """
    Pure validator over application documents.

    Empty values (None or "") always pass. Non-empty values must satisfy the
    field's constraint. Failures are returned as data; nothing is raised for
    a constraint violation.
    """

    def __init__(self, schema: FormSchema = CITATION_SCHEMA):
        self.schema = schema

    def validate_field(self, path: str, value: Any) -> Optional[str]:
        """
        Validate one value against the declaration at ``path``.

        Args:
            path: Dotted field path
            value: Candidate value

        Returns:
            Error message, or None if the value is acceptable

        Raises:
            KeyError: If the schema does not declare the path
        """
        return self._check(self.schema.field(path), value)

    def validate(self, document: Any) -> ValidationResult:
        """
        Validate a whole document.

        Args:
            document: ApplicationDocument (anything with ``flat_values()``)
                or a nested mapping of sections

        Returns:
            ValidationResult with per-field error messages
        """
        values = self._flatten(document)
        errors: Dict[str, str] = {}
        for spec in self.schema.fields:
            message = self._check(spec, values.get(spec.path))
            if message:
                errors[spec.path] = message

        if errors:
            logger.info(f"Validation failed for {len(errors)} field(s): {', '.join(sorted(errors))}")
        return ValidationResult(valid=not errors, errors=errors)

    @staticmethod
    def _check(spec: FieldSpec, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None

        if spec.value_type == "bool":
            return None if isinstance(value, bool) else EXPECTED_BOOLEAN

        if not isinstance(value, str):
            return EXPECTED_TEXT
        if spec.constraint is None:
            return None
        return spec.constraint.check(value)

    def _flatten(self, document: Any) -> Dict[str, Any]:
        flat_values = getattr(document, "flat_values", None)
        if callable(flat_values):
            return flat_values()

        values: Dict[str, Any] = {}
        for spec in self.schema.fields:
            node: Any = document
            for part in spec.path.split("."):
                if not isinstance(node, dict) or part not in node:
                    node = None
                    break
                node = node[part]
            values[spec.path] = node
        return values
