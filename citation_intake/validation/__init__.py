"""Declarative schema and validation of the citation application document."""

from .schema import CITATION_SCHEMA, FieldSpec, FormSchema, build_schema
from .validator import SchemaValidator, ValidationResult

__all__ = [
    'CITATION_SCHEMA',
    'FieldSpec',
    'FormSchema',
    'build_schema',
    'SchemaValidator',
    'ValidationResult'
]
