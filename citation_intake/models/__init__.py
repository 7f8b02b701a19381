"""Application data models."""

from .application import (
    ApplicationDocument,
    ApplicationIndexEntry,
    ApplicationRecord,
    ApplicationStatus,
)

__all__ = [
    'ApplicationDocument',
    'ApplicationIndexEntry',
    'ApplicationRecord',
    'ApplicationStatus'
]
