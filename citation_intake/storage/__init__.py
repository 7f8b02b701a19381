"""Storage layer for application drafts and the submission index."""

from .kv_store import KeyValueMedium, InMemoryMedium, FileMedium, create_medium
from .draft_store import DraftStore

__all__ = ['KeyValueMedium', 'InMemoryMedium', 'FileMedium', 'create_medium', 'DraftStore']
