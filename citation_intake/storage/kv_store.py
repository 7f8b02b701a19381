"""Durable key-value media backing the draft store."""

import errno
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from ..utils.config import StorageConfig

logger = logging.getLogger(__name__)


class KeyValueMedium(ABC):
    """
    Client-side string key-value storage.

    Values are text (JSON-encoded by the caller). Implementations raise
    OSError (or a subclass) on read and write failures; they never decode
    or interpret the stored text.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored text, or None if the key is absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store text under key, replacing any previous value."""

    @abstractmethod
    def remove_item(self, key: str) -> bool:
        """Remove key; return True if it existed."""

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys starting with prefix."""


class InMemoryMedium(KeyValueMedium):
    """
    Process-local medium, used for tests and throwaway sessions.

    Attributes:
        quota_bytes: Optional total size limit; writes beyond it fail with
            ENOSPC like a full browser storage quota
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._items: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._items.items() if k != key)
            if used + len(value.encode("utf-8")) > self.quota_bytes:
                raise OSError(errno.ENOSPC, "Storage quota exceeded", key)
        self._items[key] = value

    def remove_item(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._items if k.startswith(prefix))


class FileMedium(KeyValueMedium):
    """
    Local file medium: one UTF-8 file per key under a data directory.

    Keys are percent-encoded into file names. Writes go to a ``.part`` file
    that is then moved over the target, so a reader never sees a half
    written value.
    """

    SUFFIX = ".json"

    def __init__(self, data_dir: str = "data/applications"):
        """
        Initialize FileMedium.

        Args:
            data_dir: Directory holding one file per key
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Initialized FileMedium: data_dir={self.data_dir}")

    def _path_for(self, key: str) -> Path:
        return self.data_dir / f"{quote(key, safe='')}{self.SUFFIX}"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
        logger.debug(f"Read {key} ({len(content)} chars)")
        return content

    def set_item(self, key: str, value: str) -> None:
        path = self._path_for(key)
        tmp = path.with_suffix(path.suffix + ".part")
        with open(tmp, 'w', encoding='utf-8') as f:
            f.write(value)
        tmp.replace(path)
        logger.debug(f"Wrote {key} ({len(value)} chars)")

    def remove_item(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def keys(self, prefix: str = "") -> List[str]:
        if not self.data_dir.exists():
            logger.warning(f"Data directory does not exist: {self.data_dir}")
            return []
        found = []
        for path in self.data_dir.glob(f"*{self.SUFFIX}"):
            key = unquote(path.name[:-len(self.SUFFIX)])
            if key.startswith(prefix):
                found.append(key)
        return sorted(found)


def create_medium(config: StorageConfig) -> KeyValueMedium:
    """
    Build the medium selected by configuration.

    Args:
        config: Storage configuration ("file" or "memory" backend)

    Returns:
        KeyValueMedium instance
    """
    if config.backend == "memory":
        return InMemoryMedium()
    return FileMedium(data_dir=config.data_dir)
