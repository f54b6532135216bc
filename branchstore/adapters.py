"""Key-value persistence adapters for the branch store."""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class PersistenceAdapter(ABC):
    """Durable string storage addressed by key."""

    #: False when no durable storage exists in this execution context.
    available = True

    @abstractmethod
    def load(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def save(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete the key. Removing an absent key is a no-op."""


class MemoryAdapter(PersistenceAdapter):
    """Process-local storage. Share one instance to simulate a restart."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}

    def load(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def save(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FileAdapter(PersistenceAdapter):
    """Stores each key as ``<root>/<key>.json``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser()

    def _path(self, key: str) -> Path:
        if not KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}.json"

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def save(self, key: str, value: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        # Readers never observe a partially written blob
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class NullAdapter(PersistenceAdapter):
    """No durable storage: every operation is a no-op."""

    available = False

    def load(self, key: str) -> Optional[str]:
        return None

    def save(self, key: str, value: str) -> None:
        pass

    def remove(self, key: str) -> None:
        pass
