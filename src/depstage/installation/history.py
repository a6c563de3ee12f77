"""Append-only revision history of an installation."""

from __future__ import annotations

import hashlib
import json
import os
import time
from dataclasses import asdict, dataclass
from typing import List, Optional

from ..common.files import atomic_write_text
from ..errors import MetadataError


@dataclass(frozen=True)
class SavedState:
    """A point-in-time installation state."""
    name: str
    description: str
    timestamp: float
    kind: str = "install"

    def __str__(self) -> str:
        return f"[{self.name}] {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(self.timestamp))} - {self.kind} {self.description}"


def _revision_id(description: str, timestamp: float, parent: Optional[str]) -> str:
    digest = hashlib.sha1(f"{parent or ''}\n{timestamp}\n{description}".encode("utf-8"))
    return digest.hexdigest()[:12]


class RevisionHistory:
    """Revisions stored oldest-first in a JSON file; ``revisions()`` is newest-first."""

    def __init__(self, path: str):
        self.path = path
        self._entries: List[SavedState] = self._load()

    def _load(self) -> List[SavedState]:
        if not os.path.isfile(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            return [SavedState(**entry) for entry in data]
        except (OSError, ValueError, TypeError) as exc:
            raise MetadataError(f"Unable to read revision history {self.path}: {exc}") from exc

    def revisions(self) -> List[SavedState]:
        """All revisions, most recent first."""
        return list(reversed(self._entries))

    def latest(self) -> Optional[SavedState]:
        return self._entries[-1] if self._entries else None

    def contains(self, name: str) -> bool:
        return any(entry.name == name for entry in self._entries)

    def append(self, description: str, kind: str = "install", timestamp: Optional[float] = None) -> SavedState:
        """Record a new revision and persist the history."""
        ts = time.time() if timestamp is None else timestamp
        parent = self.latest()
        state = SavedState(_revision_id(description, ts, parent.name if parent else None), description, ts, kind)
        self._entries.append(state)
        self.save()
        return state

    def save(self) -> None:
        """Write the history atomically."""
        atomic_write_text(self.path, json.dumps([asdict(e) for e in self._entries], indent=2))
