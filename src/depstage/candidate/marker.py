"""Marker file labelling a complete candidate directory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..common.files import atomic_write_text
from ..constants import Constants
from ..errors import CandidateError


class OperationKind(Enum):
    """Operation a candidate was prepared for."""

    UPDATE = "UPDATE"
    REVERT = "REVERT"


def marker_path(candidate_dir: str) -> str:
    return os.path.join(candidate_dir, Constants.METADATA_DIR, Constants.MARKER_FILE)


def sentinel_path(candidate_dir: str) -> str:
    return os.path.join(candidate_dir, Constants.METADATA_DIR, Constants.BUILD_SENTINEL)


@dataclass(frozen=True)
class MarkerFile:
    """Names the base revision and the operation kind of a candidate.

    Stored as two lines: revision identifier, then operation kind.
    """
    revision: str
    operation: OperationKind

    def write(self, candidate_dir: str) -> str:
        """Write the marker atomically and return its path."""
        path = marker_path(candidate_dir)
        atomic_write_text(path, f"{self.revision}\n{self.operation.value}\n")
        return path

    @classmethod
    def read(cls, candidate_dir: str) -> Optional["MarkerFile"]:
        """Return the marker, or None when absent.

        Raises:
            CandidateError: the marker exists but is malformed.
        """
        path = marker_path(candidate_dir)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                lines = [line.strip() for line in fh.read().splitlines() if line.strip()]
        except OSError as exc:
            raise CandidateError(f"Unable to read marker {path}: {exc}") from exc
        if len(lines) != 2:
            raise CandidateError(f"Malformed marker {path}")
        try:
            operation = OperationKind(lines[1].upper())
        except ValueError as exc:
            raise CandidateError(f"Unknown operation {lines[1]!r} in marker {path}") from exc
        return cls(lines[0], operation)
