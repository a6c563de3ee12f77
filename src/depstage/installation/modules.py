"""Module descriptor scanning and artifact version rewriting.

A module references an artifact with ``<artifact name="g:a:v[:classifier]"/>``
(optionally wrapped as ``${...}``) or with a ``<resource-root path="a-v.jar"/>``
next to the descriptor. Element namespaces are ignored when matching.
"""

from __future__ import annotations

import logging
import os
import re
import xml.etree.ElementTree as ET
from typing import Iterator, List, Optional, Tuple

from ..constants import Constants
from ..errors import InstallationError
from ..versioning.models import ArtifactCoordinate
from ..versioning.ranges import parse_version

logger = logging.getLogger(__name__)

_ARTIFACT_NAME = re.compile(r"^\$\{(.*)\}$")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _namespace(tag: str) -> Optional[str]:
    return tag[1:].split("}", 1)[0] if tag.startswith("{") else None


def parse_artifact_name(name: str) -> Optional[Tuple[str, str, str, str]]:
    """Split an artifact name into (group, artifact, version, classifier)."""
    match = _ARTIFACT_NAME.match(name.strip())
    text = match.group(1) if match else name.strip()
    parts = text.split(":")
    if len(parts) == 3:
        return parts[0], parts[1], parts[2], ""
    if len(parts) == 4:
        return parts[0], parts[1], parts[2], parts[3]
    return None


def iter_descriptors(base_dir: str) -> Iterator[str]:
    """Yield every module descriptor below the installation's modules directory."""
    root = os.path.join(base_dir, Constants.MODULES_DIR)
    for dirpath, _, files in os.walk(root):
        if Constants.MODULE_DESCRIPTOR in files:
            yield os.path.join(dirpath, Constants.MODULE_DESCRIPTOR)


class ModuleDescriptor:
    """A parsed ``module.xml``."""

    def __init__(self, path: str):
        self.path = path
        try:
            self.tree = ET.parse(path)
        except (OSError, ET.ParseError) as exc:
            raise InstallationError(f"Unable to read module descriptor {path}: {exc}") from exc

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)

    def _artifact_elements(self) -> List[ET.Element]:
        return [e for e in self.tree.iter() if _local_name(e.tag) == "artifact" and e.get("name")]

    def _resource_roots(self) -> List[ET.Element]:
        return [e for e in self.tree.iter() if _local_name(e.tag) == "resource-root" and e.get("path")]

    @staticmethod
    def _matches_name(name: str, coordinate: ArtifactCoordinate, match_version: bool) -> bool:
        parsed = parse_artifact_name(name)
        if parsed is None:
            return False
        group_id, artifact_id, version, classifier = parsed
        if (group_id, artifact_id, classifier) != (coordinate.group_id, coordinate.artifact_id, coordinate.classifier):
            return False
        return not match_version or version == coordinate.version

    @staticmethod
    def _matches_path(path: str, coordinate: ArtifactCoordinate, match_version: bool) -> bool:
        file_name = os.path.basename(path)
        if match_version:
            return file_name == coordinate.file_name()
        suffix = f"-{coordinate.classifier}" if coordinate.classifier else ""
        pattern = rf"{re.escape(coordinate.artifact_id)}-(\d.*?){re.escape(suffix)}\.{re.escape(coordinate.extension)}"
        match = re.fullmatch(pattern, file_name)
        # the version part must not swallow a classifier such as -sources
        return match is not None and parse_version(match.group(1)) is not None

    def _other_group(self, coordinate: ArtifactCoordinate) -> bool:
        """True if an artifact element names the same artifactId under another group."""
        for element in self._artifact_elements():
            parsed = parse_artifact_name(element.get("name", ""))
            if parsed and parsed[1] == coordinate.artifact_id and parsed[0] != coordinate.group_id:
                return True
        return False

    def references(self, coordinate: ArtifactCoordinate, match_version: bool = False) -> bool:
        """True if this module references ``coordinate``.

        Resource roots only carry the file name, so they are ignored when the
        module's artifact elements put that artifactId in a different group.
        """
        if any(self._matches_name(e.get("name", ""), coordinate, match_version) for e in self._artifact_elements()):
            return True
        if self._other_group(coordinate):
            return False
        return any(self._matches_path(e.get("path", ""), coordinate, match_version) for e in self._resource_roots())

    def rewrite_version(self, old: ArtifactCoordinate, new: ArtifactCoordinate) -> int:
        """Point references to ``old`` at ``new``; return the number of changes."""
        changed = 0
        for element in self._artifact_elements():
            name = element.get("name", "")
            if self._matches_name(name, old, match_version=True):
                parsed = parse_artifact_name(name)
                parts = [old.group_id, old.artifact_id, str(new.version)]
                if parsed and parsed[3]:
                    parts.append(parsed[3])
                value = ":".join(parts)
                element.set("name", f"${{{value}}}" if _ARTIFACT_NAME.match(name.strip()) else value)
                changed += 1
        roots = [] if self._other_group(old) else self._resource_roots()
        for element in roots:
            path = element.get("path", "")
            if self._matches_path(path, old, match_version=True):
                element.set("path", os.path.join(os.path.dirname(path), new.file_name()))
                changed += 1
        return changed

    def save(self) -> None:
        namespace = _namespace(self.tree.getroot().tag)
        if namespace:
            ET.register_namespace("", namespace)
        try:
            self.tree.write(self.path, encoding="UTF-8", xml_declaration=True)
        except OSError as exc:
            raise InstallationError(f"Unable to write module descriptor {self.path}: {exc}") from exc


def find_referencing(base_dir: str, coordinate: ArtifactCoordinate, match_version: bool = False) -> List[ModuleDescriptor]:
    """Return descriptors referencing ``coordinate``."""
    found = []
    for path in iter_descriptors(base_dir):
        descriptor = ModuleDescriptor(path)
        if descriptor.references(coordinate, match_version):
            found.append(descriptor)
    logger.debug("Found %d module(s) referencing %s", len(found), coordinate)
    return found
