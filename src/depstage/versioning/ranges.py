"""Maven version ordering and version range matching."""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from packaging import version

logger = logging.getLogger(__name__)

_RELEASE_SUFFIX = re.compile(r"[.-](final|ga|release)$", re.IGNORECASE)
_SNAPSHOT_SUFFIX = re.compile(r"-snapshot$", re.IGNORECASE)
# vendor rebuilds such as 5.0.0.Final-redhat-00001
_BUILD_SUFFIX = re.compile(r"[.-](?!(?:alpha|beta|milestone|cr|rc|sp|m)-)([a-z]+)-(\d+)$", re.IGNORECASE)
_QUALIFIERS = (
    (re.compile(r"[.-]?alpha[.-]?(\d*)", re.IGNORECASE), "a"),
    (re.compile(r"[.-]?beta[.-]?(\d*)", re.IGNORECASE), "b"),
    (re.compile(r"[.-]?m(\d+)$", re.IGNORECASE), "b"),
    (re.compile(r"[.-]?(?:cr|rc)[.-]?(\d*)", re.IGNORECASE), "rc"),
    (re.compile(r"[.-]sp[.-]?(\d*)", re.IGNORECASE), ".post"),
)


def parse_version(raw: str) -> Optional[version.Version]:
    """Parse a Maven version string into a comparable Version.

    Maven qualifiers are mapped onto PEP 440 equivalents before parsing:
    ``.Final``/``.GA`` are releases, ``-SNAPSHOT`` sorts before its release,
    ``Alpha``/``Beta``/``CR`` become pre-releases and a trailing vendor build
    such as ``-redhat-00001`` becomes a local segment, sorting after the
    plain release. Returns None when the string still cannot be parsed.
    """
    if not raw:
        return None
    text = raw.strip()
    snapshot = bool(_SNAPSHOT_SUFFIX.search(text))
    text = _SNAPSHOT_SUFFIX.sub("", text)
    local = ""
    build = _BUILD_SUFFIX.search(text)
    if build:
        local = f"+{build.group(1).lower()}.{build.group(2)}"
        text = text[:build.start()]
    text = _RELEASE_SUFFIX.sub("", text)
    for pattern, repl in _QUALIFIERS:
        text = pattern.sub(lambda m, r=repl: f"{r}{m.group(1) or 0}", text)
    if snapshot:
        text += ".dev0"
    text += local
    try:
        return version.Version(text)
    except version.InvalidVersion:
        logger.debug("Unparseable version %s", raw)
        return None


def sort_versions(candidates: Iterable[str]) -> List[str]:
    """Sort version strings ascending, dropping ones that cannot be parsed."""
    parsed = []
    for v in set(candidates):
        pv = parse_version(v)
        if pv is not None:
            parsed.append((pv, v))
    parsed.sort(key=lambda item: (item[0], item[1]))
    return [v for _, v in parsed]


@dataclass(frozen=True)
class Restriction:
    """A single interval of a version range."""
    lower: Optional[str]
    lower_inclusive: bool
    upper: Optional[str]
    upper_inclusive: bool

    def contains(self, ver: version.Version) -> bool:
        """Return True if ``ver`` lies inside this interval."""
        if self.lower:
            lower_ver = parse_version(self.lower)
            if lower_ver is None:
                return False
            if self.lower_inclusive and ver < lower_ver:
                return False
            if not self.lower_inclusive and ver <= lower_ver:
                return False
        if self.upper:
            upper_ver = parse_version(self.upper)
            if upper_ver is None:
                return False
            if self.upper_inclusive and ver > upper_ver:
                return False
            if not self.upper_inclusive and ver >= upper_ver:
                return False
        return True


class VersionRange:
    """Maven version range such as ``[1.0,2.0)``, ``(,1.5]`` or ``[1.0,2.0),[3.0,)``.

    A bare version without brackets matches that exact version.
    """

    def __init__(self, spec: str, restrictions: List[Restriction]):
        self.spec = spec
        self.restrictions = restrictions

    @classmethod
    def parse(cls, spec: str) -> "VersionRange":
        """Parse a range specification.

        Raises:
            ValueError: if brackets are unbalanced or an interval is malformed.
        """
        spec = (spec or "").strip()
        if not spec:
            raise ValueError("Empty version range")
        if spec[0] not in "[(":
            return cls(spec, [Restriction(spec, True, spec, True)])

        restrictions = [cls._parse_restriction(part) for part in cls._split_ranges(spec)]
        return cls(spec, restrictions)

    @classmethod
    def at_least(cls, ver: str) -> "VersionRange":
        """Half-open range ``[ver,)``."""
        return cls.parse(f"[{ver},)")

    @staticmethod
    def _split_ranges(spec: str) -> List[str]:
        """Split a union like ``[1.0,2.0),[3.0,4.0]`` into single intervals."""
        ranges = []
        current = ""
        depth = 0
        for char in spec:
            if char in "[(":
                if depth:
                    raise ValueError(f"Nested bracket in range {spec!r}")
                depth = 1
                current = char
            elif char in "])":
                if not depth:
                    raise ValueError(f"Unbalanced bracket in range {spec!r}")
                depth = 0
                ranges.append(current + char)
                current = ""
            elif depth:
                current += char
            elif char not in ", ":
                raise ValueError(f"Unexpected character {char!r} in range {spec!r}")
        if depth:
            raise ValueError(f"Unterminated range {spec!r}")
        return ranges

    @staticmethod
    def _parse_restriction(part: str) -> Restriction:
        inner = part[1:-1]
        lower_inclusive = part.startswith("[")
        upper_inclusive = part.endswith("]")
        if "," not in inner:
            base = inner.strip()
            if not base or not (lower_inclusive and upper_inclusive):
                raise ValueError(f"Single-version range must be [x]: {part!r}")
            return Restriction(base, True, base, True)
        lower, upper = (p.strip() for p in inner.split(",", 1))
        return Restriction(lower or None, lower_inclusive, upper or None, upper_inclusive)

    def contains(self, raw: str) -> bool:
        """Return True if ``raw`` satisfies any interval of this range."""
        ver = parse_version(raw)
        if ver is None:
            return False
        return any(r.contains(ver) for r in self.restrictions)

    def filter(self, candidates: Iterable[str]) -> List[str]:
        """Return the matching candidates sorted ascending."""
        return [v for v in sort_versions(candidates) if self.contains(v)]

    def highest(self, candidates: Iterable[str]) -> Optional[str]:
        """Return the highest matching candidate or None."""
        matching = self.filter(candidates)
        return matching[-1] if matching else None

    def __str__(self) -> str:
        return self.spec

    def __repr__(self) -> str:
        return f"VersionRange({self.spec!r})"
