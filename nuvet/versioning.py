"""
NuGet version parsing, ordering and version ranges.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Iterable, Optional, Tuple


_VERSION_RE = re.compile(
    r"^v?(?P<release>\d+(?:\.\d+){0,3})"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<metadata>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


def _prerelease_key(identifiers: Tuple[str, ...]) -> Tuple:
    key = []
    for ident in identifiers:
        if ident.isdigit():
            key.append((0, int(ident), ""))
        else:
            key.append((1, 0, ident.lower()))
    return tuple(key)


@total_ordering
@dataclass(frozen=True, eq=False)
class SemVersion:
    """A NuGet package version (SemVer 2.0 with an optional fourth part)."""

    major: int
    minor: int = 0
    patch: int = 0
    revision: int = 0
    prerelease: Tuple[str, ...] = ()
    metadata: str = ""
    original: str = field(default="", repr=False)

    @classmethod
    def parse(cls, value: str) -> "SemVersion":
        if value is None:
            raise ValueError("Version string is required")
        text = str(value).strip()
        match = _VERSION_RE.match(text)
        if match is None:
            raise ValueError(f"Invalid version: {value!r}")
        parts = [int(p) for p in match.group("release").split(".")]
        parts.extend([0] * (4 - len(parts)))
        prerelease = match.group("prerelease")
        return cls(
            major=parts[0],
            minor=parts[1],
            patch=parts[2],
            revision=parts[3],
            prerelease=tuple(prerelease.split(".")) if prerelease else (),
            metadata=match.group("metadata") or "",
            original=text,
        )

    @classmethod
    def try_parse(cls, value: Optional[str]) -> Optional["SemVersion"]:
        if not value:
            return None
        try:
            return cls.parse(value)
        except ValueError:
            return None

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def release(self) -> Tuple[int, int, int, int]:
        return (self.major, self.minor, self.patch, self.revision)

    def sort_key(self) -> Tuple:
        # A release sorts after every prerelease of the same numbers.
        if self.prerelease:
            return (self.release, 0, _prerelease_key(self.prerelease))
        return (self.release, 1, ())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return self.sort_key() == other.sort_key()

    def __lt__(self, other: "SemVersion") -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __hash__(self) -> int:
        return hash(self.sort_key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision:
            text += f".{self.revision}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        return text


def semver_key(value: str) -> Optional[Tuple]:
    """Sort key for a raw version string, or None if it is not a version."""
    version = SemVersion.try_parse(value)
    if version is None:
        return None
    return version.sort_key()


@dataclass(frozen=True)
class VersionRange:
    """A NuGet version range such as ``1.0``, ``[1.0, 2.0)`` or ``(, 3.0]``."""

    min_version: Optional[SemVersion] = None
    is_min_inclusive: bool = True
    max_version: Optional[SemVersion] = None
    is_max_inclusive: bool = False
    original: str = ""

    @classmethod
    def parse(cls, value: str) -> "VersionRange":
        text = (value or "").strip()
        if not text or text == "*":
            return cls(original=text)

        if text[0] not in "[(":
            # A bare version means "this version or higher".
            return cls(min_version=SemVersion.parse(text), original=text)

        if len(text) < 2 or text[-1] not in ")]":
            raise ValueError(f"Invalid version range: {value!r}")

        min_inclusive = text[0] == "["
        max_inclusive = text[-1] == "]"
        body = text[1:-1]

        if "," not in body:
            exact = SemVersion.parse(body)
            if not (min_inclusive and max_inclusive):
                raise ValueError(f"Invalid exact version range: {value!r}")
            return cls(exact, True, exact, True, text)

        low_text, high_text = (part.strip() for part in body.split(",", 1))
        if "," in high_text:
            raise ValueError(f"Invalid version range: {value!r}")
        low = SemVersion.parse(low_text) if low_text else None
        high = SemVersion.parse(high_text) if high_text else None
        if low is None and high is None:
            raise ValueError(f"Version range has no bounds: {value!r}")
        if low is not None and high is not None and high < low:
            raise ValueError(f"Version range upper bound below lower bound: {value!r}")
        return cls(low, min_inclusive, high, max_inclusive, text)

    def satisfies(self, version: SemVersion) -> bool:
        if self.min_version is not None:
            if self.is_min_inclusive and version < self.min_version:
                return False
            if not self.is_min_inclusive and version <= self.min_version:
                return False
        if self.max_version is not None:
            if self.is_max_inclusive and version > self.max_version:
                return False
            if not self.is_max_inclusive and version >= self.max_version:
                return False
        return True

    def lowest_satisfying(self, versions: Iterable[SemVersion]) -> Optional[SemVersion]:
        """Lowest applicable version, preferring stable releases."""
        candidates = sorted(v for v in versions if self.satisfies(v))
        stable = [v for v in candidates if not v.is_prerelease]
        if stable:
            return stable[0]
        return candidates[0] if candidates else None

    def __str__(self) -> str:
        return self.original
