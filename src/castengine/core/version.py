# src/castengine/core/version.py
"""Kubernetes-aware version comparison.

Versions look like ``v<major>.<minor>.<patch>[-<channel>][.<build>]``.
Channels order alpha < beta < everything else (treated as GA).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum

INVALID_VERSION = "invalid"

_VERSION_RE = re.compile(r"^v([0-9]+)(?:.)([0-9]+)(?:.)([0-9]+)(?:-(alpha|beta|gke|eks))?(?:.([0-9]+))?")

# Kubernetes label value syntax: at most 63 chars, alphanumeric at both ends
_LABEL_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
_LABEL_VALUE_MAX = 63


class Release(IntEnum):
    ALPHA = 0
    BETA = 1
    GA = 2


@dataclass(frozen=True)
class KubeVersion:
    """Parsed version; the channel and build default to GA and 0."""

    major: int
    minor: int
    patch: int
    release: Release = Release.GA
    build: int = 0

    def key(self) -> tuple[int, int, int, int, int]:
        return (self.major, self.minor, self.patch, int(self.release), self.build)


def parse(value: str) -> KubeVersion | None:
    """Parse ``value``; returns None when it is not a Kubernetes version."""
    m = _VERSION_RE.match(value)
    if m is None:
        return None
    channel = m.group(4)
    release = {"alpha": Release.ALPHA, "beta": Release.BETA}.get(channel or "", Release.GA)
    return KubeVersion(
        major=int(m.group(1)),
        minor=int(m.group(2)),
        patch=int(m.group(3)),
        release=release,
        build=int(m.group(5) or 0),
    )


def is_valid_label_value(value: str) -> bool:
    return len(value) <= _LABEL_VALUE_MAX and _LABEL_VALUE_RE.match(value) is not None


def as_label_value(value: str) -> str:
    """Sanitize ``value`` so it can be used as a resource label value.

    Returns the value itself when already valid, else the canonical
    version prefix when that is valid, else ``"invalid"``.
    """
    if is_valid_label_value(value):
        return value
    m = _VERSION_RE.match(value)
    sanitized = m.group(0) if m else INVALID_VERSION
    return sanitized if is_valid_label_value(sanitized) else INVALID_VERSION


def compare(v1: str, v2: str) -> int:
    """Three-way comparison returning -1, 0, or 1.

    An invalid version is less than any valid one. Two invalid versions
    fall back to ``cmp(v2, v1)`` on the literal strings.
    """
    if v1 == v2:
        return 0
    p1, p2 = parse(v1), parse(v2)
    if p1 is None and p2 is None:
        return (v2 > v1) - (v2 < v1)
    if p1 is None:
        return -1
    if p2 is None:
        return 1
    k1, k2 = p1.key(), p2.key()
    return (k1 > k2) - (k1 < k2)


def eq(v1: str, v2: str) -> bool:
    return compare(v1, v2) == 0


def gt(v1: str, v2: str) -> bool:
    return compare(v1, v2) > 0


def gte(v1: str, v2: str) -> bool:
    return compare(v1, v2) >= 0


def lt(v1: str, v2: str) -> bool:
    return compare(v1, v2) < 0


def lte(v1: str, v2: str) -> bool:
    return compare(v1, v2) <= 0
