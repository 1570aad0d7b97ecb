"""Loose semver comparison for version strings taken from package manifests."""

from __future__ import annotations

import re

_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(value: str) -> tuple[int, int, int]:
    """Parse ``"^14.2.3"``, ``"v3.1"`` or ``"15.0.0-canary.1"`` into a triple.

    Range prefixes and pre-release suffixes are ignored.
    """
    match = _VERSION_RE.search(value or "")
    if not match:
        raise ValueError(f"Invalid version {value!r}")
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return major, minor, patch


def is_a_lt_b(a: str, b: str) -> bool:
    return parse_version(a) < parse_version(b)


def is_a_lte_b(a: str, b: str) -> bool:
    return parse_version(a) <= parse_version(b)
