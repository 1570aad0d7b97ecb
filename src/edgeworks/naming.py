"""Helpers for construct ids and namespaced keys."""

from __future__ import annotations

import hashlib
import re

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")


def logical_name(name: str) -> str:
    """``us-east-1`` -> ``Useast1``; safe for use inside construct ids."""
    cleaned = _NON_ALNUM_RE.sub("", name)
    return cleaned[:1].upper() + cleaned[1:]


def prefix_name(max_length: int, name: str, *, app_name: str, stage: str) -> str:
    """Prefix ``name`` with app and stage, dropping parts that do not fit."""
    name = _NON_ALNUM_RE.sub("", name)
    if len(name) + 1 >= max_length:
        return name[:max_length]
    if len(name) + len(stage) + 2 >= max_length:
        return f"{stage[: max_length - len(name) - 1]}-{name}"
    return f"{app_name[: max_length - len(stage) - len(name) - 2]}-{stage}-{name}"


def kv_namespace(app_name: str, stage: str, name: str) -> str:
    """Short namespace so several sites can share one KeyValueStore."""
    digest = hashlib.md5(f"{app_name}-{stage}-{name}".encode("utf-8")).hexdigest()
    return digest[:4]
