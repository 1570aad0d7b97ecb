"""Framework build output loaders that produce a ``Plan``.

Modules here only read files; creating AWS resources is left to
``edgeworks.aws``.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from ..errors import BuildOutputError

logger = logging.getLogger(__name__)


def read_json(path: Path, *, what: str, hint: str) -> Any:
    """Load a build manifest, raising a user-facing error when it is missing."""
    if not path.is_file():
        raise BuildOutputError(f'{what} not found at "{path}". {hint}')
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise BuildOutputError(f'{what} at "{path}" is not valid JSON. {hint}') from exc


def scan_config_value(path: Path, pattern: str) -> str | None:
    """Best-effort read of a literal value from a JS/TS config file.

    Values computed at runtime, spread from variables or split over several
    lines are not found.
    """
    if not path.is_file():
        return None
    match = re.search(pattern, path.read_text(encoding="utf-8"))
    if match is None:
        logger.debug("No match for %r in %s", pattern, path)
        return None
    return match.group(1)
