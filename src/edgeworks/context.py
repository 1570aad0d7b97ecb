"""Explicit app/stage context threaded through every component."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigurationError

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")

DEFAULT_STATE_FILE = ".edgeworks/state.json"


@dataclass(frozen=True)
class AppContext:
    """Identity of the deployment plus state recorded by earlier deploys.

    ``component_versions`` maps a component name to the major version that was
    last deployed for it. It is read back from the state file written by
    ``scripts/sync_component_state.py``.
    """

    app_name: str
    stage: str
    root: Path = field(default_factory=Path.cwd)
    component_versions: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for field_name in ("app_name", "stage"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not _NAME_RE.match(value):
                raise ConfigurationError(
                    f"{field_name} must start with a letter and contain only letters, digits and '-'"
                )

    def recorded_version(self, component_name: str) -> int | None:
        return self.component_versions.get(component_name)

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        *,
        root: Path | None = None,
    ) -> "AppContext":
        source = os.environ if env is None else env
        app_name = source.get("EDGEWORKS_APP", "").strip()
        if not app_name:
            raise ConfigurationError("EDGEWORKS_APP is required")
        stage = source.get("EDGEWORKS_STAGE", "").strip() or "dev"
        base = (root or Path.cwd()).resolve()
        state_file = source.get("EDGEWORKS_STATE_FILE", "").strip() or DEFAULT_STATE_FILE
        return cls(
            app_name=app_name,
            stage=stage,
            root=base,
            component_versions=load_component_versions(base / state_file, stage=stage),
        )

    @classmethod
    def from_construct(cls, node: Any, *, root: Path | None = None) -> "AppContext":
        """Build from CDK context values, falling back to environment variables."""
        env = dict(os.environ)
        app_name = node.try_get_context("appName")
        stage = node.try_get_context("stageName")
        state_file = node.try_get_context("stateFile")
        if app_name:
            env["EDGEWORKS_APP"] = str(app_name)
        if stage:
            env["EDGEWORKS_STAGE"] = str(stage)
        if state_file:
            env["EDGEWORKS_STATE_FILE"] = str(state_file)
        return cls.from_env(env, root=root)


def load_component_versions(path: Path, *, stage: str) -> dict[str, int]:
    """Read ``{"<stage>": {"versions": {"<name>": <major>}}}`` if the file exists."""
    if not path.is_file():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"State file {path} is not valid JSON") from exc

    stage_state = payload.get(stage) if isinstance(payload, dict) else None
    versions = stage_state.get("versions") if isinstance(stage_state, dict) else None
    if not isinstance(versions, dict):
        return {}

    recorded: dict[str, int] = {}
    for name, value in versions.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"State file {path}: version of {name!r} must be an integer")
        recorded[name] = value
    return recorded
