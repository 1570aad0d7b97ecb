"""Running a site's framework build before its output is read."""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

from .errors import BuildCommandError

logger = logging.getLogger(__name__)

SKIP_BUILD_ENV = "EDGEWORKS_SKIP_BUILD"

_LOCKFILE_COMMANDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("yarn.lock",), "yarn run build"),
    (("pnpm-lock.yaml",), "pnpm run build"),
    (("bun.lockb", "bun.lock"), "bun run build"),
)


def resolve_build_command(site_path: Path, *, root: Path | None = None, command: str | None = None) -> str:
    """Pick the command that builds the site.

    A caller supplied ``command`` wins. Otherwise the site's ``package.json``
    must define a ``build`` script, and the package manager is chosen from the
    lockfile found in the site directory or the project root.
    """
    if command:
        return command

    package_json = site_path / "package.json"
    if not package_json.is_file():
        raise BuildCommandError(f'No package.json found at "{site_path}".')
    try:
        package = json.loads(package_json.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise BuildCommandError(f"{package_json} is not valid JSON") from exc
    scripts = package.get("scripts") if isinstance(package, dict) else None
    if not isinstance(scripts, dict) or not scripts.get("build"):
        raise BuildCommandError(f'No "build" script found within package.json in "{site_path}".')

    search_dirs = [site_path] if root is None else [site_path, root]
    for lockfiles, lock_command in _LOCKFILE_COMMANDS:
        if any((directory / name).exists() for directory in search_dirs for name in lockfiles):
            return lock_command
    return "npm run build"


def build_skipped(env: Mapping[str, str] | None = None) -> bool:
    value = (os.environ if env is None else env).get(SKIP_BUILD_ENV, "")
    return value.strip().lower() in {"1", "true", "yes", "on"}


def run_build(
    command: str | Sequence[str],
    site_path: Path,
    *,
    environment: Mapping[str, str] | None = None,
) -> None:
    """Run the build in ``site_path`` with ``environment`` layered over ``os.environ``."""
    if build_skipped():
        logger.info("Skipping build of %s (%s is set)", site_path, SKIP_BUILD_ENV)
        return

    args = shlex.split(command) if isinstance(command, str) else list(command)
    env = {"EDGEWORKS": "1", **os.environ, **(environment or {})}
    logger.info("Building %s: %s", site_path, " ".join(args))
    try:
        result = subprocess.run(args, cwd=site_path, env=env, check=False)
    except FileNotFoundError as exc:
        raise BuildCommandError(f'Build command "{args[0]}" was not found.') from exc
    if result.returncode != 0:
        raise BuildCommandError(
            f'Build command "{" ".join(args)}" failed in "{site_path}" with exit code {result.returncode}.'
        )
