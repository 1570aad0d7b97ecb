"""Normalized build-output description shared by every site adapter."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

from .errors import ConfigurationError


@dataclass(frozen=True)
class Permission:
    """IAM statement granted to a server function."""

    actions: tuple[str, ...]
    resources: tuple[str, ...]


@dataclass(frozen=True)
class CopyFile:
    """Extra file copied into a server bundle before it is packaged."""

    source: Path
    destination: str


@dataclass(frozen=True)
class ServerSpec:
    """Compute function described by a framework build.

    ``bundle`` is a self-contained directory; ``handler`` is relative to it
    (``"entry.handler"`` means ``entry.mjs`` exporting ``handler``).
    """

    bundle: Path
    handler: str
    runtime: str | None = None
    streaming: bool = False
    description: str | None = None
    memory: str | None = None
    architecture: str | None = None
    timeout: str | None = None
    environment: Mapping[str, str] = field(default_factory=dict)
    permissions: tuple[Permission, ...] = ()
    copy_files: tuple[CopyFile, ...] = ()


@dataclass(frozen=True)
class ImageOptimizerSpec:
    function: ServerSpec
    prefix: str


@dataclass(frozen=True)
class AssetCopy:
    """One static directory uploaded to the asset bucket.

    ``source`` is relative to the build output path. Files land under
    ``destination`` in the bucket; KV file entries do not include it, the edge
    router adds it back when routing to S3.
    """

    source: str
    destination: str
    cached: bool
    versioned_subdir: str | None = None
    deep_route: str | None = None


@dataclass(frozen=True)
class IsrCacheCopy:
    source: str
    destination: str


@dataclass(frozen=True)
class Plan:
    assets: tuple[AssetCopy, ...]
    base: str | None = None
    server: ServerSpec | None = None
    image_optimizer: ImageOptimizerSpec | None = None
    isr_cache: IsrCacheCopy | None = None
    custom_404: str | None = None
    build_id: str | None = None


def normalize_base(base: str | None) -> str | None:
    """``"docs/"`` -> ``"/docs"``; empty and ``"/"`` mean no base path."""
    if base is None:
        return None
    trimmed = base.strip().strip("/")
    if not trimmed:
        return None
    return f"/{trimmed}"


def _strip_slashes(value: str) -> str:
    return value.strip("/")


def validate_plan(plan: Plan, *, path_prefix: str | None = None) -> Plan:
    """Return the normalized plan, or raise if it conflicts with the route.

    ``path_prefix`` is the router path the site is attached under, if any.
    """
    if not plan.assets:
        raise ConfigurationError("The build plan does not contain any static assets to upload.")

    base = normalize_base(plan.base)

    if path_prefix and path_prefix != "/":
        if not base:
            raise ConfigurationError(
                "No base path found for site. You must configure the base path to match "
                f'the route path prefix "{path_prefix}".'
            )
        if not base.startswith(path_prefix):
            raise ConfigurationError(
                f'The site base path "{base}" must start with the route path prefix "{path_prefix}".'
            )

    assets = tuple(replace(copy, destination=_strip_slashes(copy.destination)) for copy in plan.assets)
    isr_cache = plan.isr_cache
    if isr_cache is not None:
        isr_cache = replace(isr_cache, destination=_strip_slashes(isr_cache.destination))

    return replace(plan, base=base, assets=assets, isr_cache=isr_cache)
