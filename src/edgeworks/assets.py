"""Static asset upload grouping and CloudFront invalidation fingerprints."""

from __future__ import annotations

import glob
import hashlib
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal, Sequence, Union

from .errors import ConfigurationError
from .plan import AssetCopy, Plan

logger = logging.getLogger(__name__)

VERSIONED_FILES_TTL = 31536000
NON_VERSIONED_FILES_TTL = 86400
VERSIONED_CACHE_CONTROL = f"public,max-age={VERSIONED_FILES_TTL},immutable"
NON_VERSIONED_CACHE_CONTROL = (
    f"public,max-age=0,s-maxage={NON_VERSIONED_FILES_TTL},"
    f"stale-while-revalidate={NON_VERSIONED_FILES_TTL}"
)

InvalidationPaths = Union[Literal["all", "versioned"], Sequence[str]]


@dataclass(frozen=True)
class FileOption:
    """Headers applied to files matching ``files`` (glob, ``**`` recursive)."""

    files: str
    cache_control: str | None = None
    content_type: str | None = None
    ignore: str | None = None


@dataclass(frozen=True)
class AssetOptions:
    versioned_files_cache_header: str = VERSIONED_CACHE_CONTROL
    non_versioned_files_cache_header: str = NON_VERSIONED_CACHE_CONTROL
    file_options: tuple[FileOption, ...] = ()


@dataclass(frozen=True)
class UploadGroup:
    """Files from one source directory that share upload headers."""

    source_dir: Path
    key_prefix: str
    files: tuple[str, ...]
    cache_control: str | None
    content_type: str | None

    def fingerprint(self) -> str:
        digest = hashlib.md5()
        for part in (str(self.source_dir), self.key_prefix, self.cache_control or "", self.content_type or ""):
            digest.update(part.encode("utf-8"))
            digest.update(b"\0")
        return digest.hexdigest()[:12]


def _glob_files(root: Path, pattern: str, ignore: str | None) -> list[str]:
    matches = glob.glob(pattern, root_dir=str(root), recursive=True, include_hidden=True)
    ignored: set[str] = set()
    if ignore:
        ignored = set(glob.glob(ignore, root_dir=str(root), recursive=True, include_hidden=True))
    files = [
        Path(match).as_posix()
        for match in matches
        if match not in ignored and (root / match).is_file()
    ]
    return sorted(files)


def _file_options_for(copy: AssetCopy, options: AssetOptions) -> list[FileOption]:
    versioned_glob = f"{copy.versioned_subdir}/**" if copy.versioned_subdir else None
    file_options = [
        FileOption(
            files="**",
            ignore=versioned_glob,
            cache_control=options.non_versioned_files_cache_header,
        )
    ]
    if versioned_glob:
        file_options.append(
            FileOption(files=versioned_glob, cache_control=options.versioned_files_cache_header)
        )
    file_options.extend(options.file_options)
    return file_options


def _copies(plan: Plan) -> list[AssetCopy]:
    copies = list(plan.assets)
    if plan.isr_cache is not None:
        copies.append(
            AssetCopy(
                source=plan.isr_cache.source,
                destination=plan.isr_cache.destination,
                cached=False,
            )
        )
    return copies


def plan_uploads(
    plan: Plan,
    output_path: Path,
    *,
    path_prefix: str | None = None,
    options: AssetOptions | None = None,
) -> list[UploadGroup]:
    """Assign every asset file to exactly one header group.

    File options are applied last-first: a file claimed by a later option is
    not claimed again by an earlier one.
    """
    options = options or AssetOptions()
    route_dir = (path_prefix or "").strip("/")
    groups: list[UploadGroup] = []
    required_sources = {copy.source for copy in plan.assets}

    for copy in _copies(plan):
        source_dir = (output_path / copy.source).resolve()
        if not source_dir.is_dir():
            if copy.source not in required_sources:
                # OpenNext skips the cache directory when the incremental cache is disabled.
                logger.debug("No ISR cache directory at %s, nothing to upload", source_dir)
                continue
            raise ConfigurationError(f'Asset directory "{source_dir}" does not exist.')
        key_prefix = "/".join(part for part in (copy.destination, route_dir) if part)

        claimed: set[str] = set()
        for file_option in reversed(_file_options_for(copy, options)):
            files = [
                name
                for name in _glob_files(source_dir, file_option.files, file_option.ignore)
                if name not in claimed
            ]
            if not files:
                continue
            claimed.update(files)
            groups.append(
                UploadGroup(
                    source_dir=source_dir,
                    key_prefix=key_prefix,
                    files=tuple(files),
                    cache_control=file_option.cache_control,
                    content_type=file_option.content_type,
                )
            )

    logger.info("Planned %d asset upload group(s)", len(groups))
    return groups


def stage_upload_group(group: UploadGroup, staging_root: Path) -> Path:
    """Copy a group's files into their own directory so it can be deployed alone."""
    target = staging_root / group.fingerprint()
    if target.exists():
        shutil.rmtree(target)
    for name in group.files:
        destination = target / name
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(group.source_dir / name, destination)
    return target


@dataclass(frozen=True)
class InvalidationSettings:
    paths: InvalidationPaths = "all"


def invalidation_paths(plan: Plan, settings: InvalidationSettings) -> list[str]:
    cached = [copy for copy in plan.assets if copy.cached]
    if not cached:
        return []
    if settings.paths == "all":
        return ["/*"]
    if settings.paths == "versioned":
        return [
            "/" + "/".join(part for part in (copy.destination, copy.versioned_subdir, "*") if part)
            for copy in cached
            if copy.versioned_subdir
        ]
    if isinstance(settings.paths, str):
        raise ConfigurationError(
            f'Invalid invalidation paths {settings.paths!r}. Use "all", "versioned" or a list of paths.'
        )
    return list(settings.paths)


def _read_all(paths: Iterable[Path]) -> list[bytes]:
    with ThreadPoolExecutor(max_workers=8) as pool:
        return list(pool.map(Path.read_bytes, paths))


def invalidation_build_id(plan: Plan, output_path: Path, settings: InvalidationSettings) -> str:
    """Fingerprint of the cached assets; a new value triggers a new invalidation.

    Versioned files contribute their paths (their names change with content),
    other files contribute their contents unless only versioned paths are
    invalidated.
    """
    if plan.build_id:
        return plan.build_id

    digest = hashlib.md5()
    for copy in plan.assets:
        if not copy.cached:
            continue
        source_dir = output_path / copy.source
        if copy.versioned_subdir:
            for name in _glob_files(source_dir / copy.versioned_subdir, "**", None):
                digest.update(name.encode("utf-8"))
        if settings.paths != "versioned":
            ignore = f"{copy.versioned_subdir}/**" if copy.versioned_subdir else None
            names = _glob_files(source_dir, "**", ignore)
            for content in _read_all(source_dir / name for name in names):
                digest.update(content)
    return digest.hexdigest()
