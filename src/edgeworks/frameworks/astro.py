"""Astro builds produced by the ``astro-sst`` adapter."""

from __future__ import annotations

from pathlib import Path

from ..errors import BuildOutputError
from ..plan import AssetCopy, CopyFile, Plan, ServerSpec
from ..semver import is_a_lt_b
from . import read_json

BUILD_META_FILE = "sst.buildMeta.json"
MIN_ADAPTER_VERSION = "3.1.2"


def build_plan(output_path: Path) -> Plan:
    meta = read_json(
        output_path / "dist" / BUILD_META_FILE,
        what="Build metadata file",
        hint='Update your "astro-sst" adapter and rebuild your Astro site.',
    )
    plugin_version = meta.get("pluginVersion")
    if not plugin_version or is_a_lt_b(str(plugin_version), MIN_ADAPTER_VERSION):
        raise BuildOutputError(
            'Incompatible "astro-sst" adapter version detected. The Astro component requires '
            f'"astro-sst" adapter version {MIN_ADAPTER_VERSION} or later.'
        )

    client_dir = meta.get("clientBuildOutputDir") or "dist/client"
    server_dir = output_path / "dist" / "server"
    is_static = meta.get("outputMode") == "static"
    base = meta.get("base")

    # Static sites rewrite misses to the prerendered 404 page; servers render
    # their own 404 and need the page bundled with them.
    server = None
    custom_404 = None
    if is_static:
        if (output_path / client_dir / "404.html").is_file():
            custom_404 = "/404.html"
    else:
        not_found = server_dir / "404.html"
        server = ServerSpec(
            bundle=server_dir,
            handler="entry.handler",
            streaming=meta.get("responseMode") == "stream",
            copy_files=(CopyFile(source=not_found, destination="404.html"),) if not_found.is_file() else (),
        )

    return Plan(
        base=None if base == "/" else base,
        server=server,
        assets=(
            AssetCopy(
                source=client_dir,
                destination="",
                cached=True,
                versioned_subdir=meta.get("clientBuildVersionedSubDir") or None,
            ),
        ),
        custom_404=custom_404,
    )
