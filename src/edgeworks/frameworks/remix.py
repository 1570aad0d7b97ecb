"""Remix builds, classic compiler or Vite plugin."""

from __future__ import annotations

from pathlib import Path

from ..plan import AssetCopy, Plan, ServerSpec
from . import scan_config_value
from .server_wrapper import write_streaming_server

VITE_CONFIG_FILES = ("vite.config.ts", "vite.config.js", "vite.config.mts", "vite.config.mjs")
BASE_PATTERN = r"""base: ['"](.*)['"]"""


def find_vite_config(output_path: Path) -> Path | None:
    for name in VITE_CONFIG_FILES:
        candidate = output_path / name
        if candidate.is_file():
            return candidate
    return None


def build_plan(output_path: Path, *, build_directory: str = "build") -> Plan:
    vite_config = find_vite_config(output_path)
    if vite_config is not None:
        assets_path = f"{build_directory}/client"
        versioned_subdir = "assets"
        build_path = output_path / build_directory
        build_import = "./server/index.js"
        base = scan_config_value(vite_config, BASE_PATTERN)
    else:
        assets_path = "public"
        versioned_subdir = "build"
        build_path = output_path / "build"
        build_import = "./index.js"
        base = None

    write_streaming_server(build_path, build_import=build_import, handler_package="@remix-run/node")

    return Plan(
        base=base,
        server=ServerSpec(bundle=build_path, handler="server.handler", streaming=True),
        assets=(
            AssetCopy(source=assets_path, destination="", cached=True, versioned_subdir=versioned_subdir),
        ),
    )
