"""React Router (framework mode) builds."""

from __future__ import annotations

from pathlib import Path

from ..errors import BuildOutputError
from ..plan import AssetCopy, Plan, ServerSpec
from . import scan_config_value
from .server_wrapper import write_streaming_server

VITE_BASE_PATTERN = r"""["']?base["']?:\s*["']([^"]+)["']"""
BASENAME_PATTERN = r"""["']?basename["']?:\s*["']([^"]+)["']"""


def read_base(output_path: Path) -> str | None:
    """Base path shared by ``vite.config.ts`` and ``react-router.config.ts``.

    Vite's ``base`` must end with ``/`` and the router ``basename`` must not;
    setting only one of them is an error.
    """
    vite_base = scan_config_value(output_path / "vite.config.ts", VITE_BASE_PATTERN)
    basename = scan_config_value(output_path / "react-router.config.ts", BASENAME_PATTERN)

    if vite_base:
        if not vite_base.endswith("/"):
            raise BuildOutputError(
                'The "base" value in vite.config.ts must end with a trailing slash ("/").'
            )
        if not basename:
            raise BuildOutputError(
                'Found "base" configured in vite.config.ts but missing "basename" in '
                "react-router.config.ts. Both configurations are required."
            )
    if basename:
        if basename.endswith("/"):
            raise BuildOutputError(
                'The "basename" value in react-router.config.ts must not end with a trailing slash ("/").'
            )
        if not vite_base:
            raise BuildOutputError(
                'Found "basename" configured in react-router.config.ts but missing "base" in '
                "vite.config.ts. Both configurations are required."
            )
    return basename


def build_plan(output_path: Path) -> Plan:
    base = read_base(output_path)
    build_dir = output_path / "build"
    has_server = (build_dir / "server").is_dir()

    server = None
    if has_server:
        write_streaming_server(build_dir, build_import="./server/index.js", handler_package="react-router")
        server = ServerSpec(bundle=build_dir, handler="server.handler", streaming=True)

    return Plan(
        base=base,
        server=server,
        assets=(AssetCopy(source="build/client", destination="", cached=True, versioned_subdir="assets"),),
        custom_404=None if has_server else "/index.html",
    )
