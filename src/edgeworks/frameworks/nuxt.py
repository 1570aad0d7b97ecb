"""Nuxt builds using the ``aws-lambda`` Nitro preset."""

from __future__ import annotations

from pathlib import Path

from ..errors import BuildOutputError
from ..plan import AssetCopy, Plan, ServerSpec
from . import scan_config_value

BASE_URL_PATTERN = r"""baseURL: ['"](.*)['"]"""


def build_plan(output_path: Path) -> Plan:
    server_dir = output_path / ".output" / "server"
    if not server_dir.is_dir():
        raise BuildOutputError(
            f'Nuxt server output not found at "{server_dir}". Build with the "aws-lambda" preset.'
        )
    return Plan(
        base=scan_config_value(output_path / "nuxt.config.ts", BASE_URL_PATTERN),
        server=ServerSpec(
            description="Server handler for Nuxt",
            bundle=server_dir,
            handler="index.handler",
        ),
        assets=(AssetCopy(source=".output/public", destination="", cached=True),),
    )
