"""Remix site."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..frameworks import remix
from ..plan import Plan
from .ssr_site import SsrSite, SsrSiteProps


@dataclass(frozen=True)
class RemixProps(SsrSiteProps):
    build_directory: str = "build"


class Remix(SsrSite):
    props: RemixProps

    def __init__(self, scope, construct_id: str, *, context, props: RemixProps | None = None) -> None:
        super().__init__(scope, construct_id, context=context, props=props or RemixProps())

    def build_plan(self, site_path: Path) -> Plan:
        return remix.build_plan(site_path, build_directory=self.props.build_directory)
