"""Nuxt site."""

from __future__ import annotations

from pathlib import Path

from ..frameworks import nuxt
from ..plan import Plan
from .ssr_site import SsrSite


class Nuxt(SsrSite):
    def build_plan(self, site_path: Path) -> Plan:
        return nuxt.build_plan(site_path)
