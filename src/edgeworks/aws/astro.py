"""Astro site built with the ``astro-sst`` adapter."""

from __future__ import annotations

from pathlib import Path

from ..frameworks import astro
from ..plan import Plan
from .ssr_site import SsrSite


class Astro(SsrSite):
    def build_plan(self, site_path: Path) -> Plan:
        return astro.build_plan(site_path)
