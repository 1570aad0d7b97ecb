"""React Router (framework mode) site."""

from __future__ import annotations

from pathlib import Path

from ..frameworks import react_router
from ..plan import Plan
from .ssr_site import SsrSite


class ReactRouter(SsrSite):
    """Without a server build the site is static and unknown paths get ``index.html``."""

    def build_plan(self, site_path: Path) -> Plan:
        return react_router.build_plan(site_path)
