"""KeyValueStore records that let the edge function route a site's requests."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Sequence

from .plan import Plan
from .regions import REGION_COORDINATES, region_coordinates

ProtectionMode = Literal["none", "oac"]

# Directories whose files have no extension; the router appends .html suffixes
# to S3 lookups, so their files get individual entries instead of a dir route.
EXPAND_DIRS = (".well-known",)

LAMBDA_OAC_CONFIG = {
    "enabled": True,
    "signingBehavior": "always",
    "signingProtocol": "sigv4",
    "originType": "lambda",
}


@dataclass(frozen=True)
class ServerOrigin:
    region: str
    host: str


@dataclass(frozen=True)
class AssetIndex:
    """File keys served straight from S3 plus directory prefixes routed to S3."""

    files: dict[str, str]
    routes: list[str]


def index_assets(plan: Plan, output_path: Path) -> AssetIndex:
    files: dict[str, str] = {}
    routes: list[str] = []

    for copy in plan.assets:
        root = output_path / copy.source

        def walk(child: str, level: int) -> None:
            current = root / child if child else root
            for item in sorted(current.iterdir(), key=lambda entry: entry.name):
                relative = f"{child}/{item.name}" if child else item.name
                if item.is_file():
                    files[f"/{relative}"] = "s3"
                    continue
                if level == 0 and (item.name in EXPAND_DIRS or item.name == copy.deep_route):
                    walk(relative, level + 1)
                    continue
                routes.append(f"/{relative}")

        walk("", 0)

    return AssetIndex(files=files, routes=routes)


def site_metadata(
    plan: Plan,
    *,
    bucket_domain: str,
    routes: Sequence[str],
    servers: Sequence[ServerOrigin],
    image_host: str | None,
    read_timeout: int,
    protection: ProtectionMode = "none",
) -> dict[str, Any]:
    """Build the ``<ns>:metadata`` record.

    Host values may be unresolved CDK tokens; the caller serializes the result
    with ``Stack.to_json_string``.
    """
    first_destination = plan.assets[0].destination
    metadata: dict[str, Any] = {
        "s3": {
            "domain": bucket_domain,
            "dir": f"/{first_destination}" if first_destination else "",
            "routes": list(routes),
        },
    }
    if plan.base:
        metadata["base"] = plan.base
    if plan.custom_404:
        metadata["custom404"] = plan.custom_404

    if image_host is not None and plan.image_optimizer is not None:
        image: dict[str, Any] = {"host": image_host, "route": plan.image_optimizer.prefix}
        if protection == "oac":
            image["originAccessControlConfig"] = dict(LAMBDA_OAC_CONFIG)
        metadata["image"] = image

    if servers:
        entries = []
        for server in servers:
            # A lone server is always chosen, its region may be an unresolved token.
            if len(servers) == 1:
                lat, lon = REGION_COORDINATES.get(server.region, (0.0, 0.0))
            else:
                lat, lon = region_coordinates(server.region)
            entries.append([server.host, lat, lon])
        metadata["servers"] = entries

    origin: dict[str, Any] = {"timeouts": {"readTimeout": read_timeout}}
    if protection == "oac":
        origin["originAccessControlConfig"] = dict(LAMBDA_OAC_CONFIG)
    metadata["origin"] = origin
    return metadata
