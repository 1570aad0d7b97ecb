"""Deployment region validation and approximate region coordinates."""

from __future__ import annotations

from typing import Iterable, Sequence

from .errors import ConfigurationError

# Approximate data center location per region, used for nearest-server routing.
REGION_COORDINATES: dict[str, tuple[float, float]] = {
    "af-south-1": (-33.9249, 18.4241),
    "ap-east-1": (22.3193, 114.1694),
    "ap-northeast-1": (35.6895, 139.6917),
    "ap-northeast-2": (37.5665, 126.978),
    "ap-northeast-3": (34.6937, 135.5023),
    "ap-southeast-1": (1.3521, 103.8198),
    "ap-southeast-2": (-33.8688, 151.2093),
    "ap-southeast-3": (-6.2088, 106.8456),
    "ap-southeast-4": (-37.8136, 144.9631),
    "ap-southeast-5": (3.139, 101.6869),
    "ap-southeast-7": (13.7563, 100.5018),
    "ap-south-1": (19.076, 72.8777),
    "ap-south-2": (17.385, 78.4867),
    "ca-central-1": (45.5017, -73.5673),
    "ca-west-1": (51.0447, -114.0719),
    "cn-north-1": (39.9042, 116.4074),
    "cn-northwest-1": (38.4872, 106.2309),
    "eu-central-1": (50.1109, 8.6821),
    "eu-central-2": (47.3769, 8.5417),
    "eu-north-1": (59.3293, 18.0686),
    "eu-south-1": (45.4642, 9.19),
    "eu-south-2": (40.4168, -3.7038),
    "eu-west-1": (53.3498, -6.2603),
    "eu-west-2": (51.5074, -0.1278),
    "eu-west-3": (48.8566, 2.3522),
    "il-central-1": (32.0853, 34.7818),
    "me-central-1": (25.2048, 55.2708),
    "me-south-1": (26.0667, 50.5577),
    "mx-central-1": (19.4326, -99.1332),
    "sa-east-1": (-23.5505, -46.6333),
    "us-east-1": (39.0438, -77.4874),
    "us-east-2": (39.9612, -82.9988),
    "us-gov-east-1": (38.9696, -77.3861),
    "us-gov-west-1": (34.0522, -118.2437),
    "us-west-1": (37.7749, -122.4194),
    "us-west-2": (45.5122, -122.6587),
}

# Regions where CloudFront cannot reach Lambda function URL origins.
UNSUPPORTED_SITE_REGIONS = frozenset(
    (
        "ap-south-2",
        "ap-southeast-4",
        "ap-southeast-5",
        "ca-west-1",
        "eu-south-2",
        "eu-central-2",
        "il-central-1",
        "me-central-1",
    )
)


def normalize_regions(regions: Iterable[str] | None, *, default: str | None) -> tuple[str, ...]:
    """Validate the ordered server regions for a site; the first is the primary."""
    if regions is None:
        candidates: Sequence[str] = [default] if default else []
    else:
        candidates = list(regions)
    if not candidates:
        raise ConfigurationError(
            "No deployment regions specified. Please specify at least one region in the 'regions' property."
        )

    normalized: list[str] = []
    for region in candidates:
        if region in UNSUPPORTED_SITE_REGIONS:
            raise ConfigurationError(
                f"Region {region} is not supported by this component. Please select a different AWS region."
            )
        if region not in REGION_COORDINATES:
            raise ConfigurationError(
                f'Invalid AWS region: "{region}". Please specify a valid AWS region.'
            )
        if region in normalized:
            raise ConfigurationError(f'Region "{region}" is listed more than once.')
        normalized.append(region)
    return tuple(normalized)


def region_coordinates(region: str) -> tuple[float, float]:
    try:
        return REGION_COORDINATES[region]
    except KeyError as exc:
        raise ConfigurationError(f'Invalid AWS region: "{region}".') from exc
