"""Route patterns and the route records kept in the router's KeyValueStore."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, Literal
from urllib.parse import urlparse

from .errors import ConfigurationError
from .units import to_seconds

RouteType = Literal["url", "bucket", "site"]

_REGEX_SPECIAL_RE = re.compile(r"([.+?^${}()|\[\]\\])")
_ROUTE_TYPES = frozenset(("url", "bucket", "site"))


def host_regex(domain: str | None) -> str:
    """Turn ``*.example.com`` into the regex the edge function matches hosts with."""
    if not domain:
        return ""
    return _REGEX_SPECIAL_RE.sub(r"\\\1", domain).replace("*", ".*")


def normalize_path_prefix(path: str | None) -> str | None:
    """``"docs/"`` -> ``"/docs"``; ``None`` stays ``None`` and ``"/"`` stays ``"/"``."""
    if path is None:
        return None
    trimmed = path.strip().strip("/")
    return f"/{trimmed}" if trimmed else "/"


@dataclass(frozen=True)
class RoutePattern:
    host: str
    path: str


def parse_pattern(pattern: str) -> RoutePattern:
    """Split ``"api.example.com/v1"`` or ``"/docs"`` into host regex and path."""
    host, _, path = pattern.partition("/")
    return RoutePattern(host=host_regex(host), path="/" + path)


def route_entry(route_type: RouteType, namespace: str, pattern: RoutePattern) -> str:
    if route_type not in _ROUTE_TYPES:
        raise ConfigurationError(f"Unknown route type {route_type!r}")
    if "," in pattern.host or "," in pattern.path:
        raise ConfigurationError("Route host and path must not contain ','")
    return ",".join((route_type, namespace, pattern.host, pattern.path))


def merge_route_entries(existing: Iterable[str], entry: str) -> list[str]:
    """Add ``entry`` replacing any older entry for the same namespace.

    Entries are kept sorted so repeated deploys write identical values.
    """
    namespace = entry.split(",")[1]
    kept = [item for item in existing if item.split(",")[1:2] != [namespace]]
    kept.append(entry)
    return sorted(kept)


def remove_route_entry(existing: Iterable[str], namespace: str) -> list[str]:
    return sorted(item for item in existing if item.split(",")[1:2] != [namespace])


@dataclass(frozen=True)
class UrlRouteOptions:
    rewrite_regex: str | None = None
    rewrite_to: str | None = None
    connection_attempts: int | None = None
    connection_timeout: str | None = None
    read_timeout: str | None = None
    keep_alive_timeout: str | None = None

    def __post_init__(self) -> None:
        if (self.rewrite_regex is None) != (self.rewrite_to is None):
            raise ConfigurationError("Both rewrite_regex and rewrite_to must be set to rewrite a route.")
        if self.connection_attempts is not None and not 1 <= self.connection_attempts <= 3:
            raise ConfigurationError("connection_attempts must be between 1 and 3.")


def url_route_metadata(url: str, options: UrlRouteOptions | None = None) -> dict[str, Any]:
    """Metadata stored under ``<routeNs>:metadata`` for a URL route."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Route target {url!r} must be an absolute http(s) URL.")
    options = options or UrlRouteOptions()

    origin: dict[str, Any] = {}
    if parsed.scheme != "https":
        origin["protocol"] = parsed.scheme
    if options.connection_attempts is not None:
        origin["connectionAttempts"] = options.connection_attempts
    timeouts = {
        key: to_seconds(value)
        for key, value in (
            ("connectionTimeout", options.connection_timeout),
            ("readTimeout", options.read_timeout),
            ("keepAliveTimeout", options.keep_alive_timeout),
        )
        if value
    }
    if timeouts:
        origin["timeouts"] = timeouts

    metadata: dict[str, Any] = {"host": parsed.netloc, "origin": origin}
    if options.rewrite_regex is not None:
        metadata["rewrite"] = {"regex": options.rewrite_regex, "to": options.rewrite_to}
    return metadata


def router_url(router_url_value: str, *, domain: str | None, path_prefix: str | None) -> str:
    base = f"https://{domain}" if domain else router_url_value.rstrip("/")
    if path_prefix and path_prefix != "/":
        return base + path_prefix
    return base


def parse_routes_value(value: str | None) -> list[str]:
    """Parse the stored ``routes`` JSON array, tolerating a missing key."""
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError("stored routes value is not valid JSON") from exc
    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        raise ValueError("stored routes value must be a JSON array of strings")
    return parsed
