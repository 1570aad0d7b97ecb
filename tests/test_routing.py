"""Unit tests for router patterns and KV route records."""

from __future__ import annotations

import unittest

from edgeworks.errors import ConfigurationError
from edgeworks.routing import (
    RoutePattern,
    UrlRouteOptions,
    host_regex,
    merge_route_entries,
    normalize_path_prefix,
    parse_pattern,
    parse_routes_value,
    remove_route_entry,
    route_entry,
    router_url,
    url_route_metadata,
)


class PatternTests(unittest.TestCase):
    def test_host_regex_escapes_dots_and_expands_wildcards(self) -> None:
        self.assertEqual(host_regex("*.example.com"), ".*\\.example\\.com")
        self.assertEqual(host_regex("api.example.com"), "api\\.example\\.com")
        self.assertEqual(host_regex(None), "")

    def test_normalize_path_prefix(self) -> None:
        self.assertEqual(normalize_path_prefix("docs/"), "/docs")
        self.assertEqual(normalize_path_prefix("/"), "/")
        self.assertIsNone(normalize_path_prefix(None))

    def test_parse_pattern(self) -> None:
        self.assertEqual(parse_pattern("api.example.com/v1"), RoutePattern(host="api\\.example\\.com", path="/v1"))
        self.assertEqual(parse_pattern("/docs"), RoutePattern(host="", path="/docs"))
        self.assertEqual(parse_pattern("example.com"), RoutePattern(host="example\\.com", path="/"))


class RouteEntryTests(unittest.TestCase):
    def test_route_entry_format(self) -> None:
        self.assertEqual(route_entry("site", "ab12", RoutePattern(host="", path="/docs")), "site,ab12,,/docs")

    def test_route_entry_rejects_bad_input(self) -> None:
        with self.assertRaises(ConfigurationError):
            route_entry("lambda", "ab12", RoutePattern(host="", path="/"))  # type: ignore[arg-type]
        with self.assertRaises(ConfigurationError):
            route_entry("url", "ab12", RoutePattern(host="", path="/a,b"))

    def test_merge_replaces_entry_for_same_namespace(self) -> None:
        merged = merge_route_entries(["url,b,,/b", "site,a,,/old"], "site,a,,/new")
        self.assertEqual(merged, ["site,a,,/new", "url,b,,/b"])

    def test_remove_route_entry(self) -> None:
        self.assertEqual(remove_route_entry(["url,b,,/b", "site,a,,/a"], "a"), ["url,b,,/b"])
        self.assertEqual(remove_route_entry([], "a"), [])

    def test_parse_routes_value(self) -> None:
        self.assertEqual(parse_routes_value(None), [])
        self.assertEqual(parse_routes_value('["url,a,,/"]'), ["url,a,,/"])
        with self.assertRaises(ValueError):
            parse_routes_value("{")
        with self.assertRaises(ValueError):
            parse_routes_value('{"a": 1}')


class UrlRouteTests(unittest.TestCase):
    def test_plain_https_route(self) -> None:
        self.assertEqual(url_route_metadata("https://api.example.com"), {"host": "api.example.com", "origin": {}})

    def test_route_options(self) -> None:
        metadata = url_route_metadata(
            "http://example.com:8080",
            UrlRouteOptions(
                connection_attempts=2,
                read_timeout="30 seconds",
                rewrite_regex="^/api/(.*)$",
                rewrite_to="/$1",
            ),
        )
        self.assertEqual(
            metadata,
            {
                "host": "example.com:8080",
                "origin": {
                    "protocol": "http",
                    "connectionAttempts": 2,
                    "timeouts": {"readTimeout": 30},
                },
                "rewrite": {"regex": "^/api/(.*)$", "to": "/$1"},
            },
        )

    def test_rejects_invalid_targets_and_options(self) -> None:
        with self.assertRaises(ConfigurationError):
            url_route_metadata("example.com")
        with self.assertRaises(ConfigurationError):
            UrlRouteOptions(rewrite_regex="^/api")
        with self.assertRaises(ConfigurationError):
            UrlRouteOptions(connection_attempts=4)

    def test_router_url(self) -> None:
        self.assertEqual(
            router_url("https://d111.cloudfront.net/", domain=None, path_prefix="/docs"),
            "https://d111.cloudfront.net/docs",
        )
        self.assertEqual(router_url("https://d111.cloudfront.net", domain="example.com", path_prefix="/"), "https://example.com")


if __name__ == "__main__":
    unittest.main()
