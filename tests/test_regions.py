"""Unit tests for deployment region validation."""

from __future__ import annotations

import unittest

from edgeworks.errors import ConfigurationError
from edgeworks.regions import normalize_regions, region_coordinates


class NormalizeRegionsTests(unittest.TestCase):
    def test_defaults_to_stack_region(self) -> None:
        self.assertEqual(normalize_regions(None, default="us-east-1"), ("us-east-1",))

    def test_keeps_order_with_primary_first(self) -> None:
        self.assertEqual(
            normalize_regions(["eu-west-1", "us-east-1", "ap-southeast-2"], default="us-west-2"),
            ("eu-west-1", "us-east-1", "ap-southeast-2"),
        )

    def test_requires_at_least_one_region(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "No deployment regions"):
            normalize_regions([], default="us-east-1")
        with self.assertRaisesRegex(ConfigurationError, "No deployment regions"):
            normalize_regions(None, default=None)

    def test_rejects_unsupported_unknown_and_duplicate_regions(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "not supported"):
            normalize_regions(["ca-west-1"], default=None)
        with self.assertRaisesRegex(ConfigurationError, "Invalid AWS region"):
            normalize_regions(["mars-north-1"], default=None)
        with self.assertRaisesRegex(ConfigurationError, "more than once"):
            normalize_regions(["us-east-1", "us-east-1"], default=None)

    def test_region_coordinates(self) -> None:
        lat, lon = region_coordinates("eu-west-1")
        self.assertAlmostEqual(lat, 53.3498)
        self.assertAlmostEqual(lon, -6.2603)
        with self.assertRaises(ConfigurationError):
            region_coordinates("mars-north-1")


if __name__ == "__main__":
    unittest.main()
