"""Unit tests for plan normalization against router path prefixes."""

from __future__ import annotations

import unittest

from edgeworks.errors import ConfigurationError
from edgeworks.plan import AssetCopy, IsrCacheCopy, Plan, normalize_base, validate_plan


def _plan(**overrides) -> Plan:
    values = {"assets": (AssetCopy(source="dist/client", destination="", cached=True),)}
    values.update(overrides)
    return Plan(**values)


class NormalizeBaseTests(unittest.TestCase):
    def test_normalizes_slashes(self) -> None:
        self.assertEqual(normalize_base("docs/"), "/docs")
        self.assertEqual(normalize_base(" /a/b/ "), "/a/b")
        self.assertIsNone(normalize_base("/"))
        self.assertIsNone(normalize_base(""))
        self.assertIsNone(normalize_base(None))


class ValidatePlanTests(unittest.TestCase):
    def test_requires_assets(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "static assets"):
            validate_plan(Plan(assets=()))

    def test_router_prefix_requires_matching_base(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "No base path"):
            validate_plan(_plan(), path_prefix="/docs")
        with self.assertRaisesRegex(ConfigurationError, "must start with"):
            validate_plan(_plan(base="/blog"), path_prefix="/docs")

        plan = validate_plan(_plan(base="docs/"), path_prefix="/docs")
        self.assertEqual(plan.base, "/docs")

    def test_root_prefix_needs_no_base(self) -> None:
        self.assertIsNone(validate_plan(_plan(), path_prefix="/").base)

    def test_strips_destination_slashes(self) -> None:
        plan = validate_plan(
            Plan(
                assets=(AssetCopy(source=".open-next/assets", destination="/_assets/", cached=True),),
                isr_cache=IsrCacheCopy(source=".open-next/cache", destination="_cache/"),
            )
        )
        self.assertEqual(plan.assets[0].destination, "_assets")
        self.assertEqual(plan.isr_cache.destination, "_cache")
        self.assertEqual(plan.assets[0].source, ".open-next/assets")


if __name__ == "__main__":
    unittest.main()
