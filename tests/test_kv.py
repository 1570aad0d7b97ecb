"""Unit tests for site KV records built from asset trees."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from edgeworks.errors import ConfigurationError
from edgeworks.kv import LAMBDA_OAC_CONFIG, ServerOrigin, index_assets, site_metadata
from edgeworks.plan import AssetCopy, ImageOptimizerSpec, Plan, ServerSpec


def _write(path: Path, content: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _next_plan(**overrides) -> Plan:
    values = {
        "assets": (
            AssetCopy(
                source=".open-next/assets",
                destination="_assets",
                cached=True,
                versioned_subdir="_next",
                deep_route="_next",
            ),
        ),
    }
    values.update(overrides)
    return Plan(**values)


class IndexAssetsTests(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.root = Path(temp_dir.name)
        assets = self.root / ".open-next" / "assets"
        _write(assets / "favicon.ico")
        _write(assets / "images" / "logo.png")
        _write(assets / ".well-known" / "apple-app-site-association")
        _write(assets / "_next" / "build-manifest.json")
        _write(assets / "_next" / "static" / "chunks" / "main.js")

    def test_files_and_directory_routes(self) -> None:
        index = index_assets(_next_plan(), self.root)
        self.assertEqual(
            index.files,
            {
                "/favicon.ico": "s3",
                "/.well-known/apple-app-site-association": "s3",
                "/_next/build-manifest.json": "s3",
            },
        )
        self.assertEqual(index.routes, ["/_next/static", "/images"])

    def test_without_deep_route_the_directory_is_one_route(self) -> None:
        plan = Plan(assets=(AssetCopy(source=".open-next/assets", destination="", cached=True),))
        index = index_assets(plan, self.root)
        self.assertEqual(index.routes, ["/_next", "/images"])
        self.assertNotIn("/_next/build-manifest.json", index.files)


class SiteMetadataTests(unittest.TestCase):
    def test_full_metadata_with_origin_access_control(self) -> None:
        plan = _next_plan(
            base="/docs",
            image_optimizer=ImageOptimizerSpec(
                function=ServerSpec(bundle=Path("image"), handler="index.handler"),
                prefix="/_next/image",
            ),
        )
        metadata = site_metadata(
            plan,
            bucket_domain="bucket.s3.us-east-1.amazonaws.com",
            routes=["/_next/static"],
            servers=[ServerOrigin(region="us-east-1", host="abc.lambda-url.us-east-1.on.aws")],
            image_host="img.lambda-url.us-east-1.on.aws",
            read_timeout=20,
            protection="oac",
        )
        self.assertEqual(
            metadata,
            {
                "s3": {
                    "domain": "bucket.s3.us-east-1.amazonaws.com",
                    "dir": "/_assets",
                    "routes": ["/_next/static"],
                },
                "base": "/docs",
                "image": {
                    "host": "img.lambda-url.us-east-1.on.aws",
                    "route": "/_next/image",
                    "originAccessControlConfig": LAMBDA_OAC_CONFIG,
                },
                "servers": [["abc.lambda-url.us-east-1.on.aws", 39.0438, -77.4874]],
                "origin": {
                    "timeouts": {"readTimeout": 20},
                    "originAccessControlConfig": LAMBDA_OAC_CONFIG,
                },
            },
        )

    def test_static_site_without_servers(self) -> None:
        plan = Plan(
            assets=(AssetCopy(source="dist", destination="", cached=True),),
            custom_404="/404.html",
        )
        metadata = site_metadata(
            plan,
            bucket_domain="bucket",
            routes=[],
            servers=[],
            image_host=None,
            read_timeout=20,
        )
        self.assertEqual(metadata["s3"]["dir"], "")
        self.assertEqual(metadata["custom404"], "/404.html")
        self.assertNotIn("servers", metadata)
        self.assertNotIn("image", metadata)
        self.assertEqual(metadata["origin"], {"timeouts": {"readTimeout": 20}})

    def test_lone_server_with_unresolved_region(self) -> None:
        metadata = site_metadata(
            _next_plan(),
            bucket_domain="bucket",
            routes=[],
            servers=[ServerOrigin(region="${Token[AWS.Region.9]}", host="server")],
            image_host=None,
            read_timeout=20,
        )
        self.assertEqual(metadata["servers"], [["server", 0.0, 0.0]])

    def test_multiple_servers_need_known_regions(self) -> None:
        with self.assertRaises(ConfigurationError):
            site_metadata(
                _next_plan(),
                bucket_domain="bucket",
                routes=[],
                servers=[
                    ServerOrigin(region="us-east-1", host="a"),
                    ServerOrigin(region="${Token[AWS.Region.9]}", host="b"),
                ],
                image_host=None,
                read_timeout=20,
            )


if __name__ == "__main__":
    unittest.main()
