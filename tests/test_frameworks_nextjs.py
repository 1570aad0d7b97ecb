"""Unit tests for the OpenNext build output loader."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from edgeworks.assets import plan_uploads
from edgeworks.errors import BuildOutputError
from edgeworks.frameworks import nextjs


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


OUTPUT_MANIFEST = {
    "edgeFunctions": {},
    "origins": {
        "default": {
            "handler": "index.handler",
            "bundle": ".open-next/server-functions/default",
            "streaming": True,
        },
        "imageOptimizer": {
            "handler": "index.handler",
            "bundle": ".open-next/image-optimization-function",
        },
    },
    "additionalProps": {
        "revalidationFunction": {
            "handler": "index.handler",
            "bundle": ".open-next/revalidation-function",
        },
        "initializationFunction": {
            "handler": "index.handler",
            "bundle": ".open-next/initialization-function",
        },
    },
}

RESOURCES = nextjs.CacheResources(
    bucket_name="site-bucket",
    bucket_arn="arn:aws:s3:::site-bucket",
    bucket_region="us-east-1",
    queue_url="https://sqs.us-east-1.amazonaws.com/123456789012/site.fifo",
    queue_arn="arn:aws:sqs:us-east-1:123456789012:site.fifo",
    queue_region="us-east-1",
    table_name="site-revalidation",
    table_arn="arn:aws:dynamodb:us-east-1:123456789012:table/site-revalidation",
)


class LoadBuildOutputTests(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.root = Path(temp_dir.name)
        self.write_build()

    def write_build(self, manifest: dict | None = None, routes_manifest: dict | None = None) -> None:
        _write(self.root / ".open-next" / "open-next.output.json", json.dumps(manifest or OUTPUT_MANIFEST))
        _write(self.root / ".next" / "BUILD_ID", "abc123\n")
        _write(
            self.root / ".next" / "routes-manifest.json",
            json.dumps({"basePath": ""} if routes_manifest is None else routes_manifest),
        )
        _write(self.root / ".next" / "prerender-manifest.json", json.dumps({"routes": {"/": {}, "/about": {}}}))

    def test_reads_functions_and_cache_features(self) -> None:
        build = nextjs.load_build_output(self.root, name="Web")
        self.assertEqual(build.build_id, "abc123")
        self.assertIsNone(build.base)
        self.assertTrue(build.server.streaming)
        self.assertEqual(build.prerendered_route_count, 2)
        self.assertTrue(build.has_revalidation_queue)
        self.assertTrue(build.has_revalidation_table)
        self.assertTrue(build.has_revalidation_seeder)
        self.assertEqual(build.initialization_function.bundle, nextjs.SEEDER_BUNDLE)

    def test_disabled_tag_cache_skips_table_and_seeder(self) -> None:
        manifest = json.loads(json.dumps(OUTPUT_MANIFEST))
        manifest["additionalProps"]["disableTagCache"] = True
        self.write_build(manifest)
        build = nextjs.load_build_output(self.root, name="Web")
        self.assertFalse(build.has_revalidation_table)
        self.assertFalse(build.has_revalidation_seeder)
        self.assertTrue(build.has_revalidation_queue)

    def test_edge_functions_are_rejected(self) -> None:
        manifest = dict(OUTPUT_MANIFEST, edgeFunctions={"middleware": {"bundle": "x"}})
        self.write_build(manifest)
        with self.assertRaisesRegex(BuildOutputError, "Lambda@Edge"):
            nextjs.load_build_output(self.root, name="Web")

    def test_missing_build_id(self) -> None:
        (self.root / ".next" / "BUILD_ID").unlink()
        with self.assertRaisesRegex(BuildOutputError, "Build ID"):
            nextjs.load_build_output(self.root, name="Web")

    def test_routes_manifest_needs_base_path(self) -> None:
        self.write_build(routes_manifest={"pages404": True})
        with self.assertRaisesRegex(BuildOutputError, "Base path"):
            nextjs.load_build_output(self.root, name="Web")

    def test_missing_server_origin(self) -> None:
        manifest = dict(OUTPUT_MANIFEST, origins={"imageOptimizer": OUTPUT_MANIFEST["origins"]["imageOptimizer"]})
        self.write_build(manifest)
        with self.assertRaisesRegex(BuildOutputError, "origins.default"):
            nextjs.load_build_output(self.root, name="Web")

    def test_build_plan_wires_cache_resources(self) -> None:
        build = nextjs.load_build_output(self.root, name="Web")
        plan = nextjs.build_plan(
            build,
            self.root,
            name="Web",
            resources=RESOURCES,
            image_optimization=nextjs.ImageOptimization(memory="2048 MB", static_etag=True),
        )

        self.assertEqual(plan.build_id, "abc123")
        self.assertEqual(plan.server.bundle, self.root / ".open-next" / "server-functions" / "default")
        environment = plan.server.environment
        self.assertEqual(environment["CACHE_BUCKET_NAME"], "site-bucket")
        self.assertEqual(environment["REVALIDATION_QUEUE_URL"], RESOURCES.queue_url)
        self.assertEqual(environment["CACHE_DYNAMO_TABLE"], "site-revalidation")
        permission_resources = [resource for permission in plan.server.permissions for resource in permission.resources]
        self.assertIn(RESOURCES.table_arn, permission_resources)
        self.assertIn(f"{RESOURCES.table_arn}/*", permission_resources)
        self.assertIn(RESOURCES.queue_arn, permission_resources)

        image = plan.image_optimizer
        self.assertEqual(image.prefix, "/_next/image")
        self.assertEqual(image.function.memory, "2048 MB")
        self.assertEqual(image.function.environment["OPENNEXT_STATIC_ETAG"], "true")
        self.assertEqual(plan.assets[0].destination, "_assets")
        self.assertEqual(plan.assets[0].deep_route, "_next")
        self.assertEqual(plan.isr_cache.destination, "_cache")

    def test_build_plan_without_queue_or_table(self) -> None:
        build = nextjs.load_build_output(self.root, name="Web")
        resources = nextjs.CacheResources(
            bucket_name="site-bucket",
            bucket_arn="arn:aws:s3:::site-bucket",
            bucket_region="us-east-1",
        )
        plan = nextjs.build_plan(build, self.root, name="Web", resources=resources)
        self.assertNotIn("REVALIDATION_QUEUE_URL", plan.server.environment)
        self.assertNotIn("CACHE_DYNAMO_TABLE", plan.server.environment)
        self.assertNotIn("OPENNEXT_STATIC_ETAG", plan.image_optimizer.function.environment)

    def test_disabled_incremental_cache_uploads_without_cache_directory(self) -> None:
        manifest = json.loads(json.dumps(OUTPUT_MANIFEST))
        manifest["additionalProps"]["disableIncrementalCache"] = True
        self.write_build(manifest)
        _write(self.root / ".open-next" / "assets" / "_next" / "static" / "main.js", "x")
        _write(self.root / ".open-next" / "assets" / "favicon.ico", "x")

        build = nextjs.load_build_output(self.root, name="Web")
        self.assertTrue(build.disable_incremental_cache)
        plan = nextjs.build_plan(build, self.root, name="Web", resources=RESOURCES)
        groups = plan_uploads(plan, self.root)

        self.assertEqual({group.key_prefix for group in groups}, {"_assets"})
        uploaded = sorted(name for group in groups for name in group.files)
        self.assertEqual(uploaded, ["_next/static/main.js", "favicon.ico"])


class OpenNextVersionTests(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.root = Path(temp_dir.name)

    def test_detects_version_from_next_dependency(self) -> None:
        _write(self.root / "package.json", json.dumps({"dependencies": {"next": "14.2.3"}}))
        self.assertEqual(nextjs.detect_open_next_version(self.root), nextjs.DEFAULT_OPEN_NEXT_VERSION_NEXT14)
        _write(self.root / "package.json", json.dumps({"devDependencies": {"next": "^15.1.0"}}))
        self.assertEqual(nextjs.detect_open_next_version(self.root), nextjs.DEFAULT_OPEN_NEXT_VERSION)

    def test_missing_package_json_uses_default(self) -> None:
        with self.assertLogs("edgeworks.frameworks.nextjs", level="WARNING"):
            self.assertEqual(nextjs.detect_open_next_version(self.root), nextjs.DEFAULT_OPEN_NEXT_VERSION)

    def test_build_command_package_name(self) -> None:
        self.assertEqual(nextjs.default_build_command(self.root, "3.1.3"), "npx --yes open-next@3.1.3 build")
        self.assertEqual(
            nextjs.default_build_command(self.root, "3.9.14"),
            "npx --yes @opennextjs/aws@3.9.14 build",
        )

    def test_seeder_memory_scales_with_routes(self) -> None:
        self.assertEqual(nextjs.seeder_memory(0), 128)
        self.assertEqual(nextjs.seeder_memory(4000), 128)
        self.assertEqual(nextjs.seeder_memory(4001), 256)
        self.assertEqual(nextjs.seeder_memory(10**9), 10240)


if __name__ == "__main__":
    unittest.main()
