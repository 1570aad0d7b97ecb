#!/usr/bin/env python3
"""Record deployed component versions and link URLs from CDK outputs."""

from __future__ import annotations

import argparse
import json
import re
from pathlib import Path

VERSION_SUFFIX = "ComponentVersion"
URL_OUTPUT_RE = re.compile(r"^(?P<name>[A-Za-z][A-Za-z0-9]*?)Url(?:[0-9A-F]{8})?$")
ENV_PREFIX = "EDGEWORKS_RESOURCE_"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--outputs-file", required=True, help="Path to the cdk deploy --outputs-file JSON")
    parser.add_argument("--state-file", required=True, help="Path to the component state JSON to update")
    parser.add_argument("--stage", required=True, help="Stage the outputs were deployed to")
    parser.add_argument("--env-file", help="Optional .env file to write link URLs to")
    return parser.parse_args()


def find_component_versions(outputs: dict[str, object]) -> dict[str, int]:
    versions: dict[str, int] = {}
    for stack_outputs in outputs.values():
        if not isinstance(stack_outputs, dict):
            continue
        for key, value in stack_outputs.items():
            if not key.endswith(VERSION_SUFFIX) or key == VERSION_SUFFIX:
                continue
            try:
                versions[key[: -len(VERSION_SUFFIX)]] = int(str(value).strip())
            except ValueError:
                raise SystemExit(f"Output {key} has a non-integer version: {value!r}") from None
    return versions


def find_link_urls(outputs: dict[str, object]) -> dict[str, str]:
    urls: dict[str, str] = {}
    for stack_outputs in outputs.values():
        if not isinstance(stack_outputs, dict):
            continue
        for key, value in stack_outputs.items():
            match = URL_OUTPUT_RE.match(key)
            if match and isinstance(value, str) and value.strip():
                urls[match.group("name")] = value.strip().rstrip("/")
    return urls


def update_state(state_path: Path, stage: str, versions: dict[str, int]) -> dict[str, object]:
    state: dict[str, object] = {}
    if state_path.is_file():
        loaded = json.loads(state_path.read_text(encoding="utf-8"))
        if isinstance(loaded, dict):
            state = loaded
    stage_state = state.get(stage)
    if not isinstance(stage_state, dict):
        stage_state = {}
    recorded = stage_state.get("versions")
    if not isinstance(recorded, dict):
        recorded = {}
    recorded.update(versions)
    stage_state["versions"] = dict(sorted(recorded.items()))
    state[stage] = stage_state
    return state


def render_env(urls: dict[str, str]) -> str:
    lines = [f"{ENV_PREFIX}{name}={json.dumps({'url': url})}" for name, url in sorted(urls.items())]
    return "\n".join(lines) + "\n" if lines else ""


def main() -> int:
    args = parse_args()
    outputs_path = Path(args.outputs_file).resolve()
    state_path = Path(args.state_file).resolve()

    if not outputs_path.is_file():
        raise SystemExit(f"Could not find {outputs_path}. Run cdk deploy with --outputs-file first.")
    outputs = json.loads(outputs_path.read_text(encoding="utf-8"))
    if not isinstance(outputs, dict):
        raise SystemExit(f"{outputs_path} does not contain stack outputs.")

    versions = find_component_versions(outputs)
    state = update_state(state_path, args.stage, versions)
    state_path.parent.mkdir(parents=True, exist_ok=True)
    state_path.write_text(json.dumps(state, indent=2, ensure_ascii=True) + "\n", encoding="utf-8")
    for name, version in sorted(versions.items()):
        print(f"Recorded {name} v{version}")
    print(f"Wrote: {state_path}")

    if args.env_file:
        env_path = Path(args.env_file).resolve()
        env_path.write_text(render_env(find_link_urls(outputs)), encoding="utf-8")
        print(f"Wrote: {env_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
