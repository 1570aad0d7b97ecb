"""Lambda handlers deployed by the components, and their code bundles."""

from __future__ import annotations

import shutil
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parent.parent

# Handler code only needs the modules that do not import aws_cdk.
_BUNDLED_MODULES = ("errors.py", "units.py", "routing.py")


def stage_handler_bundle(staging_dir: Path) -> Path:
    """Copy the handler modules into ``staging_dir/edgeworks`` and return ``staging_dir``."""
    target = staging_dir / "edgeworks"
    if target.exists():
        shutil.rmtree(target)
    (target / "handlers").mkdir(parents=True)
    for name in _BUNDLED_MODULES:
        shutil.copy2(PACKAGE_ROOT / name, target / name)
    shutil.copytree(
        PACKAGE_ROOT / "handlers",
        target / "handlers",
        dirs_exist_ok=True,
        ignore=shutil.ignore_patterns("__pycache__", "*.pyc"),
    )
    return staging_dir
