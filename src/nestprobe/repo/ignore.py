from __future__ import annotations

from pathlib import Path

DEFAULT_IGNORES = {
    ".git",
    "node_modules",
    "bower_components",
    "jspm_packages",
    ".yarn",
    ".pnpm-store",
    "dist",
    "build",
    "coverage",
    ".next",
    ".turbo",
    ".nestprobe",
}


def should_ignore_dir(dir_path: Path) -> bool:
    return dir_path.name in DEFAULT_IGNORES
