from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterator, Optional

from nestprobe.repo.ignore import should_ignore_dir

TS_SUFFIXES = (".ts", ".tsx")


def scan_ts_files(repo_path: Path, max_files: int | None = None) -> list[str]:
    """
    Absolute paths of TypeScript files under repo_path, in sorted walk order.
    Dependency-manager and build directories are pruned.
    """
    out: list[str] = []
    for path in iter_files(repo_path, TS_SUFFIXES):
        out.append(path)
        if max_files is not None and len(out) >= max_files:
            break
    return out


def find_files_named(repo_path: Path, filename: str, max_files: int | None = None) -> list[str]:
    out: list[str] = []
    for path in iter_files(repo_path, (filename,)):
        if Path(path).name != filename:
            continue
        out.append(path)
        if max_files is not None and len(out) >= max_files:
            break
    return out


def iter_files(repo_path: Path, suffixes: tuple[str, ...]) -> Iterator[str]:
    for root, dirs, files in os.walk(repo_path):
        root_p = Path(root)

        # prune ignored dirs; sorted so scans are deterministic
        dirs[:] = sorted(d for d in dirs if not should_ignore_dir(root_p / d))

        for f in sorted(files):
            if f.endswith(suffixes):
                yield str((root_p / f).resolve())


def read_text(path: str | Path, max_bytes: int = 1_000_000) -> Optional[str]:
    try:
        with open(path, "rb") as f:
            data = f.read(max_bytes)
    except OSError:
        return None
    return data.decode("utf-8", errors="ignore")


def _file_contains_any(path: str, needles: list[str], max_bytes: int = 200_000) -> bool:
    text = read_text(path, max_bytes=max_bytes)
    if text is None:
        return False
    return any(n in text for n in needles)


def declares_type(text: str, type_name: str) -> bool:
    """
    Cheap pre-filter before parsing: does the text contain
    `class|interface|type|enum <Name>` (optionally exported)?
    """
    pattern = re.compile(
        rf"\b(?:export\s+)?(?:declare\s+)?(?:abstract\s+)?(?:class|interface|type|enum)\s+{re.escape(type_name)}\b"
    )
    return pattern.search(text) is not None


def select_candidate_controller_files(ts_files: list[str]) -> list[str]:
    """Files that look like they declare NestJS controllers."""
    needles = ["@Controller(", "@Controller ("]
    return [p for p in ts_files if _file_contains_any(p, needles)]
