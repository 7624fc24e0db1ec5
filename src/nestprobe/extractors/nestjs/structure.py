from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from nestprobe.domain.models import GlobalPrefix
from nestprobe.extractors.nestjs.paths import ensure_leading_slash
from nestprobe.extractors.nestjs.syntax import (
    SourceDoc,
    call_arguments,
    node_text,
    object_property,
    parse_file,
    string_value,
    walk,
)
from nestprobe.repo.scanner import find_files_named

logger = logging.getLogger(__name__)

BOOTSTRAP_FILENAME = "main.ts"
GLOBAL_PREFIX_METHOD = "setGlobalPrefix"


def find_bootstrap_file(repo_root: Path) -> Optional[Path]:
    """`src/main.ts` when present, else the first main.ts in walk order."""
    preferred = repo_root / "src" / BOOTSTRAP_FILENAME
    if preferred.is_file():
        return preferred.resolve()
    found = find_files_named(repo_root, BOOTSTRAP_FILENAME, max_files=2)
    return Path(found[0]) if found else None


def detect_global_prefix(repo_root: Path) -> Optional[GlobalPrefix]:
    """
    Look for `<app>.setGlobalPrefix('v1', { exclude: [...] })` in the
    bootstrap file. None means "no global prefix", which is not the same
    as a registered empty prefix.
    """
    bootstrap = find_bootstrap_file(repo_root.resolve())
    if bootstrap is None:
        logger.debug("no %s under %s", BOOTSTRAP_FILENAME, repo_root)
        return None
    doc = parse_file(bootstrap)
    if doc is None:
        return None
    return global_prefix_from_doc(doc)


def global_prefix_from_doc(doc: SourceDoc) -> Optional[GlobalPrefix]:
    prefix: Optional[str] = None
    excludes: list[str] = []

    for node in walk(doc.root):
        if node.type != "call_expression":
            continue
        fn = node.child_by_field_name("function")
        if fn is None or fn.type != "member_expression":
            continue
        if node_text(fn.child_by_field_name("property")) != GLOBAL_PREFIX_METHOD:
            continue

        args = call_arguments(node)
        if args:
            literal = string_value(args[0])
            if literal is not None:
                prefix = ensure_leading_slash(literal)
        if len(args) > 1 and args[1].type == "object":
            excludes.extend(_exclude_entries(args[1]))

    if prefix is None:
        return None
    return GlobalPrefix(prefix=prefix, excludes=excludes, file_path=str(doc.path or ""))


def _exclude_entries(options) -> list[str]:
    # exclude: ['health', { path: 'metrics', method: RequestMethod.GET }]
    out: list[str] = []
    array = object_property(options, "exclude")
    if array is None or array.type != "array":
        return out
    for el in array.named_children:
        literal = string_value(el)
        if literal is not None:
            out.append(literal)
        elif el.type == "object":
            path = string_value(object_property(el, "path"))
            if path is not None:
                out.append(path)
    return out


def is_excluded(path: str, global_prefix: GlobalPrefix) -> bool:
    """Exact match, ignoring leading slashes on either side. No patterns."""
    wanted = path.lstrip("/")
    return any(entry.lstrip("/") == wanted for entry in global_prefix.excludes)
