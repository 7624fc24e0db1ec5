from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tree_sitter import Node

from nestprobe.extractors.nestjs.syntax import (
    SourceDoc,
    node_text,
    parse_file,
    parse_source,
    string_value,
    walk,
)
from nestprobe.repo.scanner import declares_type, read_text, scan_ts_files

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKSPACE_FILES = 50

MODULE_EXTENSIONS = (".ts", ".tsx", ".d.ts", ".js", ".jsx")

_DECLARATION_KINDS = {
    "interface_declaration": "interface",
    "class_declaration": "class",
    "abstract_class_declaration": "class",
    "type_alias_declaration": "alias",
    "enum_declaration": "enum",
}

DEFAULT_EXPORT = "default"


@dataclass(frozen=True)
class TypeDeclRef:
    """A located interface/class/type alias/enum plus the document it lives in."""

    node: Node
    doc: SourceDoc

    @property
    def kind(self) -> str:
        return _DECLARATION_KINDS[self.node.type]

    @property
    def name(self) -> str:
        return node_text(self.node.child_by_field_name("name"))


@dataclass(frozen=True)
class ImportBinding:
    module: str
    local: str
    imported: str  # exported name, or "default"


def find_type_declaration(doc: SourceDoc, type_name: str) -> Optional[TypeDeclRef]:
    """
    Full traversal of one document. Interfaces, classes and enums match by
    exact name; type aliases only when exported.
    """
    for node in walk(doc.root):
        if node.type not in _DECLARATION_KINDS:
            continue
        if node_text(node.child_by_field_name("name")) != type_name:
            continue
        if node.type == "type_alias_declaration" and not _is_exported(node):
            continue
        return TypeDeclRef(node=node, doc=doc)
    return None


def find_default_export(doc: SourceDoc) -> Optional[TypeDeclRef]:
    for node in doc.root.named_children:
        if node.type != "export_statement":
            continue
        if not any(c.type == "default" for c in node.children):
            continue
        decl = node.child_by_field_name("declaration")
        if decl is None:
            decl = next((c for c in node.named_children if c.type in _DECLARATION_KINDS), None)
        if decl is not None and decl.type in _DECLARATION_KINDS:
            return TypeDeclRef(node=decl, doc=doc)
    return None


def _is_exported(node: Node) -> bool:
    return node.parent is not None and node.parent.type == "export_statement"


def import_bindings(doc: SourceDoc) -> list[ImportBinding]:
    """Named and default bindings of every `import ... from '...'` statement."""
    out: list[ImportBinding] = []
    for node in walk(doc.root):
        if node.type != "import_statement":
            continue
        module = string_value(node.child_by_field_name("source"))
        if module is None:
            continue
        clause = next((c for c in node.named_children if c.type == "import_clause"), None)
        if clause is None:
            continue

        for child in clause.named_children:
            if child.type == "identifier":
                out.append(ImportBinding(module=module, local=node_text(child), imported=DEFAULT_EXPORT))
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name = node_text(spec.child_by_field_name("name"))
                    alias = spec.child_by_field_name("alias")
                    out.append(
                        ImportBinding(
                            module=module,
                            local=node_text(alias) if alias is not None else name,
                            imported=name,
                        )
                    )
    return out


def _reexports(doc: SourceDoc) -> list[tuple[str, Optional[dict[str, str]]]]:
    """
    `export ... from '...'` statements as (module, {exported: original}).
    The mapping is None for `export * from`.
    """
    out: list[tuple[str, Optional[dict[str, str]]]] = []
    for node in doc.root.named_children:
        if node.type != "export_statement":
            continue
        module = string_value(node.child_by_field_name("source"))
        if module is None:
            continue
        clause = next((c for c in node.named_children if c.type == "export_clause"), None)
        if clause is None:
            if any(c.type == "namespace_export" for c in node.named_children):
                continue  # export * as ns from '...'
            out.append((module, None))
            continue
        names: dict[str, str] = {}
        for spec in clause.named_children:
            if spec.type != "export_specifier":
                continue
            original = node_text(spec.child_by_field_name("name"))
            alias = spec.child_by_field_name("alias")
            names[node_text(alias) if alias is not None else original] = original
        out.append((module, names))
    return out


def resolve_import_path(
    module: str,
    current_file: Optional[Path],
    workspace_root: Optional[Path] = None,
) -> Optional[Path]:
    """
    Resolve a module specifier to a file on disk.

    Relative specifiers (./, ../) resolve against the importing file.
    Anything else is treated as already anchored at the workspace root
    (e.g. 'src/users/dto'); bare package names simply won't exist there.
    """
    if module in (".", "..") or module.startswith(("./", "../")):
        if current_file is None:
            return None
        base = current_file.parent / module
    else:
        if workspace_root is None:
            return None
        base = workspace_root / module.lstrip("/")
    return _probe_module(base)


def _probe_module(base: Path) -> Optional[Path]:
    candidates: list[Path] = [base]
    if base.suffix in (".js", ".jsx"):
        # ESM-style `./x.js` pointing at x.ts
        stem = str(base)[: -len(base.suffix)]
        candidates.extend(Path(stem + ext) for ext in (".ts", ".tsx"))
    candidates.extend(Path(str(base) + ext) for ext in MODULE_EXTENSIONS)
    candidates.extend(base / f"index{ext}" for ext in MODULE_EXTENSIONS)

    for candidate in candidates:
        try:
            if candidate.is_file():
                return candidate.resolve()
        except OSError:
            continue
    return None


class TypeLocator:
    """
    Finds the declaration behind a type name, searching in order:
      1. the referencing document
      2. documents reached through its imports (first matching import wins)
      3. a bounded scan of workspace files, regex-filtered before parsing

    One locator belongs to one extraction pass; file text and parsed
    documents are cached on it and are never shared across passes.
    """

    def __init__(
        self,
        workspace_root: Optional[Path] = None,
        max_workspace_files: int = DEFAULT_MAX_WORKSPACE_FILES,
    ):
        self.workspace_root = workspace_root.resolve() if workspace_root is not None else None
        self.max_workspace_files = max_workspace_files
        self._docs: dict[Path, Optional[SourceDoc]] = {}
        self._texts: dict[Path, Optional[str]] = {}
        self._workspace_files: Optional[list[str]] = None

    def load(self, path: Path) -> Optional[SourceDoc]:
        path = path.resolve()
        if path not in self._docs:
            self._docs[path] = parse_file(path)
        return self._docs[path]

    def locate(self, type_name: str, doc: SourceDoc) -> Optional[TypeDeclRef]:
        found = find_type_declaration(doc, type_name)
        if found is not None:
            logger.debug("type %s found in %s", type_name, doc.path or "<source>")
            return found

        found = self.search_imports(type_name, doc)
        if found is not None:
            return found

        logger.debug("type %s not in %s or its imports; scanning workspace", type_name, doc.path or "<source>")
        return self.search_workspace(type_name, skip=doc.path)

    def search_imports(self, type_name: str, doc: SourceDoc) -> Optional[TypeDeclRef]:
        for binding in import_bindings(doc):
            if binding.local != type_name:
                continue
            resolved = resolve_import_path(binding.module, doc.path, self.workspace_root)
            if resolved is None:
                logger.debug("import %r of %s not resolvable, skipped", binding.module, type_name)
                continue
            target = self.load(resolved)
            if target is None:
                continue

            wanted = type_name if binding.imported == DEFAULT_EXPORT else binding.imported
            found = self._find_in_module(target, wanted, default=binding.imported == DEFAULT_EXPORT, visited=set())
            if found is not None:
                logger.debug("type %s found via import %r in %s", type_name, binding.module, resolved)
                return found
        return None

    def _find_in_module(
        self,
        doc: SourceDoc,
        type_name: str,
        default: bool,
        visited: set[tuple[Path, str]],
    ) -> Optional[TypeDeclRef]:
        if doc.path is not None:
            key = (doc.path, type_name)
            if key in visited:
                return None
            visited.add(key)

        found = find_type_declaration(doc, type_name)
        if found is None and default:
            found = find_default_export(doc)
        if found is not None:
            return found

        # barrel files: export * from './x' / export { A as B } from './x'
        for module, names in _reexports(doc):
            if names is not None and type_name not in names:
                continue
            resolved = resolve_import_path(module, doc.path, self.workspace_root)
            if resolved is None:
                continue
            target = self.load(resolved)
            if target is None:
                continue
            original = type_name if names is None else names[type_name]
            found = self._find_in_module(target, original, default=False, visited=visited)
            if found is not None:
                return found
        return None

    def search_workspace(self, type_name: str, skip: Optional[Path] = None) -> Optional[TypeDeclRef]:
        if self.workspace_root is None:
            return None

        if self._workspace_files is None:
            self._workspace_files = scan_ts_files(self.workspace_root, max_files=self.max_workspace_files)

        skip_resolved = skip.resolve() if skip is not None else None
        for file_path in self._workspace_files:
            path = Path(file_path)
            if skip_resolved is not None and path == skip_resolved:
                continue

            if path not in self._texts:
                self._texts[path] = read_text(path)
            text = self._texts[path]
            if text is None:
                logger.debug("could not read %s, skipped", path)
                continue
            if not declares_type(text, type_name):
                continue

            doc = self._docs.get(path)
            if doc is None:
                doc = parse_source(text, path=path)
                self._docs[path] = doc
            found = find_type_declaration(doc, type_name)
            if found is not None:
                logger.debug("type %s found in workspace file %s", type_name, path)
                return found
            logger.debug("regex matched %s in %s but no declaration was parsed", type_name, path)

        logger.debug("type %s not found in workspace", type_name)
        return None
