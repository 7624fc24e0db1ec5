from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterator, Optional

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

# Nodes that may sit between a decorator and the thing it decorates.
_TRIVIA = {"comment"}

_ESCAPE = re.compile(r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])")
_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


@dataclass(frozen=True)
class SourceDoc:
    """One parsed TypeScript document."""

    path: Optional[Path]
    source: bytes
    tree: Tree

    @property
    def root(self) -> Node:
        return self.tree.root_node


@lru_cache(maxsize=1)
def _language() -> Language:
    return Language(tree_sitter_typescript.language_typescript())


def parse_source(text: str | bytes, path: Optional[Path] = None) -> SourceDoc:
    """
    Parse TypeScript text. tree-sitter does not raise on bad syntax; broken
    regions come back as ERROR nodes and simply never match anything.
    """
    data = text.encode("utf-8") if isinstance(text, str) else text
    parser = Parser(_language())
    return SourceDoc(path=path, source=data, tree=parser.parse(data))


def parse_file(path: Path, max_bytes: int = 1_000_000) -> Optional[SourceDoc]:
    try:
        data = path.read_bytes()[:max_bytes]
    except OSError:
        return None
    # normalize undecodable bytes so node offsets stay consistent
    text = data.decode("utf-8", errors="ignore")
    return parse_source(text, path=path.resolve())


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="ignore")


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal (document order)."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _unescape_one(m: re.Match) -> str:
    esc = m.group(1)
    if esc[0] in "ux" and len(esc) > 1:
        code = int(esc.strip("ux{}"), 16)
        return chr(code) if code <= 0x10FFFF else m.group(0)
    if esc in ("\n", "\r", "\r\n", "\u2028", "\u2029"):
        return ""  # line continuation
    return _SIMPLE_ESCAPES.get(esc, esc)


def unescape(body: str) -> str:
    """Decode JavaScript escape sequences in a literal's body ('it\\'s' -> it's)."""
    if "\\" not in body:
        return body
    return _ESCAPE.sub(_unescape_one, body)


def string_value(node: Optional[Node]) -> Optional[str]:
    # 'x', "x" and `x` (without ${} substitutions)
    if node is None:
        return None
    if node.type == "string":
        return unescape(node_text(node)[1:-1])
    if node.type == "template_string":
        if any(c.type == "template_substitution" for c in node.named_children):
            return None
        return unescape(node_text(node)[1:-1])
    return None


def decorators_of(node: Node) -> list[Node]:
    """
    Decorators applied to a class, method or parameter.

    The typescript grammar puts parameter/field decorators inside the node,
    but method decorators (inside class_body) and decorators of an exported
    class (inside export_statement) are preceding siblings.
    """
    preceding: list[Node] = []
    sibling = node.prev_sibling
    while sibling is not None:
        if sibling.type == "decorator":
            preceding.append(sibling)
        elif sibling.is_named and sibling.type not in _TRIVIA:
            break
        sibling = sibling.prev_sibling
    preceding.reverse()

    # the anonymous `export` keyword is skipped above, so `@X() export class`
    # is covered by the sibling walk
    own = [c for c in node.children if c.type == "decorator"]
    return preceding + own


def decorator_call(decorator: Node) -> tuple[str, list[Node]] | None:
    """
    Return (callee name, argument nodes) for `@Name(...)`.
    Bare `@Name` and member callees (`@a.b()`) are not treated as calls.
    """
    call = next((c for c in decorator.named_children if c.type == "call_expression"), None)
    if call is None:
        return None
    fn = call.child_by_field_name("function")
    if fn is None or fn.type != "identifier":
        return None
    args = call.child_by_field_name("arguments")
    return node_text(fn), _call_args(args)


def _call_args(args: Optional[Node]) -> list[Node]:
    if args is None:
        return []
    return [a for a in args.named_children if a.type not in _TRIVIA]


def call_arguments(call: Node) -> list[Node]:
    return _call_args(call.child_by_field_name("arguments"))


def first_string_arg(args: list[Node]) -> Optional[str]:
    if not args:
        return None
    return string_value(args[0])


def object_property(obj: Node, key: str) -> Optional[Node]:
    """Value node of `key: value` in an object literal."""
    if obj.type != "object":
        return None
    for pair in obj.named_children:
        if pair.type != "pair":
            continue
        k = pair.child_by_field_name("key")
        if k is None:
            continue
        name = string_value(k) if k.type == "string" else node_text(k)
        if name == key:
            return pair.child_by_field_name("value")
    return None


def annotation_type(node: Node) -> Optional[Node]:
    """The type node behind `: T` on a parameter or property."""
    ann = node.child_by_field_name("type")
    if ann is None:
        ann = next((c for c in node.children if c.type == "type_annotation"), None)
    if ann is None:
        return None
    if ann.type != "type_annotation":
        return ann
    return next((c for c in ann.named_children if c.type not in _TRIVIA), None)


def line_of(node: Node) -> int:
    return node.start_point[0] + 1
