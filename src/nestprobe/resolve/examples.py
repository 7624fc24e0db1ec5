from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from tree_sitter import Node

from nestprobe.extractors.nestjs.syntax import (
    SourceDoc,
    call_arguments,
    node_text,
    string_value,
)
from nestprobe.resolve.locator import TypeDeclRef, TypeLocator

logger = logging.getLogger(__name__)

# str | int | float | bool | None | list[Value] | dict[str, Value]
Value = Any

STRING_PLACEHOLDER = "example_string"
NUMBER_PLACEHOLDER = 42
NESTED_PLACEHOLDER = "nested_object"
UNKNOWN_PLACEHOLDER = "unknown_type"

_PRIMITIVES: dict[str, Value] = {
    "string": STRING_PLACEHOLDER,
    "symbol": STRING_PLACEHOLDER,
    "number": NUMBER_PLACEHOLDER,
    "bigint": NUMBER_PLACEHOLDER,
    "boolean": True,
    "any": None,
    "unknown": None,
    "void": None,
    "null": None,
    "undefined": None,
    "never": None,
}

_BOXED: dict[str, Value] = {
    "String": STRING_PLACEHOLDER,
    "Number": NUMBER_PLACEHOLDER,
    "Boolean": True,
}

_ARRAY_GENERICS = {"Array", "ReadonlyArray"}
_PASS_THROUGH_GENERICS = {"Partial", "Required", "Readonly", "NonNullable"}

# names expanded structurally rather than looked up as declarations
BUILTIN_TYPE_NAMES = frozenset({"Date", *_BOXED, *_PRIMITIVES})
INLINE_GENERICS = frozenset(_ARRAY_GENERICS | _PASS_THROUGH_GENERICS | {"Record"})

# @nestjs/mapped-types (and @nestjs/swagger) class helpers
_MAPPED_TYPE_HELPERS = {"PartialType", "PickType", "OmitType", "IntersectionType"}

_PROPERTY_NODES = ("property_signature", "public_field_definition")

_TRIVIA = {"comment"}


def iso_now() -> str:
    """Current UTC time the way JavaScript's Date#toISOString prints it."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def placeholder_for(type_name: str) -> dict[str, Value]:
    """Degraded one-field object used for unresolved and cyclic references."""
    return {type_name.lower(): NESTED_PLACEHOLDER}


def infer_value_by_property_name(prop_name: str) -> Value:
    lower = prop_name.lower()

    if "email" in lower:
        return "user@example.com"
    if "name" in lower:
        return "Example Name"
    if "id" in lower:
        return "12345"
    if "age" in lower:
        return 25
    if "date" in lower or "time" in lower:
        return iso_now()
    if "active" in lower or "enabled" in lower:
        return True
    if "count" in lower or "number" in lower:
        return 0
    if "list" in lower or "array" in lower or "tags" in lower:
        return []
    if "address" in lower or "info" in lower or "data" in lower:
        return {}
    return "example_value"


def generic_example(type_name: str) -> dict[str, Value]:
    """
    Canned shape picked from the type name alone. Used when no declaration
    exists anywhere, so a body-carrying route still gets an example.
    """
    lower = type_name.lower()

    if "user" in lower:
        return {"name": "John Doe", "email": "john@example.com", "age": 30}
    if "product" in lower:
        return {"name": "Sample Product", "price": 99.99, "description": "Product description"}
    if "create" in lower or "post" in lower:
        return {"name": "string", "description": "string"}
    if "update" in lower or "put" in lower or "patch" in lower:
        return {"name": "string"}
    return {"field1": "string", "field2": 0, "field3": False}


def to_json_text(value: Value) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _number(text: str) -> Value:
    cleaned = text.replace("_", "")
    try:
        return int(cleaned, 0)
    except ValueError:
        pass
    try:
        return float(cleaned)
    except ValueError:
        return NUMBER_PLACEHOLDER


def _type_children(node: Node) -> list[Node]:
    return [c for c in node.named_children if c.type not in _TRIVIA]


def _last_identifier(node: Node) -> str:
    # ns.Inner.Dto -> Dto
    if node.type == "nested_type_identifier":
        return node_text(node.child_by_field_name("name")) or node_text(node).split(".")[-1]
    return node_text(node)


def _property_name(member: Node) -> Optional[str]:
    name_node = member.child_by_field_name("name")
    if name_node is None:
        return None
    if name_node.type == "string":
        return string_value(name_node)
    if name_node.type in ("property_identifier", "private_property_identifier", "number"):
        return node_text(name_node)
    return None  # computed keys


def _string_list(node: Optional[Node]) -> Optional[list[str]]:
    # ['a', 'b'] or ['a', 'b'] as const
    if node is None:
        return None
    if node.type in ("as_expression", "satisfies_expression"):
        inner = _type_children(node)
        node = inner[0] if inner else None
        if node is None:
            return None
    if node.type != "array":
        return None
    out = [string_value(el) for el in _type_children(node)]
    return [s for s in out if s is not None]


class ExampleSynthesizer:
    """
    Expands type declarations and annotations into value trees.

    `chain` holds the names of the declarations being expanded on the current
    path; a reference back into the chain degrades to `placeholder_for(name)`
    instead of recursing, which bounds depth by the number of distinct types.
    """

    def __init__(self, locator: TypeLocator):
        self.locator = locator

    def for_declaration(self, ref: TypeDeclRef, chain: frozenset[str] = frozenset()) -> Value:
        chain = chain | {ref.name}
        node = ref.node

        if ref.kind == "enum":
            return self._first_enum_value(node)

        if ref.kind == "alias":
            value = node.child_by_field_name("value")
            return UNKNOWN_PLACEHOLDER if value is None else self.for_type(value, ref.doc, chain)

        out: dict[str, Value] = {}
        if ref.kind == "interface":
            out.update(self._interface_bases(node, ref.doc, chain))
        else:
            out.update(self._class_bases(node, ref.doc, chain))
        out.update(self._members(node.child_by_field_name("body"), ref.doc, chain))
        return out

    def for_type(self, node: Node, doc: SourceDoc, chain: frozenset[str] = frozenset()) -> Value:
        t = node.type

        if t == "predefined_type":
            text = node_text(node)
            if text == "object":
                return {}
            return _PRIMITIVES.get(text, UNKNOWN_PLACEHOLDER)

        if t in ("type_identifier", "nested_type_identifier", "identifier"):
            return self.for_reference(_last_identifier(node), doc, chain)

        if t == "generic_type":
            return self._generic(node, doc, chain)

        if t == "array_type":
            inner = _type_children(node)
            return [self.for_type(inner[0], doc, chain)] if inner else []

        if t in ("readonly_type", "parenthesized_type", "optional_type", "rest_type", "type_annotation"):
            inner = _type_children(node)
            return self.for_type(inner[0], doc, chain) if inner else UNKNOWN_PLACEHOLDER

        if t == "union_type":
            # first member only; nested unions are left-associative
            members = _type_children(node)
            return self.for_type(members[0], doc, chain) if members else UNKNOWN_PLACEHOLDER

        if t == "intersection_type":
            merged: dict[str, Value] = {}
            for member in _type_children(node):
                value = self.for_type(member, doc, chain)
                if isinstance(value, dict):
                    merged.update(value)
            return merged

        if t == "object_type":
            return self._members(node, doc, chain)

        if t == "tuple_type":
            return [self.for_type(m, doc, chain) for m in _type_children(node)]

        if t == "literal_type":
            return self._literal(node)

        if t == "template_literal_type":
            return STRING_PLACEHOLDER

        if t in ("null", "undefined"):
            return None

        return UNKNOWN_PLACEHOLDER

    def for_reference(self, type_name: str, doc: SourceDoc, chain: frozenset[str] = frozenset()) -> Value:
        if type_name == "Date":
            return iso_now()
        if type_name in _BOXED:
            return _BOXED[type_name]
        if type_name in _PRIMITIVES:
            return _PRIMITIVES[type_name]

        if type_name in chain:
            logger.debug("cycle on %s, not expanding again", type_name)
            return placeholder_for(type_name)

        ref = self.locator.locate(type_name, doc)
        if ref is None:
            logger.debug("type %s unresolved, using placeholder", type_name)
            return placeholder_for(type_name)
        if ref.name in chain:
            # aliased or default import of a declaration already being expanded
            logger.debug("cycle on %s (as %s), not expanding again", ref.name, type_name)
            return placeholder_for(type_name)
        return self.for_declaration(ref, chain)

    # ----------------------------
    # Helpers
    # ----------------------------

    def _members(self, body: Optional[Node], doc: SourceDoc, chain: frozenset[str]) -> dict[str, Value]:
        out: dict[str, Value] = {}
        if body is None:
            return out
        for member in body.named_children:
            if member.type not in _PROPERTY_NODES:
                continue  # methods, index signatures, static blocks
            if any(c.type == "static" for c in member.children):
                continue
            name = _property_name(member)
            if name is None:
                continue

            type_node = member.child_by_field_name("type")
            if type_node is not None:
                out[name] = self.for_type(type_node, doc, chain)
            else:
                out[name] = infer_value_by_property_name(name)
        return out

    def _generic(self, node: Node, doc: SourceDoc, chain: frozenset[str]) -> Value:
        name_node = node.child_by_field_name("name")
        name = _last_identifier(name_node) if name_node is not None else ""
        args_node = node.child_by_field_name("type_arguments")
        args = _type_children(args_node) if args_node is not None else []

        if name in _ARRAY_GENERICS:
            return [self.for_type(args[0], doc, chain)] if args else []
        if name in _PASS_THROUGH_GENERICS and args:
            return self.for_type(args[0], doc, chain)
        if name == "Record" and len(args) == 2:
            return {"key": self.for_type(args[1], doc, chain)}
        return self.for_reference(name, doc, chain)

    def _literal(self, node: Node) -> Value:
        inner = _type_children(node)
        if not inner:
            return UNKNOWN_PLACEHOLDER
        lit = inner[0]
        if lit.type in ("string", "template_string"):
            value = string_value(lit)
            return STRING_PLACEHOLDER if value is None else value
        if lit.type == "number":
            return _number(node_text(lit))
        if lit.type == "unary_expression":
            return _number(node_text(lit).replace(" ", ""))
        if lit.type == "true":
            return True
        if lit.type == "false":
            return False
        if lit.type in ("null", "undefined"):
            return None
        return UNKNOWN_PLACEHOLDER

    def _first_enum_value(self, node: Node) -> Value:
        body = node.child_by_field_name("body")
        members = _type_children(body) if body is not None else []
        if not members:
            return UNKNOWN_PLACEHOLDER
        first = members[0]
        if first.type != "enum_assignment":
            return 0  # implicit numeric member
        value = first.child_by_field_name("value")
        if value is None:
            return 0
        if value.type in ("string", "template_string"):
            text = string_value(value)
            return STRING_PLACEHOLDER if text is None else text
        if value.type == "number":
            return _number(node_text(value))
        return node_text(value)

    def _inherited(self, type_name: str, doc: SourceDoc, chain: frozenset[str]) -> dict[str, Value]:
        if type_name in chain:
            return {}
        ref = self.locator.locate(type_name, doc)
        if ref is None:
            logger.debug("base type %s unresolved, members skipped", type_name)
            return {}
        if ref.name in chain:
            return {}
        value = self.for_declaration(ref, chain)
        return value if isinstance(value, dict) else {}

    def _interface_bases(self, node: Node, doc: SourceDoc, chain: frozenset[str]) -> dict[str, Value]:
        out: dict[str, Value] = {}
        clause = next((c for c in node.named_children if c.type == "extends_type_clause"), None)
        if clause is None:
            return out
        for base in _type_children(clause):
            if base.type == "generic_type":
                name_node = base.child_by_field_name("name")
                if name_node is None:
                    continue
                name = _last_identifier(name_node)
            else:
                name = _last_identifier(base)
            out.update(self._inherited(name, doc, chain))
        return out

    def _class_bases(self, node: Node, doc: SourceDoc, chain: frozenset[str]) -> dict[str, Value]:
        out: dict[str, Value] = {}
        heritage = next((c for c in node.named_children if c.type == "class_heritage"), None)
        if heritage is None:
            return out
        extends = next((c for c in heritage.named_children if c.type == "extends_clause"), None)
        if extends is None:
            return out

        for value in extends.children_by_field_name("value"):
            if value.type in ("identifier", "member_expression"):
                out.update(self._inherited(node_text(value).split(".")[-1], doc, chain))
            elif value.type == "call_expression":
                out.update(self._mapped_type(value, doc, chain))
        return out

    def _mapped_type(self, call: Node, doc: SourceDoc, chain: frozenset[str]) -> dict[str, Value]:
        """
        PartialType(A)           -> members of A
        PickType(A, ['x'])       -> only x
        OmitType(A, ['x'])       -> all but x
        IntersectionType(A, B)   -> members of A and B
        """
        fn = call.child_by_field_name("function")
        helper = node_text(fn)
        if helper not in _MAPPED_TYPE_HELPERS:
            return {}
        args = call_arguments(call)
        if not args:
            return {}

        if helper == "IntersectionType":
            merged: dict[str, Value] = {}
            for arg in args:
                if arg.type == "identifier":
                    merged.update(self._inherited(node_text(arg), doc, chain))
            return merged

        if args[0].type != "identifier":
            return {}
        base = self._inherited(node_text(args[0]), doc, chain)
        keys = _string_list(args[1]) if len(args) > 1 else None
        if helper == "PickType" and keys is not None:
            return {k: v for k, v in base.items() if k in keys}
        if helper == "OmitType" and keys is not None:
            return {k: v for k, v in base.items() if k not in keys}
        return base


class BodyExampleResolver:
    """
    Turns a handler's body annotation into example text.

    Memoizes by (type name, originating file): import resolution depends on
    where the name was written, so the name alone is not a safe key.
    """

    def __init__(self, locator: TypeLocator):
        self.locator = locator
        self.synthesizer = ExampleSynthesizer(locator)
        self._cache: dict[tuple[str, str], str] = {}

    def for_type_name(self, type_name: str, doc: SourceDoc) -> str:
        key = (type_name, str(doc.path or ""))
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        ref = self.locator.locate(type_name, doc)
        if ref is None:
            logger.debug("no declaration for %s, using generic example", type_name)
            value = generic_example(type_name)
        else:
            value = self.synthesizer.for_declaration(ref)

        text = to_json_text(value)
        self._cache[key] = text
        return text

    def for_annotation(self, type_node: Node, doc: SourceDoc) -> Optional[str]:
        """Inline annotations ({...}, T[], Array<T>, unions, primitives)."""
        value = self.synthesizer.for_type(type_node, doc)
        if value is None:
            return None
        return to_json_text(value)
