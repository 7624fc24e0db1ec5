from __future__ import annotations

import re

from tree_sitter import Node

from nestprobe.extractors.nestjs.syntax import (
    decorator_call,
    decorators_of,
    first_string_arg,
    object_property,
    string_value,
)

CONTROLLER_DECORATOR = "Controller"

_PATH_PARAM = re.compile(r":([A-Za-z0-9_]+)")


def ensure_leading_slash(p: str) -> str:
    if not p:
        return "/"
    return p if p.startswith("/") else f"/{p}"


def join_path(a: str, b: str) -> str:
    """
    Join a prefix and a suffix with exactly one slash between them.
      ("", "users")     -> "/users"
      ("/v1/", "/users") -> "/v1/users"
    """
    if not a:
        return ensure_leading_slash(b)
    if not b:
        return ensure_leading_slash(a)
    left = a[:-1] if a.endswith("/") else a
    right = b if b.startswith("/") else f"/{b}"
    return ensure_leading_slash(left + right)


def path_params_in(path: str) -> list[str]:
    """`:name` tokens in declaration order, de-duplicated."""
    out: list[str] = []
    for m in _PATH_PARAM.finditer(path or ""):
        if m.group(1) not in out:
            out.append(m.group(1))
    return out


def controller_prefix(class_node: Node) -> str:
    """
    Prefix declared by @Controller on a class:
      @Controller('users')            -> "/users"
      @Controller({ path: 'users' })  -> "/users"
    Anything else (no decorator, non-literal argument) -> "".
    """
    for dec in decorators_of(class_node):
        call = decorator_call(dec)
        if call is None:
            continue
        name, args = call
        if name != CONTROLLER_DECORATOR:
            continue

        literal = first_string_arg(args)
        if literal is not None:
            return ensure_leading_slash(literal)

        if args and args[0].type == "object":
            value = string_value(object_property(args[0], "path"))
            if value is not None:
                return ensure_leading_slash(value)
    return ""
