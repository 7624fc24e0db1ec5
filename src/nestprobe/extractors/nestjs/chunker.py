from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from tree_sitter import Node

from nestprobe.domain.models import ANY_QUERY, RouteDescriptor, SourceLocation
from nestprobe.extractors.nestjs.paths import (
    controller_prefix,
    ensure_leading_slash,
    join_path,
    path_params_in,
)
from nestprobe.extractors.nestjs.syntax import (
    SourceDoc,
    annotation_type,
    decorator_call,
    decorators_of,
    first_string_arg,
    line_of,
    node_text,
    parse_source,
    walk,
)
from nestprobe.repo.scanner import read_text
from nestprobe.resolve.examples import BUILTIN_TYPE_NAMES, INLINE_GENERICS, BodyExampleResolver
from nestprobe.resolve.locator import DEFAULT_MAX_WORKSPACE_FILES, TypeLocator

logger = logging.getLogger(__name__)

_HTTP_METHOD_DECORATORS = {
    "Get": "GET",
    "Post": "POST",
    "Put": "PUT",
    "Patch": "PATCH",
    "Delete": "DELETE",
    "Options": "OPTIONS",
    "Head": "HEAD",
    "All": "ALL",
}

PARAM_DECORATOR = "Param"
QUERY_DECORATOR = "Query"
BODY_DECORATOR = "Body"

DEFAULT_PATH_PARAM = "id"

_CLASS_NODES = ("class_declaration", "abstract_class_declaration")
_PARAMETER_NODES = ("required_parameter", "optional_parameter")


@dataclass
class _Bindings:
    path_params: list[str] = field(default_factory=list)
    query_params: list[str] = field(default_factory=list)
    has_body: bool = False
    body_type: Optional[Node] = None


def extract_routes_from_source(
    source: str,
    file_path: Optional[Path] = None,
    workspace_root: Optional[Path] = None,
    max_workspace_files: int = DEFAULT_MAX_WORKSPACE_FILES,
) -> list[RouteDescriptor]:
    """
    Parse TypeScript source and extract NestJS handlers declared like:
      @Controller('users')
      export class UsersController {
        @Post(':id/items')
        create(@Param('id') id: string, @Body() dto: CreateItemDto) {}
      }
    Routes come back in declaration order. Never raises: a document that
    cannot be processed yields [].
    """
    try:
        doc = parse_source(source, path=file_path.resolve() if file_path is not None else None)
        locator = TypeLocator(workspace_root, max_workspace_files=max_workspace_files)
        return _extract(doc, BodyExampleResolver(locator))
    except Exception:
        logger.debug("route extraction failed for %s", file_path or "<source>", exc_info=True)
        return []


def extract_routes_from_file(
    path: Path,
    workspace_root: Optional[Path] = None,
    max_workspace_files: int = DEFAULT_MAX_WORKSPACE_FILES,
    max_bytes: int = 1_000_000,
) -> list[RouteDescriptor]:
    source = read_text(path, max_bytes=max_bytes)
    if source is None:
        return []
    return extract_routes_from_source(
        source,
        file_path=path,
        workspace_root=workspace_root,
        max_workspace_files=max_workspace_files,
    )


def _extract(doc: SourceDoc, resolver: BodyExampleResolver) -> list[RouteDescriptor]:
    routes: list[RouteDescriptor] = []
    for node in walk(doc.root):
        if node.type != "method_definition":
            continue
        class_node = _enclosing_class(node)
        if class_node is None:
            continue
        route = _route_for_method(node, class_node, doc, resolver)
        if route is not None:
            routes.append(route)
    return routes


def _enclosing_class(method: Node) -> Optional[Node]:
    body = method.parent
    if body is None or body.type != "class_body":
        return None
    cls = body.parent
    if cls is None or cls.type not in _CLASS_NODES:
        return None
    return cls


def _route_for_method(
    method: Node,
    class_node: Node,
    doc: SourceDoc,
    resolver: BodyExampleResolver,
) -> Optional[RouteDescriptor]:
    decorators = decorators_of(method)

    verb: Optional[tuple[str, list[Node]]] = None
    for dec in decorators:
        call = decorator_call(dec)
        if call is not None and call[0] in _HTTP_METHOD_DECORATORS:
            verb = (_HTTP_METHOD_DECORATORS[call[0]], call[1])
            break
    if verb is None:
        return None

    http_method, args = verb
    literal = first_string_arg(args)
    method_path = ensure_leading_slash(literal) if literal is not None else "/"

    prefix = controller_prefix(class_node)
    path = join_path(prefix, method_path)

    bindings = _collect_bindings(method)
    path_params = path_params_in(path) + bindings.path_params

    body_type_name: Optional[str] = None
    body_example: Optional[str] = None
    if bindings.has_body and bindings.body_type is not None:
        body_type_name = body_type_name_of(bindings.body_type)
        if body_type_name is not None:
            body_example = resolver.for_type_name(body_type_name, doc)
        else:
            body_example = resolver.for_annotation(bindings.body_type, doc)

    name_node = method.child_by_field_name("name")
    handler_name = node_text(name_node) if name_node is not None and name_node.type == "property_identifier" else "handler"

    start = decorators[0] if decorators else method
    return RouteDescriptor(
        method=http_method,
        path=path,
        handler_name=handler_name,
        source_location=SourceLocation(file=str(doc.path or ""), line=line_of(start)),
        controller_prefix=prefix,
        path_params=path_params,
        query_params=bindings.query_params,
        has_body=bindings.has_body,
        body_type_name=body_type_name,
        body_example=body_example,
    )


def _collect_bindings(method: Node) -> _Bindings:
    out = _Bindings()
    params = method.child_by_field_name("parameters")
    if params is None:
        return out

    for param in params.named_children:
        if param.type not in _PARAMETER_NODES:
            continue
        for dec in decorators_of(param):
            call = decorator_call(dec)
            if call is None:
                continue
            name, args = call

            if name == PARAM_DECORATOR:
                out.path_params.append(first_string_arg(args) or DEFAULT_PATH_PARAM)
            elif name == QUERY_DECORATOR:
                out.query_params.append(first_string_arg(args) or ANY_QUERY)
            elif name == BODY_DECORATOR:
                out.has_body = True
                # first annotated @Body() parameter provides the type
                if out.body_type is None:
                    out.body_type = annotation_type(param)
    return out


def body_type_name_of(type_node: Node) -> Optional[str]:
    """
    The name written at a @Body() parameter when it is a plain reference
    (CreateDto, dto.CreateDto, Paged<Item>). Inline shapes, arrays,
    utility wrappers and built-ins return None and are expanded in place.
    """
    if type_node.type == "type_identifier":
        name = node_text(type_node)
    elif type_node.type == "nested_type_identifier":
        name = node_text(type_node.child_by_field_name("name")) or node_text(type_node).split(".")[-1]
    elif type_node.type == "generic_type":
        name_node = type_node.child_by_field_name("name")
        name = node_text(name_node).split(".")[-1] if name_node is not None else ""
        if name in INLINE_GENERICS:
            return None
    else:
        return None

    if not name or name in BUILTIN_TYPE_NAMES:
        return None
    return name
