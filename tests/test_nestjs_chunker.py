import json
import textwrap
from pathlib import Path

from nestprobe.extractors.nestjs import chunker
from nestprobe.extractors.nestjs.chunker import extract_routes_from_file, extract_routes_from_source


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


USERS_CONTROLLER = """\
import { Body, Controller, Get, Param, Post, Query } from '@nestjs/common';

@Controller('users')
export class UsersController {
  @Get()
  findAll(@Query('page') page: string, @Query() filters: any) {
    return [];
  }

  @Get(':id')
  findOne(@Param('id') id: string) {}

  @Post()
  create(@Body() dto: CreateUserDto) {}

  helper() {}
}
"""


def test_extract_routes_basic_controller():
    routes = extract_routes_from_source(USERS_CONTROLLER)
    assert [r.handler_name for r in routes] == ["findAll", "findOne", "create"]

    find_all, find_one, create = routes
    assert find_all.method == "GET"
    assert find_all.path == "/users/"
    assert find_all.controller_prefix == "/users"
    assert find_all.query_params == ["page", "*"]
    assert find_all.has_body is False
    assert find_all.body_example is None

    assert find_one.path == "/users/:id"
    assert find_one.path_params == ["id"]

    assert create.method == "POST"
    assert create.has_body is True
    assert create.body_type_name == "CreateUserDto"


def test_extract_routes_source_lines_point_at_decorators():
    routes = extract_routes_from_source(USERS_CONTROLLER)
    assert [r.source_location.line for r in routes] == [5, 10, 13]


def test_unresolved_body_type_gets_generic_example():
    routes = extract_routes_from_source(USERS_CONTROLLER)
    body = json.loads(routes[2].body_example)
    assert body == {"name": "John Doe", "email": "john@example.com", "age": 30}


def test_extract_routes_all_verbs():
    src = """\
    import * as common from '@nestjs/common';

    @Controller()
    class VerbsController {
      @Get('a') a() {}
      @Post('b') b() {}
      @Put('c') c() {}
      @Patch('d') d() {}
      @Delete('e') e() {}
      @Options('f') f() {}
      @Head('g') g() {}
      @All('h') h() {}
    }
    """
    routes = extract_routes_from_source(textwrap.dedent(src))
    assert [(r.method, r.path) for r in routes] == [
        ("GET", "/a"),
        ("POST", "/b"),
        ("PUT", "/c"),
        ("PATCH", "/d"),
        ("DELETE", "/e"),
        ("OPTIONS", "/f"),
        ("HEAD", "/g"),
        ("ALL", "/h"),
    ]


def test_controller_object_argument_and_first_verb_wins():
    src = """\
    @Controller({ path: 'admin', host: 'example.com' })
    export class AdminController {
      @Get('stats')
      @Post('ignored')
      stats() {}
    }
    """
    routes = extract_routes_from_source(textwrap.dedent(src))
    assert len(routes) == 1
    assert routes[0].method == "GET"
    assert routes[0].path == "/admin/stats"


def test_malformed_decorator_arguments_fall_back_to_defaults():
    src = """\
    const PREFIX = 'things';
    const NAME = 'thingId';

    @Controller(PREFIX)
    export class ThingsController {
      @Get(NAME)
      one(@Param(NAME) id: string, @Query(NAME) q: string) {}
    }
    """
    routes = extract_routes_from_source(textwrap.dedent(src))
    assert len(routes) == 1
    r = routes[0]
    assert r.controller_prefix == ""
    assert r.path == "/"
    assert r.path_params == ["id"]
    assert r.query_params == ["*"]


def test_param_decorator_unioned_with_path_tokens():
    src = """\
    @Controller('orgs/:orgId')
    export class MembersController {
      @Get('members/:id')
      one(@Param('id') id: string, @Param('orgId') orgId: string, @Param() all: any) {}
    }
    """
    routes = extract_routes_from_source(textwrap.dedent(src))
    assert routes[0].path == "/orgs/:orgId/members/:id"
    assert routes[0].path_params == ["orgId", "id"]


def test_methods_without_verb_decorator_are_ignored():
    src = """\
    @Controller('x')
    export class XController {
      @UseGuards(AuthGuard)
      guarded() {}

      plain() {}
    }
    """
    assert extract_routes_from_source(textwrap.dedent(src)) == []


def test_inline_body_annotation_is_expanded_without_type_name():
    src = """\
    @Controller('orders')
    export class OrdersController {
      @Post()
      create(@Body() body: { sku: string; qty: number; notes?: string[] }) {}

      @Put('bulk')
      bulk(@Body() items: Array<{ sku: string }>) {}

      @Patch('raw')
      raw(@Body() body: any) {}

      @Post('untyped')
      untyped(@Body() body) {}
    }
    """
    create, bulk, raw, untyped = extract_routes_from_source(textwrap.dedent(src))

    assert create.body_type_name is None
    assert json.loads(create.body_example) == {"sku": "example_string", "qty": 42, "notes": ["example_string"]}

    assert bulk.body_type_name is None
    assert json.loads(bulk.body_example) == [{"sku": "example_string"}]

    assert raw.has_body is True
    assert raw.body_example is None

    assert untyped.has_body is True
    assert untyped.body_type_name is None
    assert untyped.body_example is None


def test_body_type_declared_in_same_file():
    src = """\
    interface CreateNoteDto {
      title: string;
      pinned: boolean;
      createdAt: Date;
    }

    @Controller('notes')
    export class NotesController {
      @Post()
      create(@Body() dto: CreateNoteDto) {}
    }
    """
    routes = extract_routes_from_source(textwrap.dedent(src))
    body = json.loads(routes[0].body_example)
    assert body["title"] == "example_string"
    assert body["pinned"] is True
    assert body["createdAt"].endswith("Z") and "T" in body["createdAt"]


def test_end_to_end_post_with_imported_dto(tmp_path: Path):
    write(
        tmp_path / "src" / "orders" / "dto" / "item.dto.ts",
        """
        export interface CreateItemDto {
          name: string;
          quantity: number;
          tags: string[];
        }
        """,
    )
    controller = tmp_path / "src" / "orders" / "orders.controller.ts"
    write(
        controller,
        """
        import { Body, Controller, Param, Post } from '@nestjs/common';
        import { CreateItemDto } from './dto/item.dto';

        @Controller('/api')
        export class OrdersController {
          @Post('/orders/:id/items')
          addItem(@Param('id') id: string, @Body() dto: CreateItemDto) {}
        }
        """,
    )

    routes = extract_routes_from_file(controller, workspace_root=tmp_path)
    assert len(routes) == 1
    r = routes[0]
    assert r.method == "POST"
    assert r.path == "/api/orders/:id/items"
    assert r.path_params == ["id"]
    assert r.has_body is True
    assert r.body_type_name == "CreateItemDto"
    assert json.loads(r.body_example) == {
        "name": "example_string",
        "quantity": 42,
        "tags": ["example_string"],
    }
    assert r.source_location.file == str(controller.resolve())


def test_extraction_never_raises(monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("broken tree")

    monkeypatch.setattr(chunker, "_extract", boom)
    assert extract_routes_from_source(USERS_CONTROLLER) == []


def test_garbage_source_yields_no_routes():
    assert extract_routes_from_source("@@@ class {{{ ((( :::") == []


def test_missing_file_yields_no_routes(tmp_path: Path):
    assert extract_routes_from_file(tmp_path / "nope.controller.ts") == []


def test_cycle_through_aliased_imports_keeps_all_routes(tmp_path: Path):
    write(
        tmp_path / "src" / "a.ts",
        """
        import { B as BB } from './b';
        export interface A { b: BB }
        """,
    )
    write(
        tmp_path / "src" / "b.ts",
        """
        import { A as AA } from './a';
        export interface B { a: AA }
        """,
    )
    controller = tmp_path / "src" / "cycle.controller.ts"
    write(
        controller,
        """
        import { A } from './a';

        @Controller('cycle')
        export class CycleController {
          @Post()
          create(@Body() dto: A) {}

          @Get()
          list() {}
        }
        """,
    )

    routes = extract_routes_from_file(controller, workspace_root=tmp_path)
    assert [r.handler_name for r in routes] == ["create", "list"]
    assert json.loads(routes[0].body_example) == {"b": {"a": {"aa": "nested_object"}}}


def test_escaped_string_literals_are_decoded():
    src = r"""
    @Controller('it\'s')
    export class QuotesController {
      @Get("x")
      one(@Query('a\x62c') q: string) {}
    }
    """
    routes = extract_routes_from_source(textwrap.dedent(src))
    assert routes[0].controller_prefix == "/it's"
    assert routes[0].path == "/it's/x"
    assert routes[0].query_params == ["abc"]
