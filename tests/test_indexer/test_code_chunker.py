"""Tests for structural chunking of source code and controllers."""

from codecite.indexer.chunker import chunk
from codecite.indexer.code_chunker import chunk_controller, chunk_python, chunk_script

USERS_SERVICE = """\
export function slugify(name: string): string {
  return name.toLowerCase();
}

export class UsersService {
  findOne(id: string) {
    return id;
  }
}

export const DEFAULT_ROLE = 'member';
"""

PYTHON_MODULE = """\
import os

# Loads things
@cache
def load(path):
    return path


class Store:
    def get(self, key):
        return key

LIMIT = 10
"""


class TestChunkScript:
    def test_declarations_in_discovery_order(self):
        units = chunk_script(USERS_SERVICE, "src/users/users.service.ts")

        assert [u.symbol for u in units] == [
            "slugify",
            "UsersService",
            "UsersService.findOne",
            "DEFAULT_ROLE",
        ]
        assert all(u.kind == "code" for u in units)

    def test_spans_cover_export_statements(self):
        units = {u.symbol: u for u in chunk_script(USERS_SERVICE, "src/users/users.service.ts")}

        assert (units["slugify"].start_line, units["slugify"].end_line) == (1, 3)
        assert units["slugify"].text.startswith("export function slugify")
        assert (units["UsersService"].start_line, units["UsersService"].end_line) == (5, 9)
        assert (units["UsersService.findOne"].start_line, units["UsersService.findOne"].end_line) == (6, 8)
        assert (units["DEFAULT_ROLE"].start_line, units["DEFAULT_ROLE"].end_line) == (11, 11)


class TestChunkController:
    def test_one_chunk_per_route(self, users_controller):
        units = chunk_controller(users_controller, "src/users/users.controller.ts")

        assert [u.symbol for u in units] == ["GET /users/:id", "POST /users"]
        assert [u.title for u in units] == ["UsersController.findOne", "UsersController.create"]
        assert all(u.kind == "route" for u in units)

    def test_route_span_includes_decorators(self, users_controller):
        units = chunk_controller(users_controller, "src/users/users.controller.ts")
        create = units[1]

        assert create.text.startswith("@Post()")
        assert (create.start_line, create.end_line) == (17, 22)
        assert create.extra == {"method": "POST", "route": "/users"}

    def test_controller_without_routes_is_one_chunk(self):
        content = "@Controller('health')\nexport class HealthController {\n  ping() { return 'ok'; }\n}\n"
        chunks = chunk(content, "src/health.controller.ts")

        assert len(chunks) == 1
        assert chunks[0].kind == "file"

    def test_route_meta_reaches_chunks(self, users_controller):
        chunks = chunk(users_controller, "src/users/users.controller.ts")

        assert chunks[1].symbol == "POST /users"
        assert chunks[1].meta["method"] == "POST"
        assert chunks[1].meta["route"] == "/users"
        assert chunks[1].meta["title"] == "UsersController.create"


class TestChunkPython:
    def test_functions_classes_methods_and_assignments(self):
        units = chunk_python(PYTHON_MODULE, "app/store.py")
        assert [u.symbol for u in units] == ["load", "Store", "Store.get", "LIMIT"]

    def test_span_includes_decorators_and_comments(self):
        load = chunk_python(PYTHON_MODULE, "app/store.py")[0]

        assert (load.start_line, load.end_line) == (3, 6)
        assert load.text.startswith("# Loads things\n@cache")

    def test_method_span(self):
        units = {u.symbol: u for u in chunk_python(PYTHON_MODULE, "app/store.py")}
        assert (units["Store"].start_line, units["Store"].end_line) == (9, 11)
        assert (units["Store.get"].start_line, units["Store.get"].end_line) == (10, 11)
        assert (units["LIMIT"].start_line, units["LIMIT"].end_line) == (13, 13)

    def test_syntax_error_yields_nothing(self):
        assert chunk_python("def broken(:\n", "bad.py") == []
