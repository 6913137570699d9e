"""Tests for factsheet chunks."""

from codecite.indexer.facts import extract
from codecite.indexer.factsheet import FACTSHEET_KIND, build_factsheets, json_compact, one_line
from codecite.indexer.models import Endpoint, Facts, Symbol


def test_one_line_collapses_whitespace_and_truncates():
    assert one_line("a\n   b\tc") == "a b c"
    assert one_line("x" * 20, max_chars=10) == "x" * 10 + " …"


def test_json_compact_is_sorted_and_tight():
    assert json_compact({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'


class TestBuildFactsheets:
    def test_endpoints_then_symbols_with_continuing_ordinals(self):
        facts = Facts(
            symbols=[Symbol(kind="function", name="slugify", start_line=1, end_line=3, language="typescript")],
            endpoints=[
                Endpoint(
                    method="POST",
                    path="/users",
                    handler_name="UsersController.create",
                    start_line=17,
                    end_line=22,
                    language="typescript",
                )
            ],
        )
        sheets = build_factsheets(facts, "src/users/users.controller.ts", start_ordinal=5)

        assert [s.ordinal for s in sheets] == [5, 6]
        assert all(s.kind == FACTSHEET_KIND for s in sheets)
        assert sheets[0].meta["subtype"] == "endpoint"
        assert sheets[0].meta["title"] == "POST /users"
        assert sheets[0].symbol == "UsersController.create"
        assert (sheets[0].start_line, sheets[0].end_line) == (17, 22)
        assert sheets[1].meta["subtype"] == "symbol"
        assert sheets[1].meta["title"] == "function:slugify"

    def test_endpoint_text(self, users_controller):
        facts = extract(users_controller, "src/users/users.controller.ts")
        sheets = build_factsheets(facts, "src/users/users.controller.ts", start_ordinal=0)
        create = next(s for s in sheets if s.meta["title"] == "POST /users")

        lines = create.text.split("\n")
        assert lines[0] == "KIND: endpoint"
        assert "FILE: src/users/users.controller.ts" in lines
        assert "SPAN: L17-22" in lines
        assert "ROUTE: POST /users" in lines
        assert "HANDLER: UsersController.create" in lines
        assert 'REQUEST: {"type":"CreateUserDto"}' in lines
        assert "DECORATORS: Post" in lines

    def test_symbol_text_includes_shape(self, users_controller):
        facts = extract(users_controller, "src/users/users.controller.ts")
        sheets = build_factsheets(facts, "src/users/users.controller.ts", start_ordinal=0)
        dto = next(s for s in sheets if s.symbol == "CreateUserDto")

        assert dto.text.startswith("KIND: interface\nLANG: typescript\nNAME: CreateUserDto")
        assert "SHAPE: " in dto.text

    def test_no_facts_no_sheets(self):
        assert build_factsheets(Facts(), "README.md", start_ordinal=3) == []
