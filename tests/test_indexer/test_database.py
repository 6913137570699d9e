"""Tests for the SQLite database module."""

import sqlite3
import threading

import pytest

from codecite.indexer.database import (
    Database,
    decode_vector,
    encode_vector,
    query_terms,
    trigram_similarity,
)
from codecite.indexer.models import (
    Chunk,
    Document,
    Edge,
    Endpoint,
    Facts,
    Finding,
    RepoFilter,
    Symbol,
)


def make_chunk(ordinal: int, text: str, embedding: list[float] | None = None, **meta) -> Chunk:
    meta.setdefault("kind", "code")
    meta.setdefault("start_line", ordinal * 10 + 1)
    meta.setdefault("end_line", ordinal * 10 + 5)
    return Chunk(ordinal=ordinal, text=text, meta=meta, content_hash=f"h{ordinal}", embedding=embedding)


def store(
    db: Database,
    path: str,
    chunks: list[Chunk],
    repo: str = "acme/api",
    revision: str = "rev1",
    facts: Facts | None = None,
) -> int:
    doc = Document(repo=repo, revision=revision, path=path, language="typescript", content_hash=path)
    return db.index_document(doc, chunks, facts or Facts(), embed_model="test")


class TestHelpers:
    def test_query_terms(self):
        assert query_terms("POST /users create endpoint") == ["post", "/users", "create", "endpoint"]

    def test_query_terms_dedupes_and_drops_short(self):
        assert query_terms("a Users users, x") == ["users"]

    def test_trigram_similarity_bounds(self):
        assert trigram_similarity("users", "the users service") == 1.0
        assert trigram_similarity("users", "billing") < 0.3
        assert trigram_similarity("", "anything") == 0.0

    def test_vector_roundtrip_is_float32(self):
        blob = encode_vector([0.5, -1.0])
        assert len(blob) == 8
        assert decode_vector(blob).tolist() == [0.5, -1.0]
        assert encode_vector(None) is None


class TestDatabaseInitialization:
    def test_creates_database_file(self, tmp_path):
        db = Database(tmp_path / "test.db")
        db.initialize()
        assert (tmp_path / "test.db").exists()
        db.close()

    def test_creates_parent_directories(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "test.db"
        db = Database(db_path)
        db.initialize()
        assert db_path.exists()
        db.close()

    def test_initialize_is_idempotent(self, db: Database):
        db.initialize()
        assert db.list_repositories() == []

    def test_close_covers_connections_of_other_threads(self, db: Database):
        opened = []
        worker = threading.Thread(target=lambda: opened.append(db._get_connection()))
        worker.start()
        worker.join()

        db.close()

        with pytest.raises(sqlite3.ProgrammingError):
            opened[0].execute("SELECT 1")
        assert db.list_repositories() == []


class TestDocumentOperations:
    def test_upsert_is_idempotent_per_revision(self, db: Database):
        doc = Document(repo="acme/api", revision="r1", path="a.ts", content_hash="x")
        id1 = db.upsert_document(doc)
        doc.content_hash = "y"
        id2 = db.upsert_document(doc)

        assert id1 == id2
        assert db.get_document(id1).content_hash == "y"

    def test_get_nonexistent_document(self, db: Database):
        assert db.get_document(999) is None
        assert db.get_latest_document("acme/api", "missing.ts") is None

    def test_index_document_replaces_other_revisions(self, db: Database):
        old_id = store(db, "a.ts", [make_chunk(0, "old")], revision="r1")
        new_id = store(db, "a.ts", [make_chunk(0, "new")], revision="r2")

        assert old_id != new_id
        assert db.get_document(old_id) is None
        latest = db.get_latest_document("acme/api", "a.ts")
        assert latest.id == new_id
        assert latest.revision == "r2"
        assert [c.text for c in db.get_chunks(new_id)] == ["new"]

    def test_delete_path_cascades(self, db: Database):
        facts = Facts(symbols=[Symbol(kind="function", name="f", start_line=1, end_line=2)])
        doc_id = store(db, "a.ts", [make_chunk(0, "text")], facts=facts)

        assert db.delete_path("acme/api", "a.ts") == 1
        assert db.get_chunks(doc_id) == []
        assert db.get_symbols(doc_id) == []
        assert db.delete_path("acme/api", "a.ts") == 0

    def test_list_repositories(self, db: Database):
        store(db, "a.ts", [make_chunk(0, "one"), make_chunk(1, "two")], revision="r1")
        store(db, "b.ts", [make_chunk(0, "three")], revision="r2")
        store(db, "README.md", [make_chunk(0, "docs")], repo="acme/web")

        repos = db.list_repositories()

        assert [r["repo"] for r in repos] == ["acme/api", "acme/web"]
        assert repos[0]["documents"] == 2
        assert repos[0]["chunks"] == 3
        assert repos[0]["revisions"] == ["r1", "r2"]

    def test_get_indexed_paths(self, db: Database):
        store(db, "a.ts", [make_chunk(0, "x")])
        store(db, "b.ts", [make_chunk(0, "y")])
        assert db.get_indexed_paths("acme/api") == {"a.ts", "b.ts"}
        assert db.get_indexed_paths("acme/other") == set()


class TestChunkOperations:
    def test_chunks_in_ordinal_order_with_embeddings(self, db: Database):
        doc_id = store(db, "a.ts", [make_chunk(1, "second", [0.0, 1.0]), make_chunk(0, "first", [1.0, 0.0])])

        chunks = db.get_chunks(doc_id)

        assert [c.ordinal for c in chunks] == [0, 1]
        assert chunks[0].embedding == [1.0, 0.0]
        assert chunks[0].kind == "code"

    def test_get_chunk_embeddings_is_per_model(self, db: Database):
        doc_id = store(db, "a.ts", [make_chunk(0, "x", [1.0, 0.0])])

        assert db.get_chunk_embeddings(doc_id, "test") == {"h0": [1.0, 0.0]}
        assert db.get_chunk_embeddings(doc_id, "other-model") == {}

    def test_has_chunks_respects_filter(self, db: Database):
        assert db.has_chunks() is False
        store(db, "a.ts", [make_chunk(0, "x")])

        assert db.has_chunks() is True
        assert db.has_chunks(RepoFilter.only(["acme/api"])) is True
        assert db.has_chunks(RepoFilter.only(["acme/web"])) is False
        assert db.has_chunks(RepoFilter.only([])) is False


class TestFactOperations:
    def test_facts_roundtrip(self, db: Database):
        facts = Facts(
            symbols=[
                Symbol(
                    kind="interface",
                    name="CreateUserDto",
                    start_line=3,
                    end_line=6,
                    meta={"shape": {"required": ["email"]}},
                )
            ],
            endpoints=[
                Endpoint(
                    method="POST",
                    path="/users",
                    handler_name="UsersController.create",
                    start_line=17,
                    end_line=22,
                    decorators=["Post"],
                    request_shape={"type": "CreateUserDto"},
                )
            ],
            edges=[
                Edge(
                    edge_type="pubsub.publish",
                    to_kind="topic",
                    to_value="user.created",
                    start_line=20,
                    end_line=20,
                    meta={"lib": "gcp_pubsub"},
                )
            ],
        )
        doc_id = store(db, "users.controller.ts", [make_chunk(0, "x")], facts=facts)

        assert db.get_symbols(doc_id)[0].meta == {"shape": {"required": ["email"]}}
        endpoint = db.get_endpoints(doc_id)[0]
        assert endpoint.decorators == ["Post"]
        assert endpoint.request_shape == {"type": "CreateUserDto"}
        assert endpoint.response_shape is None
        assert db.get_edges(doc_id)[0].meta == {"lib": "gcp_pubsub"}

    def test_reindex_replaces_facts(self, db: Database):
        first = Facts(symbols=[Symbol(kind="function", name="old", start_line=1, end_line=1)])
        second = Facts(symbols=[Symbol(kind="function", name="new", start_line=1, end_line=1)])
        store(db, "a.ts", [make_chunk(0, "x")], facts=first)
        doc_id = store(db, "a.ts", [make_chunk(0, "y")], facts=second)

        assert [s.name for s in db.get_symbols(doc_id)] == ["new"]

    def test_failed_write_leaves_previous_generation(self, db: Database, monkeypatch):
        doc_id = store(db, "a.ts", [make_chunk(0, "kept")])

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(db, "_insert_edges", broken)
        with pytest.raises(sqlite3.OperationalError):
            store(db, "a.ts", [make_chunk(0, "lost")], revision="rev1")

        assert [c.text for c in db.get_chunks(doc_id)] == ["kept"]


class TestFindings:
    def test_resolve_path_exact_then_suffix(self, db: Database):
        store(db, "src/users/users.service.ts", [make_chunk(0, "x")])
        store(db, ".github/workflows/ci.yml", [make_chunk(0, "y")])

        assert db.resolve_path("acme/api", "./src/users/users.service.ts") == "src/users/users.service.ts"
        assert db.resolve_path("acme/api", ".github/workflows/ci.yml") == ".github/workflows/ci.yml"
        assert (
            db.resolve_path("acme/api", "/home/ci/build/src/users/users.service.ts")
            == "src/users/users.service.ts"
        )
        assert db.resolve_path("acme/api", "C:\\work\\src\\users\\users.service.ts") == (
            "src/users/users.service.ts"
        )
        assert db.resolve_path("acme/api", "other.ts") is None

    def test_findings_link_and_survive_reindex(self, db: Database):
        doc_id = store(db, "src/a.ts", [make_chunk(0, "x")], revision="r1")
        count = db.insert_findings(
            "acme/api",
            [
                Finding(tool="eslint", rule_id="no-eval", severity="error", message="eval", path="/ci/src/a.ts", start_line=3),
                Finding(tool="eslint", rule_id="semi", severity="warn", message="semi", path="src/a.ts", start_line=4),
            ],
        )
        assert count == 2
        assert [f.rule_id for f in db.get_findings(doc_id)] == ["no-eval", "semi"]

        new_id = store(db, "src/a.ts", [make_chunk(0, "changed")], revision="r2")

        assert [f.rule_id for f in db.get_findings(new_id)] == ["no-eval", "semi"]

    def test_findings_before_indexing_are_linked_later(self, db: Database):
        db.insert_findings(
            "acme/api",
            [Finding(tool="semgrep", rule_id="sqli", severity="high", message="m", path="src/b.ts")],
        )
        doc_id = store(db, "src/b.ts", [make_chunk(0, "x")])

        assert [f.rule_id for f in db.get_findings(doc_id)] == ["sqli"]

    def test_collect_facts_keeps_high_severity_findings(self, db: Database):
        facts = Facts(
            endpoints=[
                Endpoint(method="GET", path="/users", handler_name="UsersController.list", start_line=5, end_line=9)
            ]
        )
        doc_id = store(db, "src/a.ts", [make_chunk(0, "x")], facts=facts)
        db.insert_findings(
            "acme/api",
            [
                Finding(tool="eslint", rule_id="no-eval", severity="error", message="eval", path="src/a.ts"),
                Finding(tool="eslint", rule_id="semi", severity="warn", message="semi", path="src/a.ts"),
            ],
        )

        collected = db.collect_facts([doc_id, doc_id])

        assert collected["endpoints"] == [
            {
                "repo": "acme/api",
                "path": "src/a.ts",
                "method": "GET",
                "route": "/users",
                "handler": "UsersController.list",
                "start": 5,
                "end": 9,
            }
        ]
        assert [f["rule_id"] for f in collected["findings"]] == ["no-eval"]
        assert db.collect_facts([]) == {"endpoints": [], "symbols": [], "edges": [], "findings": []}


class TestSearchSignals:
    @pytest.fixture
    def populated(self, db: Database) -> Database:
        facts = Facts(
            symbols=[Symbol(kind="method", name="UsersController.create", start_line=17, end_line=22, signature="create(dto)")],
            endpoints=[
                Endpoint(method="POST", path="/users", handler_name="UsersController.create", start_line=17, end_line=22)
            ],
            edges=[
                Edge(
                    edge_type="pubsub.publish",
                    to_kind="topic",
                    to_value="user.created",
                    start_line=20,
                    end_line=20,
                    from_symbol_name="UsersController.create",
                )
            ],
        )
        store(
            db,
            "src/users/users.controller.ts",
            [
                make_chunk(0, "create user handler", [1.0, 0.0], symbol="POST /users"),
                make_chunk(1, "KIND: endpoint\nROUTE: POST /users", [0.9, 0.1], kind="factsheet"),
            ],
            facts=facts,
        )
        store(db, "README.md", [make_chunk(0, "billing invoices overview", [0.0, 1.0], kind="section")], repo="acme/web")
        return db

    def test_vector_search_ranks_by_cosine(self, populated: Database):
        results = populated.vector_search([1.0, 0.0], 2, RepoFilter.all_repos())

        assert [r.preview for r in results] == ["create user handler", "KIND: endpoint\nROUTE: POST /users"]
        assert results[0].score == pytest.approx(1.0)
        assert results[0].source == "chunk"
        assert results[1].is_factsheet is True

    def test_vector_search_respects_filter_and_dimension(self, populated: Database):
        results = populated.vector_search([0.0, 1.0], 5, RepoFilter.only(["acme/web"]))
        assert [r.repo for r in results] == ["acme/web"]
        assert populated.vector_search([1.0, 0.0, 0.0], 5, RepoFilter.all_repos()) == []
        assert populated.vector_search([0.0, 0.0], 5, RepoFilter.all_repos()) == []

    def test_lexical_search(self, populated: Database):
        results = populated.lexical_search("billing invoice", 5, RepoFilter.all_repos())

        assert results[0].path == "README.md"
        assert 0 < results[0].score <= 1.0

    def test_lexical_search_min_similarity(self, populated: Database):
        assert populated.lexical_search("billing zzzzqqq", 5, RepoFilter.all_repos(), min_similarity=0.9) == []
        assert populated.lexical_search("   ", 5, RepoFilter.all_repos()) == []

    def test_endpoint_pins(self, populated: Database):
        pins = populated.endpoint_pins(query_terms("POST /users create endpoint"), RepoFilter.all_repos())

        assert len(pins) == 1
        assert pins[0].source == "endpoint"
        assert pins[0].symbol == "UsersController.create"
        assert pins[0].path == "src/users/users.controller.ts"
        assert pins[0].preview == "POST /users -> UsersController.create"

    def test_symbol_and_edge_pins(self, populated: Database):
        symbols = populated.symbol_pins(["create"], RepoFilter.all_repos())
        edges = populated.edge_pins(["user.created"], RepoFilter.all_repos())

        assert [s.symbol for s in symbols] == ["UsersController.create"]
        assert symbols[0].preview == "create(dto)"
        assert edges[0].source == "edge"
        assert edges[0].preview == "pubsub.publish -> topic:user.created"

    def test_pins_respect_filter(self, populated: Database):
        assert populated.endpoint_pins(["users"], RepoFilter.only(["acme/web"])) == []
        assert populated.symbol_pins([], RepoFilter.all_repos()) == []

    def test_get_by_path_orders_factsheets_last(self, populated: Database):
        items = populated.get_by_path(None, "/src/users/users.controller.ts", 8)

        assert [i.is_factsheet for i in items] == [False, True]
        assert items[0].symbol == "POST /users"
        assert populated.get_by_path("acme/web", "src/users/users.controller.ts", 8) == []
