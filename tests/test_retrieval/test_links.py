"""Tests for permalinks and path hints."""

import pytest

from codecite.indexer.models import Retrieved
from codecite.retrieval.links import ANY_REPO, PathHint, attach_links, parse_path_hints, permalink


class TestPermalink:
    def test_multi_line_span(self):
        link = permalink("https://github.com", "acme/api", "abc123", "src/a.ts", 10, 20)
        assert link == "https://github.com/acme/api/blob/abc123/src/a.ts#L10-L20"

    def test_single_line_span(self):
        assert permalink("https://github.com", "acme/api", "abc123", "src/a.ts", 7, 7).endswith("#L7")
        assert permalink("https://github.com", "acme/api", "abc123", "src/a.ts", 7).endswith("#L7")

    def test_no_anchor_without_start(self):
        link = permalink("https://github.com/", "acme/api", "abc123", "README.md", None, 12)
        assert link == "https://github.com/acme/api/blob/abc123/README.md"

    def test_path_is_quoted(self):
        link = permalink("https://github.com", "acme/api", "abc123", "docs/my file#1.md")
        assert link == "https://github.com/acme/api/blob/abc123/docs/my%20file%231.md"

    def test_attach_links(self):
        item = Retrieved(
            score=1.0,
            repo="acme/api",
            path="a.ts",
            revision="r1",
            document_id=1,
            source="chunk",
            source_id=1,
            start_line=1,
            end_line=3,
        )
        attach_links([item], "https://git.example.com")
        assert item.link == "https://git.example.com/acme/api/blob/r1/a.ts#L1-L3"


class TestParsePathHints:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("acme/api:src/users/users.controller.ts", PathHint("acme/api", "src/users/users.controller.ts")),
            ("acme/api::src/a.ts", PathHint("acme/api", "src/a.ts")),
            ("acme/api:/src/a.ts", PathHint("acme/api", "src/a.ts")),
            ("src/users/users.service.ts", PathHint(ANY_REPO, "src/users/users.service.ts")),
            ("/README.md", PathHint(ANY_REPO, "README.md")),
        ],
    )
    def test_formats(self, raw, expected):
        assert parse_path_hints([raw]) == [expected]

    def test_any_repo(self):
        assert parse_path_hints(["README.md"])[0].any_repo is True
        assert parse_path_hints(["acme/api:README.md"])[0].any_repo is False

    def test_skips_blank_and_duplicates(self):
        hints = parse_path_hints(["", "  ", "a.ts", "a.ts", "acme/api:"])
        assert hints == [PathHint(ANY_REPO, "a.ts")]

    def test_none(self):
        assert parse_path_hints(None) == []
