"""Tests for static-analysis report parsing."""

import json

import pytest

from codecite.indexer.findings import (
    load_report,
    normalize_report_path,
    parse_eslint_report,
    parse_semgrep_report,
)

ESLINT_REPORT = [
    {
        "filePath": "/repo/src/users/users.service.ts",
        "messages": [
            {"ruleId": "no-eval", "severity": 2, "message": "eval can be harmful", "line": 12, "endLine": 14},
            {"ruleId": "semi", "severity": 1, "message": "Missing semicolon", "line": 3},
            {"ruleId": None, "severity": 2, "message": "Parsing error", "line": 1},
        ],
    },
    {"filePath": "", "messages": [{"ruleId": "x", "severity": 2, "message": "ignored"}]},
]

SEMGREP_REPORT = {
    "results": [
        {
            "check_id": "javascript.express.security.sqli",
            "path": "src\\db\\query.ts",
            "start": {"line": 40},
            "end": {"line": 42},
            "extra": {"severity": "ERROR", "message": "Possible SQL injection", "fingerprint": "abc"},
        },
        {"check_id": "generic.secrets", "path": "config.ts", "start": {"line": 1}, "extra": {}},
    ]
}


def test_normalize_report_path():
    assert normalize_report_path("\\src\\a.ts") == "src/a.ts"
    assert normalize_report_path("/abs/src/a.ts") == "abs/src/a.ts"


class TestParseEslintReport:
    def test_messages_become_findings(self):
        findings = parse_eslint_report(ESLINT_REPORT, "acme/api")

        assert len(findings) == 3
        first = findings[0]
        assert first.tool == "eslint"
        assert first.rule_id == "no-eval"
        assert first.severity == "error"
        assert first.path == "repo/src/users/users.service.ts"
        assert (first.start_line, first.end_line) == (12, 14)
        assert first.repo == "acme/api"

    def test_severity_mapping_and_defaults(self):
        findings = parse_eslint_report(ESLINT_REPORT, "acme/api")

        assert findings[1].severity == "warn"
        assert findings[1].end_line == 3
        assert findings[2].rule_id == "eslint"

    def test_empty_report(self):
        assert parse_eslint_report([], "acme/api") == []


class TestParseSemgrepReport:
    def test_results_become_findings(self):
        findings = parse_semgrep_report(SEMGREP_REPORT, "acme/api")

        assert len(findings) == 2
        sqli = findings[0]
        assert sqli.severity == "error"
        assert sqli.path == "src/db/query.ts"
        assert (sqli.start_line, sqli.end_line) == (40, 42)
        assert sqli.fingerprint == "abc"

    def test_missing_fields_default(self):
        secrets = parse_semgrep_report(SEMGREP_REPORT, "acme/api")[1]

        assert secrets.severity == "warn"
        assert secrets.message == ""
        assert secrets.end_line == 1


class TestLoadReport:
    def test_loads_json_file(self, tmp_path):
        report = tmp_path / "semgrep.json"
        report.write_text(json.dumps(SEMGREP_REPORT), encoding="utf-8")

        findings = load_report("semgrep", report, "acme/api")
        assert [f.rule_id for f in findings] == ["javascript.express.security.sqli", "generic.secrets"]

    def test_unknown_tool(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown report tool"):
            load_report("pylint", tmp_path / "x.json", "acme/api")
