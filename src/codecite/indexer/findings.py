"""Parsers for static-analysis reports (ESLint and Semgrep JSON)."""

import json
import logging
from pathlib import Path
from typing import Any

from codecite.indexer.models import Finding

logger = logging.getLogger(__name__)

ESLINT_SEVERITIES = {2: "error", 1: "warn"}


def normalize_report_path(path: str) -> str:
    return path.replace("\\", "/").lstrip("/")


def parse_eslint_report(data: list[dict[str, Any]], repo: str) -> list[Finding]:
    """One finding per ESLint message. Severity 2 is ``error``, anything else ``warn``."""
    findings: list[Finding] = []
    for file_result in data or []:
        path = normalize_report_path(file_result.get("filePath") or "")
        if not path:
            continue
        for message in file_result.get("messages") or []:
            line = message.get("line")
            findings.append(
                Finding(
                    tool="eslint",
                    rule_id=message.get("ruleId") or "eslint",
                    severity=ESLINT_SEVERITIES.get(message.get("severity"), "warn"),
                    message=message.get("message") or "",
                    path=path,
                    start_line=line,
                    end_line=message.get("endLine") or line,
                    repo=repo,
                )
            )
    return findings


def parse_semgrep_report(data: dict[str, Any], repo: str) -> list[Finding]:
    """One finding per Semgrep result; severities are lower-cased."""
    findings: list[Finding] = []
    for result in (data or {}).get("results") or []:
        extra = result.get("extra") or {}
        start = (result.get("start") or {}).get("line")
        end = (result.get("end") or {}).get("line") or start
        findings.append(
            Finding(
                tool="semgrep",
                rule_id=result.get("check_id") or "semgrep",
                severity=(extra.get("severity") or "warn").lower(),
                message=extra.get("message") or "",
                path=normalize_report_path(result.get("path") or ""),
                start_line=start,
                end_line=end,
                fingerprint=extra.get("fingerprint"),
                repo=repo,
            )
        )
    return findings


REPORT_PARSERS = {
    "eslint": parse_eslint_report,
    "semgrep": parse_semgrep_report,
}


def load_report(tool: str, path: Path, repo: str) -> list[Finding]:
    """Read a JSON report from disk and parse it with the tool's parser."""
    parser = REPORT_PARSERS.get(tool)
    if parser is None:
        raise ValueError(f"Unknown report tool: {tool}. Use one of: {', '.join(REPORT_PARSERS)}")
    data = json.loads(path.read_text(encoding="utf-8"))
    findings = parser(data, repo)
    logger.info("Parsed %d %s findings from %s", len(findings), tool, path)
    return findings
