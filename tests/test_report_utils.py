"""Report and catalog rendering."""
import csv
import io
import json

import pytest
import yaml

from report_utils import ReportGenerator, format_for_path, render_catalog, save_catalog
from result_aggregator import aggregate
from scan_models import Category, Endpoint, Finding, Parameter, ScanError, Severity


def _report(incomplete=False):
    findings = [
        Finding("getUser", "/users/{id}", "GET", Category.AUTH_BYPASS, Severity.CRITICAL,
                "Status 200 with credential remove", "t1", "apiKey"),
        Finding("search", "/search", "GET", Category.MARKUP_INJECTION, Severity.MEDIUM,
                "Payload reflected unescaped in text/html response (status 200)", "t2", "q",
                "<script>alert(1)</script>"),
    ]
    return aggregate(findings, total_endpoints=2, incomplete=incomplete, scanned_endpoints=2)


def _gen(report=None):
    return ReportGenerator(report or _report(), "http://api.test", timestamp="2026-10-19 10:00:00")


def test_json_and_yaml_carry_the_report_shape():
    data = json.loads(_gen().render("json"))
    assert data["summary"]["bySeverity"]["critical"] == 1
    assert data["scannedEndpoints"] == 2
    assert [f["category"] for f in data["findings"]] == ["markup_injection", "auth_bypass"]
    assert yaml.safe_load(_gen().render("yaml")) == data


def test_csv_has_one_row_per_finding():
    rows = list(csv.DictReader(io.StringIO(_gen().render("csv"))))
    assert len(rows) == 2
    assert {r["severity"] for r in rows} == {"critical", "medium"}
    assert rows[1]["parameter"] == "apiKey"


def test_table_and_markdown():
    table = _gen().render("table")
    assert "Endpoints scanned: 2/2" in table
    assert "CRITICAL" in table
    md = _gen().render("markdown")
    assert "## [MEDIUM] markup_injection: GET /search" in md
    assert "http://api.test" in md


def test_empty_report_says_so():
    empty = aggregate([], total_endpoints=1, scanned_endpoints=1)
    assert "No vulnerabilities found" in _gen(empty).render("table")
    assert "No Security Issues Found" in _gen(empty).render("html")


def test_incomplete_run_is_flagged():
    assert "INCOMPLETE" in _gen(_report(incomplete=True)).render("table")


def test_html_escapes_payloads():
    out = _gen().render("html")
    assert "<script>alert(1)</script>" not in out
    assert "&lt;script&gt;" in out


def test_unknown_format_raises():
    with pytest.raises(ScanError):
        _gen().render("pdf")


def test_save_picks_format_from_extension(tmp_path):
    out = _gen().save(tmp_path / "nested" / "report.md")
    assert out.read_text(encoding="utf-8").startswith("# SWAGX Report")
    assert format_for_path("r.yml") == "yaml"
    assert format_for_path("r.txt") == "table"
    assert format_for_path("r.unknown") == "json"


CATALOG = {
    "info": {"title": "Users", "version": "2"},
    "servers": [],
    "security": [],
    "components": {},
    "endpoints": [
        Endpoint(path="/users/{id}", method="GET", operation_id="getUser",
                 parameters=(Parameter("id", "path", required=True, schema={"type": "integer"}),),
                 security=({"key": []},)),
        Endpoint(path="/health", method="GET", operation_id="health"),
    ],
}


def test_catalog_rendering(tmp_path):
    data = json.loads(render_catalog(CATALOG, "json"))
    assert [e["operationId"] for e in data["endpoints"]] == ["getUser", "health"]
    assert data["endpoints"][0]["parameters"][0]["in"] == "path"

    table = render_catalog(CATALOG, "table")
    assert table.startswith("Users (version 2) - 2 endpoints")
    assert "getUser" in table

    rows = list(csv.reader(io.StringIO(render_catalog(CATALOG, "csv"))))
    assert rows[1][:3] == ["GET", "/users/{id}", "getUser"]
    assert rows[1][5] == "True"

    out = save_catalog(CATALOG, tmp_path / "cat.yaml")
    assert yaml.safe_load(out.read_text(encoding="utf-8"))["info"]["title"] == "Users"

    with pytest.raises(ScanError):
        render_catalog(CATALOG, "xml")
