"""Command line behaviour: exit codes, output files, env defaults."""
import functools
import json

import pytest

import swagx
from fakes import FakeSession
from security_tester import SecurityTester

DOC = {
    "openapi": "3.0.3",
    "info": {"title": "Shop", "version": "1"},
    "paths": {
        "/health": {"get": {"operationId": "health", "responses": {"200": {"description": "ok"}}}},
        "/orders/{id}": {
            "get": {
                "operationId": "getOrder",
                "parameters": [{"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}}],
                "responses": {"200": {"description": "ok"}},
            }
        },
    },
}


@pytest.fixture
def spec_file(tmp_path, monkeypatch):
    for var in ("SWAGX_BASE_URL", "SWAGX_API_KEY", "SWAGX_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    p = tmp_path / "shop.json"
    p.write_text(json.dumps(DOC), encoding="utf-8")
    return p


@pytest.fixture
def offline(monkeypatch):
    session = FakeSession()
    monkeypatch.setattr(swagx, "SecurityTester", functools.partial(SecurityTester, session=session))
    return session


def test_parse_prints_endpoint_table(spec_file, capsys):
    assert swagx.main(["parse", str(spec_file)]) == 0
    out = capsys.readouterr().out
    assert "Shop (version 1) - 2 endpoints" in out
    assert "getOrder" in out


def test_parse_writes_catalog(spec_file, tmp_path):
    target = tmp_path / "out" / "catalog.json"
    assert swagx.main(["parse", str(spec_file), "-o", str(target)]) == 0
    data = json.loads(target.read_text(encoding="utf-8"))
    assert {e["operationId"] for e in data["endpoints"]} == {"health", "getOrder"}


def test_parse_error_exit_code(tmp_path, capsys):
    assert swagx.main(["parse", str(tmp_path / "nope.json")]) == 1
    assert "FAIL" in capsys.readouterr().out


def test_test_without_base_url_fails(spec_file):
    assert swagx.main(["test", str(spec_file)]) == 1


def test_scan_without_base_url_only_parses(spec_file, capsys):
    assert swagx.main(["scan", str(spec_file)]) == 0
    assert "skipping security tests" in capsys.readouterr().out


def test_test_writes_report(spec_file, tmp_path, offline):
    report = tmp_path / "report.json"
    rc = swagx.main(["test", str(spec_file), "-b", "api.test", "--burst", "3", "--backoff", "0", "-r", str(report)])
    assert rc == 0
    data = json.loads(report.read_text(encoding="utf-8"))
    assert data["totalEndpoints"] == 2
    assert data["scannedEndpoints"] == 2
    assert data["summary"]["byCategory"] == {"rate_limit": 2}
    assert offline.urls()[0].startswith("http://api.test/")


def test_scan_uses_env_base_url(spec_file, tmp_path, monkeypatch, offline):
    monkeypatch.setenv("SWAGX_BASE_URL", "http://env.test")
    rc = swagx.main(["scan", str(spec_file), "-o", str(tmp_path / "results"), "--burst", "2"])
    assert rc == 0
    saved = tmp_path / "results" / swagx.DEFAULT_REPORT_NAME
    assert json.loads(saved.read_text(encoding="utf-8"))["incomplete"] is False
    assert all(u.startswith("http://env.test/") for u in offline.urls())


def test_malformed_header_is_config_error(spec_file, offline):
    assert swagx.main(["test", str(spec_file), "-b", "api.test", "--header", "no-separator"]) == 1
    assert offline.calls == []
