"""Deduplication, ordering and summary counts."""
from result_aggregator import aggregate, summarize
from scan_models import Category, Finding, Severity


def _finding(ref="getUser", path="/users/{id}", method="GET", category=Category.SQL_INJECTION,
             severity=Severity.HIGH, parameter="id", tc="t1", evidence="e"):
    return Finding(ref, path, method, category, severity, evidence, tc, parameter)


def test_duplicates_collapse_to_one():
    findings = [
        _finding(tc="t2", evidence="latency"),
        _finding(tc="t1", evidence="status 500"),
        _finding(tc="t3"),
    ]
    report = aggregate(findings, total_endpoints=1, scanned_endpoints=1)
    assert len(report.findings) == 1
    # the smallest test case id survives
    assert report.findings[0].test_case_id == "t1"
    assert report.summary["bySeverity"]["high"] == 1


def test_distinct_parameters_and_severities_are_kept():
    findings = [
        _finding(parameter="id"),
        _finding(parameter="q"),
        _finding(parameter="id", severity=Severity.LOW),
        _finding(ref="other", path="/other"),
    ]
    assert len(aggregate(findings).findings) == 4


def test_sort_order_is_stable():
    findings = [
        _finding(ref="b", path="/b", category=Category.RATE_LIMIT, severity=Severity.LOW, parameter=None),
        _finding(ref="a", path="/a", method="POST", category=Category.MASS_ASSIGNMENT, parameter="is_admin"),
        _finding(ref="a2", path="/a", method="GET", category=Category.AUTH_BYPASS, severity=Severity.CRITICAL, parameter="key"),
        _finding(ref="a2", path="/a", method="GET", category=Category.AUTH_BYPASS, severity=Severity.CRITICAL, parameter=None),
    ]
    ordered = aggregate(findings).findings
    assert [(f.path, f.method, f.category.value, f.parameter) for f in ordered] == [
        ("/a", "GET", "auth_bypass", None),
        ("/a", "GET", "auth_bypass", "key"),
        ("/a", "POST", "mass_assignment", "is_admin"),
        ("/b", "GET", "rate_limit", None),
    ]
    assert aggregate(list(reversed(findings))).findings == ordered


def test_summary_has_zero_counts_for_every_severity():
    summary = summarize([_finding(severity=Severity.CRITICAL, category=Category.AUTH_BYPASS)])
    assert summary["bySeverity"] == {"critical": 1, "high": 0, "medium": 0, "low": 0, "info": 0}
    assert summary["byCategory"] == {"auth_bypass": 1}


def test_empty_report():
    report = aggregate([], total_endpoints=3, scanned_endpoints=3)
    assert report.findings == ()
    assert sum(report.summary["bySeverity"].values()) == 0
    assert report.summary["byCategory"] == {}
    assert report.to_dict()["totalEndpoints"] == 3


def test_aggregation_is_idempotent():
    findings = [_finding(tc="t2"), _finding(tc="t1"), _finding(parameter="q")]
    once = aggregate(findings)
    twice = aggregate(once.findings)
    assert once.findings == twice.findings
    assert once.summary == twice.summary


def test_incomplete_flag_and_counts_pass_through():
    report = aggregate([_finding()], total_endpoints=5, incomplete=True, scanned_endpoints=2)
    data = report.to_dict()
    assert data["incomplete"] is True
    assert data["scannedEndpoints"] == 2
    assert data["totalEndpoints"] == 5
    assert data["findings"][0]["category"] == "sql_injection"
    assert data["summary"]["byCategory"] == {"sql_injection": 1}
