########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
"""Response classification.

A fixed table of rules maps a category to a pure predicate and a severity. Each
predicate looks only at the test case, the endpoint's baseline result and the
results of the test case itself. A predicate that lacks the data it needs
returns no hits.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple
import json
import logging
import re

from openapi_universal import object_properties
from scan_models import Category, Endpoint, ExecutionResult, Finding, Severity, TestCase

logger = logging.getLogger(__name__)

LATENCY_FACTOR = 3.0
LATENCY_FLOOR_MS = 100.0

DEFAULT_SENSITIVE_NAMES: Tuple[str, ...] = (
    "password", "passwd", "pwd", "secret", "token", "apikey", "api_key",
    "private_key", "client_secret", "ssn", "credit_card", "card_number", "cvv",
    "salary", "bank_account", "iban", "is_admin", "permissions", "session",
)

FS_MARKERS = (
    "root:x:0:0:", "daemon:x:1:1:", "bin:x:", "/bin/bash",
    "for 16-bit app support", "[extensions]", "[fonts]",
)

Hit = Tuple[Optional[str], str]


@dataclass(frozen=True)
class AnalysisContext:
    sensitive_names: Tuple[str, ...] = DEFAULT_SENSITIVE_NAMES
    latency_floor_ms: float = LATENCY_FLOOR_MS


@dataclass(frozen=True)
class Rule:
    category: Category
    applies_to: Optional[FrozenSet[Category]]
    predicate: Callable[[TestCase, Optional[ExecutionResult], Sequence[ExecutionResult], AnalysisContext], List[Hit]]
    severity: Severity


#================funtion _answered results that got an HTTP response ##########
def _answered(results: Sequence[ExecutionResult]) -> List[ExecutionResult]:
    return [r for r in results or () if r is not None and r.transport_error is None and r.status_code is not None]


#================funtion _json_body parse a JSON body snippet, None if not JSON ##########
def _json_body(res: ExecutionResult) -> Any:
    if "json" not in res.content_type:
        return None
    try:
        return json.loads(res.body_snippet)
    except ValueError:
        return None


#================funtion _json_objects top-level JSON objects of a response ##########
def _json_objects(res: ExecutionResult) -> List[Dict[str, Any]]:
    data = _json_body(res)
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    return []


#================funtion _normalize_name lowercase without separators ##########
def _normalize_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


#================funtion _sqli_predicate error or time based SQL injection signal ##########
def _sqli_predicate(tc, baseline, results, ctx) -> List[Hit]:
    if baseline is None or baseline.status_code is None or baseline.transport_error:
        return []
    hits: List[Hit] = []
    for res in _answered(results)[:1]:
        if res.status_code == 500 and baseline.status_code in (200, 201):
            hits.append((tc.target.name, f"Status 500 for payload, baseline returned {baseline.status_code}"))
        elif (
            baseline.latency_ms > 0
            and res.latency_ms >= LATENCY_FACTOR * baseline.latency_ms
            and res.latency_ms - baseline.latency_ms >= ctx.latency_floor_ms
        ):
            hits.append((tc.target.name, f"Latency {res.latency_ms:.0f}ms vs baseline {baseline.latency_ms:.0f}ms"))
    return hits


#================funtion _markup_predicate payload reflected unescaped ##########
def _markup_predicate(tc, baseline, results, ctx) -> List[Hit]:
    payload = str(tc.payload or "")
    if not payload:
        return []
    for res in _answered(results):
        ctype = res.content_type
        if ("html" in ctype or "json" in ctype) and payload in res.body_snippet:
            return [(tc.target.name, f"Payload reflected unescaped in {ctype.split(';')[0]} response (status {res.status_code})")]
    return []


#================funtion _traversal_predicate filesystem markers or 404 -> 200 ##########
def _traversal_predicate(tc, baseline, results, ctx) -> List[Hit]:
    for res in _answered(results):
        low = res.body_snippet.lower()
        marker = next((m for m in FS_MARKERS if m in low), None)
        if marker:
            return [(tc.target.name, f"Filesystem marker '{marker}' in response body")]
        if res.status_code == 200 and baseline is not None and baseline.status_code == 404:
            return [(tc.target.name, "Status 200 for traversal payload, baseline returned 404")]
    return []


#================funtion _auth_bypass_predicate 2xx without valid credentials ##########
def _auth_bypass_predicate(tc, baseline, results, ctx) -> List[Hit]:
    if not tc.endpoint.declares_security:
        return []
    for res in _answered(results):
        if res.ok:
            return [(tc.target.name, f"Status {res.status_code} with credential {tc.target.auth_mode or 'mutated'}")]
    return []


#================funtion _declared_response_keys property names of the documented response ##########
def _declared_response_keys(endpoint: Endpoint, status: int) -> Optional[set]:
    responses = endpoint.responses or {}
    spec = responses.get(str(status)) or responses.get(f"{status // 100}XX") or responses.get("default")
    if spec is None:
        return None
    content = spec.get("content") or {}
    keys = set()
    for ctype, media in content.items():
        if "json" not in ctype or not isinstance(media, dict):
            continue
        schema = media.get("schema") or {}
        if isinstance(schema, dict) and schema.get("type") == "array":
            schema = schema.get("items") or {}
        keys.update(object_properties(schema))
    return keys


#================funtion _exposure_predicate undocumented sensitive keys in a 2xx JSON body ##########
def _exposure_predicate(tc, baseline, results, ctx) -> List[Hit]:
    names = [_normalize_name(n) for n in ctx.sensitive_names if _normalize_name(n)]
    if not names:
        return []
    hits: List[Hit] = []
    reported = set()
    for res in _answered(results):
        if not res.ok:
            continue
        objs = _json_objects(res)
        if not objs:
            continue
        # no documented schema means every key is undocumented
        declared = _declared_response_keys(tc.endpoint, res.status_code) or set()
        for obj in objs:
            for key in obj:
                if key in declared or key in reported:
                    continue
                norm = _normalize_name(key)
                if any(n in norm for n in names):
                    reported.add(key)
                    hits.append((str(key), f"Undocumented sensitive field '{key}' in {res.status_code} response"))
    return hits


#================funtion _mass_assignment_predicate injected field echoed back ##########
def _mass_assignment_predicate(tc, baseline, results, ctx) -> List[Hit]:
    if not isinstance(tc.payload, dict) or not tc.payload:
        return []
    field_name, value = next(iter(tc.payload.items()))
    for res in _answered(results):
        if not res.ok:
            continue
        objs = _json_objects(res)
        if any(field_name in obj and obj[field_name] == value for obj in objs):
            return [(field_name, f"Injected field '{field_name}'={value!r} echoed in {res.status_code} response")]
    return []


#================funtion _rate_limit_predicate burst never throttled ##########
def _rate_limit_predicate(tc, baseline, results, ctx) -> List[Hit]:
    answered = _answered(results)
    if not answered:
        return []
    statuses = [r.status_code for r in answered]
    if 429 in statuses:
        return []
    return [(None, f"{len(answered)}/{len(results)} burst requests answered, none with status 429")]


RULES: Tuple[Rule, ...] = (
    Rule(Category.SQL_INJECTION, frozenset({Category.SQL_INJECTION}), _sqli_predicate, Severity.HIGH),
    Rule(Category.MARKUP_INJECTION, frozenset({Category.MARKUP_INJECTION}), _markup_predicate, Severity.MEDIUM),
    Rule(Category.PATH_TRAVERSAL, frozenset({Category.PATH_TRAVERSAL}), _traversal_predicate, Severity.HIGH),
    Rule(Category.AUTH_BYPASS, frozenset({Category.AUTH_BYPASS}), _auth_bypass_predicate, Severity.CRITICAL),
    Rule(Category.DATA_EXPOSURE, None, _exposure_predicate, Severity.HIGH),
    Rule(Category.MASS_ASSIGNMENT, frozenset({Category.MASS_ASSIGNMENT}), _mass_assignment_predicate, Severity.MEDIUM),
    Rule(Category.RATE_LIMIT, frozenset({Category.RATE_LIMIT}), _rate_limit_predicate, Severity.LOW),
)


# ----------------------- Funtion analyze ----------------------------#
def analyze(
    test_case: TestCase,
    baseline_results: Optional[Sequence[ExecutionResult]],
    test_results: Optional[Sequence[ExecutionResult]],
    sensitive_names: Sequence[str] = DEFAULT_SENSITIVE_NAMES,
    latency_floor_ms: float = LATENCY_FLOOR_MS,
) -> List[Finding]:
    if not test_results:
        return []
    ctx = AnalysisContext(tuple(sensitive_names), float(latency_floor_ms))
    baseline = next(iter(baseline_results or ()), None)
    findings: List[Finding] = []
    for rule in RULES:
        if rule.applies_to is not None and test_case.category not in rule.applies_to:
            continue
        for parameter, evidence in rule.predicate(test_case, baseline, test_results, ctx):
            findings.append(Finding(
                endpoint_ref=test_case.endpoint_ref,
                path=test_case.endpoint.path,
                method=test_case.endpoint.method,
                category=rule.category,
                severity=rule.severity,
                evidence=evidence,
                test_case_id=test_case.id,
                parameter=parameter,
                payload=test_case.payload,
            ))
    return findings
