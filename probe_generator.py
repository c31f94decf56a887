########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
"""Turns catalog endpoints into an ordered list of TestCases.

Pure: the same endpoints always give the same cases, in the same order, with
the same ids. Credentials are not resolved here; a request only records where
each declared credential goes (``auth`` placements) and the executor fills in
the values.
"""
from __future__ import annotations
from copy import deepcopy
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import hashlib
import logging

from auth_utils import MODE_APPLY, bypass_mode, declared_placements
from openapi_universal import body_from_schema, build_request, flatten_schema, multipart_fields, object_properties, schema_type, synthesize_operation_id
from scan_models import PARAMETER_LOCATIONS, Category, Endpoint, Parameter, ProbeTarget, TestCase

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_BURST = 20

SQLI_PAYLOADS = (
    "' OR '1'='1' --",
    "1' AND SLEEP(3)-- -",
    "'; SELECT SLEEP(5)-- ",
)
MARKUP_PAYLOADS = (
    "<script>alert(1)</script>",
    "\"><img src=x onerror=alert(1)>",
)
TRAVERSAL_PAYLOADS = (
    "../../../../etc/passwd",
    "..\\..\\..\\windows\\win.ini",
    "....//....//etc/passwd",
)

PAYLOAD_TABLE: Dict[Category, Tuple[str, ...]] = {
    Category.SQL_INJECTION: SQLI_PAYLOADS,
    Category.MARKUP_INJECTION: MARKUP_PAYLOADS,
    Category.PATH_TRAVERSAL: TRAVERSAL_PAYLOADS,
}

INTEGER_MAX = {"int32": 2147483647, "int64": 9223372036854775807}
NUMBER_MAX = {"float": 3.4028234663852886e38, "double": 1.7976931348623157e308}
COERCION_PAYLOAD = "1 OR 1=1"

PRIVILEGED_FIELDS: Tuple[Tuple[str, Any], ...] = (
    ("is_admin", True),
    ("role", "admin"),
    ("isAdmin", True),
    ("permissions", "all"),
    ("accountType", "premium"),
)


#================funtion _case_id deterministic id for a test case ##########
def _case_id(op_id: str, category: Category, target: ProbeTarget, idx: int) -> str:
    raw = f"{op_id}|{category.value}|{target.key()}|{idx}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


#================funtion assign_operation_ids make operationIds present and unique ##########
def assign_operation_ids(endpoints: Iterable[Endpoint]) -> List[Endpoint]:
    out: List[Endpoint] = []
    seen: Dict[str, int] = {}
    for ep in endpoints:
        op_id = ep.operation_id or synthesize_operation_id(ep.method, ep.path)
        if op_id in seen:
            seen[op_id] += 1
            candidate = f"{op_id}_{seen[op_id]}"
            while candidate in seen:
                seen[op_id] += 1
                candidate = f"{op_id}_{seen[op_id]}"
            logger.debug("Duplicate operationId %s renamed to %s", op_id, candidate)
            op_id = candidate
        seen[op_id] = 1
        out.append(ep if op_id == ep.operation_id else replace(ep, operation_id=op_id))
    return out


#================funtion _schema_of safe schema dict ##########
def _schema_of(schema: Any) -> Dict[str, Any]:
    return schema if isinstance(schema, dict) else {}


#================funtion payloads_for_schema typed payload list for one input ##########
def payloads_for_schema(schema: Any, location: Optional[str]) -> List[Tuple[Category, Any]]:
    schema = flatten_schema(schema)
    t = schema_type(schema)
    fmt = str(schema.get("format") or "")
    if t == "string":
        categories = [Category.SQL_INJECTION, Category.MARKUP_INJECTION]
        if location == "path":
            categories.append(Category.PATH_TRAVERSAL)
        out = [(c, p) for c in categories for p in PAYLOAD_TABLE[c]]
        return out
    if t == "integer":
        return [(Category.SQL_INJECTION, p) for p in (-1, 0, INTEGER_MAX.get(fmt, INTEGER_MAX["int64"]), COERCION_PAYLOAD)]
    if t == "number":
        return [(Category.SQL_INJECTION, p) for p in (-1.0, 0, NUMBER_MAX.get(fmt, NUMBER_MAX["double"]), COERCION_PAYLOAD)]
    return []


#================funtion _with_param put a payload into the request slot of a parameter ##########
def _with_param(base: Dict[str, Any], p: Parameter, payload: Any) -> Dict[str, Any]:
    req = deepcopy(base)
    slot = {"path": "path_params", "query": "params", "header": "headers", "cookie": "cookies"}[p.location]
    req[slot][p.name] = payload if p.location == "path" else str(payload)
    return req


#================funtion _json_body_schema schema of the JSON body the baseline sends ##########
def _json_body_schema(endpoint: Endpoint, base: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(base.get("json"), dict):
        return {}
    content = (endpoint.request_body or {}).get("content") or {}
    media = content.get(base.get("content_type")) or {}
    return _schema_of(media.get("schema") if isinstance(media, dict) else None)


#================funtion _mass_assignment_bodies one privileged-field injection per object media type ##########
def _mass_assignment_bodies(endpoint: Endpoint) -> List[Tuple[str, str, Any, Dict[str, Any]]]:
    out = []
    content = (endpoint.request_body or {}).get("content") or {}
    if not isinstance(content, dict):
        return out
    for ctype in sorted(content):
        media = content[ctype] if isinstance(content[ctype], dict) else {}
        schema = _schema_of(media.get("schema"))
        props = object_properties(schema)
        if not props:
            continue
        declared = {name.lower() for name in props}
        pick = next(((f, v) for f, v in PRIVILEGED_FIELDS if f.lower() not in declared), None)
        if pick is None:
            continue
        body = body_from_schema(schema)
        if not isinstance(body, dict):
            continue
        body[pick[0]] = pick[1]
        out.append((ctype, pick[0], pick[1], body))
    return out


# ----------------------- Funtion cases_for_endpoint ----------------------------#
def cases_for_endpoint(endpoint: Endpoint, rate_limit_burst: int = DEFAULT_RATE_LIMIT_BURST) -> List[TestCase]:
    op_id = endpoint.operation_id
    base = build_request(endpoint)
    base["auth"] = [dict(pl, mode=MODE_APPLY) for pl in declared_placements(endpoint)]
    cases: List[TestCase] = []

    def add(category: Category, target: ProbeTarget, payload: Any, request: Dict[str, Any], idx: int, **kw) -> None:
        cases.append(TestCase(
            id=_case_id(op_id, category, target, idx),
            endpoint=endpoint,
            category=category,
            target=target,
            payload=payload,
            request=request,
            **kw,
        ))

    add(Category.BASELINE, ProbeTarget(), None, deepcopy(base), 0, is_baseline=True)

    # with anonymous access allowed a missing credential proves nothing
    requirements = endpoint.security if endpoint.declares_security else ()
    for req_idx, requirement in enumerate(requirements):
        placements = [dict(pl, mode=bypass_mode(pl)) for pl in declared_placements(endpoint, requirement)]
        modes = sorted({pl["mode"] for pl in placements})
        request = deepcopy(base)
        request["auth"] = placements
        target = ProbeTarget(auth_schemes=tuple(pl["scheme"] for pl in placements), auth_mode="+".join(modes))
        add(Category.AUTH_BYPASS, target, "+".join(modes), request, req_idx)

    for p in endpoint.parameters:
        if p.location not in PARAMETER_LOCATIONS:
            continue
        target = ProbeTarget(parameter=p.name, location=p.location)
        for idx, (category, payload) in enumerate(payloads_for_schema(p.schema, p.location)):
            add(category, target, payload, _with_param(base, p, payload), idx)

    body_schema = _json_body_schema(endpoint, base)
    for field_name, prop in object_properties(body_schema).items():
        target = ProbeTarget(body_field=field_name)
        for idx, (category, payload) in enumerate(payloads_for_schema(prop, None)):
            request = deepcopy(base)
            request["json"][field_name] = payload
            add(category, target, payload, request, idx)

    for idx, (ctype, field_name, value, body) in enumerate(_mass_assignment_bodies(endpoint)):
        request = deepcopy(base)
        request.pop("json", None)
        request.pop("data", None)
        request.pop("files", None)
        request["content_type"] = ctype
        request["headers"].pop("Content-Type", None)
        if "multipart" in ctype:
            request["files"] = multipart_fields(body)
        elif "json" in ctype:
            request["json"] = body
        else:
            request["data"] = body
            request["headers"]["Content-Type"] = ctype
        add(Category.MASS_ASSIGNMENT, ProbeTarget(body_field=field_name), {field_name: value}, request, idx)

    if rate_limit_burst > 0:
        add(Category.RATE_LIMIT, ProbeTarget(), rate_limit_burst, deepcopy(base), 0, burst=rate_limit_burst)
    return cases


# ----------------------- Funtion generate ----------------------------#
def generate(endpoints: Sequence[Endpoint], rate_limit_burst: int = DEFAULT_RATE_LIMIT_BURST) -> List[TestCase]:
    cases: List[TestCase] = []
    for ep in assign_operation_ids(endpoints):
        cases.extend(cases_for_endpoint(ep, rate_limit_burst))
    logger.debug("Generated %d test cases for %d endpoints", len(cases), len(endpoints))
    return cases
