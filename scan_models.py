########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
"""Shared value types for the SWAGX testing engine.

Everything here is immutable once built. Endpoints and parameters come from the
catalog, test cases from the generator, execution results from the executor and
findings/reports from the analyzer and aggregator.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ScanError(Exception):
    pass


class ConfigError(ScanError):
    pass


class ParseError(ScanError):
    pass


class Category(str, Enum):
    BASELINE = "baseline"
    SQL_INJECTION = "sql_injection"
    MARKUP_INJECTION = "markup_injection"
    PATH_TRAVERSAL = "path_traversal"
    AUTH_BYPASS = "auth_bypass"
    DATA_EXPOSURE = "data_exposure"
    MASS_ASSIGNMENT = "mass_assignment"
    RATE_LIMIT = "rate_limit"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO]

PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")


@dataclass(frozen=True)
class Parameter:
    name: str
    location: str
    required: bool = False
    schema: Dict[str, Any] = field(default_factory=dict)
    example: Any = None
    deprecated: bool = False
    description: str = ""


@dataclass(frozen=True)
class Endpoint:
    path: str
    method: str
    operation_id: str = ""
    parameters: Tuple[Parameter, ...] = ()
    request_body: Optional[Dict[str, Any]] = None
    responses: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    security: Tuple[Dict[str, Any], ...] = ()
    security_schemes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    deprecated: bool = False
    summary: str = ""
    tags: Tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return f"{self.method.upper()} {self.path}"

    @property
    def declares_security(self) -> bool:
        # an empty requirement means anonymous access is allowed
        return bool(self.security) and all(bool(req) for req in self.security)


@dataclass(frozen=True)
class ProbeTarget:
    parameter: Optional[str] = None
    location: Optional[str] = None
    body_field: Optional[str] = None
    auth_schemes: Tuple[str, ...] = ()
    auth_mode: Optional[str] = None

    @property
    def name(self) -> Optional[str]:
        if self.parameter:
            return self.parameter
        if self.body_field:
            return self.body_field
        if self.auth_schemes:
            return "+".join(self.auth_schemes)
        return None

    def key(self) -> str:
        if self.parameter:
            return f"param:{self.location}:{self.parameter}"
        if self.body_field:
            return f"body:{self.body_field}"
        if self.auth_schemes:
            return f"auth:{self.auth_mode}:{'+'.join(self.auth_schemes)}"
        return "-"


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    id: str
    endpoint: Endpoint
    category: Category
    target: ProbeTarget
    payload: Any
    request: Dict[str, Any]
    is_baseline: bool = False
    burst: int = 1

    @property
    def endpoint_ref(self) -> str:
        return self.endpoint.operation_id


@dataclass(frozen=True)
class ExecutionResult:
    test_case_id: str
    status_code: Optional[int] = None
    latency_ms: float = 0.0
    body_snippet: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    transport_error: Optional[str] = None
    url: str = ""
    attempts: int = 1
    sequence: int = 0

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    @property
    def content_type(self) -> str:
        return str(self.headers.get("content-type", "")).lower()


@dataclass(frozen=True)
class Finding:
    endpoint_ref: str
    path: str
    method: str
    category: Category
    severity: Severity
    evidence: str
    test_case_id: str
    parameter: Optional[str] = None
    payload: Any = None

    def identity(self) -> Tuple[str, str, str, str]:
        return (self.endpoint_ref, self.category.value, self.parameter or "", self.severity.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint_ref,
            "path": self.path,
            "method": self.method,
            "category": self.category.value,
            "severity": self.severity.value,
            "parameter": self.parameter,
            "payload": self.payload,
            "evidence": self.evidence,
            "test_case_id": self.test_case_id,
        }


@dataclass(frozen=True)
class TestReport:
    __test__ = False

    findings: Tuple[Finding, ...] = ()
    summary: Dict[str, Dict[str, int]] = field(default_factory=dict)
    scanned_endpoints: int = 0
    incomplete: bool = False
    total_endpoints: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "summary": {
                "bySeverity": dict(self.summary.get("bySeverity", {})),
                "byCategory": dict(self.summary.get("byCategory", {})),
            },
            "scannedEndpoints": self.scanned_endpoints,
            "totalEndpoints": self.total_endpoints,
            "incomplete": self.incomplete,
        }
