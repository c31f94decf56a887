########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
"""Entry point of the testing engine: catalog + config in, TestReport out."""
from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from probe_generator import generate
from request_executor import CancelToken, ExecutorConfig, RequestExecutor
from result_aggregator import aggregate
from scan_models import Endpoint, Finding, ParseError, TestReport
from vulnerability_analyzer import analyze

logger = logging.getLogger(__name__)


#================funtion _catalog_endpoints accept a parse() result or a plain endpoint list ##########
def _catalog_endpoints(catalog: Union[Dict[str, Any], Sequence[Endpoint]]) -> List[Endpoint]:
    endpoints = catalog.get("endpoints") if isinstance(catalog, dict) else catalog
    if endpoints is None:
        raise ParseError("Catalog has no endpoints list")
    endpoints = list(endpoints)
    bad = [e for e in endpoints if not isinstance(e, Endpoint)]
    if bad:
        raise ParseError(f"Catalog contains {len(bad)} entries that are not endpoints")
    return endpoints


class SecurityTester:
    def __init__(self, config, session=None, cancel_token: Optional[CancelToken] = None, show_progress: bool = False):
        self.config = ExecutorConfig.from_options(config)
        self.session = session
        self.cancel_token = cancel_token or CancelToken()
        self.show_progress = show_progress
        self.executor: Optional[RequestExecutor] = None

    # ----------------------- Funtion run_tests ----------------------------#
    def run_tests(self, catalog) -> TestReport:
        endpoints = _catalog_endpoints(catalog)
        cases = generate(endpoints, rate_limit_burst=self.config.rate_limit_burst)
        logger.info("Generated %d test cases for %d endpoints", len(cases), len(endpoints))

        self.executor = RequestExecutor(self.config, session=self.session, cancel_token=self.cancel_token, show_progress=self.show_progress)
        results = self.executor.execute(cases)

        baselines = {tc.endpoint_ref: results.get(tc.id) for tc in cases if tc.is_baseline}
        findings: List[Finding] = []
        for tc in cases:
            test_results = results.get(tc.id)
            if not test_results:
                continue
            findings.extend(analyze(
                tc,
                baselines.get(tc.endpoint_ref),
                test_results,
                sensitive_names=self.config.sensitive_names,
                latency_floor_ms=self.config.latency_floor_ms,
            ))

        scanned = sum(1 for res in baselines.values() if res and res[0].transport_error is None)
        report = aggregate(findings, total_endpoints=len(endpoints), incomplete=self.executor.incomplete, scanned_endpoints=scanned)
        logger.info("Scan finished: %d findings, %d/%d endpoints scanned%s", len(report.findings), scanned, len(endpoints), " (incomplete)" if report.incomplete else "")
        return report


# ----------------------- Funtion run_tests ----------------------------#
def run_tests(catalog, config, **kwargs) -> TestReport:
    return SecurityTester(config, **kwargs).run_tests(catalog)
