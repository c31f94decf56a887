########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from typing import Dict, Iterable, List, Tuple
import logging

from scan_models import SEVERITY_ORDER, Finding, TestReport

logger = logging.getLogger(__name__)


#================funtion _sort_key stable ordering of findings ##########
def _sort_key(f: Finding) -> Tuple:
    return (f.path, f.method.upper(), f.category.value, f.parameter or "", f.severity.rank, f.test_case_id, f.evidence)


#================funtion summarize counts per severity and per category ##########
def summarize(findings: Iterable[Finding]) -> Dict[str, Dict[str, int]]:
    by_severity = {s.value: 0 for s in SEVERITY_ORDER}
    by_category: Dict[str, int] = {}
    for f in findings:
        by_severity[f.severity.value] += 1
        by_category[f.category.value] = by_category.get(f.category.value, 0) + 1
    return {"bySeverity": by_severity, "byCategory": dict(sorted(by_category.items()))}


# ----------------------- Funtion aggregate ----------------------------#
def aggregate(findings: Iterable[Finding], total_endpoints: int = 0, incomplete: bool = False, scanned_endpoints: int = 0) -> TestReport:
    unique: List[Finding] = []
    seen = set()
    for f in sorted(findings, key=_sort_key):
        ident = f.identity()
        if ident in seen:
            continue
        seen.add(ident)
        unique.append(f)
    logger.debug("Aggregated %d unique findings", len(unique))
    return TestReport(
        findings=tuple(unique),
        summary=summarize(unique),
        scanned_endpoints=scanned_endpoints,
        incomplete=bool(incomplete),
        total_endpoints=total_endpoints,
    )
