########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
import csv
import html
import io
import json
import logging

import yaml

from scan_models import Endpoint, SEVERITY_ORDER, ScanError, TestReport

logger = logging.getLogger(__name__)

REPORT_FORMATS = ("json", "yaml", "csv", "table", "markdown", "html")
CATALOG_FORMATS = ("json", "yaml", "txt", "csv", "table")
EXTENSIONS = {"json": "json", "yaml": "yaml", "csv": "csv", "table": "txt", "markdown": "md", "html": "html", "txt": "txt"}

CSV_COLUMNS = ("severity", "category", "method", "path", "endpoint", "parameter", "payload", "evidence", "test_case_id")

SEVERITY_META = [
    ("critical", "#d32f2f", "Authentication can be bypassed"),
    ("high", "#ffa000", "Injection, traversal or sensitive data exposure"),
    ("medium", "#ffc107", "Reflected markup or mass assignment"),
    ("low", "#2196f3", "Missing rate limiting"),
    ("info", "#777", "Informational finding"),
]


#================funtion format_for_path guess the output format from a file extension ##########
def format_for_path(path, default: str = "json") -> str:
    ext = Path(str(path)).suffix.lower().lstrip(".")
    for fmt, e in EXTENSIONS.items():
        if e == ext and fmt != "txt":
            return fmt
    return {"yml": "yaml", "htm": "html", "txt": "table"}.get(ext, default)


#================funtion _cell render a value for text/csv output ##########
def _cell(val: Any) -> str:
    if val is None:
        return ""
    if isinstance(val, (dict, list)):
        return json.dumps(val, sort_keys=True)
    return str(val)


#================funtion text_table fixed width text table ##########
def text_table(headers: Sequence[str], rows: Iterable[Sequence[Any]], max_width: int = 60) -> str:
    cells = [[_cell(c) for c in row] for row in rows]
    cells = [[c if len(c) <= max_width else c[: max_width - 3] + "..." for c in row] for row in cells]
    widths = [len(h) for h in headers]
    for row in cells:
        for i, c in enumerate(row):
            widths[i] = max(widths[i], len(c))
    sep = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    fmt_row = lambda row: "| " + " | ".join(c.ljust(widths[i]) for i, c in enumerate(row)) + " |"
    lines = [sep, fmt_row(list(headers)), sep]
    lines += [fmt_row(row) for row in cells]
    lines.append(sep)
    return "\n".join(lines)


class ReportGenerator:
    def __init__(self, report: TestReport, base_url: str = "", scanner: str = "SWAGX", timestamp: Optional[str] = None) -> None:
        self.report = report
        self.base_url = base_url or "-"
        self.scanner = scanner
        self.timestamp = timestamp or datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    # ----------------------- Funtion render ----------------------------#
    def render(self, fmt: str = "json") -> str:
        fmt = (fmt or "json").lower()
        renderer = {
            "json": self.generate_json,
            "yaml": self.generate_yaml,
            "csv": self.generate_csv,
            "table": self.generate_table,
            "markdown": self.generate_markdown,
            "html": self.generate_html,
        }.get(fmt)
        if renderer is None:
            raise ScanError(f"Unsupported report format: {fmt} (choose from {', '.join(REPORT_FORMATS)})")
        return renderer()

    # ----------------------- Funtion save ----------------------------#
    def save(self, path, fmt: Optional[str] = None) -> Path:
        fmt = fmt or format_for_path(path)
        content = self.render(fmt)
        out = Path(str(path))
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(content, encoding="utf-8")
        logger.info("Report written to %s", out)
        return out

    def generate_json(self) -> str:
        return json.dumps(self.report.to_dict(), indent=2, ensure_ascii=False)

    def generate_yaml(self) -> str:
        return yaml.safe_dump(self.report.to_dict(), sort_keys=False, allow_unicode=True)

    def generate_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=list(CSV_COLUMNS), lineterminator="\n")
        writer.writeheader()
        for f in self.report.findings:
            row = f.to_dict()
            writer.writerow({k: _cell(row.get(k)) for k in CSV_COLUMNS})
        return buf.getvalue()

    def _summary_lines(self) -> List[str]:
        r = self.report
        sev = r.summary.get("bySeverity", {})
        lines = [
            f"Endpoints scanned: {r.scanned_endpoints}/{r.total_endpoints}",
            "Findings: " + ", ".join(f"{s.value}={sev.get(s.value, 0)}" for s in SEVERITY_ORDER),
        ]
        if r.incomplete:
            lines.append("Run INCOMPLETE: the scan was cancelled before all test cases finished")
        return lines

    def generate_table(self) -> str:
        rows = [
            (f.severity.value.upper(), f.category.value, f.method, f.path, f.parameter, f.evidence)
            for f in self.report.findings
        ]
        out = self._summary_lines()
        if rows:
            out.append(text_table(("Severity", "Category", "Method", "Path", "Parameter", "Evidence"), rows))
        else:
            out.append("No vulnerabilities found")
        return "\n".join(out) + "\n"

    def generate_markdown(self) -> str:
        md = [f"# {self.scanner} Report\n"]
        md.append(f"- Base URL: {self.base_url}")
        md.append(f"- Timestamp: {self.timestamp}")
        md += [f"- {line}" for line in self._summary_lines()]
        md.append("")
        if not self.report.findings:
            md.append("No vulnerabilities found\n")
            return "\n".join(md)
        for f in self.report.findings:
            md.append(f"## [{f.severity.value.upper()}] {f.category.value}: {f.method} {f.path}")
            md.append(f"- **Endpoint**: {f.endpoint_ref}")
            if f.parameter:
                md.append(f"- **Parameter**: `{f.parameter}`")
            if f.payload is not None:
                md.append(f"- **Payload**: `{_cell(f.payload)}`")
            md.append(f"- **Evidence**: {f.evidence}")
            md.append(f"- **Test case**: {f.test_case_id}\n")
        return "\n".join(md)

    def _generate_summary_table(self) -> str:
        counts = self.report.summary.get("bySeverity", {})
        rows = "".join(
            f'<tr><td style="padding:6px 12px;color:{color};">'
            f'<a href="#{sev}-section" style="color:inherit;text-decoration:none;font-weight:600;">{sev.capitalize()}</a></td>'
            f'<td style="padding:6px 12px;text-align:right;">{counts.get(sev, 0)}</td>'
            f'<td style="padding:6px 12px;">{desc}</td></tr>'
            for sev, color, desc in SEVERITY_META
        )
        return (
            '<h2 style="margin-top:30px;">Scan Summary</h2>'
            '<table style="border-collapse:collapse;font-family:Arial, sans-serif;font-size:14px;">'
            '<thead><tr><th style="text-align:left;padding:6px 12px;">Severity</th>'
            '<th style="text-align:right;padding:6px 12px;">Count</th>'
            '<th style="text-align:left;padding:6px 12px;">Description</th></tr></thead>'
            f"<tbody>{rows}</tbody></table>"
        )

    def _generate_severity_section(self, severity: str, color: str) -> str:
        items = [f for f in self.report.findings if f.severity.value == severity]
        if not items:
            return ""
        blocks = []
        for idx, f in enumerate(items, 1):
            payload = html.escape(_cell(f.payload)) if f.payload is not None else "-"
            blocks.append(
                f'<div class="finding" style="border-left:4px solid {color};margin-bottom:20px;padding:15px;border-radius:4px;">'
                f'<h3 style="margin-top:0;">Finding {idx}: {html.escape(f.method)} {html.escape(f.path)}</h3>'
                f"<p><strong>Category:</strong> {html.escape(f.category.value)}</p>"
                f"<p><strong>Parameter:</strong> {html.escape(f.parameter or '-')}</p>"
                f"<p><strong>Payload:</strong> <code>{payload}</code></p>"
                f"<p><strong>Evidence:</strong> {html.escape(f.evidence)}</p>"
                f"<p><strong>Test case:</strong> {html.escape(f.test_case_id)}</p>"
                "</div>"
            )
        return (
            f'<div class="severity-section"><h2 id="{severity}-section">'
            f"{severity.capitalize()} Risk Findings ({len(items)})</h2>{''.join(blocks)}</div>"
        )

    def generate_html(self) -> str:
        sections = "".join(self._generate_severity_section(sev, color) for sev, color, _ in SEVERITY_META)
        if not sections:
            sections = '<div class="no-findings"><h2>No Security Issues Found</h2></div>'
        summary = "".join(f"<p>{html.escape(line)}</p>" for line in self._summary_lines())
        return f"""<!DOCTYPE html>
<html>
<head>
    <title>API Security Report - {html.escape(self.scanner)}</title>
    <meta charset="UTF-8">
    <style>
        body {{ font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; line-height: 1.6; color: #333; max-width: 1200px; margin: 0 auto; padding: 20px; }}
        h1 {{ border-bottom: 2px solid #eee; padding-bottom: 10px; }}
        code {{ background-color: #f5f5f5; padding: 2px 4px; border-radius: 4px; }}
        .no-findings {{ background-color: #e8f5e9; padding: 20px; border-radius: 4px; }}
    </style>
</head>
<body>
    <h1>{html.escape(self.scanner)} Security Report</h1>
    <p><strong>Base URL:</strong> {html.escape(self.base_url)} &middot; <strong>Generated:</strong> {html.escape(self.timestamp)}</p>
    {summary}
    {self._generate_summary_table()}
    {sections}
</body>
</html>
"""


#================funtion endpoint_to_dict catalog entry as plain data ##########
def endpoint_to_dict(ep: Endpoint) -> Dict[str, Any]:
    return {
        "path": ep.path,
        "method": ep.method,
        "operationId": ep.operation_id,
        "summary": ep.summary,
        "tags": list(ep.tags),
        "deprecated": ep.deprecated,
        "parameters": [
            {
                "name": p.name,
                "in": p.location,
                "required": p.required,
                "description": p.description,
                "schema": p.schema,
                "example": p.example,
                "deprecated": p.deprecated,
            }
            for p in ep.parameters
        ],
        "requestBody": ep.request_body,
        "responses": ep.responses,
        "security": [dict(req) for req in ep.security],
    }


#================funtion catalog_to_dict parse() result as plain data ##########
def catalog_to_dict(catalog: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "info": catalog.get("info") or {},
        "servers": catalog.get("servers") or [],
        "security": catalog.get("security") or [],
        "endpoints": [endpoint_to_dict(ep) for ep in catalog.get("endpoints") or []],
        "components": catalog.get("components") or {},
    }


#================funtion render_catalog serialize a parsed catalog ##########
def render_catalog(catalog: Dict[str, Any], fmt: str = "json") -> str:
    fmt = (fmt or "json").lower()
    eps = catalog.get("endpoints") or []
    if fmt == "json":
        return json.dumps(catalog_to_dict(catalog), indent=2, ensure_ascii=False, default=str)
    if fmt == "yaml":
        return yaml.safe_dump(json.loads(json.dumps(catalog_to_dict(catalog), default=str)), sort_keys=False, allow_unicode=True)
    if fmt == "csv":
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(["Method", "Path", "OperationId", "Summary", "Parameters", "Secured", "Deprecated"])
        for ep in eps:
            writer.writerow([ep.method, ep.path, ep.operation_id, ep.summary, len(ep.parameters), ep.declares_security, ep.deprecated])
        return buf.getvalue()
    if fmt in ("table", "txt"):
        title = (catalog.get("info") or {}).get("title") or "API"
        version = (catalog.get("info") or {}).get("version") or "-"
        rows = [(ep.method, ep.path, ep.operation_id, ep.summary, "yes" if ep.declares_security else "no") for ep in eps]
        return f"{title} (version {version}) - {len(eps)} endpoints\n" + text_table(("Method", "Path", "OperationId", "Summary", "Secured"), rows) + "\n"
    raise ScanError(f"Unsupported catalog format: {fmt} (choose from {', '.join(CATALOG_FORMATS)})")


# ----------------------- Funtion save_catalog ----------------------------#
def save_catalog(catalog: Dict[str, Any], path, fmt: Optional[str] = None) -> Path:
    fmt = fmt or format_for_path(path)
    out = Path(str(path))
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(render_catalog(catalog, fmt), encoding="utf-8")
    logger.info("Catalog written to %s", out)
    return out


# ----------------------- Funtion print_endpoints ----------------------------#
def print_endpoints(catalog: Dict[str, Any]) -> None:
    print(render_catalog(catalog, "table"))
