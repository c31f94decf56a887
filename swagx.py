########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from colorama import Fore, Style, init as _colorama_init
from dotenv import load_dotenv

from openapi_universal import parse
from report_utils import CATALOG_FORMATS, REPORT_FORMATS, ReportGenerator, format_for_path, print_endpoints, save_catalog
from request_executor import CancelToken
from scan_models import ConfigError, ScanError, Severity
from security_tester import SecurityTester
from version import __version__

logger = logging.getLogger("swagx")

DEFAULT_REPORT_NAME = "swagX-report.json"


#================funtion styled_print styled_print =============
def styled_print(message: str, status: str = "info") -> None:
    symbols = {"info": "Info:", "ok": "OK:", "warn": "WARNING:", "fail": "FAIL:", "run": "->", "done": "Done"}
    colors = {"info": Fore.BLUE, "ok": Fore.GREEN, "warn": Fore.YELLOW, "fail": Fore.RED, "run": Fore.CYAN, "done": Fore.GREEN}
    reset = Style.RESET_ALL
    print(f"{colors.get(status, '')}{symbols.get(status, '')} {message}{reset}")


#================funtion setup_logging console + optional file logging =============
def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="[DEBUG] %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="[INFO] %(message)s")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        file_handler.setLevel(logging.DEBUG)
        logging.getLogger().addHandler(file_handler)
    # urllib3 connection chatter is noise even in debug mode
    logging.getLogger("urllib3").setLevel(logging.WARNING)


#================funtion _parse_pairs NAME=VALUE / Name: value lists =============
def _parse_pairs(values: Optional[List[str]], sep: str, what: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for raw in values or []:
        if sep not in raw:
            raise ConfigError(f"Invalid {what} '{raw}', expected NAME{sep}VALUE")
        k, v = raw.split(sep, 1)
        if not k.strip():
            raise ConfigError(f"Invalid {what} '{raw}', empty name")
        out[k.strip()] = v.strip()
    return out


#================funtion config_from_args build the executor options mapping =============
def config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    cfg: Dict[str, Any] = {
        "baseUrl": args.base_url,
        "timeoutMs": args.timeout,
        "sslVerify": args.ssl_verify,
        "concurrency": args.concurrency,
        "retryCount": args.retry,
        "backoffMs": args.backoff,
        "rateLimitBurst": args.burst,
        "maxDurationS": args.max_duration,
        "credentials": _parse_pairs(args.credential, "=", "credential"),
        "headers": _parse_pairs(args.header, ":", "header"),
        "apiKey": args.apikey,
        "token": args.token,
        "basicAuth": args.basic_auth,
        "clientCert": args.client_cert,
        "clientKey": args.client_key,
        "proxy": args.proxy,
    }
    if args.sensitive_names:
        cfg["sensitiveNames"] = [n.strip() for n in args.sensitive_names.split(",") if n.strip()]
    return cfg


#================funtion _add_test_options options shared by test and scan =============
def _add_test_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("-b", "--base-url", default=os.getenv("SWAGX_BASE_URL"), help="Base URL of the API under test (env: SWAGX_BASE_URL)")
    p.add_argument("-t", "--timeout", type=float, default=5000, help="Request timeout in milliseconds (default: 5000)")
    p.add_argument("--no-ssl-verify", dest="ssl_verify", action="store_false", help="Disable TLS certificate validation (use only in test labs)")
    p.add_argument("--concurrency", type=int, default=10, help="Maximum requests in flight (default: 10)")
    p.add_argument("--retry", type=int, default=2, help="Retries after a transport failure (default: 2)")
    p.add_argument("--backoff", type=float, default=200, help="Initial retry backoff in milliseconds (default: 200)")
    p.add_argument("--burst", type=int, default=20, help="Requests in the rate-limit burst (default: 20)")
    p.add_argument("--max-duration", type=float, help="Cancel the run after this many seconds")
    p.add_argument("--apikey", default=os.getenv("SWAGX_API_KEY"), help="API key for apiKey schemes (env: SWAGX_API_KEY)")
    p.add_argument("--token", default=os.getenv("SWAGX_TOKEN"), help="Bearer token for bearer/OAuth2/OpenID schemes (env: SWAGX_TOKEN)")
    p.add_argument("--basic-auth", help="Basic auth in the form user:password")
    p.add_argument("--credential", action="append", metavar="SCHEME=VALUE", help="Credential for one named security scheme (repeatable)")
    p.add_argument("--header", action="append", metavar="'Name: value'", help="Extra header sent with every request (repeatable)")
    p.add_argument("--client-cert", help="Path to client certificate file (PEM, used for mTLS)")
    p.add_argument("--client-key", help="Path to private key file (PEM, used for mTLS)")
    p.add_argument("--proxy", help="Optional proxy URL, e.g. http://127.0.0.1:8080")
    p.add_argument("--sensitive-names", help="Comma separated field names treated as sensitive")
    p.add_argument("-f", "--format", choices=REPORT_FORMATS, help="Report format (default: from file extension, table on screen)")
    p.add_argument("--no-validate", dest="validate", action="store_false", help="Skip OpenAPI schema validation")


#================funtion build_parser =============
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="swagx", description=f"SWAGX {__version__} - Swagger/OpenAPI security tester")
    parser.add_argument("--version", action="version", version=f"SWAGX {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug output (verbose logging)")
    parser.add_argument("--log-file", help="Also write a timestamped log to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    p_parse = sub.add_parser("parse", help="Parse a Swagger/OpenAPI document")
    p_parse.add_argument("file", help="Swagger file (swagger.json or openapi.yaml)")
    p_parse.add_argument("-o", "--output", help="Write the endpoint catalog to this file")
    p_parse.add_argument("-f", "--format", choices=CATALOG_FORMATS, help="Output format (default: from file extension, table on screen)")
    p_parse.add_argument("--no-validate", dest="validate", action="store_false", help="Skip OpenAPI schema validation")

    p_test = sub.add_parser("test", help="Run the security tests")
    p_test.add_argument("file", help="Swagger file")
    p_test.add_argument("-r", "--report", help="Write the test report to this file")
    _add_test_options(p_test)

    p_scan = sub.add_parser("scan", help="Full scan (parse + test), report written to a directory")
    p_scan.add_argument("file", help="Swagger file")
    p_scan.add_argument("-o", "--output", help="Output directory")
    p_scan.add_argument("-r", "--report", default=DEFAULT_REPORT_NAME, help=f"Report file name (default: {DEFAULT_REPORT_NAME})")
    _add_test_options(p_scan)
    return parser


#================funtion _load_catalog =============
def _load_catalog(args: argparse.Namespace) -> Dict[str, Any]:
    styled_print(f"Loading Swagger file: {args.file}", "info")
    catalog = parse(args.file, validate=args.validate)
    styled_print(f"Swagger loaded - {len(catalog['endpoints'])} endpoints found", "ok")
    return catalog


#================funtion _run_tests =============
def _run_tests(args: argparse.Namespace, catalog: Dict[str, Any]):
    tester = SecurityTester(config_from_args(args), cancel_token=CancelToken(), show_progress=True)
    styled_print(f"Starting security tests against {tester.config.base_url}", "run")
    report = tester.run_tests(catalog)
    sev = report.summary.get("bySeverity", {})
    styled_print(
        f"{len(report.findings)} findings ({', '.join(f'{s.value}={sev.get(s.value, 0)}' for s in Severity)}), "
        f"{report.scanned_endpoints}/{report.total_endpoints} endpoints scanned",
        "done",
    )
    if report.incomplete:
        styled_print("Run was cancelled before all test cases finished; report is incomplete", "warn")
    return tester, report


# ----------------------- Funtion cmd_parse ----------------------------#
def cmd_parse(args: argparse.Namespace) -> int:
    catalog = _load_catalog(args)
    if args.output:
        out = save_catalog(catalog, args.output, args.format or format_for_path(args.output))
        styled_print(f"Result saved to {out}", "ok")
    else:
        print_endpoints(catalog)
    return 0


# ----------------------- Funtion cmd_test ----------------------------#
def cmd_test(args: argparse.Namespace) -> int:
    catalog = _load_catalog(args)
    tester, report = _run_tests(args, catalog)
    gen = ReportGenerator(report, base_url=tester.config.base_url)
    if args.report:
        out = gen.save(args.report, args.format or format_for_path(args.report))
        styled_print(f"Report saved to {out}", "ok")
    else:
        print(gen.render(args.format or "table"))
    return 0


# ----------------------- Funtion cmd_scan ----------------------------#
def cmd_scan(args: argparse.Namespace) -> int:
    catalog = _load_catalog(args)
    if not args.base_url:
        styled_print("No base URL given, skipping security tests", "warn")
        styled_print("Use --base-url (or SWAGX_BASE_URL) to run the tests", "info")
        return 0
    tester, report = _run_tests(args, catalog)
    report_path = Path(args.output) / args.report if args.output else Path(args.report)
    out = ReportGenerator(report, base_url=tester.config.base_url).save(report_path, args.format or format_for_path(report_path))
    styled_print(f"Scan complete, report saved to {out}", "ok")
    return 0


COMMANDS = {"parse": cmd_parse, "test": cmd_test, "scan": cmd_scan}


#================funtion main =============
def main(argv: Optional[List[str]] = None) -> int:
    _colorama_init()
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.debug, args.log_file)
    try:
        return COMMANDS[args.command](args)
    except ScanError as e:
        logger.debug("Aborted: %s", e, exc_info=True)
        styled_print(str(e), "fail")
        return 1
    except OSError as e:
        styled_print(f"Could not write output: {e}", "fail")
        return 1
    except KeyboardInterrupt:
        styled_print("Interrupted by user", "warn")
        return 130


if __name__ == "__main__":
    sys.exit(main())
