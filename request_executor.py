########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
"""Concurrent request execution for generated test cases.

Baselines go out first; an endpoint's probes are only dispatched once its
baseline has come back. At most ``concurrency`` HTTP exchanges are in flight at
any moment. Only transport failures are retried, every HTTP status is final.
"""
from __future__ import annotations
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse
import logging
import threading
import time

import requests
import urllib3
from requests.adapters import HTTPAdapter
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)
from tqdm import tqdm

from auth_utils import SecurityConfig, apply_auth
from openapi_universal import render_path
from scan_models import ConfigError, ExecutionResult, TestCase
from vulnerability_analyzer import DEFAULT_SENSITIVE_NAMES, LATENCY_FLOOR_MS

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.1

# connection refused/reset and timeouts; an HTTP status is never retried
RETRYABLE_ERRORS = (requests.ConnectionError, requests.Timeout)


#================funtion _opt read camelCase or snake_case option ##########
def _opt(opts: Mapping[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in opts and opts[camel] is not None:
        return opts[camel]
    if snake in opts and opts[snake] is not None:
        return opts[snake]
    return default


#================funtion _as_number validate a numeric option ##########
def _as_number(name: str, value: Any, minimum: float, integer: bool = True, strict: bool = True):
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        num = int(value) if integer else float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if integer and float(value) != num:
        raise ConfigError(f"{name} must be a whole number, got {value!r}")
    if (strict and num <= minimum) or (not strict and num < minimum):
        op = ">" if strict else ">="
        raise ConfigError(f"{name} must be {op} {minimum}, got {value!r}")
    return num


#================funtion normalize_base_url add a scheme to bare hosts ##########
def normalize_base_url(url: Any) -> str:
    if not url or not str(url).strip():
        raise ConfigError("baseUrl is required")
    url = str(url).strip()
    if "://" not in url:
        url = "http://" + url
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"baseUrl is not a valid http(s) URL: {url}")
    return url.rstrip("/")


@dataclass(frozen=True)
class ExecutorConfig:
    base_url: str
    timeout_ms: float = 5000
    ssl_verify: bool = True
    concurrency: int = 10
    retry_count: int = 2
    backoff_ms: float = 200
    rate_limit_burst: int = 20
    body_limit: int = 65536
    security: SecurityConfig = field(default_factory=SecurityConfig)
    proxy: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    sensitive_names: Tuple[str, ...] = DEFAULT_SENSITIVE_NAMES
    max_duration_s: Optional[float] = None
    latency_floor_ms: float = LATENCY_FLOOR_MS

    @classmethod
    def from_options(cls, opts: Any) -> "ExecutorConfig":
        if isinstance(opts, cls):
            return opts
        if not isinstance(opts, Mapping):
            raise ConfigError("configuration must be a mapping")
        headers = _opt(opts, "headers", "headers", {}) or {}
        if not isinstance(headers, Mapping):
            raise ConfigError("headers must be a mapping")
        names = _opt(opts, "sensitiveNames", "sensitive_names", DEFAULT_SENSITIVE_NAMES)
        if isinstance(names, str) or not all(isinstance(n, str) for n in names):
            raise ConfigError("sensitiveNames must be a list of strings")
        max_dur = _opt(opts, "maxDurationS", "max_duration_s")
        return cls(
            base_url=normalize_base_url(_opt(opts, "baseUrl", "base_url")),
            timeout_ms=_as_number("timeoutMs", _opt(opts, "timeoutMs", "timeout_ms", 5000), 0, integer=False),
            ssl_verify=bool(_opt(opts, "sslVerify", "ssl_verify", True)),
            concurrency=_as_number("concurrency", _opt(opts, "concurrency", "concurrency", 10), 0),
            retry_count=_as_number("retryCount", _opt(opts, "retryCount", "retry_count", 2), 0, strict=False),
            backoff_ms=_as_number("backoffMs", _opt(opts, "backoffMs", "backoff_ms", 200), 0, integer=False, strict=False),
            rate_limit_burst=_as_number("rateLimitBurst", _opt(opts, "rateLimitBurst", "rate_limit_burst", 20), 0),
            body_limit=_as_number("bodyLimit", _opt(opts, "bodyLimit", "body_limit", 65536), 0),
            security=SecurityConfig.from_options(opts),
            proxy=_opt(opts, "proxy", "proxy"),
            headers={str(k): str(v) for k, v in headers.items()},
            sensitive_names=tuple(n.lower() for n in names),
            max_duration_s=None if max_dur is None else _as_number("maxDurationS", max_dur, 0, integer=False),
            latency_floor_ms=_as_number("latencyFloorMs", _opt(opts, "latencyFloorMs", "latency_floor_ms", LATENCY_FLOOR_MS), 0, integer=False, strict=False),
        )


class CancelToken:
    """Shared cancellation flag with an optional deadline."""

    def __init__(self, deadline_s: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + deadline_s if deadline_s else None

    @property
    def event(self) -> threading.Event:
        return self._event

    def set_deadline(self, deadline_s: Optional[float]) -> None:
        if deadline_s and self._deadline is None:
            self._deadline = time.monotonic() + deadline_s

    def cancel(self) -> None:
        self._event.set()

    def cancelled(self) -> bool:
        if not self._event.is_set() and self._deadline is not None and time.monotonic() >= self._deadline:
            logger.warning("Scan deadline reached, cancelling")
            self._event.set()
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        if self._deadline is not None:
            seconds = max(0.0, min(seconds, self._deadline - time.monotonic()))
        self._event.wait(seconds)
        return self.cancelled()


class RequestExecutor:
    def __init__(self, config: ExecutorConfig, session=None, cancel_token: Optional[CancelToken] = None, show_progress: bool = False):
        self.config = config
        self.session = session if session is not None else self._build_session()
        self.cancel_token = cancel_token or CancelToken()
        self.cancel_token.set_deadline(config.max_duration_s)
        self.show_progress = show_progress
        self.incomplete = False
        self.peak_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(config.concurrency)

    # ----------------------- Funtion _build_session ----------------------------#
    def _build_session(self) -> requests.Session:
        sess = requests.Session()
        size = max(10, self.config.concurrency)
        adapter = HTTPAdapter(pool_connections=size, pool_maxsize=size, max_retries=0)
        sess.mount("http://", adapter)
        sess.mount("https://", adapter)
        sess.headers["User-Agent"] = "swagx"
        if not self.config.ssl_verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            logger.warning("TLS certificate verification disabled")
        return sess

    # ----------------------- Funtion _prepare ----------------------------#
    def _prepare(self, tc: TestCase) -> Tuple[str, str, Dict[str, Any]]:
        req = tc.request
        headers = dict(self.config.headers)
        headers.update(req.get("headers") or {})
        params = dict(req.get("params") or {})
        cookies = dict(req.get("cookies") or {})
        apply_auth(req.get("auth") or [], self.config.security, headers, params, cookies)

        path = render_path(req.get("path") or "/", req.get("path_params") or {})
        if not path.startswith("/"):
            path = "/" + path
        url = self.config.base_url + path

        kwargs: Dict[str, Any] = {
            "headers": headers,
            "params": params or None,
            "cookies": cookies or None,
            "timeout": self.config.timeout_ms / 1000.0,
            "verify": self.config.ssl_verify,
            "allow_redirects": False,
        }
        if "json" in req:
            kwargs["json"] = req["json"]
        elif "data" in req:
            kwargs["data"] = req["data"]
        elif "files" in req:
            kwargs["files"] = req["files"]
        if self.config.proxy:
            kwargs["proxies"] = {"http": self.config.proxy, "https": self.config.proxy}
        if self.config.security.client_cert:
            kwargs["cert"] = self.config.security.client_cert
        return req.get("method", "GET").upper(), url, kwargs

    # ----------------------- Funtion _exchange ----------------------------#
    def _exchange(self, method: str, url: str, kwargs: Dict[str, Any]):
        with self._slots:
            with self._lock:
                self._in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
            try:
                start = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                wall_ms = (time.perf_counter() - start) * 1000.0
            finally:
                with self._lock:
                    self._in_flight -= 1
        elapsed = getattr(resp, "elapsed", None)
        latency = elapsed.total_seconds() * 1000.0 if elapsed is not None else wall_ms
        return resp, latency

    # ----------------------- Funtion _retrying ----------------------------#
    def _retrying(self, method: str, url: str) -> Retrying:
        def log_retry(state: RetryCallState) -> None:
            logger.debug(
                "Transport error on %s %s (attempt %d), retrying in %.2fs",
                method, url, state.attempt_number, state.next_action.sleep if state.next_action else 0.0,
            )

        # SSLError is a ConnectionError but a retry cannot fix a certificate
        return Retrying(
            retry=retry_if_exception_type(RETRYABLE_ERRORS) & retry_if_not_exception_type(requests.exceptions.SSLError),
            wait=wait_exponential(multiplier=self.config.backoff_ms / 1000.0, exp_base=2),
            stop=stop_after_attempt(1 + self.config.retry_count) | stop_when_event_set(self.cancel_token.event),
            sleep=self.cancel_token.wait,
            before_sleep=log_retry,
            reraise=True,
        )

    # ----------------------- Funtion _run_one ----------------------------#
    def _run_one(self, tc: TestCase, sequence: int = 0) -> Optional[ExecutionResult]:
        method, url, kwargs = self._prepare(tc)
        attempts = 0
        try:
            for attempt in self._retrying(method, url):
                with attempt:
                    if self.cancel_token.cancelled():
                        return None
                    attempts = attempt.retry_state.attempt_number
                    resp, latency = self._exchange(method, url, kwargs)
        except requests.exceptions.SSLError as e:
            return ExecutionResult(tc.id, transport_error=f"SSLError: {e}", url=url, attempts=attempts, sequence=sequence)
        except RETRYABLE_ERRORS as e:
            if self.cancel_token.cancelled():
                return None
            logger.debug("Giving up on %s %s after %d attempts: %s", method, url, attempts, e)
            return ExecutionResult(tc.id, transport_error=f"{type(e).__name__}: {e}", url=url, attempts=attempts, sequence=sequence)
        except requests.RequestException as e:
            return ExecutionResult(tc.id, transport_error=f"{type(e).__name__}: {e}", url=url, attempts=attempts, sequence=sequence)

        text = resp.text or ""
        return ExecutionResult(
            test_case_id=tc.id,
            status_code=resp.status_code,
            latency_ms=round(latency, 3),
            body_snippet=text[: self.config.body_limit],
            headers={str(k).lower(): str(v) for k, v in (resp.headers or {}).items()},
            url=url,
            attempts=attempts,
            sequence=sequence,
        )

    # ----------------------- Funtion _run_case ----------------------------#
    def _run_case(self, tc: TestCase) -> Optional[List[ExecutionResult]]:
        results: List[ExecutionResult] = []
        for seq in range(max(1, tc.burst)):
            res = self._run_one(tc, seq)
            if res is None:
                # a partial burst is not a usable result
                return None
            results.append(res)
        return results

    # ----------------------- Funtion execute ----------------------------#
    def execute(self, test_cases: Sequence[TestCase]) -> Dict[str, List[ExecutionResult]]:
        results: Dict[str, List[ExecutionResult]] = {}
        first: List[TestCase] = []
        probes: Dict[str, List[TestCase]] = {}
        baseline_refs = {tc.endpoint_ref for tc in test_cases if tc.is_baseline}
        for tc in test_cases:
            if tc.is_baseline or tc.endpoint_ref not in baseline_refs:
                first.append(tc)
            else:
                probes.setdefault(tc.endpoint_ref, []).append(tc)

        pending: Dict[Future, TestCase] = {}
        pbar = tqdm(total=len(test_cases), desc="SWAGX test cases", unit="case", dynamic_ncols=True, disable=not self.show_progress)
        pool = ThreadPoolExecutor(max_workers=self.config.concurrency, thread_name_prefix="swagx")

        def submit(tc: TestCase) -> bool:
            if self.cancel_token.cancelled():
                return False
            pending[pool.submit(self._run_case, tc)] = tc
            return True

        try:
            for tc in first:
                if not submit(tc):
                    break
            while pending:
                done, _ = wait(list(pending), timeout=POLL_INTERVAL_S, return_when=FIRST_COMPLETED)
                for fut in done:
                    tc = pending.pop(fut)
                    pbar.update(1)
                    try:
                        res = fut.result()
                    except Exception as e:
                        logger.error("Unexpected error executing %s (%s): %s", tc.id, tc.endpoint.key, e)
                        res = [ExecutionResult(tc.id, transport_error=f"{type(e).__name__}: {e}")]
                    if res is None:
                        continue
                    results[tc.id] = res
                    if tc.is_baseline:
                        for probe in probes.pop(tc.endpoint_ref, []):
                            if not submit(probe):
                                break
                # finished work is kept, anything still running is abandoned
                if self.cancel_token.cancelled():
                    break
        except KeyboardInterrupt:
            logger.warning("Interrupted, cancelling outstanding requests")
            self.cancel_token.cancel()
        finally:
            pool.shutdown(wait=not self.cancel_token.cancelled(), cancel_futures=True)
            pbar.close()

        self.incomplete = len(results) < len(test_cases)
        if self.incomplete:
            logger.warning("Run incomplete: %d of %d test cases executed", len(results), len(test_cases))
        return results
