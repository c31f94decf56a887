########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################

from __future__ import annotations
import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import jwt

from scan_models import ConfigError, Endpoint

logger = logging.getLogger(__name__)

MODE_APPLY = "apply"
MODE_REMOVE = "remove"
MODE_INVALID = "invalid"

INVALID_BASIC = base64.b64encode(b"invalid:invalid").decode("ascii")
TOKEN_SCHEMES = ("bearer", "oauth2", "openidconnect")


@dataclass(frozen=True)
class SecurityConfig:
    credentials: Dict[str, str] = field(default_factory=dict)
    api_key: Optional[str] = None
    bearer_token: Optional[str] = None
    basic_auth: Optional[str] = None
    client_cert: Optional[Tuple[str, str]] = None

    @classmethod
    def from_options(cls, opts: Mapping[str, Any]) -> "SecurityConfig":
        creds = opts.get("credentials") or {}
        if not isinstance(creds, Mapping):
            raise ConfigError("credentials must be a mapping of scheme name to value")
        basic = opts.get("basic_auth", opts.get("basicAuth"))
        if basic and ":" not in str(basic):
            raise ConfigError("basic auth must be given as user:password")
        cert = opts.get("client_cert", opts.get("clientCert"))
        key = opts.get("client_key", opts.get("clientKey"))
        if bool(cert) != bool(key):
            raise ConfigError("client certificate and key must be given together")
        return cls(
            credentials={str(k): str(v) for k, v in creds.items()},
            api_key=_clean(opts.get("api_key", opts.get("apiKey"))),
            bearer_token=_clean(opts.get("bearer_token", opts.get("token"))),
            basic_auth=_clean(basic),
            client_cert=(str(cert), str(key)) if cert else None,
        )

    def credential_for(self, placement: Mapping[str, Any]) -> Optional[str]:
        scheme = placement.get("scheme")
        kind = placement.get("kind")
        raw = self.credentials.get(scheme) if scheme else None
        if raw is None:
            if kind == "apiKey":
                raw = self.api_key
            elif kind == "basic":
                raw = self.basic_auth
            else:
                raw = self.bearer_token
        if raw is None:
            return None
        if kind == "basic":
            if raw.startswith("Basic "):
                return raw
            return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("ascii")
        if kind == "bearer":
            return _format_bearer(raw)
        return raw


def _clean(val: Any) -> Optional[str]:
    if val is None:
        return None
    val = str(val).strip()
    return val or None


# ----------------------- Funtion _format_bearer ----------------------------#
def _format_bearer(token: str) -> str:
    return token if token.startswith("Bearer ") else f"Bearer {token}"


# ----------------------- Funtion describe_scheme ----------------------------#
def describe_scheme(name: str, scheme: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Where a credential for this scheme goes in the request."""
    scheme = scheme or {}
    stype = str(scheme.get("type") or "").lower()
    if stype == "apikey":
        loc = str(scheme.get("in") or "header").lower()
        if loc not in ("header", "query", "cookie"):
            loc = "header"
        return {"scheme": name, "kind": "apiKey", "in": loc, "name": scheme.get("name") or "X-API-Key"}
    if stype == "http" and str(scheme.get("scheme") or "").lower() == "basic":
        return {"scheme": name, "kind": "basic", "in": "header", "name": "Authorization"}
    if stype and stype != "http" and stype not in TOKEN_SCHEMES:
        logger.debug("Unknown security scheme type %r for %s, treating as bearer", stype, name)
    # bearer, oauth2, openIdConnect and anything undeclared
    return {"scheme": name, "kind": "bearer", "in": "header", "name": "Authorization"}


# ----------------------- Funtion bypass_mode ----------------------------#
def bypass_mode(placement: Mapping[str, Any]) -> str:
    return MODE_REMOVE if placement.get("kind") == "apiKey" else MODE_INVALID


# ----------------------- Funtion declared_placements ----------------------------#
def declared_placements(endpoint: Endpoint, requirement: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
    """Placements for one requirement, or for every scheme the endpoint declares."""
    reqs = [requirement] if requirement is not None else list(endpoint.security)
    seen: Dict[str, Dict[str, Any]] = {}
    for req in reqs:
        for name in sorted(req or {}):
            if name not in seen:
                seen[name] = describe_scheme(name, endpoint.security_schemes.get(name))
    return list(seen.values())


# ----------------------- Funtion invalid_credential ----------------------------#
def invalid_credential(placement: Mapping[str, Any]) -> str:
    if placement.get("kind") == "basic":
        return f"Basic {INVALID_BASIC}"
    if placement.get("kind") == "apiKey":
        return "invalid-api-key"
    token = jwt.encode({"sub": "swagx", "role": "admin"}, None, algorithm="none")
    if isinstance(token, bytes):
        token = token.decode("ascii")
    return f"Bearer {token}"


# ----------------------- Funtion apply_auth ----------------------------#
def apply_auth(
    placements: List[Mapping[str, Any]],
    security: SecurityConfig,
    headers: Dict[str, str],
    params: Dict[str, str],
    cookies: Dict[str, str],
) -> None:
    targets = {"header": headers, "query": params, "cookie": cookies}
    for pl in placements or []:
        bucket = targets.get(pl.get("in", "header"), headers)
        name = pl.get("name") or "Authorization"
        mode = pl.get("mode", MODE_APPLY)
        if mode == MODE_REMOVE:
            bucket.pop(name, None)
            continue
        if mode == MODE_INVALID:
            bucket[name] = invalid_credential(pl)
            continue
        value = security.credential_for(pl)
        if value is None:
            logger.debug("No credential configured for scheme %s", pl.get("scheme"))
            continue
        bucket[name] = value
