########################################################
# SWAGX - API Security Scanner                         #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote
import json
import logging
import re

import yaml
from openapi_spec_validator import validate as oas_validate

from scan_models import Endpoint, Parameter, ParseError, PARAMETER_LOCATIONS

__all__ = [
    "parse",
    "load_spec",
    "iter_operations",
    "build_request",
    "body_from_schema",
    "object_properties",
    "sample_parameter_value",
    "schema_type",
    "flatten_schema",
    "multipart_fields",
    "render_path",
    "synthesize_operation_id",
]

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
MAX_SCHEMA_DEPTH = 6


#================funtion _coerce_list coerce value to list ##########
def _coerce_list(x: Any) -> List[Any]:
    if x is None:
        return []
    if isinstance(x, list):
        return x
    return [x]


#================funtion _iter_path_items iterate path items from spec ##########
def _iter_path_items(spec: Dict[str, Any]) -> Iterable[Tuple[str, Dict[str, Any]]]:
    paths = spec.get("paths") or {}
    for p, item in paths.items():
        if not isinstance(item, dict):
            continue
        yield p, item


#================funtion _lookup_ref follow a local JSON pointer ##########
def _lookup_ref(root: Dict[str, Any], ref: str) -> Any:
    current: Any = root
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(current, dict) or part not in current:
            logger.warning("Reference not found: %s", ref)
            return {}
        current = current[part]
    return current


#================funtion _resolve_refs inline local $ref, cutting cycles ##########
def _resolve_refs(node: Any, root: Dict[str, Any], _stack: Tuple[str, ...] = ()) -> Any:
    if isinstance(node, list):
        return [_resolve_refs(x, root, _stack) for x in node]
    if not isinstance(node, dict):
        return node
    ref = node.get("$ref")
    if isinstance(ref, str):
        if ref in _stack or not ref.startswith("#/"):
            return {}
        target = _resolve_refs(_lookup_ref(root, ref), root, _stack + (ref,))
        siblings = {k: _resolve_refs(v, root, _stack) for k, v in node.items() if k != "$ref"}
        if isinstance(target, dict):
            merged = dict(target)
            merged.update(siblings)
            return merged
        return target
    return {k: _resolve_refs(v, root, _stack) for k, v in node.items()}


#================funtion _merge_parameters merge path-level and op-level parameters ##########
def _merge_parameters(path_level: List[Dict[str, Any]], op_level: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    merged: Dict[Tuple[Any, Any], Dict[str, Any]] = {}
    for src in (path_level or []) + (op_level or []):
        if not isinstance(src, dict):
            continue
        # operation-level definitions override path-level ones
        merged[(src.get("name"), src.get("in"))] = src
    return list(merged.values())


#================funtion _swagger2_request_body_from_params convert Swagger 2 params to requestBody ##########
def _swagger2_request_body_from_params(params: List[Dict[str, Any]], consumes: List[str]) -> Optional[Dict[str, Any]]:
    if not params:
        return None
    body_params = [p for p in params if p.get("in") == "body"]
    form_params = [p for p in params if p.get("in") == "formData"]
    if body_params:
        schema = body_params[0].get("schema") or {}
        mime = next((c for c in consumes if "json" in c), "application/json")
        return {"required": bool(body_params[0].get("required")), "content": {mime: {"schema": schema}}}
    if form_params:
        has_file = any((p.get("type") == "file") for p in form_params)
        mime = "multipart/form-data" if has_file else "application/x-www-form-urlencoded"
        props = {}
        required = []
        for p in form_params:
            nm = p.get("name", "")
            props[nm] = {"type": p.get("type", "string")}
            if p.get("required"):
                required.append(nm)
        schema: Dict[str, Any] = {"type": "object", "properties": props}
        if required:
            schema["required"] = required
        return {"required": bool(required), "content": {mime: {"schema": schema}}}
    return None


#================funtion load_spec load JSON/YAML spec ##########
def load_spec(source) -> Dict[str, Any]:
    if isinstance(source, dict):
        return deepcopy(source)
    path = Path(str(source))
    if not path.is_file():
        raise ParseError(f"Swagger file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"Cannot read {path}: {e}") from e
    try:
        spec = json.loads(text)
    except json.JSONDecodeError:
        try:
            spec = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ParseError(f"Spec parse failed (not JSON/YAML): {e}") from e
    if not isinstance(spec, dict):
        raise ParseError("Spec content must be a JSON/YAML object.")
    return spec


#================funtion iter_operations yield raw operations from spec ##########
def iter_operations(spec: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    consumes = _coerce_list(spec.get("consumes"))
    for path, item in _iter_path_items(spec or {}):
        path_params = _resolve_refs(_coerce_list(item.get("parameters")), spec)
        for verb, op in item.items():
            m = verb.upper()
            if m not in HTTP_METHODS:
                continue
            raw = op if isinstance(op, dict) else {}
            merged_params = _merge_parameters(path_params, _resolve_refs(_coerce_list(raw.get("parameters")), spec))
            if "requestBody" in raw:
                request_body = raw.get("requestBody")
            else:
                op_consumes = _coerce_list(raw.get("consumes")) or consumes
                request_body = _swagger2_request_body_from_params(merged_params, op_consumes)
            yield {
                "method": m,
                "path": path,
                "tags": _coerce_list(raw.get("tags")),
                "operationId": raw.get("operationId", ""),
                "summary": raw.get("summary", ""),
                "parameters": merged_params,
                "requestBody": request_body,
                "responses": raw.get("responses") or {},
                "security": raw.get("security", None),
                "deprecated": bool(raw.get("deprecated", False)),
            }


#================funtion synthesize_operation_id derive a stable id from method+path ##########
def synthesize_operation_id(method: str, path: str) -> str:
    return f"{(method or 'GET').upper()}_{re.sub(r'[^a-zA-Z0-9]', '_', path or '/')}"


#================funtion _security_schemes collect scheme definitions for OAS3 and Swagger 2 ##########
def _security_schemes(spec: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    comps = spec.get("components") or {}
    schemes = dict(comps.get("securitySchemes") or {})
    for name, sch in (spec.get("securityDefinitions") or {}).items():
        sch = dict(sch or {})
        if sch.get("type") == "basic":
            sch = {"type": "http", "scheme": "basic"}
        schemes.setdefault(name, sch)
    return {k: v for k, v in schemes.items() if isinstance(v, dict)}


#================funtion _to_parameter normalize one raw parameter ##########
def _to_parameter(raw: Dict[str, Any]) -> Optional[Parameter]:
    name = raw.get("name")
    loc = str(raw.get("in") or "").lower()
    if not name or loc not in PARAMETER_LOCATIONS:
        return None
    schema = raw.get("schema") if isinstance(raw.get("schema"), dict) else {}
    if not schema and isinstance(raw.get("content"), dict):
        # OAS3 allows a single media type entry instead of a schema
        media = next(iter(raw["content"].values()), None)
        if isinstance(media, dict) and isinstance(media.get("schema"), dict):
            schema = media["schema"]
    if not schema and raw.get("type"):
        schema = {k: raw[k] for k in ("type", "format", "enum", "default", "items", "minimum", "maximum") if k in raw}
    example = raw.get("example", raw.get("x-example"))
    if example is None and isinstance(schema, dict):
        example = schema.get("example")
    return Parameter(
        name=str(name),
        location=loc,
        required=bool(raw.get("required")) or loc == "path",
        schema=schema or {},
        example=example,
        deprecated=bool(raw.get("deprecated", False)),
        description=str(raw.get("description") or ""),
    )


#================funtion _normalize_responses keep description/content/headers per code ##########
def _normalize_responses(responses: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    for code, resp in (responses or {}).items():
        resp = resp if isinstance(resp, dict) else {}
        content = resp.get("content") or {}
        if not content and isinstance(resp.get("schema"), dict):
            content = {"application/json": {"schema": resp["schema"]}}
        out[str(code)] = {
            "description": resp.get("description", ""),
            "content": content,
            "headers": resp.get("headers") or {},
        }
    return out


#================funtion _to_endpoint build an immutable Endpoint from a raw op ##########
def _to_endpoint(op: Dict[str, Any], spec: Dict[str, Any], schemes: Dict[str, Dict[str, Any]]) -> Endpoint:
    op = _resolve_refs(op, spec)
    params = tuple(p for p in (_to_parameter(raw) for raw in op["parameters"]) if p is not None)
    security = op["security"]
    if security is None:
        security = spec.get("security") or []
    security = tuple(req for req in _coerce_list(security) if isinstance(req, dict))
    used = {name for req in security for name in req}
    body = op.get("requestBody")
    if isinstance(body, dict):
        body = {
            "required": bool(body.get("required", False)),
            "description": body.get("description", ""),
            "content": body.get("content") or {},
        }
    else:
        body = None
    return Endpoint(
        path=op["path"],
        method=op["method"],
        operation_id=op.get("operationId") or synthesize_operation_id(op["method"], op["path"]),
        parameters=params,
        request_body=body,
        responses=_normalize_responses(op.get("responses") or {}),
        security=security,
        security_schemes={name: schemes[name] for name in sorted(used) if name in schemes},
        deprecated=op.get("deprecated", False),
        summary=op.get("summary") or "",
        tags=tuple(str(t) for t in op.get("tags") or []),
    )


# ----------------------- Funtion parse ----------------------------#
def parse(file_path, validate: bool = True) -> Dict[str, Any]:
    spec = load_spec(file_path)
    if "openapi" not in spec and "swagger" not in spec:
        raise ParseError("Document is neither OpenAPI 3 ('openapi') nor Swagger 2 ('swagger').")
    if validate:
        try:
            oas_validate(spec)
        except Exception as e:
            first_line = (str(e).splitlines() or [type(e).__name__])[0]
            raise ParseError(f"Invalid OpenAPI document: {first_line}") from e

    schemes = _security_schemes(spec)
    endpoints = [_to_endpoint(op, spec, schemes) for op in iter_operations(spec)]
    servers = spec.get("servers") or []
    if not servers and spec.get("host"):
        scheme = (_coerce_list(spec.get("schemes")) or ["http"])[0]
        servers = [{"url": f"{scheme}://{spec['host']}{spec.get('basePath', '')}"}]
    logger.debug("Parsed %d endpoints from %s", len(endpoints), file_path)
    return {
        "info": spec.get("info") or {},
        "servers": servers,
        "endpoints": endpoints,
        "security": spec.get("security") or [],
        "components": spec.get("components") or {"securitySchemes": schemes},
    }


#================funtion _example_for_type return example value by type/format ##########
def _example_for_type(t: Any, fmt: Any = "") -> Any:
    t = schema_type({"type": t})
    if t == "string":
        if fmt == "date-time":
            return "2025-01-01T00:00:00Z"
        if fmt == "date":
            return "2025-01-01"
        if fmt == "email":
            return "test@example.com"
        if fmt == "uuid":
            return "550e8400-e29b-41d4-a716-446655440000"
        return "test"
    if t == "integer":
        return 1
    if t == "number":
        return 1.0
    if t == "boolean":
        return True
    if t == "array":
        return []
    if t == "object":
        return {}
    return "test"


#================funtion flatten_schema merge allOf and pick the first oneOf/anyOf ##########
def flatten_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(schema, dict):
        return {}
    for k in ("oneOf", "anyOf"):
        if isinstance(schema.get(k), list) and schema[k]:
            first = schema[k][0] if isinstance(schema[k][0], dict) else {}
            schema = {**{x: y for x, y in schema.items() if x != k}, **first}
    if isinstance(schema.get("allOf"), list):
        merged: Dict[str, Any] = {x: y for x, y in schema.items() if x != "allOf"}
        merged["properties"] = dict(object_properties(merged))
        if not isinstance(merged.get("required"), list):
            merged.pop("required", None)
        for sub in schema["allOf"]:
            sub = flatten_schema(sub)
            merged["properties"].update(object_properties(sub))
            if isinstance(sub.get("required"), list):
                merged["required"] = sorted(set(merged.get("required", [])) | set(sub["required"]))
            for key in ("type", "format", "items", "enum"):
                if key in sub and key not in merged:
                    merged[key] = sub[key]
        schema = merged
    return schema


#================funtion object_properties declared properties of an object schema ##########
def object_properties(schema: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    schema = flatten_schema(schema)
    props = schema.get("properties") or {}
    if not isinstance(props, dict):
        return {}
    return {str(k): (v if isinstance(v, dict) else {}) for k, v in props.items()}


#================funtion schema_type first concrete type of a schema, 3.1 type arrays included ##########
def schema_type(schema: Any) -> str:
    schema = flatten_schema(schema)
    t = schema.get("type")
    if isinstance(t, list):
        t = next((x for x in t if isinstance(x, str) and x != "null"), None)
    if not isinstance(t, str) or not t:
        return "object" if isinstance(schema.get("properties"), dict) else "string"
    return t.lower()


#================funtion body_from_schema produce minimal example body from JSON schema ##########
def body_from_schema(schema: Dict[str, Any], _depth: int = 0) -> Any:
    schema = flatten_schema(schema)
    if not schema or _depth > MAX_SCHEMA_DEPTH:
        return {}
    if "example" in schema:
        return deepcopy(schema["example"])
    if "default" in schema:
        return deepcopy(schema["default"])
    if isinstance(schema.get("enum"), list) and schema["enum"]:
        return schema["enum"][0]
    t = schema_type(schema)
    if t == "object":
        props = object_properties(schema)
        reqd = schema.get("required")
        reqd = [str(r) for r in reqd] if isinstance(reqd, list) else []
        names = [n for n in props if n in reqd] if reqd else list(props)
        out = {name: body_from_schema(props[name], _depth + 1) for name in names}
        for name in reqd:
            out.setdefault(name, "test")
        return out
    if t == "array":
        return [body_from_schema(schema.get("items") or {}, _depth + 1)]
    return _example_for_type(t, schema.get("format", ""))


#================funtion sample_parameter_value example/default/type sample for a parameter ##########
def sample_parameter_value(p: Parameter) -> Any:
    schema = flatten_schema(p.schema)
    if p.example is not None:
        return p.example
    if schema.get("example") is not None:
        return schema["example"]
    if schema.get("default") is not None:
        return schema["default"]
    if isinstance(schema.get("enum"), list) and schema["enum"]:
        return schema["enum"][0]
    return _example_for_type(schema_type(schema), schema.get("format", ""))


#================funtion _stringify render a sample value for a URL/header ##########
def _stringify(val: Any) -> str:
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, (list, tuple, set)):
        return ",".join(map(str, val))
    if isinstance(val, dict):
        return json.dumps(val, separators=(",", ":"), sort_keys=True)
    return str(val)


#================funtion _pick_media choose the body media type to send ##########
def _pick_media(content: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    if not isinstance(content, dict) or not content:
        return None, {}
    for preferred in ("application/json", "application/x-www-form-urlencoded", "multipart/form-data"):
        if preferred in content:
            return preferred, (content[preferred] or {})
    for ctype, media in content.items():
        if "json" in ctype:
            return ctype, (media or {})
    ctype, media = next(iter(content.items()))
    return ctype, (media or {})


#================funtion build_request construct the baseline request template for an endpoint ##########
def build_request(endpoint: Endpoint) -> Dict[str, Any]:
    path_params: Dict[str, str] = {}
    query: Dict[str, str] = {}
    headers: Dict[str, str] = {}
    cookies: Dict[str, str] = {}

    for p in endpoint.parameters:
        if not p.required and p.location != "path":
            continue
        sval = _stringify(sample_parameter_value(p))
        if p.location == "path":
            path_params[p.name] = sval
        elif p.location == "query":
            query[p.name] = sval
        elif p.location == "header":
            if p.name.lower() not in ("authorization", "content-type", "content-length", "host"):
                headers[p.name] = sval
        elif p.location == "cookie":
            cookies[p.name] = sval

    # placeholders without a declared parameter still need a value
    for name in re.findall(r"\{([^}]+)\}", endpoint.path):
        path_params.setdefault(name, "1" if name.lower().endswith("id") else "test")

    req: Dict[str, Any] = {
        "method": endpoint.method.upper(),
        "path": endpoint.path,
        "path_params": path_params,
        "params": query,
        "headers": headers,
        "cookies": cookies,
    }

    rb = endpoint.request_body or {}
    ctype, media = _pick_media(rb.get("content") or {})
    if ctype:
        example = media.get("example")
        if example is None and isinstance(media.get("examples"), dict) and media["examples"]:
            first = next(iter(media["examples"].values()))
            example = first.get("value") if isinstance(first, dict) else None
        body = deepcopy(example) if example is not None else body_from_schema(media.get("schema") or {})
        req["content_type"] = ctype
        if "multipart" in ctype:
            # requests writes the multipart Content-Type with its boundary
            req["files"] = multipart_fields(body)
        elif "json" in ctype or (isinstance(body, (dict, list)) and "form" not in ctype):
            req["json"] = body
        else:
            req["data"] = body
            headers.setdefault("Content-Type", ctype.split(";")[0])
    return req


#================funtion multipart_fields body as multipart form parts ##########
def multipart_fields(body: Any) -> Dict[str, Tuple[None, str]]:
    if not isinstance(body, dict):
        return {"data": (None, _stringify(body))}
    return {str(k): (None, _stringify(v)) for k, v in body.items()}


#================funtion render_path substitute path parameter values, URL-encoded ##########
def render_path(path_tmpl: str, values: Dict[str, Any]) -> str:
    out = path_tmpl or "/"
    for name, val in (values or {}).items():
        out = out.replace("{" + name + "}", quote(_stringify(val), safe=""))
    return out
