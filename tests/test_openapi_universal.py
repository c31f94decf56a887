"""Catalog ingestion: loading, $ref resolution, Swagger 2 bodies, security inheritance."""
import json

import pytest

from openapi_universal import build_request, multipart_fields, parse, render_path, schema_type, synthesize_operation_id
from scan_models import ParseError


OAS3 = {
    "openapi": "3.0.3",
    "info": {"title": "Users", "version": "1.0"},
    "servers": [{"url": "https://api.example.com"}],
    "security": [{"ApiKeyAuth": []}],
    "paths": {
        "/users/{id}": {
            "parameters": [
                {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}, "description": "path level"},
            ],
            "get": {
                "parameters": [
                    {"$ref": "#/components/parameters/Id"},
                    {"name": "verbose", "in": "query", "schema": {"type": "boolean"}},
                    {"name": "fields", "in": "query", "required": True, "schema": {"type": "string", "example": "name"}},
                ],
                "responses": {
                    "200": {
                        "description": "ok",
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/User"}}},
                    }
                },
            },
            "put": {
                "operationId": "updateUser",
                "security": [],
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Node"}}},
                },
                "responses": {"204": {"description": "updated"}},
            },
        }
    },
    "components": {
        "securitySchemes": {"ApiKeyAuth": {"type": "apiKey", "in": "header", "name": "X-API-Key"}},
        "parameters": {
            "Id": {"name": "id", "in": "path", "required": True, "schema": {"type": "integer", "example": 7}},
        },
        "schemas": {
            "User": {"type": "object", "properties": {"id": {"type": "integer"}, "name": {"type": "string"}}},
            "Node": {
                "type": "object",
                "required": ["name"],
                "properties": {"name": {"type": "string"}, "child": {"$ref": "#/components/schemas/Node"}},
            },
        },
    },
}

SWAGGER2 = {
    "swagger": "2.0",
    "info": {"title": "Legacy", "version": "1"},
    "host": "legacy.example.com",
    "basePath": "/v1",
    "schemes": ["https"],
    "securityDefinitions": {"basic": {"type": "basic"}},
    "paths": {
        "/orders": {
            "post": {
                "security": [{"basic": []}],
                "parameters": [
                    {"name": "order", "in": "body", "required": True,
                     "schema": {"type": "object", "properties": {"qty": {"type": "integer"}}}},
                ],
                "responses": {"201": {"description": "created", "schema": {"type": "object"}}},
            }
        },
        "/login": {
            "post": {
                "parameters": [
                    {"name": "user", "in": "formData", "type": "string", "required": True},
                    {"name": "pass", "in": "formData", "type": "string"},
                ],
                "responses": {"200": {"description": "ok"}},
            }
        },
    },
}


def _write(tmp_path, doc, name="api.json"):
    p = tmp_path / name
    p.write_text(json.dumps(doc), encoding="utf-8")
    return p


def _by_key(catalog):
    return {ep.key: ep for ep in catalog["endpoints"]}


def test_parse_returns_catalog_shape(tmp_path):
    catalog = parse(_write(tmp_path, OAS3), validate=False)
    assert set(catalog) == {"info", "servers", "endpoints", "security", "components"}
    assert catalog["info"]["title"] == "Users"
    assert len(catalog["endpoints"]) == 2


def test_operation_level_parameter_overrides_path_level(tmp_path):
    eps = _by_key(parse(_write(tmp_path, OAS3), validate=False))
    get = eps["GET /users/{id}"]
    ids = [p for p in get.parameters if p.name == "id"]
    assert len(ids) == 1
    assert ids[0].schema["type"] == "integer"
    assert ids[0].example == 7


def test_security_inherited_and_overridden(tmp_path):
    eps = _by_key(parse(_write(tmp_path, OAS3), validate=False))
    get = eps["GET /users/{id}"]
    put = eps["PUT /users/{id}"]
    assert get.security == ({"ApiKeyAuth": []},)
    assert get.declares_security
    assert get.security_schemes["ApiKeyAuth"]["in"] == "header"
    assert put.security == ()
    assert not put.declares_security


def test_operation_id_synthesized_when_absent(tmp_path):
    eps = _by_key(parse(_write(tmp_path, OAS3), validate=False))
    assert eps["GET /users/{id}"].operation_id == "GET__users__id_"
    assert eps["PUT /users/{id}"].operation_id == "updateUser"
    assert synthesize_operation_id("get", "/a-b") == "GET__a_b"


def test_cyclic_refs_are_cut(tmp_path):
    eps = _by_key(parse(_write(tmp_path, OAS3), validate=False))
    schema = eps["PUT /users/{id}"].request_body["content"]["application/json"]["schema"]
    assert schema["properties"]["name"] == {"type": "string"}
    assert schema["properties"]["child"] == {}


def test_response_schema_resolved(tmp_path):
    eps = _by_key(parse(_write(tmp_path, OAS3), validate=False))
    schema = eps["GET /users/{id}"].responses["200"]["content"]["application/json"]["schema"]
    assert set(schema["properties"]) == {"id", "name"}


def test_swagger2_body_and_form_parameters(tmp_path):
    catalog = parse(_write(tmp_path, SWAGGER2), validate=False)
    eps = _by_key(catalog)
    orders = eps["POST /orders"]
    assert "application/json" in orders.request_body["content"]
    assert orders.request_body["required"] is True
    assert orders.security_schemes["basic"] == {"type": "http", "scheme": "basic"}
    assert orders.responses["201"]["content"]["application/json"]["schema"] == {"type": "object"}

    login = eps["POST /login"]
    form = login.request_body["content"]["application/x-www-form-urlencoded"]["schema"]
    assert form["required"] == ["user"]
    assert all(p.location in ("path", "query", "header", "cookie") for p in login.parameters)
    assert catalog["servers"] == [{"url": "https://legacy.example.com/v1"}]


def test_yaml_documents_are_accepted(tmp_path):
    p = tmp_path / "api.yaml"
    p.write_text(
        "openapi: 3.0.3\n"
        "info: {title: t, version: '1'}\n"
        "paths:\n"
        "  /ping:\n"
        "    get:\n"
        "      responses:\n"
        "        '200': {description: ok}\n",
        encoding="utf-8",
    )
    catalog = parse(p)
    assert [ep.key for ep in catalog["endpoints"]] == ["GET /ping"]


def test_parse_errors(tmp_path):
    with pytest.raises(ParseError):
        parse(tmp_path / "missing.json")

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ParseError):
        parse(listing)

    broken = tmp_path / "broken.json"
    broken.write_text("{ not: [valid", encoding="utf-8")
    with pytest.raises(ParseError):
        parse(broken)

    unknown = _write(tmp_path, {"info": {}, "paths": {}}, "unknown.json")
    with pytest.raises(ParseError):
        parse(unknown, validate=False)


def test_validation_failure_is_parse_error(tmp_path):
    invalid = _write(tmp_path, {"openapi": "3.0.3", "info": {"title": "no version"}, "paths": {}})
    with pytest.raises(ParseError):
        parse(invalid)


def test_build_request_uses_required_inputs_and_minimal_body(tmp_path):
    eps = _by_key(parse(_write(tmp_path, OAS3), validate=False))
    req = build_request(eps["GET /users/{id}"])
    assert req["method"] == "GET"
    assert req["path_params"] == {"id": "7"}
    assert req["params"] == {"fields": "name"}
    assert "json" not in req

    put_req = build_request(eps["PUT /users/{id}"])
    assert put_req["json"] == {"name": "test"}
    assert put_req["content_type"] == "application/json"


def test_render_path_encodes_values():
    assert render_path("/files/{name}", {"name": "../etc/passwd"}) == "/files/..%2Fetc%2Fpasswd"
    assert render_path("/users/{id}", {"id": 1}) == "/users/1"


def test_content_parameter_takes_media_schema(tmp_path):
    doc = {
        "openapi": "3.0.3",
        "info": {"title": "Search", "version": "1.0"},
        "paths": {
            "/search": {
                "get": {
                    "parameters": [{
                        "name": "filter",
                        "in": "query",
                        "required": True,
                        "content": {"application/json": {"schema": {
                            "type": "object", "properties": {"color": {"type": "string"}},
                        }}},
                    }],
                    "responses": {"200": {"description": "ok"}},
                }
            }
        },
    }
    ep = _by_key(parse(_write(tmp_path, doc)))["GET /search"]
    assert ep.parameters[0].schema["type"] == "object"
    req = build_request(ep)
    assert req["params"] == {"filter": "{}"}


@pytest.mark.parametrize("schema,expected", [
    ({"type": "integer"}, "integer"),
    ({"type": "Number"}, "number"),
    ({"type": ["integer", "null"]}, "integer"),
    ({"type": ["null", "string"]}, "string"),
    ({"type": ["null"]}, "string"),
    ({"type": []}, "string"),
    ({"properties": {"a": {}}}, "object"),
    ({}, "string"),
    ({"oneOf": [{"type": "boolean"}, {"type": "string"}]}, "boolean"),
    ("not-a-schema", "string"),
])
def test_schema_type_collapses_type_arrays(schema, expected):
    assert schema_type(schema) == expected


def test_build_request_multipart_body_goes_to_files(tmp_path):
    doc = dict(OAS3, paths={
        "/avatars": {
            "post": {
                "requestBody": {"content": {"multipart/form-data": {"schema": {
                    "type": "object",
                    "required": ["caption", "public"],
                    "properties": {"caption": {"type": "string"}, "public": {"type": "boolean"}},
                }}}},
                "responses": {"201": {"description": "stored"}},
            }
        }
    })
    ep = _by_key(parse(_write(tmp_path, doc), validate=False))["POST /avatars"]
    req = build_request(ep)
    assert req["files"] == {"caption": (None, "test"), "public": (None, "true")}
    assert "data" not in req and "json" not in req
    assert "Content-Type" not in req["headers"]


def test_multipart_fields_wraps_scalars():
    assert multipart_fields("raw") == {"data": (None, "raw")}
    assert multipart_fields({"n": 2, "tags": ["a", "b"]}) == {"n": (None, "2"), "tags": (None, "a,b")}
