"""OpenAPI 3 / Swagger 2 import and OpenAPI 3 export.

Import turns each (path, method) operation into an ApiRequest whose URL is the declared base
plus the path with ``{id}`` templates rewritten as ``{{id}}`` tokens. Export reverses this,
splitting each request URL into a server base and a templated path.
"""

from __future__ import annotations

import re
from typing import Any

import orjson
import yaml

from .exceptions import ConversionError
from .logging_config import get_logger
from .models import (
    ApiRequest,
    BodyType,
    Collection,
    Folder,
    KeyValuePair,
    body_type_for_media_type,
    enabled_pairs,
    media_type_for_body_type,
    new_id,
)

logger = get_logger("openapi")

OPENAPI_VERSION = "3.0.3"
BASE_URL_TOKEN = "{{baseUrl}}"
METHODS = ("get", "post", "put", "patch", "delete", "head", "options")
MAX_SCHEMA_DEPTH = 8

# {id} but not {{id}}
PATH_TEMPLATE = re.compile(r"(?<!\{)\{([^{}]+)\}(?!\})")
# {{id}} as stored in collections
TOKEN = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")
LEADING_TOKEN = re.compile(r"^\{\{[^{}]+\}\}")
# Postman-style :id path segments
COLON_PARAM = re.compile(r"(?<=/):([A-Za-z_][\w-]*)")

# Preference when an operation declares several request media types
_BODY_PREFERENCE = (
    BodyType.JSON,
    BodyType.FORM_URLENCODED,
    BodyType.FORM_DATA,
    BodyType.XML,
    BodyType.TEXT,
    BodyType.HTML,
)


# --- import ---------------------------------------------------------------


def import_openapi(spec: Any) -> list[Collection]:
    """Convert an OpenAPI 3.x document (already validated) into one Collection."""
    if not isinstance(spec, dict):
        raise ConversionError("OpenAPI document must be an object")
    base = BASE_URL_TOKEN
    servers = spec.get("servers")
    if isinstance(servers, list) and servers and isinstance(servers[0], dict):
        url = servers[0].get("url")
        if isinstance(url, str) and url:
            base = _server_base(url, servers[0].get("variables"))
    return [_build_collection(spec, base.rstrip("/"), swagger=False)]


def import_swagger(spec: Any) -> list[Collection]:
    """Convert a Swagger 2.0 document into one Collection (base = scheme://host + basePath)."""
    if not isinstance(spec, dict):
        raise ConversionError("Swagger document must be an object")
    host = spec.get("host")
    base_path = spec.get("basePath") if isinstance(spec.get("basePath"), str) else ""
    if isinstance(host, str) and host:
        schemes = spec.get("schemes")
        scheme = schemes[0] if isinstance(schemes, list) and schemes else "https"
        base = f"{scheme}://{host}{base_path}"
    else:
        base = f"{BASE_URL_TOKEN}{base_path}"
    return [_build_collection(spec, base.rstrip("/"), swagger=True)]


def _server_base(url: str, variables: Any) -> str:
    variables = variables if isinstance(variables, dict) else {}

    def repl(m: re.Match[str]) -> str:
        name = m.group(1).strip()
        var = variables.get(name)
        if isinstance(var, dict) and var.get("default") is not None:
            return str(var["default"])
        return "{{" + name + "}}"

    return PATH_TEMPLATE.sub(repl, url)


def _segments(path: str) -> list[str]:
    return [s for s in path.split("/") if s]


def _build_collection(spec: dict[str, Any], base: str, swagger: bool) -> Collection:
    info = spec.get("info") if isinstance(spec.get("info"), dict) else {}
    collection = Collection(
        id=new_id("col"),
        name=str(info.get("title") or "Imported API"),
        description=info.get("description") or None,
    )
    paths = spec.get("paths") if isinstance(spec.get("paths"), dict) else {}
    entries = [(str(p), item) for p, item in paths.items() if isinstance(item, dict)]
    flat = all(len(_segments(p)) <= 1 for p, _ in entries)

    folders: dict[str, Folder] = {}
    for path, item in entries:
        item = _deref(spec, item)
        shared = item.get("parameters") if isinstance(item.get("parameters"), list) else []
        for method, op in item.items():
            if str(method).lower() not in METHODS or not isinstance(op, dict):
                continue
            request = _build_request(spec, base, path, str(method).lower(), op, shared, swagger)
            segments = _segments(path)
            if flat or not segments:
                collection.requests.append(request)
                continue
            folder = folders.get(segments[0])
            if folder is None:
                folder = Folder(id=new_id("fld"), name=segments[0])
                folders[segments[0]] = folder
                collection.folders.append(folder)
            folder.requests.append(request)
    logger.debug(
        "Converted %d paths into %d folders for %s",
        len(entries),
        len(collection.folders),
        collection.name,
    )
    return collection


def _build_request(
    spec: dict[str, Any],
    base: str,
    path: str,
    method: str,
    op: dict[str, Any],
    shared: list[Any],
    swagger: bool,
) -> ApiRequest:
    params = _merge_parameters(spec, shared, op.get("parameters") if isinstance(op.get("parameters"), list) else [])
    by_location: dict[str, list[dict[str, Any]]] = {}
    for p in params:
        by_location.setdefault(str(p.get("in")), []).append(p)

    def pairs(location: str) -> list[KeyValuePair]:
        return [KeyValuePair(key=str(p["name"]), value=_param_value(spec, p)) for p in by_location.get(location, [])]

    body, body_type, form_data = "", BodyType.NONE, None
    if swagger:
        body_params = by_location.get("body") or []
        if body_params:
            bp = body_params[0]
            example = bp.get("x-example")
            if example is None:
                example = _skeleton(spec, bp.get("schema"))
            body, body_type = _dump_body(example, BodyType.JSON), BodyType.JSON
        elif by_location.get("formData"):
            consumes = op.get("consumes") or spec.get("consumes") or []
            multipart = any(str(c).startswith("multipart/") for c in consumes)
            body_type = BodyType.FORM_DATA if multipart else BodyType.FORM_URLENCODED
            form_data = pairs("formData")
    else:
        body, body_type, form_data = _request_body(spec, op.get("requestBody"))

    summary = op.get("summary") or op.get("operationId")
    return ApiRequest(
        id=new_id("req"),
        name=str(summary) if summary else f"{method.upper()} {path}",
        method=method.upper(),
        url=base + PATH_TEMPLATE.sub(lambda m: "{{" + m.group(1).strip() + "}}", path),
        params=pairs("query"),
        headers=pairs("header"),
        body=body,
        body_type=body_type,
        form_data=form_data,
        description=op.get("description") or None,
    )


def _merge_parameters(spec: dict[str, Any], shared: list[Any], own: list[Any]) -> list[dict[str, Any]]:
    merged: dict[tuple[str, str], dict[str, Any]] = {}
    for raw in [*shared, *own]:
        p = _deref(spec, raw)
        if not isinstance(p, dict) or not p.get("name"):
            continue
        merged[(str(p["name"]), str(p.get("in")))] = p
    return list(merged.values())


def _param_value(spec: dict[str, Any], param: dict[str, Any]) -> str:
    schema = _deref(spec, param.get("schema"))
    schema = schema if isinstance(schema, dict) else {}
    for candidate in (
        param.get("example"),
        param.get("x-example"),
        param.get("default"),
        schema.get("example"),
        schema.get("default"),
    ):
        if candidate is not None:
            return _scalar(candidate)
    return ""


def _request_body(spec: dict[str, Any], request_body: Any) -> tuple[str, BodyType, list[KeyValuePair] | None]:
    rb = _deref(spec, request_body)
    content = rb.get("content") if isinstance(rb, dict) else None
    if not isinstance(content, dict) or not content:
        return "", BodyType.NONE, None

    typed = [(body_type_for_media_type(mt), media) for mt, media in content.items()]
    chosen = None
    for preferred in _BODY_PREFERENCE:
        chosen = next(((bt, m) for bt, m in typed if bt is preferred), None)
        if chosen is not None:
            break
    if chosen is None:
        return "", BodyType.NONE, None
    body_type, media = chosen
    media = _deref(spec, media)
    media = media if isinstance(media, dict) else {}

    example = _media_example(spec, media)
    if body_type.is_form:
        schema = _deref(spec, media.get("schema"))
        props = schema.get("properties") if isinstance(schema, dict) else None
        props = props if isinstance(props, dict) else {}
        values = example if isinstance(example, dict) else {}
        fields = [
            KeyValuePair(key=str(name), value=_scalar(values[name] if name in values else _skeleton(spec, prop)))
            for name, prop in props.items()
        ]
        return "", body_type, fields
    if example is None:
        example = _skeleton(spec, media.get("schema"))
    return _dump_body(example, body_type), body_type, None


def _media_example(spec: dict[str, Any], media: dict[str, Any]) -> Any:
    if "example" in media:
        return media["example"]
    examples = media.get("examples")
    if isinstance(examples, dict) and examples:
        first = _deref(spec, next(iter(examples.values())))
        if isinstance(first, dict):
            return first.get("value")
    return None


def _dump_body(value: Any, body_type: BodyType) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if body_type is BodyType.JSON:
        return orjson.dumps(value, option=orjson.OPT_INDENT_2).decode("utf-8")
    return _scalar(value)


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return orjson.dumps(value).decode("utf-8")
    return str(value)


def _deref(spec: dict[str, Any], obj: Any) -> Any:
    """Follow local ``#/...`` $refs. External or cyclic references resolve to {}."""
    seen: set[str] = set()
    while isinstance(obj, dict) and isinstance(obj.get("$ref"), str):
        ref = obj["$ref"]
        if ref in seen or not ref.startswith("#/"):
            logger.debug("Unresolvable $ref %s", ref)
            return {}
        seen.add(ref)
        target: Any = spec
        for part in ref[2:].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            if not isinstance(target, dict) or part not in target:
                return {}
            target = target[part]
        obj = target
    return obj


def _skeleton(spec: dict[str, Any], schema: Any, depth: int = 0) -> Any:
    """Example value for a schema: example/default/enum first, else a typed placeholder."""
    schema = _deref(spec, schema)
    if not isinstance(schema, dict) or depth > MAX_SCHEMA_DEPTH:
        return None
    for key in ("example", "default"):
        if key in schema:
            return schema[key]
    enum = schema.get("enum")
    if isinstance(enum, list) and enum:
        return enum[0]
    all_of = schema.get("allOf")
    if isinstance(all_of, list) and all_of:
        merged: dict[str, Any] = {}
        for part in all_of:
            value = _skeleton(spec, part, depth + 1)
            if isinstance(value, dict):
                merged.update(value)
        return merged
    for combo in ("oneOf", "anyOf"):
        options = schema.get(combo)
        if isinstance(options, list) and options:
            return _skeleton(spec, options[0], depth + 1)

    kind = schema.get("type")
    if isinstance(kind, list):
        kind = next((k for k in kind if k != "null"), None)
    if kind == "object" or isinstance(schema.get("properties"), dict):
        props = schema.get("properties") if isinstance(schema.get("properties"), dict) else {}
        return {name: _skeleton(spec, prop, depth + 1) for name, prop in props.items()}
    if kind == "array":
        item = _skeleton(spec, schema.get("items"), depth + 1)
        return [] if item is None else [item]
    if kind in ("integer", "number"):
        return 0
    if kind == "boolean":
        return False
    if kind == "string":
        return "string"
    return None


# --- export ---------------------------------------------------------------


def split_url(url: str) -> tuple[str, str]:
    """Split a request URL into (base, path). Base is a leading {{token}} or scheme://host."""
    url = url.split("#", 1)[0].split("?", 1)[0]
    m = LEADING_TOKEN.match(url)
    if m:
        return m.group(0), url[m.end():] or "/"
    scheme, sep, rest = url.partition("://")
    if sep:
        host, _, path = rest.partition("/")
        return f"{scheme}://{host}", "/" + path
    return "", url if url.startswith("/") else "/" + url


def _template_path(path: str) -> tuple[str, list[str]]:
    names: list[str] = []

    def repl(m: re.Match[str]) -> str:
        name = m.group(1)
        if name not in names:
            names.append(name)
        return "{" + name + "}"

    path = TOKEN.sub(repl, path)
    path = COLON_PARAM.sub(repl, path)
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path, names


def _server_entry(base: str) -> dict[str, Any]:
    names: list[str] = []

    def repl(m: re.Match[str]) -> str:
        names.append(m.group(1))
        return "{" + m.group(1) + "}"

    url = TOKEN.sub(repl, base)
    entry: dict[str, Any] = {"url": url}
    if names:
        # default keeps the token so a re-import restores it
        entry["variables"] = {n: {"default": "{{" + n + "}}"} for n in names}
    return entry


def build_openapi_document(collections: list[Collection]) -> dict[str, Any]:
    """OpenAPI 3 document covering every request in the given collections."""
    servers: list[str] = []
    paths: dict[str, dict[str, Any]] = {}
    for col in collections:
        for tag, req in _tagged_requests(col):
            method = req.method.lower()
            if method not in METHODS:
                logger.debug("Skipping %s %s: method not representable in OpenAPI", req.method, req.url)
                continue
            base, raw_path = split_url(req.url)
            if base and base not in servers:
                servers.append(base)
            path, path_params = _template_path(raw_path)
            item = paths.setdefault(path, {})
            if method in item:
                logger.debug("Duplicate operation %s %s; keeping the first", req.method, path)
                continue
            item[method] = _operation(req, tag, path_params)

    title = collections[0].name if len(collections) == 1 else "Exported API"
    info: dict[str, Any] = {"title": title, "version": "1.0.0"}
    if len(collections) == 1 and collections[0].description:
        info["description"] = collections[0].description
    document: dict[str, Any] = {"openapi": OPENAPI_VERSION, "info": info}
    if servers:
        document["servers"] = [_server_entry(s) for s in servers]
    document["paths"] = paths
    return document


def _tagged_requests(col: Collection) -> list[tuple[str | None, ApiRequest]]:
    out: list[tuple[str | None, ApiRequest]] = [(None, r) for r in col.requests]
    for folder in col.folders:
        out.extend((folder.name, r) for r in folder.iter_requests())
    return out


def _operation(req: ApiRequest, tag: str | None, path_params: list[str]) -> dict[str, Any]:
    op: dict[str, Any] = {"summary": req.name}
    if req.description:
        op["description"] = req.description
    if tag:
        op["tags"] = [tag]

    parameters: list[dict[str, Any]] = [
        {"name": name, "in": "path", "required": True, "schema": {"type": "string"}} for name in path_params
    ]
    for p in enabled_pairs(req.params):
        parameters.append(_parameter(p, "query"))
    for h in enabled_pairs(req.headers):
        if h.key.lower() != "content-type":
            parameters.append(_parameter(h, "header"))
    if parameters:
        op["parameters"] = parameters

    body = _export_body(req)
    if body is not None:
        op["requestBody"] = body
    op["responses"] = {"200": {"description": "Successful response"}}
    return op


def _parameter(pair: KeyValuePair, location: str) -> dict[str, Any]:
    param: dict[str, Any] = {"name": pair.key, "in": location, "schema": {"type": "string"}}
    if pair.value:
        param["example"] = pair.value
    return param


def _export_body(req: ApiRequest) -> dict[str, Any] | None:
    media = media_type_for_body_type(req.body_type)
    if media is None:
        return None
    if req.body_type.is_form:
        props = {f.key: {"type": "string", "example": f.value} for f in enabled_pairs(req.form_data)}
        return {"content": {media: {"schema": {"type": "object", "properties": props}}}}
    if not req.body:
        return None
    example: Any = req.body
    if req.body_type is BodyType.JSON:
        try:
            example = orjson.loads(req.body)
        except orjson.JSONDecodeError:
            logger.debug("Body of %s is not valid JSON (tokens?); exporting as text example", req.name)
    return {"content": {media: {"example": example}}}


def export_openapi(collections: list[Collection], fmt: str = "json") -> str:
    """Serialize build_openapi_document as JSON (indent 2) or YAML (key order preserved)."""
    document = build_openapi_document(collections)
    if fmt == "yaml":
        return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
    if fmt != "json":
        raise ConversionError(f"Unsupported OpenAPI output format: {fmt}", context={"format": fmt})
    return orjson.dumps(document, option=orjson.OPT_INDENT_2).decode("utf-8")
