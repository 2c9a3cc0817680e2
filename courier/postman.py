"""Postman Collection v2.0/v2.1 import and v2.1 export, plus Postman environment import."""

from __future__ import annotations

from typing import Any

import orjson

from .exceptions import ConversionError
from .logging_config import get_logger
from .models import (
    ApiRequest,
    BodyType,
    Collection,
    Environment,
    Folder,
    KeyValuePair,
    enabled_pairs,
    new_id,
)

logger = get_logger("postman")

POSTMAN_SCHEMA_V21 = "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"

# body.options.raw.language -> BodyType
RAW_LANGUAGES: dict[str, BodyType] = {
    "json": BodyType.JSON,
    "xml": BodyType.XML,
    "html": BodyType.HTML,
    "text": BodyType.TEXT,
    "javascript": BodyType.TEXT,
}
_LANGUAGE_FOR_BODY_TYPE = {BodyType.JSON: "json", BodyType.XML: "xml", BodyType.HTML: "html", BodyType.TEXT: "text"}


def import_postman(data: Any) -> list[Collection]:
    """
    Convert a parsed Postman collection into one Collection.
    Folder nesting is preserved; {{var}} tokens pass through unchanged.
    Raises ConversionError if the document is not a Postman collection object.
    """
    if not isinstance(data, dict):
        raise ConversionError("Postman collection must be a JSON object")
    info = data.get("info")
    if not isinstance(info, dict):
        raise ConversionError("Postman collection has no info object")

    collection = Collection(
        id=new_id("col"),
        name=str(info.get("name") or "Imported Collection"),
        description=_description(info.get("description")),
    )
    items = data.get("item") or []
    if not isinstance(items, list):
        raise ConversionError("Postman collection item must be an array")
    _walk_items(items, collection)
    return [collection]


def _walk_items(items: list[Any], container: Collection | Folder) -> None:
    for item in items:
        if not isinstance(item, dict):
            continue
        if "item" in item:
            folder = Folder(id=new_id("fld"), name=str(item.get("name") or "Folder"))
            sub = item.get("item") or []
            _walk_items(sub if isinstance(sub, list) else [], folder)
            container.folders.append(folder)
        elif "request" in item:
            req = _parse_request_item(item)
            if req is not None:
                container.requests.append(req)


def _parse_request_item(item: dict[str, Any]) -> ApiRequest | None:
    req = item.get("request")
    if isinstance(req, str):
        # Shorthand: request given as a bare URL string
        req = {"url": req, "method": "GET"}
    if not isinstance(req, dict):
        logger.debug("Skipping item %r: request is not an object", item.get("name"))
        return None

    url, params = _parse_url(req.get("url"))
    body, body_type, form_data = _parse_body(req.get("body"))
    return ApiRequest(
        id=new_id("req"),
        name=str(item.get("name") or "Unnamed"),
        method=str(req.get("method") or "GET").strip().upper(),
        url=url,
        params=params,
        headers=_parse_pairs(req.get("header")),
        body=body,
        body_type=body_type,
        form_data=form_data,
        description=_description(req.get("description")),
    )


def _parse_url(url_raw: Any) -> tuple[str, list[KeyValuePair]]:
    """Split a Postman url (string or object) into the base URL and its query params."""
    if isinstance(url_raw, str):
        base, _, query = url_raw.partition("?")
        return base, _split_query(query)
    if not isinstance(url_raw, dict):
        return "", []

    raw = url_raw.get("raw")
    if isinstance(raw, str) and raw:
        base, _, query = raw.partition("?")
    else:
        protocol = url_raw.get("protocol")
        host = _url_host(url_raw)
        port = url_raw.get("port")
        if port:
            host = f"{host}:{port}"
        segments = url_raw.get("path")
        if isinstance(segments, str):
            segments = [segments]
        path = "/".join(p for p in segments or [] if isinstance(p, str)) if isinstance(segments, list) else ""
        path = "/" + path if path and not path.startswith("/") else path
        base = f"{protocol}://{host}{path}" if protocol else f"{host}{path}"
        query = ""

    if isinstance(url_raw.get("query"), list):
        return base, _parse_pairs(url_raw["query"])
    return base, _split_query(query)


def _split_query(query: str) -> list[KeyValuePair]:
    # Kept verbatim (no percent-decoding) so tokens and encoded values survive round trips
    pairs: list[KeyValuePair] = []
    for part in query.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        pairs.append(KeyValuePair(key=key, value=value))
    return pairs


def _url_host(url_obj: dict[str, Any]) -> str:
    host = url_obj.get("host") or []
    if isinstance(host, str):
        return host
    return ".".join(h for h in host if isinstance(h, str))


def _parse_pairs(entries: Any) -> list[KeyValuePair]:
    result: list[KeyValuePair] = []
    if not isinstance(entries, list):
        return result
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        key = entry.get("key")
        if not key:
            continue
        value = entry.get("value")
        result.append(
            KeyValuePair(
                key=str(key).strip(),
                value="" if value is None else str(value),
                enabled=not entry.get("disabled", False),
            )
        )
    return result


def _parse_body(body: Any) -> tuple[str, BodyType, list[KeyValuePair] | None]:
    if not isinstance(body, dict):
        return "", BodyType.NONE, None
    mode = body.get("mode")
    if mode == "raw":
        raw = body.get("raw")
        text = "" if raw is None else str(raw)
        if not text:
            return "", BodyType.NONE, None
        options = body.get("options")
        raw_options = options.get("raw") if isinstance(options, dict) else None
        language = raw_options.get("language") if isinstance(raw_options, dict) else None
        body_type = RAW_LANGUAGES.get(str(language).lower()) if language else None
        if body_type is None:
            body_type = BodyType.JSON if text.lstrip()[:1] in ("{", "[") else BodyType.TEXT
        return text, body_type, None
    if mode == "urlencoded":
        return "", BodyType.FORM_URLENCODED, _parse_pairs(body.get("urlencoded"))
    if mode == "formdata":
        fields = [f for f in body.get("formdata") or [] if isinstance(f, dict)]
        files = [f for f in fields if f.get("type") == "file"]
        if files:
            logger.debug("Dropping %d file form field(s); file uploads are not supported", len(files))
        return "", BodyType.FORM_DATA, _parse_pairs([f for f in fields if f.get("type") != "file"])
    if mode == "graphql":
        gql = body.get("graphql")
        gql = gql if isinstance(gql, dict) else {}
        payload = {"query": gql.get("query") or "", "variables": gql.get("variables") or {}}
        return orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8"), BodyType.JSON, None
    return "", BodyType.NONE, None


def _description(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict) and isinstance(value.get("content"), str):
        return value["content"] or None
    return None


def import_postman_environment(data: Any) -> Environment:
    """Postman environment export ({name, values: [{key, value, enabled}]}) to an Environment."""
    if not isinstance(data, dict) or not isinstance(data.get("values"), list):
        raise ConversionError("Postman environment must be an object with a values array")
    variables = [
        KeyValuePair(
            key=str(v["key"]),
            value="" if v.get("value") is None else str(v.get("value")),
            enabled=bool(v.get("enabled", True)),
        )
        for v in data["values"]
        if isinstance(v, dict) and v.get("key")
    ]
    return Environment(
        id=str(data.get("id") or new_id("env")),
        name=str(data.get("name") or "Environment"),
        variables=variables,
    )


def export_postman(collections: list[Collection]) -> dict[str, Any]:
    """
    Build a Postman v2.1 collection document. One collection maps to one document;
    several are wrapped as top-level folders of a combined "Exported Collections" document.
    Disabled params, headers and form fields are omitted.
    """
    if len(collections) == 1:
        col = collections[0]
        info: dict[str, Any] = {"_postman_id": col.id, "name": col.name, "schema": POSTMAN_SCHEMA_V21}
        if col.description:
            info["description"] = col.description
        return {"info": info, "item": _export_container(col)}
    return {
        "info": {"_postman_id": new_id("col"), "name": "Exported Collections", "schema": POSTMAN_SCHEMA_V21},
        "item": [{"name": c.name, "item": _export_container(c)} for c in collections],
    }


def _export_container(container: Collection | Folder) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = [_export_request(r) for r in container.requests]
    items.extend({"name": f.name, "item": _export_container(f)} for f in container.folders)
    return items


def _export_request(req: ApiRequest) -> dict[str, Any]:
    out: dict[str, Any] = {
        "method": req.method,
        "header": [{"key": h.key, "value": h.value} for h in enabled_pairs(req.headers)],
        "url": postman_url(req.url, enabled_pairs(req.params)),
    }
    body = _export_body(req)
    if body is not None:
        out["body"] = body
    if req.description:
        out["description"] = req.description
    return {"name": req.name, "request": out}


def _export_body(req: ApiRequest) -> dict[str, Any] | None:
    if req.body_type.is_text_like and req.body:
        return {
            "mode": "raw",
            "raw": req.body,
            "options": {"raw": {"language": _LANGUAGE_FOR_BODY_TYPE[req.body_type]}},
        }
    if req.body_type.is_form:
        fields = [{"key": f.key, "value": f.value} for f in enabled_pairs(req.form_data)]
        if req.body_type is BodyType.FORM_URLENCODED:
            return {"mode": "urlencoded", "urlencoded": fields}
        return {"mode": "formdata", "formdata": [dict(f, type="text") for f in fields]}
    return None


def postman_url(url: str, params: list[KeyValuePair]) -> dict[str, Any]:
    """Postman url object {raw, protocol?, host, port?, path, query?} for a URL and its params."""
    raw = url
    if params:
        qs = "&".join(f"{p.key}={p.value}" for p in params)
        raw = f"{url}{'&' if '?' in url else '?'}{qs}"
    out: dict[str, Any] = {"raw": raw}

    scheme, sep, rest = url.partition("://")
    if not sep:
        scheme, rest = "", url
    rest = rest.split("?", 1)[0]
    host, _, path = rest.partition("/")
    if scheme:
        out["protocol"] = scheme
    if host.startswith("{{"):
        out["host"] = [host]
    else:
        hostname, colon, port = host.partition(":")
        out["host"] = hostname.split(".") if hostname else []
        if colon and port:
            out["port"] = port
    out["path"] = [seg for seg in path.split("/") if seg]
    if params:
        out["query"] = [{"key": p.key, "value": p.value} for p in params]
    return out
