"""Insomnia export (v4 ``resources`` array) import and export.

Insomnia exports are flat: every resource names its parent by ``parentId``. Import builds an
arena of request/request_group nodes keyed by ``_id`` and a child index in array order, then
materializes folders depth-first with a visited set, so parent cycles and dangling parents
never loop or drop requests.
"""

from __future__ import annotations

import re
import uuid
from collections import defaultdict
from typing import Any

from . import __version__
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

logger = get_logger("insomnia")

WORKSPACE = "workspace"
REQUEST_GROUP = "request_group"
REQUEST = "request"

# {{ _.name }} (Insomnia environment namespace)
INSOMNIA_VAR = re.compile(r"\{\{\s*_\.([^{}\s]+)\s*\}\}")
# {{name}} as stored in collections; dynamic $ tokens are left alone on export
COURIER_VAR = re.compile(r"\{\{\s*([^{}\s$][^{}\s]*)\s*\}\}")


def import_insomnia(data: Any) -> list[Collection]:
    """Convert an Insomnia export into one Collection per workspace."""
    if not isinstance(data, dict) or not isinstance(data.get("resources"), list):
        raise ConversionError("Insomnia export must be an object with a resources array")
    resources = [r for r in data["resources"] if isinstance(r, dict)]

    arena: dict[str, dict[str, Any]] = {}
    order: list[str] = []
    for res in resources:
        rid = res.get("_id")
        if res.get("_type") not in (REQUEST_GROUP, REQUEST) or not rid:
            continue
        rid = str(rid)
        if rid in arena:
            logger.debug("Duplicate Insomnia resource id %s ignored", rid)
            continue
        arena[rid] = res
        order.append(rid)

    children: dict[str, list[str]] = defaultdict(list)
    roots: list[str] = []
    for rid in order:
        parent = _parent_id(arena[rid])
        if parent is not None and parent != rid and arena.get(parent, {}).get("_type") == REQUEST_GROUP:
            children[parent].append(rid)
        else:
            roots.append(rid)

    collections: list[Collection] = []
    by_workspace: dict[str, Collection] = {}
    for res in resources:
        if res.get("_type") != WORKSPACE:
            continue
        col = Collection(
            id=new_id("col"),
            name=str(res.get("name") or "Imported Collection"),
            description=res.get("description") or None,
        )
        collections.append(col)
        if res.get("_id"):
            by_workspace.setdefault(str(res["_id"]), col)
    if not collections:
        collections.append(Collection(id=new_id("col"), name="Imported Collection"))

    visited: set[str] = set()
    for rid in roots:
        target = by_workspace.get(_parent_id(arena[rid]) or "", collections[0])
        _materialize(rid, target, arena, children, visited)
    for rid in order:
        if rid not in visited:
            logger.warning("Insomnia resource %s is unreachable (parent cycle); importing at top level", rid)
            _materialize(rid, collections[0], arena, children, visited)
    return collections


def _parent_id(res: dict[str, Any]) -> str | None:
    parent = res.get("parentId")
    return None if parent is None else str(parent)


def _materialize(
    root_id: str,
    container: Collection | Folder,
    arena: dict[str, dict[str, Any]],
    children: dict[str, list[str]],
    visited: set[str],
) -> None:
    stack: list[tuple[str, Collection | Folder]] = [(root_id, container)]
    while stack:
        rid, parent = stack.pop()
        if rid in visited:
            continue
        visited.add(rid)
        node = arena[rid]
        if node.get("_type") == REQUEST_GROUP:
            folder = Folder(id=new_id("fld"), name=str(node.get("name") or "Folder"))
            parent.folders.append(folder)
            for child in reversed(children.get(rid, [])):
                stack.append((child, folder))
        else:
            parent.requests.append(_convert_request(node))


def _rewrite(text: Any) -> str:
    return INSOMNIA_VAR.sub(lambda m: "{{" + m.group(1) + "}}", "" if text is None else str(text))


def _pairs(entries: Any) -> list[KeyValuePair]:
    return [
        KeyValuePair(key=_rewrite(e["name"]), value=_rewrite(e.get("value")), enabled=not e.get("disabled", False))
        for e in entries or []
        if isinstance(e, dict) and e.get("name")
    ]


def _convert_request(node: dict[str, Any]) -> ApiRequest:
    body = node.get("body") if isinstance(node.get("body"), dict) else {}
    body_type = body_type_for_media_type(body.get("mimeType"))
    text = _rewrite(body.get("text")) if body_type.is_text_like else ""
    form_data = _pairs(body.get("params")) if body_type.is_form else None
    if body_type is BodyType.NONE and body.get("text"):
        text, body_type = _rewrite(body["text"]), BodyType.TEXT
    return ApiRequest(
        id=new_id("req"),
        name=str(node.get("name") or "Unnamed"),
        method=str(node.get("method") or "GET").upper(),
        url=_rewrite(node.get("url")),
        params=_pairs(node.get("parameters")),
        headers=_pairs(node.get("headers")),
        body=text,
        body_type=body_type,
        form_data=form_data,
        description=node.get("description") or None,
    )


def _to_insomnia(text: str) -> str:
    return COURIER_VAR.sub(lambda m: "{{ _." + m.group(1) + " }}", text)


def _resource_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def export_insomnia(collections: list[Collection]) -> dict[str, Any]:
    """Insomnia v4 export: one workspace per collection, request_group per folder."""
    resources: list[dict[str, Any]] = []
    for col in collections:
        ws_id = _resource_id("wrk")
        resources.append(
            {
                "_id": ws_id,
                "_type": WORKSPACE,
                "parentId": None,
                "name": col.name,
                "description": col.description or "",
            }
        )
        _export_container(col, ws_id, resources)
    return {
        "_type": "export",
        "__export_format": 4,
        "__export_source": f"courier:{__version__}",
        "resources": resources,
    }


def _export_container(container: Collection | Folder, parent_id: str, out: list[dict[str, Any]]) -> None:
    for req in container.requests:
        out.append(_export_request(req, parent_id))
    for folder in container.folders:
        fid = _resource_id("fld")
        out.append({"_id": fid, "_type": REQUEST_GROUP, "parentId": parent_id, "name": folder.name})
        _export_container(folder, fid, out)


def _export_request(req: ApiRequest, parent_id: str) -> dict[str, Any]:
    body: dict[str, Any] = {}
    mime = media_type_for_body_type(req.body_type)
    if req.body_type.is_text_like and req.body:
        body = {"mimeType": mime, "text": _to_insomnia(req.body)}
    elif req.body_type.is_form:
        body = {
            "mimeType": mime,
            "params": [{"name": f.key, "value": _to_insomnia(f.value)} for f in enabled_pairs(req.form_data)],
        }
    return {
        "_id": _resource_id("req"),
        "_type": REQUEST,
        "parentId": parent_id,
        "name": req.name,
        "method": req.method,
        "url": _to_insomnia(req.url),
        "parameters": [{"name": p.key, "value": _to_insomnia(p.value)} for p in enabled_pairs(req.params)],
        "headers": [{"name": h.key, "value": _to_insomnia(h.value)} for h in enabled_pairs(req.headers)],
        "body": body,
        "description": req.description or "",
    }
