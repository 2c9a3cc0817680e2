"""Format detection for parsed interchange documents.

Input is an already-parsed JSON/YAML value. Output is a DocumentFormat tag that the
interchange layer dispatches on. First match wins; never raises.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class DocumentFormat(str, Enum):
    NATIVE = "native"
    POSTMAN = "postman"
    INSOMNIA = "insomnia"
    OPENAPI = "openapi"
    SWAGGER = "swagger"
    UNKNOWN = "unknown"


def detect_format(value: Any) -> DocumentFormat:
    """Classify a parsed document. UNKNOWN must be treated as an unrecoverable import error."""
    if isinstance(value, list):
        if value and all(isinstance(v, dict) and ("requests" in v or "folders" in v) for v in value):
            return DocumentFormat.NATIVE
        return DocumentFormat.UNKNOWN
    if not isinstance(value, dict):
        return DocumentFormat.UNKNOWN
    if "info" in value and "item" in value:
        return DocumentFormat.POSTMAN
    resources = value.get("resources")
    if isinstance(resources, list) and all(isinstance(r, dict) and "_type" in r for r in resources):
        return DocumentFormat.INSOMNIA
    if isinstance(value.get("openapi"), str):
        return DocumentFormat.OPENAPI
    if value.get("swagger") == "2.0":
        return DocumentFormat.SWAGGER
    return DocumentFormat.UNKNOWN
