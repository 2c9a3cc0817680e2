"""Structural linter for OpenAPI 3 / Swagger 2 documents.

Never raises: every problem is reported as a ValidationError entry. Each rule runs
independently of the others, so one document can produce findings from all of them.
Only error-severity findings block an import; warnings are informational.
"""

from __future__ import annotations

from typing import Any

from .logging_config import get_logger
from .models import Severity, ValidationError

logger = get_logger("validation")

KNOWN_METHODS = frozenset({"get", "post", "put", "patch", "delete", "head", "options"})


def _error(path: str, message: str) -> ValidationError:
    return ValidationError(path=path, message=message, severity=Severity.ERROR)


def _warning(path: str, message: str) -> ValidationError:
    return ValidationError(path=path, message=message, severity=Severity.WARNING)


def validate_openapi(spec: Any) -> list[ValidationError]:
    """Lint an OpenAPI 3 / Swagger 2 document and return all findings."""
    if not isinstance(spec, dict):
        return [_error("$", "Spec must be an object")]

    issues: list[ValidationError] = []
    _check_version(spec, issues)
    _check_info(spec, issues)
    _check_paths(spec, issues)
    _check_servers(spec, issues)
    logger.debug(
        "Validated spec: %d error(s), %d warning(s)",
        sum(1 for i in issues if i.severity is Severity.ERROR),
        sum(1 for i in issues if i.severity is Severity.WARNING),
    )
    return issues


def has_validation_errors(issues: list[ValidationError]) -> bool:
    """True iff any finding is error-severity. Import is gated on this, never on warnings."""
    return any(i.severity is Severity.ERROR for i in issues)


def _check_version(spec: dict[str, Any], issues: list[ValidationError]) -> None:
    has_openapi = "openapi" in spec
    has_swagger = "swagger" in spec
    if has_openapi and has_swagger:
        issues.append(_error("$", "Spec must declare exactly one of openapi or swagger"))
    if has_openapi:
        version = spec["openapi"]
        if not isinstance(version, str):
            issues.append(_error("openapi", "openapi must be a string"))
        elif not version.startswith("3."):
            issues.append(_warning("openapi", f"Unsupported OpenAPI version: {version}"))
    elif has_swagger:
        version = spec["swagger"]
        if version != "2.0":
            issues.append(_warning("swagger", f"Unsupported Swagger version: {version}"))
    else:
        issues.append(_error("$", "Missing openapi or swagger version field"))


def _check_info(spec: dict[str, Any], issues: list[ValidationError]) -> None:
    info = spec.get("info")
    if not isinstance(info, dict):
        issues.append(_error("info", "info object is required"))
        return
    if not info.get("title"):
        issues.append(_warning("info.title", "info.title is recommended"))


def _check_paths(spec: dict[str, Any], issues: list[ValidationError]) -> None:
    if "paths" not in spec:
        issues.append(_error("paths", "paths object is required"))
        return
    paths = spec["paths"]
    if not isinstance(paths, dict):
        issues.append(_error("paths", "paths must be an object"))
        return
    if not paths:
        issues.append(_warning("paths", "paths should contain at least one path"))
    for path, path_item in paths.items():
        path = str(path)
        if not path.startswith("/"):
            issues.append(_error(f"paths.{path}", "Path must start with /"))
        if isinstance(path_item, dict):
            for method in path_item:
                if str(method).lower() not in KNOWN_METHODS:
                    issues.append(_warning(f"paths.{path}.{method}", f"Unknown HTTP method: {method}"))


def _check_servers(spec: dict[str, Any], issues: list[ValidationError]) -> None:
    servers = spec.get("servers")
    if not isinstance(servers, list):
        return
    for i, server in enumerate(servers):
        if isinstance(server, dict) and "url" in server:
            url = server["url"]
            if not isinstance(url, str) or not url.startswith("http"):
                issues.append(_warning(f"servers[{i}].url", "Server URL should be a valid HTTP(S) URL"))
