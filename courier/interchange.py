"""Format-agnostic import/export: parse text, detect its format, dispatch to a converter."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import orjson
import yaml

from .detect import DocumentFormat, detect_format
from .exceptions import CollectionImportError, ConversionError
from .insomnia import export_insomnia, import_insomnia
from .logging_config import get_logger
from .models import Collection, Environment, ValidationError
from .native import export_native, import_native
from .openapi import export_openapi, import_openapi, import_swagger
from .postman import export_postman, import_postman, import_postman_environment
from .validation import has_validation_errors, validate_openapi

logger = get_logger("interchange")


class ExportFormat(str, Enum):
    NATIVE = "native"
    POSTMAN = "postman"
    INSOMNIA = "insomnia"
    OPENAPI = "openapi"


@dataclass(slots=True)
class ImportResult:
    format: DocumentFormat
    collections: list[Collection]
    # Non-blocking validator findings (warnings only)
    warnings: list[ValidationError] = field(default_factory=list)


_IMPORTERS: dict[DocumentFormat, Callable[[Any], list[Collection]]] = {
    DocumentFormat.NATIVE: import_native,
    DocumentFormat.POSTMAN: import_postman,
    DocumentFormat.INSOMNIA: import_insomnia,
    DocumentFormat.OPENAPI: import_openapi,
    DocumentFormat.SWAGGER: import_swagger,
}

_VALIDATED = frozenset({DocumentFormat.OPENAPI, DocumentFormat.SWAGGER})


def _dumps(value: Any) -> str:
    return orjson.dumps(value, option=orjson.OPT_INDENT_2).decode("utf-8")


_EXPORTERS: dict[ExportFormat, Callable[[list[Collection], bool], str]] = {
    ExportFormat.NATIVE: lambda cols, _yaml: export_native(cols),
    ExportFormat.POSTMAN: lambda cols, _yaml: _dumps(export_postman(cols)),
    ExportFormat.INSOMNIA: lambda cols, _yaml: _dumps(export_insomnia(cols)),
    ExportFormat.OPENAPI: lambda cols, as_yaml: export_openapi(cols, "yaml" if as_yaml else "json"),
}


def parse_document(text: str | bytes) -> Any:
    """Parse JSON (orjson) or, failing that, YAML. Raises CollectionImportError if neither parses."""
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        logger.debug("Document is not JSON, trying YAML")
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise CollectionImportError("Document is neither valid JSON nor valid YAML", original_error=e) from e


def import_collections(source: str | bytes | Any) -> ImportResult:
    """
    Import collections from document text or an already-parsed value.
    Raises CollectionImportError for unknown formats and for OpenAPI/Swagger documents
    with validation errors (findings attached as ``issues``).
    """
    value = parse_document(source) if isinstance(source, (str, bytes)) else source
    fmt = detect_format(value)
    if fmt is DocumentFormat.UNKNOWN:
        raise CollectionImportError(
            "Unrecognized document format (expected native, Postman, Insomnia, OpenAPI or Swagger)",
            context={"type": type(value).__name__},
        )

    warnings: list[ValidationError] = []
    if fmt in _VALIDATED:
        issues = validate_openapi(value)
        if has_validation_errors(issues):
            raise CollectionImportError(
                f"{fmt.value} document failed validation",
                issues=issues,
                context={"format": fmt.value},
            )
        warnings = issues

    try:
        collections = _IMPORTERS[fmt](value)
    except ConversionError as e:
        raise CollectionImportError(
            f"Cannot convert {fmt.value} document: {e.message}",
            context={"format": fmt.value},
            original_error=e,
        ) from e
    except (TypeError, ValueError, AttributeError, KeyError) as e:
        raise CollectionImportError(
            f"Malformed {fmt.value} document: {e}",
            context={"format": fmt.value},
            original_error=e,
        ) from e
    logger.info(
        "Imported %d collection(s), %d request(s) from %s document",
        len(collections),
        sum(1 for c in collections for _ in c.iter_requests()),
        fmt.value,
    )
    return ImportResult(format=fmt, collections=collections, warnings=warnings)


def _read(path: str | Path) -> bytes:
    p = Path(path)
    if not p.exists():
        raise CollectionImportError(f"File not found: {path}")
    try:
        return p.read_bytes()
    except OSError as e:
        logger.exception("Failed to read %s", path)
        raise CollectionImportError(f"Cannot read file: {e}", original_error=e) from e


def load_collections(path: str | Path) -> ImportResult:
    """Read a collection/spec file of any supported format."""
    try:
        return import_collections(_read(path))
    except CollectionImportError as e:
        raise e.with_context(path=str(path))


def export_collections(
    collections: list[Collection],
    fmt: ExportFormat | str,
    yaml_output: bool = False,
) -> str:
    """Serialize collections in the requested format. YAML applies to OpenAPI only."""
    try:
        target = ExportFormat(fmt)
    except ValueError as e:
        raise ConversionError(f"Unknown export format: {fmt}", original_error=e) from e
    return _EXPORTERS[target](collections, yaml_output)


def parse_environments(value: Any) -> list[Environment]:
    """Environments from a Postman environment export, a native Environment object or a list of them."""
    if isinstance(value, list):
        return [env for item in value for env in parse_environments(item)]
    if isinstance(value, dict) and isinstance(value.get("values"), list):
        return [import_postman_environment(value)]
    if isinstance(value, dict) and isinstance(value.get("variables"), list):
        return [Environment.from_dict(value)]
    raise ConversionError("Unrecognized environment document", context={"type": type(value).__name__})


def load_environments(path: str | Path) -> list[Environment]:
    try:
        return parse_environments(parse_document(_read(path)))
    except ConversionError as e:
        raise CollectionImportError(f"Invalid environment file: {e.message}", original_error=e) from e
