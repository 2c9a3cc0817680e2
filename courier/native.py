"""Native collection format: a JSON array of Collection objects in the canonical shape.

Identity mapping used for round-tripping and for persisted state. For any collection list
``import_native(orjson.loads(export_native(c))) == c``.
"""

from __future__ import annotations

from typing import Any

import orjson

from .exceptions import ConversionError
from .models import Collection


def collections_to_native(collections: list[Collection]) -> list[dict[str, Any]]:
    return [c.to_dict() for c in collections]


def export_native(collections: list[Collection]) -> str:
    """Serialize collections to the native JSON text (2-space indent, key order stable)."""
    return orjson.dumps(collections_to_native(collections), option=orjson.OPT_INDENT_2).decode("utf-8")


def import_native(data: Any) -> list[Collection]:
    """Build collections from the parsed native array (or its JSON text)."""
    if isinstance(data, (str, bytes)):
        try:
            data = orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise ConversionError(f"Invalid native collection JSON: {e}", original_error=e) from e
    if not isinstance(data, list):
        raise ConversionError(
            "Native collection document must be a JSON array",
            context={"actual_type": type(data).__name__},
        )
    try:
        return [Collection.from_dict(item) for item in data if isinstance(item, dict)]
    except (TypeError, ValueError) as e:
        raise ConversionError(f"Invalid native collection: {e}", original_error=e) from e
