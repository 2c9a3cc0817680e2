"""
courier - API collection interchange and run engine.

Canonical collection model, Postman v2.1 / Insomnia / OpenAPI 3 / Swagger 2 conversion,
variable resolution, sequential collection runs and scheduled monitors.
"""

from .exceptions import (
    CollectionImportError,
    ConversionError,
    CourierConfigError,
    CourierError,
    CourierRunnerError,
)

__all__ = [
    "__version__",
    "CollectionImportError",
    "ConversionError",
    "CourierConfigError",
    "CourierError",
    "CourierRunnerError",
]

__version__ = "1.0.0"
