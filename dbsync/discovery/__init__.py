"""Discovery of mapped model classes to attach sync listeners to."""

from .model_discovery import (
    ModelDiscovery,
    is_model_class,
    model_descriptor,
    module_name_for,
    resolve_model,
    standalone_module_name,
    table_name_for,
)

__all__ = [
    "ModelDiscovery",
    "is_model_class",
    "model_descriptor",
    "module_name_for",
    "resolve_model",
    "standalone_module_name",
    "table_name_for",
]
