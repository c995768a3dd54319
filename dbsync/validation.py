"""Configuration validation using JSON Schema."""

import logging
from typing import Any

import jsonschema
from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

SYNC_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "enabled": {"type": "boolean"},
        "endpoint": {"type": "string", "minLength": 1},
        "timeout": {"type": "number", "exclusiveMinimum": 0},
        "tables": _STRING_LIST,
        "skip_tables": _STRING_LIST,
        "skip_fields": _STRING_LIST,
        "respect_should_sync": {"type": "boolean"},
    },
    "additionalProperties": False,
}

DISCOVERY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "model_paths": _STRING_LIST,
        "models": _STRING_LIST,
        "base_model": {"type": ["string", "null"]},
    },
    "additionalProperties": False,
}


def validate_section(
    section: str, data: dict[str, Any], schema: dict[str, Any]
) -> tuple[bool, str | None]:
    """Validate one config section against its JSON Schema.

    Args:
        section: Name of the section (for error messages).
        data: The section dict to validate.
        schema: JSON Schema dict describing expected structure.

    Returns:
        Tuple of (valid, error_message).
        - (True, None) if the section is valid
        - (False, "error details") if it is not
    """
    try:
        Draft7Validator.check_schema(schema)
        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))

        if not errors:
            return (True, None)

        # Format errors into a readable message
        error_msgs = []
        for error in errors:
            path = ".".join(str(p) for p in error.path) if error.path else "root"
            error_msgs.append(f"  - {path}: {error.message}")

        error_text = (
            f"Invalid configuration for section '{section}':\n"
            + "\n".join(error_msgs)
        )
        return (False, error_text)

    except jsonschema.SchemaError as e:
        error_msg = f"Invalid JSON Schema for section '{section}': {e.message}"
        logger.error(error_msg)
        return (False, error_msg)
