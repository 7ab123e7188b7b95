"""
Schema validation for milhouse.

Enforces JSON Schema validation at the data boundaries (prd.json, config.yaml).
Fails hard with clear errors when data doesn't match schema.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"


class ValidationError(Exception):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


@lru_cache(maxsize=8)
def load_schema(schema_name: str) -> dict:
    """Load schema by name, with caching."""
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
    return json.loads(schema_path.read_text())


def validate(data: Any, schema_name: str) -> None:
    """
    Validate data against named schema.

    Args:
        data: Parsed JSON/YAML data to validate
        schema_name: Schema name ("prd" or "config")

    Raises:
        ValidationError: If validation fails
    """
    schema = load_schema(schema_name)

    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "(root)"
        raise ValidationError(schema_name, e.message, path) from None
