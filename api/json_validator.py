"""
JSON validator utility for schema validation and field access.

Field paths use dot notation ("address.geo.lat"); numeric segments index into
arrays ("items.0.id"). Lookups descend one segment at a time and report the
first segment that is missing instead of silently returning None.
"""
import json
from jsonschema import Draft7Validator, ValidationError
from typing import Dict, Any, List, Union
from pathlib import Path

from utils.custom_exceptions import ResponseAssertionError
from utils.logger import logger


# JSON type names as they appear in schemas and step phrases
JSON_TYPES = ('null', 'boolean', 'number', 'string', 'array', 'object')


def json_type_of(value: Any) -> str:
    """Return the JSON type name of a decoded JSON value."""
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, list):
        return 'array'
    if isinstance(value, dict):
        return 'object'
    raise TypeError(f"Not a JSON value: {type(value).__name__}")


class FieldNotFoundError(ResponseAssertionError):
    """Raised when a field path does not resolve."""

    def __init__(self, field_path: str, missing_segment: str, resolved_path: str):
        super().__init__(
            f"Field '{field_path}' not found: segment '{missing_segment}' is missing"
            + (f" under '{resolved_path}'" if resolved_path else ""),
            field=field_path, expected='present', actual='missing',
            missing_segment=missing_segment
        )
        self.missing_segment = missing_segment


class JsonValidator:
    """JSON schema validation and path-based field access."""

    def __init__(self, schema_directory: Union[str, Path, None] = None):
        self.schema_cache: Dict[str, Dict[str, Any]] = {}
        self.schema_directory = Path(schema_directory) if schema_directory \
            else Path(__file__).parent.parent / "schemas"

    def validate(self,
                 data: Union[Dict, List],
                 schema: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate JSON data against a Draft 7 schema, collecting every error.

        Args:
            data: JSON data to validate
            schema: JSON schema

        Returns:
            Dictionary with validation results
        """
        validator = Draft7Validator(schema)
        errors = [self._format_validation_error(error)
                  for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])]

        return {
            'valid': len(errors) == 0,
            'errors': errors
        }

    def _format_validation_error(self, error: ValidationError) -> Dict[str, Any]:
        """Format validation error for better readability."""
        path = '.'.join(str(p) for p in error.path) if error.path else 'root'

        return {
            'path': path,
            'message': error.message,
            'schema_path': '.'.join(str(p) for p in error.schema_path),
        }

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Load schema from file.

        Args:
            schema_name: Name of schema file (without .json extension)

        Returns:
            Schema dictionary
        """
        if schema_name in self.schema_cache:
            return self.schema_cache[schema_name]

        schema_path = self.schema_directory / f"{schema_name}.json"

        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, 'r', encoding='utf-8') as f:
            schema = json.load(f)

        Draft7Validator.check_schema(schema)
        self.schema_cache[schema_name] = schema
        logger.debug(f"Loaded schema: {schema_name}")

        return schema

    def resolve_path(self, data: Any, field_path: str) -> Any:
        """
        Get a field value by dotted path.

        A key that contains dots is matched whole before the path is split.

        Raises:
            FieldNotFoundError: at the first segment that does not resolve
        """
        if not field_path:
            return data
        if isinstance(data, dict) and field_path in data:
            return data[field_path]

        current = data
        resolved: List[str] = []
        for part in field_path.split('.'):
            if isinstance(current, dict) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                raise FieldNotFoundError(field_path, part, '.'.join(resolved))
            resolved.append(part)
        return current

    def field_exists(self, data: Any, field_path: str) -> bool:
        """Check if a field path resolves."""
        try:
            self.resolve_path(data, field_path)
            return True
        except FieldNotFoundError:
            return False

    def top_level_keys(self, data: Any) -> List[str]:
        """Sorted top-level keys; array indices count as keys, scalars have none."""
        if isinstance(data, dict):
            return sorted(data.keys())
        if isinstance(data, list):
            return sorted(str(i) for i in range(len(data)))
        return []


json_validator = JsonValidator()
