"""Validates generated payloads for JSON syntax and schema conformance."""

import json
import logging

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)


class JsonValidationError(ValueError):
    """Raised when a payload is not valid JSON."""


def _reject_constant(name: str):
    raise ValueError(f"{name} is not a valid JSON value")


def loads_strict(text: str):
    """``json.loads`` that refuses the NaN, Infinity and -Infinity extensions."""
    return json.loads(text, parse_constant=_reject_constant)


class JsonValidator:
    def validate(self, json_text: str) -> str:
        """Return ``json_text`` unchanged if it parses as JSON.

        Raises JsonValidationError describing the syntax error otherwise.
        """
        try:
            loads_strict(json_text)
        except (TypeError, ValueError) as e:
            message = f"Invalid JSON: {e}"
            logger.warning(message)
            raise JsonValidationError(message) from e
        return json_text

    def validate_against_schema(self, json_text: str, schema_text: str | None) -> str:
        """Check a payload against a JSON Schema document.

        Returns the violation messages joined with ", " (empty when the
        payload conforms). A schema that cannot be parsed or used is logged
        and treated as no violations.
        """
        if not schema_text:
            return ""
        try:
            instance = loads_strict(json_text)
            schema = json.loads(schema_text)
            Draft7Validator.check_schema(schema)
            errors = sorted(Draft7Validator(schema).iter_errors(instance), key=lambda e: [str(p) for p in e.path])
            messages = [_describe(error) for error in errors]
        except (ValueError, SchemaError) as e:
            logger.warning("Skipping schema validation: %s", e)
            return ""
        except Exception:
            # Unresolvable $ref pointers surface as library-specific errors.
            logger.warning("Schema validation could not complete", exc_info=True)
            return ""

        if messages:
            logger.warning("JSON Schema validation failed: %s", ", ".join(messages))
        return ", ".join(messages)


def _describe(error) -> str:
    location = "$" + "".join(f"[{p}]" if isinstance(p, int) else f".{p}" for p in error.path)
    return f"{location}: {error.message}"
