"""Parse raw specification text and detect the OpenAPI version it targets."""

import json

import yaml


class SpecFormatError(ValueError):
    """Raised when a document is not a supported OpenAPI 3.x specification."""


def parse_document(text: str) -> dict:
    """Parse JSON or YAML specification text into a document mapping.

    YAML is a superset of JSON, so a single safe_load covers both; JSON is
    retried on its own for documents PyYAML rejects (e.g. tabs in JSON).
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as yaml_error:
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            raise SpecFormatError(f"Unparseable specification: {yaml_error}") from yaml_error

    if not isinstance(data, dict):
        raise SpecFormatError("Specification root must be a mapping")
    return data


def detect_version(doc: dict) -> str:
    """Return the OpenAPI version string of a parsed document.

    Raises SpecFormatError for Swagger 2.0 or documents without an
    ``openapi: 3.x`` marker.
    """
    if "swagger" in doc:
        raise SpecFormatError(f"Swagger {doc['swagger']} documents are not supported; convert to OpenAPI 3.x")

    version = str(doc.get("openapi", ""))
    if not version.startswith("3."):
        raise SpecFormatError(f"Missing or unsupported 'openapi' version: {version or '<none>'}")
    return version
