"""LLM-backed mock server for OpenAPI specifications."""

__version__ = "0.1.0"
