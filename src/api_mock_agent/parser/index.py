"""OpenAPI endpoint index.

Loads an OpenAPI 3.x document, builds a pattern -> operation index and
resolves inbound (method, path) pairs and ``$ref`` schema references
against it. Every failure is reported as an absent result; nothing in
here raises into the request pipeline.
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path

from .base import Endpoint, Param
from .detect import SpecFormatError, detect_version, parse_document

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "delete", "patch", "head", "options", "trace")

SCHEMA_REF_PREFIX = "#/components/schemas/"
RESPONSE_REF_PREFIX = "#/components/responses/"
PARAMETER_REF_PREFIX = "#/components/parameters/"

_TEMPLATE_PARAM = re.compile(r"\{[^}/]+\}")


@dataclass(frozen=True)
class Specification:
    """A parsed specification: operations by path template and method, plus component tables."""

    openapi: str
    title: str
    version: str
    document: dict
    operations: dict[str, dict[str, Endpoint]] = field(default_factory=dict)

    @property
    def schemas(self) -> dict:
        components = self.document.get("components") or {}
        return components.get("schemas") or {}

    @property
    def endpoint_count(self) -> int:
        return sum(len(methods) for methods in self.operations.values())


@dataclass(frozen=True)
class _Route:
    template: str
    pattern: str
    regex: re.Pattern
    score: int
    methods: dict[str, Endpoint]


@dataclass(frozen=True)
class _IndexState:
    specification: Specification | None = None
    routes: tuple[_Route, ...] = ()


def to_pattern(template: str) -> str:
    """Convert ``/pets/{petId}`` to ``/pets/*``; each wildcard spans exactly one segment."""
    return _TEMPLATE_PARAM.sub("*", template)


def specificity(pattern: str) -> int:
    """Score used to pick between several matching templates; higher wins."""
    return 10 * len(pattern) - 100 * pattern.count("*")


def normalize_path(path: str) -> str:
    path = path.split("?", 1)[0] or "/"
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path


def _compile(pattern: str) -> re.Pattern:
    literal_parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + "[^/]+".join(literal_parts) + "$")


def _ref_name(ref: str, prefix: str) -> str | None:
    if isinstance(ref, str) and ref.startswith(prefix):
        return ref[len(prefix):]
    return None


class OpenApiIndex:
    """Owns the active specification and answers lookups against it.

    Reloads build a complete new state object and swap it in with a single
    assignment, so a concurrent ``resolve`` sees either the old index or the
    new one, never a half-built mix.
    """

    def __init__(self):
        self._state = _IndexState()
        self._lock = threading.Lock()
        self.messages: list[str] = []

    @property
    def specification(self) -> Specification | None:
        return self._state.specification

    def endpoints(self) -> list[Endpoint]:
        state = self._state
        return [endpoint for route in state.routes for endpoint in route.methods.values()]

    def load(self, spec_text: str) -> bool:
        """Parse and index specification text (JSON or YAML).

        Returns False and records diagnostics in ``messages`` when the text
        cannot be used; the previous index is cleared in that case.
        """
        try:
            doc = parse_document(spec_text)
            state = _build_state(doc)
        except SpecFormatError as e:
            return self._fail(str(e))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.exception("Malformed OpenAPI document")
            return self._fail(f"Malformed specification: {e}")

        with self._lock:
            self._state = state
            self.messages = []

        spec = state.specification
        logger.info(
            "Indexed %d path templates (%d operations) from OpenAPI %s spec '%s'",
            len(state.routes), spec.endpoint_count, spec.openapi, spec.title,
        )
        return True

    def load_file(self, file_path: Path | str) -> bool:
        try:
            text = Path(file_path).read_text(encoding="utf-8")
        except OSError as e:
            return self._fail(f"Cannot read specification {file_path}: {e}")
        return self.load(text)

    def _fail(self, message: str) -> bool:
        logger.error("Failed to load OpenAPI specification: %s", message)
        with self._lock:
            self._state = _IndexState()
            self.messages = [message]
        return False

    def resolve(self, method: str, path: str) -> Endpoint | None:
        """Match a request to an operation.

        The most specific matching template wins; its method table must then
        contain ``method``; there is no fallback to a less specific template.
        """
        state = self._state
        if state.specification is None:
            return None

        path = normalize_path(path)
        best = None
        for route in state.routes:
            if route.regex.match(path) and (best is None or route.score > best.score):
                best = route

        if best is None:
            logger.debug("No path template matches %s", path)
            return None

        endpoint = best.methods.get(method.upper())
        if endpoint is None:
            logger.debug("Template %s has no %s operation", best.template, method.upper())
        return endpoint

    def component_schema(self, name: str) -> dict | None:
        spec = self.specification
        if spec is None:
            return None
        return spec.schemas.get(name)

    def resolve_schema_ref(self, schema):
        """Follow ``$ref`` chains through the component schemas.

        A cycle, an unknown name or an unsupported pointer leaves the
        original reference node in place.
        """
        if not isinstance(schema, dict) or "$ref" not in schema:
            return schema

        visited: set[str] = set()
        current = schema
        while isinstance(current, dict) and "$ref" in current:
            ref = current["$ref"]
            name = _ref_name(ref, SCHEMA_REF_PREFIX)
            if name is None:
                logger.warning("Unsupported schema reference %s", ref)
                return schema
            if name in visited:
                logger.warning("Circular schema reference detected at %s (chain: %s)", ref, sorted(visited))
                return schema
            visited.add(name)
            target = self.component_schema(name)
            if target is None:
                logger.warning("Unresolvable schema reference %s", ref)
                return schema
            current = target
        return current

    def resolve_response(self, descriptor):
        """Follow ``#/components/responses/...`` references on a response descriptor."""
        spec = self.specification
        visited: set[str] = set()
        current = descriptor
        while isinstance(current, dict) and "$ref" in current:
            name = _ref_name(current["$ref"], RESPONSE_REF_PREFIX)
            if spec is None or name is None or name in visited:
                logger.warning("Cannot resolve response reference %s", current["$ref"])
                return descriptor
            visited.add(name)
            responses = (spec.document.get("components") or {}).get("responses") or {}
            current = responses.get(name)
        return current if current is not None else descriptor

    def response_schema(self, descriptor, content_type: str | None = None):
        """Pick the schema from a response descriptor.

        Preference: the requested content type, application/json, any
        ``+json`` media type, then the first declared one.
        """
        if not isinstance(descriptor, dict):
            return None
        content = descriptor.get("content") or {}
        if not content:
            return None

        media = None
        if content_type and content_type in content:
            media = content[content_type]
        elif "application/json" in content:
            media = content["application/json"]
        else:
            for media_type, value in content.items():
                if media_type.lower().endswith("+json"):
                    media = value
                    break
            if media is None:
                media = next(iter(content.values()))

        return media.get("schema") if isinstance(media, dict) else None


def _build_state(doc: dict) -> _IndexState:
    openapi = detect_version(doc)
    paths = doc.get("paths") or {}
    if not isinstance(paths, dict):
        raise SpecFormatError("'paths' must be a mapping")

    operations: dict[str, dict[str, Endpoint]] = {}
    routes: list[_Route] = []
    for template, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        shared_params = path_item.get("parameters", [])

        methods: dict[str, Endpoint] = {}
        for method, operation in path_item.items():
            if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                continue
            methods[method.upper()] = _create_endpoint(doc, template, method.upper(), operation, shared_params)

        operations[template] = methods
        pattern = to_pattern(template)
        routes.append(_Route(template, pattern, _compile(pattern), specificity(pattern), methods))

    info = doc.get("info") or {}
    spec = Specification(
        openapi=openapi,
        title=str(info.get("title", "")),
        version=str(info.get("version", "")),
        document=doc,
        operations=operations,
    )
    return _IndexState(specification=spec, routes=tuple(routes))


def _create_endpoint(doc: dict, path: str, method: str, operation: dict, shared_params: list) -> Endpoint:
    return Endpoint(
        method=method,
        path=path,
        operation_id=operation.get("operationId"),
        summary=operation.get("summary"),
        parameters=_parse_parameters(doc, shared_params, operation.get("parameters", [])),
        responses={str(status): resp for status, resp in (operation.get("responses") or {}).items()},
        tags=operation.get("tags", []),
    )


def _parse_parameters(doc: dict, shared: list, own: list) -> list[Param]:
    # Operation-level parameters override path-level ones with the same (name, in).
    merged: dict[tuple[str, str], dict] = {}
    for raw in list(shared or []) + list(own or []):
        p = _resolve_parameter(doc, raw)
        if p is None or "name" not in p:
            continue
        merged[(p["name"], p.get("in", "query"))] = p

    result = []
    for p in merged.values():
        schema = p.get("schema", {}) or {}
        constraints = {}
        for key in ("minimum", "maximum", "minLength", "maxLength", "pattern", "enum", "format", "default"):
            if key in schema:
                constraints[key] = schema[key]

        result.append(
            Param(
                name=p["name"],
                location=p.get("in", "query"),
                required=p.get("required", p.get("in") == "path"),
                param_type=schema.get("type", "string"),
                description=p.get("description", ""),
                constraints=constraints,
            )
        )
    return result


def _resolve_parameter(doc: dict, raw) -> dict | None:
    if not isinstance(raw, dict):
        return None
    if "$ref" not in raw:
        return raw
    name = _ref_name(raw["$ref"], PARAMETER_REF_PREFIX)
    parameters = (doc.get("components") or {}).get("parameters") or {}
    if name is None or name not in parameters:
        logger.warning("Unresolvable parameter reference %s", raw["$ref"])
        return None
    return parameters[name]
