"""Response planning: status selection, content negotiation and schema resolution."""

import json
import logging
import re
from urllib.parse import parse_qs

from api_mock_agent.models import MOCK_HEADER_PREFIX, STATUS_HEADER, MockRequest, Plan, Scenario
from api_mock_agent.parser.base import Endpoint
from api_mock_agent.parser.index import SCHEMA_REF_PREFIX, OpenApiIndex
from api_mock_agent.parser.schema import to_json_schema

logger = logging.getLogger(__name__)

RANGE_2XX = re.compile(r"^2XX$", re.IGNORECASE)

SCENARIO_STATUS = {
    Scenario.INVALID: 400,
    Scenario.RATE_LIMIT: 429,
    Scenario.SERVER_ERROR: 500,
}

HTTP_STATUS_RANGE = range(100, 600)


class ResponsePlanner:
    """Turns a resolved endpoint, a scenario and the request into a :class:`Plan`."""

    def __init__(self, index: OpenApiIndex):
        self.index = index

    def plan(self, endpoint: Endpoint, scenario: Scenario, request: MockRequest) -> Plan:
        status_code = self.determine_status_code(endpoint, scenario, request)

        content_type = "application/json"
        response_schema = None
        json_schema = None

        descriptor = self.select_response(endpoint, status_code)
        if descriptor is not None:
            content = descriptor.get("content") or {}
            content_type = negotiate_content_type(request.header("accept"), content)
            schema = self.index.response_schema(descriptor, content_type)
            if schema is not None:
                schema = self.index.resolve_schema_ref(schema)
                response_schema = to_json_schema(schema)
                self._attach_components(response_schema)
                json_schema = json.dumps(response_schema, indent=2, default=str)

        return Plan(
            scenario=scenario,
            status_code=status_code,
            content_type=content_type,
            response_schema=response_schema,
            json_schema=json_schema,
            request_context=build_request_context(endpoint, request),
            operation_id=endpoint.operation_id,
            path=endpoint.path,
            method=endpoint.method,
        )

    def determine_status_code(self, endpoint: Endpoint, scenario: Scenario, request: MockRequest) -> int:
        override = request.header(STATUS_HEADER)
        if override is not None:
            try:
                status = int(override.strip())
            except ValueError:
                status = None
            if status in HTTP_STATUS_RANGE:
                return status
            logger.warning("Invalid X-Mock-Status: %s", override)

        if scenario in SCENARIO_STATUS:
            return SCENARIO_STATUS[scenario]
        return find_success_status(endpoint.responses)

    def select_response(self, endpoint: Endpoint, status_code: int) -> dict | None:
        """Exact code, then ``NXX`` family, then ``default``, then a 2xx, then the first entry."""
        responses = endpoint.responses
        if not responses:
            return None

        descriptor = responses.get(str(status_code))
        if descriptor is None:
            family = f"{status_code // 100}XX"
            descriptor = next((v for k, v in responses.items() if k.upper() == family), None)
        if descriptor is None:
            descriptor = responses.get("default")
        if descriptor is None:
            descriptor = pick_preferred_success(responses)
        if descriptor is None:
            descriptor = next(iter(responses.values()))

        resolved = self.index.resolve_response(descriptor)
        return resolved if isinstance(resolved, dict) else None

    def _attach_components(self, document: dict) -> None:
        # Carry every transitively referenced component so nested pointers resolve in-document.
        pending = list(_collect_refs(document))
        translated: dict[str, dict] = {}
        while pending:
            name = pending.pop()
            if name in translated:
                continue
            component = self.index.component_schema(name)
            if component is None:
                continue
            converted = to_json_schema(component)
            converted.pop("$schema", None)
            translated[name] = converted
            pending.extend(_collect_refs(converted))
        if translated:
            document["components"] = {"schemas": translated}


def is_2xx_key(key: str) -> bool:
    try:
        return 200 <= int(key) < 300
    except ValueError:
        return bool(RANGE_2XX.match(key))


def find_success_status(responses: dict) -> int:
    """Prefer 200, then 201, then the lowest declared 2xx; 200 if none is declared."""
    if not responses:
        return 200
    if "200" in responses:
        return 200
    if "201" in responses:
        return 201

    codes = sorted(200 if RANGE_2XX.match(k) else int(k) for k in responses if is_2xx_key(k))
    return codes[0] if codes else 200


def pick_preferred_success(responses: dict) -> dict | None:
    for key in ("200", "201"):
        if key in responses:
            return responses[key]
    return next((v for k, v in responses.items() if is_2xx_key(k)), None)


def negotiate_content_type(accept: str | None, content: dict) -> str:
    """Exact Accept match, then a json type when json is acceptable, then application/json, then the first."""
    if not content:
        return "application/json"

    accept = accept or "*/*"
    if accept in content:
        return accept
    if "json" in accept.lower():
        for key in content:
            if "json" in key.lower():
                return key
    if "application/json" in content:
        return "application/json"
    return next(iter(content))


def build_request_context(endpoint: Endpoint, request: MockRequest) -> dict:
    """Snapshot of the request handed to the generator; absent parts are omitted."""
    ctx: dict = {"method": request.method, "path": request.path}
    if endpoint.operation_id:
        ctx["operationId"] = endpoint.operation_id
    if endpoint.summary:
        ctx["summary"] = endpoint.summary

    if request.query_string:
        ctx["queryString"] = request.query_string
        query = parse_qs(request.query_string, keep_blank_values=True)
        if query:
            ctx["query"] = {k: v[0] if len(v) == 1 else v for k, v in query.items()}

    headers = {
        k.lower(): v for k, v in sorted(request.headers.items())
        if not k.lower().startswith(MOCK_HEADER_PREFIX)
    }
    if headers:
        ctx["headers"] = headers

    if request.body and request.body.strip():
        try:
            ctx["requestBody"] = json.loads(request.body)
        except ValueError:
            ctx["requestBody"] = request.body

    if endpoint.parameters:
        ctx["parameters"] = [p.model_dump() for p in endpoint.parameters]

    return ctx


def _collect_refs(node) -> set[str]:
    names: set[str] = set()
    if isinstance(node, dict):
        ref = node.get("$ref")
        if isinstance(ref, str) and ref.startswith(SCHEMA_REF_PREFIX):
            names.add(ref[len(SCHEMA_REF_PREFIX):])
        for key, value in node.items():
            if key != "components":
                names |= _collect_refs(value)
    elif isinstance(node, list):
        for item in node:
            names |= _collect_refs(item)
    return names
