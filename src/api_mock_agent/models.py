"""Request, plan and result models shared by the planner and the mock service."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from api_mock_agent.parser.index import normalize_path

MOCK_HEADER_PREFIX = "x-mock-"

SCENARIO_HEADER = "x-mock-scenario"
STATUS_HEADER = "x-mock-status"
SEED_HEADER = "x-mock-seed"
LATENCY_HEADER = "x-mock-latency"


class Scenario(str, Enum):
    HAPPY = "happy"
    EDGE = "edge"
    INVALID = "invalid"
    RATE_LIMIT = "rate-limit"
    SERVER_ERROR = "server-error"

    @classmethod
    def from_value(cls, value: str | None) -> "Scenario":
        """Case-insensitive lookup; anything unrecognized is HAPPY."""
        if value:
            wanted = value.strip().lower()
            for scenario in cls:
                if scenario.value == wanted:
                    return scenario
        return cls.HAPPY


class MockRequest(BaseModel):
    """An inbound mock request, independent of the web framework that received it.

    Header names are stored lower-cased.
    """

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    query_string: str = ""
    headers: dict[str, str] = {}
    body: str = ""

    @classmethod
    def build(cls, method: str, path: str, query_string: str = "", headers: dict | None = None, body: str = ""):
        return cls(
            method=method.upper(),
            path=path,
            query_string=query_string or "",
            headers={k.lower(): v for k, v in (headers or {}).items()},
            body=body or "",
        )

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @property
    def scenario(self) -> Scenario:
        return Scenario.from_value(self.header(SCENARIO_HEADER))


class Signature(BaseModel):
    """Cache key for a mock request; equal field values mean an equal signature."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    query_string: str
    body: str
    scenario: Scenario
    seed: str | None = None

    @classmethod
    def from_request(cls, request: MockRequest) -> "Signature":
        return cls(
            method=request.method.upper(),
            path=normalize_path(request.path),
            query_string=request.query_string,
            body=request.body,
            scenario=request.scenario,
            seed=request.header(SEED_HEADER),
        )


class Plan(BaseModel):
    """Everything the generator needs to produce one response."""

    model_config = ConfigDict(frozen=True)

    scenario: Scenario
    status_code: int
    content_type: str = "application/json"
    response_schema: dict | None = None
    json_schema: str | None = None
    request_context: dict[str, Any] = {}
    operation_id: str | None = None
    path: str
    method: str


class MockResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: int
    body: str
    headers: dict[str, str] = {}
