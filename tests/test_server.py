import json
from pathlib import Path
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from api_mock_agent import __version__
from api_mock_agent.config import Settings
from api_mock_agent.generator.prompt import PromptBuilder
from api_mock_agent.generator.runner import LlmRunner
from api_mock_agent.parser.index import OpenApiIndex
from api_mock_agent.planner import ResponsePlanner
from api_mock_agent.server import create_app
from api_mock_agent.service import MockService
from api_mock_agent.skills.registry import ContextRegistry

FIXTURES = Path(__file__).parent / "fixtures"

PET = '{"id": 1, "name": "Rex"}'


def _client(llm: MagicMock, spec: Path | None = FIXTURES / "petstore.yaml", **settings) -> TestClient:
    index = OpenApiIndex()
    if spec is not None:
        index.load_file(spec)
    registry = ContextRegistry()
    service = MockService(
        index=index,
        planner=ResponsePlanner(index),
        runner=LlmRunner(llm, PromptBuilder(registry)),
        registry=registry,
        blocks_dir=str(FIXTURES / "blocks"),
        sleep=MagicMock(),
    )
    return TestClient(create_app(service, Settings(**settings)))


def _llm(*replies) -> MagicMock:
    llm = MagicMock()
    llm.call.side_effect = list(replies)
    return llm


class TestMockRoute:
    def test_reports_package_version(self):
        client = _client(_llm())
        assert client.get("/openapi.json").json()["info"]["version"] == __version__

    def test_generates_response(self):
        client = _client(_llm(PET))
        response = client.get("/mock/pets/1", headers={"X-Mock-Scenario": "edge"})

        assert response.status_code == 200
        assert response.json() == {"id": 1, "name": "Rex"}
        assert response.headers["content-type"] == "application/json"
        assert response.headers["x-mock-scenario"] == "edge"
        assert response.headers["x-mock-generated"] == "true"

    def test_request_details_reach_the_prompt(self):
        llm = _llm('{"id": 2, "name": "Tom"}')
        client = _client(llm)
        response = client.request(
            "GET", "/mock/pets/2?verbose=1", content='{"name": "Tom"}', headers={"X-Mock-Status": "201"},
        )

        assert response.status_code == 201

        prompt = llm.call.call_args[1]["user"]
        assert "- Status code: 201" in prompt
        assert '"verbose":"1"' in prompt
        assert '"requestBody":{"name":"Tom"}' in prompt

    def test_custom_mount_prefix(self):
        client = _client(_llm(PET), mount_prefix="/api")
        assert client.get("/api/pets/1").status_code == 200

    def test_unknown_endpoint_is_404(self):
        llm = _llm()
        client = _client(llm)
        response = client.get("/mock/owners")
        assert response.status_code == 404
        assert response.json() == {"error": "No matching endpoint found in OpenAPI spec for GET /owners"}
        llm.call.assert_not_called()

    def test_generation_failure_is_500(self):
        client = _client(_llm(RuntimeError("boom")))
        response = client.get("/mock/pets/1", headers={"X-Mock-Scenario": "server-error"})
        assert response.status_code == 500
        assert response.json() == {"error": "Error generating mock response"}
        assert response.headers["x-mock-scenario"] == "server-error"

    def test_rate_limit_headers(self):
        client = _client(_llm('{"message": "Too many requests"}'))
        response = client.get("/mock/pets", headers={"X-Mock-Scenario": "rate-limit"})
        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert response.headers["x-ratelimit-remaining"] == "0"


class TestAdmin:
    def test_health(self):
        client = _client(_llm())
        assert client.get("/health").json() == {"status": "ok", "specLoaded": True, "endpoints": 2}

    def test_health_without_spec(self):
        client = _client(_llm(), spec=None)
        assert client.get("/health").json()["specLoaded"] is False

    def test_list_endpoints(self):
        client = _client(_llm())
        endpoints = client.get("/admin/endpoints").json()
        assert {(e["method"], e["path"]) for e in endpoints} == {("GET", "/pets"), ("GET", "/pets/{petId}")}

    def test_upload_spec(self):
        client = _client(_llm(), spec=None)
        response = client.post("/admin/spec", content=(FIXTURES / "petstore.yaml").read_text())
        assert response.json() == {"loaded": True, "title": "Swagger Petstore", "endpoints": 2}

    def test_upload_invalid_spec(self):
        client = _client(_llm())
        response = client.post("/admin/spec", content=json.dumps({"swagger": "2.0"}))
        assert response.status_code == 400
        assert response.json()["loaded"] is False
        assert response.json()["messages"]
        assert client.get("/health").json()["specLoaded"] is False

    def test_reload_blocks(self):
        client = _client(_llm())
        assert client.post("/admin/blocks/reload").json() == {"externalBlocks": 2}
