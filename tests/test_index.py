import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from api_mock_agent.parser.detect import SpecFormatError, detect_version, parse_document
from api_mock_agent.parser.index import OpenApiIndex, specificity, to_pattern

FIXTURES = Path(__file__).parent / "fixtures"

ITEMS_SPEC = """
openapi: 3.0.0
info: {title: Items, version: "1"}
paths:
  /items/{id}:
    get:
      operationId: getItem
      responses: {"200": {description: ok}}
  /items/special:
    get:
      operationId: getSpecialItem
      responses: {"200": {description: ok}}
    post:
      operationId: createSpecialItem
      responses: {"201": {description: created}}
"""

CYCLE_SPEC = """
openapi: 3.0.0
info: {title: Cycles, version: "1"}
paths: {}
components:
  schemas:
    A: {$ref: "#/components/schemas/B"}
    B: {$ref: "#/components/schemas/A"}
    Self: {$ref: "#/components/schemas/Self"}
    Node:
      type: object
      properties:
        children:
          type: array
          items: {$ref: "#/components/schemas/Node"}
    Alias: {$ref: "#/components/schemas/Node"}
"""


def _index(text: str) -> OpenApiIndex:
    index = OpenApiIndex()
    assert index.load(text), index.messages
    return index


class TestDetect:
    def test_parses_json_and_yaml(self):
        assert parse_document('{"openapi": "3.0.0"}')["openapi"] == "3.0.0"
        assert parse_document("openapi: 3.1.0\n")["openapi"] == "3.1.0"

    def test_rejects_non_mapping(self):
        with pytest.raises(SpecFormatError):
            parse_document("- just\n- a list\n")

    def test_rejects_swagger_2(self):
        with pytest.raises(SpecFormatError):
            detect_version({"swagger": "2.0"})

    def test_requires_openapi_3(self):
        with pytest.raises(SpecFormatError):
            detect_version({"info": {}})


class TestLoad:
    def test_load_petstore_file(self):
        index = OpenApiIndex()
        assert index.load_file(FIXTURES / "petstore.yaml") is True
        spec = index.specification
        assert spec.title == "Swagger Petstore"
        assert spec.endpoint_count == 2
        assert set(spec.schemas) == {"Pet", "Owner", "Error"}
        assert index.messages == []

    def test_invalid_text_clears_state_without_raising(self):
        index = _index(ITEMS_SPEC)
        assert index.load("openapi: [unclosed") is False
        assert index.specification is None
        assert index.messages
        assert index.resolve("GET", "/items/1") is None

    def test_swagger_2_is_reported(self):
        index = OpenApiIndex()
        assert index.load("swagger: '2.0'\npaths: {}\n") is False
        assert "Swagger" in index.messages[0]

    def test_missing_file_is_reported(self, tmp_path):
        index = OpenApiIndex()
        assert index.load_file(tmp_path / "missing.yaml") is False
        assert "Cannot read" in index.messages[0]

    def test_reload_replaces_whole_index(self):
        index = _index(ITEMS_SPEC)
        index.load_file(FIXTURES / "petstore.yaml")
        assert index.resolve("GET", "/items/special") is None
        assert index.resolve("GET", "/pets") is not None

    def test_path_level_parameters_are_merged(self):
        index = OpenApiIndex()
        index.load_file(FIXTURES / "petstore.yaml")
        endpoint = index.resolve("GET", "/pets/7")
        assert [p.name for p in endpoint.parameters] == ["petId"]
        assert endpoint.parameters[0].location == "path"
        assert endpoint.parameters[0].required is True

    def test_query_parameter_constraints(self):
        index = OpenApiIndex()
        index.load_file(FIXTURES / "petstore.yaml")
        limit = index.resolve("GET", "/pets").parameters[0]
        assert limit.name == "limit"
        assert limit.required is False
        assert limit.param_type == "integer"
        assert limit.constraints == {"maximum": 100}


class TestResolve:
    def test_pattern_conversion(self):
        assert to_pattern("/items/{id}/tags/{tag}") == "/items/*/tags/*"
        assert specificity("/items/special") > specificity("/items/*")

    def test_literal_template_beats_wildcard(self):
        index = _index(ITEMS_SPEC)
        assert index.resolve("GET", "/items/special").operation_id == "getSpecialItem"
        assert index.resolve("GET", "/items/42").operation_id == "getItem"

    def test_method_is_case_insensitive(self):
        index = _index(ITEMS_SPEC)
        assert index.resolve("post", "/items/special").operation_id == "createSpecialItem"

    def test_missing_method_on_best_match_is_not_found(self):
        index = _index(ITEMS_SPEC)
        # /items/{id} has no POST and the more specific template wins only for "special"
        assert index.resolve("POST", "/items/42") is None
        assert index.resolve("DELETE", "/items/special") is None

    def test_wildcard_spans_one_segment(self):
        index = _index(ITEMS_SPEC)
        assert index.resolve("GET", "/items/1/2") is None
        assert index.resolve("GET", "/items") is None

    def test_trailing_slash_ignored(self):
        index = _index(ITEMS_SPEC)
        assert index.resolve("GET", "/items/42/").operation_id == "getItem"

    def test_no_specification(self):
        assert OpenApiIndex().resolve("GET", "/anything") is None

    def test_reload_swaps_routes_atomically(self):
        items_v2 = ITEMS_SPEC.replace("title: Items", "title: Items v2").replace("Item\n", "ItemV2\n")
        operations = {"getItem", "getSpecialItem", "getItemV2", "getSpecialItemV2"}
        index = _index(ITEMS_SPEC)
        done = threading.Event()

        def read():
            seen = set()
            while not done.is_set():
                for path in ("/items/42", "/items/special"):
                    endpoint = index.resolve("GET", path)
                    assert endpoint is not None
                    seen.add(endpoint.operation_id)
            return seen

        def write():
            try:
                for i in range(200):
                    assert index.load(items_v2 if i % 2 == 0 else ITEMS_SPEC)
            finally:
                done.set()

        with ThreadPoolExecutor(max_workers=5) as pool:
            readers = [pool.submit(read) for _ in range(4)]
            pool.submit(write).result()
            results = [future.result() for future in readers]

        assert all(seen <= operations for seen in results)
        assert index.specification.title == "Items"


class TestSchemaRefs:
    def test_follows_reference(self):
        index = _index(CYCLE_SPEC)
        resolved = index.resolve_schema_ref({"$ref": "#/components/schemas/Alias"})
        assert resolved["type"] == "object"

    def test_self_reference_returns_original_node(self):
        index = _index(CYCLE_SPEC)
        node = {"$ref": "#/components/schemas/Self"}
        assert index.resolve_schema_ref(node) is node

    def test_transitive_cycle_returns_original_node(self):
        index = _index(CYCLE_SPEC)
        node = {"$ref": "#/components/schemas/A"}
        assert index.resolve_schema_ref(node) is node

    def test_recursive_structure_resolves_one_level(self):
        index = _index(CYCLE_SPEC)
        node = index.resolve_schema_ref({"$ref": "#/components/schemas/Node"})
        assert node["properties"]["children"]["items"] == {"$ref": "#/components/schemas/Node"}

    def test_unknown_reference_returns_original_node(self):
        index = _index(CYCLE_SPEC)
        node = {"$ref": "#/components/schemas/Nope"}
        assert index.resolve_schema_ref(node) is node

    def test_plain_schema_untouched(self):
        index = _index(CYCLE_SPEC)
        node = {"type": "string"}
        assert index.resolve_schema_ref(node) is node


class TestResponseSchema:
    def test_prefers_application_json(self):
        descriptor = {"content": {
            "text/plain": {"schema": {"type": "string"}},
            "application/json": {"schema": {"type": "object"}},
        }}
        assert OpenApiIndex().response_schema(descriptor) == {"type": "object"}

    def test_falls_back_to_vendor_json(self):
        descriptor = {"content": {
            "text/plain": {"schema": {"type": "string"}},
            "application/problem+json": {"schema": {"type": "object"}},
        }}
        assert OpenApiIndex().response_schema(descriptor) == {"type": "object"}

    def test_falls_back_to_first_media_type(self):
        descriptor = {"content": {"text/csv": {"schema": {"type": "string"}}}}
        assert OpenApiIndex().response_schema(descriptor) == {"type": "string"}

    def test_requested_content_type_wins(self):
        descriptor = {"content": {
            "application/json": {"schema": {"type": "object"}},
            "application/xml": {"schema": {"type": "string"}},
        }}
        assert OpenApiIndex().response_schema(descriptor, "application/xml") == {"type": "string"}

    def test_no_content(self):
        assert OpenApiIndex().response_schema({"description": "No content"}) is None
