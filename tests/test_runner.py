import json
from unittest.mock import MagicMock

from api_mock_agent.generator.prompt import (
    MAX_PROMPT_CHARS,
    PromptBuilder,
    minify_schema,
    sanitize,
    stable_json,
    truncate,
)
from api_mock_agent.generator.runner import REPAIR_TEMPERATURE, LlmRunner, extract_json, strip_fences
from api_mock_agent.models import Plan, Scenario
from api_mock_agent.skills.registry import ContextRegistry


def _plan(scenario=Scenario.HAPPY, status_code=200, schema=None, **context) -> Plan:
    return Plan(
        scenario=scenario,
        status_code=status_code,
        json_schema=json.dumps(schema) if schema is not None else None,
        request_context={"method": "GET", "path": "/products/42", **context},
        operation_id="getProduct",
        path="/products/{id}",
        method="GET",
    )


PRODUCT_SCHEMA = {
    "type": "object",
    "description": "A catalog product",
    "properties": {
        "sku": {"type": "string", "examples": ["A-1"]},
        "price": {"type": "number"},
        "description": {"type": "string", "description": "Marketing copy"},
    },
}


class TestStripFences:
    def test_json_fence(self):
        assert strip_fences('Here you go:\n```json\n{"a": 1}\n```\nEnjoy') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_fences("```\n[1, 2]\n```") == "[1, 2]"

    def test_no_fence(self):
        assert strip_fences('  {"a": 1}\n') == '{"a": 1}'

    def test_none(self):
        assert strip_fences(None) == ""


class TestExtractJson:
    def test_object_in_prose(self):
        assert extract_json('Sure! {"id": 1, "tags": [1, 2]} Hope that helps.') == '{"id": 1, "tags": [1, 2]}'

    def test_array_opening_first_wins(self):
        assert extract_json('Result: [{"id": 1}, {"id": 2}] done') == '[{"id": 1}, {"id": 2}]'

    def test_unbracketed_objects_are_wrapped(self):
        assert json.loads(extract_json('{"id": 1}, {"id": 2}')) == [{"id": 1}, {"id": 2}]

    def test_unparseable_candidate_is_returned_for_repair(self):
        assert extract_json("oops {id: 1} oops") == "{id: 1}"

    def test_no_structure_returns_text(self):
        assert extract_json("no json here") == "no json here"


class TestPromptHelpers:
    def test_sanitize_replaces_control_characters(self):
        assert sanitize("a\x00b\x1fc\nd") == "a b c\nd"

    def test_truncate_marks_cut(self):
        text = truncate("x" * 100, 50)
        assert len(text) <= 50
        assert text.endswith("...(truncated)")
        assert truncate("short", 50) == "short"

    def test_minify_drops_documentation_keywords_only(self):
        minified = json.loads(minify_schema(json.dumps(PRODUCT_SCHEMA)))
        assert "description" not in minified
        assert "examples" not in minified["properties"]["sku"]
        assert minified["properties"]["description"] == {"type": "string"}

    def test_minify_empty_and_invalid(self):
        assert minify_schema(None) == ""
        assert minify_schema("  ") == ""
        assert minify_schema("{broken") == "{broken"

    def test_stable_json_sorts_keys(self):
        assert stable_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'
        assert stable_json({}) == ""


class TestPromptBuilder:
    def test_generation_prompt_contents(self):
        prompts = PromptBuilder(ContextRegistry())
        prompt = prompts.build_generation_prompt(_plan(schema=PRODUCT_SCHEMA))

        assert "- Scenario: HAPPY" in prompt
        assert "- Status code: 200" in prompt
        assert "- Endpoint: GET /products/42" in prompt
        assert "PRODUCTS CONTEXT:" in prompt
        assert "JSON Schema:" in prompt
        assert "Request Context:" in prompt
        assert prompt.endswith("Generate the JSON response now:")

    def test_scenario_instruction(self):
        prompts = PromptBuilder(ContextRegistry())
        prompt = prompts.build_generation_prompt(_plan(scenario=Scenario.RATE_LIMIT, status_code=429))
        assert "rate limit error" in prompt
        assert "JSON Schema:" not in prompt

    def test_prompt_is_bounded(self):
        prompts = PromptBuilder(ContextRegistry())
        plan = _plan(schema=PRODUCT_SCHEMA, requestBody={"blob": "x" * 50000})
        assert len(prompts.build_generation_prompt(plan)) <= MAX_PROMPT_CHARS

    def test_system_prompts_load(self):
        prompts = PromptBuilder(ContextRegistry())
        assert "JSON" in prompts.system_prompt()
        assert "JSON" in prompts.repair_system_prompt()

    def test_repair_prompt(self):
        prompt = PromptBuilder(ContextRegistry()).build_repair_prompt('{"a": }', "Invalid JSON: Expecting value")
        assert prompt.startswith('Invalid JSON:\n{"a": }')
        assert "Validation error:\nInvalid JSON: Expecting value" in prompt
        assert prompt.endswith("Return ONLY the corrected JSON:")


class TestLlmRunner:
    def test_generate_strips_fences(self):
        client = MagicMock()
        client.call.return_value = '```json\n{"sku": "A-1"}\n```'
        runner = LlmRunner(client, PromptBuilder(ContextRegistry()))

        assert runner.generate_response(_plan()) == '{"sku": "A-1"}'
        kwargs = client.call.call_args[1]
        assert "Scenario: HAPPY" in kwargs["user"]
        assert kwargs["system"] == runner.prompts.system_prompt()

    def test_generate_extracts_from_prose(self):
        client = MagicMock()
        client.call.return_value = 'Here is the product: {"sku": "A-1"}'
        runner = LlmRunner(client, PromptBuilder(ContextRegistry()))
        assert runner.generate_response(_plan()) == '{"sku": "A-1"}'

    def test_repair_uses_repair_prompts(self):
        client = MagicMock()
        client.call.return_value = '{"sku": "A-1"}'
        runner = LlmRunner(client, PromptBuilder(ContextRegistry()))

        assert runner.repair_response('{"sku": }', "Invalid JSON") == '{"sku": "A-1"}'
        kwargs = client.call.call_args[1]
        assert kwargs["system"] == runner.prompts.repair_system_prompt()
        assert kwargs["temperature"] == REPAIR_TEMPERATURE
        assert '{"sku": }' in kwargs["user"]
