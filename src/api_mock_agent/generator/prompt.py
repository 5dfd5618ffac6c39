"""Prompt construction for response generation and repair."""

import hashlib
import json
import logging
import re
from pathlib import Path

from api_mock_agent.models import Plan, Scenario
from api_mock_agent.skills.base import EndpointInfo
from api_mock_agent.skills.registry import ContextRegistry

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

MAX_PROMPT_CHARS = 16000  # roughly 4k tokens
MAX_SCHEMA_CHARS = 6000
MAX_CONTEXT_CHARS = 4000
MAX_REPAIR_JSON_CHARS = 6000
MAX_REPAIR_ERROR_CHARS = 2000

MAX_BLOCKS = 2
MIN_BLOCK_SCORE = 0.25
BLOCK_BUDGET_CHARS = 3000

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_NOISE_KEYS = ("examples", "description", "externalDocs")

SCENARIO_DELTAS = {
    Scenario.HAPPY: "- Generate realistic, successful response data with diverse, believable values (no generic names).",
    Scenario.EDGE: "- Use boundary values (min/max, empty arrays, very long but realistic strings) while keeping names realistic.",
    Scenario.INVALID: "- Generate a validation error response with specific field errors and helpful messages.",
    Scenario.RATE_LIMIT: "- Generate a rate limit error with a clear message and a retry-after hint (e.g., 60 seconds).",
    Scenario.SERVER_ERROR: "- Generate a server error with a trace id (e.g., 'trace-id: 7f3a2b1c-4d5e-6f7a-8b9c-0d1e2f3a4b5c').",
}


class PromptBuilder:
    """Builds generation and repair prompts; context blocks come from the registry."""

    def __init__(self, registry: ContextRegistry):
        self.registry = registry

    def system_prompt(self) -> str:
        return (PROMPTS_DIR / "generate.md").read_text(encoding="utf-8")

    def repair_system_prompt(self) -> str:
        return (PROMPTS_DIR / "repair.md").read_text(encoding="utf-8")

    def endpoint_info(self, plan: Plan) -> EndpointInfo:
        ctx = plan.request_context
        return EndpointInfo(
            path=sanitize(str(ctx.get("path") or plan.path)),
            operation_id=sanitize(plan.operation_id or ""),
            method=sanitize(plan.method),
            json_schema=truncate(minify_schema(plan.json_schema), MAX_SCHEMA_CHARS),
            request_context=truncate(stable_json(ctx), MAX_CONTEXT_CHARS),
        )

    def build_generation_prompt(self, plan: Plan) -> str:
        info = self.endpoint_info(plan)
        blocks = self.registry.select(info, MAX_BLOCKS, MIN_BLOCK_SCORE, BLOCK_BUDGET_CHARS)

        lines = [
            f"- Scenario: {plan.scenario.name}",
            f"- Status code: {plan.status_code}",
            f"- Endpoint: {plan.method} {info.path}",
            "",
        ]
        lines.extend(block.render(info) for block in blocks)
        lines.append(SCENARIO_DELTAS[plan.scenario])
        lines.append("")
        if info.json_schema:
            lines.extend(["JSON Schema:", info.json_schema, ""])
        if info.request_context:
            lines.extend(["Request Context:", info.request_context, ""])
        lines.append("Generate the JSON response now:")

        prompt = truncate("\n".join(lines), MAX_PROMPT_CHARS)
        logger.debug(
            "Prompt size: %d chars, sha256=%s, blocks=[%s]",
            len(prompt),
            hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:16],
            ",".join(b.id for b in blocks) or "-",
        )
        return prompt

    def build_repair_prompt(self, invalid_json: str, validation_error: str) -> str:
        return (
            f"Invalid JSON:\n{truncate(invalid_json.strip(), MAX_REPAIR_JSON_CHARS)}\n\n"
            f"Validation error:\n{truncate(validation_error.strip(), MAX_REPAIR_ERROR_CHARS)}\n\n"
            "Return ONLY the corrected JSON:"
        )


def sanitize(text: str) -> str:
    return _CONTROL_CHARS.sub(" ", text or "")


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 20)] + "...(truncated)"


def minify_schema(schema_text: str | None) -> str:
    """Compact JSON with documentation-only keywords removed."""
    if not schema_text or not schema_text.strip():
        return ""
    try:
        node = json.loads(schema_text)
    except ValueError:
        return sanitize(schema_text)
    return json.dumps(_drop_keys(node), separators=(",", ":"), default=str)


def stable_json(value) -> str:
    if not value:
        return ""
    try:
        return sanitize(json.dumps(value, sort_keys=True, separators=(",", ":"), default=str))
    except (TypeError, ValueError):
        logger.warning("Request context serialization failed, falling back to str()")
        return sanitize(str(value))


def _drop_keys(node, property_map: bool = False):
    if isinstance(node, dict):
        # Keys of a properties map are field names, not keywords.
        return {
            k: _drop_keys(v, property_map=(k == "properties" and not property_map))
            for k, v in node.items()
            if property_map or k not in _NOISE_KEYS
        }
    if isinstance(node, list):
        return [_drop_keys(item) for item in node]
    return node
