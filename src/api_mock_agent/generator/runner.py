"""LLM runner — generates and repairs mock response payloads."""

import logging
import re

from api_mock_agent.generator.prompt import PromptBuilder
from api_mock_agent.generator.validator import loads_strict
from api_mock_agent.llm import LlmClient
from api_mock_agent.models import Plan

logger = logging.getLogger(__name__)

REPAIR_TEMPERATURE = 0.1

_FENCED = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


class LlmRunner:
    """Calls the model with a plan-derived prompt and returns JSON text."""

    def __init__(self, client: LlmClient, prompts: PromptBuilder):
        self.client = client
        self.prompts = prompts

    def generate_response(self, plan: Plan) -> str:
        prompt = self.prompts.build_generation_prompt(plan)
        response = self.client.call(system=self.prompts.system_prompt(), user=prompt)
        content = strip_fences(response)

        try:
            loads_strict(content)
        except ValueError:
            logger.warning("LLM response is not valid JSON, attempting to extract JSON")
            return extract_json(content)
        return content

    def repair_response(self, invalid_json: str, validation_error: str) -> str:
        logger.debug("Repairing response with validation error: %s", validation_error)
        prompt = self.prompts.build_repair_prompt(invalid_json, validation_error)
        response = self.client.call(
            system=self.prompts.repair_system_prompt(), user=prompt, temperature=REPAIR_TEMPERATURE,
        )
        return strip_fences(response)


def strip_fences(text: str) -> str:
    """Extract the body of a Markdown code block, or the trimmed text if there is none."""
    text = (text or "").strip()
    match = _FENCED.search(text)
    if match:
        return match.group(1).strip()
    return text


def extract_json(text: str) -> str:
    """Best-effort cut of the outermost JSON array or object out of free text."""
    array_start, array_end = text.find("["), text.rfind("]")
    object_start, object_end = text.find("{"), text.rfind("}")

    candidates = []
    if -1 < array_start < array_end:
        candidates.append((array_start, text[array_start:array_end + 1]))
    if -1 < object_start < object_end:
        candidates.append((object_start, text[object_start:object_end + 1]))

    # Whichever structure opens first is the outer one.
    for _, candidate in sorted(candidates):
        try:
            loads_strict(candidate)
        except ValueError:
            continue
        return candidate

    if -1 < object_start < object_end:
        # Several top-level objects without the enclosing brackets.
        wrapped = f"[{text[object_start:object_end + 1]}]"
        try:
            loads_strict(wrapped)
            return wrapped
        except ValueError:
            pass

    return min(candidates)[1] if candidates else text
