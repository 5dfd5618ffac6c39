"""Post-processing of generated payloads: scenario headers and seeded perturbation."""

import json
import logging
import math
import random
import time
import uuid

from api_mock_agent.generator.validator import loads_strict
from api_mock_agent.models import SEED_HEADER, MockRequest, MockResult, Plan, Scenario

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 60
RATE_LIMIT = 100
ID_RANGE = 10000
TIMESTAMP_JITTER_MS = 86_400_000


class ResponsePostProcessor:
    def process(self, json_text: str, plan: Plan, request: MockRequest) -> MockResult:
        body = json_text
        seed = request.header(SEED_HEADER)
        if seed is not None:
            body = apply_seed(body, seed)

        return MockResult(status=plan.status_code, body=body, headers=scenario_headers(plan))


def scenario_headers(plan: Plan) -> dict[str, str]:
    content_type = plan.content_type if "json" in plan.content_type.lower() else "application/json"
    headers = {
        "Content-Type": content_type,
        "X-Mock-Scenario": plan.scenario.value,
        "X-Mock-Generated": "true",
    }

    if plan.scenario is Scenario.RATE_LIMIT:
        headers["Retry-After"] = str(RETRY_AFTER_SECONDS)
        headers["X-RateLimit-Limit"] = str(RATE_LIMIT)
        headers["X-RateLimit-Remaining"] = "0"
        headers["X-RateLimit-Reset"] = str(int(time.time()) + RETRY_AFTER_SECONDS)
    elif plan.scenario is Scenario.SERVER_ERROR:
        headers["X-Trace-Id"] = str(uuid.uuid4())

    return headers


def apply_seed(json_text: str, seed: str) -> str:
    """Deterministically perturb numeric id/timestamp fields; same seed, same output."""
    try:
        node = loads_strict(json_text)
    except ValueError:
        logger.warning("Cannot apply seed to non-JSON body")
        return json_text

    rng = random.Random(seed)
    return json.dumps(_perturb(node, rng))


def _perturb(node, rng: random.Random):
    if isinstance(node, dict):
        result = {}
        for key, value in node.items():
            lowered = key.lower()
            is_number = (isinstance(value, int) and not isinstance(value, bool)) or (
                isinstance(value, float) and math.isfinite(value)
            )
            if is_number and "id" in lowered:
                result[key] = rng.randrange(ID_RANGE)
            elif is_number and "timestamp" in lowered:
                result[key] = int(value) - rng.randrange(TIMESTAMP_JITTER_MS)
            else:
                result[key] = _perturb(value, rng)
        return result
    if isinstance(node, list):
        return [_perturb(item, rng) for item in node]
    return node
