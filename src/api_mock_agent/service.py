"""Mock service — the request-to-response pipeline.

resolve -> cache lookup -> plan -> generate -> validate -> (repair once)
-> post-process -> cache store -> simulated latency.
"""

import logging
import re
import time
from pathlib import Path
from typing import Callable

from api_mock_agent.cache import ResultCache
from api_mock_agent.config import Settings
from api_mock_agent.generator.postprocess import ResponsePostProcessor
from api_mock_agent.generator.prompt import PromptBuilder
from api_mock_agent.generator.runner import LlmRunner
from api_mock_agent.generator.validator import JsonValidationError, JsonValidator
from api_mock_agent.llm import LlmClient
from api_mock_agent.models import LATENCY_HEADER, MockRequest, MockResult, Signature
from api_mock_agent.parser.index import OpenApiIndex
from api_mock_agent.planner import ResponsePlanner
from api_mock_agent.skills.registry import ContextRegistry

logger = logging.getLogger(__name__)

_DURATION = re.compile(
    r"^(?:PT)?(?:(?P<h>\d+(?:\.\d+)?)H)?(?:(?P<m>\d+(?:\.\d+)?)M)?(?:(?P<s>\d+(?:\.\d+)?)S)?$"
)


class EndpointNotFoundError(LookupError):
    """No operation in the active specification matches the request."""

    def __init__(self, method: str, path: str):
        super().__init__(f"No matching endpoint found in OpenAPI spec for {method} {path}")
        self.method = method
        self.path = path


class MockGenerationError(RuntimeError):
    """Unexpected failure while producing a mock response."""

    def __init__(self, message: str, request: MockRequest):
        super().__init__(message)
        self.scenario = request.scenario


def parse_latency(value: str | None) -> float | None:
    """Parse an ISO-8601 time duration (``5S``, ``1M30S``, ``PT0.5S``) into seconds."""
    if not value:
        return None
    match = _DURATION.match(value.strip().upper())
    if not match or not any(match.groupdict().values()):
        return None
    hours, minutes, seconds = (float(match.group(g) or 0) for g in ("h", "m", "s"))
    return hours * 3600 + minutes * 60 + seconds


class MockService:
    def __init__(
        self,
        index: OpenApiIndex,
        planner: ResponsePlanner,
        runner: LlmRunner,
        validator: JsonValidator | None = None,
        post_processor: ResponsePostProcessor | None = None,
        cache: ResultCache | None = None,
        registry: ContextRegistry | None = None,
        blocks_dir: str | None = None,
        max_latency: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.index = index
        self.planner = planner
        self.runner = runner
        self.validator = validator or JsonValidator()
        self.post_processor = post_processor or ResponsePostProcessor()
        self.cache = cache if cache is not None else ResultCache()
        self.registry = registry
        self.blocks_dir = blocks_dir
        self.max_latency = max_latency
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "MockService":
        index = OpenApiIndex()
        if settings.spec_path:
            index.load_file(settings.spec_path)
        registry = ContextRegistry.with_external(settings.blocks_dir)
        client = LlmClient(model=settings.model, temperature=settings.temperature, timeout=settings.llm_timeout)
        runner = LlmRunner(client, PromptBuilder(registry))
        return cls(
            index=index,
            planner=ResponsePlanner(index),
            runner=runner,
            cache=ResultCache(max_size=settings.cache_size, ttl=settings.cache_ttl),
            registry=registry,
            blocks_dir=settings.blocks_dir,
            max_latency=settings.max_latency,
        )

    def load_spec(self, spec_text: str) -> bool:
        loaded = self.index.load(spec_text)
        self.cache.clear()
        return loaded

    def load_spec_file(self, file_path: Path | str) -> bool:
        loaded = self.index.load_file(file_path)
        self.cache.clear()
        return loaded

    def reload_blocks(self) -> int:
        if self.registry is None:
            return 0
        return self.registry.reload(self.blocks_dir)

    def generate(self, request: MockRequest) -> MockResult:
        signature = Signature.from_request(request)

        endpoint = self.index.resolve(request.method, request.path)
        if endpoint is None:
            raise EndpointNotFoundError(request.method, request.path)

        cached = self.cache.get(signature)
        if cached is not None:
            logger.debug("Cache hit for %s %s (%s)", request.method, request.path, signature.scenario.value)
            self.apply_latency(request)
            return cached

        scenario = request.scenario
        try:
            plan = self.planner.plan(endpoint, scenario, request)
            json_text = self.runner.generate_response(plan)
            json_text = self._validate_or_repair(json_text, plan.json_schema)
            result = self.post_processor.process(json_text, plan, request)
        except Exception as e:
            logger.exception(
                "Error generating mock response for %s %s (scenario %s)",
                request.method, request.path, scenario.value,
            )
            raise MockGenerationError(f"Error generating mock response: {e}", request) from e

        self.cache.put(signature, result)
        self.apply_latency(request)
        return result

    def _validate_or_repair(self, json_text: str, schema_text: str | None) -> str:
        try:
            json_text = self.validator.validate(json_text)
        except JsonValidationError as e:
            logger.warning("Validation failed, attempting repair: %s", e)
            json_text = self.runner.repair_response(json_text, str(e))
            try:
                json_text = self.validator.validate(json_text)
            except JsonValidationError as repair_error:
                logger.warning("Repaired response is still invalid, returning it as-is: %s", repair_error)
                return json_text

        self.validator.validate_against_schema(json_text, schema_text)
        return json_text

    def apply_latency(self, request: MockRequest) -> None:
        header = request.header(LATENCY_HEADER)
        if header is None:
            return
        seconds = parse_latency(header)
        if seconds is None:
            logger.warning("Invalid latency format: %s", header)
            return
        seconds = min(seconds, self.max_latency)
        logger.debug("Applying latency: %.3fs", seconds)
        self._sleep(seconds)
