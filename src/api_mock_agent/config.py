"""Application settings loaded from the environment (and an optional .env file)."""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import find_dotenv, load_dotenv

from api_mock_agent.cache import DEFAULT_MAX_SIZE, DEFAULT_TTL_SECONDS
from api_mock_agent.llm import DEFAULT_TEMPERATURE, DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class Settings:
    """Immutable settings; CLI options override them with dataclasses.replace."""

    model: str | None = None
    temperature: float = DEFAULT_TEMPERATURE
    llm_timeout: float = DEFAULT_TIMEOUT_SECONDS
    spec_path: str | None = None
    blocks_dir: str | None = None
    mount_prefix: str = "/mock"
    cache_size: int = DEFAULT_MAX_SIZE
    cache_ttl: float = DEFAULT_TTL_SECONDS
    max_latency: float = 60.0
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables once per process."""
    load_dotenv(find_dotenv(usecwd=True))

    return Settings(
        model=os.getenv("MOCK_AGENT_MODEL"),
        temperature=float(os.getenv("MOCK_AGENT_TEMPERATURE", DEFAULT_TEMPERATURE)),
        llm_timeout=float(os.getenv("MOCK_AGENT_LLM_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
        spec_path=os.getenv("MOCK_AGENT_SPEC"),
        blocks_dir=os.getenv("MOCK_AGENT_BLOCKS_DIR"),
        mount_prefix=os.getenv("MOCK_AGENT_MOUNT", "/mock").rstrip("/") or "/mock",
        cache_size=int(os.getenv("MOCK_AGENT_CACHE_SIZE", DEFAULT_MAX_SIZE)),
        cache_ttl=float(os.getenv("MOCK_AGENT_CACHE_TTL", DEFAULT_TTL_SECONDS)),
        max_latency=float(os.getenv("MOCK_AGENT_MAX_LATENCY", "60")),
        log_level=os.getenv("MOCK_AGENT_LOG_LEVEL", "INFO").upper(),
    )
