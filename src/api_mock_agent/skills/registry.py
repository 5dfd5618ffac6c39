"""Context registry — ranks guidance blocks for an endpoint and selects them within a budget."""

import logging
import math
from pathlib import Path

from .base import ContextBlock, EndpointInfo
from .blocks import builtin_blocks
from .loader import load_external_blocks

logger = logging.getLogger(__name__)

MIN_BUDGET_CHARS = 500
FALLBACK_PREFIX = "generic"


class ContextRegistry:
    """Holds built-in and external blocks behind one selection algorithm."""

    def __init__(self, builtin: list[ContextBlock] | None = None, external: list[ContextBlock] | None = None):
        self._builtin = list(builtin if builtin is not None else builtin_blocks())
        self._blocks = tuple(self._builtin + list(external or []))
        logger.info(
            "ContextRegistry initialized with %d total blocks (%d built-in, %d external)",
            len(self._blocks), len(self._builtin), len(self._blocks) - len(self._builtin),
        )

    @classmethod
    def with_external(cls, blocks_dir: Path | str | None) -> "ContextRegistry":
        return cls(external=load_external_blocks(blocks_dir))

    @property
    def blocks(self) -> tuple[ContextBlock, ...]:
        return self._blocks

    def reload(self, blocks_dir: Path | str | None) -> int:
        """Replace the external blocks; returns how many were loaded."""
        external = load_external_blocks(blocks_dir)
        self._blocks = tuple(self._builtin + external)
        return len(external)

    def rank(self, info: EndpointInfo, min_score: float = 0.0) -> list[tuple[ContextBlock, float]]:
        """Blocks scoring at least ``min_score``, best first; ties keep registration order."""
        blocks = self._blocks
        scored = [(block, safe_score(block, info)) for block in blocks]
        ranked = [pair for pair in scored if pair[1] >= min_score]
        ranked.sort(key=lambda pair: pair[1], reverse=True)
        return ranked

    def select(self, info: EndpointInfo, max_blocks: int, min_score: float, budget_chars: int) -> list[ContextBlock]:
        ranked = self.rank(info, min_score)
        logger.debug(
            "ContextRegistry candidates: %s",
            ", ".join(f"{b.id}:{s:.2f}" for b, s in ranked[:5]) or "-",
        )

        chosen: list[ContextBlock] = []
        remaining = max(MIN_BUDGET_CHARS, budget_chars)
        for block, _ in ranked:
            if len(chosen) >= max_blocks:
                break
            try:
                length = len(block.render(info))
            except Exception:
                logger.warning("Block %s failed to render, skipping", block.id, exc_info=True)
                continue
            if length <= remaining:
                chosen.append(block)
                remaining -= length

        if not chosen and max_blocks > 0:
            fallback = next((b for b in self._blocks if b.id.startswith(FALLBACK_PREFIX)), None)
            if fallback is not None:
                chosen.append(fallback)
        return chosen


def safe_score(block: ContextBlock, info: EndpointInfo) -> float:
    """A block's score clamped to [0, 1]; errors and non-finite values count as 0."""
    try:
        score = float(block.score(info))
    except Exception:
        logger.debug("Block %s failed to score", block.id, exc_info=True)
        return 0.0
    if math.isnan(score) or math.isinf(score):
        return 0.0
    return min(1.0, max(0.0, score))
