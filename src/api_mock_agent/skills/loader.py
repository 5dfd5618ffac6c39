"""External block loader — declarative YAML/JSON guidance blocks loaded at runtime.

A definition file looks like::

    id: banking.accounts.v1
    name: Banking
    scoring:
      baseScore: 0.0
      pathPatterns:
        - pattern: "\\\\b(accounts?|transfers?)\\\\b"
          score: 0.35
      operationPatterns: [...]
      schemaPatterns: [...]
    examples:
      - name: bank account
        condition: "path: accounts"
        json: |
          {"accountId": "ACC-2024-789456"}
    rules:
      - Use realistic account numbers (masked with asterisks)
"""

import json
import logging
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .base import ContextBlock, EndpointInfo

logger = logging.getLogger(__name__)

BLOCK_SUFFIXES = (".yaml", ".yml", ".json")


class ScorePattern(BaseModel):
    pattern: str
    score: float = 0.0


class ScoreRules(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_score: float | None = Field(default=None, alias="baseScore")
    path_patterns: list[ScorePattern] = Field(default_factory=list, alias="pathPatterns")
    operation_patterns: list[ScorePattern] = Field(default_factory=list, alias="operationPatterns")
    schema_patterns: list[ScorePattern] = Field(default_factory=list, alias="schemaPatterns")


class Example(BaseModel):
    name: str = ""
    condition: str | None = None
    json_text: str = Field(default="", alias="json")


class ExternalBlockDefinition(BaseModel):
    id: str | None = None
    name: str | None = None
    description: str | None = None
    scoring: ScoreRules | None = None
    examples: list[Example] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    metadata: dict = Field(default_factory=dict)


class ExternalContextBlock(ContextBlock):
    """A block whose scoring rules and guidance text come from a definition file."""

    def __init__(self, definition: ExternalBlockDefinition):
        self.definition = definition

    @property
    def id(self) -> str:
        return self.definition.id or "external.unnamed"

    def score(self, info: EndpointInfo) -> float:
        scoring = self.definition.scoring
        if scoring is None:
            return 0.0

        total = scoring.base_score or 0.0
        for patterns, text in (
            (scoring.path_patterns, info.path),
            (scoring.operation_patterns, info.operation_id),
            (scoring.schema_patterns, info.json_schema),
        ):
            for p in patterns:
                if _matches(text, p.pattern):
                    total += p.score
        return min(1.0, max(0.0, total))

    def render(self, info: EndpointInfo) -> str:
        parts = []
        if self.definition.name:
            parts.append(f"{self.definition.name.upper()} CONTEXT:\n")

        examples = self.definition.examples
        if examples:
            path = info.path.lower()
            method = info.method.upper()
            chosen = next((e for e in examples if _condition_holds(e.condition, path, method)), examples[0])
            parts.append(f"Example {chosen.name}:\n{chosen.json_text.rstrip()}\n")

        if self.definition.rules:
            parts.append("\nRules for your response:\n")
            parts.extend(f"- {rule}\n" for rule in self.definition.rules)

        return "".join(parts)


def load_block_file(file_path: Path) -> ExternalContextBlock:
    """Load a single definition file. Raises on unreadable or invalid content."""
    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"{file_path.name}: block definition must be a mapping")

    definition = ExternalBlockDefinition.model_validate(data)
    if not definition.id:
        definition = definition.model_copy(update={"id": f"external.{file_path.stem.lower()}"})
    return ExternalContextBlock(definition)


def load_external_blocks(blocks_dir: Path | str | None) -> list[ContextBlock]:
    """Load every block definition directly inside ``blocks_dir``; broken files are skipped."""
    if blocks_dir is None:
        return []
    directory = Path(blocks_dir)
    if not directory.is_dir():
        logger.info("External blocks directory %s does not exist, skipping", directory)
        return []

    blocks: list[ContextBlock] = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix.lower() not in BLOCK_SUFFIXES:
            continue
        try:
            block = load_block_file(path)
        except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
            logger.error("Failed to load block from file %s: %s", path, e)
            continue
        blocks.append(block)
        logger.info("Loaded external block '%s' from %s", block.id, path.name)

    logger.info("Loaded %d external context blocks from %s", len(blocks), directory)
    return blocks


def _matches(text: str, pattern: str) -> bool:
    if not text or not pattern:
        return False
    try:
        return re.search(pattern, text, re.IGNORECASE) is not None
    except re.error:
        logger.debug("Invalid block pattern: %s", pattern)
        return False


def _condition_holds(condition: str | None, path: str, method: str) -> bool:
    if not condition or not condition.strip():
        return True
    condition = condition.lower()
    if "path:" in condition:
        return condition.split("path:", 1)[1].strip() in path
    if "method:" in condition:
        return method.lower() == condition.split("method:", 1)[1].strip()
    return condition in path or method.lower() == condition.strip()
