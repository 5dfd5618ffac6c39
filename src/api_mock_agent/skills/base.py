"""Context block interface — scored, renderable units of domain guidance."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class EndpointInfo:
    """The endpoint facts blocks score and render against (all already minified/sanitized)."""

    path: str = ""
    operation_id: str = ""
    method: str = ""
    json_schema: str = ""
    request_context: str = ""


class ContextBlock(ABC):
    """A piece of domain guidance that can judge its own relevance to an endpoint."""

    @property
    @abstractmethod
    def id(self) -> str:
        ...

    @abstractmethod
    def score(self, info: EndpointInfo) -> float:
        """Relevance in [0, 1]."""

    @abstractmethod
    def render(self, info: EndpointInfo) -> str:
        """Guidance text to embed in the prompt."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"
