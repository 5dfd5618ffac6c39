"""Data models for operations indexed from an OpenAPI specification.

The index converts every path/method pair into these models once at load
time; nothing downstream mutates them.
"""

from pydantic import BaseModel, ConfigDict


class Param(BaseModel):
    """A single declared operation parameter (query, path, header, or cookie)."""

    model_config = ConfigDict(frozen=True)

    name: str
    location: str  # query / path / header / cookie
    required: bool
    param_type: str  # string / integer / boolean / array / object
    description: str = ""
    constraints: dict = {}  # minimum, maximum, pattern, enum, etc.


class Endpoint(BaseModel):
    """One method + path template entry with its parameters and response table."""

    model_config = ConfigDict(frozen=True)

    method: str  # GET / POST / PUT / DELETE / PATCH
    path: str  # /pets/{petId}
    operation_id: str | None = None
    summary: str | None = None
    parameters: list[Param] = []
    responses: dict = {}  # {status_key: response descriptor}
    tags: list[str] = []
