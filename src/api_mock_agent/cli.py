"""CLI entry point for api-mock-agent."""

import dataclasses
import json
import logging
import sys
from pathlib import Path

import click

from api_mock_agent.config import get_settings
from api_mock_agent.generator.prompt import BLOCK_BUDGET_CHARS, MAX_BLOCKS, MIN_BLOCK_SCORE, PromptBuilder
from api_mock_agent.models import SCENARIO_HEADER, STATUS_HEADER, MockRequest, Scenario
from api_mock_agent.parser.index import OpenApiIndex
from api_mock_agent.planner import ResponsePlanner
from api_mock_agent.skills.registry import ContextRegistry

SCENARIOS = [s.value for s in Scenario]


def _load_index(spec_path: Path) -> OpenApiIndex:
    index = OpenApiIndex()
    if not index.load_file(spec_path):
        for message in index.messages:
            click.echo(f"Error: {message}", err=True)
        sys.exit(1)
    return index


def _build_request(method: str, path: str, scenario: str, status: int | None, accept: str | None) -> MockRequest:
    path, _, query = path.partition("?")
    headers = {SCENARIO_HEADER: scenario}
    if status is not None:
        headers[STATUS_HEADER] = str(status)
    if accept:
        headers["accept"] = accept
    return MockRequest.build(method=method, path=path, query_string=query, headers=headers)


@click.group()
def main():
    """API Mock Agent — LLM-generated, schema-conformant responses for OpenAPI specs."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("spec_path", type=click.Path(exists=True, path_type=Path), required=False)
@click.option("--host", default="127.0.0.1", help="Interface to bind.")
@click.option("--port", default=8080, type=int, help="Port to listen on.")
@click.option("--model", default=None, help="LLM model to use.")
@click.option("--blocks-dir", default=None, type=click.Path(path_type=Path), help="Directory of external context blocks.")
def serve(spec_path: Path | None, host: str, port: int, model: str | None, blocks_dir: Path | None):
    """Serve mock responses for an OpenAPI specification."""
    import uvicorn

    from api_mock_agent.server import create_app
    from api_mock_agent.service import MockService

    settings = get_settings()
    overrides = {}
    if spec_path:
        overrides["spec_path"] = str(spec_path)
    if model:
        overrides["model"] = model
    if blocks_dir:
        overrides["blocks_dir"] = str(blocks_dir)
    settings = dataclasses.replace(settings, **overrides)

    service = MockService.from_settings(settings)
    spec = service.index.specification
    if spec is None:
        click.echo("No specification loaded; upload one with POST /admin/spec.")
        for message in service.index.messages:
            click.echo(f"  {message}", err=True)
    else:
        click.echo(f"Loaded '{spec.title}' with {spec.endpoint_count} operations.")

    click.echo(f"Mock endpoints available under http://{host}:{port}{settings.mount_prefix}/")
    uvicorn.run(create_app(service, settings), host=host, port=port)


@main.command()
@click.argument("spec_path", type=click.Path(exists=True, path_type=Path))
@click.argument("method")
@click.argument("path")
@click.option("--scenario", default="happy", type=click.Choice(SCENARIOS, case_sensitive=False), help="Response scenario.")
@click.option("--status", default=None, type=int, help="Force a status code.")
@click.option("--accept", default=None, help="Accept header to negotiate with.")
def plan(spec_path: Path, method: str, path: str, scenario: str, status: int | None, accept: str | None):
    """Show the response plan for a request without calling the model."""
    index = _load_index(spec_path)
    request = _build_request(method, path, scenario, status, accept)

    endpoint = index.resolve(request.method, request.path)
    if endpoint is None:
        click.echo(f"No matching endpoint for {request.method} {request.path}", err=True)
        sys.exit(1)

    result = ResponsePlanner(index).plan(endpoint, request.scenario, request)
    click.echo(result.model_dump_json(indent=2, exclude={"json_schema"}))


@main.command()
@click.argument("spec_path", type=click.Path(exists=True, path_type=Path))
@click.argument("method")
@click.argument("path")
@click.option("--blocks-dir", default=None, type=click.Path(path_type=Path), help="Directory of external context blocks.")
@click.option("--min-score", default=0.0, type=float, show_default=True, help="Hide blocks scoring below this.")
def blocks(spec_path: Path, method: str, path: str, blocks_dir: Path | None, min_score: float):
    """Rank context blocks for an endpoint and show which would be selected."""
    index = _load_index(spec_path)
    request = _build_request(method, path, "happy", None, None)

    endpoint = index.resolve(request.method, request.path)
    if endpoint is None:
        click.echo(f"No matching endpoint for {request.method} {request.path}", err=True)
        sys.exit(1)

    registry = ContextRegistry.with_external(blocks_dir or get_settings().blocks_dir)
    prompts = PromptBuilder(registry)
    info = prompts.endpoint_info(ResponsePlanner(index).plan(endpoint, request.scenario, request))
    selected = {b.id for b in registry.select(info, MAX_BLOCKS, MIN_BLOCK_SCORE, BLOCK_BUDGET_CHARS)}

    for block, score in registry.rank(info, min_score):
        marker = "*" if block.id in selected else " "
        click.echo(f"{marker} {score:.2f}  {block.id}")
    click.echo(json.dumps({"selected": sorted(selected)}))
