"""FastAPI application exposing the mock endpoints and a small admin API."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from api_mock_agent import __version__
from api_mock_agent.config import Settings, get_settings
from api_mock_agent.models import MockRequest
from api_mock_agent.service import EndpointNotFoundError, MockGenerationError, MockService

logger = logging.getLogger(__name__)

MOCK_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def create_app(service: MockService | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    service = service or MockService.from_settings(settings)
    mount = settings.mount_prefix

    app = FastAPI(title="API Mock Agent", version=__version__)
    app.state.service = service

    @app.exception_handler(EndpointNotFoundError)
    async def not_found(request: Request, exc: EndpointNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(MockGenerationError)
    async def generation_failed(request: Request, exc: MockGenerationError):
        return JSONResponse(
            status_code=500,
            content={"error": "Error generating mock response"},
            headers={"X-Mock-Scenario": exc.scenario.value},
        )

    @app.get("/health")
    async def health():
        spec = service.index.specification
        return {
            "status": "ok",
            "specLoaded": spec is not None,
            "endpoints": spec.endpoint_count if spec else 0,
        }

    @app.get("/admin/endpoints")
    async def list_endpoints():
        return [
            {"method": e.method, "path": e.path, "operationId": e.operation_id, "summary": e.summary}
            for e in service.index.endpoints()
        ]

    @app.post("/admin/spec")
    async def upload_spec(request: Request):
        text = (await request.body()).decode("utf-8", errors="replace")
        loaded = await run_in_threadpool(service.load_spec, text)
        if not loaded:
            return JSONResponse(status_code=400, content={"loaded": False, "messages": service.index.messages})
        spec = service.index.specification
        return {"loaded": True, "title": spec.title, "endpoints": spec.endpoint_count}

    @app.post("/admin/blocks/reload")
    async def reload_blocks():
        count = await run_in_threadpool(service.reload_blocks)
        return {"externalBlocks": count}

    @app.api_route(mount + "/{path:path}", methods=MOCK_METHODS)
    async def mock(path: str, request: Request):
        body = (await request.body()).decode("utf-8", errors="replace")
        mock_request = MockRequest.build(
            method=request.method,
            path="/" + path,
            query_string=request.url.query,
            headers=dict(request.headers),
            body=body,
        )
        logger.debug("Handling mock request: %s %s", mock_request.method, mock_request.path)

        # Generation and simulated latency block, so they run on a worker thread.
        result = await run_in_threadpool(service.generate, mock_request)
        return Response(content=result.body, status_code=result.status, headers=result.headers)

    return app
