from __future__ import annotations

import argparse
import contextlib
import logging
import os
import shutil
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import uvicorn
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from move_web_compiler import __version__
from move_web_compiler.config import Settings
from move_web_compiler.constants import DEFAULT_SOURCE_FILE_NAME
from move_web_compiler.errors import CommandValidationError, SpawnError
from move_web_compiler.logging import EventLog, configure_logging
from move_web_compiler.metrics import ACTIVE_JOBS, MetricsMiddleware, record_command, record_compile
from move_web_compiler.pipeline import CompileRequest, CompileService
from move_web_compiler.proxy import (
    CommandProxy,
    Spawner,
    render_deploy_response,
    render_test_response,
    subprocess_spawn,
)
from move_web_compiler.schema import parse_command_request, parse_compile_request
from move_web_compiler.toolchain import Toolchain

logger = logging.getLogger(__name__)


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        # JSONDecodeError and UnicodeDecodeError
        raise ValueError(f"Invalid JSON: {e}") from e


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=400)


def _command_status(error_kind: str | None) -> int:
    if error_kind == CommandValidationError.__name__:
        return 400
    if error_kind == SpawnError.__name__:
        return 500
    return 200


def build_app(
    settings: Settings,
    *,
    toolchain: Toolchain | None = None,
    spawn: Spawner | None = None,
) -> Starlette:
    """
    Build the HTTP facade.

    `toolchain` and `spawn` replace the Sui CLI collaborators (used by tests).
    """
    executor = ThreadPoolExecutor(max_workers=settings.worker_threads, thread_name_prefix="mwc-worker")
    event_log = EventLog(base_dir=settings.event_log_dir) if settings.event_log_dir else None
    service = CompileService.from_settings(settings, toolchain=toolchain, event_log=event_log)
    proxy = CommandProxy(settings.sui_bin, spawn or subprocess_spawn, event_log=event_log)

    async def compile_endpoint(request: Request) -> JSONResponse:
        """
        POST /api/compile
        Body: {"source_code": "...", "file_name": "hello.move", "address_config": "[addresses]..."}

        Build failures are reported with 200 and success=false.
        """
        try:
            body = parse_compile_request(await _read_json(request))
        except ValueError as e:
            return _bad_request(str(e))

        address_config = body.get("address_config")
        logger.info(
            f"Compile request: file={body.get('file_name')!r}, "
            f"address_config={'default' if address_config is None else 'provided'}"
        )
        req = CompileRequest(
            source_code=body["source_code"],
            file_name=body.get("file_name") or DEFAULT_SOURCE_FILE_NAME,
            address_config=address_config,
        )
        ACTIVE_JOBS.inc()
        try:
            result = await service.compile_async(req, executor)
        finally:
            ACTIVE_JOBS.dec()
        record_compile(result.success, result.error_kind, result.elapsed_ms)
        if result.success:
            logger.info(f"Compile succeeded: {len(result.encoded_modules)} module(s)")
        else:
            logger.info(f"Compile failed: {result.error_kind}")
        return JSONResponse(result.to_dict())

    async def _run_command(request: Request, *, endpoint: str, deploy: bool) -> JSONResponse:
        try:
            body = parse_command_request(await _read_json(request))
        except ValueError as e:
            return _bad_request(str(e))

        logger.info(f"{endpoint} request: {body['command']}")
        ACTIVE_JOBS.inc()
        try:
            result = await proxy.run_async(body["command"], executor, extract_identifier=deploy)
        finally:
            ACTIVE_JOBS.dec()
        record_command(endpoint, result.success, result.error_kind)
        payload = render_deploy_response(result) if deploy else render_test_response(result)
        return JSONResponse(payload, status_code=_command_status(result.error_kind))

    async def deploy_endpoint(request: Request) -> JSONResponse:
        """POST /api/deploy  Body: {"command": "sui client publish ..."}"""
        return await _run_command(request, endpoint="deploy", deploy=True)

    async def test_endpoint(request: Request) -> JSONResponse:
        """POST /api/test  Body: {"command": "sui move test ..."}"""
        return await _run_command(request, endpoint="test", deploy=False)

    async def health(request: Request) -> JSONResponse:
        sui_path = shutil.which(settings.sui_bin)
        root = settings.workspace_root
        root_ok = root.is_dir() and os.access(root, os.W_OK)
        status = {
            "status": "ok" if sui_path and root_ok else "degraded",
            "sui": {"bin": settings.sui_bin, "path": sui_path, "found": sui_path is not None},
            "workspace_root": {"path": str(root), "writable": root_ok},
        }
        return JSONResponse(status, status_code=200 if status["status"] == "ok" else 503)

    async def info(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "version": __version__,
                "limits": {"worker_threads": settings.worker_threads},
                "include_unpublished": settings.include_unpublished,
                "endpoints": {
                    "compile": "/api/compile (POST)",
                    "deploy": "/api/deploy (POST)",
                    "test": "/api/test (POST)",
                    "health": "/health",
                    "info": "/info",
                    "metrics": "/metrics",
                },
            }
        )

    async def metrics(request: Request) -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    routes: list[Any] = [
        Route("/api/compile", compile_endpoint, methods=["POST"]),
        Route("/api/deploy", deploy_endpoint, methods=["POST"]),
        Route("/api/test", test_endpoint, methods=["POST"]),
        Route("/health", health),
        Route("/info", info),
        Route("/metrics", metrics),
    ]
    if settings.static_dir.is_dir():
        routes.append(Mount("/", app=StaticFiles(directory=settings.static_dir, html=True), name="static"))
    else:
        logger.info(f"Static directory {settings.static_dir} not found; serving API only")

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        executor.shutdown(wait=False, cancel_futures=True)

    middleware = [
        Middleware(MetricsMiddleware),
        Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]),
    ]
    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.settings = settings
    app.state.executor = executor
    app.state.service = service
    app.state.proxy = proxy
    return app


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(description="Move web compiler HTTP server")
    p.add_argument("--host", type=str, default=None)
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--env-file", type=Path, default=Path(".env"))
    args = p.parse_args(argv)

    settings = Settings.from_env(os.environ, dotenv_path=args.env_file)
    configure_logging(settings.log_level)
    serve(settings, host=args.host, port=args.port)


def serve(settings: Settings, *, host: str | None = None, port: int | None = None) -> None:
    host = host or settings.host
    port = port or settings.port
    logger.info(f"Starting Move web compiler on {host}:{port} (workspaces under {settings.workspace_root})")
    app = build_app(settings)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
