"""FastAPI 应用入口：初始化生命周期、中间件、健康检查与路由挂载。"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from verifyhub.api.router import api_router
from verifyhub.api.v1.events import router as events_router
from verifyhub.application.container import get_health_probe, shutdown_container_resources
from verifyhub.config import get_settings
from verifyhub.infra.logging.context import bind_log_context
from verifyhub.infra.logging.setup import configure_logging, shutdown_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期：启动时探测编译产物（失败不阻断），关闭时释放依赖资源。"""
    settings = get_settings()
    configure_logging(settings, process_role="api")
    logger.info("api startup begin", extra={"event": "api.startup.started"})
    await get_health_probe().initialize(settings.health_check_timeout_seconds)
    logger.info("api startup ready", extra={"event": "api.startup.succeeded"})
    try:
        yield
    finally:
        logger.info("api shutdown begin", extra={"event": "api.shutdown.started"})
        await shutdown_container_resources()
        shutdown_logging()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    if settings.cors_allowed_origins_list():
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allowed_origins_list(),
            allow_methods=settings.cors_allowed_methods_list(),
            allow_headers=settings.cors_allowed_headers_list(),
            allow_credentials=settings.cors_allow_credentials,
        )

    @app.middleware("http")
    async def attach_request_id(request: Request, call_next):
        """透传或生成 X-Request-Id，并回写到响应头。"""
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        started = time.perf_counter()
        with bind_log_context(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = round((time.perf_counter() - started) * 1000, 2)
                logger.exception(
                    "http request failed",
                    extra={
                        "event": "http.request.failed",
                        "op": f"{request.method} {request.url.path}",
                        "duration_ms": duration_ms,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                raise
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.info(
                "http request completed",
                extra={
                    "event": "http.request.completed",
                    "op": f"{request.method} {request.url.path}",
                    "duration_ms": duration_ms,
                    "status_code": response.status_code,
                },
            )
        response.headers["X-Request-Id"] = request_id
        return response

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(api_router)
    app.include_router(events_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("verifyhub.main:app", host=settings.server_host, port=settings.server_port)
