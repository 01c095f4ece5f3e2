"""FastAPI entrypoint: settings, container, hardening middleware, routers and lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from time import perf_counter

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from setup_hud.api.http.events import router as events_router
from setup_hud.api.http.health import router as health_router
from setup_hud.api.http.webhook import router as webhook_router
from setup_hud.api.stream.ws import router as ws_router
from setup_hud.core.config import Settings
from setup_hud.core.container import AppContainer, build_container
from setup_hud.core.lifecycle import on_shutdown, on_startup
from setup_hud.infra.observability.logger import get_logger, setup_logging

access_logger = get_logger("setup_hud.access")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}


def create_app(
    settings: Settings | None = None,
    *,
    container: AppContainer | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        on_startup(container)
        try:
            yield
        finally:
            await on_shutdown(container)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

    _install_http_middleware(app)

    app.include_router(webhook_router)
    app.include_router(events_router)
    app.include_router(health_router)
    app.include_router(ws_router)

    return app


def _install_http_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def harden_and_log(request: Request, call_next):
        start = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            for name, value in SECURITY_HEADERS.items():
                response.headers.setdefault(name, value)
            return response
        finally:
            access_logger.info(
                "http.access client=%s method=%s path=%s status=%s duration_ms=%.2f",
                request.client.host if request.client else "-",
                request.method,
                request.url.path,
                status_code,
                (perf_counter() - start) * 1000,
            )


app = create_app()


def run() -> None:
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(
        "setup_hud.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
    )


if __name__ == "__main__":
    run()
