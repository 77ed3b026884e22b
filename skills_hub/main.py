"""FastAPI application for the Skills Hub desktop backend."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from skills_hub.config import Settings, get_settings
from skills_hub.core.exceptions import AppException
from skills_hub.core.skill_hub import SkillHub
from skills_hub.database import create_database
from skills_hub.routers import git, local, onboarding, settings, skills, tools

logger = logging.getLogger(__name__)


def configure_logging(app_settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if app_settings.debug else app_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the application. Tests pass their own Settings pointing at temp directories."""
    app_settings = app_settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        hub = SkillHub(create_database(app_settings), app_settings)
        await hub.initialize()
        await hub.run_startup_maintenance()
        app.state.hub = hub
        yield
        logger.info("Skills hub shutting down")

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        debug=app_settings.debug,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppException, app_exception_handler)

    app.include_router(tools.router, prefix="/api/tools", tags=["tools"])
    app.include_router(onboarding.router, prefix="/api/onboarding", tags=["onboarding"])
    app.include_router(skills.router, prefix="/api/skills", tags=["skills"])
    app.include_router(local.router, prefix="/api/local", tags=["local"])
    app.include_router(git.router, prefix="/api/git", tags=["git"])
    app.include_router(settings.router, prefix="/api/settings", tags=["settings"])

    @app.get("/health")
    async def health(request: Request):
        healthy = await request.app.state.hub.db.health_check()
        return {"status": "healthy" if healthy else "degraded", "version": app_settings.app_version}

    return app


def run() -> None:
    """Console entry point: serve the API on the configured host and port."""
    app_settings = get_settings()
    configure_logging(app_settings)
    uvicorn.run(create_app(app_settings), host=app_settings.host, port=app_settings.port)


if __name__ == "__main__":
    run()
