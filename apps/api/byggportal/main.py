"""
Byggportal API - Main Application Entry Point

FastAPI application for construction project collaboration: projects,
members, invitations and meeting protocols.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from byggportal.ai.router import router as ai_router
from byggportal.auth.router import router as auth_router
from byggportal.core.config import settings
from byggportal.core.database import init_db
from byggportal.core.errors import register_exception_handlers
from byggportal.projects.router import groups_router, invitations_router
from byggportal.projects.router import router as projects_router
from byggportal.protocols.router import router as protocols_router
from byggportal.protocols.router import templates_router

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info(f"Starting {settings.app_name} ({settings.environment})")
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    description="API för byggprojekt, medlemmar, inbjudningar och mötesprotokoll",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# Health Check
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


# Include Routers
app.include_router(projects_router, prefix="/api/v1")
app.include_router(groups_router, prefix="/api/v1")
app.include_router(invitations_router, prefix="/api/v1")
app.include_router(protocols_router, prefix="/api/v1")
app.include_router(templates_router, prefix="/api/v1")
app.include_router(auth_router, prefix="/api/v1/auth")
app.include_router(ai_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("byggportal.main:app", host="0.0.0.0", port=8000, reload=True)
