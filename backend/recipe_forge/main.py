"""Recipe Forge — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recipe_forge.api.v1.admin import router as admin_router
from recipe_forge.api.v1.auth import router as auth_router
from recipe_forge.api.v1.community import router as community_router
from recipe_forge.api.v1.recipes import router as recipes_router
from recipe_forge.api.v1.subscriptions import router as subscriptions_router
from recipe_forge.config import settings

# Configure root logger so all recipe_forge.* loggers output to stderr.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    yield
    # Shutdown: dispose engine connections
    from recipe_forge.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Recipe generation and community platform with plan-based usage quotas.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router)
app.include_router(subscriptions_router)
app.include_router(recipes_router)
app.include_router(community_router)
app.include_router(admin_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
