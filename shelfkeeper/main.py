import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from shelfkeeper.config.logging import configure_logging
from shelfkeeper.config.settings import settings
from shelfkeeper.database import client as db_client
from shelfkeeper.features.auth.router import router as auth_router
from shelfkeeper.features.connector.router import router as connector_router
from shelfkeeper.features.oauth.clients import get_client_registry
from shelfkeeper.features.oauth.exceptions import OAuthException
from shelfkeeper.features.oauth.router import management_router as oauth_management_router
from shelfkeeper.features.oauth.router import router as oauth_router
from shelfkeeper.features.user.router import router as user_router
from shelfkeeper.shared.rate_limit import limiter, rate_limit_handler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    configure_logging(settings.log_level)
    await db_client.init_db()
    if settings.environment != "production":
        await db_client.create_tables()
    get_client_registry()
    yield
    # Shutdown
    await db_client.close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# Add rate limiting middleware
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_middleware(SlowAPIMiddleware)

cors_origins = settings.get_cors_origins()
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["Authorization", "Content-Type"],
    )


@app.exception_handler(OAuthException)
async def oauth_exception_handler(request: Request, exc: OAuthException) -> JSONResponse:
    """Render OAuth2 protocol errors in the RFC 6749 shape."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected server errors and hide their details from the caller."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Router Registration

# Routers under the API prefix
api_routers: list[APIRouter] = [
    auth_router,
    user_router,
    oauth_management_router,
    connector_router,
]

for router in api_routers:
    app.include_router(router, prefix=settings.api_prefix)

# OAuth2 protocol endpoints live at the root so client configuration stays short
app.include_router(oauth_router)


@app.get("/")
async def root():
    return {"message": "Shelfkeeper API", "status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
