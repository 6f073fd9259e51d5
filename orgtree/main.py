"""Main FastAPI application entry point"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
import logging

from orgtree import __version__
from orgtree.api.errors import register_exception_handlers
from orgtree.api.health import router as health_router
from orgtree.api.organizations import router as organizations_router
from orgtree.config import settings
from orgtree.database import init_db

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"Organization Hierarchy API {__version__} started ({settings.environment})")
    yield


app = FastAPI(
    lifespan=lifespan,
    title="Organization Hierarchy API",
    description="Multi-tenant organization hierarchy with role assignments and JWT authentication",
    version=__version__,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", settings.tenant_header],
    max_age=3600,
)

# Session store backing tenant persistence between requests
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    session_cookie=settings.session_cookie,
    https_only=settings.environment == "production",
)

register_exception_handlers(app)

# Include routers
app.include_router(health_router)
app.include_router(organizations_router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "Organization Hierarchy API",
        "version": __version__,
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("orgtree.main:app", host=settings.api_host, port=settings.api_port)
