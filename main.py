import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from app.core.config import settings
from app.core.database import init_db
from app.core.logging_config import setup_logging
from app.core.middleware import RequestContextMiddleware
from app.web.routes import api_import, health

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables before serving requests."""
    await init_db()
    logger.info("%s started (env=%s)", settings.APP_NAME, settings.ENV)
    yield


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        description="Imports CSV and OFX bank statements into transactions",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)
    application.add_middleware(RequestContextMiddleware)

    application.include_router(api_import.router, prefix="/api", tags=["imports"])
    application.include_router(health.router, tags=["health"])
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
