"""Askbox: Main FastAPI Application.

Anonymous questions and answers in Slack, with reaction voting and a
winner announced when the asker closes voting.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .api import api_router
from .core import ConfigurationError, close_db, get_settings, init_db, validate_startup
from .jobs import get_feed_poller
from .services.slack_client import close_http_client

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # Refuse to serve without Slack credentials; uvicorn exits non-zero
    validate_startup(settings)

    await init_db()

    poller = None
    if settings.feeds_enabled:
        poller = get_feed_poller()
        poller.start()

    logger.info(f"{settings.app_name} {settings.app_version} started ({settings.environment})")
    yield

    if poller is not None:
        await poller.stop()
    await close_http_client()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Askbox API

    Slack request URLs for anonymous questions, responses and reaction voting.

    - `POST /slack/commands`: the question slash command
    - `POST /slack/interactions`: Respond / Close Voting buttons and the response modal
    - `POST /slack/events`: reaction and uninstall events
    - `GET /slack/install`: add Askbox to a workspace
    """,
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "message": "An unexpected error occurred"},
    )


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


app.include_router(api_router)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def run() -> None:
    """Console entry point: validate configuration, then serve."""
    import uvicorn

    configure_logging(settings.log_level)

    try:
        validate_startup(settings)
    except ConfigurationError as e:
        for problem in e.problems:
            logger.error(f"Configuration error: {problem}")
        sys.exit(1)

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
