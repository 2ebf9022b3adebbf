"""
main.py
-------
Entry point for the antennes API.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Start the RabbitMQ event publisher.
    - Build the FastAPI application with all routers and error handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import CORS_ORIGINS, PORT, SERVICE_NAME
from db.connection import close_pool, init_pool
from db.init_db import create_tables
from handlers import antenne_handler, health_handler
from services.antenne_service import AntenneService
from services.event_publisher import EventPublisher
from utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Acquire the pool and the publisher on startup, release them on shutdown."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    create_tables()

    # ── 2. Event publisher (connects in the background) ───
    publisher = EventPublisher()
    publisher.start()

    # ── 3. Services ───────────────────────────────────────
    app.state.event_publisher = publisher
    app.state.antenne_service = AntenneService(publisher)
    logger.info(f"API Antennes running on port {PORT}")

    yield

    # ── 4. Cleanup on shutdown ────────────────────────────
    logger.info("Shutting down gracefully...")
    publisher.close()
    close_pool()


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(title=SERVICE_NAME, version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_handler.router, tags=["health"])
    app.include_router(antenne_handler.router, prefix="/api/antennes", tags=["antennes"])

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Route non trouvée" if exc.status_code == 404 else exc.detail
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Erreur interne du serveur"},
        )

    return app


app = create_app()


def main() -> None:
    """Run the API with uvicorn."""
    uvicorn.run(app, host="0.0.0.0", port=PORT)


if __name__ == "__main__":
    main()
