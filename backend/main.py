"""
Inbox Stats API - Main FastAPI Application
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from db import init_db
from schemas import HealthResponse

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan event handler for FastAPI application.
    Initializes the credentials database on startup.
    """
    logger.info("Starting up Inbox Stats API...")
    await init_db()
    logger.info("Database initialized successfully")

    yield

    logger.info("Shutting down Inbox Stats API...")


# Initialize FastAPI application
app = FastAPI(
    title="Inbox Stats API",
    version="1.0.0",
    description="Backfills Gmail history into Tinybird for inbox analytics",
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Basic error handling middleware
@app.middleware("http")
async def error_handling_middleware(request: Request, call_next):
    """
    Global error handling middleware.
    Catches unhandled exceptions and returns proper JSON responses.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc) if not settings.is_production() else "An unexpected error occurred",
            },
        )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint to verify API is running.
    """
    return HealthResponse(
        status="healthy",
        version="1.0.0",
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    return {
        "message": "Welcome to Inbox Stats API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# Import routers
from routers import auth, stats  # noqa: E402

app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(stats.router, prefix="/api/user/stats", tags=["Statistics"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production(),
        # Let an in-flight backfill finish on shutdown
        timeout_graceful_shutdown=settings.MAX_DURATION_SECONDS,
    )
