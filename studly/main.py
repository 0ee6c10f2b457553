"""Main FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from studly import __version__
from studly.api import billing, health, notes, recordings, usage
from studly.config import get_settings
from studly.db.session import init_db
from studly.errors import StudlyError
from studly.middleware.rate_limit import limiter

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting Studly API...")

    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Studly API started successfully")

    yield

    logger.info("Shutting down Studly API...")


app = FastAPI(
    title="Studly API",
    description="""
## Lecture recordings to exam-ready study notes

Students record a lecture, the audio is transcribed and turned into
structured notes with flashcards and exam tips.

### Pipeline
1. `POST /v1/recordings` uploads the audio
2. `POST /v1/recordings/{id}/process` submits it for transcription
3. `GET /v1/recordings/{id}/status` reports progress until notes are ready

### Plans
Recording hours are limited per month by the subscription plan
(Starter 5h, Pro 15h, Elite 30h). Limits reset on the 1st of each month.

### Authentication
Send the Supabase access token in the `Authorization` header:
```
Authorization: Bearer <access_token>
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StudlyError)
async def studly_exception_handler(request: Request, exc: StudlyError):
    """Render domain errors with their own status code."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "detail": exc.detail},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# Include routers
app.include_router(health.router)
app.include_router(recordings.router)
app.include_router(notes.router)
app.include_router(usage.router)
app.include_router(billing.router)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Studly API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "studly.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
