"""
Camera Trap Species Identification API

Proposes a wildlife species for a camera trap photograph using a
vision-language model. Every proposal is meant to be confirmed or
rejected by a person; `needs_review` marks the ones that must be.

Run locally:
    uvicorn app.main:app --reload

Run behind gunicorn:
    gunicorn app.main:app -k uvicorn.workers.UvicornWorker -w 4
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.exceptions import IdentificationError, InputError
from app.api.routes import identify_router, health_router
from app.api.routes.health import set_startup_time
from app.ml.taxonomy_registry import get_taxonomy_registry

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Load the species list before serving and warn about missing credentials.

    A missing API key does not stop startup: /health stays up and
    /identify answers with a configuration error until a key is set.
    """
    set_startup_time()

    registry = get_taxonomy_registry()
    logger.info(f"Serving {settings.app_name} {settings.app_version} with {len(registry)} species")

    if not settings.resolved_api_key():
        logger.warning("No vision model API key configured; /identify will fail with HTTP 500")

    yield

    logger.info("Camera trap identification service stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
Proposes a species for an uploaded camera trap image.

1. **Image gate**: is an animal present, and is the image good enough?
2. **Identification**: grounded in the gate's findings, answered from the station species list only
3. **Calibration**: confidence reduced for infrared, flash and partial views; low or ambiguous results flagged for review

Endpoints: `POST /identify`, `GET /identify/species`, `GET /health`, `GET /health/ready`.
    """,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # the upload/review UI is served from another origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IdentificationError)
async def identification_exception_handler(request: Request, exc: IdentificationError):
    """Service errors raised outside the route handlers."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies get the same 400 envelope as a bad image."""
    logger.warning(f"Request validation failed: {exc.errors()}")
    error = InputError("Request body must be a JSON object with an 'image' field")
    return JSONResponse(status_code=error.status_code, content=error.to_envelope())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    message = str(exc) if settings.debug else "An unexpected error occurred. Please try again."
    return JSONResponse(status_code=500, content={"success": False, "error": message})


app.include_router(health_router, prefix=settings.api_prefix)
app.include_router(identify_router, prefix=settings.api_prefix)


@app.get("/", tags=["Root"])
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "documentation": "/docs",
        "health_check": f"{settings.api_prefix}/health",
        "identify_endpoint": f"{settings.api_prefix}/identify",
        "species_endpoint": f"{settings.api_prefix}/identify/species",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
