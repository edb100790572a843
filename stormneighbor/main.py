"""
FastAPI application for the StormNeighbor location & search service
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .api.routes import posts, search
from .cache import cache
from .config import settings
from .exceptions import DatastoreError, StormNeighborError
from .infrastructure.database import db
from .schemas import HealthResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting StormNeighbor search service...")

    if settings.DATASTORE == "postgres":
        await db.connect()
        logger.info("Database connected")
    else:
        logger.info(f"Using {settings.DATASTORE} datastore")

    await cache.connect()
    logger.info("Redis cache initialized")

    logger.info(f"StormNeighbor search service started successfully on port {settings.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down StormNeighbor search service...")

    await cache.disconnect()
    await db.disconnect()

    logger.info("StormNeighbor search service shut down successfully")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Location-aware post feed, post search, saved searches and search telemetry",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StormNeighborError)
async def stormneighbor_error_handler(request: Request, exc: StormNeighborError):
    """Render domain errors as {success, code, message, errors?}"""
    message = exc.message
    if isinstance(exc, DatastoreError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        message = "Server error" if settings.is_production else f"Server error: {exc.message}"

    content = {"success": False, "code": exc.code, "message": message}
    if exc.details:
        content["errors"] = exc.details
    return JSONResponse(status_code=exc.status, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Render request-shape errors like any other validation failure"""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path")),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "code": "validation_error",
            "message": "Validation failed",
            "errors": errors,
        },
    )


app.include_router(posts.router)
app.include_router(search.router)


async def _datastore_status() -> str:
    if settings.DATASTORE != "postgres":
        return settings.DATASTORE
    return "connected" if await db.ping() else "unavailable"


@app.get("/", response_model=HealthResponse, tags=["Health"])
async def root():
    """Service information"""
    return HealthResponse(
        status="running",
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
        datastore=await _datastore_status(),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    datastore = await _datastore_status()
    return HealthResponse(
        status="healthy" if datastore != "unavailable" else "degraded",
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
        datastore=datastore,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "stormneighbor.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
