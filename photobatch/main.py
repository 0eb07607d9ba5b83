import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from photobatch.config import get_settings
from photobatch.database import engine, Base, async_session_maker
from photobatch.errors import GenerationError
from photobatch.logging_config import configure_logging
from photobatch.routers import account, credits, generation, images, presets, webhooks
from photobatch.services import sessions
from photobatch.services.storage import storage

logger = logging.getLogger(__name__)
settings = get_settings()


async def sweep_sessions_forever(interval: float) -> None:
    """Finalize expired sessions until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            async with async_session_maker() as db:
                await sessions.sweep_expired_sessions(db)
        except Exception:
            logger.exception("Session sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    configure_logging(settings.log_level)

    # Create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Ensure local storage directories exist
    await storage.ensure_storage_exists()

    sweeper = asyncio.create_task(
        sweep_sessions_forever(settings.session_sweep_interval_seconds)
    )
    logger.info("%s started", settings.app_name)

    yield

    # Shutdown
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="""
    ## Photo Batch Generation API

    Turns one selfie into a batch of themed portraits. One credit buys one batch.

    ### How it works:

    1. **Reserve**: `POST /api/v1/generate/reserve` spends one credit (free credits first)
       and opens a short-lived session for the batch.

    2. **Generate**: `POST /api/v1/generate/variation` once per image index. Variations run
       independently and in any order; a failed variation can be retried while the
       session is open and never costs another credit.

    3. **Gallery**: the generation record fills in slot by slot and is complete once every
       variation has landed.

    ### Presets:
    - mapleAutumn, winterWonderland, northernLights, cottageLife, urbanCanada
    - wildernessExplorer, editorialCanada, canadianWildlifeParty, ehEdition, withus
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount static files for serving stored images
storage_path = Path(settings.storage_path)
storage_path.mkdir(parents=True, exist_ok=True)
app.mount(settings.public_base_url, StaticFiles(directory=str(storage_path)), name="files")


@app.exception_handler(GenerationError)
async def generation_exception_handler(request: Request, exc: GenerationError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc) if settings.debug else "Internal server error",
            "code": "INTERNAL_ERROR",
            "type": type(exc).__name__,
        },
    )


# Include routers
app.include_router(generation.router, prefix="/api/v1")
app.include_router(presets.router, prefix="/api/v1")
app.include_router(credits.router, prefix="/api/v1")
app.include_router(images.router, prefix="/api/v1")
app.include_router(account.router, prefix="/api/v1")
app.include_router(webhooks.router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "reserve": "POST /api/v1/generate/reserve",
            "generate_variation": "POST /api/v1/generate/variation",
            "generate_batch": "POST /api/v1/generate/batch",
            "get_generation": "GET /api/v1/generate/{generation_id}?user_id=",
            "generation_history": "GET /api/v1/generate/history/{user_id}",
            "presets": "GET /api/v1/presets",
            "credits": "GET /api/v1/credits/{user_id}",
            "public_feed": "GET /api/v1/images/feed",
            "revenuecat_webhook": "POST /api/v1/webhooks/revenuecat",
        }
    }
