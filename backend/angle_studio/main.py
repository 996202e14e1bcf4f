"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from angle_studio.core.config import get_settings
from angle_studio.core.logging import setup_logging

# Setup logging
logger = setup_logging("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the in-memory studio session at startup."""
    from angle_studio.services.image import ImageGenerationService
    from angle_studio.services.studio import StudioService

    settings = get_settings()
    image_service = None
    if settings.image_service_configured:
        image_service = ImageGenerationService(
            api_key=settings.gemini_api_key,
            project_id=settings.gcp_project_id,
            location=settings.vertex_ai_location,
            model=settings.image_model,
        )
    else:
        logger.warning(
            "No GEMINI_API_KEY or GCP_PROJECT_ID set; generation endpoints will return 503"
        )

    # Tests may install their own service before startup.
    if getattr(app.state, "studio_service", None) is None:
        app.state.studio_service = StudioService(
            image_service=image_service,
            max_optimized_images=settings.max_optimized_images,
        )
    logger.info("Studio service initialized")

    yield


# Create FastAPI app
app = FastAPI(
    title="Angle Studio",
    description="Generate angle and expression variants of a reference image with Gemini",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[f"http://localhost:{settings.frontend_port}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
from angle_studio.api.studio import router as studio_router  # noqa: E402

app.include_router(studio_router)


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Always returns HTTP 200; `services.image_generation` reports whether
    model credentials are configured.
    """
    svc = getattr(request.app.state, "studio_service", None)
    image_ok = svc is not None and svc.image_service is not None

    logger.info("Health check requested")
    return {
        "status": "ok",
        "version": app.version,
        "services": {
            "studio": "ok" if svc is not None else "unavailable",
            "image_generation": "ok" if image_ok else "unavailable",
        },
    }
