"""Studio API router."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from angle_studio.models.generation import (
    ANGLE_X_TABLE,
    ANGLE_Y_TABLE,
    Expression,
    GenerationConfig,
    OutputResolution,
    SubjectType,
)
from angle_studio.models.studio import (
    GeneratedImageView,
    LogEntry,
    OptimizedImageView,
    OptimizeRequest,
    PromptResponse,
    ReferenceUploadRequest,
    ReferenceView,
    SelectionRequest,
    StudioStateResponse,
    to_data_url,
)
from angle_studio.services.image import ImageGenerationError
from angle_studio.services.prompt import build_generation_prompt
from angle_studio.services.studio import (
    EmptySelectionError,
    ImageNotFoundError,
    ImageServiceUnavailableError,
    InvalidDataUrlError,
    MissingReferenceError,
    StudioError,
    StudioService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/studio", tags=["studio"])

_STATUS_CODES: dict[type[StudioError], int] = {
    MissingReferenceError: 409,
    ImageNotFoundError: 404,
    EmptySelectionError: 400,
    InvalidDataUrlError: 422,
    ImageServiceUnavailableError: 503,
}


def get_studio_service(request: Request) -> StudioService:
    """FastAPI dependency: retrieve StudioService from app.state.

    Returns HTTP 503 if the service was not initialized at startup.
    """
    svc: Optional[StudioService] = getattr(request.app.state, "studio_service", None)
    if svc is None:
        raise HTTPException(status_code=503, detail="Studio service not initialized.")
    return svc


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ImageGenerationError):
        logger.error(
            "Image model call failed",
            exc_info=True,
            extra={"service": "StudioRouter", "error_type": type(exc).__name__},
        )
        return HTTPException(status_code=502, detail=str(exc))
    status = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 400
    )
    logger.warning(
        "Studio request rejected (%d): %s",
        status,
        exc,
        exc_info=True,
        extra={"service": "StudioRouter", "error_type": type(exc).__name__},
    )
    return HTTPException(status_code=status, detail=str(exc))


def _reference_view(service: StudioService) -> Optional[ReferenceView]:
    ref = service.reference
    if ref is None:
        return None
    return ReferenceView(src=to_data_url(ref.mime_type, ref.data), width=ref.width, height=ref.height)


@router.get("/options")
async def get_options() -> dict:
    """Enumerated choices for the control panel, with labels and degrees."""
    return {
        "horizontal_angles": [
            {"value": angle.value, "label": label, "degrees": degrees}
            for angle, (label, degrees) in ANGLE_X_TABLE.items()
        ],
        "vertical_angles": [
            {"value": angle.value, "label": label, "degrees": degrees}
            for angle, (label, degrees) in ANGLE_Y_TABLE.items()
        ],
        "expressions": [e.value for e in Expression],
        "subject_types": [
            {"value": s.value, "humanoid": s.is_humanoid} for s in SubjectType
        ],
        "output_resolutions": [r.value for r in OutputResolution],
        "defaults": GenerationConfig().model_dump(mode="json"),
    }


@router.post("/prompt", response_model=PromptResponse)
async def preview_prompt(config: GenerationConfig) -> PromptResponse:
    """Return the prompt that would be sent for this configuration."""
    return PromptResponse(prompt=build_generation_prompt(config))


@router.get("/state", response_model=StudioStateResponse)
async def get_state(
    service: StudioService = Depends(get_studio_service),
) -> StudioStateResponse:
    return StudioStateResponse(
        reference=_reference_view(service),
        generated=[GeneratedImageView.from_record(img) for img in service.generated],
        optimized=[OptimizedImageView.from_record(img) for img in service.optimized],
        selected_optimized_id=service.selected_optimized_id,
        selected_image_ids=service.selected_ids_in_order(),
        last_prompt=service.last_prompt,
    )


@router.put("/reference", response_model=ReferenceView)
async def upload_reference(
    body: ReferenceUploadRequest,
    service: StudioService = Depends(get_studio_service),
) -> ReferenceView:
    """Set a new reference image. Clears both galleries and the selection."""
    try:
        service.upload_reference(body.data_url, body.width, body.height)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return _reference_view(service)  # type: ignore[return-value]


@router.post("/reference/from-optimized", response_model=ReferenceView)
async def use_optimized_as_reference(
    service: StudioService = Depends(get_studio_service),
) -> ReferenceView:
    try:
        service.use_optimized_as_reference()
    except StudioError as exc:
        raise _http_error(exc) from exc
    return _reference_view(service)  # type: ignore[return-value]


@router.post("/reference/from-generated/{image_id}", response_model=ReferenceView)
async def use_generated_as_reference(
    image_id: str,
    service: StudioService = Depends(get_studio_service),
) -> ReferenceView:
    try:
        service.use_generated_as_reference(image_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return _reference_view(service)  # type: ignore[return-value]


@router.post("/generate", response_model=GeneratedImageView)
def generate(
    config: GenerationConfig,
    service: StudioService = Depends(get_studio_service),
) -> GeneratedImageView:
    """Generate one variation from the selected optimized image or the reference.

    Raises:
        HTTPException 409: No reference image.
        HTTPException 502: The image model failed.
        HTTPException 503: No model credentials configured.
    """
    try:
        image = service.generate(config)
    except (StudioError, ImageGenerationError) as exc:
        raise _http_error(exc) from exc
    return GeneratedImageView.from_record(image)


@router.post("/optimize", response_model=OptimizedImageView)
def optimize(
    body: OptimizeRequest,
    service: StudioService = Depends(get_studio_service),
) -> OptimizedImageView:
    """Outfill, recentre and gray-background the reference image."""
    try:
        image = service.optimize(body.output_resolution)
    except (StudioError, ImageGenerationError) as exc:
        raise _http_error(exc) from exc
    return OptimizedImageView.from_record(image)


@router.post("/optimized/{image_id}/toggle")
async def toggle_optimized(
    image_id: str,
    service: StudioService = Depends(get_studio_service),
) -> dict:
    try:
        selected = service.toggle_optimized(image_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return {"selected_optimized_id": selected.id if selected else None}


@router.delete("/generated/{image_id}", status_code=204)
async def delete_generated(
    image_id: str,
    service: StudioService = Depends(get_studio_service),
) -> Response:
    try:
        service.delete_generated(image_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@router.post("/selection")
async def update_selection(
    body: SelectionRequest,
    service: StudioService = Depends(get_studio_service),
) -> dict:
    try:
        selected = service.update_selection(body.action, body.image_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return {"selected_image_ids": selected}


@router.get("/logs", response_model=list[LogEntry])
async def get_logs(
    limit: int = Query(100, ge=0),
    service: StudioService = Depends(get_studio_service),
) -> list[LogEntry]:
    """Activity log, newest first."""
    return service.logs[:limit]


@router.get("/download")
async def download_selected(
    service: StudioService = Depends(get_studio_service),
) -> Response:
    """Zip archive of the selected generated images."""
    try:
        filename, payload = service.export_selected_zip()
    except StudioError as exc:
        raise _http_error(exc) from exc
    return Response(
        content=payload,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
