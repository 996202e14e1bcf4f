"""StudioService: in-memory session state for one user of the studio.

Holds the reference image, the generated gallery, optimized reference
candidates, the download selection and the activity log. Nothing is written
to disk; restarting the server starts a fresh session.
"""
import base64
import binascii
import io
import re
import uuid
import zipfile
from datetime import datetime, timezone
from typing import Optional

from angle_studio.core.logging import setup_logging
from angle_studio.models.generation import GenerationConfig, OutputResolution, parse_resolution
from angle_studio.models.studio import (
    GeneratedImage,
    LogEntry,
    LogType,
    OptimizedImage,
    ReferenceImage,
)
from angle_studio.services.image import ImageGenerationError, ImageGenerationService

logger = setup_logging("studio")

DEFAULT_MAX_OPTIMIZED_IMAGES = 9

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)


class StudioError(Exception):
    """Base class for session errors the API maps to HTTP status codes."""


class MissingReferenceError(StudioError):
    pass


class ImageNotFoundError(StudioError):
    pass


class EmptySelectionError(StudioError):
    pass


class InvalidDataUrlError(StudioError, ValueError):
    pass


class ImageServiceUnavailableError(StudioError):
    pass


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    """Split a base64 `data:` URL into (mime type, raw bytes).

    Raises:
        InvalidDataUrlError: When the URL is not a base64 data URL.
    """
    match = _DATA_URL_RE.match(data_url.strip())
    if match is None:
        raise InvalidDataUrlError("Invalid data URL format")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidDataUrlError("Invalid base64 payload in data URL") from exc
    return match.group("mime"), data


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StudioService:
    """Session state and the operations the UI performs on it.

    Galleries are kept newest first. The selection always stays a subset of
    the generated gallery.
    """

    def __init__(
        self,
        image_service: Optional[ImageGenerationService] = None,
        max_optimized_images: int = DEFAULT_MAX_OPTIMIZED_IMAGES,
    ) -> None:
        self.image_service = image_service
        self.max_optimized_images = max_optimized_images
        self.reference: Optional[ReferenceImage] = None
        self.generated: list[GeneratedImage] = []
        self.optimized: list[OptimizedImage] = []
        self.selected_optimized_id: Optional[str] = None
        self.selected_image_ids: set[str] = set()
        self.last_prompt: str = ""
        self.logs: list[LogEntry] = []

    # -- activity log -------------------------------------------------------

    def add_log(self, type_: LogType, message: str) -> None:
        self.logs.insert(0, LogEntry(timestamp=_now(), type=type_, message=message))
        if type_ == LogType.error:
            logger.warning(message)
        else:
            logger.info(message)

    # -- reference ----------------------------------------------------------

    def upload_reference(self, data_url: str, width: int, height: int) -> ReferenceImage:
        """Replace the reference image and reset everything derived from it."""
        mime_type, data = parse_data_url(data_url)
        self.reference = ReferenceImage(mime_type=mime_type, data=data, width=width, height=height)
        self.generated = []
        self.optimized = []
        self.selected_optimized_id = None
        self.selected_image_ids = set()
        self.add_log(LogType.success, f"Reference image uploaded ({self.reference.resolution}).")
        return self.reference

    @property
    def selected_optimized(self) -> Optional[OptimizedImage]:
        if self.selected_optimized_id is None:
            return None
        return next((img for img in self.optimized if img.id == self.selected_optimized_id), None)

    def _source_image(self) -> tuple[bytes, str]:
        """Image to generate from: the selected optimized candidate, else the reference."""
        selected = self.selected_optimized
        if selected is not None:
            return selected.data, selected.mime_type
        if self.reference is None:
            raise MissingReferenceError("Please upload a reference image first.")
        return self.reference.data, self.reference.mime_type

    def _require_image_service(self) -> ImageGenerationService:
        if self.image_service is None:
            raise ImageServiceUnavailableError("Image generation service is not configured.")
        return self.image_service

    def use_optimized_as_reference(self) -> ReferenceImage:
        """Promote the selected optimized candidate to the reference image."""
        selected = self.selected_optimized
        if selected is None:
            raise ImageNotFoundError("No optimized image is selected.")
        width, height = selected.width, selected.height
        self.reference = ReferenceImage(
            mime_type=selected.mime_type, data=selected.data, width=width, height=height
        )
        self.selected_optimized_id = None
        self.add_log(
            LogType.info, f"Set optimized version as new reference ({width}x{height})."
        )
        return self.reference

    def use_generated_as_reference(self, image_id: str) -> ReferenceImage:
        """Promote a generated variation to the reference image."""
        image = self._find_generated(image_id)
        width, height = parse_resolution(image.config.output_resolution)
        self.reference = ReferenceImage(
            mime_type=image.mime_type, data=image.data, width=width, height=height
        )
        self.selected_optimized_id = None
        self.add_log(LogType.info, f"Set generated image as new reference ({width}x{height}).")
        return self.reference

    # -- generation ---------------------------------------------------------

    def generate(self, config: GenerationConfig) -> GeneratedImage:
        """Generate one variation and add it to the front of the gallery.

        Raises:
            MissingReferenceError: No reference image has been uploaded.
            ImageServiceUnavailableError: No model credentials are configured.
            ImageGenerationError: The model call failed (logged as an error entry).
        """
        try:
            image_bytes, mime_type = self._source_image()
        except MissingReferenceError:
            self.add_log(LogType.error, "Cannot generate: Please upload a reference image first.")
            raise
        service = self._require_image_service()

        self.add_log(
            LogType.info,
            f"Generating {config.output_resolution.value} image with angle: "
            f"{config.horizontal_angle.value}, {config.vertical_angle.value}...",
        )
        try:
            result = service.generate_variation(image_bytes, mime_type, config)
        except ImageGenerationError as exc:
            self.add_log(LogType.error, str(exc))
            raise

        self.last_prompt = result.prompt
        # Keep our own copy of the config with the record.
        image = GeneratedImage(
            id=uuid.uuid4().hex,
            mime_type=result.mime_type,
            data=result.data,
            config=config.model_copy(),
            prompt=result.prompt,
            created_at=_now(),
        )
        self.generated.insert(0, image)
        self.add_log(LogType.success, "Image generated successfully.")
        return image

    def optimize(self, output_resolution: OutputResolution) -> OptimizedImage:
        """Produce a cleaned-up reference candidate from the current reference.

        Raises:
            MissingReferenceError: No reference image has been uploaded.
            ImageServiceUnavailableError: No model credentials are configured.
            ImageGenerationError: The model call failed.
        """
        if self.reference is None:
            raise MissingReferenceError("Please upload a reference image first.")
        service = self._require_image_service()

        self.add_log(
            LogType.info, f"Optimizing reference image to {output_resolution.value}..."
        )
        try:
            result = service.optimize_reference(
                self.reference.data, self.reference.mime_type, output_resolution
            )
        except ImageGenerationError as exc:
            self.add_log(LogType.error, str(exc))
            raise

        self.last_prompt = result.prompt
        width, height = parse_resolution(output_resolution)
        image = OptimizedImage(
            id=uuid.uuid4().hex,
            mime_type=result.mime_type,
            data=result.data,
            width=width,
            height=height,
            prompt=result.prompt,
            created_at=_now(),
        )
        self.optimized = [image, *self.optimized][: self.max_optimized_images]
        # The selected candidate may have been pushed out by the cap.
        if self.selected_optimized is None:
            self.selected_optimized_id = None
        self.add_log(LogType.success, "Reference image optimized.")
        return image

    def toggle_optimized(self, image_id: str) -> Optional[OptimizedImage]:
        """Select an optimized candidate, or deselect it if already selected."""
        if not any(img.id == image_id for img in self.optimized):
            raise ImageNotFoundError(f"Optimized image {image_id} not found.")
        if self.selected_optimized_id == image_id:
            self.selected_optimized_id = None
        else:
            self.selected_optimized_id = image_id
        return self.selected_optimized

    # -- gallery ------------------------------------------------------------

    def _find_generated(self, image_id: str) -> GeneratedImage:
        for image in self.generated:
            if image.id == image_id:
                return image
        raise ImageNotFoundError(f"Generated image {image_id} not found.")

    def delete_generated(self, image_id: str) -> None:
        self._find_generated(image_id)
        self.generated = [img for img in self.generated if img.id != image_id]
        self.selected_image_ids.discard(image_id)
        self.add_log(LogType.info, "Generated image removed.")

    def update_selection(self, action: str, image_id: Optional[str] = None) -> list[str]:
        """Apply a selection action and return the selected ids in gallery order.

        Actions: "toggle" (requires image_id), "all", "none", "invert".
        """
        all_ids = {img.id for img in self.generated}
        if action == "toggle":
            if image_id is None or image_id not in all_ids:
                raise ImageNotFoundError(f"Generated image {image_id} not found.")
            self.selected_image_ids ^= {image_id}
        elif action == "all":
            self.selected_image_ids = set(all_ids)
        elif action == "none":
            self.selected_image_ids = set()
        elif action == "invert":
            self.selected_image_ids = all_ids - self.selected_image_ids
        else:
            raise ValueError(f"Unknown selection action: {action}")
        return self.selected_ids_in_order()

    def selected_ids_in_order(self) -> list[str]:
        return [img.id for img in self.generated if img.id in self.selected_image_ids]

    def export_selected_zip(self) -> tuple[str, bytes]:
        """Pack the selected images into a zip archive.

        Returns:
            (download filename, zip bytes). Entries are named
            `generated-image-{id}.png`.

        Raises:
            EmptySelectionError: Nothing is selected.
        """
        selected = [img for img in self.generated if img.id in self.selected_image_ids]
        if not selected:
            self.add_log(LogType.info, "No images selected to download.")
            raise EmptySelectionError("No images selected to download.")

        self.add_log(LogType.info, f"Preparing to download {len(selected)} images...")
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for image in selected:
                archive.writestr(f"generated-image-{image.id}.png", image.data)

        filename = f"generated-images-{datetime.now(timezone.utc).date().isoformat()}.zip"
        self.add_log(LogType.success, f"{len(selected)} images downloaded successfully.")
        return filename, buffer.getvalue()
