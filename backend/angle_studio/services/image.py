"""Image generation service: sends a reference image plus prompt to Gemini."""
import logging
from typing import Optional

from pydantic import BaseModel

from angle_studio.models.generation import GenerationConfig, OutputResolution
from angle_studio.services.prompt import build_generation_prompt, build_optimization_prompt

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"


class ImageGenerationError(RuntimeError):
    """The model call failed or returned no image. The message is user-facing."""


class ImageResult(BaseModel):
    """Image returned by the model and the prompt that produced it."""

    data: bytes
    mime_type: str
    prompt: str


class ImageGenerationService:
    """Thin wrapper around the Gemini image model.

    Prompts come from `angle_studio.services.prompt`; this class only does the
    network round-trip, one retry, and error reporting.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        project_id: Optional[str] = None,
        location: str = "global",
        model: str = DEFAULT_IMAGE_MODEL,
    ) -> None:
        self.api_key = api_key or None
        self.project_id = project_id or None
        self.location = location
        self.model = model

    def generate_variation(
        self, image_bytes: bytes, mime_type: str, config: GenerationConfig
    ) -> ImageResult:
        """Generate a new angle/expression variant of the reference image.

        Args:
            image_bytes: Raw bytes of the reference image.
            mime_type: MIME type of `image_bytes`, e.g. "image/png".
            config: Generation configuration.

        Returns:
            ImageResult with the generated image and the prompt used.

        Raises:
            ImageGenerationError: When both attempts fail.
        """
        prompt = build_generation_prompt(config)
        logger.info(
            "Generating %s variation: %s, %s",
            config.output_resolution.value,
            config.horizontal_angle.value,
            config.vertical_angle.value,
            extra={"subject_type": config.subject_type.value},
        )
        return self._run(image_bytes, mime_type, prompt, "generation")

    def optimize_reference(
        self, image_bytes: bytes, mime_type: str, output_resolution: OutputResolution
    ) -> ImageResult:
        """Clean up a reference image (outfill, recentre, gray background).

        Raises:
            ImageGenerationError: When both attempts fail.
        """
        prompt = build_optimization_prompt(output_resolution)
        logger.info("Optimizing reference image to %s", output_resolution.value)
        return self._run(image_bytes, mime_type, prompt, "optimization")

    def _run(
        self, image_bytes: bytes, mime_type: str, prompt: str, operation: str
    ) -> ImageResult:
        last_exc: Optional[Exception] = None
        for attempt in range(MAX_ATTEMPTS):
            try:
                data, out_mime = self._call_image_api(
                    image_bytes, mime_type, prompt, operation=operation
                )
                return ImageResult(data=data, mime_type=out_mime, prompt=prompt)
            except Exception as exc:
                last_exc = exc
                logger.error(
                    "Image %s failed (attempt %d/%d): %s: %s",
                    operation,
                    attempt + 1,
                    MAX_ATTEMPTS,
                    type(exc).__name__,
                    exc,
                    extra={
                        "service": "ImageGenerationService",
                        "error_type": type(exc).__name__,
                        "attempt": attempt + 1,
                    },
                )

        reason = str(last_exc) or f"Image {operation} failed."
        raise ImageGenerationError(reason) from last_exc

    def _make_client(self):  # type: ignore[no-untyped-def]
        from google import genai  # type: ignore[import-untyped]

        if self.api_key:
            return genai.Client(api_key=self.api_key)
        return genai.Client(vertexai=True, project=self.project_id, location=self.location)

    def _call_image_api(
        self, image_bytes: bytes, mime_type: str, prompt: str, operation: str = "generation"
    ) -> tuple[bytes, str]:
        """Call the Gemini image model once and return (image bytes, mime type).

        The reference image is sent as the first part, the prompt as the second.
        `operation` ("generation" or "optimization") names the call in failure messages.

        Raises:
            ImageGenerationError: When the response carries no image. If the
                model answered with text, that text is included in the message.
        """
        from google.genai import types  # type: ignore[import-untyped]

        client = self._make_client()
        response = client.models.generate_content(
            model=self.model,
            contents=[
                types.Part(inline_data=types.Blob(data=image_bytes, mime_type=mime_type)),
                types.Part(text=prompt),
            ],
            config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
        )

        candidates = response.candidates
        if not candidates or candidates[0].content is None:
            raise ImageGenerationError(
                f"Image {operation} failed. The model did not return an image."
            )

        texts: list[str] = []
        for part in candidates[0].content.parts or []:
            if getattr(part, "inline_data", None) is not None:
                return bytes(part.inline_data.data), part.inline_data.mime_type or "image/png"
            if getattr(part, "text", None):
                texts.append(part.text)

        if texts:
            during = "" if operation == "generation" else f" during {operation}"
            raise ImageGenerationError(
                f"Model returned text instead of an image{during}: {' '.join(texts)}"
            )
        raise ImageGenerationError(f"Image {operation} failed. The model did not return an image.")
