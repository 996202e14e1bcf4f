"""Studio session records and API payloads."""
import base64
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from angle_studio.models.generation import GenerationConfig, OutputResolution


def to_data_url(mime_type: str, data: bytes) -> str:
    """Encode raw image bytes as a `data:` URL for the browser."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


class LogType(str, Enum):
    """Activity log entry severity shown in the UI log panel."""

    info = "info"
    error = "error"
    success = "success"


class LogEntry(BaseModel):
    """One line of the user-facing activity log."""

    timestamp: str
    type: LogType
    message: str


class ReferenceImage(BaseModel):
    """The image every variation is generated from.

    Width and height are measured by the browser; the server never decodes
    image data.
    """

    mime_type: str
    data: bytes
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


class GeneratedImage(BaseModel):
    """A variation together with the configuration that produced it."""

    id: str
    mime_type: str
    data: bytes
    config: GenerationConfig
    prompt: str
    created_at: str


class OptimizedImage(BaseModel):
    """A cleaned-up candidate for the reference image."""

    id: str
    mime_type: str
    data: bytes
    width: int
    height: int
    prompt: str
    created_at: str


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------


class ReferenceUploadRequest(BaseModel):
    """Reference upload body: a base64 `data:` URL plus browser-measured size."""

    data_url: str = Field(..., min_length=1)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class OptimizeRequest(BaseModel):
    """Body for the reference optimization endpoint."""

    output_resolution: OutputResolution = OutputResolution.r1024


class SelectionRequest(BaseModel):
    """Gallery selection change. `image_id` is required for `toggle`."""

    action: Literal["toggle", "all", "none", "invert"]
    image_id: Optional[str] = None


class PromptResponse(BaseModel):
    prompt: str


class ReferenceView(BaseModel):
    src: str
    width: int
    height: int


class GeneratedImageView(BaseModel):
    id: str
    src: str
    config: GenerationConfig
    prompt: str
    created_at: str

    @classmethod
    def from_record(cls, image: GeneratedImage) -> "GeneratedImageView":
        return cls(
            id=image.id,
            src=to_data_url(image.mime_type, image.data),
            config=image.config,
            prompt=image.prompt,
            created_at=image.created_at,
        )


class OptimizedImageView(BaseModel):
    id: str
    src: str
    created_at: str

    @classmethod
    def from_record(cls, image: OptimizedImage) -> "OptimizedImageView":
        return cls(
            id=image.id,
            src=to_data_url(image.mime_type, image.data),
            created_at=image.created_at,
        )


class StudioStateResponse(BaseModel):
    """Everything the UI needs to redraw itself."""

    reference: Optional[ReferenceView] = None
    generated: list[GeneratedImageView] = Field(default_factory=list)
    optimized: list[OptimizedImageView] = Field(default_factory=list)
    selected_optimized_id: Optional[str] = None
    selected_image_ids: list[str] = Field(default_factory=list)
    last_prompt: str = ""
