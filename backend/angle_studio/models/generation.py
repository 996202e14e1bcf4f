"""Generation configuration data models."""
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class AngleX(str, Enum):
    """Horizontal (yaw) angle, ordered from the viewer's left to right."""

    profile_left = "Profile Left"
    three_quarter_left = "Three-Quarter Left"
    slight_left = "Slight Left"
    front_view = "Front View"
    slight_right = "Slight Right"
    three_quarter_right = "Three-Quarter Right"
    profile_right = "Profile Right"


class AngleY(str, Enum):
    """Vertical (pitch) angle, ordered from highest to lowest."""

    tilted_up_high = "Tilted Up High"
    tilted_up = "Tilted Up"
    level_view = "Level View"
    tilted_down = "Tilted Down"
    tilted_down_low = "Tilted Down Low"


class Expression(str, Enum):
    """Facial expression. Only applies to humanoid subjects."""

    neutral = "Neutral"
    smiling = "Smiling"
    laughing = "Laughing"
    sad = "Sad"
    angry = "Angry"
    surprised = "Surprised"
    thoughtful = "Thoughtful"


class SubjectType(str, Enum):
    """Kind of subject shown in the reference image."""

    male = "Male"
    female = "Female"
    non_binary = "Non-binary"
    cartoon = "Cartoon / 3D CGI Character"
    humanoid_creature = "Humanoid Creature"
    object = "Object"

    @property
    def is_humanoid(self) -> bool:
        return is_humanoid(self)


class OutputResolution(str, Enum):
    """Square output sizes offered to the user."""

    r512 = "512x512"
    r768 = "768x768"
    r1024 = "1024x1024"


# (label, signed degrees) per angle. Negative yaw is the viewer's left,
# positive pitch is the head tilted back.
ANGLE_X_TABLE: dict[AngleX, tuple[str, float]] = {
    AngleX.profile_left: ("Profile L", -90.0),
    AngleX.three_quarter_left: ("3/4 L", -45.0),
    AngleX.slight_left: ("Slight L", -22.5),
    AngleX.front_view: ("Front", 0.0),
    AngleX.slight_right: ("Slight R", 22.5),
    AngleX.three_quarter_right: ("3/4 R", 45.0),
    AngleX.profile_right: ("Profile R", 90.0),
}

ANGLE_Y_TABLE: dict[AngleY, tuple[str, float]] = {
    AngleY.tilted_up_high: ("Up High", 30.0),
    AngleY.tilted_up: ("Up", 15.0),
    AngleY.level_view: ("Level", 0.0),
    AngleY.tilted_down: ("Down", -15.0),
    AngleY.tilted_down_low: ("Down Low", -30.0),
}


class ResolutionFormatError(ValueError):
    """Raised when a resolution string is not `<int>x<int>`."""


def parse_resolution(resolution: Union[OutputResolution, str]) -> tuple[int, int]:
    """Split a "WxH" resolution string into integer width and height.

    Args:
        resolution: Resolution such as "1024x1024" or an OutputResolution.

    Returns:
        (width, height) tuple.

    Raises:
        ResolutionFormatError: When the value is not two positive integers
            separated by a single "x".
    """
    text = resolution.value if isinstance(resolution, OutputResolution) else resolution
    if not isinstance(text, str):
        raise ResolutionFormatError(f"Resolution must be a string, got {type(text).__name__}")
    parts = text.strip().lower().split("x")
    if len(parts) != 2 or not all(p.isascii() and p.isdigit() for p in parts):
        raise ResolutionFormatError(f"Malformed resolution {text!r}, expected '<width>x<height>'")
    width, height = int(parts[0]), int(parts[1])
    if width <= 0 or height <= 0:
        raise ResolutionFormatError(f"Resolution {text!r} must have positive dimensions")
    return width, height


def is_humanoid(subject_type: Union[SubjectType, str]) -> bool:
    """Everything except objects gets facial and anatomical instructions."""
    return subject_type != SubjectType.object


class ModifierSlot(BaseModel):
    """Hair, clothing or background directive.

    When `random` is set the free-text `value` is kept for display only and
    never reaches the prompt.
    """

    model_config = ConfigDict(frozen=True)

    value: str = ""
    random: bool = False


class GenerationConfig(BaseModel):
    """One variation request. Immutable; the prompt builder never mutates it."""

    model_config = ConfigDict(frozen=True)

    horizontal_angle: AngleX = AngleX.front_view
    vertical_angle: AngleY = AngleY.level_view
    expression: Expression = Expression.neutral
    subject_type: SubjectType = SubjectType.male
    output_resolution: OutputResolution = OutputResolution.r1024
    lock_gaze: bool = False
    hair: ModifierSlot = Field(default_factory=ModifierSlot)
    background: ModifierSlot = Field(default_factory=ModifierSlot)
    clothing: ModifierSlot = Field(default_factory=ModifierSlot)
