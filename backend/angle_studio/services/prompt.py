"""Prompt construction for angle/expression variations.

Everything here is a pure function of its arguments. The only randomness is
the background colour draw, which uses the `random.Random` instance passed
in by the caller so results can be reproduced with a seeded source.

Directions are always stated in the viewer's frame (edges of the image), not
the subject's own left/right, because image models otherwise mirror them.
"""
import random
from enum import Enum
from typing import NamedTuple, Optional, Union

from angle_studio.models.generation import (
    ANGLE_X_TABLE,
    AngleX,
    AngleY,
    GenerationConfig,
    ModifierSlot,
    OutputResolution,
    SubjectType,
    is_humanoid,
    parse_resolution,
)

SECTION_DIVIDER = "\n\n---\n\n"
NEUTRAL_GRAY_HEX = "#808080"

DEFAULT_HAIR_INSTRUCTION = "Maintain original style and color."
DEFAULT_CLOTHING_INSTRUCTION = "Maintain original clothing style."
DEFAULT_BACKGROUND_INSTRUCTION = "Neutral studio gray background."

FINAL_OUTPUT_DIRECTIVE = (
    "**Final Output:** Generate only the high-quality, final image. "
    "Do not add any text or watermarks."
)

GAZE_NUANCE = (
    "- **GAZE NUANCE:** When executing the 'Gaze Direction' modification, you MUST "
    "adhere to this rule: This instruction applies ONLY to the rotation of the eyes "
    "within their sockets. You MUST preserve the original shape, size, color, spacing, "
    "and any asymmetries (like strabismus or a lazy eye) of the eyes from the reference "
    "image. Do not 'correct' or beautify the eyes; simply rotate them to look at the "
    "viewer while maintaining their unique, original characteristics."
)


def _label(value: Union[Enum, str]) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def _format_degrees(degrees: float) -> str:
    if degrees == 0:
        return "0°"
    return f"{degrees:+g}°"


# ---------------------------------------------------------------------------
# Angle descriptions
# ---------------------------------------------------------------------------

# (humanoid title, object title, where the subject points in the frame)
_ANGLE_X_PHRASES: dict[AngleX, tuple[str, str, str]] = {
    AngleX.profile_left: (
        "Profile Left",
        "Left View",
        "directly towards the left edge of the frame",
    ),
    AngleX.three_quarter_left: (
        "Three-Quarter Left",
        "Three-Quarter Left View",
        "partially towards the left side of the frame, "
        "at roughly a 45-degree angle away from the viewer",
    ),
    AngleX.slight_left: (
        "Slight Left",
        "Slight Left View",
        "slightly towards the left side of the frame",
    ),
    AngleX.slight_right: (
        "Slight Right",
        "Slight Right View",
        "slightly towards the right side of the frame",
    ),
    AngleX.three_quarter_right: (
        "Three-Quarter Right",
        "Three-Quarter Right View",
        "partially towards the right side of the frame, "
        "at roughly a 45-degree angle away from the viewer",
    ),
    AngleX.profile_right: (
        "Profile Right",
        "Right View",
        "directly towards the right edge of the frame",
    ),
}

_FRONT_VIEW_HUMANOID = (
    "Front View (0°): The subject is looking directly forward, facing the viewer."
)
_FRONT_VIEW_OBJECT = "Front View (0°): The object is facing forward, towards the viewer."

_ANGLE_Y_OBJECT: dict[AngleY, str] = {
    AngleY.tilted_up_high: (
        "High-Angle View: The camera is positioned high above the object, "
        "looking down at it at a steep angle."
    ),
    AngleY.tilted_up: (
        "Slight High-Angle View: The camera is positioned slightly above the object, "
        "looking down at it."
    ),
    AngleY.level_view: "Eye-Level View: The camera is level with the object.",
    AngleY.tilted_down: (
        "Slight Low-Angle View: The camera is positioned slightly below the object, "
        "looking up at it."
    ),
    AngleY.tilted_down_low: (
        "Low-Angle View: The camera is positioned low, looking up at the object "
        "from a steep angle."
    ),
}

_ANGLE_Y_HUMANOID: dict[AngleY, str] = {
    AngleY.tilted_up_high: (
        "Tilted Up High (+30°): The subject's head is tilted far back, looking upwards. "
        "The chin is high, and the neck is stretched."
    ),
    AngleY.tilted_up: (
        "Tilted Up (+15°): The subject's head is tilted slightly back, looking slightly "
        "upwards. The chin is raised."
    ),
    AngleY.level_view: (
        "Level View (0°): The subject is looking straight ahead, with their head level."
    ),
    AngleY.tilted_down: (
        "Tilted Down (-15°): The subject's head is tilted slightly forward, with the chin "
        "lowered towards the chest."
    ),
    AngleY.tilted_down_low: (
        "Tilted Down Low (-30°): The subject's head is tilted far forward, looking down "
        "towards their chest. This may cause the skin under the chin to compress."
    ),
}


def describe_horizontal_angle(
    angle: Union[AngleX, str], subject_type: Union[SubjectType, str]
) -> str:
    """Describe a yaw position relative to the edges of the frame.

    Unknown angle values produce a generic clause instead of raising.
    """
    humanoid = is_humanoid(subject_type)
    subject_term = "the subject's face" if humanoid else "the object"

    if angle == AngleX.front_view:
        return _FRONT_VIEW_HUMANOID if humanoid else _FRONT_VIEW_OBJECT

    phrases = _ANGLE_X_PHRASES.get(angle)  # type: ignore[call-overload]
    if phrases is None:
        return (
            f"{_label(angle)}: {subject_term} is re-rendered from this horizontal angle, "
            "as seen from the viewer's perspective."
        )

    human_title, object_title, direction = phrases
    title = human_title if humanoid else object_title
    degrees = _format_degrees(ANGLE_X_TABLE[AngleX(angle)][1])
    return f"{title} ({degrees}): {subject_term} is oriented {direction}."


def describe_vertical_angle(
    angle: Union[AngleY, str], subject_type: Union[SubjectType, str]
) -> str:
    """Describe a pitch position.

    Objects get a camera placement; humanoids get a head tilt with the
    anatomical changes it causes. Unknown values fall back to a generic clause.
    """
    if not is_humanoid(subject_type):
        description = _ANGLE_Y_OBJECT.get(angle)  # type: ignore[call-overload]
        if description is None:
            return f"{_label(angle)}. This is the up-and-down camera angle relative to the object."
        return description

    description = _ANGLE_Y_HUMANOID.get(angle)  # type: ignore[call-overload]
    if description is None:
        return f"{_label(angle)}. This is the up-and-down tilt of the subject."
    return description


# ---------------------------------------------------------------------------
# Modifiers
# ---------------------------------------------------------------------------


def random_background_color(rng: random.Random) -> tuple[int, int, int]:
    """Draw an RGB triple uniformly, rejecting pure black and pure white."""
    while True:
        color = (rng.randint(0, 255), rng.randint(0, 255), rng.randint(0, 255))
        if color not in ((0, 0, 0), (255, 255, 255)):
            return color


def resolve_hair(slot: ModifierSlot, subject_type: Union[SubjectType, str]) -> str:
    # Random hair is left to the model; we only ask for a plausible choice.
    if slot.random:
        return (
            "Randomly select a probabilistically likely hair style and color "
            f"for a {_label(subject_type)} subject."
        )
    return slot.value or DEFAULT_HAIR_INSTRUCTION


def resolve_clothing(slot: ModifierSlot, subject_type: Union[SubjectType, str]) -> str:
    if slot.random:
        return (
            "Randomly select a probabilistically likely clothing style "
            f"for a {_label(subject_type)} subject."
        )
    return slot.value or DEFAULT_CLOTHING_INSTRUCTION


def resolve_background(slot: ModifierSlot, rng: random.Random) -> str:
    """Resolve the background slot.

    Unlike hair and clothing, a random background is decided here as a
    concrete colour, so it is reproducible from the rng state.
    """
    if slot.random:
        r, g, b = random_background_color(rng)
        return f"Solid color background with RGB value ({r}, {g}, {b})."
    return slot.value or DEFAULT_BACKGROUND_INSTRUCTION


# ---------------------------------------------------------------------------
# Persona and preservation rule
# ---------------------------------------------------------------------------


class PreservationRule(NamedTuple):
    """Persona sentence plus the constraint that outranks every other instruction."""

    persona: str
    rule: str
    name: str


_HUMAN_RULE = PreservationRule(
    persona="You are an expert photorealistic image editor.",
    rule=(
        "You MUST preserve the person's unique facial structure, features, skin texture, "
        "moles, scars, and any asymmetries from the reference image."
    ),
    name="Identity Preservation",
)

_CHARACTER_RULE = PreservationRule(
    persona="You are an expert character artist and 3D modeler.",
    rule=(
        "You MUST preserve the character's unique physical structure, design features, "
        "art style, color palette, and proportions from the reference image."
    ),
    name="Morphology and Design Preservation",
)

_OBJECT_RULE = PreservationRule(
    persona="You are an expert product and still life photographer.",
    rule=(
        "You MUST preserve the object's unique structure, shape, texture, materials, "
        "colors, and any intricate details from the reference image."
    ),
    name="Design and Shape Preservation",
)

PRESERVATION_RULES: dict[SubjectType, PreservationRule] = {
    SubjectType.male: _HUMAN_RULE,
    SubjectType.female: _HUMAN_RULE,
    SubjectType.non_binary: _HUMAN_RULE,
    SubjectType.cartoon: _CHARACTER_RULE,
    SubjectType.humanoid_creature: _CHARACTER_RULE,
    SubjectType.object: _OBJECT_RULE,
}


def select_preservation_rule(subject_type: Union[SubjectType, str]) -> PreservationRule:
    """Return the persona and preservation rule; unknown types are treated as people."""
    return PRESERVATION_RULES.get(subject_type, _HUMAN_RULE)  # type: ignore[call-overload]


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def _core_objective(rule: PreservationRule, subject_type: Union[SubjectType, str]) -> str:
    return (
        "### CORE OBJECTIVE\n"
        f"**This is the most important rule:** {rule.rule} This is {rule.name}. "
        f"The new image must look like the exact same {_label(subject_type).lower()}, "
        "just viewed differently. All modifications listed below are secondary to this "
        "core objective."
    )


def _primary_transformations(config: GenerationConfig, width: int, height: int) -> str:
    yaw = describe_horizontal_angle(config.horizontal_angle, config.subject_type)
    pitch = describe_vertical_angle(config.vertical_angle, config.subject_type)
    return "\n".join(
        [
            "### PRIMARY TRANSFORMATIONS",
            "You will apply the following main changes to the subject from the reference image:",
            "1.  **New Angle (Yaw/Pitch):** The subject must be convincingly re-rendered "
            "from this new perspective:",
            f"    -   **Horizontal (Yaw):** {yaw}",
            f"    -   **Vertical (Pitch/Tilt):** {pitch}",
            f"2.  **Output Format:** The final image must be {width}x{height} pixels.",
        ]
    )


def _secondary_modifications(config: GenerationConfig, rng: random.Random) -> str:
    humanoid = is_humanoid(config.subject_type)
    points: list[str] = []

    if humanoid:
        points.append(
            "- **Facial Expression:** Change the subject's expression to: "
            f"**{_label(config.expression)}**."
        )
        if config.lock_gaze:
            points.append(
                "- **Gaze Direction:** Lock the subject's gaze directly on the viewer/camera. "
                "See the 'Critical Nuances' section below for a rule on how to execute this."
            )
        points.append(f"- **Hair:** {resolve_hair(config.hair, config.subject_type)}")
        points.append(
            f"- **Clothing:** {resolve_clothing(config.clothing, config.subject_type)}"
        )

    points.append(f"- **Background:** {resolve_background(config.background, rng)}")

    return "\n".join(
        ["### SECONDARY MODIFICATIONS", "Apply these modifications to the re-rendered subject:"]
        + points
    )


def _critical_nuances(config: GenerationConfig) -> Optional[str]:
    nuances: list[str] = []
    if is_humanoid(config.subject_type) and config.lock_gaze:
        nuances.append(GAZE_NUANCE)
    if not nuances:
        return None
    return "\n".join(
        [
            "### CRITICAL NUANCES & CONSTRAINTS",
            "These rules override any other interpretation and must be followed precisely:",
        ]
        + nuances
    )


def build_generation_prompt(
    config: GenerationConfig, rng: Optional[random.Random] = None
) -> str:
    """Build the instruction sent to the image model with the reference image.

    Sections, in order: persona, core objective (preservation rule), primary
    transformations (angle, size), secondary modifications, critical nuances
    (only with gaze lock on a humanoid), final output directive.

    Args:
        config: Generation configuration. Not modified.
        rng: Random source for the background colour. A fresh unseeded
            `random.Random` is used when omitted.

    Returns:
        The complete prompt string.

    Raises:
        ResolutionFormatError: When `config.output_resolution` is malformed.
    """
    # Parse first so a bad resolution fails before any random draw.
    width, height = parse_resolution(config.output_resolution)
    rng = rng if rng is not None else random.Random()

    rule = select_preservation_rule(config.subject_type)
    intro = (
        f"{rule.persona} Your task is to generate a new image of the subject "
        "in the provided reference photo."
    )

    sections = [
        f"{intro}\n\n{_core_objective(rule, config.subject_type)}",
        _primary_transformations(config, width, height),
        _secondary_modifications(config, rng),
    ]
    nuances = _critical_nuances(config)
    if nuances is not None:
        sections.append(nuances)
    sections.append(FINAL_OUTPUT_DIRECTIVE)
    return SECTION_DIVIDER.join(sections)


def build_optimization_prompt(output_resolution: Union[OutputResolution, str]) -> str:
    """Build the fixed reference clean-up instruction.

    The wording does not depend on the subject: detect cropping, outfill
    missing head/hair without touching existing pixels, recentre on a square
    canvas with uniform scaling, then replace the background with flat gray.

    Raises:
        ResolutionFormatError: When `output_resolution` is malformed.
    """
    width, height = parse_resolution(output_resolution)
    return f"""\
Prepare the provided reference headshot for use in a machine learning dataset. \
Precision and accuracy are paramount.

**ABSOLUTE RULE: YOU MUST NOT ALTER THE SUBJECT'S ORIGINAL FACIAL PIXELS.** The subject's \
facial width, height, proportions, and features must be preserved with 100% accuracy. DO NOT \
narrow, stretch, pinch, or otherwise distort the face. The final person must be identical to \
the original.

Follow this workflow strictly:

**Step 1: Analyze for Cropping.**
- Look at the provided image. Is any part of the subject's head or hair cut off by the image border?

**Step 2: Non-Destructive Outfill (if necessary).**
- If the head or hair is cropped, your first and only action on the subject is to perform a \
generative outfill (outpainting).
- **CRITICAL:** This process must ONLY ADD new pixels to recreate the missing parts of the \
head/hair. It must NOT change the existing pixels of the subject's face. Extend the canvas and \
paint in only the missing information.

**Step 3: Frame the Composition.**
- Once the full head and hair are visible (either from the original or after outfilling), \
create a new 1:1 square canvas.
- Place the complete subject in the center of this canvas.
- Leave comfortable headroom above the hair and balanced space on the left and right sides. \
Do not crop the subject. The entire head and hair must be visible and unmasked. Use a 1:1 \
uniform scale if you need to resize the subject to fit; never scale non-uniformly.

**Step 4: Replace Background.**
- Replace the entire background (everything that is not the subject) with a solid, flat, \
neutral gray color ({NEUTRAL_GRAY_HEX}).

**Final Output:**
- The final image must be a perfectly centered, 1:1 square photorealistic headshot with a \
resolution of {width}x{height} pixels, a complete, uncropped head and hair, and a neutral gray \
background.
- Output ONLY the final image. No text, no explanation."""
