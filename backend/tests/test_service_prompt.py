"""Tests for prompt construction."""
import itertools
import random

import pytest

from angle_studio.models.generation import (
    AngleX,
    AngleY,
    Expression,
    GenerationConfig,
    ModifierSlot,
    OutputResolution,
    ResolutionFormatError,
    SubjectType,
)
from angle_studio.services.prompt import (
    NEUTRAL_GRAY_HEX,
    build_generation_prompt,
    build_optimization_prompt,
    describe_horizontal_angle,
    describe_vertical_angle,
    random_background_color,
    resolve_background,
    resolve_clothing,
    resolve_hair,
    select_preservation_rule,
)

HUMANS = [SubjectType.male, SubjectType.female, SubjectType.non_binary]
CHARACTERS = [SubjectType.cartoon, SubjectType.humanoid_creature]
HUMANOIDS = HUMANS + CHARACTERS

EXPECTED_CLASS = {
    **{s: ("expert photorealistic image editor", "Identity Preservation") for s in HUMANS},
    **{
        s: ("expert character artist and 3D modeler", "Morphology and Design Preservation")
        for s in CHARACTERS
    },
    SubjectType.object: ("expert product and still life photographer", "Design and Shape Preservation"),
}


def _config(**kwargs: object) -> GenerationConfig:
    return GenerationConfig(**kwargs)  # type: ignore[arg-type]


class _ScriptedRandom:
    """Stand-in random source that replays fixed randint results."""

    def __init__(self, values: list[int]) -> None:
        self._values = iter(values)

    def randint(self, a: int, b: int) -> int:
        return next(self._values)


class TestAllCombinations:
    """Every (horizontal, vertical, subject) combination yields a full prompt."""

    @pytest.mark.parametrize(
        "angle_x,angle_y,subject",
        list(itertools.product(AngleX, AngleY, SubjectType)),
    )
    def test_prompt_has_resolution_persona_and_rule(
        self, angle_x: AngleX, angle_y: AngleY, subject: SubjectType
    ) -> None:
        config = _config(
            horizontal_angle=angle_x,
            vertical_angle=angle_y,
            subject_type=subject,
            output_resolution=OutputResolution.r768,
        )
        prompt = build_generation_prompt(config, random.Random(0))
        persona, rule_name = EXPECTED_CLASS[subject]
        assert prompt
        assert "768x768" in prompt
        assert persona in prompt
        assert rule_name in prompt


class TestReproducibility:
    """Same config and rng state give byte-identical prompts."""

    def test_identical_with_same_seed(self) -> None:
        config = _config(background=ModifierSlot(random=True), hair=ModifierSlot(random=True))
        first = build_generation_prompt(config, random.Random(42))
        second = build_generation_prompt(config, random.Random(42))
        assert first == second

    def test_identical_without_random_slots(self) -> None:
        """No random background means the rng is never consulted."""
        config = _config(subject_type=SubjectType.female, lock_gaze=True)
        assert build_generation_prompt(config) == build_generation_prompt(config)

    def test_background_matches_seeded_draw(self) -> None:
        config = _config(background=ModifierSlot(value="ignored", random=True))
        r, g, b = random_background_color(random.Random(7))
        prompt = build_generation_prompt(config, random.Random(7))
        assert f"Solid color background with RGB value ({r}, {g}, {b})." in prompt
        assert "ignored" not in prompt

    def test_config_is_not_modified(self) -> None:
        config = _config(hair=ModifierSlot(value="bob cut", random=True), lock_gaze=True)
        before = config.model_dump()
        build_generation_prompt(config, random.Random(1))
        assert config.model_dump() == before


class TestRandomBackgroundColor:
    """Tests for random_background_color()."""

    def test_never_black_or_white_and_in_range(self) -> None:
        rng = random.Random(1234)
        for _ in range(10_000):
            color = random_background_color(rng)
            assert color != (0, 0, 0)
            assert color != (255, 255, 255)
            assert all(0 <= channel <= 255 for channel in color)

    def test_rejects_extremes_and_redraws(self) -> None:
        rng = _ScriptedRandom([0, 0, 0, 255, 255, 255, 12, 34, 56])
        assert random_background_color(rng) == (12, 34, 56)

    def test_near_extremes_are_accepted(self) -> None:
        rng = _ScriptedRandom([0, 0, 1])
        assert random_background_color(rng) == (0, 0, 1)


class TestModifiers:
    """Tests for hair, clothing and background resolution."""

    def test_random_hair_delegates_to_model(self) -> None:
        text = resolve_hair(ModifierSlot(value="mohawk", random=True), SubjectType.female)
        assert "Randomly select a probabilistically likely hair style and color" in text
        assert "Female" in text
        assert "mohawk" not in text

    def test_random_clothing_delegates_to_model(self) -> None:
        text = resolve_clothing(ModifierSlot(random=True), SubjectType.humanoid_creature)
        assert "probabilistically likely clothing style" in text
        assert "Humanoid Creature" in text

    def test_free_text_passes_through_verbatim(self) -> None:
        assert resolve_hair(ModifierSlot(value="long red braids"), SubjectType.male) == "long red braids"
        assert resolve_clothing(ModifierSlot(value="a tuxedo"), SubjectType.male) == "a tuxedo"
        assert (
            resolve_background(ModifierSlot(value="sunset beach"), random.Random(0))
            == "sunset beach"
        )

    def test_empty_text_uses_defaults(self) -> None:
        assert resolve_hair(ModifierSlot(), SubjectType.male) == "Maintain original style and color."
        assert resolve_clothing(ModifierSlot(), SubjectType.male) == "Maintain original clothing style."
        assert resolve_background(ModifierSlot(), random.Random(0)) == "Neutral studio gray background."

    def test_non_random_background_does_not_consume_rng(self) -> None:
        rng = random.Random(5)
        state = rng.getstate()
        resolve_background(ModifierSlot(value="forest"), rng)
        assert rng.getstate() == state


class TestPreservationRule:
    """Tests for select_preservation_rule()."""

    @pytest.mark.parametrize("subject", list(SubjectType))
    def test_total_over_subject_types(self, subject: SubjectType) -> None:
        rule = select_preservation_rule(subject)
        persona, name = EXPECTED_CLASS[subject]
        assert persona in rule.persona
        assert rule.name == name

    def test_six_types_collapse_to_three_rules(self) -> None:
        assert len({select_preservation_rule(s) for s in SubjectType}) == 3

    def test_unknown_type_falls_back_to_identity(self) -> None:
        assert select_preservation_rule("Robot").name == "Identity Preservation"


class TestAngleDescriptions:
    """Tests for the horizontal and vertical angle resolvers."""

    def test_profile_left_humanoid(self) -> None:
        text = describe_horizontal_angle(AngleX.profile_left, SubjectType.male)
        assert text.startswith("Profile Left (-90°)")
        assert "the subject's face" in text
        assert "left edge of the frame" in text

    def test_profile_right_object(self) -> None:
        text = describe_horizontal_angle(AngleX.profile_right, SubjectType.object)
        assert text.startswith("Right View (+90°)")
        assert "the object" in text
        assert "right edge of the frame" in text

    def test_slight_angles_use_fractional_degrees(self) -> None:
        assert "(-22.5°)" in describe_horizontal_angle(AngleX.slight_left, SubjectType.female)
        assert "(+22.5°)" in describe_horizontal_angle(AngleX.slight_right, SubjectType.female)

    def test_front_view_is_bespoke_per_class(self) -> None:
        human = describe_horizontal_angle(AngleX.front_view, SubjectType.male)
        obj = describe_horizontal_angle(AngleX.front_view, SubjectType.object)
        assert human.startswith("Front View (0°)")
        assert "facing the viewer" in human
        assert "The object is facing forward" in obj

    @pytest.mark.parametrize("angle", list(AngleX))
    def test_every_horizontal_value_is_distinct(self, angle: AngleX) -> None:
        others = {
            describe_horizontal_angle(a, SubjectType.male) for a in AngleX if a != angle
        }
        assert describe_horizontal_angle(angle, SubjectType.male) not in others

    def test_vertical_object_describes_camera(self) -> None:
        text = describe_vertical_angle(AngleY.tilted_up_high, SubjectType.object)
        assert "High-Angle View" in text
        assert "camera" in text

    def test_vertical_humanoid_describes_head_tilt(self) -> None:
        high = describe_vertical_angle(AngleY.tilted_up_high, SubjectType.female)
        low = describe_vertical_angle(AngleY.tilted_down_low, SubjectType.female)
        assert "+30°" in high and "neck is stretched" in high
        assert "-30°" in low and "compress" in low

    @pytest.mark.parametrize("angle", list(AngleY))
    def test_vertical_total_for_both_classes(self, angle: AngleY) -> None:
        assert describe_vertical_angle(angle, SubjectType.object)
        assert describe_vertical_angle(angle, SubjectType.male)

    def test_unknown_horizontal_value_falls_back(self) -> None:
        text = describe_horizontal_angle("Upside Down", SubjectType.male)
        assert "Upside Down" in text
        assert "viewer's perspective" in text

    def test_unknown_vertical_value_falls_back(self) -> None:
        assert "camera angle" in describe_vertical_angle("Sideways", SubjectType.object)
        assert "tilt of the subject" in describe_vertical_angle("Sideways", SubjectType.male)


class TestSubjectClassSections:
    """Which secondary modifications appear for which subjects."""

    def test_object_has_no_hair_clothing_or_expression(self) -> None:
        config = _config(
            subject_type=SubjectType.object,
            expression=Expression.smiling,
            lock_gaze=True,
            hair=ModifierSlot(value="curly", random=False),
            clothing=ModifierSlot(random=True),
        )
        prompt = build_generation_prompt(config, random.Random(0))
        assert "**Hair:**" not in prompt
        assert "**Clothing:**" not in prompt
        assert "**Facial Expression:**" not in prompt
        assert "Smiling" not in prompt
        assert "Gaze" not in prompt
        assert "**Background:**" in prompt
        assert "exact same object" in prompt

    @pytest.mark.parametrize("subject", HUMANOIDS)
    def test_humanoid_has_all_modifiers(self, subject: SubjectType) -> None:
        prompt = build_generation_prompt(_config(subject_type=subject), random.Random(0))
        assert "**Facial Expression:**" in prompt
        assert "**Hair:**" in prompt
        assert "**Clothing:**" in prompt
        assert "**Background:**" in prompt

    @pytest.mark.parametrize("subject", HUMANOIDS)
    def test_lock_gaze_adds_directive_and_nuance(self, subject: SubjectType) -> None:
        prompt = build_generation_prompt(_config(subject_type=subject, lock_gaze=True))
        assert "**Gaze Direction:**" in prompt
        assert "GAZE NUANCE" in prompt
        assert "rotation of the eyes within their sockets" in prompt
        assert "### CRITICAL NUANCES & CONSTRAINTS" in prompt

    @pytest.mark.parametrize("subject", HUMANOIDS)
    def test_without_lock_gaze_neither_appears(self, subject: SubjectType) -> None:
        prompt = build_generation_prompt(_config(subject_type=subject, lock_gaze=False))
        assert "Gaze Direction" not in prompt
        assert "GAZE NUANCE" not in prompt
        assert "CRITICAL NUANCES" not in prompt

    def test_section_order(self) -> None:
        prompt = build_generation_prompt(_config(lock_gaze=True))
        markers = [
            "You are an expert",
            "### CORE OBJECTIVE",
            "### PRIMARY TRANSFORMATIONS",
            "### SECONDARY MODIFICATIONS",
            "### CRITICAL NUANCES & CONSTRAINTS",
            "**Final Output:**",
        ]
        positions = [prompt.index(m) for m in markers]
        assert positions == sorted(positions)
        assert prompt.rstrip().endswith("Do not add any text or watermarks.")

    def test_preservation_rule_is_the_overriding_priority(self) -> None:
        prompt = build_generation_prompt(_config(subject_type=SubjectType.humanoid_creature))
        assert "**This is the most important rule:**" in prompt
        assert "secondary to this core objective" in prompt
        assert "exact same humanoid creature" in prompt


class TestWorkedExample:
    """Profile-left smiling male with random hair."""

    @pytest.fixture
    def prompt(self) -> str:
        config = GenerationConfig(
            horizontal_angle=AngleX.profile_left,
            vertical_angle=AngleY.level_view,
            expression=Expression.smiling,
            subject_type=SubjectType.male,
            output_resolution=OutputResolution.r1024,
            lock_gaze=False,
            hair=ModifierSlot(value="", random=True),
            background=ModifierSlot(value="", random=False),
            clothing=ModifierSlot(value="", random=False),
        )
        return build_generation_prompt(config, random.Random(0))

    def test_contains_expected_fragments(self, prompt: str) -> None:
        assert "-90°" in prompt
        assert "**Smiling**" in prompt
        assert "1024x1024" in prompt
        assert "Identity Preservation" in prompt

    def test_hair_line_is_random_instruction(self, prompt: str) -> None:
        assert "- **Hair:** Randomly select a probabilistically likely hair style" in prompt

    def test_defaults_for_empty_slots(self, prompt: str) -> None:
        assert "- **Clothing:** Maintain original clothing style." in prompt
        assert "- **Background:** Neutral studio gray background." in prompt


class TestOptimizationPrompt:
    """Tests for build_optimization_prompt()."""

    def test_contains_resolution_and_gray(self) -> None:
        prompt = build_optimization_prompt("768x768")
        assert "768x768" in prompt
        assert NEUTRAL_GRAY_HEX == "#808080"
        assert "#808080" in prompt

    def test_accepts_enum(self) -> None:
        assert "512x512" in build_optimization_prompt(OutputResolution.r512)

    def test_is_subject_agnostic(self) -> None:
        prompt = build_optimization_prompt("768x768")
        for subject in SubjectType:
            assert subject.value not in prompt
        assert "object" not in prompt.lower()
        assert "You are" not in prompt
        for persona, rule_name in EXPECTED_CLASS.values():
            assert persona not in prompt
            assert rule_name not in prompt

    def test_workflow_steps_in_order(self) -> None:
        prompt = build_optimization_prompt("1024x1024")
        steps = [
            "Step 1: Analyze for Cropping",
            "Step 2: Non-Destructive Outfill",
            "Step 3: Frame the Composition",
            "Step 4: Replace Background",
        ]
        positions = [prompt.index(s) for s in steps]
        assert positions == sorted(positions)
        assert "1:1 uniform scale" in prompt


class TestMalformedResolution:
    """Both builders fail fast on a bad resolution."""

    @pytest.mark.parametrize("bad", ["1024", "big", "1024*1024", ""])
    def test_optimization_prompt_rejects(self, bad: str) -> None:
        with pytest.raises(ResolutionFormatError):
            build_optimization_prompt(bad)

    def test_generation_prompt_rejects(self) -> None:
        config = GenerationConfig.model_construct(output_resolution="1024by1024")
        with pytest.raises(ResolutionFormatError):
            build_generation_prompt(config, random.Random(0))
