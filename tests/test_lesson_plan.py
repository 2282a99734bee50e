"""Tests for lesson plan rendering."""

from lyceum.session.lesson_plan import (
    LESSON_PLAN_HEADER,
    fallback_guidance,
    format_lesson_plan,
    render_plan_section,
)

FULL_PLAN = {
    "topic": "Why is the sky blue?",
    "diagnosticQuestions": {
        "opening": "What colour is sunlight?",
        "followUps": ["Why not purple?", "What about sunsets?"],
        "misconceptionsToWatch": ["the sky reflects the ocean"],
    },
    "keyConcepts": [
        {"name": "Scattering", "explanation": "light bounces off molecules"},
        {"name": "Wavelength", "buildFrom": "Scattering"},
    ],
    "scaffoldingStrategies": {
        "forStrong": ["Ask for a prediction about Mars"],
        "forStruggling": ["Use a torch and milk analogy"],
    },
    "challengeQuestion": {
        "question": "Why are clouds white?",
        "scaffoldingIfStruggling": "compare droplet size to wavelength",
    },
    "transferConnections": {"domains": ["photography", "astronomy"]},
    "reflectionPrompts": ["What surprised you?"],
    "timeAllocation": {"diagnostic": 4, "scaffolding": 12, "reflection": 4},
}


def test_full_plan_renders_every_section():
    text = format_lesson_plan(FULL_PLAN)
    for heading in (
        "# LESSON PLAN FOR: Why is the sky blue?",
        "## DIAGNOSTIC PHASE",
        "## KEY CONCEPTS (in order)",
        "## SCAFFOLDING STRATEGIES",
        "## CHALLENGE QUESTION",
        "## TRANSFER",
        "## REFLECTION",
        "## TIME BUDGET",
    ):
        assert heading in text
    assert 'Opening Question: "What colour is sunlight?"' in text
    assert '"Why not purple?", "What about sunsets?"' in text
    assert "2. Wavelength (builds from: Scattering)" in text
    assert "- Scaffolding: 12min" in text
    assert "Deepening" not in text


def test_partial_plan_skips_missing_sections():
    text = format_lesson_plan({"reflectionPrompts": ["Summarise in three points"]}, "Tides")
    assert text.startswith("# LESSON PLAN FOR: Tides")
    assert "## REFLECTION" in text
    assert "## DIAGNOSTIC PHASE" not in text
    assert "## TIME BUDGET" not in text
    assert text.endswith("use these specific questions and strategies.")


def test_render_prefers_generator_rendering():
    text = render_plan_section("Tides", "none", FULL_PLAN, "# LESSON PLAN FOR: Tides\nGo.")
    assert text == f"{LESSON_PLAN_HEADER}\n\n# LESSON PLAN FOR: Tides\nGo."


def test_render_formats_structured_plan():
    text = render_plan_section("Sky", "none", FULL_PLAN, None)
    assert text.startswith(LESSON_PLAN_HEADER)
    assert "## KEY CONCEPTS (in order)" in text


def test_render_falls_back_without_plan():
    text = render_plan_section("Tides", "the moon pulls water", None, "   ")
    assert text == f"{LESSON_PLAN_HEADER}\n\n{fallback_guidance('Tides', 'the moon pulls water')}"
    assert "Socratically" in text


def test_wrongly_typed_sections_are_skipped():
    text = format_lesson_plan(
        {
            "diagnosticQuestions": "ask what they know",
            "keyConcepts": {"name": "Gravity"},
            "scaffoldingStrategies": {"forStrong": "go faster", "forStruggling": None},
            "transferConnections": {"domains": "surfing"},
            "reflectionPrompts": ["What pulls the sea?"],
            "timeAllocation": [4, 12],
        },
        "Tides",
    )
    assert "## REFLECTION" in text
    for heading in ("DIAGNOSTIC", "KEY CONCEPTS", "SCAFFOLDING", "TRANSFER", "TIME BUDGET"):
        assert f"## {heading}" not in text


def test_render_falls_back_for_non_object_plan():
    text = render_plan_section("Tides", "the moon", ["step one"], None)
    assert text == f"{LESSON_PLAN_HEADER}\n\n{fallback_guidance('Tides', 'the moon')}"
