"""
Lesson plan rendering — turns a structured plan into prompt text.

The plan comes from an external generator and may be partial, so every
section renders only when its fields are present. A missing plan falls
back to generic Socratic guidance for the chosen topic.
"""

from __future__ import annotations

from typing import Any

LESSON_PLAN_HEADER = (
    "[LESSON PLAN GENERATED - Follow this plan while staying responsive to the learner]"
)


def _obj(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _seq(value: Any) -> list:
    return value if isinstance(value, list) else []


def _joined(items: list[Any]) -> str:
    return ", ".join(str(item) for item in items)


def _quoted(items: list[Any]) -> str:
    return ", ".join(f'"{item}"' for item in items)


def _bullets(items: list[Any], quote: bool = False) -> list[str]:
    return [f'- "{item}"' if quote else f"- {item}" for item in items]


def _diagnostic(section: dict) -> list[str]:
    lines = []
    if section.get("opening"):
        lines.append(f'Opening Question: "{section["opening"]}"')
    if _seq(section.get("followUps")):
        lines.append(f"Follow-ups to ask: {_quoted(section['followUps'])}")
    if _seq(section.get("misconceptionsToWatch")):
        lines.append(
            f"Watch for misconceptions: {_joined(section['misconceptionsToWatch'])}"
        )
    return lines


def _concepts(concepts: list[dict]) -> list[str]:
    lines = []
    for i, concept in enumerate(concepts, 1):
        if not isinstance(concept, dict) or not concept.get("name"):
            continue
        line = f"{i}. {concept['name']}"
        if concept.get("explanation"):
            line += f": {concept['explanation']}"
        if concept.get("buildFrom"):
            line += f" (builds from: {concept['buildFrom']})"
        lines.append(line)
    return lines


def _scaffolding(section: dict) -> list[str]:
    lines: list[str] = []
    if _seq(section.get("forStrong")):
        lines.append("If they're STRONG (articulate, connecting ideas):")
        lines.extend(_bullets(section["forStrong"]))
    if _seq(section.get("forStruggling")):
        if lines:
            lines.append("")
        lines.append("If they're STRUGGLING (confused, silent, vague):")
        lines.extend(_bullets(section["forStruggling"]))
    return lines


def _challenge(section: dict) -> list[str]:
    lines = []
    if section.get("question"):
        lines.append(f'"{section["question"]}"')
    if section.get("strongResponsePattern"):
        lines.append(f"- Strong response looks like: {section['strongResponsePattern']}")
    if section.get("strugglingResponsePattern"):
        lines.append(
            f"- Struggling response looks like: {section['strugglingResponsePattern']}"
        )
    if section.get("scaffoldingIfStruggling"):
        lines.append(f"- If struggling, scaffold: {section['scaffoldingIfStruggling']}")
    return lines


def _transfer(section: dict) -> list[str]:
    lines = []
    if _seq(section.get("domains")):
        lines.append(f"Connect to: {_joined(section['domains'])}")
    if section.get("promptQuestion"):
        lines.append(f'Prompt: "{section["promptQuestion"]}"')
    return lines


_TIME_BUDGET_ORDER = ("diagnostic", "scaffolding", "deepening", "transfer", "reflection")


def _time_budget(section: dict) -> list[str]:
    return [
        f"- {phase.capitalize()}: {section[phase]}min"
        for phase in _TIME_BUDGET_ORDER
        if section.get(phase) is not None
    ]


def format_lesson_plan(plan: dict[str, Any], topic_title: str = "") -> str:
    """Render whichever plan sections are present."""
    topic = plan.get("topic") or topic_title
    blocks: list[str] = [f"# LESSON PLAN FOR: {topic}"] if topic else []

    sections: list[tuple[str, list[str]]] = [
        ("DIAGNOSTIC PHASE", _diagnostic(_obj(plan.get("diagnosticQuestions")))),
        ("KEY CONCEPTS (in order)", _concepts(_seq(plan.get("keyConcepts")))),
        ("SCAFFOLDING STRATEGIES", _scaffolding(_obj(plan.get("scaffoldingStrategies")))),
        ("CHALLENGE QUESTION", _challenge(_obj(plan.get("challengeQuestion")))),
        ("TRANSFER", _transfer(_obj(plan.get("transferConnections")))),
        ("REFLECTION", _bullets(_seq(plan.get("reflectionPrompts")), quote=True)),
        ("TIME BUDGET", _time_budget(_obj(plan.get("timeAllocation")))),
    ]
    for title, lines in sections:
        if lines:
            blocks.append("\n".join([f"## {title}", *lines]))

    blocks.append(
        "FOLLOW THIS PLAN while staying responsive to the learner. "
        "Adapt as needed but use these specific questions and strategies."
    )
    return "\n\n".join(blocks)


def fallback_guidance(topic_title: str, prior_knowledge: str) -> str:
    """Generic Socratic guidance used when no plan could be generated."""
    return "\n".join(
        [
            f"# LESSON PLAN FOR: {topic_title}",
            "",
            "No detailed plan is available. Guide the session Socratically:",
            f"- Start from what they already know: {prior_knowledge}.",
            "- Ask one open question at a time and let them reason aloud.",
            "- Build each new idea from their own words before adding your own.",
            "- Ask for causes and evidence; have them to predict before explaining.",
            "- Close by asking them to summarise what changed in their thinking.",
        ]
    )


def render_plan_section(
    topic_title: str,
    prior_knowledge: str,
    lesson_plan: dict[str, Any] | None,
    formatted_plan: str | None,
) -> str:
    """
    Pick the plan text to inject: the generator's own rendering, else our
    rendering of the structured plan, else the generic fallback.
    """
    if formatted_plan and formatted_plan.strip():
        body = formatted_plan.strip()
    elif isinstance(lesson_plan, dict) and lesson_plan:
        body = format_lesson_plan(lesson_plan, topic_title)
    else:
        body = fallback_guidance(topic_title, prior_knowledge)
    return f"{LESSON_PLAN_HEADER}\n\n{body}"
