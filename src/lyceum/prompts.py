"""
Tutor instructions — the session prompt and the sections merged into it.

The engine keeps only the latest instructions string, so every
session.update sends the full composition: base prompt, then the lesson
plan once one exists, then the most recent time update.
"""

from __future__ import annotations

from typing import Any, Sequence

from lyceum.session.models import TopicOption

NEW_LEARNER_SESSION_THRESHOLD = 3

TUTOR_IDENTITY = """# IDENTITY: OXFORD TUTOR

You are a tutor in the manner of an Oxford don running a one-on-one tutorial.
You do not lecture. You ask questions that make the learner think, test their
reasoning, and let them do the intellectual work. Be warm but rigorous.

Your voice: calm, measured, thoughtful. A scholar, not an entertainer."""

TOOLS_SECTION = """# TOOLS (Use Silently)
Call these without ever announcing them:
- present_topic_option: as you present each of the 3 topic options
- confirm_topic_selection: when the learner picks an option
- select_topic: after confirmation, once they say what they already know
- transition_phase: when you move between tutorial phases
- log_skill_observation: when you notice something about their thinking
- create_open_loop: when they are curious about something for a future session
- display_visual: when a diagram or visual would help (set it up verbally first)
- update_lesson_plan: when you change your approach
- flag_misconception: when you detect an incorrect belief"""

SESSION_STRUCTURE = """# SESSION STRUCTURE (~30 minutes)

## Warm Entry (2-4 min)
- Greet them warmly{greeting_name}.
- Present the 3 topics: "First, ...", "Second, ...", "And third, ...",
  calling present_topic_option for each, then ask which sounds most interesting.
- When they choose, call confirm_topic_selection, ask what they already know
  or what their gut feeling is, then call select_topic.

## Diagnostic (3-5 min)
Simple, open questions to gauge their level. Log what you discover.

## Scaffolded Building (10-15 min)
Introduce concepts in order of complexity, following the lesson plan.
Define technical terms first. Explain in small chunks, then check understanding.

## Deepening (5-10 min)
Pose the challenge question. Let them struggle; press on their reasoning.

## Transfer (3-5 min)
Connect the idea to other domains and to their own life.

## Reflection (3-5 min)
Ask for a three-point summary and what surprised them. Close warmly."""

CRITICAL_RULES = """# CRITICAL RULES
- If the learner is silent, let them think before checking in.
- Never lecture for more than 2 minutes without checking understanding.
- Never announce tool calls.
- Always define technical terms before using them.
- Match the learner's language if intelligible; default to English."""

_AGE_CONTEXT = {
    "13-15": (
        "TEENAGER (13-15): Use accessible language, narrative explanations "
        "and relatable examples. Avoid jargon."
    ),
    "16-18": (
        "OLDER TEEN (16-18): Can handle complexity but appreciates engaging "
        "framing. Introduce technical terms with definitions."
    ),
    "19-25": "YOUNG ADULT (19-25): Full complexity is fine. Be direct and challenging.",
    "26+": "ADULT (26+): Full complexity. Appreciates efficiency and rigour.",
}
_AGE_UNKNOWN = "AGE UNKNOWN: Default to accessible but not condescending language."

_TREND_MARKS = {"improving": "↑", "declining": "↓"}


def age_context(age_bracket: str | None) -> str:
    return _AGE_CONTEXT.get(age_bracket or "", _AGE_UNKNOWN)


def age_from_bracket(age_bracket: str | None) -> int | None:
    """Lower bound of a bracket: "13-15" -> 13, "26+" -> 26."""
    if not age_bracket:
        return None
    head = age_bracket.split("-", 1)[0].rstrip("+").strip()
    try:
        return int(head)
    except ValueError:
        return None


def _names(items: Any, key: str | None = None) -> list[str]:
    out = []
    for item in items or []:
        if key and isinstance(item, dict):
            value = item.get(key)
        else:
            value = item
        if value:
            out.append(str(value))
    return out


def _skill_lines(skills: Any) -> str:
    if not skills:
        return "No skill data yet - observe and log as you go."
    lines = []
    for skill in skills:
        if not isinstance(skill, dict):
            continue
        mark = _TREND_MARKS.get(skill.get("trend", ""), "→")
        line = f"{skill.get('name', '?')}: {skill.get('level', '?')}/10 {mark}"
        if skill.get("notes"):
            line += f" ({skill['notes']})"
        lines.append(line)
    return "\n".join(lines) or "No skill data yet - observe and log as you go."


def _profile_section(
    profile: dict[str, Any],
    user_name: str | None,
    age_bracket: str | None,
    session_count: int,
) -> str:
    known = [
        f"{t.get('name')} ({t.get('level', '?')})"
        for t in profile.get("known_topics") or []
        if isinstance(t, dict) and t.get("name")
    ]
    style = (profile.get("cognitive_style") or {}).get("approach") or "unknown"
    lines = [
        "# LEARNER PROFILE",
        f"Name: {user_name or 'Unknown'}",
        age_context(age_bracket),
        f"Session Count: {session_count}",
    ]
    if session_count < NEW_LEARNER_SESSION_THRESHOLD:
        lines.append(
            f"NEW LEARNER (session {session_count + 1}): be extra welcoming, "
            "prioritise engagement over coverage, build their confidence."
        )
    lines += [
        "",
        f"Interests: {', '.join(_names(profile.get('interest_tags'))) or 'Unknown'}",
        f"Known Topics: {', '.join(known) or 'None yet'}",
        f"Recent Topics: {', '.join(_names(profile.get('recent_topics'))) or 'None'}",
        f"Cognitive Style: {style}",
        "",
        "Skill Levels:",
        _skill_lines(profile.get("skill_dimensions")),
        "",
        "Open Loops: "
        + ("; ".join(_names(profile.get("open_loops"), "content")) or "None"),
        "Known Misconceptions: "
        + (
            "; ".join(_names(profile.get("misconceptions_flagged"), "misconception"))
            or "None"
        ),
    ]
    return "\n".join(lines)


def _topics_section(topics: Sequence[TopicOption]) -> str:
    if not topics:
        body = "No pre-generated topics - offer to explore what interests them."
    else:
        body = "\n".join(
            f'{i}. "{t.title}" - {t.description} [{t.difficulty}]'
            for i, t in enumerate(topics, 1)
        )
    return f"# TODAY'S TOPIC OPTIONS\n{body}"


def build_tutor_instructions(
    profile: dict[str, Any] | None,
    topics: Sequence[TopicOption] = (),
    session_count: int = 0,
    age_bracket: str | None = None,
    user_name: str | None = None,
) -> str:
    """The base session prompt, built once when the channel opens."""
    greeting_name = f' ("Hi {user_name}! Great to see you.")' if user_name else ""
    return "\n\n".join(
        [
            TUTOR_IDENTITY,
            TOOLS_SECTION,
            _profile_section(profile or {}, user_name, age_bracket, session_count),
            _topics_section(topics),
            SESSION_STRUCTURE.format(greeting_name=greeting_name),
            CRITICAL_RULES,
        ]
    )


def time_update_instruction(
    minutes_remaining: int,
    far: int = 10,
    near: int = 5,
    imminent: int = 3,
) -> str:
    """Time-remaining notice; urgency escalates at each threshold."""
    text = f"[TIME UPDATE: {minutes_remaining} minutes remaining]"
    if minutes_remaining <= imminent:
        return (
            text + "\nFINAL MINUTES: complete the current thought, ask for a "
            "3-point summary and close warmly. Do NOT start new topics."
        )
    if minutes_remaining <= near:
        return (
            text + "\nBEGIN WRAP-UP: move to the reflection phase, ask what "
            "surprised them, start closing."
        )
    if minutes_remaining <= far:
        return (
            text + "\nStart wrapping the current concept and move toward "
            "transfer and reflection. No major new ideas."
        )
    return text + "\nPace accordingly."


def compose_instructions(
    base: str,
    lesson_plan: str | None = None,
    time_update: str | None = None,
) -> str:
    sections = [base]
    if lesson_plan:
        sections.append(lesson_plan)
    if time_update:
        sections.append(time_update)
    return "\n\n".join(sections)
