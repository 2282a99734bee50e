"""Tests for the tutor tool vocabulary and argument parsing."""

import pytest

from lyceum.core.errors import ToolArgumentError
from lyceum.realtime.tools import (
    TUTOR_TOOLS,
    ConfirmTopicSelection,
    CreateOpenLoop,
    FlagMisconception,
    PresentTopicOption,
    SelectTopic,
    ToolCall,
    ToolName,
    TransitionPhase,
    parse_arguments,
    parse_bool,
    session_tools,
)
from lyceum.session.models import Priority, SkillName, TutorialPhase


class TestSchemas:
    def test_every_tool_has_a_schema(self):
        assert set(TUTOR_TOOLS) == set(ToolName)
        names = [s["name"] for s in session_tools()]
        assert sorted(names) == sorted(t.value for t in ToolName)

    def test_schema_shape(self):
        schema = TUTOR_TOOLS[ToolName.LOG_SKILL_OBSERVATION].to_realtime_schema()
        assert schema["type"] == "function"
        props = schema["parameters"]["properties"]
        assert props["skill"]["enum"] == [s.value for s in SkillName]
        assert "evidence" not in schema["parameters"]["required"]
        assert "observation" in schema["parameters"]["required"]

    def test_phase_enum_matches_phases(self):
        schema = TUTOR_TOOLS[ToolName.TRANSITION_PHASE].to_realtime_schema()
        assert schema["parameters"]["properties"]["phase"]["enum"] == [
            p.value for p in TutorialPhase
        ]


class TestParseArguments:
    def test_transition_phase(self):
        args = parse_arguments(ToolName.TRANSITION_PHASE, {"phase": "scaffolding"})
        assert args == TransitionPhase(phase=TutorialPhase.SCAFFOLDING, rationale="")

    def test_invalid_phase(self):
        with pytest.raises(ToolArgumentError) as exc:
            parse_arguments(ToolName.TRANSITION_PHASE, {"phase": "lunch"})
        assert exc.value.tool == "transition_phase"

    def test_missing_required_field(self):
        with pytest.raises(ToolArgumentError):
            parse_arguments(ToolName.LOG_SKILL_OBSERVATION, {"skill": "synthesis"})

    def test_open_loop_priority_defaults_to_medium(self):
        args = parse_arguments(
            ToolName.CREATE_OPEN_LOOP, {"topic": "black holes", "context": "asked twice"}
        )
        assert args == CreateOpenLoop("black holes", "asked twice", Priority.MEDIUM)

    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("false", False), ("True", True), (True, True), ("no", False)],
    )
    def test_flag_misconception_addressed(self, raw, expected):
        args = parse_arguments(
            ToolName.FLAG_MISCONCEPTION,
            {"misconception": "heavier falls faster", "topic_area": "gravity", "addressed": raw},
        )
        assert isinstance(args, FlagMisconception)
        assert args.addressed is expected

    def test_option_number_from_string(self):
        args = parse_arguments(
            ToolName.PRESENT_TOPIC_OPTION,
            {"option_number": "2", "title": "Is money real?", "description": "hook"},
        )
        assert args == PresentTopicOption(2, "Is money real?", "hook")

    @pytest.mark.parametrize("raw", ["0", "4", "two"])
    def test_option_number_out_of_range(self, raw):
        with pytest.raises(ToolArgumentError):
            parse_arguments(ToolName.CONFIRM_TOPIC_SELECTION, {"selected_option": raw})

    def test_confirm_selection(self):
        args = parse_arguments(ToolName.CONFIRM_TOPIC_SELECTION, {"selected_option": 3})
        assert args == ConfirmTopicSelection(3)

    def test_select_topic_default_prior_knowledge(self):
        args = parse_arguments(ToolName.SELECT_TOPIC, {"topic_title": "X"})
        assert args == SelectTopic("X", "none stated")

    def test_parse_bool(self):
        assert parse_bool("yes") is True
        assert parse_bool("0") is False


class TestToolCall:
    def test_from_output_item(self):
        call = ToolCall.from_output_item(
            {"name": "select_topic", "call_id": "c1", "arguments": '{"topic_title": "X"}'}
        )
        assert call.tool is ToolName.SELECT_TOPIC
        assert call.arguments == {"topic_title": "X"}
        assert call.malformed is None

    def test_unknown_name(self):
        call = ToolCall.from_output_item({"name": "launch_rocket", "call_id": "c1"})
        assert call.tool is None

    def test_non_object_arguments(self):
        call = ToolCall.from_output_item({"name": "select_topic", "call_id": "c", "arguments": "[1]"})
        assert call.malformed == "arguments are not a JSON object"
