# backend/tests/unit/test_flow_spec.py
import pytest

from stepflow.workflows.base import FlowSpec, Step, TerminalStep, create_step
from stepflow.workflows.definitions import build_booking_flow
from stepflow.workflows.errors import FlowSpecError
from stepflow.workflows.validator import (
    validate_classifications,
    validate_flow_spec,
    validate_stream_name,
)


async def _noop(ctx):
    ctx.done()


def _steps(*names):
    return [create_step(name, _noop, satisfied=lambda state: False) for name in names]


def test_booking_flow_is_valid():
    flow = build_booking_flow()
    assert flow.main == "bookClass"
    assert flow.classifications == {"check": "getBookings"}
    assert [step.name for step in flow.stream_steps("getBookings")] == ["get_email", "get_appointments"]


def test_shared_step_is_one_instance():
    flow = build_booking_flow()
    assert flow.stream_steps("bookClass")[3] is flow.stream_steps("getBookings")[0]


def test_unknown_main_stream_rejected():
    with pytest.raises(FlowSpecError, match="UNKNOWN_MAIN_STREAM"):
        FlowSpec.build(_steps("a"), {"one": ["a"]}, main="missing")


def test_unknown_step_reference_rejected():
    with pytest.raises(FlowSpecError, match="UNKNOWN_STEP"):
        FlowSpec.build(_steps("a"), {"one": ["a", "b"]}, main="one")


def test_empty_stream_rejected():
    with pytest.raises(FlowSpecError, match="EMPTY_STREAM_STEPS"):
        FlowSpec.build(_steps("a"), {"one": ["a"], "two": []}, main="one")


def test_classification_to_unknown_stream_rejected():
    with pytest.raises(FlowSpecError, match="UNKNOWN_CLASSIFICATION_TARGET"):
        FlowSpec.build(_steps("a"), {"one": ["a"]}, main="one", classifications={"check": "nowhere"})


def test_duplicate_step_names_rejected():
    with pytest.raises(FlowSpecError):
        FlowSpec.build(_steps("a", "a"), {"one": ["a"]}, main="one")


def test_nameless_step_rejected():
    with pytest.raises(FlowSpecError):
        FlowSpec.build(_steps(""), {"one": [""]}, main="one")


def test_validators_report_without_raising():
    flow = build_booking_flow()
    assert validate_flow_spec(flow)["is_valid"] is True
    assert validate_stream_name(flow, "")["error_code"] == "EMPTY_STREAM"
    assert validate_stream_name(flow, "getBookings")["is_valid"] is True
    assert validate_classifications(flow)["is_valid"] is True


def test_create_step_without_predicate_is_terminal():
    step = create_step("final", _noop)
    assert step.satisfied({"anything": 1}) is False
    assert step.extract_info({}, None) == {}


def test_step_without_prompt_cannot_be_instantiated():
    class Incomplete(Step):
        name = "incomplete"

        def satisfied(self, state):
            return False

    with pytest.raises(TypeError):
        Incomplete()


def test_terminal_step_only_needs_a_prompt():
    class Finish(TerminalStep):
        name = "finish"

        async def prompt(self, ctx):
            ctx.done()

    assert Finish().satisfied({}) is False
