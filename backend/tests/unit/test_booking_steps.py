# backend/tests/unit/test_booking_steps.py
import pytest

from stepflow.models.domain import Appointment
from stepflow.models.flow import MessageEntity, Postback, SenderProfile
from stepflow.workflows.base import TurnContext
from stepflow.workflows.errors import ExtractionError
from stepflow.workflows.steps import (
    BookAppointment,
    GetAppointments,
    GetAppointmentType,
    GetDatetime,
    GetEmail,
    GetName,
)


def _ctx(store, turn_services, make_event, stream="bookClass", state=None, **event_kwargs):
    return TurnContext("conv-1", stream, make_event(**event_kwargs), state or {}, store, turn_services)


def test_appointment_type_comes_from_reply_option(make_event):
    step = GetAppointmentType()
    event = make_event(postback=Postback(stream="bookClass", data={"appointmentTypeID": "12"}))
    assert step.extract_info({}, event) == {"appointmentTypeID": 12}
    assert step.extract_info({}, make_event()) == {}


def test_malformed_appointment_type_raises(make_event):
    event = make_event(postback=Postback(data={"appointmentTypeID": "yoga"}))
    with pytest.raises(ExtractionError):
        GetAppointmentType().extract_info({}, event)


@pytest.mark.asyncio
async def test_appointment_type_prompt_lists_public_classes(store, turn_services, make_event):
    ctx = _ctx(store, turn_services, make_event)
    await GetAppointmentType().prompt(ctx)

    assert ctx.completed
    response = ctx.responses[0]
    assert response.response_key == "prompt/type"
    assert [(o.label, o.stream, o.data) for o in response.reply_options] == [
        ("Yoga", "bookClass", {"appointmentTypeID": 1}),
    ]


def test_datetime_must_parse(make_event):
    step = GetDatetime()
    good = make_event(postback=Postback(data={"datetime": "2016-02-03T14:00:00-0800"}))
    bad = make_event(postback=Postback(data={"datetime": "next tuesday"}))
    assert step.extract_info({}, good) == {"datetime": "2016-02-03T14:00:00-0800"}
    with pytest.raises(ExtractionError):
        step.extract_info({}, bad)


@pytest.mark.asyncio
async def test_datetime_prompt_lists_this_months_sessions(store, scheduling, turn_services, make_event, fixed_clock):
    ctx = _ctx(store, turn_services, make_event, state={"appointmentTypeID": 1})
    await GetDatetime(fixed_clock).prompt(ctx)

    scheduling.list_availability.assert_awaited_once_with(1, "2016-02")
    options = ctx.responses[0].reply_options
    assert [o.label for o in options] == ["Feb 3, 2:00pm", "Feb 5, 9:30am"]
    assert options[0].data == {"datetime": "2016-02-03T14:00:00-0800"}


def test_name_entities_take_precedence_over_profile(make_event):
    event = make_event(
        message_entities=[MessageEntity(role="firstName", value="Grace")],
        sender_profile=SenderProfile(first_name="Ada", last_name="Lovelace"),
    )
    assert GetName().extract_info({}, event) == {"firstName": "Grace", "lastName": "Lovelace"}


def test_name_requires_both_parts():
    step = GetName()
    assert not step.satisfied({"firstName": "Ada"})
    assert step.satisfied({"firstName": "Ada", "lastName": "Lovelace"})


def test_email_entity_extraction(make_event):
    event = make_event(message_entities=[MessageEntity(role="email/email", value="ada@example.com")])
    assert GetEmail().extract_info({}, event) == {"email": "ada@example.com"}
    assert GetEmail().extract_info({}, make_event(text="no idea")) == {}


@pytest.mark.asyncio
async def test_email_prompt_in_default_stream_sets_no_expectation(store, turn_services, make_event):
    ctx = _ctx(store, turn_services, make_event, stream="bookClass")
    await GetEmail().prompt(ctx)

    assert ctx.responses[0].response_key == "prompt/email"
    assert not ctx.expectation_changed
    assert await store.get_expectation("conv-1") is None


@pytest.mark.asyncio
async def test_booking_with_incomplete_state_raises(store, scheduling, turn_services, make_event):
    ctx = _ctx(store, turn_services, make_event, state={"appointmentTypeID": 1})
    with pytest.raises(ValueError):
        await BookAppointment().prompt(ctx)
    scheduling.create_appointment.assert_not_awaited()


@pytest.mark.asyncio
async def test_booking_sends_api_field_names(store, scheduling, turn_services, make_event):
    state = {
        "appointmentTypeID": 1,
        "datetime": "2016-02-03T14:00:00-0800",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
    }
    await store.merge("conv-1", state)
    ctx = _ctx(store, turn_services, make_event, state=state)

    await BookAppointment().prompt(ctx)

    request = scheduling.create_appointment.await_args.args[0]
    assert request.to_api() == state
    assert ctx.state == {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"}


@pytest.mark.asyncio
async def test_upcoming_appointments_are_listed_in_time_order(store, scheduling, turn_services, make_event, fixed_clock):
    scheduling.list_appointments.return_value = [
        Appointment(type="Pilates", starts_at="2016-02-10T08:00:00-0800"),
        Appointment(type="Yoga", starts_at="2016-02-03T14:00:00-0800"),
        Appointment(type="Spin", starts_at="2016-02-03T23:00:00+0000"),
    ]
    ctx = _ctx(store, turn_services, make_event, stream="getBookings", state={"email": "ada@example.com"})

    await GetAppointments(fixed_clock).prompt(ctx)

    response = ctx.responses[0]
    assert response.response_key == "upcoming/appointments"
    assert response.entities["number/count"] == 3
    assert response.entities["classes"] == (
        "\nFeb 3, 2:00pm: Yoga, \nFeb 3, 11:00pm: Spin, \nFeb 10, 8:00am: Pilates"
    )
    assert ctx.expectation_changed and ctx.expectation is None
