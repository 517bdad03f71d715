# backend/tests/integration/test_conversation.py
import pytest
from unittest.mock import AsyncMock, MagicMock

from stepflow.models.flow import Invocation, MessageEntity, Postback, SenderProfile, TurnOutcome
from stepflow.workflows.dispatcher import TurnDispatcher

INVOCATION = Invocation(invocation_id="inv-1", app_id="app-1", app_user_id="user-1")


@pytest.mark.asyncio
async def test_full_booking_conversation(booking_engine, store, scheduling, turn_services, make_event):
    """Walks a user from greeting to a confirmed booking through the dispatcher."""
    from contextlib import asynccontextmanager

    @asynccontextmanager
    async def services_factory():
        yield turn_services

    delivery = MagicMock()
    delivery.deliver = AsyncMock(return_value=True)
    dispatcher = TurnDispatcher(booking_engine, delivery=delivery, services_factory=services_factory)
    profile = SenderProfile(first_name="Ada", last_name="Lovelace")

    greeting = await dispatcher.dispatch(make_event(text="hi", sender_profile=profile), INVOCATION)
    assert greeting.step == "get_appointment_type"
    yoga = greeting.responses[0].reply_options[0]

    picked_type = await dispatcher.dispatch(
        make_event(postback=Postback(stream=yoga.stream, data=yoga.data), sender_profile=profile), INVOCATION)
    assert picked_type.step == "get_datetime"
    session = picked_type.responses[0].reply_options[0]

    # Name comes from the sender profile, so the next question is the e-mail.
    picked_time = await dispatcher.dispatch(
        make_event(postback=Postback(stream=session.stream, data=session.data), sender_profile=profile), INVOCATION)
    assert picked_time.step == "get_email"

    booked = await dispatcher.dispatch(
        make_event(message_entities=[MessageEntity(role="email/email", value="ada@example.com")]), INVOCATION)
    assert booked.step == "book_appointment"
    assert booked.outcome == TurnOutcome.PROMPTED
    assert booked.responses[0].response_key == "confirmation"

    scheduling.create_appointment.assert_awaited_once()
    request = scheduling.create_appointment.await_args.args[0]
    assert request.appointment_type_id == 1
    assert request.starts_at == "2016-02-03T14:00:00-0800"
    assert request.first_name == "Ada"
    assert delivery.deliver.await_count == 4

    state = await store.get("conv-1")
    assert state == {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"}
