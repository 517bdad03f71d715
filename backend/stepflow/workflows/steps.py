# /stepflow/workflows/steps.py

"""
Steps of the class-booking example flow.

Information-gathering steps read reply-option payloads (appointment type,
session time) or NLU entities (name, e-mail) and are satisfied once the value
is in the conversation state. The two terminal steps book the class and list
upcoming bookings.
"""

from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from stepflow.models.domain import AppointmentRequest, format_timestamp, parse_timestamp
from stepflow.workflows.base import Step, TerminalStep, TurnContext
from stepflow.workflows.errors import ExtractionError

BOOK_CLASS_STREAM = "bookClass"
GET_BOOKINGS_STREAM = "getBookings"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GetAppointmentType(Step):
    name = "get_appointment_type"

    def extract_info(self, state, event):
        raw = event.postback_data.get("appointmentTypeID")
        if raw is None:
            return {}
        try:
            return {"appointmentTypeID": int(raw)}
        except (TypeError, ValueError) as e:
            raise ExtractionError(f"Invalid appointmentTypeID {raw!r}") from e

    def satisfied(self, state):
        return bool(state.get("appointmentTypeID"))

    async def prompt(self, ctx: TurnContext):
        appointment_types = await ctx.services.scheduling.list_appointment_types()
        replies = [
            ctx.make_reply_option(appointment_type.name, {"appointmentTypeID": appointment_type.id}, stream=BOOK_CLASS_STREAM)
            for appointment_type in appointment_types
            if appointment_type.is_public_class
        ]
        ctx.add_response("prompt/type", reply_options=replies)
        ctx.done()


class GetDatetime(Step):
    name = "get_datetime"

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock

    def extract_info(self, state, event):
        raw = event.postback_data.get("datetime")
        if raw is None:
            return {}
        try:
            parse_timestamp(str(raw))
        except ValueError as e:
            raise ExtractionError(f"Invalid session datetime {raw!r}") from e
        return {"datetime": str(raw)}

    def satisfied(self, state):
        return bool(state.get("datetime"))

    async def prompt(self, ctx: TurnContext):
        month = self.clock().strftime("%Y-%m")
        sessions = await ctx.services.scheduling.list_availability(ctx.state["appointmentTypeID"], month)
        replies = [
            ctx.make_reply_option(format_timestamp(session.time), {"datetime": session.time}, stream=BOOK_CLASS_STREAM)
            for session in sessions
        ]
        ctx.add_response("prompt/datetime", reply_options=replies)
        ctx.done()


class GetName(Step):
    name = "get_name"

    def extract_info(self, state, event):
        sender = event.sender_profile
        first_name = event.first_entity_with_role("firstName") or (sender.first_name if sender else None)
        last_name = event.first_entity_with_role("lastName") or (sender.last_name if sender else None)
        update = {}
        if first_name:
            update["firstName"] = first_name
        if last_name:
            update["lastName"] = last_name
        return update

    def satisfied(self, state):
        return bool(state.get("firstName") and state.get("lastName"))

    async def prompt(self, ctx: TurnContext):
        ctx.add_response("prompt/name")
        ctx.done()


class GetEmail(Step):
    name = "get_email"

    def extract_info(self, state, event):
        email = event.first_entity_with_role("email/email")
        return {"email": email} if email else {}

    def satisfied(self, state):
        return bool(state.get("email"))

    async def prompt(self, ctx: TurnContext):
        ctx.add_response("prompt/email")
        # Shared with getBookings: outside the default stream the answer has to
        # come back to the stream that asked for it.
        if ctx.stream_name != BOOK_CLASS_STREAM:
            await ctx.expect(ctx.stream_name, ["provide/email"])
        ctx.done()


class BookAppointment(TerminalStep):
    name = "book_appointment"

    async def prompt(self, ctx: TurnContext):
        state = ctx.state
        try:
            details = AppointmentRequest.model_validate(state)
        except ValidationError as e:
            raise ValueError(f"Booking state is incomplete: {e}") from e

        appointment = await ctx.services.scheduling.create_appointment(details)

        # Resets the stream so the user can book again.
        await ctx.update_state({"appointmentTypeID": None, "datetime": None})

        ctx.add_response("confirmation", {
            "type": appointment.type,
            "datetime": format_timestamp(appointment.starts_at),
        })
        ctx.done()


class GetAppointments(TerminalStep):
    name = "get_appointments"

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock

    async def prompt(self, ctx: TurnContext):
        min_date = self.clock().isoformat()
        appointments = await ctx.services.scheduling.list_appointments(ctx.state["email"], min_date)

        if appointments:
            ordered = sorted(appointments, key=lambda appointment: appointment.starts_at_datetime)
            classes = "\n" + ", \n".join(
                f"{format_timestamp(appointment.starts_at)}: {appointment.type}" for appointment in ordered
            )
            ctx.add_response("upcoming/appointments", {
                "number/count": len(appointments),
                "classes": classes,
            })
        else:
            ctx.add_response("upcoming/none")

        await ctx.expect(None)
        ctx.done()
