# /stepflow/workflows/definitions.py

"""
Flow declaration for the class-booking assistant.

Two streams share the e-mail step:
- bookClass (the default): pick a class, pick a session, give a name and an
  e-mail address, then book
- getBookings (on the 'check' intent): give an e-mail address, then list the
  upcoming bookings
"""

from stepflow.workflows.base import FlowSpec
from stepflow.workflows.steps import (
    BOOK_CLASS_STREAM,
    GET_BOOKINGS_STREAM,
    BookAppointment,
    Clock,
    GetAppointments,
    GetAppointmentType,
    GetDatetime,
    GetEmail,
    GetName,
    utcnow,
)

STREAMS = {
    BOOK_CLASS_STREAM: ["get_appointment_type", "get_datetime", "get_name", "get_email", "book_appointment"],
    GET_BOOKINGS_STREAM: ["get_email", "get_appointments"],
}

CLASSIFICATIONS = {
    "check": GET_BOOKINGS_STREAM,
}


def build_booking_flow(clock: Clock = utcnow) -> FlowSpec:
    return FlowSpec.build(
        steps=[
            GetAppointmentType(),
            GetDatetime(clock),
            GetName(),
            GetEmail(),
            BookAppointment(),
            GetAppointments(clock),
        ],
        streams=STREAMS,
        main=BOOK_CLASS_STREAM,
        classifications=CLASSIFICATIONS,
    )
