# /stepflow/models/domain.py

import re
import logging
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

# Pydantic models for the scheduling backend's records. Unknown fields in the
# API payloads are ignored.

logger = logging.getLogger(__name__)

# Acuity sends offsets without a colon ("2016-02-03T14:00:00-0800").
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_timestamp(value: str) -> datetime:
    """Parses an ISO-8601 timestamp, accepting both +HHMM and +HH:MM offsets."""
    normalized = value.strip().replace("Z", "+00:00")
    normalized = _COMPACT_OFFSET_RE.sub(r"\1:\2", normalized)
    return datetime.fromisoformat(normalized)


def format_timestamp(value: str) -> str:
    """Formats a timestamp as e.g. 'Feb 3, 2:00pm', in the timestamp's own offset."""
    moment = parse_timestamp(value)
    hour = moment.hour % 12 or 12
    meridiem = "am" if moment.hour < 12 else "pm"
    return f"{moment:%b} {moment.day}, {hour}:{moment:%M}{meridiem}"


class AppointmentType(BaseModel):
    id: int
    name: str
    type: Optional[str] = None
    private: bool = False

    @property
    def is_public_class(self) -> bool:
        return self.type == "class" and not self.private


class ClassSession(BaseModel):
    """One bookable session returned by the availability listing."""
    time: str
    slots_available: Optional[int] = Field(default=None, alias="slotsAvailable")

    model_config = ConfigDict(populate_by_name=True)


class Appointment(BaseModel):
    id: Optional[int] = None
    type: Optional[str] = None
    starts_at: str = Field(..., alias="datetime")
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def starts_at_datetime(self) -> datetime:
        return parse_timestamp(self.starts_at)


class AppointmentRequest(BaseModel):
    appointment_type_id: int = Field(..., alias="appointmentTypeID")
    starts_at: str = Field(..., alias="datetime")
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str

    model_config = ConfigDict(populate_by_name=True)

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True)
