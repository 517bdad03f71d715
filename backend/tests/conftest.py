import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from dotenv import load_dotenv
from unittest.mock import AsyncMock, MagicMock

# Load environment variables FIRST, before any app imports, so Settings
# sees the test configuration instead of the production defaults.
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env.test")
os.environ.setdefault("ENVIRONMENT", "test")

# Now it's safe to import the application and its components
from stepflow.main import app  # noqa: E402
from stepflow.models.domain import Appointment, AppointmentType, ClassSession  # noqa: E402
from stepflow.models.flow import InboundEvent  # noqa: E402
from stepflow.services.state_store import MemoryConversationStore  # noqa: E402
from stepflow.services.turn_services import TurnServices  # noqa: E402
from stepflow.workflows.definitions import build_booking_flow  # noqa: E402
from stepflow.workflows.engine import FlowEngine  # noqa: E402


FIXED_NOW = "2016-02-01T09:00:00+00:00"


@pytest.fixture
def store():
    return MemoryConversationStore()


@pytest.fixture
def fixed_clock():
    from datetime import datetime
    return lambda: datetime.fromisoformat(FIXED_NOW)


@pytest.fixture
def scheduling():
    """A stand-in for the Acuity client with canned listings."""
    service = MagicMock()
    service.list_appointment_types = AsyncMock(return_value=[
        AppointmentType(id=1, name="Yoga", type="class"),
        AppointmentType(id=2, name="Private Session", type="class", private=True),
        AppointmentType(id=3, name="Consultation", type="service"),
    ])
    service.list_availability = AsyncMock(return_value=[
        ClassSession(time="2016-02-03T14:00:00-0800", slots_available=4),
        ClassSession(time="2016-02-05T09:30:00-0800", slots_available=1),
    ])
    service.list_appointments = AsyncMock(return_value=[])
    service.create_appointment = AsyncMock(return_value=Appointment(
        id=77, type="Yoga", starts_at="2016-02-03T14:00:00-0800",
        first_name="Ada", last_name="Lovelace", email="ada@example.com",
    ))
    return service


@pytest.fixture
def turn_services(scheduling):
    return TurnServices(scheduling=scheduling)


@pytest.fixture
def booking_engine(store, fixed_clock):
    return FlowEngine(build_booking_flow(clock=fixed_clock), store, prompt_timeout=1.0)


@pytest.fixture
def make_event():
    def _make(conversation_id="conv-1", **kwargs):
        return InboundEvent(conversation_id=conversation_id, **kwargs)
    return _make


@pytest.fixture(scope="function")
def test_client():
    """
    Provides a TestClient for API integration tests.
    Turns are not executed: the dispatcher's submit is replaced with a mock.
    """
    # The app's lifespan (startup/shutdown events) is managed by the TestClient
    with TestClient(app) as client:
        client.app.state.dispatcher.submit = MagicMock()
        yield client
