# /stepflow/services/turn_services.py

from contextlib import asynccontextmanager
from dataclasses import dataclass

from stepflow.config.settings import SchedulingConfig
from stepflow.services.scheduling_service import SchedulingService


@dataclass
class TurnServices:
    """Collaborator clients available to prompts during a single turn."""
    scheduling: SchedulingService


def turn_services_factory(config: SchedulingConfig):
    """Returns a factory that builds fresh clients per turn and closes them afterwards."""

    @asynccontextmanager
    async def open_turn_services():
        scheduling = SchedulingService(config)
        try:
            yield TurnServices(scheduling=scheduling)
        finally:
            await scheduling.aclose()

    return open_turn_services
