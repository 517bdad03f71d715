# /stepflow/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from stepflow.config.settings import settings
from stepflow.services.delivery_service import DeliveryService
from stepflow.services.state_store import build_conversation_store
from stepflow.services.turn_services import turn_services_factory
from stepflow.utils.logging import setup_logging
from stepflow.workflows.definitions import build_booking_flow
from stepflow.workflows.dispatcher import TurnDispatcher
from stepflow.workflows.engine import FlowEngine

# Startup builds the conversation store, the flow engine and the turn
# dispatcher and hangs them on app.state; shutdown lets in-flight turns
# finish before closing the clients.

logger = logging.getLogger(__name__)


def build_dispatcher(store) -> TurnDispatcher:
    engine = FlowEngine(
        build_booking_flow(),
        store,
        prompt_timeout=settings.prompt_timeout,
        fallback_response_enabled=settings.fallback_response_enabled,
    )
    delivery = DeliveryService(settings.delivery_base_url, timeout=settings.delivery_timeout)
    return TurnDispatcher(engine, delivery=delivery, services_factory=turn_services_factory(settings.scheduling))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()

    logger.info("Application starting up...")

    store = build_conversation_store(settings)
    app.state.store = store
    app.state.dispatcher = build_dispatcher(store)

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")

    dispatcher = app.state.dispatcher
    await dispatcher.drain()
    if dispatcher.delivery:
        await dispatcher.delivery.cleanup()
    await store.close()
