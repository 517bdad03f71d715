# /stepflow/workflows/dispatcher.py

import asyncio
from contextlib import asynccontextmanager, nullcontext
from typing import Callable, Dict, Optional, Set

import structlog

from stepflow.models.flow import InboundEvent, Invocation, TurnResult
from stepflow.utils.logging import turn_log_context
from stepflow.workflows.engine import FlowEngine

# Runs turns in the background. Turns for the same conversation are queued
# behind one another on a per-conversation lock so state merges never
# interleave; different conversations run concurrently.

log = structlog.get_logger(__name__)


class TurnDispatcher:
    def __init__(
        self,
        engine: FlowEngine,
        delivery=None,
        services_factory: Optional[Callable] = None,
    ):
        self.engine = engine
        self.delivery = delivery
        self.services_factory = services_factory
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()

    @asynccontextmanager
    async def _conversation_lock(self, conversation_id: str):
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        self._holders[conversation_id] = self._holders.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[conversation_id] -= 1
            if not self._holders[conversation_id]:
                del self._holders[conversation_id]
                del self._locks[conversation_id]

    def _open_services(self):
        if self.services_factory is None:
            return nullcontext()
        return self.services_factory()

    async def dispatch(self, event: InboundEvent, invocation: Optional[Invocation] = None) -> TurnResult:
        """Runs one turn once the conversation is free, then hands off its result."""
        conversation_id = event.conversation_id
        async with self._conversation_lock(conversation_id):
            with turn_log_context(conversation_id, invocation_id=invocation.invocation_id if invocation else None):
                services_cm = self._open_services()
                try:
                    services = await services_cm.__aenter__()
                except Exception as e:
                    log.error("Could not prepare turn collaborators.", error=str(e), exc_info=True)
                    result = self.engine.failed_result(conversation_id, None, None, e)
                    await self._hand_off(result, invocation)
                    return result

                try:
                    result = await self.engine.run_turn(event, services)
                    await self._hand_off(result, invocation)
                    # Work a prompt continues after done() still needs its clients.
                    await self.engine.settle(conversation_id)
                finally:
                    await self._close_services(services_cm)
                return result

    async def _close_services(self, services_cm) -> None:
        # The turn's result stands; a failed close is only logged.
        try:
            await services_cm.__aexit__(None, None, None)
        except Exception as e:
            log.error("Could not close turn collaborators.", error=str(e), exc_info=True)

    async def _hand_off(self, result: TurnResult, invocation: Optional[Invocation]) -> None:
        if not result.deliverable:
            log.info("Dropping failed turn without a fallback response.")
            return
        if self.delivery is None or invocation is None:
            log.debug("No delivery target for turn result.")
            return
        try:
            await self.delivery.deliver(result, invocation)
        except Exception as e:
            log.error("Result delivery raised.", error=str(e), exc_info=True)

    def submit(self, event: InboundEvent, invocation: Optional[Invocation] = None) -> asyncio.Task:
        """Schedules a turn without waiting for it."""
        task = asyncio.create_task(self.dispatch(event, invocation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Waits for every submitted turn to finish."""
        if self._tasks:
            log.info("Waiting for in-flight turns.", count=len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
