# /stepflow/workflows/engine.py

"""
Flow execution engine.

One call to `run_turn` processes one inbound event:
1. Resolves the active stream (classification override, then the persisted
   expectation, then the main stream)
2. Walks the stream's steps from the first one, every turn
3. Merges each step's extracted info before testing its predicate
4. Prompts the first unsatisfied step and waits for its completion signal
   (not for the prompt to return)
5. Ends as a no-op when every step is satisfied

The walk position is never stored: it is re-derived from the conversation
state on each turn, so the same state always selects the same step.

Errors never escape `run_turn`. They end the turn with a FAILED result that
carries the fallback response (or nothing, when fallback is disabled).
"""

import asyncio
import time
from typing import Any, Dict, Optional, Tuple

import structlog

from stepflow.models.flow import (
    ConversationState,
    Expectation,
    InboundEvent,
    OutboundResponse,
    TurnOutcome,
    TurnResult,
)
from stepflow.utils.metrics import step_prompt_counter, turn_counter, turn_duration_histogram
from stepflow.workflows.base import FlowSpec, Step, TurnContext
from stepflow.workflows.classifier import StreamClassifier
from stepflow.workflows.errors import CompletionError, ExtractionError, TurnTimeoutError

log = structlog.get_logger(__name__)

FALLBACK_RESPONSE_KEY = "error/generic"


class FlowEngine:
    def __init__(
        self,
        flow_spec: FlowSpec,
        store,
        prompt_timeout: float = 30.0,
        fallback_response_enabled: bool = True,
    ):
        self.flow_spec = flow_spec
        self.store = store
        self.prompt_timeout = prompt_timeout
        self.fallback_response_enabled = fallback_response_enabled
        self.classifier = StreamClassifier(flow_spec)
        self._follow_ups: Dict[str, asyncio.Task] = {}

    async def resolve_stream(self, event: InboundEvent) -> Tuple[str, Optional[Expectation]]:
        """Returns the active stream and the expectation left in place for it."""
        conversation_id = event.conversation_id
        override = self.classifier.resolve(event)
        expectation = await self.store.get_expectation(conversation_id)

        if override:
            if expectation and expectation.stream != override:
                await self.store.set_expectation(conversation_id, None)
                expectation = None
            return override, expectation

        if expectation:
            if expectation.stream in self.flow_spec.streams:
                return expectation.stream, expectation
            log.warning("Dropping expectation for undeclared stream.",
                        conversation_id=conversation_id, stream=expectation.stream)
            await self.store.set_expectation(conversation_id, None)

        return self.flow_spec.main, None

    async def run_turn(self, event: InboundEvent, services: Any = None) -> TurnResult:
        conversation_id = event.conversation_id
        turn_log = log.bind(conversation_id=conversation_id)
        started = time.perf_counter()
        stream_name: Optional[str] = None
        current_step: Optional[Step] = None

        try:
            stream_name, expectation = await self.resolve_stream(event)
            turn_log = turn_log.bind(stream=stream_name)
            state = await self.store.get(conversation_id)

            for current_step in self.flow_spec.stream_steps(stream_name):
                delta = self._extract(current_step, state, event, turn_log)
                if delta:
                    state = await self.store.merge(conversation_id, delta)

                if current_step.satisfied(state):
                    continue

                ctx = TurnContext(conversation_id, stream_name, event, state, self.store, services)
                await self._run_prompt(current_step, ctx)
                if ctx.expectation_changed:
                    expectation = ctx.expectation
                turn_log.info("Turn prompted step.", step=current_step.name, responses=len(ctx.responses))
                result = TurnResult(
                    conversation_id=conversation_id,
                    stream=stream_name,
                    step=current_step.name,
                    outcome=TurnOutcome.PROMPTED,
                    responses=ctx.responses,
                    expectation=expectation,
                )
                break
            else:
                turn_log.info("Every step in the stream is satisfied; nothing to prompt.")
                result = TurnResult(
                    conversation_id=conversation_id,
                    stream=stream_name,
                    outcome=TurnOutcome.EXHAUSTED,
                    expectation=expectation,
                )
        except Exception as e:
            step_name = current_step.name if current_step else None
            turn_log.error("Turn aborted.", step=step_name, error=str(e),
                           error_type=type(e).__name__, exc_info=True)
            result = self.failed_result(conversation_id, stream_name, step_name, e)

        turn_counter.labels(stream=stream_name or "unresolved", outcome=result.outcome.value).inc()
        turn_duration_histogram.labels(stream=stream_name or "unresolved").observe(time.perf_counter() - started)
        return result

    def _extract(self, step: Step, state: ConversationState, event: InboundEvent, turn_log) -> dict:
        try:
            return step.extract_info(state, event) or {}
        except ExtractionError as e:
            turn_log.warning("Could not extract info; treating event as empty.", step=step.name, error=str(e))
            return {}

    async def _run_prompt(self, step: Step, ctx: TurnContext) -> None:
        """
        Races the prompt against its completion signal. The turn resolves as
        soon as done() is signalled; whatever the prompt still does afterwards
        is kept as a follow-up until `settle` is called for the conversation.
        """
        step_prompt_counter.labels(step=step.name).inc()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.prompt_timeout
        prompt_task = asyncio.create_task(step.prompt(ctx))
        done_task = asyncio.create_task(ctx.wait_done())

        try:
            await asyncio.wait({prompt_task, done_task}, timeout=self.prompt_timeout,
                               return_when=asyncio.FIRST_COMPLETED)

            if prompt_task.done():
                error = prompt_task.exception()
                if error is not None:
                    # A prompt cannot signal done() after it has raised, so an
                    # error seen with completion set came after it. A second
                    # done() always fails the turn.
                    if not ctx.completed or isinstance(error, CompletionError):
                        raise error
                    self._log_late_failure(ctx.conversation_id, step, error)
                elif not ctx.completed:
                    await asyncio.wait({done_task}, timeout=max(deadline - loop.time(), 0))
            elif ctx.completed:
                self._keep_follow_up(ctx.conversation_id, step, prompt_task)
                return
            else:
                prompt_task.cancel()
        except asyncio.CancelledError:
            prompt_task.cancel()
            raise
        finally:
            done_task.cancel()

        if not ctx.completed:
            raise TurnTimeoutError(
                f"Step '{step.name}' did not signal completion within {self.prompt_timeout}s"
            )

    def _keep_follow_up(self, conversation_id: str, step: Step, task: asyncio.Task) -> None:
        self._follow_ups[conversation_id] = task

        def finished(done: asyncio.Task) -> None:
            if self._follow_ups.get(conversation_id) is done:
                del self._follow_ups[conversation_id]
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                self._log_late_failure(conversation_id, step, error)

        task.add_done_callback(finished)

    @staticmethod
    def _log_late_failure(conversation_id: str, step: Step, error: BaseException) -> None:
        log.error("Prompt failed after signalling completion.", conversation_id=conversation_id,
                  step=step.name, error=str(error), error_type=type(error).__name__)

    async def settle(self, conversation_id: str) -> None:
        """Waits (up to prompt_timeout) for work a prompt continued after done(); cancels it past that."""
        task = self._follow_ups.get(conversation_id)
        if task is None:
            return
        finished, _ = await asyncio.wait({task}, timeout=self.prompt_timeout)
        if not finished:
            log.warning("Cancelling prompt follow-up that outlived the timeout.", conversation_id=conversation_id)
            task.cancel()
            await asyncio.wait({task})

    def failed_result(self, conversation_id: str, stream_name: Optional[str], step_name: Optional[str], error: Exception) -> TurnResult:
        responses = [OutboundResponse(response_key=FALLBACK_RESPONSE_KEY)] if self.fallback_response_enabled else []
        return TurnResult(
            conversation_id=conversation_id,
            stream=stream_name,
            step=step_name,
            outcome=TurnOutcome.FAILED,
            responses=responses,
            error=f"{type(error).__name__}: {error}",
        )
