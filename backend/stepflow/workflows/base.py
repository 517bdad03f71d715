# /stepflow/workflows/base.py

"""
Building blocks of a conversation flow.

A Step is a stateless definition with three capabilities:
- extract_info: read the inbound event and return a state delta
- satisfied: a pure predicate over the conversation state
- prompt: ask the user for what is missing (or perform the final effect)

Steps are registered by name in a FlowSpec; streams reference them by name,
so a step shared by two streams is satisfied in both as soon as the shared
conversation state satisfies it.

A TurnContext is created for every prompt. It is the only handle a prompt gets
on the outside world: it reads and merges state, sets the expectation, queues
outbound responses and carries the single-shot completion signal.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stepflow.models.flow import (
    ConversationState,
    Expectation,
    InboundEvent,
    OutboundResponse,
    ReplyOption,
    StateValue,
)
from stepflow.workflows.errors import CompletionError, FlowSpecError


class Step(ABC):
    """Base class for steps. Subclasses must not keep per-conversation fields."""

    name: str = ""

    def extract_info(self, state: ConversationState, event: InboundEvent) -> Dict[str, StateValue]:
        return {}

    @abstractmethod
    def satisfied(self, state: ConversationState) -> bool: ...

    @abstractmethod
    async def prompt(self, ctx: "TurnContext") -> None:
        """Must call ctx.done() exactly once."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class TerminalStep(Step):
    """A step that is never satisfied; its prompt is the stream's final effect."""

    def satisfied(self, state: ConversationState) -> bool:
        return False


class _CallableStep(Step):
    def __init__(self, name, prompt, satisfied, extract_info):
        self.name = name
        self._prompt = prompt
        self._satisfied = satisfied
        self._extract_info = extract_info

    def extract_info(self, state, event):
        if self._extract_info is None:
            return {}
        return self._extract_info(state, event) or {}

    def satisfied(self, state):
        if self._satisfied is None:
            return False
        return bool(self._satisfied(state))

    async def prompt(self, ctx):
        await self._prompt(ctx)


def create_step(
    name: str,
    prompt: Callable[["TurnContext"], Awaitable[None]],
    satisfied: Optional[Callable[[ConversationState], bool]] = None,
    extract_info: Optional[Callable[[ConversationState, InboundEvent], Dict[str, StateValue]]] = None,
) -> Step:
    """Declares a step from plain functions. Without `satisfied` the step is terminal."""
    return _CallableStep(name, prompt, satisfied, extract_info)


class TurnContext:
    def __init__(
        self,
        conversation_id: str,
        stream_name: str,
        event: InboundEvent,
        state: ConversationState,
        store,
        services: Any = None,
    ):
        self.conversation_id = conversation_id
        self.stream_name = stream_name
        self.event = event
        self.store = store
        self.services = services
        self.responses: List[OutboundResponse] = []
        self.expectation: Optional[Expectation] = None
        self.expectation_changed = False
        self._state = dict(state)
        self._completed = asyncio.Event()

    @property
    def state(self) -> ConversationState:
        return dict(self._state)

    async def update_state(self, update: Dict[str, StateValue]) -> ConversationState:
        self._state = await self.store.merge(self.conversation_id, update)
        return self.state

    async def expect(self, stream: Optional[str], event_types: Optional[List[str]] = None) -> None:
        """Points the next unclassified turn at `stream`; None clears it."""
        expectation = Expectation(stream=stream, event_types=event_types or []) if stream else None
        await self.store.set_expectation(self.conversation_id, expectation)
        self.expectation = expectation
        self.expectation_changed = True

    def add_response(
        self,
        response_key: str,
        entities: Optional[Dict[str, Any]] = None,
        reply_options: Optional[List[ReplyOption]] = None,
    ) -> None:
        self.responses.append(OutboundResponse(
            response_key=response_key,
            entities=entities or {},
            reply_options=reply_options or [],
        ))

    def make_reply_option(self, label: str, data: Dict[str, Any], stream: Optional[str] = None) -> ReplyOption:
        return ReplyOption(label=label, stream=stream or self.stream_name, data=data)

    def done(self) -> None:
        if self._completed.is_set():
            raise CompletionError(f"Prompt for conversation {self.conversation_id} signalled completion twice")
        self._completed.set()

    @property
    def completed(self) -> bool:
        return self._completed.is_set()

    async def wait_done(self) -> None:
        await self._completed.wait()


class FlowSpec(BaseModel):
    """
    The integrator's flow declaration: the step registry, the named streams
    (ordered step names), the default stream and the classification table.
    """
    steps: Dict[str, Step]
    streams: Dict[str, List[str]]
    main: str
    classifications: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def check_references(self):
        from stepflow.workflows.validator import validate_flow_spec, raise_for_result

        raise_for_result(validate_flow_spec(self))
        return self

    @classmethod
    def build(
        cls,
        steps: List[Step],
        streams: Dict[str, List[str]],
        main: str,
        classifications: Optional[Dict[str, str]] = None,
    ) -> "FlowSpec":
        registry: Dict[str, Step] = {}
        for step in steps:
            if not step.name:
                raise FlowSpecError(f"Step {step!r} has no name")
            if step.name in registry and registry[step.name] is not step:
                raise FlowSpecError(f"Step name '{step.name}' is registered twice")
            registry[step.name] = step
        return cls(
            steps=registry,
            streams=streams,
            main=main,
            classifications=classifications or {},
        )

    def stream_steps(self, stream_name: str) -> List[Step]:
        return [self.steps[name] for name in self.streams[stream_name]]
