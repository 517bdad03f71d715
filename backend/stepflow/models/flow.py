# /stepflow/models/flow.py

from enum import Enum
from typing import Optional, List, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field

# Pure data models exchanged between the webhook, the flow engine and the
# delivery sink. No logic beyond small lookups lives here.

StateValue = Union[str, int, float, None]
ConversationState = Dict[str, StateValue]


class MessageEntity(BaseModel):
    """An entity recognized in the user's message by the NLU collaborator."""
    role: str = Field(..., description="Entity role, e.g. 'email/email' or 'firstName'")
    value: str = Field(..., description="Recognized entity text")


class SenderProfile(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class Postback(BaseModel):
    """Structured payload sent back when the user picks a ReplyOption."""
    stream: Optional[str] = Field(default=None, description="Stream the option targets")
    data: Dict[str, Any] = Field(default_factory=dict, description="Input for extract_info")


class InboundEvent(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    recognized_intent: Optional[str] = Field(default=None, description="Intent label from the classifier")
    text: Optional[str] = Field(default=None, description="Raw message text, passed through for steps that read it; the booking flow relies on entities instead")
    message_entities: List[MessageEntity] = Field(default_factory=list)
    postback: Optional[Postback] = None
    sender_profile: Optional[SenderProfile] = None

    def first_entity_with_role(self, role: str) -> Optional[str]:
        for entity in self.message_entities:
            if entity.role == role:
                return entity.value
        return None

    @property
    def postback_data(self) -> Dict[str, Any]:
        return self.postback.data if self.postback else {}


class ReplyOption(BaseModel):
    label: str
    stream: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class OutboundResponse(BaseModel):
    response_key: str
    entities: Dict[str, Any] = Field(default_factory=dict)
    reply_options: List[ReplyOption] = Field(default_factory=list)


class Expectation(BaseModel):
    """Which stream the next turn resumes into when nothing classifies it."""
    stream: str
    event_types: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class TurnOutcome(str, Enum):
    PROMPTED = "prompted"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


class TurnResult(BaseModel):
    conversation_id: str
    stream: Optional[str] = None
    step: Optional[str] = None
    outcome: TurnOutcome
    responses: List[OutboundResponse] = Field(default_factory=list)
    expectation: Optional[Expectation] = None
    error: Optional[str] = None

    @property
    def deliverable(self) -> bool:
        """Failed turns are only handed off when they carry a fallback response."""
        return self.outcome != TurnOutcome.FAILED or bool(self.responses)


class Invocation(BaseModel):
    """Delivery coordinates for a logic invocation."""
    invocation_id: str
    app_id: str
    app_user_id: str
    base_url: Optional[str] = None
    auth_token: Optional[str] = None


class LogicInvocationData(BaseModel):
    event: InboundEvent
    invocation: Optional[Invocation] = None


class WebhookEnvelope(BaseModel):
    event_type: str
    data: Optional[Dict[str, Any]] = None
