# /stepflow/routes/webhooks.py

import json
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from stepflow.config.settings import settings
from stepflow.models.flow import LogicInvocationData, WebhookEnvelope
from stepflow.services.security_service import SecurityService
from stepflow.utils.dependencies import limiter, verify_webhook_signature
from stepflow.utils.metrics import response_time_histogram

# Webhook endpoint the messaging platform calls for every inbound user event.
# The turn itself runs in the background; the platform only needs a fast 200.

router = APIRouter(
    tags=["Webhooks"]
)

log = structlog.get_logger(__name__)

LOGIC_INVOCATION = "LogicInvocation"


@router.post("/logic")
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def handle_logic_webhook(
    request: Request,
    verified_body: bytes = Depends(verify_webhook_signature)
):
    """Accepts a logic invocation and schedules its turn."""
    with response_time_histogram.labels(endpoint="logic_webhook").time():
        try:
            envelope = WebhookEnvelope.model_validate(json.loads(verified_body.decode("utf-8")))
        except (ValueError, ValidationError) as e:
            log.warning("Malformed webhook body.", error=str(e))
            raise HTTPException(status_code=400, detail="Malformed webhook body")

        log.info("Webhook received.", event_type=envelope.event_type, hostname=request.url.hostname)
        if envelope.event_type != LOGIC_INVOCATION:
            log.debug("Ignoring non-logic webhook event.", event_type=envelope.event_type)
            return JSONResponse({"status": "ignored"})

        try:
            data = LogicInvocationData.model_validate(envelope.data or {})
        except ValidationError as e:
            log.warning("Invalid logic invocation payload.", error=str(e))
            raise HTTPException(status_code=422, detail="Invalid logic invocation payload")

        if not SecurityService.is_valid_conversation_id(data.event.conversation_id):
            raise HTTPException(status_code=422, detail="Invalid conversation id")

        request.app.state.dispatcher.submit(data.event, data.invocation)
        return JSONResponse({"status": "accepted"})
