# /stepflow/utils/dependencies.py

import secrets
import structlog
from fastapi import Request, HTTPException
from slowapi import Limiter

from stepflow.config.settings import settings
from stepflow.services.security_service import SecurityService
from stepflow.utils.metrics import webhook_signature_counter

log = structlog.get_logger(__name__)


def get_remote_address(request: Request) -> str:
    """Safely returns the client's IP address from a request object."""
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"]
)


async def verify_webhook_signature(request: Request) -> bytes:
    """Returns the raw body, checking its HMAC signature when a webhook secret is configured."""
    body = await request.body()
    if not settings.webhook_secret:
        return body

    signature = request.headers.get("x-hub-signature-256", "")
    if not SecurityService.verify_webhook_signature(body, signature, settings.webhook_secret):
        webhook_signature_counter.labels(status="invalid").inc()
        log.error("Invalid webhook signature.", client_ip=get_remote_address(request))
        raise HTTPException(status_code=403, detail="Invalid signature")
    webhook_signature_counter.labels(status="valid").inc()
    return body


async def verify_metrics_access(request: Request):
    if settings.api_key:
        provided_key = request.headers.get("X-API-KEY")
        if not (provided_key and secrets.compare_digest(provided_key, settings.api_key)):
            raise HTTPException(status_code=403, detail="Invalid or missing API key")
