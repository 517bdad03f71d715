# /stepflow/services/delivery_service.py

import httpx
import logging
import tenacity
from typing import Optional

from stepflow.config.strings import render_response
from stepflow.models.flow import Invocation, TurnResult
from stepflow.utils.metrics import result_delivery_counter

# Hands each completed turn's result back to the messaging platform that
# invoked the logic. Delivery problems are logged and counted, never raised.

logger = logging.getLogger(__name__)


class DeliveryService:
    def __init__(self, default_base_url: Optional[str], timeout: float = 10.0):
        self.default_base_url = default_base_url
        self.http_client = httpx.AsyncClient(timeout=timeout)

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await func(*args, **kwargs)

    @staticmethod
    def build_result(result: TurnResult) -> dict:
        """Serializes a turn result, adding the rendered text of each response."""
        payload = result.model_dump(mode="json", exclude={"error"})
        for response in payload["responses"]:
            response["text"] = render_response(response["response_key"], response["entities"])
        return payload

    def result_url(self, invocation: Invocation) -> Optional[str]:
        base_url = invocation.base_url or self.default_base_url
        if not base_url:
            return None
        return f"{base_url.rstrip('/')}/api/v1/remote/logic/invocations/{invocation.invocation_id}/result"

    async def deliver(self, result: TurnResult, invocation: Invocation) -> bool:
        url = self.result_url(invocation)
        if not url:
            logger.warning(f"No delivery URL for invocation {invocation.invocation_id}; result dropped.")
            result_delivery_counter.labels(status="skipped").inc()
            return False

        headers = {"Content-Type": "application/json"}
        if invocation.auth_token:
            headers["Authorization"] = f"Bearer {invocation.auth_token}"
        payload = {
            "invocation": {
                "app_id": invocation.app_id,
                "app_user_id": invocation.app_user_id,
                "invocation_id": invocation.invocation_id,
            },
            "result": self.build_result(result),
        }

        try:
            response = await self.resilient_api_call(self.http_client.post, url, json=payload, headers=headers)
        except Exception as e:
            result_delivery_counter.labels(status="error").inc()
            logger.error(f"delivery_error for invocation {invocation.invocation_id}: {e}", exc_info=True)
            return False

        if response.status_code >= 400:
            result_delivery_counter.labels(status="rejected").inc()
            logger.error(f"delivery_rejected for invocation {invocation.invocation_id}: {response.status_code} - {response.text[:200]}")
            return False

        result_delivery_counter.labels(status="success").inc()
        logger.info(f"Turn result delivered for conversation {result.conversation_id}, invocation {invocation.invocation_id}")
        return True

    async def cleanup(self):
        await self.http_client.aclose()
