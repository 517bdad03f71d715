# /stepflow/services/scheduling_service.py

import httpx
import logging
import tenacity
from typing import Any, List, Optional

from stepflow.config.settings import SchedulingConfig
from stepflow.models.domain import Appointment, AppointmentRequest, AppointmentType, ClassSession
from stepflow.utils.metrics import external_calls_counter
from stepflow.workflows.errors import ExternalLookupError

# Client for the Acuity scheduling API. One instance is built per turn from
# SchedulingConfig and closed when the turn ends. Every failure surfaces as
# ExternalLookupError so the flow engine can abort the turn.

logger = logging.getLogger(__name__)


class SchedulingService:
    def __init__(self, config: SchedulingConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.http_client = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            auth=(config.user_id or "", config.api_key or ""),
            timeout=httpx.Timeout(config.timeout, connect=5.0),
        )

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await func(*args, **kwargs)

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self.resilient_api_call(self.http_client.request, method, path, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            external_calls_counter.labels(operation=operation, status="error").inc()
            logger.error(f"scheduling_{operation}_error: {e}")
            raise ExternalLookupError(operation, str(e)) from e
        external_calls_counter.labels(operation=operation, status="success").inc()
        return data

    @staticmethod
    def _parse(operation: str, model, data: Any, many: bool = True):
        try:
            if many:
                if not isinstance(data, list):
                    raise ValueError(f"expected a list, got {type(data).__name__}")
                return [model.model_validate(item) for item in data]
            return model.model_validate(data)
        except ValueError as e:
            logger.error(f"scheduling_{operation}_unexpected_payload: {e}")
            raise ExternalLookupError(operation, f"unexpected payload: {e}") from e

    # --- Read-only listings ---

    async def list_appointment_types(self) -> List[AppointmentType]:
        data = await self._request("list_appointment_types", "GET", "/appointment-types")
        return self._parse("list_appointment_types", AppointmentType, data)

    async def list_availability(self, appointment_type_id: int, month: str) -> List[ClassSession]:
        """Lists class sessions for an appointment type in a month ('YYYY-MM')."""
        params = {"month": month, "appointmentTypeID": appointment_type_id}
        data = await self._request("list_availability", "GET", "/availability/classes", params=params)
        return self._parse("list_availability", ClassSession, data)

    async def list_appointments(self, email: str, min_date: Optional[str] = None) -> List[Appointment]:
        params = {"email": email}
        if min_date:
            params["minDate"] = min_date
        data = await self._request("list_appointments", "GET", "/appointments", params=params)
        return self._parse("list_appointments", Appointment, data)

    # --- Mutations ---

    async def create_appointment(self, details: AppointmentRequest) -> Appointment:
        data = await self._request("create_appointment", "POST", "/appointments", json=details.to_api())
        return self._parse("create_appointment", Appointment, data, many=False)

    async def aclose(self):
        await self.http_client.aclose()
