"""
Outbound client for the Click merchant API (status lookup and reversal).

Every call is bounded by `ClickSettings.api_timeout`. Timeouts, connection
failures and 5xx answers raise GatewayUnavailable (retryable); other failures
raise GatewayError. Neither ever touches a Payment.
"""
import hashlib
import time
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import httpx
import structlog
from fastapi import Depends

from shared.config.settings import ClickSettings, get_settings
from shared.observability import click_gateway_requests_total

from .schemas import GatewayPaymentStatus

logger = structlog.get_logger(__name__)


class GatewayError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class GatewayUnavailable(GatewayError):
    """Transient failure; safe for the caller to retry with backoff."""


def build_auth_header(merchant_user_id, secret_key: str, timestamp: Optional[int] = None) -> str:
    """Click `Auth` header: merchant_user_id:sha1(timestamp + secret_key):timestamp."""
    if timestamp is None:
        timestamp = int(time.time())
    digest = hashlib.sha1(f"{timestamp}{secret_key}".encode("utf-8")).hexdigest()
    return f"{merchant_user_id}:{digest}:{timestamp}"


def _utc_day(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d")


def _segment(value) -> str:
    return quote(str(value), safe="")


class ClickApiClient:

    def __init__(self, settings: ClickSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        base_url = self.settings.api_base_url
        if not base_url.endswith("/"):
            base_url = f"{base_url}/"
        headers = {
            "Accept": "application/json",
            "Auth": build_auth_header(self.settings.merchant_user_id, self.settings.secret_key),
        }
        return httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=self.settings.api_timeout,
            transport=self._transport,
        )

    async def _request(self, operation: str, method: str, path: str) -> dict:
        log = logger.bind(operation=operation, method=method, path=path)
        log.info("click_api_request")

        try:
            async with self._client() as client:
                resp = await client.request(method, path)
        except httpx.TimeoutException as e:
            click_gateway_requests_total.labels(operation=operation, outcome="unavailable").inc()
            log.error("click_api_timeout", error=str(e))
            raise GatewayUnavailable(f"Click API timed out during {operation}") from e
        except httpx.TransportError as e:
            click_gateway_requests_total.labels(operation=operation, outcome="unavailable").inc()
            log.error("click_api_network_error", error=str(e))
            raise GatewayUnavailable(f"Click API unreachable during {operation}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = resp.text

        if resp.status_code >= 500:
            click_gateway_requests_total.labels(operation=operation, outcome="unavailable").inc()
            log.error("click_api_server_error", status=resp.status_code, payload=payload)
            raise GatewayUnavailable(
                f"Click API error ({resp.status_code})", status_code=resp.status_code, payload=payload
            )
        if resp.status_code >= 400 or not isinstance(payload, dict):
            click_gateway_requests_total.labels(operation=operation, outcome="http_error").inc()
            log.error("click_api_bad_response", status=resp.status_code, payload=payload)
            raise GatewayError(
                f"Click API error ({resp.status_code})", status_code=resp.status_code, payload=payload
            )

        click_gateway_requests_total.labels(operation=operation, outcome="ok").inc()
        log.info("click_api_response", status=resp.status_code, payload=payload)
        return payload

    async def query_status(self, merchant_trans_id: str, created_at: datetime) -> GatewayPaymentStatus:
        """Authoritative status of a payment, looked up by merchant_trans_id and creation day."""
        path = "payment/status_by_mti/{}/{}/{}".format(
            _segment(self.settings.service_id),
            _segment(merchant_trans_id),
            _segment(_utc_day(created_at)),
        )
        payload = await self._request("status_by_mti", "GET", path)
        return GatewayPaymentStatus.model_validate(payload)

    async def reverse(self, payment_id) -> dict:
        path = "payment/reversal/{}/{}".format(
            _segment(self.settings.service_id),
            _segment(payment_id),
        )
        payload = await self._request("reversal", "DELETE", path)
        if payload.get("error_code", 0) not in (0, None):
            raise GatewayError(
                f"Click rejected reversal: {payload.get('error_note')}", payload=payload
            )
        return payload


def get_click_client(settings: ClickSettings = Depends(get_settings)) -> ClickApiClient:
    return ClickApiClient(settings)
