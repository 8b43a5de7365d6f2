"""Licensing backend client. One request per call; retries belong to callers."""

from __future__ import annotations

import logging

import httpx

from .config import LICENSE_API, LICENSE_TIMEOUT_SECONDS
from .models import LicenseResult, Plan

logger = logging.getLogger(__name__)

VALID_PLANS = {Plan.monthly, Plan.lifetime}


def parse_license_payload(payload: object) -> LicenseResult:
    if not isinstance(payload, dict):
        return LicenseResult()
    raw_plan = str(payload.get("plan") or "").strip().lower()
    plan = Plan.parse(raw_plan) if raw_plan in {p.value for p in VALID_PLANS} else Plan.none
    return LicenseResult(is_entitled=payload.get("isPro") is True and plan in VALID_PLANS, plan=plan)


class LicenseVerifier:
    def __init__(
        self,
        *,
        api_base: str = LICENSE_API,
        timeout: float = LICENSE_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.api_base, timeout=self.timeout, transport=self._transport)

    async def verify(self, user_id: str | None) -> LicenseResult:
        """Ask the backend whether ``user_id`` is entitled. Never raises."""
        if not user_id:
            return LicenseResult()
        try:
            async with self._client() as client:
                resp = await client.get("/check-license", params={"userId": user_id})
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("License check failed: %s", e)
            return LicenseResult()
        return parse_license_payload(payload)

    async def cancel_subscription(self, user_id: str) -> bool:
        try:
            async with self._client() as client:
                resp = await client.post("/cancel-subscription", json={"userId": user_id})
        except httpx.HTTPError as e:
            logger.warning("Cancellation request failed: %s", e)
            return False
        if resp.status_code != 200:
            logger.warning("Cancellation rejected with HTTP %d", resp.status_code)
            return False
        return True
