"""Thin client for Rook's per-day processed-data summary endpoints."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date as DateType
from enum import Enum
from typing import Any, Dict

import httpx

from app.core.config import settings
from app.core.normalize import PartialActivity, PayloadKind, extract

logger = logging.getLogger(__name__)


class SummaryEndpoint(str, Enum):
    PHYSICAL = "physical_health"
    SLEEP = "sleep"
    SLEEP_HEALTH = "sleep_health"  # vendor-alternate sleep shape (Fitbit)

    @property
    def path(self) -> str:
        return f"/v2/processed_data/{self.value}/summary"

    @property
    def kind(self) -> PayloadKind:
        return PayloadKind.PHYSICAL if self is SummaryEndpoint.PHYSICAL else PayloadKind.SLEEP


@dataclass
class RookResult:
    endpoint: SummaryEndpoint
    status_code: int | None
    data: Any = None
    error: str | None = None

    @property
    def has_data(self) -> bool:
        return self.status_code == 200 and isinstance(self.data, dict)

    @property
    def empty(self) -> bool:
        """Rook's explicit "nothing for this day" answer."""
        return self.status_code == 204

    @property
    def failed(self) -> bool:
        return not self.has_data and not self.empty


class RookClient:
    def __init__(
        self,
        base_url: str,
        client_uuid: str,
        client_secret: str,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_uuid = client_uuid
        self.client_secret = client_secret
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "RookClient":
        return cls(
            base_url=settings.ROOK_API_BASE,
            client_uuid=settings.ROOK_CLIENT_UUID,
            client_secret=settings.ROOK_CLIENT_SECRET,
            timeout=settings.ROOK_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_uuid and self.client_secret)

    def fetch_summary(
        self,
        endpoint: SummaryEndpoint,
        rook_user_id: str,
        day: DateType,
    ) -> RookResult:
        """
        One bounded call. Timeouts and transport errors come back as a
        failed RookResult instead of raising.
        """
        url = f"{self.base_url}{endpoint.path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.get(
                    url,
                    params={"user_id": rook_user_id, "date": day.isoformat()},
                    auth=(self.client_uuid, self.client_secret),
                    headers={"Cache-Control": "no-cache"},
                )
        except httpx.TimeoutException:
            logger.warning("Rook %s timed out for %s on %s", endpoint.value, rook_user_id, day)
            return RookResult(endpoint, None, error="timeout")
        except httpx.HTTPError as e:
            logger.warning("Rook %s failed for %s on %s: %s", endpoint.value, rook_user_id, day, e)
            return RookResult(endpoint, None, error=str(e))

        if resp.status_code != 200:
            if resp.status_code != 204:
                logger.warning(
                    "Rook %s returned %s for %s on %s",
                    endpoint.value,
                    resp.status_code,
                    rook_user_id,
                    day,
                )
            return RookResult(endpoint, resp.status_code, error=None if resp.status_code == 204 else resp.text[:500])

        try:
            data = resp.json()
        except ValueError:
            return RookResult(endpoint, resp.status_code, error="invalid JSON body")
        return RookResult(endpoint, resp.status_code, data=data)

    def fetch_day(self, rook_user_id: str, day: DateType) -> Dict[SummaryEndpoint, RookResult]:
        return {
            endpoint: self.fetch_summary(endpoint, rook_user_id, day)
            for endpoint in SummaryEndpoint
        }


def summarize(results: Dict[SummaryEndpoint, RookResult]) -> PartialActivity:
    """
    Merge whichever calls returned data, in endpoint order, with the same
    field priority rules the webhook uses.
    """
    merged = PartialActivity()
    for endpoint in SummaryEndpoint:
        result = results.get(endpoint)
        if result is None or not result.has_data:
            continue
        merged.fill_from(extract(result.data, endpoint.kind))
    return merged


def get_rook_client() -> RookClient:
    return RookClient.from_settings()
