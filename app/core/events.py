"""
In-process "activity updated" events.

The webhook publishes after it has stored a row; consumers such as the
challenge sync run afterwards and their failures never reach the webhook.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date as DateType
from typing import Callable, DefaultDict, List, Type

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityUpdated:
    user_fid: int
    activity_date: DateType
    origin: str  # "webhook" or "backfill"


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[Type, List[Callable]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Callable) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: Type, handler: Callable) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    def publish(self, event) -> None:
        for handler in list(self._handlers[type(event)]):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed for %r", handler, event)


bus = EventBus()


def sync_challenges(event: ActivityUpdated) -> None:
    """Ask the challenges service to refresh progress for this user/day."""
    if not settings.CHALLENGE_SYNC_URL:
        logger.debug("CHALLENGE_SYNC_URL not set; skipping challenge sync for %r", event)
        return

    try:
        with httpx.Client(timeout=settings.CHALLENGE_SYNC_TIMEOUT_SECONDS) as client:
            resp = client.post(
                settings.CHALLENGE_SYNC_URL,
                json={
                    "date": event.activity_date.isoformat(),
                    "user_fid": event.user_fid,
                },
            )
    except httpx.HTTPError as e:
        logger.warning("Challenge sync call failed for user_fid=%s: %s", event.user_fid, e)
        return

    if resp.status_code >= 400:
        logger.warning(
            "Challenge sync returned %s for user_fid=%s: %s",
            resp.status_code,
            event.user_fid,
            resp.text[:500],
        )
    else:
        logger.info("Challenge sync done for user_fid=%s date=%s", event.user_fid, event.activity_date)
