"""
Turn vendor-specific Rook payloads into a canonical partial activity record.

Rook forwards data from many wearables and each vendor nests its numbers
differently. Every known shape is handled by a small extraction strategy
(a pure function of the raw payload); strategies are tried in a fixed
priority order and merged field by field, first value wins.

Fields that could not be extracted stay ``None`` so the store never
overwrites previously stored data with a false zero.
"""
from __future__ import annotations

import math
from datetime import date as DateType, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from app.core.errors import NoSummaryFound


class PayloadKind(str, Enum):
    PHYSICAL = "physical"
    SLEEP = "sleep"
    BODY = "body"
    UNKNOWN = "unknown"

    @property
    def log_type(self) -> str:
        if self is PayloadKind.UNKNOWN:
            return "unknown"
        return f"{self.value}_summary"


_KIND_ALIASES = {
    "physical": PayloadKind.PHYSICAL,
    "physical_summary": PayloadKind.PHYSICAL,
    "physical_health": PayloadKind.PHYSICAL,
    "sleep": PayloadKind.SLEEP,
    "sleep_summary": PayloadKind.SLEEP,
    "sleep_health": PayloadKind.SLEEP,
    "body": PayloadKind.BODY,
    "body_summary": PayloadKind.BODY,
    "body_health": PayloadKind.BODY,
}

ACTIVITY_FIELDS = (
    "steps",
    "calories",
    "distance_meters",
    "sleep_hours",
    "sleep_efficiency",
)


class PartialActivity(BaseModel):
    activity_date: Optional[DateType] = None

    steps: Optional[int] = None
    calories: Optional[int] = None
    distance_meters: Optional[int] = None
    sleep_hours: Optional[float] = None
    sleep_efficiency: Optional[float] = None

    data_source: Optional[str] = None

    def present_fields(self) -> Dict[str, Any]:
        """Activity fields that were actually found."""
        return {
            name: getattr(self, name)
            for name in ACTIVITY_FIELDS
            if getattr(self, name) is not None
        }

    def is_empty(self) -> bool:
        return not self.present_fields()

    def fill_from(self, other: "PartialActivity") -> "PartialActivity":
        for name in ACTIVITY_FIELDS + ("data_source",):
            if getattr(self, name) is None and getattr(other, name) is not None:
                setattr(self, name, getattr(other, name))
        return self


# ---------- small helpers ----------

def _dig(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        n = float(value)
    except (ValueError, OverflowError):
        return None
    # NaN and Infinity parse as floats but are not measurements
    return n if math.isfinite(n) else None


def _as_int(value: Any) -> int | None:
    n = _number(value)
    return None if n is None else int(round(n))


def seconds_to_hours(seconds: float) -> float:
    """The single duration rule used by every sleep path."""
    return round(seconds / 3600, 1)


def _non_structured(payload: Dict[str, Any], *path: str) -> List[Dict[str, Any]]:
    items = _dig(payload, *path, "non_structured_data_array")
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _source_of(summary: Any) -> str | None:
    sources = _dig(summary, "metadata", "sources_of_data_array")
    if isinstance(sources, list) and sources and isinstance(sources[0], str):
        return sources[0]
    return None


def _parse_date(value: Any) -> DateType | None:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return DateType.fromisoformat(value[:10])
    except ValueError:
        return None


def _flat_calories(summary: Dict[str, Any]) -> int | None:
    for key in ("active_calories", "activityCalories", "caloriesOut"):
        value = _as_int(summary.get(key))
        if value is not None:
            return value
    return None


# ---------- physical strategies ----------

def _physical_structured(payload: Dict[str, Any]) -> PartialActivity | None:
    """Rook v2: physical_health.summary.physical_summary.{distance,calories}."""
    summary = _dig(payload, "physical_health", "summary", "physical_summary")
    if not isinstance(summary, dict):
        return None

    calories = _as_int(_dig(summary, "calories", "calories_net_active_kcal_float"))
    if calories is None:
        calories = _as_int(_dig(summary, "calories", "calories_expenditure_kcal_float"))

    return PartialActivity(
        steps=_as_int(_dig(summary, "distance", "steps_int")),
        calories=calories,
        distance_meters=_as_int(_dig(summary, "distance", "distance_meters_float")),
        data_source=_source_of(summary),
    )


def _physical_flat(payload: Dict[str, Any]) -> PartialActivity | None:
    """Flat summaries: {summary: {steps, active_calories}} at either level."""
    result = PartialActivity()
    for summary in (payload.get("summary"), _dig(payload, "physical_health", "summary")):
        if not isinstance(summary, dict):
            continue
        result.fill_from(
            PartialActivity(
                steps=_as_int(summary.get("steps")),
                calories=_flat_calories(summary),
                distance_meters=_as_int(summary.get("distance_meters")),
            )
        )
    return result


def _physical_non_structured(payload: Dict[str, Any]) -> PartialActivity | None:
    """Fitbit style: raw vendor objects with a nested `summary`."""
    result = PartialActivity()
    path = ("physical_health", "summary", "physical_summary")
    for item in _non_structured(payload, *path):
        summary = item.get("summary")
        if not isinstance(summary, dict):
            continue
        result.fill_from(
            PartialActivity(
                steps=_as_int(summary.get("steps")),
                calories=_flat_calories(summary),
            )
        )
        if result.steps is not None and result.calories is not None:
            break
    return result


# ---------- sleep strategies ----------

def _sleep_standard(payload: Dict[str, Any]) -> PartialActivity | None:
    """summary.duration in seconds, top level or under `sleep`."""
    for summary in (payload.get("summary"), _dig(payload, "sleep", "summary")):
        if not isinstance(summary, dict):
            continue
        seconds = _number(summary.get("duration"))
        if seconds is not None:
            return PartialActivity(
                sleep_hours=seconds_to_hours(seconds),
                sleep_efficiency=_number(summary.get("efficiency")),
                data_source=_source_of(summary),
            )
    return None


def _sleep_alternate(payload: Dict[str, Any]) -> PartialActivity | None:
    """Rook v2: sleep_health.summary.sleep_summary.duration."""
    summary = _dig(payload, "sleep_health", "summary", "sleep_summary")
    if not isinstance(summary, dict):
        return None

    seconds = _number(_dig(summary, "duration", "sleep_duration_seconds_int"))
    return PartialActivity(
        sleep_hours=None if seconds is None else seconds_to_hours(seconds),
        sleep_efficiency=_number(_dig(summary, "scores", "sleep_efficiency_1_100_score_int")),
        data_source=_source_of(summary),
    )


def _sleep_non_structured(payload: Dict[str, Any]) -> PartialActivity | None:
    """Fitbit style: minutesAsleep, or duration in milliseconds."""
    for item in _non_structured(payload, "sleep_health", "summary", "sleep_summary"):
        minutes = _number(item.get("minutesAsleep"))
        if minutes is not None:
            seconds = minutes * 60
        else:
            millis = _number(item.get("duration"))
            if millis is None:
                continue
            seconds = millis / 1000

        return PartialActivity(
            sleep_hours=seconds_to_hours(seconds),
            sleep_efficiency=_number(item.get("efficiency")),
        )
    return None


Strategy = Callable[[Dict[str, Any]], Optional[PartialActivity]]

STRATEGIES: Dict[PayloadKind, List[Strategy]] = {
    PayloadKind.PHYSICAL: [
        _physical_structured,
        _physical_flat,
        _physical_non_structured,
    ],
    PayloadKind.SLEEP: [
        _sleep_standard,
        _sleep_alternate,
        _sleep_non_structured,
    ],
}

_TARGET_FIELDS = {
    PayloadKind.PHYSICAL: ("steps", "calories", "distance_meters"),
    PayloadKind.SLEEP: ("sleep_hours", "sleep_efficiency"),
}

# physical metadata is consulted before sleep metadata
_METADATA_PATHS = [
    ("physical_health", "summary", "physical_summary", "metadata"),
    ("physical_health", "summary", "metadata"),
    ("sleep", "summary", "metadata"),
    ("sleep_health", "summary", "sleep_summary", "metadata"),
    ("body", "summary", "metadata"),
]


# ---------- public API ----------

def classify(payload: Dict[str, Any], declared_kind: Any = None) -> PayloadKind:
    """
    Use the caller's (or body's `type` / `data_structure`) kind when it is a
    known one, otherwise infer from which summary block is present.
    """
    candidates = [declared_kind]
    if declared_kind is None:
        candidates = [payload.get("type"), payload.get("data_structure")]

    for candidate in candidates:
        if isinstance(candidate, PayloadKind) and candidate is not PayloadKind.UNKNOWN:
            return candidate
        if isinstance(candidate, str):
            kind = _KIND_ALIASES.get(candidate.strip().lower())
            if kind is not None:
                return kind

    if isinstance(_dig(payload, "physical_health", "summary"), dict):
        return PayloadKind.PHYSICAL
    if isinstance(_dig(payload, "sleep", "summary"), dict) or isinstance(
        _dig(payload, "sleep_health", "summary"), dict
    ):
        return PayloadKind.SLEEP
    if isinstance(_dig(payload, "body", "summary"), dict):
        return PayloadKind.BODY
    return PayloadKind.UNKNOWN


def extract_date(payload: Dict[str, Any], today: DateType | None = None) -> DateType:
    found = _parse_date(payload.get("date"))
    if found:
        return found

    for path in _METADATA_PATHS:
        found = _parse_date(_dig(payload, *path, "datetime_string"))
        if found:
            return found

    for path in (
        ("physical_health", "summary", "physical_summary"),
        ("sleep_health", "summary", "sleep_summary"),
    ):
        for item in _non_structured(payload, *path):
            found = _parse_date(item.get("dateOfSleep")) or _parse_date(
                _dig(item, "summary", "date")
            )
            if found:
                return found

    return today or datetime.now(timezone.utc).date()


def extract(payload: Dict[str, Any], kind: PayloadKind) -> PartialActivity:
    """Run the strategy list for `kind`; never raises, may return empty."""
    result = PartialActivity()
    targets = _TARGET_FIELDS.get(kind, ())
    for strategy in STRATEGIES.get(kind, []):
        found = strategy(payload)
        if found is None:
            continue
        result.fill_from(found)
        if all(getattr(result, name) is not None for name in targets):
            break
    return result


def normalize(
    payload: Dict[str, Any],
    declared_kind: Any = None,
    today: DateType | None = None,
) -> PartialActivity:
    kind = classify(payload, declared_kind)
    if kind not in STRATEGIES:
        raise NoSummaryFound(kind.value, f"{kind.log_type} payloads are logged, not stored")

    activity = extract(payload, kind)
    if activity.is_empty():
        raise NoSummaryFound(kind.value)

    activity.activity_date = extract_date(payload, today)
    return activity
