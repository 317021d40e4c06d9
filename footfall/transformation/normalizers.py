"""
Visitor Event Normalizers

Field extraction for raw DisplayForce visitor records. Upstream records are
loosely shaped: the timestamp may live under ``start`` or ``tracks[0].start``,
the age may be missing or garbage, smile may be nested under
``additional_attributes``. Every helper here degrades to ``None`` (or a
documented default) instead of raising, so one bad field never costs the
rest of the record.
"""

import math
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

import structlog

from footfall.domain import (
    Gender,
    StoreScope,
    WEEKDAY_LABELS,
    ensure_utc,
)

logger = structlog.get_logger(__name__)

# Upper bound for a usable age
MAX_AGE = 150


def _first_track(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    tracks = raw.get("tracks")
    if isinstance(tracks, list) and tracks and isinstance(tracks[0], Mapping):
        return tracks[0]
    return {}


def parse_timestamp(raw: Mapping[str, Any]) -> Optional[datetime]:
    """Visit start as an aware UTC datetime, or None when unusable"""
    value = raw.get("start")
    if value in (None, ""):
        value = _first_track(raw).get("start")
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    return ensure_utc(parsed)


def parse_age(raw: Mapping[str, Any]) -> Optional[int]:
    """Integer age, or None when missing, non-numeric or outside 1..MAX_AGE"""
    value = raw.get("age")
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 < value <= MAX_AGE else None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number > MAX_AGE:
        return None
    age = int(number)
    return age if age > 0 else None


def parse_gender(raw: Mapping[str, Any], default: Gender = Gender.FEMALE) -> Gender:
    """Gender from the upstream ``sex`` code, falling back to a ``gender`` field"""
    if "sex" in raw:
        return Gender.from_upstream(raw.get("sex"), default)
    return Gender.from_upstream(raw.get("gender"), default)


def parse_smile(raw: Mapping[str, Any]) -> bool:
    value = raw.get("smile")
    if value is None:
        attributes = raw.get("additional_attributes")
        if isinstance(attributes, Mapping):
            value = attributes.get("smile")
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("yes", "true", "1")


def extract_visitor_id(raw: Mapping[str, Any]) -> Optional[str]:
    for key in ("visitor_id", "session_id", "id"):
        value = raw.get(key)
        if value not in (None, ""):
            return str(value)
    value = _first_track(raw).get("id")
    if value not in (None, ""):
        return str(value)
    return None


def extract_store_id(raw: Mapping[str, Any], scope: Optional[StoreScope] = None) -> str:
    """Device id the visit was recorded on; the refreshed store when absent"""
    value = _first_track(raw).get("device_id")
    if value in (None, ""):
        devices = raw.get("devices")
        if isinstance(devices, list) and devices:
            value = devices[0]
    if value in (None, "") and scope is not None and scope.store_id:
        value = scope.store_id
    return "" if value is None else str(value)


def weekday_label(day: date) -> str:
    return WEEKDAY_LABELS[day.weekday()]


def to_visitor_record(
    raw: Mapping[str, Any],
    scope: Optional[StoreScope] = None,
    unknown_gender: Gender = Gender.FEMALE,
) -> Optional[Dict[str, Any]]:
    """
    Canonical ``visitor_events`` row for one raw record.

    Returns None when the record has no usable visitor id or timestamp,
    since those two fields form the natural key.
    """
    visitor_id = extract_visitor_id(raw)
    timestamp = parse_timestamp(raw)
    if visitor_id is None or timestamp is None:
        return None

    store_name = raw.get("store_name")
    day = timestamp.date()
    return {
        "visitor_id": visitor_id,
        "timestamp": timestamp,
        "day_date": day,
        "store_id": extract_store_id(raw, scope),
        "store_name": str(store_name) if store_name not in (None, "") else None,
        "gender": parse_gender(raw, unknown_gender).value,
        "age": parse_age(raw),
        "day_of_week": weekday_label(day),
        "smile": parse_smile(raw),
    }


def to_visitor_records(
    events: list,
    scope: Optional[StoreScope] = None,
    unknown_gender: Gender = Gender.FEMALE,
) -> list:
    """Map a batch, dropping records that cannot be keyed"""
    records = []
    skipped = 0
    for raw in events:
        record = to_visitor_record(raw, scope, unknown_gender) if isinstance(raw, Mapping) else None
        if record is None:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.warning("Skipped visitor records without natural key", skipped=skipped, kept=len(records))
    return records
