"""
TrailMemo Backend — Query & Path Parameter Parsing
====================================================

Paging parameters are lenient: an unparsable or out-of-range page size
falls back to the endpoint default instead of failing the request, and a
page below 1 becomes 1. Everything that changes *what* is returned
(ids, coordinates, dates) is strict and raises ValidationError.
"""

import math
import uuid
from datetime import datetime, time, timezone
from typing import Optional, Tuple

from trailmemo.exceptions import ValidationError


def parse_int_param(raw: Optional[str], default: int, minimum: int, maximum: int) -> int:
    """int(raw) when it parses and lies in [minimum, maximum]; otherwise `default`."""
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    if value < minimum or value > maximum:
        return default
    return value


def parse_page(raw: Optional[str]) -> int:
    try:
        page = int(raw.strip()) if raw is not None else 1
    except ValueError:
        return 1
    return max(page, 1)


def parse_memo_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValidationError("Invalid memo ID", field="memo_id", context={"memo_id": raw})


def parse_float_param(raw: Optional[str], name: str) -> float:
    """Required float; missing, unparsable, NaN and infinite values are rejected."""
    if raw is None or not raw.strip():
        raise ValidationError(f"{name} is required", field=name)
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"Invalid {name}", field=name, context={"value": raw})
    if not math.isfinite(value):
        raise ValidationError(f"Invalid {name}", field=name, context={"value": raw})
    return value


def validate_coordinates(
    latitude: Optional[float],
    longitude: Optional[float],
) -> Tuple[Optional[float], Optional[float]]:
    """Both or neither; latitude in [-90, 90], longitude in [-180, 180]."""
    if (latitude is None) != (longitude is None):
        raise ValidationError(
            "latitude and longitude must be provided together",
            field="latitude" if latitude is None else "longitude",
        )
    if latitude is None:
        return None, None
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError(
            "latitude must be between -90 and 90", field="latitude", context={"value": latitude}
        )
    if not -180.0 <= longitude <= 180.0:
        raise ValidationError(
            "longitude must be between -180 and 180",
            field="longitude",
            context={"value": longitude},
        )
    return latitude, longitude


def parse_date_param(raw: Optional[str], name: str, end_of_day: bool = False) -> Optional[datetime]:
    """
    ISO 8601 date or datetime → aware UTC datetime.

    A bare date ("2024-06-01") means the start of that day, or its last
    microsecond when `end_of_day` is set, so an end_date includes the whole
    day. Naive datetimes are taken as UTC.
    """
    if raw is None or not raw.strip():
        return None
    value = raw.strip()
    try:
        if len(value) == 10:
            day = datetime.strptime(value, "%Y-%m-%d").date()
            moment = datetime.combine(day, time.max if end_of_day else time.min)
        else:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(
            f"Invalid {name}; expected ISO 8601 (YYYY-MM-DD or full timestamp)",
            field=name,
            context={"value": raw},
        )

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
