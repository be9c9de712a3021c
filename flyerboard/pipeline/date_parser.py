"""
Event start/end time resolution for promotion.

Strategy:
1. Try a fixed, ordered list of absolute formats; first match wins
2. Naive values are wall-clock time in the region timezone
3. A start strictly before "now" is moved forward one year
   (flyers rarely print the year, and the model guesses the current one)
4. Nothing parseable: start = now + 24h so the event still surfaces
"""

from datetime import datetime, timedelta, tzinfo
from typing import Optional

from dateutil import tz
from dateutil.relativedelta import relativedelta
from pydantic import BaseModel


class StartTimeResult(BaseModel):
    start_ts: datetime
    raw_text: Optional[str] = None
    format_detected: str
    shifted_year: bool = False
    is_fallback: bool = False


# Ordered by specificity (try most specific first)
START_TIME_FORMATS = [
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%B %d, %Y",
    "%b %d, %Y",
]

END_TIME_FORMATS = START_TIME_FORMATS[:5]

FALLBACK_DELAY = timedelta(hours=24)


def region_tz(name: str) -> tzinfo:
    """tzinfo for an IANA name; unknown names resolve to UTC."""
    return tz.gettz(name) or tz.UTC


def parse_with_formats(
    raw: Optional[str],
    formats: list[str],
    zone: tzinfo,
) -> Optional[tuple[datetime, str]]:
    """(aware datetime, format) for the first matching format, else None."""
    if not raw:
        return None
    text = raw.strip()
    if not text:
        return None

    for fmt in formats:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=zone), fmt
    return None


def resolve_start_time(
    raw: Optional[str],
    now: datetime,
    zone: tzinfo = tz.UTC,
) -> StartTimeResult:
    """
    Resolve a flyer's start time text against ``now`` (timezone-aware).
    Never raises: unparseable or missing text yields now + 24h.
    """
    match = parse_with_formats(raw, START_TIME_FORMATS, zone)
    if match is None:
        return StartTimeResult(
            start_ts=now + FALLBACK_DELAY,
            raw_text=raw,
            format_detected="FALLBACK",
            is_fallback=True,
        )

    parsed, fmt = match
    shifted = False
    if parsed < now:
        parsed = parsed + relativedelta(years=1)
        shifted = True

    return StartTimeResult(
        start_ts=parsed,
        raw_text=raw,
        format_detected=fmt,
        shifted_year=shifted,
    )


def resolve_end_time(raw: Optional[str], zone: tzinfo = tz.UTC) -> Optional[datetime]:
    """End time is optional and never shifted."""
    match = parse_with_formats(raw, END_TIME_FORMATS, zone)
    return match[0] if match else None


def as_utc(ts: datetime) -> datetime:
    """Aware UTC datetime. Naive values (SQLite reads) are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz.UTC)
    return ts.astimezone(tz.UTC)
