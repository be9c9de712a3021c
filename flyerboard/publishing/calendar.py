"""
Calendar export (RFC 5545) for a single published event.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from flyerboard.config import Settings
from flyerboard.models.tables import Event, Venue
from flyerboard.pipeline.date_parser import as_utc
from flyerboard.schemas.events import CalendarRecord

ICS_TIME_FORMAT = "%Y%m%dT%H%M%SZ"
# Content lines longer than this many octets are folded (RFC 5545 3.1)
ICS_LINE_OCTETS = 75


def venue_location(venue: Optional[Venue]) -> Optional[str]:
    if venue is None:
        return None
    if venue.address_line:
        return f"{venue.name}, {venue.address_line}"
    return venue.name


def build_calendar_record(
    event: Event,
    venue: Optional[Venue],
    uid_domain: str,
    default_duration: timedelta = timedelta(hours=2),
) -> CalendarRecord:
    """Stable UID per event; end defaults to start + ``default_duration``."""
    start = as_utc(event.start_ts)
    end = as_utc(event.end_ts) if event.end_ts else start + default_duration
    return CalendarRecord(
        uid=f"evt_{event.event_id}@{uid_domain}",
        start=start,
        end=end,
        summary=event.title,
        description=event.description,
        location=venue_location(venue),
        url=event.url,
    )


def escape_text(value: Optional[str]) -> str:
    """TEXT value escaping: backslash, semicolon, comma, newline."""
    if not value:
        return ""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def fold_line(line: str, limit: int = ICS_LINE_OCTETS) -> str:
    """Split ``line`` into CRLF + space continuations without breaking a UTF-8 character."""
    if len(line.encode("utf-8")) <= limit:
        return line

    parts = []
    current, size = "", 0
    budget = limit
    for char in line:
        width = len(char.encode("utf-8"))
        if size + width > budget:
            parts.append(current)
            # Continuation lines spend one octet on the leading space
            current, size, budget = "", 0, limit - 1
        current += char
        size += width
    parts.append(current)
    return "\r\n ".join(parts)


def render_ics(record: CalendarRecord, prodid: str) -> str:
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{prodid}",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{record.uid}",
        f"DTSTAMP:{datetime.now(timezone.utc).strftime(ICS_TIME_FORMAT)}",
        f"DTSTART:{record.start.astimezone(timezone.utc).strftime(ICS_TIME_FORMAT)}",
        f"DTEND:{record.end.astimezone(timezone.utc).strftime(ICS_TIME_FORMAT)}",
        f"SUMMARY:{escape_text(record.summary)}",
        f"DESCRIPTION:{escape_text(record.description)}",
        f"LOCATION:{escape_text(record.location)}",
        f"URL:{record.url or ''}",
        "STATUS:CONFIRMED",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(fold_line(line) for line in lines) + "\r\n"


def event_to_ics(event: Event, venue: Optional[Venue], settings: Settings) -> str:
    record = build_calendar_record(
        event,
        venue,
        uid_domain=settings.ICS_UID_DOMAIN,
        default_duration=timedelta(hours=settings.DEFAULT_EVENT_DURATION_HOURS),
    )
    return render_ics(record, settings.ICS_PRODID)
