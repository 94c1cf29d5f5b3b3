"""
Reminder marker parsing.
Turns raw calendar events into ReminderEvents: the marker in the title flags an
event, and the description lists one recipient name per line.
"""

import html
import re
from collections.abc import Iterable

from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.models.domain.calendar_domain import CalendarEvent
from reminder_bell.models.domain.reminder_domain import ReminderEvent

logger = get_logger(__name__)

DEFAULT_MARKER = "🔔"

# Google Calendar's web UI stores multi-line descriptions as HTML
_BREAK_TAGS = re.compile(r"<\s*br\s*/?\s*>|</\s*(?:p|div)\s*>", re.IGNORECASE)
_OTHER_TAGS = re.compile(r"<[^>]+>")


def split_recipients(description: str) -> list[str]:
    """Split a description into non-empty recipient names with single spacing."""
    text = _BREAK_TAGS.sub("\n", description or "")
    # &nbsp; decodes to U+00A0, which str.split() treats as whitespace
    text = html.unescape(_OTHER_TAGS.sub("", text))
    names = (" ".join(line.split()) for line in text.splitlines())
    return [name for name in names if name]


def strip_marker(title: str, marker: str = DEFAULT_MARKER) -> str:
    return " ".join(title.replace(marker, " ").split())


def extract_reminders(
    events: Iterable[CalendarEvent], marker: str = DEFAULT_MARKER
) -> list[ReminderEvent]:
    """
    Select marked events and parse their recipients.

    Events without the marker, cancelled events and events whose description
    lists nobody are dropped. Input order is preserved.
    """
    reminders: list[ReminderEvent] = []

    for event in events:
        if marker not in event.summary or event.is_cancelled():
            continue

        people = split_recipients(event.description)
        if not people:
            logger.warning("Marked event lists no people", event_id=event.id, title=event.summary)
            continue

        if event.id is None or event.start_time is None:
            logger.warning("Marked event is missing id or start time", title=event.summary)
            continue

        reminders.append(
            ReminderEvent(
                event_id=event.id,
                title=strip_marker(event.summary, marker) or event.summary,
                scheduled_at=event.start_time,
                recipients=people,
                all_day=event.is_all_day(),
            )
        )
        logger.info("Parsed reminder", event_id=event.id, title=event.summary, people=len(people))

    return reminders
