from datetime import UTC, datetime

from reminder_bell.models.domain.calendar_domain import CalendarEvent
from reminder_bell.services.calendar.reminder_parser import (
    extract_reminders,
    split_recipients,
    strip_marker,
)


def _event(**overrides) -> CalendarEvent:
    data = {
        "id": "E1",
        "summary": "🔔 Parent meeting",
        "description": "Ann\nBob",
        "start": {"dateTime": "2026-02-02T17:00:00+02:00"},
        "status": "confirmed",
    }
    data.update(overrides)
    return CalendarEvent(data)


def test_split_recipients_plain_lines():
    assert split_recipients("  Ann \n\nBob\n  ") == ["Ann", "Bob"]


def test_split_recipients_html_description():
    description = "<p>Ann</p><p>Bob Cohen<br>Carol</p><div><b>Dana</b></div>"

    assert split_recipients(description) == ["Ann", "Bob Cohen", "Carol", "Dana"]


def test_split_recipients_decodes_html_entities():
    description = "Dana&nbsp;Levi<br>Tom &amp; Jerry<br>&nbsp;<br>Ann&nbsp;&nbsp;Cohen"

    assert split_recipients(description) == ["Dana Levi", "Tom & Jerry", "Ann Cohen"]


def test_split_recipients_empty():
    assert split_recipients("") == []
    assert split_recipients(None) == []


def test_strip_marker_collapses_spaces():
    assert strip_marker("🔔  Parent  meeting 🔔") == "Parent meeting"


def test_extract_reminders_parses_marked_event():
    (reminder,) = extract_reminders([_event()])

    assert reminder.event_id == "E1"
    assert reminder.title == "Parent meeting"
    assert reminder.recipients == ["Ann", "Bob"]
    assert reminder.scheduled_at == datetime(2026, 2, 2, 15, 0, tzinfo=UTC)
    assert reminder.all_day is False


def test_extract_reminders_flags_all_day_events():
    (reminder,) = extract_reminders([_event(start={"date": "2026-02-02"})])

    assert reminder.all_day is True
    assert reminder.scheduled_at.date().isoformat() == "2026-02-02"


def test_extract_reminders_skips_unusable_events():
    events = [
        _event(id="unmarked", summary="Staff lunch"),
        _event(id="cancelled", status="cancelled"),
        _event(id="nobody", description="   "),
        _event(id="keep"),
    ]

    assert [r.event_id for r in extract_reminders(events)] == ["keep"]


def test_extract_reminders_keeps_calendar_order():
    events = [_event(id="E2"), _event(id="E1")]

    assert [r.event_id for r in extract_reminders(events)] == ["E2", "E1"]


def test_extract_reminders_custom_marker():
    events = [_event(summary="[remind] Trip"), _event(id="E2")]

    (reminder,) = extract_reminders(events, marker="[remind]")

    assert reminder.title == "Trip"


def test_marker_only_title_is_kept_verbatim():
    (reminder,) = extract_reminders([_event(summary="🔔")])

    assert reminder.title == "🔔"
