# reminder_bell/models/domain/calendar_domain.py
"""
Calendar Domain Models
Domain models for events read from Google Calendar.
"""

from datetime import UTC, datetime


class CalendarEvent:
    """Domain model for a raw calendar event."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.summary = data.get("summary") or "No title"
        self.description = data.get("description") or ""
        self.start_time = self._parse_datetime(data.get("start", {}))
        self.status = data.get("status", "confirmed")
        self.raw_data = data

    def _parse_datetime(self, dt_data: dict) -> datetime | None:
        """Parse datetime from Google Calendar format."""
        if not dt_data:
            return None

        # Handle all-day events (date only)
        if "date" in dt_data:
            date_str = dt_data["date"]
            return datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=UTC)

        # Handle timed events (dateTime)
        if "dateTime" in dt_data:
            dt_str = dt_data["dateTime"]
            try:
                return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
            except ValueError:
                return None

        return None

    def is_all_day(self) -> bool:
        """Check if this is an all-day event."""
        return "date" in self.raw_data.get("start", {})

    def is_cancelled(self) -> bool:
        return self.status == "cancelled"
