# reminder_bell/models/domain/reminder_domain.py
"""
Reminder Domain Models
Records that flow through the delivery pipeline and the persisted ledger.
"""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RecipientOutcome(StrEnum):
    DELIVERED = "delivered"
    RECIPIENT_UNRESOLVED = "recipient_unresolved"
    CONVERSATION_NOT_FOUND = "conversation_not_found"
    TRANSPORT_ERROR = "transport_error"


class TimeRange(BaseModel):
    """Half-open [start, end) window used to query the calendar."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _end_after_start(self) -> "TimeRange":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class ReminderEvent(BaseModel):
    """A calendar entry marked for notification dispatch."""

    event_id: str
    title: str
    scheduled_at: datetime
    recipients: list[str]
    all_day: bool = False  # scheduled_at carries only the date

    @field_validator("recipients")
    @classmethod
    def _recipients_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("a reminder event needs at least one recipient")
        return value


class RecipientResult(BaseModel):
    """Outcome of attempting delivery to one recipient for one event."""

    recipient: str
    outcome: RecipientOutcome
    detail: str | None = None

    @model_validator(mode="after")
    def _detail_only_for_transport_errors(self) -> "RecipientResult":
        if self.detail is not None and self.outcome != RecipientOutcome.TRANSPORT_ERROR:
            raise ValueError("detail is only recorded for transport errors")
        return self

    def is_delivered(self) -> bool:
        return self.outcome == RecipientOutcome.DELIVERED


class SentRecord(BaseModel):
    """Persisted proof that an event was fully processed."""

    event_id: str
    title: str
    processed_at: datetime = Field(default_factory=_utcnow)
    results: list[RecipientResult]
    summary_delivered: bool = False

    def delivered_count(self) -> int:
        return sum(1 for r in self.results if r.is_delivered())

    def failed_count(self) -> int:
        return len(self.results) - self.delivered_count()


class Ledger(BaseModel):
    """The on-disk ledger document."""

    sent_reminders: list[SentRecord] = Field(default_factory=list)

    def contains(self, event_id: str) -> bool:
        return any(r.event_id == event_id for r in self.sent_reminders)
