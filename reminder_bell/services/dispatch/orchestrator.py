"""
Dispatch Orchestrator for reminder delivery.
Turns pending ReminderEvents into committed SentRecords: recipients are
processed one at a time in declared order, the operator gets a summary per
event, and the ledger is written only after the whole event was processed.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, tzinfo
from typing import Protocol

from reminder_bell.infrastructure.audit import OutcomeLogger
from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.models.domain.reminder_domain import (
    RecipientOutcome,
    RecipientResult,
    ReminderEvent,
    SentRecord,
)
from reminder_bell.services import messages
from reminder_bell.services.state.ledger_store import PersistenceError
from reminder_bell.services.transport.base import ChatTransport
from reminder_bell.utils.time_helpers import format_clock

logger = get_logger(__name__)

SEND_FAILED_DETAIL = "Failed to send message"


class Directory(Protocol):
    def resolve(self, name: str) -> str | None: ...


class SendStateStore(Protocol):
    def is_pending(self, event_id: str) -> bool: ...

    def commit(self, record: SentRecord) -> None: ...


@dataclass
class DispatchReport:
    """What happened to each event handed to the orchestrator in one run."""

    committed: list[SentRecord] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    uncommitted: list[SentRecord] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def to_dict(self) -> dict:
        return {
            "committed": [r.event_id for r in self.committed],
            "skipped": list(self.skipped),
            "failed": dict(self.failed),
            "uncommitted": [r.event_id for r in self.uncommitted],
        }


class DispatchOrchestrator:
    """
    Sequential, rate-limited reminder delivery with exactly-once bookkeeping.

    The transport is a single exclusively-owned session; every call is awaited
    before the next one starts.
    """

    def __init__(
        self,
        transport: ChatTransport,
        store: SendStateStore,
        directory: Directory,
        self_chat: str = "Me",
        outcome_logger: OutcomeLogger | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
        days_ahead: int = 1,
    ):
        self.transport = transport
        self.store = store
        self.directory = directory
        self.self_chat = self_chat
        self.outcome_logger = outcome_logger or OutcomeLogger()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.tz = tz
        self.days_ahead = days_ahead

    async def dispatch(self, events: Iterable[ReminderEvent]) -> DispatchReport:
        """Process events in the given order; a failed event never stops the run."""
        report = DispatchReport()

        for event in events:
            if not self.store.is_pending(event.event_id):
                logger.info("Already sent", event_id=event.event_id, title=event.title)
                report.skipped.append(event.event_id)
                continue

            record: SentRecord | None = None
            try:
                record = await self.deliver(event)
                self.commit(record)
                report.committed.append(record)

            except PersistenceError as e:
                # Full record goes to the log; the event is retried next run
                logger.error(
                    "Ledger commit failed, event stays pending",
                    event_id=event.event_id,
                    error=str(e),
                    record=record.model_dump(mode="json") if record else None,
                )
                report.failed[event.event_id] = str(e)
                if record is not None:
                    report.uncommitted.append(record)

            except Exception as e:
                logger.error(
                    "Event processing failed, event stays pending",
                    event_id=event.event_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                report.failed[event.event_id] = f"{type(e).__name__}: {e}"
                if record is not None:
                    report.uncommitted.append(record)

        logger.info("Dispatch finished", **report.to_dict())
        return report

    async def deliver(self, event: ReminderEvent) -> SentRecord:
        """Message every recipient, then send the operator summary."""
        logger.info(
            "Processing reminder",
            event_id=event.event_id,
            title=event.title,
            recipients=len(event.recipients),
        )

        event_time = None if event.all_day else format_clock(event.scheduled_at, self.tz)
        results: list[RecipientResult] = []

        for name in event.recipients:
            result = await self._deliver_to(name, event, event_time)
            results.append(result)
            self.outcome_logger.log_recipient(event.event_id, result)

        summary_delivered = await self.send_to_self(
            messages.summary_message(event.title, results, format_clock(self._clock(), self.tz))
        )
        self.outcome_logger.log(
            action="summary_sent" if summary_delivered else "summary_failed",
            event_id=event.event_id,
        )

        return SentRecord(
            event_id=event.event_id,
            title=event.title,
            processed_at=self._clock(),
            results=results,
            summary_delivered=summary_delivered,
        )

    async def _deliver_to(
        self, name: str, event: ReminderEvent, event_time: str | None
    ) -> RecipientResult:
        identifier = self.directory.resolve(name)
        if identifier is None:
            logger.warning("Contact not found", event_id=event.event_id, recipient=name)
            return RecipientResult(recipient=name, outcome=RecipientOutcome.RECIPIENT_UNRESOLVED)

        # Transport exceptions propagate without pacing and fail the event
        if not await self.transport.locate_conversation(identifier):
            result = RecipientResult(recipient=name, outcome=RecipientOutcome.CONVERSATION_NOT_FOUND)
        elif await self.transport.send_text(
            messages.reminder_message(name, event.title, event_time, self.days_ahead)
        ):
            result = RecipientResult(recipient=name, outcome=RecipientOutcome.DELIVERED)
        else:
            result = RecipientResult(
                recipient=name,
                outcome=RecipientOutcome.TRANSPORT_ERROR,
                detail=SEND_FAILED_DETAIL,
            )

        await self.transport.pace()

        if result.is_delivered():
            logger.info("Sent reminder", event_id=event.event_id, recipient=name)
        else:
            logger.warning(
                "Failed to send reminder",
                event_id=event.event_id,
                recipient=name,
                outcome=result.outcome.value,
            )
        return result

    async def send_to_self(self, text: str) -> bool:
        """Send a message to the operator's own chat; never raises for UI faults."""
        if not await self.transport.locate_conversation(self.self_chat):
            logger.error("Own chat not found, summary not sent", self_chat=self.self_chat)
            return False

        sent = await self.transport.send_text(text)
        if sent:
            logger.info("Summary sent to self")
        else:
            logger.error("Failed to send summary to self")
        return sent

    def commit(self, record: SentRecord) -> None:
        try:
            self.store.commit(record)
        except PersistenceError as e:
            self.outcome_logger.log_commit(record, committed=False, error=str(e))
            raise
        self.outcome_logger.log_commit(record, committed=True)
        logger.info(
            "Completed processing",
            event_id=record.event_id,
            delivered=record.delivered_count(),
            failed=record.failed_count(),
        )
