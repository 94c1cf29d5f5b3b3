"""
Reminder Job: one run of the reminder pipeline.
Gates on the delivery window, reads tomorrow's calendar, delivers pending
reminders over WhatsApp Web and guarantees the browser is released on every
exit path.
"""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime, time, tzinfo
from typing import Protocol

import structlog

from reminder_bell.config import Settings
from reminder_bell.infrastructure.audit import OutcomeLogger
from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.models.domain.calendar_domain import CalendarEvent
from reminder_bell.models.domain.reminder_domain import TimeRange
from reminder_bell.services import messages
from reminder_bell.services.calendar.google_client import CalendarFetchError
from reminder_bell.services.calendar.reminder_parser import DEFAULT_MARKER, extract_reminders
from reminder_bell.services.dispatch.orchestrator import (
    DispatchOrchestrator,
    DispatchReport,
    Directory,
    SendStateStore,
)
from reminder_bell.services.transport.base import ChatTransport, InitializationError
from reminder_bell.utils.time_helpers import day_window, is_within_window, local_now

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class CalendarSource(Protocol):
    async def fetch_upcoming_events(self, window: TimeRange) -> list[CalendarEvent]: ...


class ReminderJobMetrics:
    """Metrics tracking for one reminder run."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all metrics for new job run."""
        self.run_id = uuid.uuid4().hex[:12]
        self.start_time = datetime.now(UTC)
        self.events_fetched = 0
        self.reminders_found = 0
        self.reminders_pending = 0
        self.events_committed = 0
        self.events_failed = 0
        self.recipients_delivered = 0
        self.recipients_failed = 0
        self.total_duration_seconds = 0.0
        self.fatal_error: str | None = None

    def record_report(self, report: DispatchReport):
        self.events_committed += len(report.committed)
        self.events_failed += len(report.failed)
        for record in report.committed + report.uncommitted:
            self.recipients_delivered += record.delivered_count()
            self.recipients_failed += record.failed_count()

    def record_fatal(self, error: BaseException):
        self.fatal_error = f"{type(error).__name__}: {error}"

    def finalize(self):
        """Finalize metrics and calculate totals."""
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging."""
        return {
            "job_run": "reminders",
            "run_id": self.run_id,
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "events_fetched": self.events_fetched,
            "reminders_found": self.reminders_found,
            "reminders_pending": self.reminders_pending,
            "events_committed": self.events_committed,
            "events_failed": self.events_failed,
            "recipients_delivered": self.recipients_delivered,
            "recipients_failed": self.recipients_failed,
            "fatal_error": self.fatal_error,
        }


class ReminderJob:
    """
    Single invocation of the reminder pipeline.

    All collaborators are injected so the transport can be replaced by a
    recording double in tests.
    """

    def __init__(
        self,
        calendar: CalendarSource,
        transport: ChatTransport,
        store: SendStateStore,
        directory: Directory,
        window_start: time = time(18, 40),
        window_end: time = time(19, 20),
        days_ahead: int = 1,
        marker: str = DEFAULT_MARKER,
        self_chat: str = "Me",
        tz: tzinfo | None = None,
        outcome_logger: OutcomeLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.calendar = calendar
        self.transport = transport
        self.store = store
        self.window_start = window_start
        self.window_end = window_end
        self.days_ahead = days_ahead
        self.marker = marker
        self.tz = tz
        self._clock = clock or (lambda: local_now(tz))
        self.metrics = ReminderJobMetrics()
        self.orchestrator = DispatchOrchestrator(
            transport=transport,
            store=store,
            directory=directory,
            self_chat=self_chat,
            outcome_logger=outcome_logger,
            clock=self._clock,
            tz=tz,
            days_ahead=days_ahead,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        calendar: CalendarSource,
        transport: ChatTransport,
        store: SendStateStore,
        directory: Directory,
        tz: tzinfo | None = None,
    ) -> "ReminderJob":
        return cls(
            calendar=calendar,
            transport=transport,
            store=store,
            directory=directory,
            window_start=settings.WINDOW_START,
            window_end=settings.WINDOW_END,
            days_ahead=settings.CALENDAR_DAYS_AHEAD,
            marker=settings.REMINDER_MARKER,
            self_chat=settings.SELF_CHAT_NAME,
            tz=tz,
            outcome_logger=OutcomeLogger(settings.OUTCOME_LOG_FILE),
        )

    async def run(self, force: bool = False) -> int:
        """
        Run the pipeline once.

        Args:
            force: Process even outside the delivery window

        Returns:
            Process exit status: 0 on full success, 1 on any fatal or event failure
        """
        self.metrics.reset()
        structlog.contextvars.bind_contextvars(run_id=self.metrics.run_id)
        logger.info("Reminder run starting", force=force)

        try:
            return await self._run(force)

        except (CalendarFetchError, InitializationError) as e:
            self.metrics.record_fatal(e)
            logger.error("Fatal error in reminder run", error=str(e), error_type=type(e).__name__)
            await self._notify_failure(e)
            return EXIT_FAILURE

        except Exception as e:
            self.metrics.record_fatal(e)
            logger.exception("Unexpected error in reminder run", error=str(e))
            await self._notify_failure(e)
            return EXIT_FAILURE

        finally:
            await self.transport.close()
            self.metrics.finalize()
            logger.info("Reminder run metrics", **self.metrics.to_dict())
            structlog.contextvars.unbind_contextvars("run_id")

    async def _run(self, force: bool) -> int:
        now = self._clock()
        if not is_within_window(now, self.window_start, self.window_end):
            if not force:
                logger.warning(
                    "Not within time window, skipping run",
                    current_time=now.strftime("%H:%M"),
                    window_start=self.window_start.strftime("%H:%M"),
                    window_end=self.window_end.strftime("%H:%M"),
                )
                return EXIT_OK
            logger.info("Outside time window, running anyway (forced)")

        window = day_window(now, self.days_ahead, self.tz)
        logger.info("Fetching calendar events", start=window.start.isoformat())
        events = await self.calendar.fetch_upcoming_events(window)
        self.metrics.events_fetched = len(events)

        reminders = extract_reminders(events, self.marker)
        self.metrics.reminders_found = len(reminders)
        if not reminders:
            logger.info("No reminder events found", marker=self.marker)
            return EXIT_OK

        pending = []
        for reminder in reminders:
            if self.store.is_pending(reminder.event_id):
                pending.append(reminder)
            else:
                logger.info("Already sent", event_id=reminder.event_id, title=reminder.title)
        self.metrics.reminders_pending = len(pending)

        if not pending:
            logger.info("All reminders already sent")
            return EXIT_OK

        logger.info("Reminders to send", count=len(pending))
        await self.transport.initialize()

        report = await self.orchestrator.dispatch(pending)
        self.metrics.record_report(report)

        if report.has_failures:
            logger.error("Reminder run finished with failed events", failed=report.failed)
            return EXIT_FAILURE

        logger.info("Reminder run completed successfully")
        return EXIT_OK

    async def _notify_failure(self, error: BaseException) -> None:
        """Best-effort failure notice to the operator's own chat."""
        if not self.transport.is_usable:
            return
        try:
            await self.orchestrator.send_to_self(messages.error_notice(error))
        except Exception as notify_error:
            logger.error("Could not send error notification", error=str(notify_error))
