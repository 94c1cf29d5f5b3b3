"""
OutcomeLogger - Append-only record of every delivery outcome.

Every recipient attempt, summary attempt and ledger commit is written as one
JSON line to the outcome log file and mirrored to the structured logs, so the
history of a run can be reconstructed even when the ledger commit failed.

Usage:
    from reminder_bell.infrastructure.audit import OutcomeLogger

    outcome_logger = OutcomeLogger(Path("data/logs/outcomes.jsonl"))
    outcome_logger.log(
        action="recipient_processed",
        event_id="abc123",
        recipient="Ann",
        outcome="delivered",
    )

Design Principles:
- Write to both the outcome file (append-only) and structured logs (searchable)
- Never fail the run if outcome logging fails
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.models.domain.reminder_domain import RecipientResult, SentRecord

logger = get_logger(__name__)


class OutcomeLogger:
    """
    Append-only outcome log.

    Logs every recorded outcome to:
    1. Outcome file (JSON lines) - durable, greppable
    2. Structured logs (stdout) - real-time monitoring
    """

    def __init__(self, path: Path | None = None):
        self.path = path

    def log(
        self,
        action: str,
        event_id: str,
        recipient: str | None = None,
        outcome: str | None = None,
        detail: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Record one outcome.

        Args:
            action: Action name (e.g., "recipient_processed", "summary_sent")
            event_id: Calendar event the outcome belongs to
            recipient: Recipient name, if the outcome concerns one person
            outcome: Outcome value (e.g., "delivered", "transport_error")
            detail: Free-text diagnostic
            metadata: Additional JSON-serializable context

        Returns:
            True if written to the outcome file, False otherwise (never raises)
        """
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "action": action,
            "event_id": event_id,
            "recipient": recipient,
            "outcome": outcome,
            "detail": detail,
            "metadata": metadata or {},
        }

        # Structured logs first (fast, cannot lose the entry)
        logger.info(
            "Outcome recorded",
            outcome_action=action,
            event_id=event_id,
            recipient=recipient,
            outcome=outcome,
            detail=detail,
        )

        if self.path is None:
            return False

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, ensure_ascii=False) + "\n")
            return True

        except OSError as e:
            # Never fail the run due to outcome logging failure
            logger.error(
                "Failed to append outcome log",
                error=str(e),
                error_type=type(e).__name__,
                path=str(self.path),
                fallback_data=entry,
            )
            return False

    def log_recipient(self, event_id: str, result: RecipientResult) -> bool:
        """Convenience method for a single recipient outcome."""
        return self.log(
            action="recipient_processed",
            event_id=event_id,
            recipient=result.recipient,
            outcome=result.outcome.value,
            detail=result.detail,
        )

    def log_commit(self, record: SentRecord, committed: bool, error: str | None = None) -> bool:
        """Record whether a SentRecord reached the ledger."""
        return self.log(
            action="ledger_committed" if committed else "ledger_commit_failed",
            event_id=record.event_id,
            detail=error,
            metadata={
                "title": record.title,
                "delivered": record.delivered_count(),
                "failed": record.failed_count(),
                "summary_delivered": record.summary_delivered,
            },
        )
