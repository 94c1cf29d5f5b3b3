"""Fixed message templates for recipients and for the operator's own chat."""

from reminder_bell.models.domain.reminder_domain import RecipientOutcome, RecipientResult

FAILURE_REASONS = {
    RecipientOutcome.RECIPIENT_UNRESOLVED: "contact not found",
    RecipientOutcome.CONVERSATION_NOT_FOUND: "chat not found",
    RecipientOutcome.TRANSPORT_ERROR: "send error",
}


def day_phrase(days_ahead: int) -> str:
    if days_ahead == 0:
        return "today"
    if days_ahead == 1:
        return "tomorrow"
    return f"in {days_ahead} days"


def reminder_message(
    recipient: str, event_title: str, event_time: str | None, days_ahead: int = 1
) -> str:
    """Personalized reminder; event_time is None for all-day events."""
    when = day_phrase(days_ahead)
    if event_time:
        when = f"{when} at {event_time}"
    return (
        f"Hi {recipient}! 👋\n"
        f"A friendly reminder about {event_title} {when}.\n"
        "Looking forward to seeing you!"
    )


def failure_reason(result: RecipientResult) -> str:
    reason = FAILURE_REASONS.get(result.outcome, result.outcome.value)
    if result.detail:
        reason = f"{reason} ({result.detail})"
    return reason


def summary_message(event_title: str, results: list[RecipientResult], time_str: str) -> str:
    """Operator summary: who got the reminder, who did not and why."""
    delivered = [r for r in results if r.is_delivered()]
    failed = [r for r in results if not r.is_delivered()]

    lines = [f"📅 Reminder: {event_title}", ""]

    if delivered:
        lines.append("✅ Sent:")
        lines.extend(f"  • {r.recipient}" for r in delivered)
        lines.append("")

    if failed:
        lines.append("⚠️ Not sent:")
        lines.extend(f"  • {r.recipient} - {failure_reason(r)}" for r in failed)
        lines.append("")

    lines.append(f"🕐 {time_str}")
    return "\n".join(lines)


def error_notice(error: BaseException) -> str:
    return f"⚠️ reminder-bell error:\n{error}"
