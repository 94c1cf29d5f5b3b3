"""
Command-line runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, wires the components from settings and runs the job.
"""

import argparse
import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from reminder_bell.config import Settings, settings
from reminder_bell.infrastructure.observability.logging import get_logger, setup_logging
from reminder_bell.jobs.authorize_job import run_authorize
from reminder_bell.jobs.reminder_job import EXIT_OK, ReminderJob
from reminder_bell.services.calendar.google_client import GoogleCalendarService
from reminder_bell.services.calendar.oauth_service import GoogleOAuthService
from reminder_bell.services.contacts.directory import ContactDirectory
from reminder_bell.services.state.ledger_store import LedgerStore
from reminder_bell.services.transport.whatsapp_web import WhatsAppWebTransport
from reminder_bell.utils.time_helpers import resolve_timezone

logger = get_logger(__name__)

JobCoroutine = Callable[[argparse.Namespace], Awaitable[int]]


def build_reminder_job(config: Settings) -> tuple[ReminderJob, GoogleCalendarService]:
    """Construct the reminder job and its collaborators from settings."""
    oauth = GoogleOAuthService(config.GOOGLE_CREDENTIALS_FILE, config.GOOGLE_TOKEN_FILE)
    calendar = GoogleCalendarService(oauth.get_access_token, calendar_id=config.CALENDAR_ID)
    job = ReminderJob.from_settings(
        config,
        calendar=calendar,
        transport=WhatsAppWebTransport.from_settings(config),
        store=LedgerStore(config.STATE_FILE),
        directory=ContactDirectory.from_file(config.CONTACTS_FILE),
        tz=resolve_timezone(config.TIMEZONE),
    )
    return job, calendar


async def _reminders(args: argparse.Namespace) -> int:
    job, calendar = build_reminder_job(settings)
    try:
        return await job.run(force=args.force)
    finally:
        await calendar.close()


async def _authorize(args: argparse.Namespace) -> int:
    await run_authorize()
    return EXIT_OK


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "reminders": _reminders,
    "authorize": _authorize,
}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="reminder-bell")
    parser.add_argument(
        "job",
        nargs="?",
        default=os.getenv("WORKER_JOB", "reminders"),
        help=f"Job to run ({', '.join(sorted(JOB_REGISTRY))})",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Process reminders even outside the delivery window",
    )
    return parser.parse_args(argv)


async def run_worker(job_name: str, args: argparse.Namespace | None = None) -> int:
    """Run the requested job and return its exit status."""
    name = job_name.strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting job", job=name)
    return await JOB_REGISTRY[name](args or argparse.Namespace(force=False))


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint."""
    args = _parse_args(argv)
    setup_logging(log_level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)
    sys.exit(asyncio.run(run_worker(args.job, args)))


if __name__ == "__main__":
    main()
