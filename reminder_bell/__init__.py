"""Calendar-driven WhatsApp reminders with exactly-once bookkeeping."""

__version__ = "0.1.0"
