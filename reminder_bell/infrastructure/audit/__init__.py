"""
Outcome logging infrastructure.

This module provides the append-only record of every delivery outcome.
"""

from reminder_bell.infrastructure.audit.outcome_logger import OutcomeLogger

__all__ = ["OutcomeLogger"]
