"""
Chat transport contract shared by the WhatsApp Web driver and test doubles.
"""

from enum import StrEnum
from typing import Protocol


class SessionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    READY = "ready"
    CONVERSATION_SELECTED = "conversation_selected"
    CLOSED = "closed"


USABLE_STATES = frozenset({SessionState.READY, SessionState.CONVERSATION_SELECTED})


class TransportError(Exception):
    """Base class for chat transport errors."""


class InitializationError(TransportError):
    """The session could not be brought to the ready state."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.stage = stage


class PreconditionError(TransportError):
    """An operation was called in a session state that does not allow it."""

    def __init__(self, message: str, state: SessionState | None = None):
        super().__init__(message)
        self.state = state


class ChatTransport(Protocol):
    """One exclusively-owned interactive chat session."""

    @property
    def state(self) -> SessionState: ...

    @property
    def is_usable(self) -> bool: ...

    async def initialize(self) -> None: ...

    async def locate_conversation(self, identifier: str) -> bool: ...

    async def send_text(self, text: str) -> bool: ...

    async def pace(self) -> float: ...

    async def close(self) -> None: ...
