"""
Contact directory: resolves recipient names to WhatsApp phone numbers.
"""

from pathlib import Path

from pydantic import ValidationError

from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.models.domain.contact_domain import Contact, ContactsFile

logger = get_logger(__name__)


class ContactDirectory:
    """Name → phone lookup table loaded from contacts.json."""

    def __init__(self, contacts: list[Contact] | None = None):
        self._contacts = list(contacts or [])

    @classmethod
    def from_file(cls, path: Path) -> "ContactDirectory":
        """Load contacts; a missing or invalid file yields an empty directory."""
        try:
            parsed = ContactsFile.model_validate_json(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(
                "Failed to load contacts",
                path=str(path),
                error=str(e),
                error_type=type(e).__name__,
            )
            return cls()

        logger.info("Loaded contacts", path=str(path), contact_count=len(parsed.contacts))
        return cls(parsed.contacts)

    def find_by_name(self, name: str) -> Contact | None:
        """Exact match first, then trimmed case-insensitive match."""
        for contact in self._contacts:
            if contact.name == name:
                return contact

        normalized = name.strip().lower()
        for contact in self._contacts:
            if contact.normalized_name() == normalized:
                return contact

        return None

    def resolve(self, name: str) -> str | None:
        """Return the transport identifier (phone) for a name, or None."""
        contact = self.find_by_name(name)
        return contact.phone if contact else None

    def __len__(self) -> int:
        return len(self._contacts)
