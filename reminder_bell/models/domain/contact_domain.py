# reminder_bell/models/domain/contact_domain.py
"""
Contact Domain Models
Directory entries mapping a person's name to a WhatsApp phone number.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class Contact(BaseModel):
    """A person reminders can be addressed to."""

    name: str
    phone: str  # international format without '+', e.g. 972501234567
    type: Literal["parent", "staff"] = "parent"

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, value: str) -> str:
        digits = "".join(ch for ch in value if ch.isdigit())
        if not digits:
            raise ValueError("phone must contain digits")
        return digits

    def normalized_name(self) -> str:
        return self.name.strip().lower()


class ContactsFile(BaseModel):
    """Structure of contacts.json."""

    contacts: list[Contact] = Field(default_factory=list)
