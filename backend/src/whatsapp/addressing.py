"""Recipient addressing.

`classify_address` is the single place that decides whether a recipient
is an E.164 phone number, a group address or a contact address.
"""

import re
from dataclasses import dataclass

from src.core.exceptions import ValidationError
from src.whatsapp.client import CONTACT_SUFFIX, GROUP_SUFFIX

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
# legacy groups are "<creator>-<timestamp>@g.us"
GROUP_PATTERN = re.compile(r"^\d+(-\d+)?@g\.us$")
CONTACT_PATTERN = re.compile(r"^\d+@c\.us$")


@dataclass(frozen=True)
class PhoneAddress:
    number: str
    kind: str = "phone"

    @property
    def chat_id(self) -> str:
        return self.number.lstrip("+") + CONTACT_SUFFIX


@dataclass(frozen=True)
class GroupAddress:
    chat_id: str
    kind: str = "group"


@dataclass(frozen=True)
class ContactAddress:
    chat_id: str
    kind: str = "contact"


Address = PhoneAddress | GroupAddress | ContactAddress


def classify_address(raw: str | None) -> Address:
    """Classify a recipient string, raising ValidationError if malformed."""
    if not raw or not isinstance(raw, str):
        raise ValidationError('Recipient "to" is required')

    if GROUP_SUFFIX in raw:
        if not GROUP_PATTERN.match(raw):
            raise ValidationError(
                "Invalid group ID format. Expected: 120363XXXXX@g.us",
                details={"to": raw},
            )
        return GroupAddress(raw)

    if CONTACT_SUFFIX in raw:
        if not CONTACT_PATTERN.match(raw):
            raise ValidationError(
                "Invalid contact ID format. Expected: 33612345678@c.us",
                details={"to": raw},
            )
        return ContactAddress(raw)

    if not E164_PATTERN.match(raw):
        raise ValidationError(
            "Invalid format. Use E.164 (+33612345678), group ID (120363XXX@g.us), "
            "or contact ID (33612345678@c.us)",
            details={"to": raw},
        )
    return PhoneAddress(raw)


def group_chat_id(group_id: str) -> str:
    """Accept a bare group id or a full group address."""
    chat_id = group_id if group_id.endswith(GROUP_SUFFIX) else f"{group_id}{GROUP_SUFFIX}"
    if not GROUP_PATTERN.match(chat_id):
        raise ValidationError(
            "Invalid group ID format. Expected: 120363XXXXX@g.us",
            details={"group_id": group_id},
        )
    return chat_id
