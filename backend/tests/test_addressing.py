"""Recipient classification."""

import pytest

from src.core.exceptions import ValidationError
from src.whatsapp.addressing import (
    ContactAddress,
    GroupAddress,
    PhoneAddress,
    classify_address,
    group_chat_id,
)


class TestClassifyAddress:
    def test_e164_number_becomes_contact_chat_id(self):
        address = classify_address("+33612345678")

        assert isinstance(address, PhoneAddress)
        assert address.kind == "phone"
        assert address.chat_id == "33612345678@c.us"

    def test_group_address_passes_through_unchanged(self):
        address = classify_address("120363025246125486@g.us")

        assert isinstance(address, GroupAddress)
        assert address.chat_id == "120363025246125486@g.us"

    def test_legacy_group_address_is_accepted(self):
        assert classify_address("33612345678-1600000000@g.us").chat_id == "33612345678-1600000000@g.us"

    def test_contact_address_passes_through_unchanged(self):
        address = classify_address("33612345678@c.us")

        assert isinstance(address, ContactAddress)
        assert address.chat_id == "33612345678@c.us"

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            None,
            "33612345678",
            "+0612345678",
            "+1234567890123456",
            "+33 6 12 34 56 78",
            "abc@g.us",
            "33612345678@c.us.evil",
            "user@s.whatsapp.net",
        ],
    )
    def test_malformed_recipients_are_rejected(self, raw):
        with pytest.raises(ValidationError):
            classify_address(raw)


class TestGroupChatId:
    def test_bare_group_id_gets_suffix(self):
        assert group_chat_id("120363025246125486") == "120363025246125486@g.us"

    def test_full_group_id_is_kept(self):
        assert group_chat_id("120363025246125486@g.us") == "120363025246125486@g.us"

    def test_garbage_group_id_is_rejected(self):
        with pytest.raises(ValidationError):
            group_chat_id("not-a-group")
