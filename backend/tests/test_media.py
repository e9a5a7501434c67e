"""Media helpers."""

import pytest

from src.core.exceptions import ValidationError
from src.whatsapp.media import (
    MediaPayload,
    download_media,
    is_valid_media_url,
    media_type_for,
    validate_base64,
)


@pytest.mark.parametrize(
    "mimetype, expected",
    [
        ("image/jpeg", "image"),
        ("video/mp4", "video"),
        ("audio/ogg; codecs=opus", "audio"),
        ("application/pdf", "document"),
        (None, "document"),
    ],
)
def test_media_type_for(mimetype, expected):
    assert media_type_for(mimetype) == expected


def test_validate_base64():
    validate_base64("aGVsbG8=")
    with pytest.raises(ValidationError):
        validate_base64("not base64!")


def test_media_url_scheme():
    assert is_valid_media_url("https://cdn.example.com/a.png")
    assert not is_valid_media_url("file:///etc/passwd")
    assert not is_valid_media_url("not a url")


async def test_download_rejects_non_http_url():
    with pytest.raises(ValidationError):
        await download_media("ftp://example.com/a.png")


def test_payload_to_message_media():
    media = MediaPayload(type="image", data="aGk=", mimetype="image/png")

    converted = media.to_message_media()

    assert converted.mimetype == "image/png"
    assert converted.filename == "file"
