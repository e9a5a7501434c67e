"""Media payload helpers"""

import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

import httpx

from src.core.exceptions import ExternalServiceError, ValidationError
from src.core.logging import log
from src.whatsapp.client import MessageMedia

MEDIA_TYPES = ("image", "video", "audio", "document")
MAX_MEDIA_BYTES = 16 * 1024 * 1024
DOWNLOAD_TIMEOUT = 30.0
DEFAULT_MIMETYPE = "application/octet-stream"


@dataclass
class MediaPayload:
    """Outbound media as received from the API."""
    type: str
    data: str
    mimetype: str = DEFAULT_MIMETYPE
    filename: str | None = None
    caption: str | None = None
    url: str | None = None

    def to_message_media(self) -> MessageMedia:
        return MessageMedia(
            mimetype=self.mimetype,
            data=self.data,
            filename=self.filename or "file",
        )


def media_type_for(mimetype: str | None) -> str:
    """Map a mimetype to image / video / audio / document."""
    if not mimetype:
        return "document"
    for kind in ("image", "video", "audio"):
        if mimetype.startswith(f"{kind}/"):
            return kind
    return "document"


def validate_base64(data: str) -> None:
    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Media data must be valid base64")


def is_valid_media_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


async def download_media(url: str) -> tuple[str, str, str]:
    """Download a file and return (base64 data, mimetype, filename)."""
    if not is_valid_media_url(url):
        raise ValidationError("Media URL must be http(s)", details={"url": url})

    log.info(f"Downloading media from: {url[:100]}")
    try:
        async with httpx.AsyncClient(
            timeout=DOWNLOAD_TIMEOUT,
            follow_redirects=True,
            headers={"User-Agent": "WhatsApp-Session-Gateway/1.0"},
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.TimeoutException:
        raise ExternalServiceError("Media download", "timeout (max 30s)")
    except httpx.HTTPStatusError as e:
        raise ExternalServiceError(
            "Media download", f"HTTP {e.response.status_code}"
        )
    except httpx.HTTPError as e:
        raise ExternalServiceError("Media download", str(e))

    if len(response.content) > MAX_MEDIA_BYTES:
        raise ValidationError("Media too large (max 16MB)")

    mimetype = response.headers.get("content-type", "").split(";")[0].strip()
    if not mimetype or mimetype == DEFAULT_MIMETYPE:
        mimetype = mimetypes.guess_type(url)[0] or "image/jpeg"

    filename = PurePosixPath(urlparse(url).path).name or "file"
    if "." not in filename:
        extension = mimetypes.guess_extension(mimetype) or ".bin"
        filename = f"{filename}{extension}"

    data = base64.b64encode(response.content).decode("ascii")
    log.info(f"Downloaded {filename} ({mimetype}, {len(response.content) / 1024:.2f} KB)")
    return data, mimetype, filename
