"""Helpers for turning an image reference into what each provider accepts.

The generative provider takes a URL or a ``data:`` URL; the text-detection
provider only takes inline base64 content, so URL references are
downloaded and re-encoded first.
"""

import base64
import binascii
import io

import httpx
from PIL import Image, UnidentifiedImageError

from src.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MEDIA_TYPE = "image/jpeg"


def encode_base64(data: bytes) -> str:
    """Encode raw image bytes as an ASCII base64 string."""
    return base64.b64encode(data).decode("ascii")


def guess_media_type(data: bytes) -> str:
    """Sniff the MIME type of raw image bytes.

    Args:
        data: Raw image bytes.

    Returns:
        The MIME type Pillow reports, or ``image/jpeg`` when the bytes are
        not a recognizable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format or "", DEFAULT_MEDIA_TYPE)
    except (UnidentifiedImageError, OSError):
        return DEFAULT_MEDIA_TYPE


def to_data_url(image_base64: str) -> str:
    """Wrap an inline base64 payload in a ``data:`` URL.

    Args:
        image_base64: Base64-encoded image content.

    Returns:
        A ``data:<mime>;base64,<payload>`` string.
    """
    try:
        media_type = guess_media_type(base64.b64decode(image_base64, validate=False))
    except (binascii.Error, ValueError):
        media_type = DEFAULT_MEDIA_TYPE
    return f"data:{media_type};base64,{image_base64}"


async def download_image(
    client: httpx.AsyncClient, url: str, timeout: float
) -> bytes:
    """Fetch an image over HTTP.

    Args:
        client: Shared async HTTP client.
        url: Image URL.
        timeout: Request timeout in seconds.

    Returns:
        The response body.

    Raises:
        httpx.HTTPError: On transport failure or a non-2xx status.
    """
    response = await client.get(url, timeout=timeout, follow_redirects=True)
    response.raise_for_status()
    logger.debug("Downloaded image: %d bytes", len(response.content))
    return response.content
