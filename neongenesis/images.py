"""Encoded-image helpers: data URL codec, file loading and saving.

Images travel through the application as data URLs
(``data:image/<subtype>;base64,<payload>``), the form Flet displays and the
form the remote model is fed from.
"""

import base64
import binascii
import re
import time
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

DEFAULT_MIME_TYPE: str = "image/png"
"""Mime type assumed when a payload carries no data URL prefix."""

DOWNLOAD_PREFIX: str = "neon-genesis"

_DATA_URL_PREFIX = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,")


# =============================================================================
# PURE FUNCTIONS - Data URL codec
# =============================================================================


def add_data_url_prefix(payload: str, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    """Wrap a base64 payload as a data URL.

    Example:
        >>> add_data_url_prefix("AAAA", "image/jpeg")
        'data:image/jpeg;base64,AAAA'
    """
    return f"data:{mime_type};base64,{payload}"


def strip_data_url_prefix(data_url: str) -> str:
    """Return the base64 payload of a data URL.

    Strings without a recognised ``data:image/...;base64,`` prefix are
    returned unchanged.
    """
    return _DATA_URL_PREFIX.sub("", data_url, count=1)


def data_url_mime_type(data_url: str, default: str = DEFAULT_MIME_TYPE) -> str:
    """Return the mime type declared by a data URL prefix, or ``default``."""
    match = _DATA_URL_PREFIX.match(data_url)
    return match.group(1) if match else default


def split_data_url(data_url: str) -> Tuple[str, str]:
    """Split a data URL into ``(mime_type, base64_payload)``."""
    return data_url_mime_type(data_url), strip_data_url_prefix(data_url)


def encode_data_url(data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    """Base64-encode raw image bytes into a data URL."""
    return add_data_url_prefix(base64.b64encode(data).decode("utf-8"), mime_type)


def decode_data_url(data_url: str) -> bytes:
    """Decode the payload of a data URL back to raw bytes.

    Raises:
        ValueError: If the payload is not valid base64.
    """
    try:
        return base64.b64decode(strip_data_url_prefix(data_url), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Image payload is not valid base64: {e}") from e


def download_filename(timestamp_ms: Optional[int] = None) -> str:
    """Suggest a filename for a downloaded result.

    Example:
        >>> download_filename(1700000000000)
        'neon-genesis-1700000000000.png'
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{DOWNLOAD_PREFIX}-{timestamp_ms}.png"


# =============================================================================
# SIDE EFFECTS - File I/O
# =============================================================================


def image_file_to_data_url(path: Union[str, Path]) -> str:
    """Read an image file into a data URL carrying its real mime type.

    Pillow is only used to identify the format; the original bytes are
    encoded untouched.

    Args:
        path: Location of the image on disk.

    Returns:
        A ``data:image/<subtype>;base64,...`` string.

    Raises:
        ValueError: If the file is not an image Pillow recognises.
        OSError: If the file cannot be read.
    """
    path = Path(path)
    try:
        with Image.open(path) as img:
            image_format = img.format
    except UnidentifiedImageError as e:
        raise ValueError(f"{path.name} is not a recognised image file") from e

    mime_type = Image.MIME.get(image_format or "", DEFAULT_MIME_TYPE)
    return encode_data_url(path.read_bytes(), mime_type)


class ImageSaver:
    """Persist encoded images to disk."""

    @staticmethod
    def save_data_url(data_url: str, path: Union[str, Path]) -> Path:
        """Decode a data URL and write its bytes to ``path``.

        Parent directories are created as needed.

        Returns:
            The path written to.

        Raises:
            ValueError: If the payload is not valid base64.
            OSError: If the file cannot be written.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(decode_data_url(data_url))
        return path
