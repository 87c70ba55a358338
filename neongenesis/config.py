"""Runtime configuration for NeonGenesis.

Values come from environment variables, optionally seeded from a ``.env``
file in the working directory.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_TEXT_MODEL: str = "gemini-2.5-flash"
"""Model used to turn a raw idea into a structured prompt."""

DEFAULT_IMAGE_MODEL: str = "gemini-2.5-flash-image"
"""Model used for both image generation and image editing."""

VIEWS = ("desktop", "web")


@dataclass(frozen=True)
class StudioConfig:
    """Immutable application settings.

    Attributes:
        api_key: Gemini API key, or None to let the first remote call fail.
        text_model: Model identifier for prompt enhancement.
        image_model: Model identifier for generation and editing.
        view: 'desktop' for a native window, 'web' for a browser tab.
        upload_dir: Directory Flet stores browser uploads in.
        download_dir: Directory that browser-view downloads are written to.
        log_level: Name of the root logging level.
    """

    api_key: Optional[str] = None
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    view: str = "desktop"
    upload_dir: str = "uploads"
    download_dir: str = "downloads"
    log_level: str = "INFO"


def load_config(environ: Optional[Mapping[str, str]] = None) -> StudioConfig:
    """Build a StudioConfig from the environment.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ`` after
            loading ``.env``.

    Returns:
        The resolved configuration.

    Raises:
        ValueError: If NEON_GENESIS_VIEW is not 'desktop' or 'web'.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    api_key = (
        environ.get("GEMINI_API_KEY")
        or environ.get("GOOGLE_API_KEY")
        or environ.get("API_KEY")
        or None
    )

    view = environ.get("NEON_GENESIS_VIEW", "desktop").strip().lower()
    if view not in VIEWS:
        raise ValueError(f"NEON_GENESIS_VIEW must be one of {VIEWS}, got {view!r}")

    return StudioConfig(
        api_key=api_key,
        text_model=environ.get("NEON_GENESIS_TEXT_MODEL", DEFAULT_TEXT_MODEL),
        image_model=environ.get("NEON_GENESIS_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
        view=view,
        upload_dir=environ.get("NEON_GENESIS_UPLOAD_DIR", "uploads"),
        download_dir=environ.get("NEON_GENESIS_DOWNLOAD_DIR", "downloads"),
        log_level=environ.get("NEON_GENESIS_LOG_LEVEL", "INFO").upper(),
    )
