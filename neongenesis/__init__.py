"""NeonGenesis - text-to-JSON-to-image studio on Gemini.

This package provides a Flet application that expands a short idea into a
structured prompt, renders it with a Gemini image model, and edits uploaded
images with text instructions.

Modules:
    config: Environment-driven settings.
    images: Data URL codec and image file helpers.
    gemini_service: Remote model calls and their pure request/response helpers.
    controller: Session state machine sequencing the remote calls.
    fletui: The Flet user interface.

Example:
    >>> import flet as ft
    >>> from neongenesis.fletui import main
    >>> ft.app(target=main)
"""

from neongenesis.config import StudioConfig, load_config
from neongenesis.controller import (
    DownloadPayload,
    InteractionMode,
    OrchestrationController,
    Phase,
    SessionState,
)
from neongenesis.gemini_service import (
    EditError,
    EnhancementError,
    GeminiImageService,
    ImageStudioError,
    StructuredPrompt,
    SynthesisError,
    build_composite_prompt,
    find_inline_image,
    parse_structured_prompt,
)
from neongenesis.images import (
    ImageSaver,
    add_data_url_prefix,
    download_filename,
    image_file_to_data_url,
    strip_data_url_prefix,
)

__all__ = [
    # Configuration
    "StudioConfig",
    "load_config",
    # Data classes
    "StructuredPrompt",
    "SessionState",
    "DownloadPayload",
    "InteractionMode",
    "Phase",
    # Errors
    "ImageStudioError",
    "EnhancementError",
    "SynthesisError",
    "EditError",
    # Classes
    "GeminiImageService",
    "OrchestrationController",
    "ImageSaver",
    # Functions
    "build_composite_prompt",
    "find_inline_image",
    "parse_structured_prompt",
    "add_data_url_prefix",
    "strip_data_url_prefix",
    "image_file_to_data_url",
    "download_filename",
]

__version__ = "0.1.0"
