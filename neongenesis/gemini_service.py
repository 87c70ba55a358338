"""Remote model access: prompt enhancement, image synthesis and image editing.

The module is split the same way as the rest of the package:

* pure functions that build requests and read responses, testable without a
  network connection;
* ``GeminiImageService``, the only place that talks to the Gemini API.

Each remote call is a single request. Failures are logged and re-raised as
one of the ``ImageStudioError`` subclasses; nothing is retried.
"""

import base64
import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from google import genai
from google.genai import types

from neongenesis.config import StudioConfig
from neongenesis.images import DEFAULT_MIME_TYPE, add_data_url_prefix, split_data_url

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION: str = (
    "You are an expert AI art curator. Your goal is to take simple user requests "
    "and expand them into rich, detailed, professional prompts suitable for "
    "high-end image generation models. Be creative but faithful to the original intent."
)

ENHANCE_TEMPLATE: str = (
    "Convert this raw image idea into a highly detailed structured image "
    'generation prompt: "{raw_text}"'
)

COMPOSITE_HEADER: str = "Create an image with the following specifications:"

REQUIRED_FIELDS = ("subject", "detailed_description", "artistic_style")
OPTIONAL_FIELDS = ("lighting", "mood", "technical_details")

# Field order here is the order of the lines in the composite prompt.
COMPOSITE_LABELS = (
    ("Subject", "subject"),
    ("Description", "detailed_description"),
    ("Style", "artistic_style"),
    ("Lighting", "lighting"),
    ("Mood", "mood"),
    ("Technical", "technical_details"),
)

STRUCTURED_PROMPT_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        name: types.Schema(type=types.Type.STRING)
        for name in REQUIRED_FIELDS + OPTIONAL_FIELDS
    },
    required=list(REQUIRED_FIELDS),
)


# =============================================================================
# ERRORS
# =============================================================================


class ImageStudioError(Exception):
    """Base class for failures of a remote model call."""


class EnhancementError(ImageStudioError):
    """The text model failed or did not return a valid structured prompt."""


class SynthesisError(ImageStudioError):
    """The image model failed or returned no image for a generation request."""


class EditError(ImageStudioError):
    """The image model failed or returned no image for an edit request."""


# =============================================================================
# PURE FUNCTIONS - Request building and response parsing
# =============================================================================


@dataclass(frozen=True)
class StructuredPrompt:
    """Schema-constrained description of the image the user wants.

    The three required fields are guaranteed to be non-empty strings;
    the optional ones are None when the model omitted them.
    """

    subject: str
    detailed_description: str
    artistic_style: str
    lighting: Optional[str] = None
    mood: Optional[str] = None
    technical_details: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StructuredPrompt":
        """Validate a decoded JSON object and build a StructuredPrompt.

        Raises:
            ValueError: If a required field is missing or blank, or any
                known field is not a string.
        """
        values: Dict[str, Optional[str]] = {}
        for name in REQUIRED_FIELDS:
            value = data.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"Field {name!r} must be a non-empty string")
            values[name] = value
        for name in OPTIONAL_FIELDS:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"Field {name!r} must be a string")
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        """Return the populated fields in schema order."""
        return {key: value for key, value in asdict(self).items() if value is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


def parse_structured_prompt(text: str) -> StructuredPrompt:
    """Parse the text model's JSON reply.

    Raises:
        EnhancementError: If the text is not a JSON object matching the schema.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise EnhancementError(f"Prompt enhancer returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise EnhancementError("Prompt enhancer returned JSON that is not an object")
    try:
        return StructuredPrompt.from_dict(data)
    except ValueError as e:
        raise EnhancementError(f"Prompt enhancer response does not match schema: {e}") from e


def build_composite_prompt(prompt: Union[StructuredPrompt, str]) -> str:
    """Serialise a prompt into the text sent to the image model.

    Plain strings pass through untouched. A StructuredPrompt becomes a header
    line followed by one labeled line per field, in the fixed order
    Subject, Description, Style, Lighting, Mood, Technical. A line is only
    left out when its field is absent.

    Example:
        >>> p = StructuredPrompt("fox", "a red fox", "oil painting")
        >>> print(build_composite_prompt(p))
        Create an image with the following specifications:
        Subject: fox
        Description: a red fox
        Style: oil painting
    """
    if isinstance(prompt, str):
        return prompt

    lines = [COMPOSITE_HEADER]
    for label, field_name in COMPOSITE_LABELS:
        value = getattr(prompt, field_name)
        if value is not None:
            lines.append(f"{label}: {value}")
    return "\n".join(lines)


def response_parts(response: Any) -> List[Any]:
    """Return the content parts of the first candidate, or an empty list."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    if content is None:
        return []
    return list(content.parts or [])


def find_inline_image(parts: Iterable[Any]) -> Optional[str]:
    """Return the base64 payload of the first part carrying inline data.

    Text parts and empty blobs are skipped. Returns None if no part carries
    image data.
    """
    for part in parts:
        inline_data = getattr(part, "inline_data", None)
        if inline_data is None or not inline_data.data:
            continue
        data = inline_data.data
        if isinstance(data, str):
            return data
        return base64.b64encode(data).decode("utf-8")
    return None


def build_edit_contents(data_url: str, instruction: str) -> types.Content:
    """Build the two-part edit request: source image first, then instruction.

    The mime type comes from the data URL prefix, defaulting to image/png.

    Raises:
        ValueError: If the image payload is not valid base64.
    """
    mime_type, payload = split_data_url(data_url)
    try:
        image_bytes = base64.b64decode(payload, validate=True)
    except ValueError as e:
        raise ValueError(f"Source image is not valid base64: {e}") from e
    return types.Content(
        role="user",
        parts=[
            types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
            types.Part.from_text(text=instruction),
        ],
    )


# =============================================================================
# SIDE EFFECTS - Remote calls
# =============================================================================


class GeminiImageService:
    """Thin wrapper around the three Gemini calls the studio makes.

    Attributes:
        config: Model identifiers and API key.
    """

    def __init__(self, config: StudioConfig, client: Optional[Any] = None) -> None:
        self.config: StudioConfig = config
        self._client: Optional[Any] = client

    def _get_client(self) -> Any:
        """Get or create the cached genai client."""
        if self._client is None:
            self._client = genai.Client(api_key=self.config.api_key)
        return self._client

    def enhance_prompt(self, raw_text: str) -> StructuredPrompt:
        """Turn a short idea into a StructuredPrompt via the text model.

        Raises:
            ValueError: If ``raw_text`` is blank.
            EnhancementError: If the call fails, returns no text, or the
                text does not match the schema.
        """
        if not raw_text or not raw_text.strip():
            raise ValueError("Cannot enhance an empty prompt")

        try:
            response = self._get_client().models.generate_content(
                model=self.config.text_model,
                contents=ENHANCE_TEMPLATE.format(raw_text=raw_text),
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=STRUCTURED_PROMPT_SCHEMA,
                    system_instruction=SYSTEM_INSTRUCTION,
                ),
            )
        except Exception as e:
            logger.exception("Error enhancing prompt")
            raise EnhancementError(f"Prompt enhancement request failed: {e}") from e

        text = response.text
        if not text:
            raise EnhancementError("No response from prompt enhancer")
        prompt = parse_structured_prompt(text)
        logger.info("Enhanced prompt: subject=%r", prompt.subject)
        return prompt

    def generate_image(self, prompt: Union[StructuredPrompt, str]) -> str:
        """Generate an image from a StructuredPrompt or a raw string.

        Returns:
            A ``data:image/png;base64,...`` URL.

        Raises:
            ValueError: If the prompt text is blank.
            SynthesisError: If the call fails or no part carries image data.
        """
        prompt_text = build_composite_prompt(prompt)
        if not prompt_text.strip():
            raise ValueError("Cannot generate an image from an empty prompt")

        try:
            response = self._get_client().models.generate_content(
                model=self.config.image_model,
                contents=types.Content(
                    role="user", parts=[types.Part.from_text(text=prompt_text)]
                ),
            )
        except Exception as e:
            logger.exception("Error generating image")
            raise SynthesisError(f"Image generation request failed: {e}") from e

        payload = find_inline_image(response_parts(response))
        if payload is None:
            raise SynthesisError("No image generated in the response.")
        return add_data_url_prefix(payload, DEFAULT_MIME_TYPE)

    def edit_image(self, data_url: str, instruction: str) -> str:
        """Apply a text instruction to an existing image.

        The output is always labeled image/png, whatever the input type.

        Returns:
            A ``data:image/png;base64,...`` URL.

        Raises:
            ValueError: If the instruction is blank.
            EditError: If the call fails or no part carries image data. Also
                raised when the source payload is not valid base64.
        """
        if not instruction or not instruction.strip():
            raise ValueError("Cannot edit an image without an instruction")
        try:
            contents = build_edit_contents(data_url, instruction)
        except ValueError as e:
            raise EditError(str(e)) from e

        try:
            response = self._get_client().models.generate_content(
                model=self.config.image_model,
                contents=contents,
            )
        except Exception as e:
            logger.exception("Error editing image")
            raise EditError(f"Image edit request failed: {e}") from e

        payload = find_inline_image(response_parts(response))
        if payload is None:
            raise EditError(
                "No edited image generated in the response. The model might "
                "have refused the edit or output text only."
            )
        return add_data_url_prefix(payload, DEFAULT_MIME_TYPE)
