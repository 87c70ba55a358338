"""Shared fixtures: fake genai clients built on real response types."""

from typing import Any, List, Optional

import pytest
from google.genai import types

from neongenesis.config import StudioConfig
from neongenesis.gemini_service import GeminiImageService

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-data"


class FakeModels:
    """Stand-in for ``client.models`` that replays queued results.

    Each queued item is returned in turn; exceptions are raised instead.
    """

    def __init__(self, results: List[Any]) -> None:
        self.results = list(results)
        self.calls: List[dict] = []

    def generate_content(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeClient:
    def __init__(self, *results: Any) -> None:
        self.models = FakeModels(list(results))


def make_response(*parts: types.Part) -> types.GenerateContentResponse:
    """Build a one-candidate response carrying ``parts``."""
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


def text_part(text: str) -> types.Part:
    return types.Part(text=text)


def image_part(data: bytes = PNG_BYTES, mime_type: str = "image/png") -> types.Part:
    return types.Part(inline_data=types.Blob(data=data, mime_type=mime_type))


@pytest.fixture
def config() -> StudioConfig:
    return StudioConfig(api_key="test-key")


@pytest.fixture
def make_service(config):
    """Return a factory building a service around a FakeClient."""

    def factory(*results: Any, client: Optional[FakeClient] = None) -> GeminiImageService:
        return GeminiImageService(config, client=client or FakeClient(*results))

    return factory
