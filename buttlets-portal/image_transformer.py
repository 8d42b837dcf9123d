"""
Image Transformer — Warplet -> Buttlet via Gemini image generation.

The directive is fixed so every Buttlet is produced from the same
instruction; it is not configurable per request. Generation is the slow
step of the pipeline (seconds to low minutes) and has no retry here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from google import genai
from google.genai import types

from errors import GenerationEmpty, MissingConfig

logger = logging.getLogger("buttlets-portal.gemini")

DEFAULT_MODEL_ID = "gemini-2.5-flash-image"
DEFAULT_OUTPUT_MIME = "image/png"

BUTTLET_DIRECTIVE = """Rotate the provided Warplet character to a full back view (180° turn), showing the character from behind.
The back view must clearly show a large, rounded, fluffy buttocks in a playful, cartoonish, non-sexual way, consistent with the original character design.
If the character is wearing clothing, do not remove it — simply define and emphasize the buttocks shape naturally through the clothing.
Preserve the original cartoon illustration style, proportions, line work, shading, and color palette.
The output image proportion must always be 1:1."""


@dataclass
class GeneratedImage:
    data: bytes
    mime_type: str


class ImageTransformer:
    """Gemini image-to-image call with the Buttlet directive."""

    def __init__(
        self,
        api_key: Optional[str],
        model_id: str = DEFAULT_MODEL_ID,
        client: Optional[genai.Client] = None,
    ):
        self.model_id = model_id
        self._client = client
        if self._client is None and api_key:
            self._client = genai.Client(api_key=api_key)

    async def transform(self, data: bytes, mime_type: str) -> GeneratedImage:
        if self._client is None:
            raise MissingConfig("GEMINI_API_KEY")

        logger.info("Gemini generate: model=%s input=%d bytes (%s)", self.model_id, len(data), mime_type)
        response = await self._client.aio.models.generate_content(
            model=self.model_id,
            contents=[
                types.Part.from_bytes(data=data, mime_type=mime_type),
                BUTTLET_DIRECTIVE,
            ],
            config=types.GenerateContentConfig(
                response_modalities=[types.Modality.IMAGE],
            ),
        )
        return extract_image(response)


def extract_image(response) -> GeneratedImage:
    """Return the first inline image part of the first candidate."""
    candidates = getattr(response, "candidates", None) or []
    content = getattr(candidates[0], "content", None) if candidates else None
    parts = getattr(content, "parts", None) or []

    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            return GeneratedImage(
                data=inline.data,
                mime_type=inline.mime_type or DEFAULT_OUTPUT_MIME,
            )

    raise GenerationEmpty("Gemini did not return an image payload")
