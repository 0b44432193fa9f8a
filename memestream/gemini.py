"""
Caption suggestions from Gemini, with a static fallback.
"""

import logging
import random
from typing import Sequence

from google import genai
from google.genai import types

from memestream.errors import (
    CaptionGenerationError,
    InvalidCredentialError,
    QuotaExceededError,
)
from memestream.utils import decode_image

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"
CAPTION_TEMPERATURE = 0.8
CAPTION_MAX_OUTPUT_TOKENS = 100
EMPTY_RESPONSE_CAPTION = "Failed to generate caption"

CAPTION_PROMPT = (
    "What's a funny caption for this meme? Give me just one short, shareable "
    "line and nothing else."
)

MOCK_CAPTIONS = (
    "When you try your best but still fail spectacularly",
    "That awkward moment when you realize...",
    "Nobody: Absolutely nobody: Me at 3 AM:",
    "My brain during an important meeting:",
    "How I think I look vs. How I actually look:",
    "When someone explains something and asks if you understand",
    "Me pretending to be productive while scrolling memes",
)

CODING_CAPTION = (
    "When your code works on the first try and you're both happy and suspicious"
)
FOOD_CAPTION = "Me explaining why I need to order food when there's food at home"
PETS_CAPTION = (
    "When your pet does something cute but stops the moment you grab your camera"
)

# Checked in order, first match wins.
THEMED_CAPTIONS = (
    ({"coding", "programming"}, CODING_CAPTION),
    ({"food"}, FOOD_CAPTION),
    ({"pets", "cats", "dogs"}, PETS_CAPTION),
)


def mock_caption(tags: Sequence[str] = ()) -> str:
    """Pick a canned caption, themed when a tag matches exactly."""
    tag_set = set(tags)
    for keywords, caption in THEMED_CAPTIONS:
        if tag_set & keywords:
            return caption
    return random.choice(MOCK_CAPTIONS)


def build_prompt(tags: Sequence[str] = ()) -> str:
    prompt = CAPTION_PROMPT
    if tags:
        prompt += f" Consider these themes: {', '.join(tags)}."
    return prompt


def _classify_error(error: Exception) -> CaptionGenerationError:
    message = str(error)
    if "API key" in message:
        return InvalidCredentialError("Invalid Gemini API key", detail=message)
    if "quota" in message:
        return QuotaExceededError(
            "API quota exceeded. Please try again later.", detail=message
        )
    return CaptionGenerationError(
        "Failed to generate caption", detail=message
    )


class GeminiCaptioner:
    """Calls Gemini with the meme image and a one-line caption prompt."""

    def __init__(self, api_key: str | None, model: str = DEFAULT_MODEL):
        self.api_key = api_key
        self.model = model
        self._client = genai.Client(api_key=api_key) if api_key else None

    def generate(self, image_data: str, tags: Sequence[str] = ()) -> str:
        if self._client is None:
            raise InvalidCredentialError("GEMINI_API_KEY is not configured")

        prompt = build_prompt(tags)
        try:
            # The SDK base64-encodes the raw bytes again for the wire.
            image = decode_image(image_data)
            response = self._client.models.generate_content(
                model=self.model,
                contents=[
                    prompt,
                    types.Part.from_bytes(
                        data=image, mime_type="image/jpeg"
                    ),
                ],
                config=types.GenerateContentConfig(
                    temperature=CAPTION_TEMPERATURE,
                    max_output_tokens=CAPTION_MAX_OUTPUT_TOKENS,
                ),
            )
        except Exception as e:
            logger.error("Error generating caption with Gemini: %s", e)
            raise _classify_error(e) from e

        text = (response.text or "").strip()
        return text or EMPTY_RESPONSE_CAPTION
