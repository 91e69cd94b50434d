from __future__ import annotations

import base64
import binascii
import logging
import os
from functools import lru_cache
from typing import Optional

from openai import AsyncOpenAI

from .errors import ClassifiedError, ErrorKind, classify, config_missing
from .models import Stage

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 200


@lru_cache(maxsize=1)
def _client(api_key: str) -> AsyncOpenAI:
    return AsyncOpenAI(api_key=api_key)


def build_image_prompt(
    topic: str,
    category: str,
    article_snippet: Optional[str] = None,
    custom_prompt: Optional[str] = None,
) -> str:
    """A non-empty custom prompt replaces the synthesized one entirely."""
    if custom_prompt and custom_prompt.strip():
        return custom_prompt

    prompt = (
        f'Generate a visually appealing header image suitable for a news article about "{topic}" '
        f'in the "{category}" category.'
    )
    if article_snippet:
        prompt += f' The article starts with: "{article_snippet[:SNIPPET_CHARS]}...".'
    prompt += (
        " The image should be in a style typically seen with online news."
        " Do not render any text, captions, watermarks or logos in the image."
        " Focus on photorealistic or illustrative styles appropriate for news."
    )
    return prompt


async def generate_image(prompt: str) -> bytes:
    """Image stage: return raw image bytes or raise a classified error.

    The provider's moderation level is the safety threshold
    (``OPENAI_IMAGE_MODERATION``: ``auto`` is strict, ``low`` is permissive).
    """
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise config_missing(Stage.IMAGE, "OPENAI_API_KEY")

    options = {
        "model": os.getenv("OPENAI_IMAGE_MODEL", "gpt-image-1"),
        "size": os.getenv("OPENAI_IMAGE_SIZE", "1536x1024"),
        "n": 1,
    }
    moderation = os.getenv("OPENAI_IMAGE_MODERATION", "auto")
    if moderation:
        options["moderation"] = moderation

    logger.info("Image stage: model=%s prompt=%r", options["model"], prompt[:100])
    try:
        resp = await _client(api_key).images.generate(prompt=prompt, **options)
    except Exception as exc:
        raise classify(Stage.IMAGE, exc)

    data = resp.data or []
    encoded = data[0].b64_json if data else None
    if not encoded:
        logger.error("Image generation returned no media for prompt: %r", prompt[:100])
        raise ClassifiedError(
            ErrorKind.MALFORMED_RESPONSE,
            Stage.IMAGE,
            "AI image generation did not return a valid image. Please try again or adjust the prompt.",
        )

    try:
        image = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ClassifiedError(
            ErrorKind.MALFORMED_RESPONSE,
            Stage.IMAGE,
            "AI image generation returned corrupted image data. Please try generating again.",
            detail=str(exc),
        )

    logger.info("Image stage produced %d bytes", len(image))
    return image
