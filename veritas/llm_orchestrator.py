from __future__ import annotations

import logging
import os
from functools import lru_cache

from langchain_core.messages import AIMessage, HumanMessage
from langchain_openai import ChatOpenAI

from .errors import classify, config_missing, stop_reason_error
from .models import GenerationRequest, Stage

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _chat_model(model: str, api_key: str) -> ChatOpenAI:
    return ChatOpenAI(model=model, temperature=0.2, api_key=api_key)


def get_llm(stage: Stage) -> ChatOpenAI:
    """Return the shared chat model, or raise ``ConfigMissing`` for ``stage``."""
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise config_missing(stage, "OPENAI_API_KEY")
    return _chat_model(os.getenv("OPENAI_MODEL", "gpt-4o-mini"), api_key)


def response_text(resp: AIMessage) -> str:
    """Flatten message content (plain string or list of content parts) into text."""
    content = resp.content
    if isinstance(content, str):
        return content.strip()
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts).strip()


def finish_reason(resp: AIMessage) -> str | None:
    metadata = getattr(resp, "response_metadata", None) or {}
    return metadata.get("finish_reason")


def build_title(req: GenerationRequest) -> str:
    return f"{req.category}: {req.topic[:30]}... ({req.tone})"


def build_article_prompt(req: GenerationRequest) -> str:
    prompt = f"""
    You are a news writer producing short articles for a media-literacy training app.

    Write a news-style article about: "{req.topic}".
    Category: {req.category}
    Tone: {req.tone}

    Requirements:
    - 3 to 5 paragraphs of plain text, no headline, no markdown.
    - Keep the requested tone throughout.
    - Do not mention that the article was generated."""

    if req.article_snippet:
        prompt += f"""

    Continue from, and stay consistent with, this opening:
    \"\"\"{req.article_snippet}\"\"\""""

    return prompt


async def generate_article_text(req: GenerationRequest) -> str:
    """Text stage: ask the language model for the article body.

    Any failure here is fatal to the generation pipeline.
    """
    prompt = build_article_prompt(req)
    logger.info("Text stage: topic=%r category=%s tone=%s", req.topic[:50], req.category, req.tone)
    try:
        resp = await get_llm(Stage.TEXT).ainvoke([HumanMessage(content=prompt)])
    except Exception as exc:
        raise classify(Stage.TEXT, exc)

    body = response_text(resp)
    if not body:
        raise stop_reason_error(Stage.TEXT, finish_reason(resp), "generate this article")

    logger.info("Text stage produced %d chars", len(body))
    return body
