"""
Content generation pipeline: text -> image -> persisted URL.

Only the text stage is fatal. Image and storage failures are recorded in the
``PipelineOutcome`` and the article is returned without ``image_url``.
"""
from __future__ import annotations

import logging
from typing import Optional

from . import image_client, image_store, llm_orchestrator
from .errors import classify
from .models import (
    GeneratedArticle,
    GenerationRequest,
    GenerationResult,
    PipelineOutcome,
    Stage,
    StageOutcome,
)

logger = logging.getLogger(__name__)

IMAGE_SNIPPET_CHARS = 150


async def _render_and_store(
    article: GeneratedArticle, prompt: str, outcome: PipelineOutcome
) -> GenerationResult:
    try:
        image = await image_client.generate_image(prompt)
    except Exception as exc:
        error = classify(Stage.IMAGE, exc)
        logger.warning("Image stage failed (%s), returning text-only article: %s", error.kind.value, error.message)
        outcome.image = StageOutcome.failure(error.kind.value, error.message)
        return GenerationResult(article=article, outcome=outcome)
    outcome.image = StageOutcome.success()

    try:
        url = await image_store.store(image, article.topic)
    except Exception as exc:
        error = classify(Stage.STORAGE, exc)
        logger.warning("Storage stage failed (%s), returning text-only article: %s", error.kind.value, error.message)
        outcome.storage = StageOutcome.failure(error.kind.value, error.message)
        return GenerationResult(article=article, outcome=outcome)
    outcome.storage = StageOutcome.success()

    return GenerationResult(article=article.model_copy(update={"image_url": url}), outcome=outcome)


async def generate(req: GenerationRequest) -> GenerationResult:
    """Run all three stages for ``req``.

    Raises the classified text-stage error; never raises for image or storage.
    """
    outcome = PipelineOutcome()
    content = await llm_orchestrator.generate_article_text(req)
    outcome.text = StageOutcome.success()

    article = GeneratedArticle(
        title=llm_orchestrator.build_title(req),
        content=content,
        topic=req.topic,
        category=req.category,
        tone=req.tone,
    )
    prompt = image_client.build_image_prompt(
        req.topic,
        req.category,
        req.article_snippet or content[:IMAGE_SNIPPET_CHARS],
        req.custom_prompt,
    )
    result = await _render_and_store(article, prompt, outcome)
    logger.info(
        "Generated article %r: image=%s storage=%s",
        article.title,
        "ok" if outcome.image.succeeded else "failed",
        "ok" if outcome.storage.succeeded else ("failed" if outcome.storage.failed else "skipped"),
    )
    return result


async def regenerate_image(article: GeneratedArticle, custom_prompt: Optional[str] = None) -> GenerationResult:
    """Re-run only the image and storage stages for an existing article."""
    outcome = PipelineOutcome(text=StageOutcome.success())
    prompt = image_client.build_image_prompt(
        article.topic,
        article.category,
        article.content[:IMAGE_SNIPPET_CHARS],
        custom_prompt,
    )
    logger.info("Regenerating image for %r (custom prompt: %s)", article.title, bool(custom_prompt))
    return await _render_and_store(article, prompt, outcome)
