from __future__ import annotations

import asyncio
import logging
import random
from typing import List, Optional, Sequence

from . import pipeline
from .models import BatchItem, BatchResult, GenerationRequest

logger = logging.getLogger(__name__)

ARTICLE_TOPICS = [
    "a new technology breakthrough",
    "a surprising celebrity announcement",
    "an unusual scientific discovery",
    "a local community event",
    "a political debate outcome",
    "a historical event reinterpretation",
    "a sports team's unexpected victory",
    "a financial market shift",
    "a strange weather phenomenon",
    "an educational reform proposal",
]
ARTICLE_CATEGORIES = [
    "Technology", "Entertainment", "Science", "Local News", "Politics",
    "History", "Sports", "Business", "Environment", "Education",
]
ARTICLE_TONES = [
    "Neutral", "Formal", "Informal", "Humorous", "Serious",
    "Optimistic", "Pessimistic", "Sarcastic", "Sensationalist", "Scholarly",
]


async def _settle(
    index: int, req: GenerationRequest, semaphore: Optional[asyncio.Semaphore]
) -> Optional[BatchItem]:
    """Run one request; any failure resolves to ``None`` instead of rejecting."""
    try:
        if semaphore is None:
            result = await pipeline.generate(req)
        else:
            async with semaphore:
                result = await pipeline.generate(req)
    except Exception as exc:
        logger.warning("Batch item %d (%r) failed: %s: %s", index, req.topic[:50], type(exc).__name__, exc)
        return None
    return BatchItem(index=index, request=req, article=result.article, outcome=result.outcome)


async def generate_batch(
    requests: Sequence[GenerationRequest], concurrency: Optional[int] = None
) -> BatchResult:
    """Generate every request concurrently and keep only the successes.

    ``concurrency`` bounds in-flight requests; ``None`` or ``0`` means no cap.
    Results keep the original request order; failed items are dropped and the
    batch shrinks to the number that succeeded.
    """
    semaphore = asyncio.Semaphore(concurrency) if concurrency else None
    settled = await asyncio.gather(*(_settle(i, req, semaphore) for i, req in enumerate(requests)))
    items = [item for item in settled if item is not None]

    logger.info("Batch finished: %d of %d requested articles generated", len(items), len(requests))
    return BatchResult(requested=len(requests), succeeded=len(items), items=items)


def random_generation_request(rng: Optional[random.Random] = None) -> GenerationRequest:
    rng = rng or random.Random()
    return GenerationRequest(
        topic=rng.choice(ARTICLE_TOPICS),
        category=rng.choice(ARTICLE_CATEGORIES),
        tone=rng.choice(ARTICLE_TONES),
    )


async def generate_game_batch(
    count: int, concurrency: Optional[int] = None, rng: Optional[random.Random] = None
) -> BatchResult:
    """Generate ``count`` random articles for the real-or-fake quiz."""
    requests: List[GenerationRequest] = [random_generation_request(rng) for _ in range(count)]
    return await generate_batch(requests, concurrency=concurrency)
