"""
Fact-check tool bound to the generative detection model.

The contract (``FactCheckInput`` -> ``list[FactCheck]``) is independent of the
implementation, so a live fact-check API can replace ``mock_fact_check``
without touching the detection adapter. The current implementation is a mock
and makes no network calls.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, List

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from .models import FactCheck

logger = logging.getLogger(__name__)

FACT_CHECK_TOOL_NAME = "factCheck"
MOCK_HIT_THRESHOLD = 0.7
MOCK_LATENCY_SECONDS = 0.5

FactChecker = Callable[[str], Awaitable[List[FactCheck]]]


class FactCheckInput(BaseModel):
    article_text: str = Field(description="The text of the article to check for verifiable claims.")


async def mock_fact_check(article_text: str, *, rng: random.Random | None = None) -> List[FactCheck]:
    """Return no fact checks 70% of the time, one synthetic entry otherwise."""
    rng = rng or random
    logger.info("Mock fact check called with text snippet: %s...", article_text[:100])
    await asyncio.sleep(MOCK_LATENCY_SECONDS)

    if rng.random() > MOCK_HIT_THRESHOLD:
        rating = "Potentially Misleading (Mock)" if rng.random() > 0.5 else "Partially True (Mock)"
        return [
            FactCheck(
                source="MockCheck.org",
                claim_reviewed="A key claim from the article (mocked)",
                rating=rating,
                url="https://example.com/mock-fact-check",
            )
        ]
    return []


async def run_fact_check(checker: FactChecker, article_text: str) -> List[FactCheck]:
    """Invoke ``checker``; a failing tool yields an empty list instead of aborting detection."""
    try:
        return await checker(article_text)
    except Exception as exc:
        logger.error("Fact-check tool failed, continuing without fact checks: %s: %s", type(exc).__name__, exc)
        return []


def build_fact_check_tool(checker: FactChecker = mock_fact_check) -> StructuredTool:
    async def _fact_check(article_text: str) -> List[dict]:
        results = await run_fact_check(checker, article_text)
        return [r.model_dump(by_alias=True, exclude_none=True) for r in results]

    return StructuredTool.from_function(
        coroutine=_fact_check,
        name=FACT_CHECK_TOOL_NAME,
        description=(
            "Attempts to find external fact-checks for claims in the provided article text. "
            "Returns a list of {source, claimReviewed, rating, url?} entries, possibly empty."
        ),
        args_schema=FactCheckInput,
    )
