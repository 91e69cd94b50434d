import asyncio
import random
from unittest import IsolatedAsyncioTestCase
from unittest.mock import patch, AsyncMock

from veritas import batch
from veritas.errors import ClassifiedError, ErrorKind
from veritas.models import GeneratedArticle, GenerationRequest, GenerationResult, PipelineOutcome, Stage, StageOutcome


def result_for(req: GenerationRequest) -> GenerationResult:
    article = GeneratedArticle(
        title=f"{req.category}: {req.topic}", content="body", topic=req.topic, category=req.category, tone=req.tone
    )
    return GenerationResult(article=article, outcome=PipelineOutcome(text=StageOutcome.success()))


class TestBatch(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.requests = [GenerationRequest(topic=f"r{i}", category="News", tone="Neutral") for i in range(1, 6)]

    @patch("veritas.pipeline.generate", new_callable=AsyncMock)
    async def test_generate_batch_drops_failed_items(self, mock_generate):
        async def fake_generate(req):
            if req.topic == "r3":
                raise ClassifiedError(ErrorKind.CONTENT_POLICY_BLOCK, Stage.TEXT)
            return result_for(req)

        mock_generate.side_effect = fake_generate

        result = await batch.generate_batch(self.requests)

        self.assertEqual(result.requested, 5)
        self.assertEqual(result.succeeded, 4)
        self.assertEqual(len(result.articles), 4)
        self.assertEqual([a.topic for a in result.articles], ["r1", "r2", "r4", "r5"])
        self.assertEqual([item.index for item in result.items], [0, 1, 3, 4])
        self.assertEqual(mock_generate.await_count, 5)

    @patch("veritas.pipeline.generate", new_callable=AsyncMock)
    async def test_generate_batch_tolerates_unclassified_failures(self, mock_generate):
        mock_generate.side_effect = RuntimeError("boom")

        result = await batch.generate_batch(self.requests)

        self.assertEqual(result.requested, 5)
        self.assertEqual(result.succeeded, 0)
        self.assertEqual(result.items, [])

    @patch("veritas.pipeline.generate", new_callable=AsyncMock)
    async def test_generate_batch_runs_requests_concurrently(self, mock_generate):
        started = 0
        all_started = asyncio.Event()

        async def fake_generate(req):
            nonlocal started
            started += 1
            if started == len(self.requests):
                all_started.set()
            # Only completes if every request is in flight at the same time.
            await asyncio.wait_for(all_started.wait(), timeout=1)
            return result_for(req)

        mock_generate.side_effect = fake_generate

        result = await batch.generate_batch(self.requests)

        self.assertEqual(result.succeeded, 5)

    @patch("veritas.pipeline.generate", new_callable=AsyncMock)
    async def test_generate_batch_keeps_request_order_not_completion_order(self, mock_generate):
        async def fake_generate(req):
            await asyncio.sleep(0.05 - 0.01 * int(req.topic[1:]))
            return result_for(req)

        mock_generate.side_effect = fake_generate

        result = await batch.generate_batch(self.requests)

        self.assertEqual([a.topic for a in result.articles], ["r1", "r2", "r3", "r4", "r5"])

    @patch("veritas.pipeline.generate", new_callable=AsyncMock)
    async def test_generate_batch_respects_concurrency_limit(self, mock_generate):
        in_flight = 0
        peak = 0

        async def fake_generate(req):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return result_for(req)

        mock_generate.side_effect = fake_generate

        result = await batch.generate_batch(self.requests, concurrency=2)

        self.assertEqual(result.succeeded, 5)
        self.assertEqual(peak, 2)

    async def test_generate_batch_empty(self):
        result = await batch.generate_batch([])

        self.assertEqual((result.requested, result.succeeded, result.items), (0, 0, []))

    @patch("veritas.pipeline.generate", new_callable=AsyncMock)
    async def test_generate_game_batch(self, mock_generate):
        mock_generate.side_effect = result_for

        result = await batch.generate_game_batch(3, rng=random.Random(7))

        self.assertEqual(result.requested, 3)
        self.assertEqual(result.succeeded, 3)
        for item in result.items:
            self.assertIn(item.request.topic, batch.ARTICLE_TOPICS)
            self.assertIn(item.request.category, batch.ARTICLE_CATEGORIES)
            self.assertIn(item.request.tone, batch.ARTICLE_TONES)
