import os
from unittest import IsolatedAsyncioTestCase
from unittest.mock import patch, AsyncMock, MagicMock

import httpx

from veritas import classifier_client
from veritas.errors import ClassifiedError, ErrorKind
from veritas.models import Label, Stage

API_URL = "http://classifier.test/predict"
ARTICLE = "Scientists announced on Monday that a new battery design doubles the range of electric cars."


def make_response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", API_URL), **kwargs)


class TestClassifierClient(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        env_patcher = patch.dict(os.environ, {"CLASSIFIER_API_URL": API_URL})
        env_patcher.start()
        self.addCleanup(env_patcher.stop)

        async_client_patcher = patch("veritas.classifier_client.httpx.AsyncClient")
        self.mock_async_client = async_client_patcher.start()
        self.addCleanup(async_client_patcher.stop)

        self.mock_client = MagicMock()
        self.mock_async_client.return_value.__aenter__.return_value = self.mock_client
        self.mock_async_client.return_value.__aexit__.return_value = AsyncMock()

    async def test_detect_happy_path(self):
        self.mock_client.post = AsyncMock(
            return_value=make_response(200, json={"prediction": "fake", "confidence": 0.873})
        )

        result = await classifier_client.detect(ARTICLE)

        self.assertEqual(result.label, Label.FAKE)
        self.assertEqual(result.confidence, 87.3)
        self.assertIsNone(result.justification)
        self.assertIsNone(result.fact_checks)

        self.mock_client.post.assert_awaited_once()
        self.assertEqual(self.mock_client.post.call_args[0][0], API_URL)
        self.assertEqual(self.mock_client.post.call_args.kwargs["json"], {"text": ARTICLE})

    async def test_detect_clamps_out_of_range_confidence(self):
        self.mock_client.post = AsyncMock(
            return_value=make_response(200, json={"prediction": "real", "confidence": 3.5})
        )

        result = await classifier_client.detect(ARTICLE)

        self.assertEqual(result.label, Label.REAL)
        self.assertEqual(result.confidence, 100.0)

    async def test_detect_missing_endpoint_is_config_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ClassifiedError) as ctx:
                await classifier_client.detect(ARTICLE)

        self.assertEqual(ctx.exception.kind, ErrorKind.CONFIG_MISSING)
        self.assertEqual(ctx.exception.stage, Stage.CLASSIFIER)
        self.mock_async_client.assert_not_called()

    async def test_detect_unreachable_endpoint_is_upstream_error(self):
        self.mock_client.post = AsyncMock(
            side_effect=httpx.ConnectError("connection refused", request=httpx.Request("POST", API_URL))
        )

        with self.assertRaises(ClassifiedError) as ctx:
            await classifier_client.detect(ARTICLE)

        self.assertEqual(ctx.exception.kind, ErrorKind.UPSTREAM_HTTP_ERROR)
        self.assertNotEqual(ctx.exception.kind, ErrorKind.MALFORMED_RESPONSE)

    async def test_detect_non_2xx_is_upstream_error_with_truncated_body(self):
        self.mock_client.post = AsyncMock(return_value=make_response(503, text="unavailable " * 200))

        with self.assertRaises(ClassifiedError) as ctx:
            await classifier_client.detect(ARTICLE)

        self.assertEqual(ctx.exception.kind, ErrorKind.UPSTREAM_HTTP_ERROR)
        self.assertIn("503", ctx.exception.message)
        self.assertTrue(ctx.exception.detail.startswith("unavailable"))
        self.assertLessEqual(len(ctx.exception.detail), 503)

    async def test_detect_non_json_body_is_malformed(self):
        self.mock_client.post = AsyncMock(return_value=make_response(200, text="<html>oops</html>"))

        with self.assertRaises(ClassifiedError) as ctx:
            await classifier_client.detect(ARTICLE)

        self.assertEqual(ctx.exception.kind, ErrorKind.MALFORMED_RESPONSE)
        self.assertIn("expected JSON", ctx.exception.message)

    async def test_detect_wrong_shape_is_malformed(self):
        for body in ({"label": "fake", "score": 0.3}, {"prediction": "fake", "confidence": "0.3"}, [0.3]):
            with self.subTest(body=body):
                self.mock_client.post = AsyncMock(return_value=make_response(200, json=body))

                with self.assertRaises(ClassifiedError) as ctx:
                    await classifier_client.detect(ARTICLE)

                self.assertEqual(ctx.exception.kind, ErrorKind.MALFORMED_RESPONSE)
