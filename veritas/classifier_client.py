import logging
import os

import httpx

from .errors import ClassifiedError, ErrorKind, classify, config_missing, truncate
from .models import DetectionResult, Stage
from .normalizer import ClassifierPayload, normalize

logger = logging.getLogger(__name__)


def _timeout() -> float:
    return float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))


def _parse_body(response: httpx.Response) -> ClassifierPayload:
    """Validate the classifier body: ``{"prediction": str, "confidence": number}``."""
    try:
        data = response.json()
    except ValueError as exc:
        logger.error("Classifier returned non-JSON body: %s", truncate(response.text))
        raise ClassifiedError(
            ErrorKind.MALFORMED_RESPONSE,
            Stage.CLASSIFIER,
            "The custom ML model service returned an invalid response format (expected JSON).",
            detail=truncate(response.text),
        ) from exc

    prediction = data.get("prediction") if isinstance(data, dict) else None
    confidence = data.get("confidence") if isinstance(data, dict) else None
    if (
        not isinstance(prediction, str)
        or isinstance(confidence, bool)
        or not isinstance(confidence, (int, float))
    ):
        logger.error("Unexpected classifier response structure: %s", truncate(str(data)))
        raise ClassifiedError(
            ErrorKind.MALFORMED_RESPONSE,
            Stage.CLASSIFIER,
            "The custom ML model service returned an unexpected data structure.",
            detail=truncate(str(data)),
        )
    return ClassifierPayload(prediction=prediction, confidence=confidence)


async def detect(text: str) -> DetectionResult:
    """Classify ``text`` with the configured classifier service.

    The service never produces a justification or fact checks.
    """
    api_url = os.getenv("CLASSIFIER_API_URL")
    if not api_url:
        raise config_missing(Stage.CLASSIFIER, "CLASSIFIER_API_URL")

    logger.info("Classifier request: chars=%d url=%s", len(text), api_url)
    try:
        async with httpx.AsyncClient(timeout=_timeout()) as client:
            response = await client.post(api_url, json={"text": text})
        response.raise_for_status()
        payload = _parse_body(response)
        result = normalize(payload)
    except Exception as exc:
        raise classify(Stage.CLASSIFIER, exc)

    logger.info("Classifier prediction: label=%s confidence=%.1f", result.label.value, result.confidence)
    return result
