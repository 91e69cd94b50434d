import logging
from typing import Union

from . import classifier_client, llm_detector
from .models import AnalysisRequest, DetectionMethod, DetectionResult

logger = logging.getLogger(__name__)


async def detect(text: str, method: Union[DetectionMethod, str] = DetectionMethod.CUSTOM) -> DetectionResult:
    """Dispatch to the selected backend. No retries: re-submitting costs quota.

    Raises ``pydantic.ValidationError`` when ``text`` is outside 50..10000 chars.
    """
    request = AnalysisRequest(text=text)
    method = DetectionMethod(method)
    logger.info("Detecting with method=%s chars=%d", method.value, len(request.text))
    if method is DetectionMethod.LLM:
        return await llm_detector.detect(request.text)
    return await classifier_client.detect(request.text)
