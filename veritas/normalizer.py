"""
Coerce raw detection payloads from either backend into a ``DetectionResult``.

Both backends converge here: the classifier service answers
``{prediction, confidence in [0, 1]}`` and the generative model answers
``{label, confidence in [0, 100], justification?, factChecks?}``. Upstream
data is repaired, never propagated raw.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from .models import DetectionResult, FactCheck, Label

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 50.0


@dataclass(frozen=True)
class ClassifierPayload:
    """Raw body of the classifier service."""

    prediction: str
    confidence: Union[int, float]


@dataclass(frozen=True)
class GenerativePayload:
    """Raw structured output of the generative model."""

    data: Mapping[str, Any]


RawDetection = Union[ClassifierPayload, GenerativePayload, DetectionResult, Mapping[str, Any]]


def _parse_label(value: Any) -> Optional[Label]:
    if isinstance(value, Label):
        return value
    if isinstance(value, str):
        cleaned = value.strip().lower()
        for label in Label:
            if cleaned == label.value.lower():
                return label
    return None


def _parse_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    try:
        value = float(value)
    except OverflowError:
        # int beyond float range; clamped later
        return math.inf if value > 0 else -math.inf
    if math.isnan(value):
        return None
    return value


def _clamp(confidence: float) -> float:
    return round(max(0.0, min(100.0, confidence)), 1)


def _parse_fact_checks(value: Any) -> Optional[list[FactCheck]]:
    if value is None or not isinstance(value, list):
        return None
    try:
        return [item if isinstance(item, FactCheck) else FactCheck.model_validate(item) for item in value]
    except ValidationError:
        logger.warning("Dropping malformed factChecks payload (%d entries)", len(value))
        return None


def _as_mapping(raw: RawDetection) -> Mapping[str, Any]:
    if isinstance(raw, ClassifierPayload):
        return {"label": raw.prediction, "confidence": raw.confidence * 100}
    if isinstance(raw, GenerativePayload):
        return raw.data
    if isinstance(raw, DetectionResult):
        return raw.model_dump(by_alias=True, exclude_none=True)
    return raw


def normalize(raw: RawDetection) -> DetectionResult:
    """Repair a raw backend payload into a valid ``DetectionResult``.

    - unparseable or missing confidence defaults to 50 (flagged, not surfaced)
    - confidence is clamped to [0, 100] and rounded to one decimal
    - a missing or unknown label defaults to ``Fake``
    - non-textual justifications are serialized to JSON text
    - malformed fact checks are dropped as a whole
    """
    data = _as_mapping(raw)

    confidence = _parse_confidence(data.get("confidence"))
    defaulted = confidence is None
    if defaulted:
        logger.warning(
            "low-confidence-default: non-numeric or missing confidence %r, using %.0f",
            data.get("confidence"),
            DEFAULT_CONFIDENCE,
        )
        confidence = DEFAULT_CONFIDENCE

    label = _parse_label(data.get("label"))
    if label is None:
        logger.warning("Missing or unknown label %r, defaulting to %s", data.get("label"), Label.FAKE.value)
        label = Label.FAKE

    justification = data.get("justification")
    if justification is not None and not isinstance(justification, str):
        logger.warning("Non-string justification of type %s, serializing", type(justification).__name__)
        justification = json.dumps(justification, default=str)

    fact_checks = data.get("factChecks", data.get("fact_checks"))

    result = DetectionResult(
        label=label,
        confidence=_clamp(confidence),
        justification=justification,
        fact_checks=_parse_fact_checks(fact_checks),
    )
    result._confidence_defaulted = defaulted
    return result
