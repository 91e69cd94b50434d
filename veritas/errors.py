"""
Closed error taxonomy shared by every adapter and pipeline stage.

Raw failures (httpx, openai, cloudinary, pydantic, json) are funnelled through
``classify`` at the boundary of each stage so callers get a kind, the stage
it happened in, an actionable message and a retriable flag.
"""
from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Optional

import cloudinary.exceptions
import httpx
import openai
from pydantic import ValidationError

from .models import Stage

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    CONFIG_MISSING = "ConfigMissing"
    UPSTREAM_HTTP_ERROR = "UpstreamHTTPError"
    MALFORMED_RESPONSE = "MalformedResponse"
    CONTENT_POLICY_BLOCK = "ContentPolicyBlock"
    STORAGE_FAILURE = "StorageFailure"


RETRIABLE = {
    ErrorKind.CONFIG_MISSING: False,
    ErrorKind.UPSTREAM_HTTP_ERROR: True,
    ErrorKind.MALFORMED_RESPONSE: False,
    ErrorKind.CONTENT_POLICY_BLOCK: False,
    ErrorKind.STORAGE_FAILURE: True,
}

DEFAULT_MESSAGES = {
    ErrorKind.CONFIG_MISSING: "The service is not configured for this operation. Please check the credentials and endpoints.",
    ErrorKind.UPSTREAM_HTTP_ERROR: "An external service responded with an error. Please try again later.",
    ErrorKind.MALFORMED_RESPONSE: "An external service returned a response in an unexpected format.",
    ErrorKind.CONTENT_POLICY_BLOCK: "The content was blocked by the provider's content policies. Please try different content.",
    ErrorKind.STORAGE_FAILURE: "The generated image could not be stored. Please retry the upload.",
}

SAFETY_BLOCK_MESSAGE = "The AI could not {action} due to safety content policies. Please try different content."
RECITATION_BLOCK_MESSAGE = (
    "The AI could not {action} as it might resemble copyrighted material. Please try different content."
)
STORAGE_RATE_LIMIT_MESSAGE = "Image upload service is busy. Please try again in a few moments."
STORAGE_INVALID_PAYLOAD_MESSAGE = (
    "The generated image data was invalid for upload. The AI might have produced a corrupted image. "
    "Please try generating again."
)

CONTENT_POLICY_CODES = {"content_policy_violation", "moderation_blocked"}
SAFETY_STOP_REASONS = {"safety", "content_filter", "prohibited_content", "blocklist", "spii", "image_safety"}
RECITATION_STOP_REASONS = {"recitation", "image_recitation"}

MALFORMED_ERRORS = (json.JSONDecodeError, ValidationError, ValueError, KeyError, TypeError, OverflowError)
RATE_LIMIT_STATUS_PATTERN = re.compile(r"status code - (420|429)\b")


class ClassifiedError(Exception):
    """A failure that has been mapped into the closed taxonomy."""

    def __init__(
        self,
        kind: ErrorKind,
        stage: Stage,
        message: Optional[str] = None,
        *,
        detail: Optional[str] = None,
    ):
        self.kind = kind
        self.stage = stage
        self.message = message or DEFAULT_MESSAGES[kind]
        self.retriable = RETRIABLE[kind]
        self.detail = detail
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"ClassifiedError(kind={self.kind.value}, stage={self.stage.value}, message={self.message!r})"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "stage": self.stage.value,
            "message": self.message,
            "retriable": self.retriable,
        }


def config_missing(stage: Stage, *names: str) -> ClassifiedError:
    return ClassifiedError(
        ErrorKind.CONFIG_MISSING,
        stage,
        f"Required configuration is missing: {', '.join(names)}. Please set it and restart the service.",
    )


def truncate(text: Optional[str], limit: int = 500) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


def _classify_http_status(stage: Stage, status_code: int, body: str) -> ClassifiedError:
    if stage is Stage.STORAGE:
        if status_code in (420, 429):
            return ClassifiedError(ErrorKind.STORAGE_FAILURE, stage, STORAGE_RATE_LIMIT_MESSAGE, detail=body)
        if status_code == 400:
            return ClassifiedError(
                ErrorKind.UPSTREAM_HTTP_ERROR, stage, STORAGE_INVALID_PAYLOAD_MESSAGE, detail=body
            )
        return ClassifiedError(
            ErrorKind.STORAGE_FAILURE,
            stage,
            f"The image upload failed (status {status_code}). Please retry the upload.",
            detail=body,
        )
    return ClassifiedError(
        ErrorKind.UPSTREAM_HTTP_ERROR,
        stage,
        f"The {stage.value} service responded with an error (status {status_code}). "
        "Please check the service configuration or try again later.",
        detail=body,
    )


def _classify_cloudinary(stage: Stage, raw_error: cloudinary.exceptions.Error) -> ClassifiedError:
    # most upload failures arrive as a bare ``Error`` holding the server message
    message = str(raw_error)
    lowered = message.lower()
    rate_limited = (
        isinstance(raw_error, cloudinary.exceptions.RateLimited)
        or "rate limit" in lowered
        or RATE_LIMIT_STATUS_PATTERN.search(message) is not None
    )
    if rate_limited:
        return ClassifiedError(
            ErrorKind.STORAGE_FAILURE, stage, STORAGE_RATE_LIMIT_MESSAGE, detail=truncate(message)
        )
    if isinstance(raw_error, cloudinary.exceptions.BadRequest) or "invalid image file" in lowered:
        return ClassifiedError(
            ErrorKind.UPSTREAM_HTTP_ERROR, stage, STORAGE_INVALID_PAYLOAD_MESSAGE, detail=truncate(message)
        )
    return ClassifiedError(ErrorKind.STORAGE_FAILURE, stage, detail=truncate(message))


def classify(stage: Stage, raw_error: BaseException) -> ClassifiedError:
    """Map any raw failure raised in ``stage`` into a ``ClassifiedError``."""
    if isinstance(raw_error, ClassifiedError):
        return raw_error

    if isinstance(raw_error, httpx.HTTPStatusError):
        classified = _classify_http_status(
            stage, raw_error.response.status_code, truncate(raw_error.response.text)
        )
    elif isinstance(raw_error, httpx.RequestError):
        classified = ClassifiedError(
            ErrorKind.STORAGE_FAILURE if stage is Stage.STORAGE else ErrorKind.UPSTREAM_HTTP_ERROR,
            stage,
            f"Could not reach the {stage.value} service. Please try again later.",
            detail=str(raw_error),
        )
    elif isinstance(raw_error, cloudinary.exceptions.Error):
        classified = _classify_cloudinary(stage, raw_error)
    elif isinstance(raw_error, openai.BadRequestError) and raw_error.code in CONTENT_POLICY_CODES:
        classified = ClassifiedError(ErrorKind.CONTENT_POLICY_BLOCK, stage, detail=str(raw_error))
    elif isinstance(raw_error, openai.APIStatusError):
        classified = _classify_http_status(stage, raw_error.status_code, truncate(str(raw_error)))
    elif isinstance(raw_error, openai.APIConnectionError):
        classified = ClassifiedError(
            ErrorKind.UPSTREAM_HTTP_ERROR,
            stage,
            f"Could not reach the {stage.value} model provider. Please try again later.",
            detail=str(raw_error),
        )
    elif isinstance(raw_error, MALFORMED_ERRORS):
        classified = ClassifiedError(ErrorKind.MALFORMED_RESPONSE, stage, detail=str(raw_error))
    elif stage is Stage.STORAGE:
        classified = ClassifiedError(ErrorKind.STORAGE_FAILURE, stage, detail=str(raw_error))
    else:
        classified = ClassifiedError(ErrorKind.UPSTREAM_HTTP_ERROR, stage, detail=str(raw_error))

    classified.__cause__ = raw_error
    logger.error(
        "Classified %s failure in stage %s as %s: %s",
        type(raw_error).__name__,
        stage.value,
        classified.kind.value,
        truncate(str(raw_error)),
    )
    return classified


def stop_reason_error(stage: Stage, finish_reason: Optional[str], action: str) -> ClassifiedError:
    """Explain why a model finished without the output we asked for.

    Safety and recitation stops are both ``ContentPolicyBlock`` but carry
    different messages; any other stop is a ``MalformedResponse``.
    """
    reason = (finish_reason or "").strip().lower()
    if reason in SAFETY_STOP_REASONS:
        return ClassifiedError(
            ErrorKind.CONTENT_POLICY_BLOCK, stage, SAFETY_BLOCK_MESSAGE.format(action=action), detail=reason
        )
    if reason in RECITATION_STOP_REASONS:
        return ClassifiedError(
            ErrorKind.CONTENT_POLICY_BLOCK, stage, RECITATION_BLOCK_MESSAGE.format(action=action), detail=reason
        )
    return ClassifiedError(
        ErrorKind.MALFORMED_RESPONSE,
        stage,
        f"The AI model did not return a valid response when asked to {action}. Please try again later.",
        detail=reason or None,
    )
