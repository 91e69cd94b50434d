from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, computed_field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Label(str, Enum):
    REAL = "Real"
    FAKE = "Fake"


class DetectionMethod(str, Enum):
    CUSTOM = "custom"
    LLM = "llm"


class AnalysisRequest(CamelModel):
    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=50, max_length=10000)


class FactCheck(CamelModel):
    source: str
    claim_reviewed: str
    rating: str
    url: Optional[str] = None


class DetectionResult(CamelModel):
    label: Label
    confidence: float = Field(ge=0, le=100)
    justification: Optional[str] = None
    fact_checks: Optional[List[FactCheck]] = None

    # Set by the normalizer when confidence had to be defaulted; never serialized.
    _confidence_defaulted: bool = PrivateAttr(default=False)

    @property
    def confidence_defaulted(self) -> bool:
        return self._confidence_defaulted


class GenerationRequest(CamelModel):
    model_config = ConfigDict(frozen=True)

    topic: str = Field(min_length=1)
    category: str = Field(min_length=1)
    tone: str = Field(min_length=1)
    article_snippet: Optional[str] = None
    custom_prompt: Optional[str] = None


class GeneratedArticle(CamelModel):
    title: str
    content: str
    topic: str
    category: str
    tone: str
    image_url: Optional[str] = None


class Stage(str, Enum):
    CLASSIFIER = "classifier"
    LLM_DETECTION = "llm_detection"
    TEXT = "text"
    IMAGE = "image"
    STORAGE = "storage"


StageStatus = Literal["succeeded", "failed", "skipped"]


class StageOutcome(CamelModel):
    """One stage's result. ``kind`` and ``reason`` are only set on failure."""

    status: StageStatus = "skipped"
    kind: Optional[str] = None
    reason: Optional[str] = None

    @computed_field
    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @computed_field
    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @computed_field
    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(cls) -> "StageOutcome":
        return cls(status="succeeded")

    @classmethod
    def failure(cls, kind: str, reason: str) -> "StageOutcome":
        return cls(status="failed", kind=kind, reason=reason)


class PipelineOutcome(CamelModel):
    text: StageOutcome = Field(default_factory=StageOutcome)
    image: StageOutcome = Field(default_factory=StageOutcome)
    storage: StageOutcome = Field(default_factory=StageOutcome)

    @property
    def partial(self) -> bool:
        """Text delivered but the image never made it to storage."""
        return self.text.succeeded and not self.storage.succeeded


class GenerationResult(CamelModel):
    article: GeneratedArticle
    outcome: PipelineOutcome


class BatchItem(CamelModel):
    index: int
    request: GenerationRequest
    article: GeneratedArticle
    outcome: PipelineOutcome


class BatchResult(CamelModel):
    requested: int
    succeeded: int
    items: List[BatchItem] = Field(default_factory=list)

    @property
    def articles(self) -> List[GeneratedArticle]:
        return [item.article for item in self.items]
