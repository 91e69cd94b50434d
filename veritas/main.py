from __future__ import annotations

from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field

from . import batch, detector, pipeline
from .errors import ClassifiedError, ErrorKind
from .models import (
    AnalysisRequest,
    BatchResult,
    CamelModel,
    DetectionMethod,
    DetectionResult,
    GeneratedArticle,
    GenerationRequest,
    GenerationResult,
)

load_dotenv()

STATUS_CODES = {
    ErrorKind.CONFIG_MISSING: 503,
    ErrorKind.UPSTREAM_HTTP_ERROR: 502,
    ErrorKind.MALFORMED_RESPONSE: 502,
    ErrorKind.CONTENT_POLICY_BLOCK: 422,
    ErrorKind.STORAGE_FAILURE: 502,
}


class DetectRequest(AnalysisRequest):
    method: DetectionMethod = DetectionMethod.CUSTOM


class RegenerateImageRequest(CamelModel):
    article: GeneratedArticle
    custom_prompt: Optional[str] = None


class BatchRequest(CamelModel):
    requests: List[GenerationRequest] = Field(min_length=1)
    concurrency: Optional[int] = Field(default=None, ge=1)


app = FastAPI(
    title="Veritas AI",
    description="Detect and generate news-style articles using async model orchestration",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in real deployments
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ClassifiedError)
async def classified_error_handler(request: Request, exc: ClassifiedError):
    return JSONResponse(status_code=STATUS_CODES[exc.kind], content={"detail": exc.to_dict()})


@app.get("/health", tags=["meta"])
async def health():
    return {"status": "ok"}


@app.post("/detect", response_model=DetectionResult, response_model_by_alias=True, tags=["detect"])
async def detect_article(body: DetectRequest):
    return await detector.detect(body.text, body.method)


@app.post("/generate", response_model=GenerationResult, response_model_by_alias=True, tags=["generate"])
async def generate_article(body: GenerationRequest):
    return await pipeline.generate(body)


@app.post("/generate/image", response_model=GenerationResult, response_model_by_alias=True, tags=["generate"])
async def regenerate_image(body: RegenerateImageRequest):
    return await pipeline.regenerate_image(body.article, body.custom_prompt)


@app.post("/generate/batch", response_model=BatchResult, response_model_by_alias=True, tags=["generate"])
async def generate_batch(body: BatchRequest):
    return await batch.generate_batch(body.requests, concurrency=body.concurrency)
