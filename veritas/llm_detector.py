"""
LLM-based detection with explanations and an attached fact-check tool.

The model is bound to two tools: ``factCheck`` (executed here, results fed
back) and ``DetectionVerdict`` (its arguments are the structured output).
Whatever the model submits goes through the shared normalizer.
"""
from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from pydantic import BaseModel, Field, ValidationError

from .errors import classify, stop_reason_error
from .fact_check import FACT_CHECK_TOOL_NAME, FactChecker, build_fact_check_tool, mock_fact_check
from .llm_orchestrator import finish_reason, get_llm, response_text
from .models import DetectionResult, Stage
from .normalizer import GenerativePayload, normalize

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 3

DETECTION_SYSTEM_PROMPT = """You are an AI assistant specializing in fake news detection and analysis.
Analyze the news article text provided by the user.
Based on your analysis, determine if the article is 'Real' or 'Fake'.
You MUST provide a confidence score (an integer between 0 and 100) for your prediction.
You MUST provide a brief justification for your prediction, consisting of 2 to 3 main bullet points. \
Each bullet point should be a short sentence. Do NOT use HTML formatting in the justification; \
provide plain text bullet points, each starting with a hyphen (-) or asterisk (*).
If the article contains verifiable claims, consider using the 'factCheck' tool to find related fact-checks. \
Include any findings from this tool in the 'fact_checks' field.
Always finish by calling 'DetectionVerdict' exactly once."""


class DetectionVerdict(BaseModel):
    """Submit the final verdict for the analyzed article."""

    label: str = Field(description="The predicted label for the article: 'Real' or 'Fake'.")
    confidence: float = Field(description="The confidence score of the prediction (0-100).")
    justification: Optional[str] = Field(
        default=None, description="2-3 plain text bullet points supporting the prediction."
    )
    fact_checks: Optional[List[dict]] = Field(
        default=None,
        description="Fact-checks returned by the factCheck tool: {source, claimReviewed, rating, url?}.",
    )


def _content_json(resp: AIMessage) -> Optional[dict]:
    """Some models answer with JSON content instead of calling the verdict tool."""
    text = response_text(resp)
    if text.startswith("```"):
        text = text[7:] if text.startswith("```json") else text[3:]
        text = text.rsplit("```", 1)[0].strip()
    if not text.startswith("{"):
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) and "label" in data else None


async def _run_fact_check_call(tool, args: dict) -> List[dict]:
    try:
        return await tool.ainvoke(args)
    except ValidationError as exc:
        logger.error("Fact-check tool called with invalid arguments %r: %s", args, exc)
        return []


async def _structured_output(text: str, fact_checker: FactChecker) -> tuple[Optional[dict], AIMessage]:
    """Drive the tool loop until the model submits a verdict or stops."""
    fact_tool = build_fact_check_tool(fact_checker)
    model = get_llm(Stage.LLM_DETECTION).bind_tools([fact_tool, DetectionVerdict])
    messages: List[Any] = [
        SystemMessage(content=DETECTION_SYSTEM_PROMPT),
        HumanMessage(content=f"Article Text:\n{text}"),
    ]
    found: List[dict] = []

    for _ in range(MAX_TOOL_ROUNDS):
        resp = await model.ainvoke(messages)
        messages.append(resp)

        fact_calls = []
        for call in resp.tool_calls or []:
            if call["name"] == DetectionVerdict.__name__:
                output = dict(call["args"])
                if found and not output.get("fact_checks") and not output.get("factChecks"):
                    output["fact_checks"] = found
                return output, resp
            if call["name"] == FACT_CHECK_TOOL_NAME:
                fact_calls.append(call)

        if not fact_calls:
            return _content_json(resp), resp

        for call in fact_calls:
            results = await _run_fact_check_call(fact_tool, call["args"])
            found.extend(results)
            messages.append(ToolMessage(content=json.dumps(results), tool_call_id=call["id"]))

    raise ValueError(f"model did not submit a verdict within {MAX_TOOL_ROUNDS} tool rounds")


async def detect(text: str, *, fact_checker: FactChecker = mock_fact_check) -> DetectionResult:
    """Classify ``text`` with the generative model, with justification and fact checks."""
    logger.info("LLM detection request: chars=%d", len(text))
    try:
        output, resp = await _structured_output(text, fact_checker)
    except Exception as exc:
        raise classify(Stage.LLM_DETECTION, exc)

    if output is None:
        error = stop_reason_error(Stage.LLM_DETECTION, finish_reason(resp), "analyze this article")
        logger.warning(
            "LLM detection returned no structured output (finish_reason=%s) for input: %s",
            finish_reason(resp),
            text[:100],
        )
        raise error

    try:
        result = normalize(GenerativePayload(output))
    except Exception as exc:
        raise classify(Stage.LLM_DETECTION, exc)
    logger.info("LLM prediction: label=%s confidence=%.1f", result.label.value, result.confidence)
    return result
