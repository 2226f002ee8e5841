"""
Parsing of reasoning-service responses into merchant inferences.

The service is asked for a single JSON object but may wrap it in a fenced
code block or surround it with prose; the largest well-formed object found
in the text is validated against InferenceResponsePayload.
"""

import json
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from merchant_discovery.domain.exceptions import InferenceParseError
from merchant_discovery.domain.models import (
    InferenceReasoning,
    MerchantHypothesis,
    MerchantInference,
    MerchantType,
)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def _clamp_confidence(value: Any) -> Any:
    # Percentages (85) are scaled down, anything else is clamped to [0, 1]
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if 1 < value <= 100:
            value = value / 100
        return min(max(float(value), 0.0), 1.0)
    return value


class HypothesisPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=1)
    confidence: float = 0.0
    evidence_for: List[str] = Field(default_factory=list)
    evidence_against: List[str] = Field(default_factory=list)

    clamp_confidence = field_validator("confidence", mode="before")(_clamp_confidence)


class FinalInferencePayload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    type: MerchantType = MerchantType.OTHER
    reasoning_summary: str = ""

    clamp_confidence = field_validator("confidence", mode="before")(_clamp_confidence)

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            known = {member.value for member in MerchantType}
            return lowered if lowered in known else MerchantType.OTHER.value
        return MerchantType.OTHER.value


class InferenceResponsePayload(BaseModel):
    """Expected shape of a reasoning-service answer"""

    model_config = ConfigDict(extra="ignore")

    structural_analysis: str = ""
    value_analysis: str = ""
    temporal_analysis: str = ""
    hypotheses: List[HypothesisPayload] = Field(default_factory=list)
    needs_web_search: bool = False
    search_terms: List[str] = Field(default_factory=list)
    final_inference: FinalInferencePayload


def _candidate_texts(text: str) -> List[str]:
    stripped = text.strip()
    candidates = [match.group(1) for match in _FENCED_BLOCK.finditer(stripped)]
    candidates.append(stripped)
    return candidates


def _largest_object(text: str) -> Optional[Dict[str, Any]]:
    """Scan for top-level JSON objects and return the longest one"""
    decoder = json.JSONDecoder()
    best: Optional[Dict[str, Any]] = None
    best_length = 0

    index = text.find("{")
    while index != -1:
        try:
            obj, end = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            index = text.find("{", index + 1)
            continue
        if isinstance(obj, dict) and end - index > best_length:
            best, best_length = obj, end - index
        index = text.find("{", end)

    return best


def extract_json_object(raw_response: str) -> Dict[str, Any]:
    """
    Locate the structured object in a free-text response.

    Raises:
        InferenceParseError: stage "json_parse" when no object can be found
    """
    for candidate in _candidate_texts(raw_response or ""):
        found = _largest_object(candidate)
        if found is not None:
            return found

    raise InferenceParseError(
        stage="json_parse",
        errors=["no JSON object found in response"],
        raw_response=raw_response,
    )


def parse_inference_response(raw_response: str, code: str) -> MerchantInference:
    """
    Parse and validate a raw reasoning response for one code.

    Raises:
        InferenceParseError: If no object is found or it fails schema validation
    """
    data = extract_json_object(raw_response)

    try:
        payload = InferenceResponsePayload.model_validate(data)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}"
            for e in exc.errors()
        ]
        raise InferenceParseError(stage="schema", errors=errors, raw_response=raw_response) from exc

    final = payload.final_inference
    return MerchantInference(
        code=code,
        inferred_name=final.name,
        confidence=final.confidence,
        type=final.type,
        reasoning=InferenceReasoning(
            structural_analysis=payload.structural_analysis,
            value_analysis=payload.value_analysis,
            temporal_analysis=payload.temporal_analysis,
            hypotheses=[
                MerchantHypothesis(
                    name=h.name,
                    confidence=h.confidence,
                    evidence_for=h.evidence_for,
                    evidence_against=h.evidence_against,
                )
                for h in payload.hypotheses
            ],
            needs_web_search=payload.needs_web_search,
            search_terms=[term for term in payload.search_terms if term and term.strip()],
        ),
        reasoning_summary=final.reasoning_summary,
        used_web_search=False,
    )
