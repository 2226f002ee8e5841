"""
Inference decisions - pure logic around the reasoning service.

The engine first decides between two paths:
- ForcedAnswer: a past human validation matches this code, reuse its answer
- FreeReasoning: no usable match, ask the reasoning service to work it out
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Protocol, Sequence, Union

from merchant_discovery.domain.learning import find_relevant_learning
from merchant_discovery.domain.models import (
    LearningSignal,
    MerchantInference,
    TransactionContext,
    WebSearchResponse,
)

DEFAULT_CONFIRMED_CONFIDENCE = 0.95
DEFAULT_CORRECTED_CONFIDENCE = 0.98
DEFAULT_SEARCH_CONFIDENCE_THRESHOLD = 0.7
DEFAULT_REINFERENCE_CONFIDENCE_THRESHOLD = 0.7


class ReasoningService(Protocol):
    async def generate(self, prompt: str) -> str: ...


class SearchService(Protocol):
    async def search(self, query: str, max_results: int = 5) -> WebSearchResponse: ...


@dataclass(frozen=True)
class ForcedAnswer:
    """Reuse a validated answer from the learning history"""

    signal: LearningSignal
    name: str
    confidence: float


@dataclass(frozen=True)
class FreeReasoning:
    """Full reasoning with the whole history as general guidance"""

    history: List[LearningSignal]


InferencePlan = Union[ForcedAnswer, FreeReasoning]


def plan_inference(
    context: TransactionContext,
    learning_history: Sequence[LearningSignal],
    confirmed_confidence: float = DEFAULT_CONFIRMED_CONFIDENCE,
    corrected_confidence: float = DEFAULT_CORRECTED_CONFIDENCE,
) -> InferencePlan:
    """
    Decide how to infer a merchant for this context.

    A relevant confirmed record forces its AI answer; a relevant corrected
    record forces the user's correction. Rejections carry no usable name and
    fall through to free reasoning.
    """
    history = list(learning_history)
    signal = find_relevant_learning(context.code, history)

    if signal is not None:
        if signal.was_correct:
            return ForcedAnswer(signal=signal, name=signal.ai_inference, confidence=confirmed_confidence)
        if signal.user_correction:
            return ForcedAnswer(signal=signal, name=signal.user_correction, confidence=corrected_confidence)

    return FreeReasoning(history=history)


def apply_forced_answer(inference: MerchantInference, plan: ForcedAnswer) -> MerchantInference:
    """The validated answer takes precedence over whatever the service returned"""
    reasoning = replace(inference.reasoning, needs_web_search=False, search_terms=[])
    return replace(
        inference,
        inferred_name=plan.name,
        confidence=plan.confidence,
        reasoning=reasoning,
        used_web_search=False,
    )


def should_search(
    inference: MerchantInference,
    confidence_threshold: float = DEFAULT_SEARCH_CONFIDENCE_THRESHOLD,
) -> bool:
    """Escalate to web search on request, on low confidence, or when terms were suggested"""
    return (
        inference.reasoning.needs_web_search
        or inference.confidence < confidence_threshold
        or bool(inference.reasoning.search_terms)
    )


def build_search_query(context: TransactionContext, inference: MerchantInference) -> str:
    """AI-suggested term first, otherwise a query built from the code"""
    if inference.reasoning.search_terms:
        return inference.reasoning.search_terms[0]
    return f"{context.code} cobrança cartão"


def filter_contexts_needing_inference(
    contexts: Sequence[TransactionContext],
    existing: Dict[str, Dict[str, object]],
    confidence_threshold: float = DEFAULT_REINFERENCE_CONFIDENCE_THRESHOLD,
) -> List[TransactionContext]:
    """
    Keep contexts that still need an inference.

    ``existing`` maps code -> {"confidence": float, "confirmed": bool}. A
    context needs inference when there is no record, or the record is
    unconfirmed with confidence below the threshold.
    """
    needing: List[TransactionContext] = []
    for context in contexts:
        record: Optional[Dict[str, object]] = existing.get(context.code)
        if record is None:
            needing.append(context)
        elif not record.get("confirmed") and float(record.get("confidence") or 0.0) < confidence_threshold:
            needing.append(context)
    return needing
