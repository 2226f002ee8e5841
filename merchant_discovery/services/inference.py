"""Merchant inference engine - reasoning service calls, web search escalation, batching"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Sequence

from merchant_discovery.domain.exceptions import InferenceError
from merchant_discovery.domain.inference import (
    DEFAULT_CONFIRMED_CONFIDENCE,
    DEFAULT_CORRECTED_CONFIDENCE,
    DEFAULT_SEARCH_CONFIDENCE_THRESHOLD,
    ForcedAnswer,
    ReasoningService,
    SearchService,
    apply_forced_answer,
    build_search_query,
    plan_inference,
    should_search,
)
from merchant_discovery.domain.models import LearningSignal, MerchantInference, TransactionContext
from merchant_discovery.domain.parsing import parse_inference_response
from merchant_discovery.domain.prompts import InferencePromptBuilder
from merchant_discovery.infrastructure.observability.metrics import (
    inference_counter,
    inference_latency_histogram,
)

logger = logging.getLogger(__name__)


@dataclass
class InferenceEvent:
    """Streaming progress event; ``current`` follows completion order"""

    type: str  # start | progress | result | error | complete
    total: int
    current: int = 0
    code: Optional[str] = None
    message: str = ""
    inference: Optional[MerchantInference] = None
    error: Optional[str] = None
    results: List[MerchantInference] = field(default_factory=list)


class InferenceEngine:
    """Infers merchants for transaction contexts using the reasoning service"""

    def __init__(
        self,
        reasoning_client: ReasoningService,
        search_client: Optional[SearchService] = None,
        search_confidence_threshold: float = DEFAULT_SEARCH_CONFIDENCE_THRESHOLD,
        forced_confirmed_confidence: float = DEFAULT_CONFIRMED_CONFIDENCE,
        forced_corrected_confidence: float = DEFAULT_CORRECTED_CONFIDENCE,
        max_search_results: int = 5,
        prompt_builder: Optional[InferencePromptBuilder] = None,
    ):
        self.reasoning_client = reasoning_client
        self.search_client = search_client
        self.search_confidence_threshold = search_confidence_threshold
        self.forced_confirmed_confidence = forced_confirmed_confidence
        self.forced_corrected_confidence = forced_corrected_confidence
        self.max_search_results = max_search_results
        self.prompts = prompt_builder or InferencePromptBuilder()

    async def infer(
        self,
        context: TransactionContext,
        learning_history: Sequence[LearningSignal] = (),
    ) -> MerchantInference:
        """
        Infer the merchant behind one canonical code.

        Flow:
        1. Plan: forced answer from a matching validation, or free reasoning
        2. Ask the reasoning service and parse its structured answer
        3. Free path only: escalate to web search and refine when warranted

        Raises:
            InferenceError: When the service fails or its answer cannot be parsed
        """
        plan = plan_inference(
            context,
            learning_history,
            confirmed_confidence=self.forced_confirmed_confidence,
            corrected_confidence=self.forced_corrected_confidence,
        )
        path = "forced" if isinstance(plan, ForcedAnswer) else "free"
        start_time = time.perf_counter()

        try:
            if isinstance(plan, ForcedAnswer):
                prompt = self.prompts.build_forced_prompt(context, plan.signal, plan.name, plan.confidence)
                raw = await self.reasoning_client.generate(prompt)
                inference = apply_forced_answer(parse_inference_response(raw, context.code), plan)
            else:
                prompt = self.prompts.build_reasoning_prompt(context, plan.history)
                raw = await self.reasoning_client.generate(prompt)
                inference = parse_inference_response(raw, context.code)
                if should_search(inference, self.search_confidence_threshold):
                    inference = await self._refine_with_search(context, plan.history, inference)
        except Exception:
            inference_counter.labels(outcome="failure", path=path).inc()
            raise
        finally:
            inference_latency_histogram.observe(time.perf_counter() - start_time)

        inference_counter.labels(outcome="success", path=path).inc()
        return inference

    async def _refine_with_search(
        self,
        context: TransactionContext,
        history: List[LearningSignal],
        inference: MerchantInference,
    ) -> MerchantInference:
        """Search once and re-ask; keep the pre-search inference if anything falls short"""
        if self.search_client is None:
            return inference

        query = build_search_query(context, inference)
        try:
            search_response = await self.search_client.search(query, self.max_search_results)
        except Exception as e:
            logger.warning(
                f"Web search failed, keeping initial inference: {e}",
                extra={"code": context.code, "query": query},
            )
            return inference

        if not search_response.results:
            logger.info("Web search returned no results", extra={"code": context.code, "query": query})
            return inference

        prompt = self.prompts.build_refinement_prompt(context, history, search_response, inference)
        try:
            raw = await self.reasoning_client.generate(prompt)
            refined = parse_inference_response(raw, context.code)
        except InferenceError as e:
            logger.warning(
                f"Refinement after web search failed, keeping initial inference: {e}",
                extra={"code": context.code},
            )
            return inference

        refined.used_web_search = True
        return refined

    async def infer_batch(
        self,
        contexts: Sequence[TransactionContext],
        learning_history: Sequence[LearningSignal] = (),
    ) -> List[MerchantInference]:
        """
        Infer all contexts concurrently.

        All-settled join: a failed context is logged and dropped, the others
        are returned in input order.
        """
        history = list(learning_history)
        outcomes = await asyncio.gather(
            *(self.infer(context, history) for context in contexts),
            return_exceptions=True,
        )

        results: List[MerchantInference] = []
        for context, outcome in zip(contexts, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Inference failed: {outcome}", extra={"code": context.code})
                continue
            results.append(outcome)
        return results

    async def stream_batch(
        self,
        contexts: Sequence[TransactionContext],
        learning_history: Sequence[LearningSignal] = (),
    ) -> AsyncIterator[InferenceEvent]:
        """
        Infer all contexts concurrently, yielding events as results arrive.

        Events: start, progress (per dispatch), result / error (per
        completion), complete (with every successful inference).
        """
        total = len(contexts)
        history = list(learning_history)
        yield InferenceEvent(type="start", total=total, message=f"Starting inference for {total} merchants")

        async def run(context: TransactionContext):
            try:
                return context, await self.infer(context, history), None
            except Exception as e:
                return context, None, e

        completed = 0
        results: List[MerchantInference] = []
        tasks = []
        try:
            for context in contexts:
                tasks.append(asyncio.ensure_future(run(context)))
                yield InferenceEvent(
                    type="progress",
                    total=total,
                    current=completed + 1,
                    code=context.code,
                    message=f"Processing {context.code}...",
                )

            for next_done in asyncio.as_completed(tasks):
                context, inference, error = await next_done
                completed += 1
                if error is None:
                    results.append(inference)
                    yield InferenceEvent(
                        type="result",
                        total=total,
                        current=completed,
                        code=context.code,
                        inference=inference,
                        message=f"{inference.inferred_name} ({inference.confidence:.0%})",
                    )
                else:
                    logger.error(f"Inference failed: {error}", extra={"code": context.code})
                    yield InferenceEvent(
                        type="error",
                        total=total,
                        current=completed,
                        code=context.code,
                        error=str(error),
                        message=f"Failed to infer {context.code}",
                    )
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        yield InferenceEvent(
            type="complete",
            total=total,
            current=completed,
            results=results,
            message=f"Done: {len(results)}/{total} merchants inferred",
        )
