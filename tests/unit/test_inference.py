"""Unit tests for the inference decision node and the inference engine"""

import asyncio
import pytest
from merchant_discovery.domain.context import analyze_all_transactions
from merchant_discovery.domain.exceptions import InferenceParseError, ReasoningServiceError
from merchant_discovery.domain.inference import (
    ForcedAnswer,
    FreeReasoning,
    filter_contexts_needing_inference,
    plan_inference,
)
from merchant_discovery.domain.models import LearningSignal, SearchResult
from merchant_discovery.services.inference import InferenceEngine


@pytest.fixture
def contexts(sample_transactions):
    return analyze_all_transactions(sample_transactions)


def _signal(code, ai, correction=None, was_correct=True):
    return LearningSignal(
        original_code=code,
        context_summary="summary",
        ai_inference=ai,
        user_correction=correction,
        was_correct=was_correct,
    )


SEARCH_RESULTS = [
    SearchResult(title="Drogasil - Farmácia", description="Rede de farmácias", url="https://drogasil.com.br")
]


# Decision node


def test_plan_confirmed_learning_forces_ai_answer(contexts):
    """Test a confirmed record reuses the original AI answer"""
    plan = plan_inference(contexts["NETFLIX"], [_signal("NETFLIX", "Netflix")])

    assert isinstance(plan, ForcedAnswer)
    assert plan.name == "Netflix"
    assert plan.confidence == 0.95


def test_plan_corrected_learning_forces_user_answer(contexts):
    """Test a corrected record reuses the user's name"""
    history = [_signal("UBER", "Uber Eats", correction="Uber Rides", was_correct=False)]

    plan = plan_inference(contexts["UBER"], history)

    assert isinstance(plan, ForcedAnswer)
    assert plan.name == "Uber Rides"
    assert plan.confidence == 0.98


def test_plan_rejected_learning_falls_back_to_free_reasoning(contexts):
    """Test a rejection has no name to force"""
    history = [_signal("UBER", "Wrong", was_correct=False)]

    plan = plan_inference(contexts["UBER"], history)

    assert isinstance(plan, FreeReasoning)
    assert plan.history == history


def test_plan_without_match_is_free_reasoning(contexts):
    """Test unrelated history"""
    assert isinstance(plan_inference(contexts["DROGASIL"], [_signal("NETFLIX", "Netflix")]), FreeReasoning)


def test_filter_contexts_needing_inference(contexts):
    """Test re-inference rules for existing discoveries"""
    existing = {
        "NETFLIX": {"confidence": 0.9, "confirmed": False},  # confident, keep
        "UBER": {"confidence": 0.4, "confirmed": False},  # weak and unconfirmed, redo
        "DROGASIL": {"confidence": 0.2, "confirmed": True},  # confirmed, keep
    }

    needing = filter_contexts_needing_inference(list(contexts.values()), existing, 0.7)

    assert {c.code for c in needing} == {"UBER", "PIX TRANSF JOAO"}


def test_filter_contexts_threshold_is_strict(contexts):
    """Test confidence equal to the threshold needs no inference"""
    existing = {code: {"confidence": 0.7, "confirmed": False} for code in contexts}

    assert filter_contexts_needing_inference(list(contexts.values()), existing, 0.7) == []


# Engine


async def test_infer_free_reasoning_without_search(contexts, make_reasoning_client, make_search_client, answer):
    """Test a confident answer is returned as-is"""
    reasoning = make_reasoning_client(lambda prompt: answer("Netflix", 0.9, "subscription"))
    search = make_search_client(SEARCH_RESULTS)
    engine = InferenceEngine(reasoning, search)

    inference = await engine.infer(contexts["NETFLIX"])

    assert inference.inferred_name == "Netflix"
    assert inference.used_web_search is False
    assert search.queries == []
    assert len(reasoning.prompts) == 1


async def test_infer_low_confidence_escalates_to_search(contexts, make_reasoning_client, make_search_client, answer):
    """Test low confidence triggers one search and a refinement request"""
    replies = iter([answer("Drogaria?", 0.4), answer("Drogasil", 0.93, "product")])
    reasoning = make_reasoning_client(lambda prompt: next(replies))
    search = make_search_client(SEARCH_RESULTS)
    engine = InferenceEngine(reasoning, search)

    inference = await engine.infer(contexts["DROGASIL"])

    assert search.queries == ["DROGASIL cobrança cartão"]
    assert inference.inferred_name == "Drogasil"
    assert inference.confidence == 0.93
    assert inference.used_web_search is True
    assert "WEB SEARCH RESULTS" in reasoning.prompts[1]
    assert "drogasil.com.br" in reasoning.prompts[1]


async def test_infer_uses_first_suggested_search_term(contexts, make_reasoning_client, make_search_client, answer):
    """Test AI search terms escalate even with high confidence"""
    replies = iter(
        [answer("Uber", 0.9, search_terms=["uber trip brasil", "uber"]), answer("Uber", 0.95)]
    )
    reasoning = make_reasoning_client(lambda prompt: next(replies))
    search = make_search_client(SEARCH_RESULTS)

    inference = await InferenceEngine(reasoning, search).infer(contexts["UBER"])

    assert search.queries == ["uber trip brasil"]
    assert inference.used_web_search is True


async def test_infer_empty_search_keeps_initial_answer(contexts, make_reasoning_client, make_search_client, answer):
    """Test zero results count as no search performed"""
    reasoning = make_reasoning_client(lambda prompt: answer("Drogaria?", 0.4, needs_web_search=True))
    search = make_search_client([])

    inference = await InferenceEngine(reasoning, search).infer(contexts["DROGASIL"])

    assert len(search.queries) == 1
    assert len(reasoning.prompts) == 1
    assert inference.inferred_name == "Drogaria?"
    assert inference.used_web_search is False


async def test_infer_unparseable_refinement_keeps_initial_answer(
    contexts, make_reasoning_client, make_search_client, answer
):
    """Test a broken refinement answer is discarded"""
    replies = iter([answer("Drogaria?", 0.4), "sorry, no idea"])
    reasoning = make_reasoning_client(lambda prompt: next(replies))
    search = make_search_client(SEARCH_RESULTS)

    inference = await InferenceEngine(reasoning, search).infer(contexts["DROGASIL"])

    assert inference.inferred_name == "Drogaria?"
    assert inference.used_web_search is False


async def test_infer_without_search_client(contexts, make_reasoning_client, answer):
    """Test escalation is skipped when no search provider is configured"""
    reasoning = make_reasoning_client(lambda prompt: answer("Drogaria?", 0.4))

    inference = await InferenceEngine(reasoning).infer(contexts["DROGASIL"])

    assert inference.used_web_search is False
    assert len(reasoning.prompts) == 1


async def test_infer_search_failure_keeps_initial_answer(contexts, make_reasoning_client, answer):
    """Test a raising search provider never fails the inference"""

    class BrokenSearch:
        async def search(self, query, max_results=5):
            raise AttributeError("'str' object has no attribute 'get'")

    reasoning = make_reasoning_client(lambda prompt: answer("Drogaria?", 0.5))
    engine = InferenceEngine(reasoning, BrokenSearch())

    inference = await engine.infer(contexts["DROGASIL"])
    batch = await engine.infer_batch(list(contexts.values()))

    assert inference.inferred_name == "Drogaria?"
    assert inference.used_web_search is False
    assert len(batch) == len(contexts)


async def test_infer_forced_answer_overrides_and_never_searches(
    contexts, make_reasoning_client, make_search_client, answer
):
    """Test a corrected record wins over whatever the service answers"""
    reasoning = make_reasoning_client(
        lambda prompt: answer("Something Else", 0.3, needs_web_search=True, search_terms=["x"])
    )
    search = make_search_client(SEARCH_RESULTS)
    history = [_signal("UBER", "Uber Eats", correction="Uber Rides", was_correct=False)]

    inference = await InferenceEngine(reasoning, search).infer(contexts["UBER"], history)

    assert inference.inferred_name == "Uber Rides"
    assert inference.confidence == 0.98
    assert inference.used_web_search is False
    assert inference.reasoning.needs_web_search is False
    assert search.queries == []
    assert "KNOWN ANSWER" in reasoning.prompts[0]


async def test_infer_includes_learning_digest(contexts, make_reasoning_client, answer):
    """Test free reasoning carries the whole history as guidance"""
    reasoning = make_reasoning_client(lambda prompt: answer("Drogasil", 0.9))
    history = [_signal("NETFLIX", "Netflix")]

    await InferenceEngine(reasoning).infer(contexts["DROGASIL"], history)

    assert "LEARNING HISTORY" in reasoning.prompts[0]
    assert "Code: NETFLIX" in reasoning.prompts[0]


async def test_infer_raises_on_parse_failure(contexts, make_reasoning_client):
    """Test per-unit errors surface from a single inference"""
    reasoning = make_reasoning_client(lambda prompt: "no json here")

    with pytest.raises(InferenceParseError):
        await InferenceEngine(reasoning).infer(contexts["NETFLIX"])


async def test_infer_batch_drops_failures_and_keeps_order(contexts, make_reasoning_client, answer, code_of):
    """Test all-settled batch: failures dropped, survivors in input order"""

    def handler(prompt):
        code = code_of(prompt)
        if code == "UBER":
            raise ReasoningServiceError("boom")
        if code == "DROGASIL":
            return "garbage"
        return answer(code.title(), 0.9)

    engine = InferenceEngine(make_reasoning_client(handler))
    ordered = [contexts["PIX TRANSF JOAO"], contexts["UBER"], contexts["NETFLIX"], contexts["DROGASIL"]]

    results = await engine.infer_batch(ordered)

    assert [r.code for r in results] == ["PIX TRANSF JOAO", "NETFLIX"]


async def test_infer_batch_empty(make_reasoning_client, answer):
    """Test an empty batch"""
    engine = InferenceEngine(make_reasoning_client(lambda prompt: answer("X", 0.9)))

    assert await engine.infer_batch([]) == []


async def test_stream_batch_events(contexts, answer, code_of):
    """Test event sequence with completion-ordered results"""

    class SlowForUber:
        async def generate(self, prompt):
            code = code_of(prompt)
            if code == "UBER":
                await asyncio.sleep(0.05)
            if code == "DROGASIL":
                raise ReasoningServiceError("down")
            return answer(code.title(), 0.9)

    engine = InferenceEngine(SlowForUber())
    batch = [contexts["UBER"], contexts["NETFLIX"], contexts["DROGASIL"]]

    events = [event async for event in engine.stream_batch(batch)]
    types = [event.type for event in events]

    assert types[0] == "start"
    assert types[1:4] == ["progress", "progress", "progress"]
    assert types[-1] == "complete"
    assert sorted(types[4:-1]) == ["error", "result", "result"]

    completions = events[4:-1]
    assert [e.current for e in completions] == [1, 2, 3]
    # The slow inference finishes last
    assert completions[-1].code == "UBER"
    assert next(e for e in completions if e.type == "error").code == "DROGASIL"

    complete = events[-1]
    assert complete.total == 3
    assert {r.code for r in complete.results} == {"UBER", "NETFLIX"}


async def test_stream_batch_empty(make_reasoning_client, answer):
    """Test an empty stream still starts and completes"""
    engine = InferenceEngine(make_reasoning_client(lambda prompt: answer("X", 0.9)))

    events = [event async for event in engine.stream_batch([])]

    assert [e.type for e in events] == ["start", "complete"]
    assert events[-1].results == []


class InFlightCounter:
    """Reasoning fake that holds every call until all of them are in flight"""

    def __init__(self, expected, code_of, answer):
        self.expected = expected
        self.code_of = code_of
        self.answer = answer
        self.in_flight = 0
        self.peak = 0
        self.all_started = asyncio.Event()

    async def generate(self, prompt):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        if self.in_flight == self.expected:
            self.all_started.set()
        try:
            await asyncio.wait_for(self.all_started.wait(), timeout=1.0)
        except asyncio.TimeoutError:
            pass
        finally:
            self.in_flight -= 1
        return self.answer(self.code_of(prompt).title(), 0.9)


async def test_infer_batch_runs_contexts_concurrently(contexts, answer, code_of):
    """Test every context is in flight at the same time"""
    reasoning = InFlightCounter(len(contexts), code_of, answer)

    results = await InferenceEngine(reasoning).infer_batch(list(contexts.values()))

    assert reasoning.peak == len(contexts)
    assert len(results) == len(contexts)


async def test_stream_batch_runs_contexts_concurrently(contexts, answer, code_of):
    """Test streamed inference dispatches every context before any completes"""
    reasoning = InFlightCounter(len(contexts), code_of, answer)

    events = [event async for event in InferenceEngine(reasoning).stream_batch(list(contexts.values()))]

    assert reasoning.peak == len(contexts)
    assert len(events[-1].results) == len(contexts)
