"""Structured prompt builder for merchant inference"""

import json
from typing import List

from merchant_discovery.domain.learning import format_learning_digest
from merchant_discovery.domain.models import (
    LearningSignal,
    MerchantInference,
    TransactionContext,
    WebSearchResponse,
)
from merchant_discovery.utils.formatting import format_currency, format_date

_OUTPUT_EXAMPLE = json.dumps(
    {
        "structural_analysis": "Your structural analysis",
        "value_analysis": "Your value analysis",
        "temporal_analysis": "Your temporal analysis",
        "hypotheses": [
            {
                "name": "Hypothetical merchant name",
                "confidence": 0.8,
                "evidence_for": ["evidence 1", "evidence 2"],
                "evidence_against": ["counter-evidence 1"],
            }
        ],
        "needs_web_search": True,
        "search_terms": ["search term 1", "search term 2"],
        "final_inference": {
            "name": "Final inferred name",
            "confidence": 0.75,
            "type": "service",
            "reasoning_summary": "One or two sentence summary",
        },
    },
    indent=2,
)

_ROLE = "You are an expert in Brazilian payment systems and bank/credit-card statement descriptors."

_REASONING_STEPS = """\
REASONING PROCESS:

1. STRUCTURAL ANALYSIS
   - Which patterns do you see in the code format?
   - What do they suggest about the kind of transaction?
   - Are there recognizable elements (abbreviations, acronyms, acquirer prefixes)?

2. VALUE ANALYSIS
   - What kind of business does the amount distribution suggest?
   - Recurring or variable amounts? What does that indicate?

3. TEMPORAL ANALYSIS
   - Does the timing point to a subscription, recurring purchases or sporadic use?

4. HYPOTHESES
   - List 3-5 hypotheses ranked by plausibility
   - For each, list evidence for and against

5. VERIFICATION
   - Do you need a web search to confirm? Which search terms would you use?

6. CONCLUSION
   - Best inference, confidence (0-1) and merchant type
     (service/product/transfer/subscription/marketplace/other)

RULES:
- Reason from the context, patterns and statistics provided
- If unsure, set "needs_web_search": true
- Be honest about confidence: low confidence beats a wrong guess
- Use the learning history to avoid repeating past mistakes
"""


def _cv_label(cv: float) -> str:
    if cv < 0.3:
        return "regular amounts"
    if cv < 0.7:
        return "moderately variable amounts"
    return "highly variable amounts"


def format_search_results_for_prompt(response: WebSearchResponse) -> str:
    if not response.results:
        return "The web search returned no relevant results."

    entries = "\n".join(
        f"{i}. {result.title}\n   URL: {result.url}\n   {result.description}"
        for i, result in enumerate(response.results, start=1)
    )
    return (
        f'WEB SEARCH RESULTS for "{response.query}":\n\n{entries}\n\n'
        "Based on the results above, identify the real merchant."
    )


class InferencePromptBuilder:
    """
    Builds prompts for the reasoning service.

    Three request kinds share one output contract (a single JSON object):
    full reasoning, forced answer from a past validation, and refinement
    with web search results.
    """

    def build_reasoning_prompt(
        self,
        context: TransactionContext,
        learning_history: List[LearningSignal],
    ) -> str:
        """Full-reasoning request carrying the complete context and history digest"""
        history = ""
        if learning_history:
            history = (
                "\nLEARNING HISTORY (past validations, for general guidance):\n"
                f"{format_learning_digest(learning_history)}\n"
            )

        return (
            f"{_ROLE}\n\n"
            "TASK: Infer the real merchant behind this transaction code.\n\n"
            f"{self._format_context(context)}"
            f"{history}\n"
            f"{_REASONING_STEPS}\n"
            f"OUTPUT (valid JSON only):\n{_OUTPUT_EXAMPLE}"
        )

    def build_forced_prompt(
        self,
        context: TransactionContext,
        signal: LearningSignal,
        name: str,
        confidence: float,
    ) -> str:
        """Request that reuses a validated answer instead of reasoning from scratch"""
        if signal.was_correct:
            instruction = (
                f'A user previously CONFIRMED that code "{signal.original_code}" is "{name}".\n'
                f'Use "{name}" as the final inference with confidence {confidence}.'
            )
        else:
            instruction = (
                f'A previous inference for code "{signal.original_code}" was WRONG: '
                f'the AI said "{signal.ai_inference}" and the user corrected it to "{name}".\n'
                f'Do not repeat the error. Use "{name}" as the final inference '
                f"with confidence {confidence}."
            )

        return (
            f"{_ROLE}\n\n"
            "TASK: Record the known merchant behind this transaction code.\n\n"
            f"{self._format_context(context)}\n"
            f"KNOWN ANSWER:\n{instruction}\n"
            'Set "needs_web_search" to false and "search_terms" to [].\n\n'
            f"OUTPUT (valid JSON only):\n{_OUTPUT_EXAMPLE}"
        )

    def build_refinement_prompt(
        self,
        context: TransactionContext,
        learning_history: List[LearningSignal],
        search_response: WebSearchResponse,
        previous: MerchantInference,
    ) -> str:
        """Reasoning request enriched with web search results"""
        return (
            f"{self.build_reasoning_prompt(context, learning_history)}\n\n"
            f"PREVIOUS INFERENCE: {previous.inferred_name} "
            f"(confidence {previous.confidence:.2f}, type {previous.type.value})\n\n"
            f"{format_search_results_for_prompt(search_response)}\n"
            "Revise the inference using the search results and answer with the same JSON format."
        )

    def _format_context(self, context: TransactionContext) -> str:
        stats = context.amount_stats
        structure = context.code_structure
        variations = "\n".join(f'- "{variation}"' for variation in context.raw_variations)

        lines = [
            f'CODE: "{context.code}"',
            "",
            "OBSERVED VARIATIONS:",
            variations,
            "",
            "CONTEXT:",
            f"- Occurrences: {context.occurrence_count} transactions",
            f"- Total amount: {format_currency(context.total_amount)}",
            f"- Amount range: {format_currency(stats.min)} - {format_currency(stats.max)}",
            f"- Mean: {format_currency(stats.mean)} (median: {format_currency(stats.median)})",
            f"- Standard deviation: {format_currency(stats.stddev)}",
            f"- Coefficient of variation: {stats.cv:.2f} ({_cv_label(stats.cv)})",
            f"- Transaction types: {', '.join(context.transaction_types)}",
            f"- Period: {format_date(context.date_range.first)} to "
            f"{format_date(context.date_range.last)} ({context.date_range.span_days} days)",
            f"- Temporal pattern: {context.temporal_pattern.pattern_description}",
            f"- Co-occurring codes: {', '.join(context.co_occurring_codes) or 'none'}",
            "",
            "CODE STRUCTURE:",
            f"- Length: {structure.length} characters",
            f"- Composition: {structure.composition.letters} letters, "
            f"{structure.composition.digits} digits",
            f"- Special characters: {', '.join(structure.composition.special_chars) or 'none'}",
            f"- Has asterisk: {'yes' if structure.has_asterisk else 'no'}",
            f"- Variable numeric suffix: {'yes' if structure.has_variable_numeric_suffix else 'no'}",
            f"- Payment keywords: {', '.join(structure.payment_keywords) or 'none'}",
        ]
        if structure.detected_prefix:
            lines.append(f'- Detected prefix: "{structure.detected_prefix}"')

        return "\n".join(lines) + "\n"
