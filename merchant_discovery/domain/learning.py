"""
Learning signals - turning human verdicts into input for future inferences.
"""

import re
from typing import Callable, List, Optional, Sequence

from merchant_discovery.domain.models import (
    ContextFeatures,
    ErrorType,
    LearningEntry,
    LearningSignal,
    TransactionContext,
    ValidationAction,
)

_ID_RUN = re.compile(r"[A-Z0-9]*\d[A-Z0-9]*")
_NUMBER_RUN = re.compile(r"\d+")


def create_pattern_signature(context: TransactionContext) -> str:
    """
    Coarse structural signature used to match similar codes, independent of text.

    Example: "AST_NUMSUF_REGULAR_FREQUENT"
    """
    structure = context.code_structure
    cv = context.amount_stats.cv
    count = context.occurrence_count

    parts = [
        "AST" if structure.has_asterisk else "",
        "NUMSUF" if structure.has_variable_numeric_suffix else "",
        "PAYKW" if structure.payment_keywords else "",
        "REGULAR" if cv < 0.3 else "MODERATE" if cv < 0.7 else "VARIABLE",
        "FREQUENT" if count > 10 else "OCCASIONAL" if count > 3 else "RARE",
    ]
    return "_".join(part for part in parts if part)


def create_context_summary(context: TransactionContext) -> str:
    """One-line digest embedded in future prompts, e.g. "3 txns, R$-67, Distributed across the month" """
    return (
        f"{context.occurrence_count} txns, R${context.total_amount:.0f}, "
        f"{context.temporal_pattern.pattern_description}"
    )


def build_context_features(context: TransactionContext) -> ContextFeatures:
    return ContextFeatures(
        has_asterisk=context.code_structure.has_asterisk,
        has_numeric_suffix=context.code_structure.has_variable_numeric_suffix,
        value_cv=context.amount_stats.cv,
        occurrence_count=context.occurrence_count,
        temporal_pattern=context.temporal_pattern.pattern_description,
    )


def structural_pattern(code: str) -> str:
    """Replace ID-like runs and numbers with placeholders: "ZUL 1MK1EX 42" -> "ZUL <ID> <N>" """
    pattern = _ID_RUN.sub(lambda m: "<ID>" if len(m.group(0)) >= 6 else m.group(0), code.upper())
    return _NUMBER_RUN.sub("<N>", pattern)


def _two_token_prefix(code: str) -> Optional[str]:
    tokens = code.split()
    if len(tokens) < 2:
        return None
    return " ".join(tokens[:2])


def _exact(code: str, other: str) -> bool:
    return code == other


def _prefix(code: str, other: str) -> bool:
    mine = _two_token_prefix(code)
    theirs = _two_token_prefix(other)
    return bool(
        (mine and other.startswith(mine)) or (theirs and code.startswith(theirs))
    )


def _structural(code: str, other: str) -> bool:
    return structural_pattern(code) == structural_pattern(other)


def _containment(code: str, other: str) -> bool:
    return bool(code) and bool(other) and (code in other or other in code)


# Priority order: first strategy with any match wins
_MATCH_STRATEGIES: Sequence[Callable[[str, str], bool]] = (
    _exact,
    _prefix,
    _structural,
    _containment,
)


def find_relevant_learning(
    code: str,
    history: Sequence[LearningSignal],
) -> Optional[LearningSignal]:
    """
    Find the past validation most relevant to a canonical code.

    Strategies in priority order: exact code, two-token prefix (either
    direction), structural pattern, substring containment (either direction).
    Within a strategy the most recent signal wins, since ``history`` is
    chronological.
    """
    normalized = code.strip().upper()
    for matches in _MATCH_STRATEGIES:
        for signal in reversed(history):
            if matches(normalized, signal.original_code.strip().upper()):
                return signal
    return None


def build_learning_entry(
    context: TransactionContext,
    ai_inference: str,
    ai_confidence: float,
    action: ValidationAction,
    correction: Optional[str] = None,
) -> LearningEntry:
    """
    Build the learning record for one validation action.

    confirm -> was_correct
    correct -> wrong, partially_correct (carries the corrected name)
    reject  -> wrong, completely_wrong
    """
    if action == ValidationAction.CONFIRM:
        was_correct, error_type, correction = True, None, None
    elif action == ValidationAction.CORRECT:
        was_correct, error_type = False, ErrorType.PARTIALLY_CORRECT
    else:
        was_correct, error_type, correction = False, ErrorType.COMPLETELY_WRONG, None

    return LearningEntry(
        pattern_signature=create_pattern_signature(context),
        original_code=context.code,
        context_summary=create_context_summary(context),
        ai_inference=ai_inference,
        ai_confidence=ai_confidence,
        user_correction=correction,
        was_correct=was_correct,
        error_type=error_type,
        context_features=build_context_features(context),
    )


def format_learning_digest(history: List[LearningSignal]) -> str:
    """Compact text digest of every learning signal for prompt guidance"""
    lines = []
    for signal in history:
        verdict = (
            f"user corrected to: {signal.user_correction}"
            if signal.user_correction
            else "user confirmed"
            if signal.was_correct
            else "user rejected"
        )
        outcome = "correct" if signal.was_correct else "incorrect"
        lines.append(
            f"- Code: {signal.original_code} | Context: {signal.context_summary} | "
            f"AI inferred: {signal.ai_inference} | {verdict} | Result: {outcome}"
        )
    return "\n".join(lines)
