"""Impact scoring - ranks discoveries by financial significance for human review"""

from merchant_discovery.domain.models import TransactionContext

# Multiplier applied when the inference carries no confidence at all
ZERO_CONFIDENCE_PENALTY = 10.0


def calculate_impact_score(context: TransactionContext, ai_confidence: float) -> float:
    """
    Calculate review priority for a discovery. Higher score = review first.

    Formula:
        impact = |total_amount| × occurrence_count × (1 / confidence)

    - Magnitude of the total is used: expenses are negative amounts
    - Zero (or negative) confidence gets a fixed penalty of 10

    Monotonic in total and count. In confidence it is strictly decreasing
    over [0.1, 1.0]. Zero confidence ranks like 0.1, so a confidence below
    0.1 (say 0.05) outranks a confidence of 0.
    """
    base_impact = abs(context.total_amount) * context.occurrence_count
    confidence_penalty = 1 / ai_confidence if ai_confidence > 0 else ZERO_CONFIDENCE_PENALTY

    return base_impact * confidence_penalty
