"""
Context extraction - deterministic signal extraction for merchant codes.

Aggregates every transaction sharing a canonical code into a statistical,
temporal and structural profile that the inference engine reasons over.
"""

import math
import re
from collections import Counter
from datetime import date
from typing import Dict, Iterable, List, Optional

from merchant_discovery.domain.models import (
    AmountStats,
    CodeComposition,
    CodeStructure,
    DateRange,
    TemporalPattern,
    Transaction,
    TransactionContext,
)
from merchant_discovery.domain.normalization import (
    DEFAULT_RULES,
    NormalizationRules,
    aggressive_normalize,
    conservative_normalize,
)

MAX_CO_OCCURRING_CODES = 10
MAX_SAMPLE_IDS = 5

_ASTERISK_PREFIX = re.compile(r"^([A-Z0-9]+)\s*\*")
_TRAILING_DIGITS = re.compile(r"\d+$")


def calculate_amount_stats(amounts: List[float]) -> AmountStats:
    """
    Calculate statistical measures for amounts.

    Uses the population standard deviation. The coefficient of variation is
    stddev / |mean|, defined as 0 when the mean is 0.
    """
    if not amounts:
        return AmountStats()

    values = sorted(amounts)
    count = len(values)
    mean = sum(values) / count

    middle = count // 2
    if count % 2 == 0:
        median = (values[middle - 1] + values[middle]) / 2
    else:
        median = values[middle]

    variance = sum((value - mean) ** 2 for value in values) / count
    stddev = math.sqrt(variance)

    return AmountStats(
        min=values[0],
        max=values[-1],
        mean=mean,
        median=median,
        stddev=stddev,
        cv=stddev / abs(mean) if mean != 0 else 0.0,
    )


def analyze_temporal_pattern(dates: List[date]) -> TemporalPattern:
    """
    Analyze temporal patterns in transaction dates.

    Thresholds:
    - dominant day: a single day of month holds more than 50% of occurrences
    - early / late: days 1-10 or 21-31 hold more than 70% of occurrences
    """
    day_of_month = [0] * 31
    day_of_week = [0] * 7

    for day in dates:
        day_of_month[day.day - 1] += 1
        day_of_week[(day.weekday() + 1) % 7] += 1  # Sunday = 0

    total = len(dates)
    max_count = max(day_of_month)
    dominant_day: Optional[int] = None
    if total and max_count > total * 0.5:
        dominant_day = day_of_month.index(max_count) + 1

    if dominant_day is not None:
        description = f"Concentrated on day {dominant_day} of the month"
    elif total and sum(day_of_month[:10]) > total * 0.7:
        description = "Concentrated early in the month (days 1-10)"
    elif total and sum(day_of_month[20:]) > total * 0.7:
        description = "Concentrated late in the month (days 21-31)"
    else:
        description = "Distributed across the month"

    return TemporalPattern(
        day_of_month_distribution=day_of_month,
        day_of_week_distribution=day_of_week,
        dominant_day_of_month=dominant_day,
        pattern_description=description,
    )


def analyze_code_structure(
    raw: str,
    variations: List[str],
    rules: NormalizationRules = DEFAULT_RULES,
) -> CodeStructure:
    """Analyze the character composition and markers of a transaction code"""
    normalized = conservative_normalize(raw)
    upper = raw.upper()

    # A suffix is "variable" when every observed variation ends in digits
    has_variable_suffix = len(variations) > 1 and all(
        _TRAILING_DIGITS.search(variation.strip()) for variation in variations
    )

    special_chars: List[str] = []
    for ch in raw:
        if not ch.isalnum() and not ch.isspace() and ch not in special_chars:
            special_chars.append(ch)

    prefix_match = _ASTERISK_PREFIX.match(upper)

    return CodeStructure(
        raw=normalized,
        length=len(normalized),
        has_asterisk="*" in raw,
        has_variable_numeric_suffix=has_variable_suffix,
        is_all_caps=raw == upper,
        payment_keywords=[keyword for keyword in rules.payment_keywords if keyword in upper],
        composition=CodeComposition(
            letters=sum(1 for ch in raw if ch.isalpha()),
            digits=sum(1 for ch in raw if ch.isdigit()),
            spaces=sum(1 for ch in raw if ch.isspace()),
            special_chars=special_chars,
        ),
        detected_prefix=f"{prefix_match.group(1)} *" if prefix_match else None,
        detected_suffix_pattern="VARIABLE_NUMERIC" if has_variable_suffix else None,
    )


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def extract_context(
    code: str,
    transactions: List[Transaction],
    all_transactions: List[Transaction],
    codes_by_id: Optional[Dict[str, str]] = None,
    rules: NormalizationRules = DEFAULT_RULES,
) -> TransactionContext:
    """
    Extract the complete context for a group of transactions with the same code.

    Co-occurrence is counted across the whole transaction set: every other
    canonical code seen on a date shared with this group scores one per
    transaction. ``codes_by_id`` lets batch callers reuse codes they already
    computed.
    """
    if codes_by_id is None:
        codes_by_id = {t.id: aggressive_normalize(t.description, rules) for t in all_transactions}

    amounts = [t.amount for t in transactions]
    dates = [t.date for t in transactions]
    raw_variations = _unique(t.description for t in transactions)

    group_dates = set(dates)
    co_occurrence: Counter = Counter()
    for txn in all_transactions:
        if txn.date not in group_dates:
            continue
        other_code = codes_by_id.get(txn.id) or aggressive_normalize(txn.description, rules)
        if other_code != code:
            co_occurrence[other_code] += 1

    sorted_dates = sorted(dates)
    first = sorted_dates[0] if sorted_dates else date.today()
    last = sorted_dates[-1] if sorted_dates else first

    return TransactionContext(
        code=code,
        raw_variations=raw_variations,
        occurrence_count=len(transactions),
        total_amount=sum(amounts),
        amount_stats=calculate_amount_stats(amounts),
        temporal_pattern=analyze_temporal_pattern(dates),
        code_structure=analyze_code_structure(
            raw_variations[0] if raw_variations else "", raw_variations, rules
        ),
        transaction_types=_unique(t.type or "unknown" for t in transactions),
        co_occurring_codes=[c for c, _ in co_occurrence.most_common(MAX_CO_OCCURRING_CODES)],
        date_range=DateRange(first=first, last=last, span_days=(last - first).days),
        sample_transaction_ids=[t.id for t in transactions[:MAX_SAMPLE_IDS]],
    )


def analyze_all_transactions(
    transactions: List[Transaction],
    rules: NormalizationRules = DEFAULT_RULES,
) -> Dict[str, TransactionContext]:
    """Group the whole transaction set by canonical code and extract each context"""
    codes_by_id: Dict[str, str] = {}
    grouped: Dict[str, List[Transaction]] = {}

    for txn in transactions:
        code = aggressive_normalize(txn.description, rules)
        codes_by_id[txn.id] = code
        grouped.setdefault(code, []).append(txn)

    return {
        code: extract_context(code, txns, transactions, codes_by_id, rules)
        for code, txns in grouped.items()
    }
