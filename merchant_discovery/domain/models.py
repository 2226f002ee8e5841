"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


class DiscoveryStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CORRECTED = "corrected"
    REJECTED = "rejected"


class MerchantType(str, Enum):
    SERVICE = "service"
    PRODUCT = "product"
    TRANSFER = "transfer"
    SUBSCRIPTION = "subscription"
    MARKETPLACE = "marketplace"
    OTHER = "other"


class ErrorType(str, Enum):
    COMPLETELY_WRONG = "completely_wrong"
    PARTIALLY_CORRECT = "partially_correct"
    MISSING_NUANCE = "missing_nuance"


class ValidationAction(str, Enum):
    CONFIRM = "confirm"
    CORRECT = "correct"
    REJECT = "reject"


class DiscoveryStage(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    INFERRING = "inferring"
    SAVING = "saving"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class Transaction:
    """Statement transaction produced by the upload pipeline"""

    id: str
    date: date
    amount: float  # negative = expense
    description: str
    raw_description: str
    type: str  # "debit", "credit" or "pix"


@dataclass
class AmountStats:
    """Statistical summary of transaction amounts"""

    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    stddev: float = 0.0
    cv: float = 0.0  # coefficient of variation


@dataclass
class TemporalPattern:
    """Occurrence distribution across the month and week"""

    day_of_month_distribution: List[int]  # 31 buckets, index 0 = day 1
    day_of_week_distribution: List[int]  # 7 buckets, index 0 = Sunday
    pattern_description: str
    dominant_day_of_month: Optional[int] = None


@dataclass
class CodeComposition:
    letters: int
    digits: int
    spaces: int
    special_chars: List[str]


@dataclass
class CodeStructure:
    """Structural analysis of the transaction code text"""

    raw: str
    length: int
    has_asterisk: bool
    has_variable_numeric_suffix: bool
    is_all_caps: bool
    payment_keywords: List[str]
    composition: CodeComposition
    detected_prefix: Optional[str] = None
    detected_suffix_pattern: Optional[str] = None


@dataclass
class DateRange:
    first: date
    last: date
    span_days: int


@dataclass
class TransactionContext:
    """Aggregated profile of every transaction sharing one canonical code"""

    code: str
    raw_variations: List[str]
    occurrence_count: int
    total_amount: float
    amount_stats: AmountStats
    temporal_pattern: TemporalPattern
    code_structure: CodeStructure
    transaction_types: List[str]
    co_occurring_codes: List[str]
    date_range: DateRange
    sample_transaction_ids: List[str]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe snapshot (dates as ISO strings)"""
        data = asdict(self)
        data["date_range"]["first"] = self.date_range.first.isoformat()
        data["date_range"]["last"] = self.date_range.last.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionContext":
        structure = dict(data["code_structure"])
        structure["composition"] = CodeComposition(**structure["composition"])
        date_range = data["date_range"]
        return cls(
            code=data["code"],
            raw_variations=list(data["raw_variations"]),
            occurrence_count=data["occurrence_count"],
            total_amount=data["total_amount"],
            amount_stats=AmountStats(**data["amount_stats"]),
            temporal_pattern=TemporalPattern(**data["temporal_pattern"]),
            code_structure=CodeStructure(**structure),
            transaction_types=list(data.get("transaction_types", [])),
            co_occurring_codes=list(data.get("co_occurring_codes", [])),
            date_range=DateRange(
                first=date.fromisoformat(date_range["first"]),
                last=date.fromisoformat(date_range["last"]),
                span_days=date_range["span_days"],
            ),
            sample_transaction_ids=list(data.get("sample_transaction_ids", [])),
        )


@dataclass
class MerchantHypothesis:
    name: str
    confidence: float
    evidence_for: List[str] = field(default_factory=list)
    evidence_against: List[str] = field(default_factory=list)


@dataclass
class InferenceReasoning:
    """Structured reasoning returned by the reasoning service"""

    structural_analysis: str = ""
    value_analysis: str = ""
    temporal_analysis: str = ""
    hypotheses: List[MerchantHypothesis] = field(default_factory=list)
    needs_web_search: bool = False
    search_terms: List[str] = field(default_factory=list)


@dataclass
class MerchantInference:
    """Final merchant hypothesis for one canonical code"""

    code: str
    inferred_name: str
    confidence: float
    type: MerchantType
    reasoning: InferenceReasoning
    reasoning_summary: str
    used_web_search: bool = False


@dataclass
class LearningSignal:
    """Past human verdict fed back into inference"""

    original_code: str
    context_summary: str
    ai_inference: str
    user_correction: Optional[str]
    was_correct: bool


@dataclass
class ContextFeatures:
    has_asterisk: bool
    has_numeric_suffix: bool
    value_cv: float
    occurrence_count: int
    temporal_pattern: str


@dataclass
class LearningEntry:
    """Fields of one DiscoveryLearning record, before persistence"""

    pattern_signature: str
    original_code: str
    context_summary: str
    ai_inference: str
    ai_confidence: float
    user_correction: Optional[str]
    was_correct: bool
    error_type: Optional[ErrorType]
    context_features: ContextFeatures


@dataclass
class SearchResult:
    title: str
    description: str
    url: str
    age: Optional[str] = None


@dataclass
class WebSearchResponse:
    """Result of one web search; empty results mean no search was performed"""

    query: str
    results: List[SearchResult] = field(default_factory=list)
    summary: str = ""


@dataclass
class DiscoveryProgress:
    """Progress update delivered to the caller during a discovery run"""

    stage: DiscoveryStage
    current: int
    total: int
    message: str
    code: Optional[str] = None


@dataclass
class DiscoveryResult:
    discoveries_count: int
    total_codes: int
    discovery_ids: List[int] = field(default_factory=list)
