"""Data access layer for transactions, merchant discoveries and learning records"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from merchant_discovery.domain.exceptions import DiscoveryAlreadyValidatedError, DiscoveryNotFoundError
from merchant_discovery.domain.models import (
    DiscoveryStatus,
    LearningEntry,
    LearningSignal,
    MerchantInference,
    Transaction,
    TransactionContext,
)
from merchant_discovery.infrastructure.database.models import (
    DiscoveryLearning,
    MerchantDiscovery,
    TransactionRecord,
)

VALIDATED_STATUSES = (DiscoveryStatus.CONFIRMED.value, DiscoveryStatus.CORRECTED.value)


class TransactionRepository:
    """Read access to uploaded statement transactions"""

    def __init__(self, db: Session):
        self.db = db

    def get_all_transactions(self) -> List[Transaction]:
        """Every transaction, oldest first"""
        rows = (
            self.db.query(TransactionRecord)
            .order_by(TransactionRecord.date.asc(), TransactionRecord.id.asc())
            .all()
        )
        return [
            Transaction(
                id=row.id,
                date=row.date,
                amount=row.amount,
                description=row.description,
                raw_description=row.raw_description,
                type=row.type,
            )
            for row in rows
        ]

    def bulk_insert_transactions(self, transactions: List[Transaction]) -> int:
        """Insert transactions (seeding and tests; the upload pipeline owns real writes)"""
        self.db.add_all(
            TransactionRecord(
                id=txn.id,
                date=txn.date,
                amount=txn.amount,
                description=txn.description,
                raw_description=txn.raw_description,
                type=txn.type,
            )
            for txn in transactions
        )
        self.db.flush()
        return len(transactions)


class DiscoveryRepository:
    """Repository for merchant discoveries"""

    def __init__(self, db: Session):
        self.db = db

    def get_discovery(self, discovery_id: int) -> Optional[MerchantDiscovery]:
        return self.db.get(MerchantDiscovery, discovery_id)

    def get_discovery_by_code(self, code: str) -> Optional[MerchantDiscovery]:
        return (
            self.db.query(MerchantDiscovery)
            .filter(MerchantDiscovery.raw_code == code)
            .first()
        )

    def list_discoveries(self) -> List[MerchantDiscovery]:
        return self.db.query(MerchantDiscovery).order_by(MerchantDiscovery.id.asc()).all()

    def get_validated_discoveries(self) -> List[MerchantDiscovery]:
        """Discoveries a human confirmed or corrected"""
        return (
            self.db.query(MerchantDiscovery)
            .filter(MerchantDiscovery.status.in_(VALIDATED_STATUSES))
            .order_by(MerchantDiscovery.id.asc())
            .all()
        )

    def get_pending_discoveries(self) -> List[MerchantDiscovery]:
        """Pending discoveries, highest impact first"""
        return (
            self.db.query(MerchantDiscovery)
            .filter(MerchantDiscovery.status == DiscoveryStatus.PENDING.value)
            .order_by(MerchantDiscovery.impact_score.desc(), MerchantDiscovery.id.asc())
            .all()
        )

    def get_existing_discovery_map(self) -> Dict[str, Dict[str, object]]:
        """code -> {"confidence", "confirmed"} for every stored discovery"""
        return {
            row.raw_code: {
                "confidence": row.ai_confidence,
                "confirmed": row.status in VALIDATED_STATUSES,
            }
            for row in self.list_discoveries()
        }

    def add_merchant_discovery(
        self,
        context: TransactionContext,
        inference: MerchantInference,
        impact_score: float,
    ) -> int:
        """Persist a new pending discovery and return its id"""
        db_discovery = MerchantDiscovery(
            raw_code=context.code,
            context_snapshot=context.to_dict(),
            ai_reasoning=asdict(inference.reasoning),
            ai_final_inference=inference.inferred_name,
            ai_confidence=inference.confidence,
            ai_merchant_type=inference.type.value,
            ai_reasoning_summary=inference.reasoning_summary,
            ai_used_web_search=inference.used_web_search,
            status=DiscoveryStatus.PENDING.value,
            impact_score=impact_score,
        )
        self.db.add(db_discovery)
        self.db.flush()  # Get ID without committing
        return db_discovery.id

    def update_discovery_status(
        self,
        discovery_id: int,
        status: DiscoveryStatus,
        name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> MerchantDiscovery:
        """
        Move a pending discovery to a terminal status.

        Raises:
            DiscoveryNotFoundError: Unknown id
            DiscoveryAlreadyValidatedError: Discovery is no longer pending
        """
        db_discovery = self.get_discovery(discovery_id)
        if db_discovery is None:
            raise DiscoveryNotFoundError(f"Discovery {discovery_id} not found")
        if db_discovery.status != DiscoveryStatus.PENDING.value:
            raise DiscoveryAlreadyValidatedError(
                f"Discovery {discovery_id} already {db_discovery.status}"
            )

        db_discovery.status = status.value
        db_discovery.validated_at = datetime.now(timezone.utc)
        if name is not None:
            db_discovery.user_validated_name = name
        if notes is not None:
            db_discovery.user_feedback_notes = notes
        self.db.flush()
        return db_discovery

    def get_discovery_stats(self) -> Dict[str, int]:
        """Discovery count per status (every status present, zero if unused)"""
        counts = {status.value: 0 for status in DiscoveryStatus}
        rows = (
            self.db.query(MerchantDiscovery.status, func.count(MerchantDiscovery.id))
            .group_by(MerchantDiscovery.status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        return counts


class LearningRepository:
    """Append-only store of validation outcomes"""

    def __init__(self, db: Session):
        self.db = db

    def get_all_learning(self) -> List[DiscoveryLearning]:
        """All records in chronological order"""
        return (
            self.db.query(DiscoveryLearning)
            .order_by(DiscoveryLearning.created_at.asc(), DiscoveryLearning.id.asc())
            .all()
        )

    def get_learning_signals(self) -> List[LearningSignal]:
        return [
            LearningSignal(
                original_code=row.original_code,
                context_summary=row.context_summary,
                ai_inference=row.ai_inference,
                user_correction=row.user_correction,
                was_correct=row.was_correct,
            )
            for row in self.get_all_learning()
        ]

    def add_discovery_learning(self, entry: LearningEntry) -> int:
        db_learning = DiscoveryLearning(
            pattern_signature=entry.pattern_signature,
            original_code=entry.original_code,
            context_summary=entry.context_summary,
            ai_inference=entry.ai_inference,
            ai_confidence=entry.ai_confidence,
            user_correction=entry.user_correction,
            was_correct=entry.was_correct,
            error_type=entry.error_type.value if entry.error_type else None,
            context_features=asdict(entry.context_features),
        )
        self.db.add(db_learning)
        self.db.flush()
        return db_learning.id
