"""Human validation of merchant discoveries"""

from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session

from merchant_discovery.domain.learning import build_learning_entry
from merchant_discovery.domain.models import DiscoveryStatus, TransactionContext, ValidationAction
from merchant_discovery.infrastructure.database.models import MerchantDiscovery
from merchant_discovery.infrastructure.database.repositories import DiscoveryRepository, LearningRepository
from merchant_discovery.infrastructure.observability.logging import log_validation
from merchant_discovery.infrastructure.observability.metrics import record_validation

_STATUS_BY_ACTION = {
    ValidationAction.CONFIRM: DiscoveryStatus.CONFIRMED,
    ValidationAction.CORRECT: DiscoveryStatus.CORRECTED,
    ValidationAction.REJECT: DiscoveryStatus.REJECTED,
}


class ValidationService:
    """Confirm, correct or reject pending discoveries, recording one learning entry each"""

    def __init__(self, db: Session):
        self.db = db
        self.discoveries = DiscoveryRepository(db)
        self.learning = LearningRepository(db)

    def list_pending(self) -> List[MerchantDiscovery]:
        return self.discoveries.get_pending_discoveries()

    def confirm(self, discovery_id: int) -> MerchantDiscovery:
        return self._validate(discovery_id, ValidationAction.CONFIRM)

    def correct(self, discovery_id: int, name: str, notes: Optional[str] = None) -> MerchantDiscovery:
        name = (name or "").strip()
        if not name:
            raise ValueError("Corrected merchant name must not be empty")
        return self._validate(discovery_id, ValidationAction.CORRECT, name=name, notes=notes)

    def reject(self, discovery_id: int, notes: Optional[str] = None) -> MerchantDiscovery:
        return self._validate(discovery_id, ValidationAction.REJECT, notes=notes)

    def _validate(
        self,
        discovery_id: int,
        action: ValidationAction,
        name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> MerchantDiscovery:
        """
        Apply one terminal transition and append its learning record.

        Both writes commit together.

        Raises:
            DiscoveryNotFoundError: Unknown id
            DiscoveryAlreadyValidatedError: Discovery is no longer pending
        """
        try:
            discovery = self.discoveries.update_discovery_status(
                discovery_id, _STATUS_BY_ACTION[action], name=name, notes=notes
            )
            entry = build_learning_entry(
                TransactionContext.from_dict(discovery.context_snapshot),
                ai_inference=discovery.ai_final_inference,
                ai_confidence=discovery.ai_confidence,
                action=action,
                correction=name,
            )
            self.learning.add_discovery_learning(entry)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        record_validation(action.value)
        log_validation(discovery.id, discovery.raw_code, action.value, discovery.ai_final_inference, name)
        return discovery

    def stats(self) -> Dict[str, Union[int, float]]:
        """Counts per status plus accuracy over validated discoveries"""
        counts = self.discoveries.get_discovery_stats()
        validated = sum(
            counts[status.value]
            for status in (DiscoveryStatus.CONFIRMED, DiscoveryStatus.CORRECTED, DiscoveryStatus.REJECTED)
        )
        accuracy = counts[DiscoveryStatus.CONFIRMED.value] / validated if validated else 0.0
        return {
            **counts,
            "total": sum(counts.values()),
            "learning_records": len(self.learning.get_all_learning()),
            "accuracy": round(accuracy, 4),
        }
