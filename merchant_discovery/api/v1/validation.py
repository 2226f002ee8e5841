"""Discovery validation endpoints - list pending, confirm, correct, reject"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from merchant_discovery.api.v1.schemas import (
    CorrectRequest,
    DiscoveryItem,
    PendingDiscoveriesResponse,
    RejectRequest,
)
from merchant_discovery.domain.exceptions import DiscoveryAlreadyValidatedError, DiscoveryNotFoundError
from merchant_discovery.infrastructure.database.models import MerchantDiscovery
from merchant_discovery.infrastructure.database.session import get_db
from merchant_discovery.services.validation import ValidationService

router = APIRouter()


def _to_item(discovery: MerchantDiscovery) -> DiscoveryItem:
    snapshot = discovery.context_snapshot or {}
    return DiscoveryItem(
        id=discovery.id,
        raw_code=discovery.raw_code,
        inferred_name=discovery.ai_final_inference,
        confidence=discovery.ai_confidence,
        merchant_type=discovery.ai_merchant_type,
        reasoning_summary=discovery.ai_reasoning_summary,
        used_web_search=discovery.ai_used_web_search,
        status=discovery.status,
        impact_score=discovery.impact_score,
        occurrence_count=snapshot.get("occurrence_count", 0),
        total_amount=snapshot.get("total_amount", 0.0),
        raw_variations=snapshot.get("raw_variations", []),
        user_validated_name=discovery.user_validated_name,
        user_feedback_notes=discovery.user_feedback_notes,
        created_at=discovery.created_at.isoformat() if discovery.created_at else None,
        validated_at=discovery.validated_at.isoformat() if discovery.validated_at else None,
    )


def _validate(action, discovery_id: int) -> DiscoveryItem:
    try:
        return _to_item(action())
    except DiscoveryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DiscoveryAlreadyValidatedError as e:
        logging.warning(f"Validation rejected: {e}", extra={"discovery_id": discovery_id})
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/discoveries/pending", response_model=PendingDiscoveriesResponse)
def list_pending_discoveries(db: Session = Depends(get_db)):
    """Pending discoveries, highest impact first"""
    pending = ValidationService(db).list_pending()
    return PendingDiscoveriesResponse(discoveries=[_to_item(d) for d in pending])


@router.post("/discoveries/{discovery_id}/confirm", response_model=DiscoveryItem)
def confirm_discovery(discovery_id: int, db: Session = Depends(get_db)):
    service = ValidationService(db)
    return _validate(lambda: service.confirm(discovery_id), discovery_id)


@router.post("/discoveries/{discovery_id}/correct", response_model=DiscoveryItem)
def correct_discovery(discovery_id: int, body: CorrectRequest, db: Session = Depends(get_db)):
    service = ValidationService(db)
    return _validate(lambda: service.correct(discovery_id, body.name, body.notes), discovery_id)


@router.post("/discoveries/{discovery_id}/reject", response_model=DiscoveryItem)
def reject_discovery(
    discovery_id: int,
    body: Optional[RejectRequest] = None,
    db: Session = Depends(get_db),
):
    service = ValidationService(db)
    notes = body.notes if body else None
    return _validate(lambda: service.reject(discovery_id, notes), discovery_id)
