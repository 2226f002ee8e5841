"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from typing import List, Optional


class DiscoveryRunResponse(BaseModel):
    """Response for POST /v1/discovery"""

    discoveries_count: int
    total_codes: int
    discovery_ids: List[int]


class DiscoveryItem(BaseModel):
    """One merchant discovery with its AI hypothesis"""

    id: int
    raw_code: str
    inferred_name: str
    confidence: float
    merchant_type: str
    reasoning_summary: str
    used_web_search: bool
    status: str
    impact_score: float
    occurrence_count: int
    total_amount: float
    raw_variations: List[str]
    user_validated_name: Optional[str] = None
    user_feedback_notes: Optional[str] = None
    created_at: Optional[str] = None
    validated_at: Optional[str] = None


class PendingDiscoveriesResponse(BaseModel):
    """Response for GET /v1/discoveries/pending"""

    discoveries: List[DiscoveryItem]


class CorrectRequest(BaseModel):
    """Request body for POST /v1/discoveries/{id}/correct"""

    name: str = Field(..., min_length=1, description="Real merchant name")
    notes: Optional[str] = Field(None, description="Free-text feedback")


class RejectRequest(BaseModel):
    """Request body for POST /v1/discoveries/{id}/reject"""

    notes: Optional[str] = Field(None, description="Free-text feedback")


class DiscoveryStatsResponse(BaseModel):
    """Response for GET /v1/discovery/stats"""

    pending: int
    confirmed: int
    corrected: int
    rejected: int
    total: int
    learning_records: int
    accuracy: float
