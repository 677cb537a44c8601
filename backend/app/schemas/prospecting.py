"""
Pydantic schemas for enrichment, scoring and conversion results
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any, Literal
from uuid import UUID
from datetime import date, datetime


ProviderName = Literal["apollo", "hunter"]
QualificationTier = Literal["hot", "qualified", "warm", "discard"]


# ============================================================================
# ENRICHMENT
# ============================================================================

class CompanyInfo(BaseModel):
    name: str = ""
    domain: Optional[str] = None
    size: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None

    @validator("size", pre=True)
    def stringify_size(cls, v):
        # Apollo returns employee counts as integers
        return str(v) if v is not None else None


class EnrichmentResult(BaseModel):
    """Provider-agnostic enrichment output"""
    email: Optional[str] = None
    email_verified: Optional[bool] = None
    phone: Optional[str] = None
    job_title: Optional[str] = None
    company_info: Optional[CompanyInfo] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    provider: ProviderName
    raw_data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def matched(self) -> bool:
        return bool(self.email or self.phone or self.job_title)


class EnrichmentOptions(BaseModel):
    force_provider: Optional[ProviderName] = None


class BatchEnrichmentRequest(BaseModel):
    """Either explicit prospect_ids or a campaign_id (best-scored qualified prospects first)"""
    prospect_ids: Optional[List[UUID]] = Field(None, max_length=500)
    campaign_id: Optional[UUID] = None
    max_count: int = Field(10, ge=1, le=100)


class EnrichmentItemResult(BaseModel):
    prospect_id: UUID
    success: bool
    email: Optional[str] = None
    provider: Optional[ProviderName] = None
    error: Optional[str] = None


class BatchEnrichmentResult(BaseModel):
    enriched: int = 0
    failed: int = 0
    results: List[EnrichmentItemResult] = Field(default_factory=list)


# ============================================================================
# SCORING
# ============================================================================

class ScoreBreakdown(BaseModel):
    demographics: float
    firmographics: float
    psychographics: float
    activity: float


class ScoringResult(BaseModel):
    prospect_id: UUID
    icp_match_score: float
    quality_score: float
    qualification: QualificationTier
    breakdown: ScoreBreakdown


class TierBreakdown(BaseModel):
    hot: int = 0
    qualified: int = 0
    warm: int = 0
    discard: int = 0


class BatchScoringResult(BaseModel):
    processed: int = 0
    qualified: int = 0
    avg_score: float = 0.0
    breakdown: TierBreakdown = Field(default_factory=TierBreakdown)
    errors: List[str] = Field(default_factory=list)


# ============================================================================
# CONVERSION
# ============================================================================

class ConversionResult(BaseModel):
    lead_id: UUID
    prospect_id: UUID
    message: str
    next_steps: Optional[str] = None


class ConversionFailure(BaseModel):
    prospect_id: str
    error: str


class BatchConversionResult(BaseModel):
    successful: List[ConversionResult] = Field(default_factory=list)
    failed: List[ConversionFailure] = Field(default_factory=list)


# ============================================================================
# QUOTA
# ============================================================================

class ProviderQuota(BaseModel):
    used: int
    limit: int
    remaining: int
    percentage: int
    reset_date: date
    period: Literal["annual", "monthly"]


class EnrichmentActivity(BaseModel):
    id: UUID
    provider: str
    status: str
    prospect_id: Optional[UUID] = None
    credits_used: int
    created_at: datetime

    class Config:
        from_attributes = True


class QuotaStatus(BaseModel):
    apollo: ProviderQuota
    hunter: ProviderQuota
    recent_activity: List[EnrichmentActivity] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


# ============================================================================
# REQUEST BODIES
# ============================================================================

class ProspectIdsRequest(BaseModel):
    prospect_ids: List[UUID] = Field(..., min_length=1, max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "prospect_ids": [
                    "6f1c2d34-5b6a-4c8e-9f10-1a2b3c4d5e6f",
                    "0a9b8c7d-6e5f-4a3b-2c1d-0e9f8a7b6c5d"
                ]
            }
        }
