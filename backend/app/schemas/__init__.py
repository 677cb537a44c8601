"""Pydantic schemas for request/response validation."""

from app.schemas.prospecting import (  # noqa: F401
    BatchConversionResult,
    BatchEnrichmentRequest,
    BatchEnrichmentResult,
    BatchScoringResult,
    CompanyInfo,
    ConversionFailure,
    ConversionResult,
    EnrichmentItemResult,
    EnrichmentOptions,
    EnrichmentResult,
    ProspectIdsRequest,
    ProviderQuota,
    QuotaStatus,
    ScoreBreakdown,
    ScoringResult,
    TierBreakdown,
)
