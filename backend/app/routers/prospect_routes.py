# backend/app/routers/prospect_routes.py
"""
Prospecting API - enrichment, ICP scoring and prospect-to-lead conversion

All endpoints are team-scoped through the bearer token's team_id claim.
Domain errors (app.exceptions) are mapped to HTTP statuses in app.main.
"""

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Optional
from uuid import UUID
import logging

from app.auth import get_current_team_id
from app.database import AsyncSessionLocal, get_db
from app.exceptions import ProspectNotFoundError
from app.schemas.prospecting import (
    BatchConversionResult,
    BatchEnrichmentRequest,
    BatchEnrichmentResult,
    BatchScoringResult,
    ConversionResult,
    EnrichmentOptions,
    EnrichmentResult,
    ProspectIdsRequest,
    QuotaStatus,
    ScoringResult,
)
from app.services.batch_scoring import BatchScoringService
from app.services.embedding_service import EmbeddingClient, get_embedding_service
from app.services.enrichment_providers import EnrichmentProvider, create_enrichment_providers
from app.services.enrichment_router import EnrichmentRouter
from app.services.prospect_conversion import ProspectConversionService
from app.services.prospect_scoring import ProspectScoringService
from app.services.prospects import get_prospect
from app.services.quota_tracker import QuotaTracker
from app.services.vector_store import PineconeVectorStore, VectorIndex

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/prospecting", tags=["prospecting"])


# ==================== DEPENDENCIES ====================

def get_embedding_client() -> EmbeddingClient:
    return get_embedding_service()


def get_vector_index() -> VectorIndex:
    return PineconeVectorStore()


def get_enrichment_providers() -> Dict[str, EnrichmentProvider]:
    return create_enrichment_providers()


def get_session_factory():
    return AsyncSessionLocal


# ==================== ENRICHMENT ====================

@router.post("/prospects/enrich", response_model=BatchEnrichmentResult)
async def batch_enrich_prospects(
    request: BatchEnrichmentRequest,
    team_id: UUID = Depends(get_current_team_id),
    providers: Dict[str, EnrichmentProvider] = Depends(get_enrichment_providers),
    session_factory=Depends(get_session_factory),
    db: AsyncSession = Depends(get_db)
):
    """
    Enrich many prospects, one at a time.

    Pass prospect_ids, or campaign_id to take the campaign's best-scored
    new/qualified prospects (score >= 0.75). Failures are reported per prospect.
    """
    enrichment_router = EnrichmentRouter(db, providers=providers, session_factory=session_factory)
    prospects = await enrichment_router.select_batch(
        team_id,
        prospect_ids=request.prospect_ids,
        campaign_id=request.campaign_id,
        max_count=request.max_count,
    )
    return await enrichment_router.batch_enrich(prospects, team_id)


@router.post("/prospects/{prospect_id}/enrich", response_model=EnrichmentResult)
async def enrich_prospect(
    prospect_id: UUID,
    options: Optional[EnrichmentOptions] = Body(None),
    team_id: UUID = Depends(get_current_team_id),
    providers: Dict[str, EnrichmentProvider] = Depends(get_enrichment_providers),
    session_factory=Depends(get_session_factory),
    db: AsyncSession = Depends(get_db)
):
    """
    Enrich a prospect's contact data.

    Routes to Apollo for high-value prospects (score >= 0.85), Hunter otherwise,
    with automatic fallback. force_provider disables the fallback.
    """
    prospect = await get_prospect(db, prospect_id, team_id)
    if not prospect:
        raise ProspectNotFoundError(str(prospect_id))

    enrichment_router = EnrichmentRouter(db, providers=providers, session_factory=session_factory)
    result = await enrichment_router.enrich_prospect(prospect, team_id, options)

    EnrichmentRouter.apply_result(prospect, result)
    await db.commit()

    return result


@router.get("/enrichment/quota", response_model=QuotaStatus)
async def get_enrichment_quota(
    team_id: UUID = Depends(get_current_team_id),
    db: AsyncSession = Depends(get_db)
):
    """Apollo / Hunter usage for the current windows plus recent activity."""
    return await QuotaTracker(db).get_quota_status(team_id)


# ==================== SCORING ====================

@router.post("/prospects/score", response_model=BatchScoringResult)
async def score_prospects(
    request: ProspectIdsRequest,
    team_id: UUID = Depends(get_current_team_id),
    embedding_client: EmbeddingClient = Depends(get_embedding_client),
    vector_index: VectorIndex = Depends(get_vector_index),
    db: AsyncSession = Depends(get_db)
):
    """Score an explicit list of prospects; failures are reported in errors."""
    service = BatchScoringService(db, embedding_client=embedding_client, vector_index=vector_index)
    return await service.score_prospects_by_ids(request.prospect_ids, team_id)


@router.post("/prospects/{prospect_id}/score", response_model=ScoringResult)
async def score_prospect(
    prospect_id: UUID,
    team_id: UUID = Depends(get_current_team_id),
    embedding_client: EmbeddingClient = Depends(get_embedding_client),
    vector_index: VectorIndex = Depends(get_vector_index),
    db: AsyncSession = Depends(get_db)
):
    """Score one prospect against its campaign ICP."""
    service = ProspectScoringService(db, embedding_client=embedding_client, vector_index=vector_index)
    return await service.score_prospect(prospect_id, team_id)


@router.post("/campaigns/{campaign_id}/score", response_model=BatchScoringResult)
async def score_campaign(
    campaign_id: UUID,
    max_count: int = Query(100, ge=1, le=1000),
    team_id: UUID = Depends(get_current_team_id),
    embedding_client: EmbeddingClient = Depends(get_embedding_client),
    vector_index: VectorIndex = Depends(get_vector_index),
    session_factory=Depends(get_session_factory),
    db: AsyncSession = Depends(get_db)
):
    """
    Score a campaign's new prospects.

    One batch embedding call and one transaction; falls back to per-prospect
    scoring if the fast path fails.
    """
    service = BatchScoringService(
        db,
        embedding_client=embedding_client,
        vector_index=vector_index,
        session_factory=session_factory,
    )
    return await service.score_batch(campaign_id, team_id, max_count=max_count)


# ==================== CONVERSION ====================

@router.post("/prospects/convert", response_model=BatchConversionResult)
async def convert_prospects(
    request: ProspectIdsRequest,
    team_id: UUID = Depends(get_current_team_id),
    db: AsyncSession = Depends(get_db)
):
    """Convert many prospects; each succeeds or fails on its own."""
    return await ProspectConversionService(db).batch_convert_prospects(request.prospect_ids, team_id)


@router.post(
    "/prospects/{prospect_id}/convert",
    response_model=ConversionResult,
    status_code=status.HTTP_201_CREATED
)
async def convert_prospect(
    prospect_id: UUID,
    team_id: UUID = Depends(get_current_team_id),
    db: AsyncSession = Depends(get_db)
):
    """Convert a qualified prospect into a CRM lead."""
    return await ProspectConversionService(db).convert_prospect_to_lead(prospect_id, team_id)
