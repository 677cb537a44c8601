"""Team-scoped prospect and campaign lookups shared by the pipeline services."""

from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.models import Prospect, ProspectingCampaign, coerce_uuid

logger = logging.getLogger(__name__)


async def get_prospect(db: AsyncSession, prospect_id, team_id) -> Optional[Prospect]:
    """Load a prospect only if its campaign belongs to the team."""
    result = await db.execute(
        select(Prospect)
        .join(ProspectingCampaign, Prospect.campaign_id == ProspectingCampaign.id)
        .options(joinedload(Prospect.campaign))
        .where(
            Prospect.id == coerce_uuid(prospect_id),
            ProspectingCampaign.team_id == coerce_uuid(team_id),
        )
    )
    return result.scalar_one_or_none()


async def get_campaign(db: AsyncSession, campaign_id, team_id) -> Optional[ProspectingCampaign]:
    result = await db.execute(
        select(ProspectingCampaign).where(
            ProspectingCampaign.id == coerce_uuid(campaign_id),
            ProspectingCampaign.team_id == coerce_uuid(team_id),
        )
    )
    return result.unique().scalar_one_or_none()


async def list_prospects(
    db: AsyncSession,
    campaign_id,
    status: Optional[str] = None,
    limit: int = 100,
) -> List[Prospect]:
    """Prospects of one campaign, oldest discovery first."""
    query = select(Prospect).where(Prospect.campaign_id == coerce_uuid(campaign_id))
    if status:
        query = query.where(Prospect.status == status)
    query = query.order_by(Prospect.discovered_at.asc(), Prospect.id.asc()).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_prospects(db: AsyncSession, prospect_ids, team_id, limit: Optional[int] = None) -> List[Prospect]:
    """Team-scoped prospects in request order; unknown or foreign ids are dropped."""
    ids = list(dict.fromkeys(coerce_uuid(prospect_id) for prospect_id in prospect_ids))
    result = await db.execute(
        select(Prospect)
        .join(ProspectingCampaign, Prospect.campaign_id == ProspectingCampaign.id)
        .where(
            Prospect.id.in_(ids),
            ProspectingCampaign.team_id == coerce_uuid(team_id),
        )
    )
    found = {prospect.id: prospect for prospect in result.scalars().all()}
    prospects = [found[prospect_id] for prospect_id in ids if prospect_id in found]
    return prospects[:limit] if limit else prospects


async def list_enrichment_candidates(
    db: AsyncSession,
    campaign_id,
    min_score: float,
    limit: int = 10,
) -> List[Prospect]:
    """New or qualified prospects scoring at least min_score, best first."""
    result = await db.execute(
        select(Prospect)
        .where(
            Prospect.campaign_id == coerce_uuid(campaign_id),
            Prospect.status.in_(("new", "qualified")),
            Prospect.icp_match_score >= min_score,
        )
        .order_by(Prospect.icp_match_score.desc(), Prospect.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())
