# backend/app/services/prospect_conversion.py
"""
Prospect Conversion Service - promotes qualified prospects into CRM leads

Preconditions (checked in this order):
1. Prospect resolves through the caller's team      -> NotFoundOrAccessDeniedError
2. Not already converted                            -> ConflictError
3. status 'qualified', or 'enriched' with score >= 0.75 -> BadRequestError

Lead insert, prospect status/link and campaign converted_count commit together.
"""

from typing import List, Optional, Tuple
import logging
import uuid

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import BadRequestError, ConflictError, NotFoundOrAccessDeniedError
from app.models import Lead, Prospect, ProspectingCampaign, coerce_uuid
from app.schemas.prospecting import BatchConversionResult, ConversionFailure, ConversionResult
from app.services.prospect_scoring import QUALIFIED_THRESHOLD
from app.services.prospects import get_prospect

logger = logging.getLogger(__name__)

SOCIAL_PLATFORMS = ("linkedin", "twitter", "facebook")


def parse_name(name: Optional[str]) -> Tuple[str, str]:
    """'Ada' -> (Ada, ''), 'Ada King Lovelace' -> (Ada, King Lovelace)"""
    parts = (name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def is_convertible(prospect: Prospect) -> bool:
    if prospect.status == "qualified":
        return True
    return prospect.status == "enriched" and (prospect.icp_match_score or 0) >= QUALIFIED_THRESHOLD


def build_social_profiles(prospect: Prospect) -> dict:
    profiles = {}
    if prospect.profile_url:
        profiles[prospect.platform] = prospect.profile_url

    profile_data = prospect.profile_data or {}
    for platform in SOCIAL_PLATFORMS:
        if profile_data.get(platform):
            profiles[platform] = profile_data[platform]
    return profiles


def build_lead(prospect: Prospect, team_id) -> Lead:
    first_name, last_name = parse_name(prospect.name)
    contact_info = prospect.contact_info or {}
    campaign_name = prospect.campaign.name if prospect.campaign else "Unknown"

    return Lead(
        id=uuid.uuid4(),
        team_id=coerce_uuid(team_id),
        campaign_id=prospect.campaign_id,
        prospect_id=prospect.id,
        email=contact_info.get("email"),
        phone=contact_info.get("phone"),
        first_name=first_name,
        last_name=last_name,
        company=prospect.company_name,
        job_title=prospect.headline,
        source=f"Social Prospecting - {campaign_name}",
        status="new",
        qualification_score=prospect.icp_match_score or 0.0,
        enrichment_score=prospect.quality_score or 0.0,
        last_enriched_at=prospect.enriched_at,
        social_profiles=build_social_profiles(prospect),
        raw_data={
            "prospect_data": prospect.profile_data or {},
            "enrichment_data": prospect.enrichment_data or {},
            "location": prospect.location,
            "company_url": prospect.company_url,
        },
    )


class ProspectConversionService:
    """Converts prospects to leads, one transaction per prospect"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def convert_prospect_to_lead(self, prospect_id, team_id) -> ConversionResult:
        """
        Raises:
            NotFoundOrAccessDeniedError, ConflictError, BadRequestError
        """
        logger.info(f"🔄 Converting prospect {prospect_id} to lead")

        prospect = await get_prospect(self.db, prospect_id, team_id)
        if not prospect:
            raise NotFoundOrAccessDeniedError("Prospect")

        if prospect.status == "converted" or prospect.converted_to_lead_id:
            raise ConflictError("Prospect already converted to lead")

        if not is_convertible(prospect):
            raise BadRequestError(
                f"Prospect must be qualified before conversion "
                f"(status={prospect.status}, score={prospect.icp_match_score})"
            )

        lead = build_lead(prospect, team_id)
        campaign_id = prospect.campaign_id

        try:
            self.db.add(lead)
            prospect.status = "converted"
            prospect.converted_to_lead_id = lead.id
            await self.db.execute(
                update(ProspectingCampaign)
                .where(ProspectingCampaign.id == campaign_id)
                .values(converted_count=ProspectingCampaign.converted_count + 1)
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            # A concurrent conversion won the unique constraint on leads.prospect_id
            logger.warning(f"Conversion race lost for prospect {prospect_id}: {e}")
            raise ConflictError("Prospect already converted to lead") from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"✅ Prospect {prospect_id} converted to lead {lead.id}")

        return ConversionResult(
            lead_id=lead.id,
            prospect_id=coerce_uuid(prospect_id),
            message="Prospect converted successfully",
            next_steps="Lead is now available in CRM pipeline for outreach",
        )

    async def batch_convert_prospects(self, prospect_ids: List, team_id) -> BatchConversionResult:
        """Convert each prospect independently; failures never abort the batch."""
        result = BatchConversionResult()

        for prospect_id in prospect_ids:
            try:
                result.successful.append(await self.convert_prospect_to_lead(prospect_id, team_id))
            except Exception as e:
                message = getattr(e, "message", None) or str(e) or type(e).__name__
                logger.error(f"❌ Failed to convert prospect {prospect_id}: {message}")
                result.failed.append(ConversionFailure(prospect_id=str(prospect_id), error=message))

        logger.info(
            f"Batch conversion: {len(result.successful)} converted, {len(result.failed)} failed"
        )
        return result
