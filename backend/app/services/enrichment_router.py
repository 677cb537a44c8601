# backend/app/services/enrichment_router.py
"""
Enrichment Router - picks a provider per prospect, falls back, audits every attempt

Routing:
    forced provider        -> that provider only
    icp_match_score >= 0.85 -> Apollo (best data), fallback Hunter
    otherwise              -> Hunter (save Apollo quota), fallback Apollo

Every attempt is written to EnrichmentLog before returning or raising, through
its own session so a failed log write never touches the caller's objects.
Quota failures never reach the network and are logged as failed attempts.
"""

from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import AsyncSessionLocal
from app.exceptions import (
    AllProvidersFailedError,
    BadRequestError,
    CampaignNotFoundError,
    ProspectingError,
    ProviderFailureError,
)
from app.models import EnrichmentLog, Prospect, coerce_uuid, utcnow
from app.schemas.prospecting import (
    BatchEnrichmentResult,
    EnrichmentItemResult,
    EnrichmentOptions,
    EnrichmentResult,
)
from app.services.enrichment_providers import EnrichmentProvider, create_enrichment_providers
from app.services.prospect_scoring import QUALIFIED_THRESHOLD
from app.services.prospects import get_campaign, get_prospects, list_enrichment_candidates
from app.services.quota_tracker import QuotaTracker

logger = logging.getLogger(__name__)


class EnrichmentRouter:
    """Value-tiered routing over the enrichment providers"""

    HIGH_FIDELITY = "apollo"
    BUDGET = "hunter"

    def __init__(
        self,
        db: AsyncSession,
        providers: Optional[Dict[str, EnrichmentProvider]] = None,
        quota_tracker: Optional[QuotaTracker] = None,
        session_factory=AsyncSessionLocal,
    ):
        self.db = db
        self.providers = providers if providers is not None else create_enrichment_providers()
        self.quota_tracker = quota_tracker or QuotaTracker(db)
        self.session_factory = session_factory

    def route(self, prospect: Prospect) -> Tuple[str, str]:
        """(primary, fallback) provider names for this prospect."""
        icp_score = prospect.icp_match_score or 0
        if icp_score >= settings.HIGH_VALUE_SCORE_THRESHOLD:
            return self.HIGH_FIDELITY, self.BUDGET
        return self.BUDGET, self.HIGH_FIDELITY

    async def enrich_prospect(
        self,
        prospect: Prospect,
        team_id,
        options: Optional[EnrichmentOptions] = None,
    ) -> EnrichmentResult:
        """
        Enrich one prospect.

        Raises:
            the provider's error when a provider is forced
            AllProvidersFailedError when primary and fallback both fail
        """
        options = options or EnrichmentOptions()
        prospect_id = prospect.id

        if options.force_provider:
            return await self._attempt(options.force_provider, prospect, team_id)

        primary, fallback = self.route(prospect)
        errors: Dict[str, str] = {}

        for name in (primary, fallback):
            try:
                return await self._attempt(name, prospect, team_id)
            except ProspectingError as e:
                errors[name] = e.message
                if name == primary:
                    logger.warning(
                        f"{name.capitalize()} failed for prospect {prospect_id}, "
                        f"falling back to {fallback.capitalize()}: {e.message}"
                    )

        logger.error(f"❌ Enrichment failed for all providers (prospect {prospect_id})")
        raise AllProvidersFailedError(errors)

    async def select_batch(
        self,
        team_id,
        prospect_ids: Optional[List] = None,
        campaign_id=None,
        max_count: int = 10,
    ) -> List[Prospect]:
        """
        Prospects for a batch run.

        Explicit ids win; a campaign yields its new/qualified prospects scoring
        >= 0.75, best first.
        """
        if prospect_ids:
            return await get_prospects(self.db, prospect_ids, team_id, limit=max_count)

        if campaign_id:
            campaign = await get_campaign(self.db, campaign_id, team_id)
            if not campaign:
                raise CampaignNotFoundError(str(campaign_id))
            return await list_enrichment_candidates(
                self.db, campaign.id, QUALIFIED_THRESHOLD, limit=max_count
            )

        raise BadRequestError("Either prospect_ids or campaign_id required")

    async def batch_enrich(self, prospects: List[Prospect], team_id) -> BatchEnrichmentResult:
        """
        Enrich and persist each prospect on its own.

        A failed prospect is reported in results and never stops the rest.
        """
        items: List[EnrichmentItemResult] = []

        for prospect in prospects:
            prospect_id = prospect.id
            try:
                result = await self.enrich_prospect(prospect, team_id)
            except ProspectingError as e:
                logger.warning(f"⚠️ Batch enrichment skipped prospect {prospect_id}: {e.message}")
                items.append(EnrichmentItemResult(prospect_id=prospect_id, success=False, error=e.message))
                continue

            self.apply_result(prospect, result)
            await self.db.commit()
            items.append(
                EnrichmentItemResult(
                    prospect_id=prospect_id,
                    success=True,
                    email=result.email,
                    provider=result.provider,
                )
            )

        enriched = sum(1 for item in items if item.success)
        logger.info(f"✅ Batch enrichment: {enriched} enriched, {len(items) - enriched} failed")
        return BatchEnrichmentResult(enriched=enriched, failed=len(items) - enriched, results=items)

    async def _attempt(self, name: str, prospect: Prospect, team_id) -> EnrichmentResult:
        provider = self.providers.get(name)
        if provider is None:
            raise BadRequestError(f"Unknown enrichment provider '{name}'")

        prospect_id = prospect.id
        request_summary = provider.request_summary(prospect)

        try:
            await self.quota_tracker.check_quota(team_id, name)
            result = await provider.enrich(prospect)
        except Exception as e:
            error = e if isinstance(e, ProspectingError) else ProviderFailureError(name, str(e))
            await self._log_attempt(
                team_id,
                prospect_id,
                provider,
                status="failed",
                request_data=request_summary,
                response={"error": error.message},
                error_message=error.message,
            )
            if error is e:
                raise
            raise error from e

        await self._log_attempt(
            team_id,
            prospect_id,
            provider,
            status="success",
            request_data=request_summary,
            response=result.raw_data,
        )
        logger.info(
            f"✅ {name.capitalize()} enriched prospect {prospect_id} "
            f"(confidence={result.confidence:.2f})"
        )
        return result

    async def _log_attempt(
        self,
        team_id,
        prospect_id,
        provider: EnrichmentProvider,
        status: str,
        request_data: Optional[Dict[str, Any]] = None,
        response: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ):
        """Append to the enrichment log in a separate session and commit."""
        try:
            async with self.session_factory() as session:
                session.add(
                    EnrichmentLog(
                        team_id=coerce_uuid(team_id),
                        prospect_id=prospect_id,
                        provider=provider.name,
                        endpoint=provider.endpoint,
                        status=status,
                        credits_used=1 if status == "success" else 0,
                        request_data=request_data,
                        response_data=response,
                        error_message=error_message,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to log enrichment attempt ({provider.name}/{status}): {e}")

    @staticmethod
    def apply_result(prospect: Prospect, result: EnrichmentResult, mark_enriched: bool = True):
        """
        Copy a normalized result onto the prospect (caller commits).

        Contact fields are only overwritten by non-empty values.
        """
        contact_info = dict(prospect.contact_info or {})
        if result.email:
            contact_info["email"] = result.email
            contact_info["email_verified"] = bool(result.email_verified)
        if result.phone:
            contact_info["phone"] = result.phone
        prospect.contact_info = contact_info

        enrichment_data = dict(prospect.enrichment_data or {})
        enrichment_data.update(
            {
                "provider": result.provider,
                "confidence": result.confidence,
                "job_title": result.job_title,
                "company_info": result.company_info.model_dump() if result.company_info else None,
            }
        )
        prospect.enrichment_data = enrichment_data
        prospect.enriched_at = utcnow()

        if mark_enriched and prospect.status == "new":
            prospect.status = "enriched"
        return prospect
