# backend/app/services/prospect_scoring.py
"""
ICP Scoring Engine - scores prospects against a campaign's ICP

icp_match_score = 0.30 * demographics     (title keywords 0.6 + location 0.4)
                + 0.25 * firmographics    (industry 0.8 match / 0.4 miss / 0.5 no criteria)
                + 0.25 * psychographics   (cosine similarity prospect vs ICP vector)
                + 0.20 * activity         (0.5 placeholder, overridable)

quality_score is independent and measures data completeness.

compute_icp_score() is the single scoring formula; the batch optimizer calls it
too, so both paths stay numerically identical.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging
import math

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    CampaignNotFoundError,
    ICPNotDefinedError,
    ICPVectorNotFoundError,
    ProspectNotFoundError,
)
from app.models import ICP, Prospect, ProspectingCampaign
from app.schemas.prospecting import ScoreBreakdown, ScoringResult
from app.services.embedding_service import EmbeddingClient, get_embedding_service
from app.services.prospects import get_campaign, get_prospect
from app.services.vector_store import PineconeVectorStore, VectorIndex, icp_namespace, values_of

logger = logging.getLogger(__name__)


SCORE_WEIGHTS = {
    "demographics": 0.30,
    "firmographics": 0.25,
    "psychographics": 0.25,
    "activity": 0.20,
}

TITLE_WEIGHT = 0.6
LOCATION_WEIGHT = 0.4
NEUTRAL_SCORE = 0.5
INDUSTRY_MATCH_SCORE = 0.8
INDUSTRY_MISS_SCORE = 0.4
DEFAULT_ACTIVITY_SCORE = 0.5

# Lower bound of each tier, highest first
QUALIFICATION_TIERS = (
    ("hot", 0.85),
    ("qualified", 0.75),
    ("warm", 0.65),
)
QUALIFIED_THRESHOLD = 0.75

QUALITY_WEIGHTS = {
    "name": 0.2,
    "headline": 0.2,
    "company_name": 0.2,
    "location": 0.1,
    "profile_url": 0.1,
    "email": 0.2,
}

PROMOTABLE_STATUSES = ("new", "enriched")


@dataclass
class ScoreComputation:
    icp_match_score: float
    quality_score: float
    qualification: str
    breakdown: Dict[str, float] = field(default_factory=dict)


# ============================================================================
# PURE SCORING FUNCTIONS
# ============================================================================

def build_prospect_text(prospect: Prospect) -> str:
    """Semantic text block used for the prospect embedding."""
    profile_data = prospect.profile_data or {}
    bio = profile_data.get("bio") or profile_data.get("summary") or prospect.headline or ""

    return (
        f"Job: {prospect.headline or 'Unknown'} at {prospect.company_name or 'Unknown'}\n"
        f"Location: {prospect.location or 'Unknown'}\n"
        f"Bio: {bio}"
    )


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); 0 when either vector has zero magnitude."""
    if len(vec_a) != len(vec_b):
        raise ValueError(f"Vectors must have same dimension ({len(vec_a)} != {len(vec_b)})")

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    magnitude_a = math.sqrt(sum(a * a for a in vec_a))
    magnitude_b = math.sqrt(sum(b * b for b in vec_b))

    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return dot_product / (magnitude_a * magnitude_b)


def score_demographics(prospect: Prospect, demographics: Optional[Dict[str, Any]]) -> float:
    """
    Title keywords (>2 chars) against ICP titles, location substring match.

    Empty criteria lists carry no weight; no criteria at all -> 0.5.
    """
    demographics = demographics or {}
    titles = [t.lower() for t in demographics.get("titles") or [] if t]
    locations = [l.lower() for l in demographics.get("locations") or [] if l]

    score = 0.0
    weight = 0.0

    if titles:
        prospect_title = (prospect.headline or "").lower()
        title_match = any(
            keyword in prospect_title
            for title in titles
            for keyword in title.split()
            if len(keyword) > 2
        )
        if title_match:
            score += TITLE_WEIGHT
        weight += TITLE_WEIGHT

    if locations:
        prospect_location = (prospect.location or "").lower().strip()
        # An empty location matches nothing, not every ICP location
        location_match = bool(prospect_location) and any(
            loc in prospect_location or prospect_location in loc
            for loc in locations
        )
        if location_match:
            score += LOCATION_WEIGHT
        weight += LOCATION_WEIGHT

    if weight == 0:
        return NEUTRAL_SCORE
    return min(score / weight, 1.0)


def score_firmographics(prospect: Prospect, firmographics: Optional[Dict[str, Any]]) -> float:
    """Industry match on company name or profile-declared industry."""
    firmographics = firmographics or {}
    industries = [i.lower() for i in firmographics.get("industries") or [] if i]

    if not industries:
        return NEUTRAL_SCORE

    company_name = (prospect.company_name or "").lower()
    industry = ((prospect.profile_data or {}).get("industry") or "").lower().strip()
    # An empty declared industry matches nothing, not every ICP industry

    industry_match = any(
        ind in company_name
        or (industry and (ind in industry or industry in ind))
        for ind in industries
    )
    return INDUSTRY_MATCH_SCORE if industry_match else INDUSTRY_MISS_SCORE


def calculate_quality_score(prospect: Prospect) -> float:
    """Data completeness, capped at 1.0."""
    score = 0.0
    for attr in ("name", "headline", "company_name", "location", "profile_url"):
        if getattr(prospect, attr, None):
            score += QUALITY_WEIGHTS[attr]

    if (prospect.contact_info or {}).get("email"):
        score += QUALITY_WEIGHTS["email"]

    return min(round(score, 4), 1.0)


def get_qualification_tier(score: float) -> str:
    for tier, lower_bound in QUALIFICATION_TIERS:
        if score >= lower_bound:
            return tier
    return "discard"


def weighted_icp_score(breakdown: Dict[str, float]) -> float:
    return sum(breakdown[name] * weight for name, weight in SCORE_WEIGHTS.items())


def compute_icp_score(
    prospect: Prospect,
    icp: ICP,
    prospect_vector: Sequence[float],
    icp_vector: Sequence[float],
    activity_score: float = DEFAULT_ACTIVITY_SCORE,
) -> ScoreComputation:
    """All sub-scores, the weighted match score, quality and tier for one prospect."""
    # Cosine clamped to [0, 1]; a negative raw value would push the match score below 0
    psychographics = max(0.0, min(cosine_similarity(prospect_vector, icp_vector), 1.0))

    breakdown = {
        "demographics": score_demographics(prospect, icp.demographics),
        "firmographics": score_firmographics(prospect, icp.firmographics),
        "psychographics": psychographics,
        "activity": activity_score,
    }
    icp_match_score = weighted_icp_score(breakdown)

    return ScoreComputation(
        icp_match_score=icp_match_score,
        quality_score=calculate_quality_score(prospect),
        qualification=get_qualification_tier(icp_match_score),
        breakdown=breakdown,
    )


def apply_scores(prospect: Prospect, computation: ScoreComputation) -> bool:
    """
    Write scores onto the prospect (idempotent overwrite).

    Returns True when this scoring promoted the prospect to 'qualified'.
    """
    prospect.icp_match_score = computation.icp_match_score
    prospect.quality_score = computation.quality_score

    enrichment_data = dict(prospect.enrichment_data or {})
    enrichment_data["score_breakdown"] = dict(computation.breakdown)
    prospect.enrichment_data = enrichment_data

    if computation.icp_match_score >= QUALIFIED_THRESHOLD and prospect.status in PROMOTABLE_STATUSES:
        prospect.status = "qualified"
        return True
    return False


def increment_qualified_count(campaign_id, amount: int):
    return (
        update(ProspectingCampaign)
        .where(ProspectingCampaign.id == campaign_id)
        .values(qualified_count=ProspectingCampaign.qualified_count + amount)
    )


# ============================================================================
# SERVICE
# ============================================================================

class ProspectScoringService:
    """Scores prospects one at a time against their campaign's ICP"""

    def __init__(
        self,
        db: AsyncSession,
        embedding_client: Optional[EmbeddingClient] = None,
        vector_index: Optional[VectorIndex] = None,
        activity_scorer: Optional[Callable[[Prospect], float]] = None,
    ):
        self.db = db
        self.embedding_client = embedding_client or get_embedding_service()
        self.vector_index = vector_index or PineconeVectorStore()
        self.activity_scorer = activity_scorer or (lambda prospect: DEFAULT_ACTIVITY_SCORE)

    async def load_icp_vector(self, icp: ICP, team_id) -> List[float]:
        namespace = icp_namespace(team_id)
        record = await self.vector_index.fetch_vector(namespace, str(icp.id))
        values = values_of(record)
        if not values:
            raise ICPVectorNotFoundError(str(icp.id), namespace)
        return values

    async def score_prospect(self, prospect_id, team_id) -> ScoringResult:
        """
        Score one prospect and persist icp_match_score / quality_score.

        Raises:
            ProspectNotFoundError, CampaignNotFoundError, ICPNotDefinedError,
            ICPVectorNotFoundError, ProviderFailureError
        """
        logger.info(f"🎯 Scoring prospect {prospect_id} for team {team_id}")

        prospect = await get_prospect(self.db, prospect_id, team_id)
        if not prospect:
            raise ProspectNotFoundError(str(prospect_id))

        campaign = await get_campaign(self.db, prospect.campaign_id, team_id)
        if not campaign:
            raise CampaignNotFoundError(str(prospect.campaign_id))
        if not campaign.icp:
            raise ICPNotDefinedError(str(campaign.id))

        prospect_vector = await self.embedding_client.generate_embedding(build_prospect_text(prospect))
        icp_vector = await self.load_icp_vector(campaign.icp, team_id)

        computation = compute_icp_score(
            prospect,
            campaign.icp,
            prospect_vector,
            icp_vector,
            activity_score=self.activity_scorer(prospect),
        )

        try:
            if apply_scores(prospect, computation):
                await self.db.execute(increment_qualified_count(campaign.id, 1))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"✅ Prospect scored: {computation.icp_match_score:.2f} ({computation.qualification})"
        )

        return ScoringResult(
            prospect_id=prospect.id,
            icp_match_score=computation.icp_match_score,
            quality_score=computation.quality_score,
            qualification=computation.qualification,
            breakdown=ScoreBreakdown(**computation.breakdown),
        )

    async def score_each(self, prospect_ids, team_id) -> Tuple[List[ScoringResult], List[str]]:
        """Sequential scoring; failures are collected, not raised."""
        results: List[ScoringResult] = []
        errors: List[str] = []

        for prospect_id in prospect_ids:
            try:
                results.append(await self.score_prospect(prospect_id, team_id))
            except Exception as e:
                message = getattr(e, "message", None) or str(e) or type(e).__name__
                error = f"Failed to score prospect {prospect_id}: {message}"
                logger.error(error)
                errors.append(error)

        if errors:
            logger.warning(f"⚠️ {len(errors)} prospects failed scoring")
        return results, errors

    async def batch_score_prospects(self, prospect_ids, team_id) -> List[ScoringResult]:
        """
        Score a list sequentially.

        Only successful results are returned; callers diff against the input
        to find omissions.
        """
        logger.info(f"🎯 Batch scoring {len(prospect_ids)} prospects")
        results, _ = await self.score_each(prospect_ids, team_id)
        logger.info(f"✅ Scored {len(results)} prospects successfully")
        return results
