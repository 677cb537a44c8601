# backend/app/services/batch_scoring.py
"""
Batch Scoring Optimizer - scores a campaign's new prospects in bulk

OPTIMIZED PATH (one pass):
1. One batch embedding call for all prospect texts
2. One vector fetch for the campaign ICP
3. compute_icp_score() per prospect, in memory
4. Single transaction: all score writes + campaign qualified_count increment

FALLBACK (optimized path raised anywhere):
- Roll back, then score_prospect() per prospect
- Chunks of 10 run concurrently, each prospect in its own session
- qualified_count only counts prospects whose >= 0.75 score actually persisted
"""

from typing import Callable, Iterable, List, Optional, Sequence, Tuple
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import AsyncSessionLocal
from app.exceptions import CampaignNotFoundError, ICPNotDefinedError
from app.models import Prospect
from app.schemas.prospecting import BatchScoringResult, ScoringResult, TierBreakdown
from app.services.embedding_service import EmbeddingClient, get_embedding_service
from app.services.prospect_scoring import (
    DEFAULT_ACTIVITY_SCORE,
    QUALIFIED_THRESHOLD,
    ProspectScoringService,
    ScoreComputation,
    apply_scores,
    build_prospect_text,
    compute_icp_score,
    get_qualification_tier,
    increment_qualified_count,
)
from app.services.prospects import get_campaign, list_prospects
from app.services.vector_store import PineconeVectorStore, VectorIndex

logger = logging.getLogger(__name__)


def summarize_scores(scores: Iterable[float], errors: Optional[List[str]] = None) -> BatchScoringResult:
    """Aggregate counts, tier breakdown and average (2 decimals, 0 when empty)."""
    scores = list(scores)
    breakdown = TierBreakdown()
    for score in scores:
        tier = get_qualification_tier(score)
        setattr(breakdown, tier, getattr(breakdown, tier) + 1)

    avg_score = round(sum(scores) / len(scores), 2) if scores else 0.0

    return BatchScoringResult(
        processed=len(scores),
        qualified=sum(1 for score in scores if score >= QUALIFIED_THRESHOLD),
        avg_score=avg_score,
        breakdown=breakdown,
        errors=errors or [],
    )


def chunked(items: Sequence, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BatchScoringService:
    """Campaign-level scoring with a one-pass fast path and a per-prospect fallback"""

    def __init__(
        self,
        db: AsyncSession,
        embedding_client: Optional[EmbeddingClient] = None,
        vector_index: Optional[VectorIndex] = None,
        session_factory: Optional[async_sessionmaker] = None,
        activity_scorer: Optional[Callable[[Prospect], float]] = None,
        chunk_size: Optional[int] = None,
    ):
        self.db = db
        self.embedding_client = embedding_client or get_embedding_service()
        self.vector_index = vector_index or PineconeVectorStore()
        self.session_factory = session_factory or AsyncSessionLocal
        self.activity_scorer = activity_scorer or (lambda prospect: DEFAULT_ACTIVITY_SCORE)
        self.chunk_size = chunk_size or settings.SEQUENTIAL_SCORING_CHUNK_SIZE

    def _scorer(self, db: AsyncSession) -> ProspectScoringService:
        return ProspectScoringService(
            db,
            embedding_client=self.embedding_client,
            vector_index=self.vector_index,
            activity_scorer=self.activity_scorer,
        )

    async def score_batch(self, campaign_id, team_id, max_count: Optional[int] = None) -> BatchScoringResult:
        """
        Score up to max_count 'new' prospects of a campaign.

        Raises:
            CampaignNotFoundError: campaign missing or not owned by the team
            ICPNotDefinedError: campaign has no ICP
        """
        max_count = max_count or settings.BATCH_SCORING_MAX_COUNT

        campaign = await get_campaign(self.db, campaign_id, team_id)
        if not campaign:
            raise CampaignNotFoundError(str(campaign_id))
        if not campaign.icp:
            raise ICPNotDefinedError(str(campaign.id))

        prospects = await list_prospects(self.db, campaign.id, status="new", limit=max_count)
        if not prospects:
            logger.info(f"No new prospects to score in campaign {campaign.id}")
            return summarize_scores([])

        # Rollback expires ORM state, so the fallback works from plain ids
        prospect_ids = [p.id for p in prospects]
        logger.info(f"🚀 Batch scoring {len(prospects)} prospects (campaign {campaign.id})")

        try:
            return await self._score_optimized(campaign, prospects, team_id)
        except Exception as e:
            logger.error(f"❌ Optimized batch scoring failed, falling back to sequential: {e}")
            await self.db.rollback()

        return await self._score_sequential(prospect_ids, team_id)

    async def _score_optimized(self, campaign, prospects: List[Prospect], team_id) -> BatchScoringResult:
        texts = [build_prospect_text(p) for p in prospects]
        prospect_vectors = await self.embedding_client.generate_batch_embeddings(texts)
        if len(prospect_vectors) != len(prospects):
            raise ValueError(
                f"Embedding count mismatch ({len(prospect_vectors)} for {len(prospects)} prospects)"
            )

        icp_vector = await self._scorer(self.db).load_icp_vector(campaign.icp, team_id)

        computations = [
            compute_icp_score(
                prospect,
                campaign.icp,
                vector,
                icp_vector,
                activity_score=self.activity_scorer(prospect),
            )
            for prospect, vector in zip(prospects, prospect_vectors)
        ]

        await self._persist_scores(campaign.id, list(zip(prospects, computations)))

        result = summarize_scores(c.icp_match_score for c in computations)
        logger.info(
            f"✅ Batch scored {result.processed} prospects: "
            f"{result.qualified} qualified, avg {result.avg_score}"
        )
        return result

    async def _persist_scores(self, campaign_id, scored: List[Tuple[Prospect, ScoreComputation]]):
        """All-or-nothing write of scores and the qualified counter."""
        try:
            promoted = sum(1 for prospect, computation in scored if apply_scores(prospect, computation))
            if promoted:
                await self.db.execute(increment_qualified_count(campaign_id, promoted))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _score_sequential(self, prospect_ids: List, team_id) -> BatchScoringResult:
        logger.info(f"🔄 Sequential scoring of {len(prospect_ids)} prospects (chunks of {self.chunk_size})")

        results: List[ScoringResult] = []
        errors: List[str] = []

        for chunk in chunked(prospect_ids, self.chunk_size):
            outcomes = await asyncio.gather(
                *(self._score_isolated(prospect_id, team_id) for prospect_id in chunk),
                return_exceptions=True,
            )
            for prospect_id, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    message = getattr(outcome, "message", None) or str(outcome) or type(outcome).__name__
                    error = f"Failed to score prospect {prospect_id}: {message}"
                    logger.error(error)
                    errors.append(error)
                else:
                    results.append(outcome)

        result = summarize_scores((r.icp_match_score for r in results), errors)
        logger.info(
            f"✅ Sequential scoring done: {result.processed} scored, {len(errors)} failed"
        )
        return result

    async def _score_isolated(self, prospect_id, team_id) -> ScoringResult:
        # AsyncSession is not safe for concurrent use
        async with self.session_factory() as session:
            return await self._scorer(session).score_prospect(prospect_id, team_id)

    async def score_prospects_by_ids(self, prospect_ids, team_id) -> BatchScoringResult:
        """Score an explicit id list sequentially and summarize."""
        results, errors = await self._scorer(self.db).score_each(prospect_ids, team_id)
        return summarize_scores((r.icp_match_score for r in results), errors)
