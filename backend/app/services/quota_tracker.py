# backend/app/services/quota_tracker.py
"""
Enrichment Quota Tracker

Usage is derived from EnrichmentLog (successful rows inside the current window),
never cached, so it always agrees with the audit trail at call time.

    apollo - calendar year,  10,000 credits (warn at 80%)
    hunter - calendar month, 25 credits

NOTE: check-then-act without locking. Two concurrent calls for the same
team/provider can both pass before either log row commits (soft limit).
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Dict, List
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import BadRequestError, QuotaExceededError
from app.models import EnrichmentLog, coerce_uuid, utcnow
from app.schemas.prospecting import EnrichmentActivity, ProviderQuota, QuotaStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaPolicy:
    provider: str
    limit: int
    period: str  # "annual" | "monthly"
    warn_on_threshold: bool = False

    def window_start(self, now: datetime) -> datetime:
        if self.period == "annual":
            return datetime(now.year, 1, 1, tzinfo=timezone.utc)
        return datetime(now.year, now.month, 1, tzinfo=timezone.utc)

    def reset_date(self, now: datetime) -> date:
        if self.period == "annual":
            return date(now.year + 1, 1, 1)
        if now.month == 12:
            return date(now.year + 1, 1, 1)
        return date(now.year, now.month + 1, 1)


def get_quota_policies() -> Dict[str, QuotaPolicy]:
    return {
        "apollo": QuotaPolicy("apollo", settings.APOLLO_QUOTA_LIMIT, "annual", warn_on_threshold=True),
        "hunter": QuotaPolicy("hunter", settings.HUNTER_QUOTA_LIMIT, "monthly"),
    }


class QuotaTracker:
    """Per-team, per-provider quota checks against the enrichment log"""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.policies = get_quota_policies()

    def _policy(self, provider: str) -> QuotaPolicy:
        policy = self.policies.get(provider)
        if policy is None:
            raise BadRequestError(f"Unknown enrichment provider '{provider}'")
        return policy

    async def get_usage(self, team_id, provider: str, now: datetime = None) -> int:
        """Count successful calls for team/provider in the current window."""
        policy = self._policy(provider)
        now = now or self.clock()

        result = await self.db.execute(
            select(func.count(EnrichmentLog.id)).where(
                EnrichmentLog.team_id == coerce_uuid(team_id),
                EnrichmentLog.provider == provider,
                EnrichmentLog.status == "success",
                EnrichmentLog.created_at >= policy.window_start(now),
            )
        )
        return result.scalar() or 0

    async def check_quota(self, team_id, provider: str) -> int:
        """
        Raise QuotaExceededError when usage >= limit.

        Returns:
            Current usage (before this call)
        """
        policy = self._policy(provider)
        now = self.clock()
        usage = await self.get_usage(team_id, provider, now=now)

        if usage >= policy.limit:
            raise QuotaExceededError(provider, usage, policy.limit, policy.reset_date(now))

        if policy.warn_on_threshold and usage >= policy.limit * settings.QUOTA_WARNING_RATIO:
            logger.warning(
                f"⚠️ {provider.capitalize()} quota warning: "
                f"{usage}/{policy.limit} credits used (team {team_id})"
            )

        return usage

    async def get_quota_status(self, team_id, recent_limit: int = 10) -> QuotaStatus:
        """Usage dashboard for every provider plus the latest log rows."""
        now = self.clock()
        quotas = {}
        warnings: List[str] = []

        for name, policy in self.policies.items():
            used = await self.get_usage(team_id, name, now=now)
            percentage = (used / policy.limit) * 100 if policy.limit else 100.0
            quotas[name] = ProviderQuota(
                used=used,
                limit=policy.limit,
                remaining=max(policy.limit - used, 0),
                percentage=round(percentage),
                reset_date=policy.reset_date(now),
                period=policy.period,
            )
            if percentage >= settings.QUOTA_WARNING_RATIO * 100:
                warnings.append(f"{name.capitalize()} quota {round(percentage)}% used")

        result = await self.db.execute(
            select(EnrichmentLog)
            .where(EnrichmentLog.team_id == coerce_uuid(team_id))
            .order_by(EnrichmentLog.created_at.desc())
            .limit(recent_limit)
        )
        recent = [EnrichmentActivity.model_validate(row) for row in result.scalars().all()]

        return QuotaStatus(
            apollo=quotas["apollo"],
            hunter=quotas["hunter"],
            recent_activity=recent,
            warnings=warnings,
        )
