# backend/app/models.py
"""
SQLAlchemy ORM models for the prospecting pipeline.

KEY POINTS:
1. Teams live in the auth service - team_id is a plain UUID column here
2. JSON columns render as JSONB on Postgres and JSON elsewhere (tests use SQLite)
3. Campaign counters are maintained incrementally by the services, never recomputed
4. Prospect.converted_to_lead_id is write-once
"""

from sqlalchemy import (
    Column, String, Integer, Float, Text, DateTime, JSON, Index, Uuid,
    ForeignKey, CheckConstraint, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, validates
from app.database import Base
from datetime import datetime, timezone
import uuid


JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_uuid(value) -> uuid.UUID:
    """Accept UUID or its string form."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


# ============================================================================
# ICP MODEL
# ============================================================================

class ICP(Base):
    """Ideal Customer Profile - scoring criteria for a team's campaigns."""
    __tablename__ = "icps"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)

    # Example: {"titles": ["VP Sales", "Head of Growth"], "locations": ["United States"]}
    demographics = Column(JSONType, default=dict)

    # Example: {"industries": ["SaaS", "Fintech"], "company_sizes": ["51-200"]}
    firmographics = Column(JSONType, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ICP(id={self.id}, name='{self.name}')>"


# ============================================================================
# CAMPAIGN MODEL
# ============================================================================

class ProspectingCampaign(Base):
    """Prospecting campaign - owns prospects and running lifecycle counters."""
    __tablename__ = "prospecting_campaigns"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id = Column(Uuid, nullable=False, index=True)
    icp_id = Column(Uuid, ForeignKey("icps.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default="active")

    discovered_count = Column(Integer, nullable=False, default=0)
    qualified_count = Column(Integer, nullable=False, default=0)
    converted_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    icp = relationship("ICP", lazy="joined")

    def __repr__(self):
        return f"<ProspectingCampaign(id={self.id}, name='{self.name}')>"


# ============================================================================
# PROSPECT MODEL
# ============================================================================

class Prospect(Base):
    """Discovered contact, prior to CRM entry."""
    __tablename__ = "prospects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    campaign_id = Column(
        Uuid, ForeignKey("prospecting_campaigns.id", ondelete="CASCADE"),
        nullable=False, index=True
    )

    # Identity
    platform = Column(String(50), nullable=False)  # linkedin, facebook, csv
    platform_profile_id = Column(String(255), nullable=False)

    # Profile
    name = Column(String(255))
    headline = Column(String(500))
    location = Column(String(255))
    company_name = Column(String(255))
    company_url = Column(String(500))
    profile_url = Column(String(500))

    contact_info = Column(JSONType, default=dict)  # {"email": ..., "phone": ...}
    profile_data = Column(JSONType, default=dict)  # raw source payload
    enrichment_data = Column(JSONType, default=dict)

    # Scores (0-1)
    icp_match_score = Column(Float)
    quality_score = Column(Float)

    status = Column(String(50), nullable=False, default="new", index=True)
    converted_to_lead_id = Column(Uuid, nullable=True, unique=True)

    discovered_at = Column(DateTime(timezone=True), default=utcnow)
    enriched_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    campaign = relationship("ProspectingCampaign")

    __table_args__ = (
        UniqueConstraint("platform", "platform_profile_id", name="uq_prospect_platform_profile"),
        CheckConstraint(
            "status IN ('new', 'enriched', 'qualified', 'converted', 'rejected')",
            name="chk_prospect_status"
        ),
    )

    @validates("converted_to_lead_id")
    def _validate_converted_to_lead_id(self, key, value):
        current = self.__dict__.get(key)
        if current is not None and value != current:
            raise ValueError(f"Prospect {self.id} is already linked to lead {current}")
        return value

    def __repr__(self):
        return f"<Prospect(id={self.id}, name='{self.name}', status='{self.status}')>"


# ============================================================================
# ENRICHMENT LOG (append-only)
# ============================================================================

class EnrichmentLog(Base):
    """One row per provider call attempt. Quota usage is counted from here."""
    __tablename__ = "enrichment_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id = Column(Uuid, nullable=False)
    prospect_id = Column(Uuid, ForeignKey("prospects.id", ondelete="SET NULL"), nullable=True)

    provider = Column(String(50), nullable=False)  # apollo, hunter
    endpoint = Column(String(255))
    status = Column(String(20), nullable=False)  # success, failed
    credits_used = Column(Integer, nullable=False, default=0)

    request_data = Column(JSONType)
    response_data = Column(JSONType)
    error_message = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("status IN ('success', 'failed')", name="chk_enrichment_log_status"),
        Index("ix_enrichment_logs_quota", "team_id", "provider", "status", "created_at"),
    )

    def __repr__(self):
        return f"<EnrichmentLog(provider='{self.provider}', status='{self.status}')>"


# ============================================================================
# LEAD MODEL (CRM target)
# ============================================================================

class Lead(Base):
    """CRM lead - created only by prospect conversion."""
    __tablename__ = "leads"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id = Column(Uuid, nullable=False, index=True)
    campaign_id = Column(Uuid, ForeignKey("prospecting_campaigns.id", ondelete="SET NULL"))
    prospect_id = Column(Uuid, ForeignKey("prospects.id", ondelete="SET NULL"), unique=True)

    # Contact
    email = Column(String(255))
    phone = Column(String(50))
    first_name = Column(String(255))
    last_name = Column(String(255))
    company = Column(String(255))
    job_title = Column(String(500))

    source = Column(String(255))
    status = Column(String(50), nullable=False, default="new")

    qualification_score = Column(Float, default=0.0)
    enrichment_score = Column(Float, default=0.0)
    last_enriched_at = Column(DateTime(timezone=True))

    social_profiles = Column(JSONType, default=dict)
    raw_data = Column(JSONType, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Lead(id={self.id}, email='{self.email}')>"