# tests/conftest.py
"""
Shared fixtures - real SQLite database (aiosqlite) + fake embedding/vector clients

Each test gets its own database file so concurrent sessions (sequential
scoring fallback) behave like they do against Postgres.
"""

import asyncio
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./prospecting_test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
import pytest_asyncio
from itertools import count
from typing import Dict, List
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.database import Base
from app.exceptions import ProviderFailureError
from app.models import ICP, Prospect, ProspectingCampaign
from app.services.vector_store import icp_namespace


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeEmbeddingClient:
    """
    Deterministic embeddings.

    Texts containing a key of `overrides` get that vector, others get `default`.
    Texts containing a `fail_on` key raise in single mode.
    """

    def __init__(self, default=None):
        self.default = default or [1.0, 0.0]
        self.overrides: Dict[str, List[float]] = {}
        self.fail_on: List[str] = []
        self.fail_batch = False
        self.single_calls = 0
        self.batch_calls = 0
        self.in_flight = 0
        self.peak_in_flight = 0

    def vector_for(self, text: str) -> List[float]:
        for key, vector in self.overrides.items():
            if key in text:
                return list(vector)
        return list(self.default)

    async def generate_embedding(self, text: str) -> List[float]:
        self.single_calls += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            # yield so concurrent callers overlap
            await asyncio.sleep(0)
            if any(key in text for key in self.fail_on):
                raise ProviderFailureError("openai", "embedding failed")
            return self.vector_for(text)
        finally:
            self.in_flight -= 1

    async def generate_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        self.batch_calls += 1
        if self.fail_batch:
            raise ProviderFailureError("openai", "batch embedding failed")
        return [self.vector_for(text) for text in texts]


class FakeVectorIndex:
    def __init__(self):
        self.vectors: Dict[str, Dict[str, List[float]]] = {}
        self.fetch_calls = 0

    def upsert(self, namespace: str, vector_id, values: List[float]):
        self.vectors.setdefault(namespace, {})[str(vector_id)] = list(values)

    async def fetch_vector(self, namespace: str, vector_id: str):
        self.fetch_calls += 1
        values = self.vectors.get(namespace, {}).get(str(vector_id))
        if not values:
            return None
        return {"id": str(vector_id), "values": values}


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'prospecting.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# SAMPLE DATA
# ============================================================================

@pytest.fixture
def team_id():
    return uuid4()


@pytest_asyncio.fixture
async def sample_icp(db, team_id):
    icp = ICP(
        id=uuid4(),
        team_id=team_id,
        name="B2B SaaS Sales Leaders",
        demographics={"titles": ["VP Sales"], "locations": ["San Francisco"]},
        firmographics={"industries": ["SaaS"]},
    )
    db.add(icp)
    await db.commit()
    return icp


@pytest_asyncio.fixture
async def sample_campaign(db, team_id, sample_icp):
    campaign = ProspectingCampaign(
        id=uuid4(),
        team_id=team_id,
        icp_id=sample_icp.id,
        name="Q3 Outbound",
    )
    db.add(campaign)
    await db.commit()
    return campaign


@pytest.fixture
def make_prospect(db, sample_campaign):
    """Factory: await make_prospect(**overrides) -> persisted Prospect"""
    sequence = count(1)

    async def _make(**overrides):
        n = next(sequence)
        data = {
            "id": uuid4(),
            "campaign_id": sample_campaign.id,
            "platform": "linkedin",
            "platform_profile_id": f"profile-{n}",
            "name": "Jane Doe",
            "headline": "VP of Sales",
            "location": "San Francisco, CA",
            "company_name": "Acme SaaS",
            "company_url": "https://www.acme.io",
            "profile_url": f"https://linkedin.com/in/jane-doe-{n}",
            "contact_info": {"email": "jane@acme.io"},
            "profile_data": {"industry": "Software", "bio": "Building revenue teams"},
            "enrichment_data": {},
            "status": "new",
        }
        data.update(overrides)
        prospect = Prospect(**data)
        db.add(prospect)
        await db.commit()
        return prospect

    return _make


@pytest.fixture
def embedding_client():
    return FakeEmbeddingClient()


@pytest.fixture
def vector_index(team_id, sample_icp):
    index = FakeVectorIndex()
    index.upsert(icp_namespace(team_id), sample_icp.id, [1.0, 0.0])
    return index
