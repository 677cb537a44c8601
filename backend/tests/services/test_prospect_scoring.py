# tests/services/test_prospect_scoring.py
"""
Tests for the ICP scoring engine

Coverage:
- Weighted formula (0.30 / 0.25 / 0.25 / 0.20)
- Demographics / firmographics sub-scores
- Quality score
- Tier mapping
- Cosine similarity edge cases
- score_prospect persistence, idempotency, qualification
- Error cases (missing prospect / ICP / ICP vector, cross-team access)

Run with: pytest tests/services/test_prospect_scoring.py -v
"""

import pytest
from uuid import uuid4

from app.exceptions import (
    ICPNotDefinedError,
    ICPVectorNotFoundError,
    ProspectNotFoundError,
    ProviderFailureError,
)
from app.models import ICP, Prospect, ProspectingCampaign
from app.services.prospect_scoring import (
    ProspectScoringService,
    build_prospect_text,
    calculate_quality_score,
    compute_icp_score,
    cosine_similarity,
    get_qualification_tier,
    score_demographics,
    score_firmographics,
    weighted_icp_score,
)


# ============================================================================
# FIXTURES
# ============================================================================

def transient_prospect(**overrides):
    data = {
        "platform": "linkedin",
        "platform_profile_id": "p1",
        "name": "Jane Doe",
        "headline": "VP of Sales",
        "location": "San Francisco, CA",
        "company_name": "Acme SaaS",
        "profile_url": "https://linkedin.com/in/jane",
        "contact_info": {"email": "jane@acme.io"},
        "profile_data": {"industry": "Software"},
    }
    data.update(overrides)
    return Prospect(**data)


@pytest.fixture
def scorer(db, embedding_client, vector_index):
    return ProspectScoringService(db, embedding_client=embedding_client, vector_index=vector_index)


async def reload(session_factory, model, obj_id):
    async with session_factory() as session:
        return await session.get(model, obj_id)


# ============================================================================
# TEST: Formula
# ============================================================================

class TestWeights:

    @pytest.mark.parametrize("component,weight", [
        ("demographics", 0.30),
        ("firmographics", 0.25),
        ("psychographics", 0.25),
        ("activity", 0.20),
    ])
    def test_component_weight(self, component, weight):
        breakdown = {"demographics": 0.0, "firmographics": 0.0, "psychographics": 0.0, "activity": 0.0}
        breakdown[component] = 1.0

        assert weighted_icp_score(breakdown) == pytest.approx(weight)

    def test_perfect_match(self):
        breakdown = {"demographics": 1.0, "firmographics": 1.0, "psychographics": 1.0, "activity": 1.0}
        assert weighted_icp_score(breakdown) == pytest.approx(1.0)

    def test_compute_full_match(self):
        icp = ICP(
            demographics={"titles": ["VP Sales"], "locations": ["San Francisco"]},
            firmographics={"industries": ["SaaS"]},
        )

        computation = compute_icp_score(transient_prospect(), icp, [1.0, 0.0], [1.0, 0.0])

        assert computation.breakdown == {
            "demographics": 1.0,
            "firmographics": 0.8,
            "psychographics": 1.0,
            "activity": 0.5,
        }
        assert computation.icp_match_score == pytest.approx(0.85)

    def test_negative_similarity_clamped(self):
        icp = ICP(demographics={}, firmographics={})

        computation = compute_icp_score(transient_prospect(), icp, [-1.0, 0.0], [1.0, 0.0])

        assert computation.breakdown["psychographics"] == 0.0
        assert 0.0 <= computation.icp_match_score <= 1.0

    def test_activity_override(self):
        icp = ICP(demographics={}, firmographics={})

        computation = compute_icp_score(transient_prospect(), icp, [1.0], [1.0], activity_score=1.0)

        assert computation.breakdown["activity"] == 1.0


class TestDemographics:

    def test_no_criteria_is_neutral(self):
        assert score_demographics(transient_prospect(), {}) == 0.5
        assert score_demographics(transient_prospect(), None) == 0.5

    def test_title_only_match(self):
        demographics = {"titles": ["Head of Sales"], "locations": []}
        assert score_demographics(transient_prospect(), demographics) == 1.0

    def test_short_keywords_ignored(self):
        # "VP" alone is too short to count as a keyword
        demographics = {"titles": ["VP"]}
        assert score_demographics(transient_prospect(headline="VP Engineering"), demographics) == 0.0

    def test_location_substring_either_direction(self):
        demographics = {"locations": ["San Francisco Bay Area"]}
        assert score_demographics(transient_prospect(location="San Francisco"), demographics) == 1.0

    def test_partial_match(self):
        demographics = {"titles": ["VP Sales"], "locations": ["Berlin"]}
        assert score_demographics(transient_prospect(), demographics) == pytest.approx(0.6)

    def test_missing_location_does_not_match(self):
        demographics = {"locations": ["Berlin"]}
        assert score_demographics(transient_prospect(location=None), demographics) == 0.0
        assert score_demographics(transient_prospect(location="  "), demographics) == 0.0


class TestFirmographics:

    def test_no_industries_is_neutral(self):
        assert score_firmographics(transient_prospect(), {"industries": []}) == 0.5

    def test_company_name_match(self):
        assert score_firmographics(transient_prospect(), {"industries": ["saas"]}) == 0.8

    def test_profile_industry_match(self):
        prospect = transient_prospect(company_name="Acme", profile_data={"industry": "Computer Software"})
        assert score_firmographics(prospect, {"industries": ["Software"]}) == 0.8

    def test_no_match(self):
        prospect = transient_prospect(company_name="Globex", profile_data={})
        assert score_firmographics(prospect, {"industries": ["Fintech"]}) == 0.4

    def test_blank_profile_industry_does_not_match(self):
        prospect = transient_prospect(company_name="Globex", profile_data={"industry": ""})
        assert score_firmographics(prospect, {"industries": ["Fintech"]}) == 0.4


class TestQualityScore:

    def test_complete_profile(self):
        assert calculate_quality_score(transient_prospect()) == pytest.approx(1.0)

    def test_name_and_headline_only(self):
        prospect = Prospect(name="Jane Doe", headline="VP of Sales")
        assert calculate_quality_score(prospect) == pytest.approx(0.4)

    def test_empty(self):
        assert calculate_quality_score(Prospect()) == 0.0


class TestQualificationTier:

    @pytest.mark.parametrize("score,tier", [
        (0.90, "hot"),
        (0.85, "hot"),
        (0.80, "qualified"),
        (0.70, "warm"),
        (0.50, "discard"),
        (0.0, "discard"),
    ])
    def test_tiers(self, score, tier):
        assert get_qualification_tier(score) == tier


class TestCosineSimilarity:

    def test_identical(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 0.0])


class TestProspectText:

    def test_bio_from_profile_data(self):
        prospect = transient_prospect(profile_data={"bio": "Scaling GTM"})
        assert build_prospect_text(prospect) == (
            "Job: VP of Sales at Acme SaaS\nLocation: San Francisco, CA\nBio: Scaling GTM"
        )

    def test_unknown_fallbacks(self):
        prospect = Prospect()
        assert build_prospect_text(prospect) == "Job: Unknown at Unknown\nLocation: Unknown\nBio: "


# ============================================================================
# TEST: score_prospect
# ============================================================================

class TestScoreProspect:

    @pytest.mark.asyncio
    async def test_persists_scores(self, scorer, make_prospect, session_factory, team_id):
        prospect = await make_prospect()

        result = await scorer.score_prospect(prospect.id, team_id)

        assert result.prospect_id == prospect.id
        assert result.qualification == "hot"
        assert result.quality_score == pytest.approx(1.0)

        stored = await reload(session_factory, Prospect, prospect.id)
        assert stored.icp_match_score == pytest.approx(result.icp_match_score)
        assert stored.quality_score == pytest.approx(1.0)
        assert stored.status == "qualified"
        assert stored.enrichment_data["score_breakdown"]["firmographics"] == 0.8

    @pytest.mark.asyncio
    async def test_rescoring_is_idempotent(self, scorer, make_prospect, session_factory, team_id, sample_campaign):
        prospect = await make_prospect()

        first = await scorer.score_prospect(prospect.id, team_id)
        second = await scorer.score_prospect(prospect.id, team_id)

        assert first == second
        campaign = await reload(session_factory, ProspectingCampaign, sample_campaign.id)
        assert campaign.qualified_count == 1

    @pytest.mark.asyncio
    async def test_low_score_stays_new(self, scorer, make_prospect, embedding_client, session_factory, team_id):
        prospect = await make_prospect(headline="Intern", company_name="Globex", location="Berlin", profile_data={})
        embedding_client.overrides["Globex"] = [0.0, 1.0]

        result = await scorer.score_prospect(prospect.id, team_id)

        assert result.qualification == "discard"
        stored = await reload(session_factory, Prospect, prospect.id)
        assert stored.status == "new"

    @pytest.mark.asyncio
    async def test_unknown_prospect(self, scorer, team_id):
        with pytest.raises(ProspectNotFoundError):
            await scorer.score_prospect(uuid4(), team_id)

    @pytest.mark.asyncio
    async def test_other_team_cannot_score(self, scorer, make_prospect):
        prospect = await make_prospect()

        with pytest.raises(ProspectNotFoundError):
            await scorer.score_prospect(prospect.id, uuid4())

    @pytest.mark.asyncio
    async def test_campaign_without_icp(self, db, scorer, team_id):
        campaign = ProspectingCampaign(id=uuid4(), team_id=team_id, name="No ICP")
        db.add(campaign)
        prospect = Prospect(id=uuid4(), campaign_id=campaign.id, platform="csv", platform_profile_id="x")
        db.add(prospect)
        await db.commit()

        with pytest.raises(ICPNotDefinedError):
            await scorer.score_prospect(prospect.id, team_id)

    @pytest.mark.asyncio
    async def test_missing_icp_vector(self, scorer, vector_index, make_prospect, team_id):
        prospect = await make_prospect()
        vector_index.vectors.clear()

        with pytest.raises(ICPVectorNotFoundError):
            await scorer.score_prospect(prospect.id, team_id)

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, scorer, embedding_client, make_prospect, session_factory, team_id):
        prospect = await make_prospect()
        embedding_client.fail_on.append("Acme")

        with pytest.raises(ProviderFailureError):
            await scorer.score_prospect(prospect.id, team_id)

        stored = await reload(session_factory, Prospect, prospect.id)
        assert stored.icp_match_score is None


class TestBatchScoreProspects:

    @pytest.mark.asyncio
    async def test_failures_are_omitted(self, scorer, make_prospect, team_id):
        good = await make_prospect()
        missing = uuid4()

        results = await scorer.batch_score_prospects([good.id, missing], team_id)

        assert [r.prospect_id for r in results] == [good.id]
