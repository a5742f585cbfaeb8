"""
Unit tests for readiness scoring.
"""

import pytest

from shared.errors import ConfigurationError
from service_gating.app.readiness.models import (
    SectionInput, EligibilityFailure, ReadinessResponse
)
from service_gating.app.readiness.scorer import ReadinessScorer
from service_gating.app.readiness.sections import (
    STARTUP_SECTIONS, INVESTOR_SECTIONS, ADVISOR_SECTIONS, REQUIRED_DOCUMENTS_STEP,
    apply_weights, build_section_inputs, required_documents_uploaded
)


def startup_inputs(**completion):
    return build_section_inputs(STARTUP_SECTIONS, completion)


class TestReadinessScorer:
    """Test cases for ReadinessScorer."""

    @pytest.fixture
    def scorer(self):
        """Create a scorer bound to the startup sections."""
        return ReadinessScorer(STARTUP_SECTIONS)

    def test_partial_profile_not_eligible(self, scorer):
        result = scorer.score(startup_inputs(team=100, product=50), required_docs_uploaded=True)

        assert result.readiness_score == 30
        assert result.profile_completion_percent == 21
        assert result.eligible_for_discovery_post is False
        assert result.is_ready is False
        assert result.eligibility_failures == [
            EligibilityFailure.COMPLETE_PROFILE_70,
            EligibilityFailure.REACH_SCORE_60,
        ]

    def test_complete_profile_eligible(self, scorer):
        sections = startup_inputs(**{d.key: 100 for d in STARTUP_SECTIONS})

        result = scorer.score(sections, required_docs_uploaded=True)

        assert result.readiness_score == 100
        assert result.profile_completion_percent == 100
        assert result.eligible_for_discovery_post is True
        assert result.missing_steps == []
        assert result.eligibility_failures == []

    def test_missing_docs_blocks_eligibility(self, scorer):
        sections = startup_inputs(**{d.key: 100 for d in STARTUP_SECTIONS})

        result = scorer.score(sections, required_docs_uploaded=False)

        assert result.eligible_for_discovery_post is False
        assert result.eligibility_failures == [EligibilityFailure.UPLOAD_REQUIRED_DOCS]
        assert result.missing_steps == [REQUIRED_DOCUMENTS_STEP]

    def test_missing_steps_in_declaration_order(self, scorer):
        sections = list(reversed(startup_inputs(team=100, product=100, market=100, legal=100)))

        result = scorer.score(sections, required_docs_uploaded=False)

        assert result.missing_steps == ["Traction", "Financials", "Pitch Materials", REQUIRED_DOCUMENTS_STEP]
        assert [s.section for s in result.section_scores] == [d.key for d in STARTUP_SECTIONS]

    def test_score_equals_rounded_contribution_sum(self, scorer):
        sections = startup_inputs(team=33, product=67, market=45, traction=12, financials=89, legal=51, pitch_materials=9)

        result = scorer.score(sections, required_docs_uploaded=True)

        contributions = sum(s.score_contribution for s in result.section_scores)
        assert result.readiness_score == int(contributions + 0.5)

    def test_half_up_rounding(self):
        scorer = ReadinessScorer()
        sections = [
            SectionInput("a", 50, 1),
            SectionInput("b", 50, 0),
        ]

        result = scorer.score(sections, required_docs_uploaded=True)

        # 0.5 rounds up, 0.5% average completion rounds up
        assert result.readiness_score == 1
        assert result.profile_completion_percent == 1

    def test_thresholds_are_inclusive(self):
        scorer = ReadinessScorer()
        sections = [SectionInput("a", 60, 100), SectionInput("b", 40, 40)]

        result = scorer.score(sections, required_docs_uploaded=True)

        assert result.readiness_score == 76
        assert result.profile_completion_percent == 70
        assert result.eligible_for_discovery_post is True

    def test_completion_clamped(self, scorer):
        sections = startup_inputs(team=150, product=-20)

        result = scorer.score(sections, required_docs_uploaded=True)

        assert result.section_scores[0].completion_percent == 100
        assert result.section_scores[1].completion_percent == 0
        assert result.readiness_score == 20

    def test_weights_must_sum_to_100(self):
        scorer = ReadinessScorer()

        with pytest.raises(ConfigurationError):
            scorer.score([SectionInput("a", 50, 100), SectionInput("b", 40, 100)], required_docs_uploaded=True)

    def test_definitions_validated_on_construction(self):
        with pytest.raises(ConfigurationError):
            ReadinessScorer(apply_weights(STARTUP_SECTIONS, {"team": 50}))

    def test_duplicate_section(self):
        scorer = ReadinessScorer()

        with pytest.raises(ConfigurationError):
            scorer.score([SectionInput("a", 50, 100), SectionInput("a", 50, 100)], required_docs_uploaded=True)

    def test_unknown_section(self, scorer):
        sections = startup_inputs() + [SectionInput("vibes", 0, 100)]

        with pytest.raises(ConfigurationError):
            scorer.score(sections, required_docs_uploaded=True)

    def test_missing_section(self, scorer):
        sections = startup_inputs()[:-1]

        with pytest.raises(ConfigurationError):
            scorer.score(sections, required_docs_uploaded=True)

    def test_empty_sections(self):
        with pytest.raises(ConfigurationError):
            ReadinessScorer().score([], required_docs_uploaded=True)

    def test_custom_thresholds(self):
        scorer = ReadinessScorer(min_profile_completion=10, min_readiness_score=10)

        result = scorer.score([SectionInput("a", 100, 20)], required_docs_uploaded=True)

        assert result.eligible_for_discovery_post is True

    @pytest.mark.parametrize("definitions", [INVESTOR_SECTIONS, ADVISOR_SECTIONS])
    def test_other_org_section_sets(self, definitions):
        scorer = ReadinessScorer(definitions)
        completion = {definitions[0].key: 100, definitions[1].key: 100}

        result = scorer.score(build_section_inputs(definitions, completion), required_docs_uploaded=True)

        assert result.readiness_score == 75
        assert result.profile_completion_percent == 67
        assert result.eligible_for_discovery_post is False
        assert result.missing_steps == [definitions[2].label]

    def test_response_model(self, scorer):
        result = scorer.score(startup_inputs(team=100, product=50), required_docs_uploaded=False)

        response = ReadinessResponse.from_result(result)

        assert response.readiness_score == 30
        assert response.is_ready is False
        assert response.eligibility_failures[-1] == EligibilityFailure.UPLOAD_REQUIRED_DOCS
        assert len(response.section_scores) == 7


class TestSections:
    """Test cases for section helpers."""

    def test_default_startup_weights_sum_to_100(self):
        assert sum(d.weight for d in STARTUP_SECTIONS) == 100
        assert sum(d.weight for d in INVESTOR_SECTIONS) == 100
        assert sum(d.weight for d in ADVISOR_SECTIONS) == 100

    def test_apply_weights(self):
        weights = {"team": 30, "product": 10}

        definitions = apply_weights(STARTUP_SECTIONS, weights)

        assert definitions[0].weight == 30
        assert definitions[1].weight == 10
        assert definitions[2].weight == 15

    def test_apply_weights_unknown_section(self):
        with pytest.raises(ConfigurationError):
            apply_weights(STARTUP_SECTIONS, {"moat": 5})

    def test_build_section_inputs_defaults_to_zero(self):
        inputs = build_section_inputs(STARTUP_SECTIONS, {"team": 80})

        assert inputs[0].completion_percent == 80
        assert all(i.completion_percent == 0 for i in inputs[1:])

    def test_required_documents_uploaded(self):
        assert required_documents_uploaded(["pitch_deck", "financial_model", "legal_company_docs", "cap_table"])
        assert required_documents_uploaded([" Pitch_Deck ", "FINANCIAL_MODEL", "legal_company_docs"])
        assert not required_documents_uploaded(["pitch_deck", "financial_model"])
        assert not required_documents_uploaded(["selfie"])
