"""
Weighted readiness scoring.

Readiness score and profile completion are deliberately different numbers:
the score weights each section, completion is the plain average of section
completion. Both are computed from the same inputs with integer arithmetic
and rounded half-up, so the score always equals the rounded sum of the
per-section contributions.
"""

from typing import Dict, List, Optional, Sequence

from shared.errors import ConfigurationError
from shared.logging import get_logger
from .models import (
    SectionDefinition, SectionInput, SectionScore, ReadinessResult, EligibilityFailure
)
from .sections import REQUIRED_DOCUMENTS_STEP


MIN_PROFILE_COMPLETION_PERCENT = 70
MIN_READINESS_SCORE = 60
TOTAL_WEIGHT = 100


def _clamp_percent(value: int) -> int:
    return max(0, min(100, int(value)))


def _default_label(section: str) -> str:
    return section.replace("_", " ").title()


class ReadinessScorer:
    """Scores a profile from weighted section completion.

    The scorer is generic over the section list. When constructed with
    section definitions it validates inputs against them, reports sections
    in declaration order and uses their labels; without definitions it
    scores whatever sections it is given, in the given order.
    """

    def __init__(
        self,
        definitions: Optional[Sequence[SectionDefinition]] = None,
        min_profile_completion: int = MIN_PROFILE_COMPLETION_PERCENT,
        min_readiness_score: int = MIN_READINESS_SCORE,
    ):
        self.logger = get_logger("gating.readiness")
        self.definitions = tuple(definitions) if definitions is not None else None
        self.min_profile_completion = min_profile_completion
        self.min_readiness_score = min_readiness_score

        if self.definitions is not None:
            self._validate_weights({d.key: d.weight for d in self.definitions}, [d.key for d in self.definitions])

    def score(self, sections: Sequence[SectionInput], required_docs_uploaded: bool) -> ReadinessResult:
        """Score a list of sections."""
        ordered = self._order(sections)
        self._validate_weights({s.section: s.weight for s in ordered}, [s.section for s in ordered])

        section_scores: List[SectionScore] = []
        weighted_total = 0
        completion_total = 0
        for item in ordered:
            completion = _clamp_percent(item.completion_percent)
            weighted_total += item.weight * completion
            completion_total += completion
            section_scores.append(SectionScore(
                section=item.section,
                weight=item.weight,
                completion_percent=completion,
                score_contribution=item.weight * completion / 100,
            ))

        # round_half_up(weighted_total / 100) and round_half_up(mean) on integers
        readiness_score = _clamp_percent((weighted_total + 50) // 100)
        count = len(ordered)
        profile_completion = _clamp_percent((2 * completion_total + count) // (2 * count))

        failures: List[EligibilityFailure] = []
        if profile_completion < self.min_profile_completion:
            failures.append(EligibilityFailure.COMPLETE_PROFILE_70)
        if readiness_score < self.min_readiness_score:
            failures.append(EligibilityFailure.REACH_SCORE_60)
        if not required_docs_uploaded:
            failures.append(EligibilityFailure.UPLOAD_REQUIRED_DOCS)

        missing_steps = [self._label(s.section) for s in section_scores if s.completion_percent < 100]
        if not required_docs_uploaded:
            missing_steps.append(REQUIRED_DOCUMENTS_STEP)

        result = ReadinessResult(
            readiness_score=readiness_score,
            profile_completion_percent=profile_completion,
            eligible_for_discovery_post=not failures,
            required_docs_uploaded=required_docs_uploaded,
            missing_steps=missing_steps,
            section_scores=section_scores,
            eligibility_failures=failures,
        )
        self.logger.debug(
            "Readiness scored",
            readiness_score=readiness_score,
            profile_completion_percent=profile_completion,
            eligible=result.eligible_for_discovery_post,
        )
        return result

    def _order(self, sections: Sequence[SectionInput]) -> List[SectionInput]:
        by_key: Dict[str, SectionInput] = {}
        for item in sections:
            if item.section in by_key:
                raise ConfigurationError(
                    f"Readiness section '{item.section}' is listed more than once",
                    {"section": item.section},
                )
            by_key[item.section] = item

        if self.definitions is None:
            return list(sections)

        known = [d.key for d in self.definitions]
        unknown = [key for key in by_key if key not in known]
        if unknown:
            raise ConfigurationError(
                "Unknown readiness sections",
                {"sections": unknown, "expected": known},
            )
        missing = [key for key in known if key not in by_key]
        if missing:
            raise ConfigurationError(
                "Readiness sections missing from input",
                {"sections": missing, "expected": known},
            )
        return [by_key[key] for key in known]

    def _validate_weights(self, weights: Dict[str, int], order: List[str]) -> None:
        if not weights:
            raise ConfigurationError("At least one readiness section is required")
        negative = [key for key in order if weights[key] < 0]
        if negative:
            raise ConfigurationError("Readiness weights cannot be negative", {"sections": negative})
        total = sum(weights.values())
        if total != TOTAL_WEIGHT:
            self.logger.error("Readiness weights do not sum to 100", total=total, weights=weights)
            raise ConfigurationError(
                f"Readiness weights must sum to {TOTAL_WEIGHT}, got {total}",
                {"weights": weights, "total": total},
            )

    def _label(self, section: str) -> str:
        if self.definitions is not None:
            for definition in self.definitions:
                if definition.key == section:
                    return definition.label
        return _default_label(section)
