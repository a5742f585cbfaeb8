"""
Readiness scoring data models.
"""

from typing import List
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field


class EligibilityFailure(str, Enum):
    """Individually reportable discovery eligibility checks."""
    COMPLETE_PROFILE_70 = "complete_profile_70"
    REACH_SCORE_60 = "reach_score_60"
    UPLOAD_REQUIRED_DOCS = "upload_required_docs"


@dataclass(frozen=True)
class SectionDefinition:
    """A scored profile section and its default weight (percent)."""
    key: str
    label: str
    weight: int


@dataclass(frozen=True)
class SectionInput:
    """Completion of one section as fed to the scorer."""
    section: str
    weight: int
    completion_percent: int


@dataclass(frozen=True)
class SectionScore:
    """Per-section breakdown of a readiness result."""
    section: str
    weight: int
    completion_percent: int
    score_contribution: float


@dataclass(frozen=True)
class ReadinessResult:
    """Readiness verdict for an organization profile."""
    readiness_score: int
    profile_completion_percent: int
    eligible_for_discovery_post: bool
    required_docs_uploaded: bool
    missing_steps: List[str] = field(default_factory=list)
    section_scores: List[SectionScore] = field(default_factory=list)
    eligibility_failures: List[EligibilityFailure] = field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return self.eligible_for_discovery_post


class SectionInputModel(BaseModel):
    """Request model for one section."""
    section: str = Field(..., description="Section key")
    weight: int = Field(..., ge=0, le=100, description="Weight in percent")
    completion_percent: int = Field(..., description="Completion in percent")


class ReadinessScoreRequest(BaseModel):
    """Request model for ad-hoc readiness scoring."""
    sections: List[SectionInputModel] = Field(..., description="Weighted sections")
    required_docs_uploaded: bool = Field(False, description="Whether required documents are present")


class SectionScoreModel(BaseModel):
    section: str
    weight: int
    completion_percent: int
    score_contribution: float


class ReadinessResponse(BaseModel):
    """Response model for readiness results."""
    readiness_score: int
    profile_completion_percent: int
    eligible_for_discovery_post: bool
    is_ready: bool
    required_docs_uploaded: bool
    missing_steps: List[str]
    section_scores: List[SectionScoreModel]
    eligibility_failures: List[EligibilityFailure]

    @classmethod
    def from_result(cls, result: ReadinessResult) -> "ReadinessResponse":
        return cls(
            readiness_score=result.readiness_score,
            profile_completion_percent=result.profile_completion_percent,
            eligible_for_discovery_post=result.eligible_for_discovery_post,
            is_ready=result.is_ready,
            required_docs_uploaded=result.required_docs_uploaded,
            missing_steps=list(result.missing_steps),
            section_scores=[
                SectionScoreModel(
                    section=s.section,
                    weight=s.weight,
                    completion_percent=s.completion_percent,
                    score_contribution=s.score_contribution,
                )
                for s in result.section_scores
            ],
            eligibility_failures=list(result.eligibility_failures),
        )
