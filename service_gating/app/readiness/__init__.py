"""
Readiness scoring package.

Weighted sections produce a readiness score, an unweighted completion
percentage, a discovery eligibility verdict and an ordered list of missing
steps. The same scorer serves startups, investors and advisors; only the
section set differs.
"""

from .models import (
    EligibilityFailure, SectionDefinition, SectionInput, SectionScore,
    ReadinessResult, ReadinessScoreRequest, ReadinessResponse
)
from .sections import (
    STARTUP_SECTIONS, INVESTOR_SECTIONS, ADVISOR_SECTIONS, SECTIONS_BY_ORG_TYPE,
    REQUIRED_DOCUMENTS_STEP, DataRoomDocumentType, REQUIRED_DOCUMENT_TYPES,
    required_documents_uploaded, apply_weights, build_section_inputs
)
from .scorer import (
    ReadinessScorer, MIN_PROFILE_COMPLETION_PERCENT, MIN_READINESS_SCORE
)
