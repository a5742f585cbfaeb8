"""
Section sets per organization type and the documents required for discovery.
"""

from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from shared.errors import ConfigurationError
from ..organizations.models import OrganizationType
from .models import SectionDefinition, SectionInput


STARTUP_SECTIONS: Tuple[SectionDefinition, ...] = (
    SectionDefinition("team", "Team", 20),
    SectionDefinition("product", "Product", 20),
    SectionDefinition("market", "Market", 15),
    SectionDefinition("traction", "Traction", 15),
    SectionDefinition("financials", "Financials", 15),
    SectionDefinition("legal", "Legal", 10),
    SectionDefinition("pitch_materials", "Pitch Materials", 5),
)

INVESTOR_SECTIONS: Tuple[SectionDefinition, ...] = (
    SectionDefinition("identity", "Organization Profile", 40),
    SectionDefinition("investment_thesis", "Investment Thesis", 35),
    SectionDefinition("team", "Team", 25),
)

ADVISOR_SECTIONS: Tuple[SectionDefinition, ...] = (
    SectionDefinition("identity", "Organization Profile", 40),
    SectionDefinition("expertise", "Expertise", 35),
    SectionDefinition("team", "Team", 25),
)

SECTIONS_BY_ORG_TYPE: Dict[OrganizationType, Tuple[SectionDefinition, ...]] = {
    OrganizationType.STARTUP: STARTUP_SECTIONS,
    OrganizationType.INVESTOR: INVESTOR_SECTIONS,
    OrganizationType.ADVISOR: ADVISOR_SECTIONS,
}

REQUIRED_DOCUMENTS_STEP = "Required documents"


class DataRoomDocumentType(str, Enum):
    """Document kinds a startup can store in its data room."""
    PITCH_DECK = "pitch_deck"
    FINANCIAL_MODEL = "financial_model"
    CAP_TABLE = "cap_table"
    TRACTION_METRICS = "traction_metrics"
    LEGAL_COMPANY_DOCS = "legal_company_docs"
    INCORPORATION_DOCS = "incorporation_docs"
    CUSTOMER_CONTRACTS_SUMMARIES = "customer_contracts_summaries"
    TERM_SHEET_DRAFTS = "term_sheet_drafts"


REQUIRED_DOCUMENT_TYPES = frozenset({
    DataRoomDocumentType.PITCH_DECK,
    DataRoomDocumentType.FINANCIAL_MODEL,
    DataRoomDocumentType.LEGAL_COMPANY_DOCS,
})


def required_documents_uploaded(document_types: Iterable[str]) -> bool:
    """True when the data room holds every required document type."""
    present = set()
    for value in document_types:
        try:
            present.add(DataRoomDocumentType(str(value).strip().lower()))
        except ValueError:
            continue
    return REQUIRED_DOCUMENT_TYPES.issubset(present)


def apply_weights(
    definitions: Iterable[SectionDefinition],
    weights: Optional[Mapping[str, int]] = None,
) -> Tuple[SectionDefinition, ...]:
    """Override default weights; sections missing from ``weights`` keep theirs."""
    definitions = tuple(definitions)
    weights = weights or {}
    unknown = sorted(set(weights) - {d.key for d in definitions})
    if unknown:
        raise ConfigurationError("Weights given for unknown readiness sections", {"sections": unknown})
    return tuple(
        SectionDefinition(d.key, d.label, int(weights.get(d.key, d.weight)))
        for d in definitions
    )


def build_section_inputs(
    definitions: Iterable[SectionDefinition],
    completion: Mapping[str, int],
) -> List[SectionInput]:
    """Pair each defined section with its completion; absent sections are 0%."""
    return [
        SectionInput(section=d.key, weight=d.weight, completion_percent=int(completion.get(d.key, 0)))
        for d in definitions
    ]
