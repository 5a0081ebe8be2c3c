"""
Cross-Document Inconsistency Detector

Extracts the personal, business and financial fields of every document in an
application and compares each pair of documents field by field.
"""
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List
import asyncio
import logging

from docintel.models.extraction import ExtractionResult, IdentificationNumber
from docintel.models.inconsistency import (
    ConflictingValue,
    DocumentComparison,
    Inconsistency,
    InconsistencyResult,
    InconsistencyType,
    Severity,
)
from docintel.services.document_service import DocumentService
from docintel.services.field_extraction_service import FieldExtractionProvider, extract_field_groups
from docintel.utils.text_similarity import digits_only, normalize, string_similarity

logger = logging.getLogger(__name__)

NAME_SIMILARITY_THRESHOLD = 0.90
ADDRESS_SIMILARITY_THRESHOLD = 0.85

SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 0.4,
    Severity.HIGH: 0.3,
    Severity.MEDIUM: 0.2,
    Severity.LOW: 0.1,
}

SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]

def calculate_risk_score(inconsistencies: List[Inconsistency]) -> float:
    """Mean of severity weight x confidence, scaled to 0-100"""
    if not inconsistencies:
        return 0.0
    total = sum(SEVERITY_WEIGHTS[Severity(i.severity)] * i.confidence for i in inconsistencies)
    return min(100.0, total / len(inconsistencies) * 100)

def _matching_identifiers(ids1: List[IdentificationNumber], ids2: List[IdentificationNumber]):
    """First pair of identification numbers of the same type, or None"""
    for i1 in ids1:
        for i2 in ids2:
            if i1.type.upper() == i2.type.upper():
                return i1, i2
    return None

@dataclass
class _PairTally:
    matching_weight: float = 0.0
    total_fields: int = 0
    matching_fields: List[str] = field(default_factory=list)
    conflicting_fields: List[str] = field(default_factory=list)
    values: Dict[str, List[ConflictingValue]] = field(default_factory=dict)

    def match(self, name: str, weight: float = 1.0):
        self.total_fields += 1
        self.matching_weight += weight
        self.matching_fields.append(name)

    def conflict(self, name: str, *values: ConflictingValue):
        self.total_fields += 1
        self.conflicting_fields.append(name)
        self.values[name] = list(values)

class InconsistencyDetector:
    """Pairwise cross-document field comparison"""

    def __init__(self, document_service: DocumentService, extraction_provider: FieldExtractionProvider):
        self.document_service = document_service
        self.extraction_provider = extraction_provider

    async def detect_inconsistencies(self, application_id: str) -> InconsistencyResult:
        documents = await self.document_service.find_documents_by_application(application_id)
        if len(documents) < 2:
            logger.info(f"Application {application_id} has {len(documents)} document(s); nothing to compare")
            return InconsistencyResult(application_id=application_id)

        extracted = await asyncio.gather(
            *(extract_field_groups(self.extraction_provider, doc.document_id) for doc in documents)
        )
        field_sets = [fs for fs in extracted if fs is not None]
        result = self.analyze(application_id, field_sets)

        logger.info(
            f"Inconsistency detection for {application_id}: {len(result.inconsistencies)} found, "
            f"risk score {result.overall_risk_score:.1f}"
        )
        return result

    def analyze(self, application_id: str, field_sets: List[ExtractionResult]) -> InconsistencyResult:
        """Compare every unordered pair of already-extracted documents"""
        comparisons = []
        inconsistencies: List[Inconsistency] = []
        for first, second in combinations(field_sets, 2):
            comparison = self.compare_documents(first, second)
            comparisons.append(comparison)
            inconsistencies.extend(comparison.conflicts)

        return InconsistencyResult(
            application_id=application_id,
            inconsistencies=inconsistencies,
            overall_risk_score=calculate_risk_score(inconsistencies),
            document_comparisons=comparisons,
        )

    def compare_documents(self, doc1: ExtractionResult, doc2: ExtractionResult) -> DocumentComparison:
        tally = _PairTally()
        id1, id2 = doc1.document_id, doc2.document_id

        if doc1.personal and doc2.personal:
            p1, p2 = doc1.personal, doc2.personal
            if p1.names and p2.names:
                n1, n2 = p1.names[0], p2.names[0]
                if string_similarity(normalize(n1.full_name), normalize(n2.full_name)) > NAME_SIMILARITY_THRESHOLD:
                    tally.match("name")
                else:
                    tally.conflict(
                        "name",
                        ConflictingValue(field="name", document_id=id1, value=n1.full_name, confidence=n1.confidence),
                        ConflictingValue(field="name", document_id=id2, value=n2.full_name, confidence=n2.confidence),
                    )

            if p1.addresses and p2.addresses:
                a1, a2 = p1.addresses[0], p2.addresses[0]
                if string_similarity(normalize(a1.street_address), normalize(a2.street_address)) > ADDRESS_SIMILARITY_THRESHOLD:
                    tally.match("address")
                else:
                    tally.conflict(
                        "address",
                        ConflictingValue(field="address", document_id=id1, value=a1.street_address, confidence=a1.confidence),
                        ConflictingValue(field="address", document_id=id2, value=a2.street_address, confidence=a2.confidence),
                    )

            id_pair = _matching_identifiers(p1.identification_numbers, p2.identification_numbers)
            if id_pair:
                i1, i2 = id_pair
                d1, d2 = digits_only(i1.value), digits_only(i2.value)
                if d1 and d2:
                    if d1 == d2:
                        tally.match("identification_number")
                    else:
                        tally.conflict(
                            "identification_number",
                            ConflictingValue(field="identification_number", document_id=id1, value=i1.value, confidence=i1.confidence),
                            ConflictingValue(field="identification_number", document_id=id2, value=i2.value, confidence=i2.confidence),
                        )

        if doc1.business and doc2.business:
            b1, b2 = doc1.business, doc2.business
            business_values = [
                ConflictingValue(field="business_info", document_id=id1, value={"name": b1.business_name, "ein": b1.ein}, confidence=b1.confidence),
                ConflictingValue(field="business_info", document_id=id2, value={"name": b2.business_name, "ein": b2.ein}, confidence=b2.confidence),
            ]
            if b1.business_name and b2.business_name:
                if string_similarity(normalize(b1.business_name), normalize(b2.business_name)) > NAME_SIMILARITY_THRESHOLD:
                    tally.match("business_name")
                else:
                    tally.conflict("business_name", *business_values)

            e1, e2 = digits_only(b1.ein), digits_only(b2.ein)
            if e1 and e2:
                if e1 == e2:
                    tally.match("ein")
                else:
                    tally.conflict("ein", *business_values)

            if b1.business_address and b2.business_address:
                s1, s2 = b1.business_address.street_address, b2.business_address.street_address
                if string_similarity(normalize(s1), normalize(s2)) > ADDRESS_SIMILARITY_THRESHOLD:
                    tally.match("business_address")
                else:
                    # counted against similarity but not raised as a finding
                    tally.conflict("business_address")

        if doc1.financial and doc2.financial:
            f1, f2 = doc1.financial, doc2.financial
            if f1.accounts and f2.accounts:
                acc1, acc2 = f1.accounts[0], f2.accounts[0]
                n1, n2 = digits_only(acc1.account_number), digits_only(acc2.account_number)
                if n1 and n2:
                    if n1 == n2:
                        tally.match("account_number")
                    elif len(n1) >= 4 and len(n2) >= 4 and n1[-4:] == n2[-4:]:
                        tally.match("account_number_partial", weight=0.5)
                    else:
                        tally.conflict(
                            "account_number",
                            ConflictingValue(field="account_number", document_id=id1, value=acc1.account_number, confidence=acc1.confidence),
                            ConflictingValue(field="account_number", document_id=id2, value=acc2.account_number, confidence=acc2.confidence),
                        )

            if f1.amounts and f2.amounts:
                if any(abs(x.value - y.value) < 0.01 for x in f1.amounts for y in f2.amounts):
                    tally.match("amount")
                else:
                    # differing amounts are expected across document types
                    tally.total_fields += 1

        similarity = tally.matching_weight / tally.total_fields if tally.total_fields else 0.0
        return DocumentComparison(
            document1_id=id1,
            document2_id=id2,
            similarity_score=min(1.0, similarity),
            conflicts=self._build_inconsistencies(tally, [id1, id2]),
            matching_fields=tally.matching_fields,
            conflicting_fields=tally.conflicting_fields,
        )

    def _build_inconsistencies(self, tally: _PairTally, affected: List[str]) -> List[Inconsistency]:
        found = []
        conflicting = tally.conflicting_fields

        if "name" in conflicting:
            found.append(Inconsistency(
                type=InconsistencyType.NAME_MISMATCH,
                severity=Severity.HIGH,
                description="Name mismatch detected across documents",
                affected_documents=affected,
                conflicting_values=tally.values["name"],
                evidence=["Names do not match across documents"],
                confidence=0.9,
            ))
        if "address" in conflicting:
            found.append(Inconsistency(
                type=InconsistencyType.ADDRESS_MISMATCH,
                severity=Severity.MEDIUM,
                description="Address mismatch detected across documents",
                affected_documents=affected,
                conflicting_values=tally.values["address"],
                evidence=["Addresses do not match across documents"],
                confidence=0.85,
            ))
        if "identification_number" in conflicting:
            found.append(Inconsistency(
                type=InconsistencyType.ID_NUMBER_MISMATCH,
                severity=Severity.CRITICAL,
                description="Identification number mismatch detected",
                affected_documents=affected,
                conflicting_values=tally.values["identification_number"],
                evidence=["SSN/EIN does not match across documents"],
                confidence=0.95,
            ))
        if "business_name" in conflicting or "ein" in conflicting:
            values = tally.values.get("business_name") or tally.values["ein"]
            found.append(Inconsistency(
                type=InconsistencyType.BUSINESS_INFO_CONFLICT,
                severity=Severity.HIGH,
                description="Business information conflict detected",
                affected_documents=affected,
                conflicting_values=values,
                evidence=["Business name or EIN does not match across documents"],
                confidence=0.9,
            ))
        if "account_number" in conflicting:
            found.append(Inconsistency(
                type=InconsistencyType.AMOUNT_DISCREPANCY,
                severity=Severity.MEDIUM,
                description="Account number mismatch detected",
                affected_documents=affected,
                conflicting_values=tally.values["account_number"],
                evidence=["Account numbers do not match"],
                confidence=0.8,
            ))

        return found

    async def generate_discrepancy_report(self, application_id: str) -> str:
        result = await self.detect_inconsistencies(application_id)
        return format_discrepancy_report(result)

def format_discrepancy_report(result: InconsistencyResult) -> str:
    """Markdown summary of an inconsistency result grouped by severity"""
    lines = [
        f"# Discrepancy Report for Application {result.application_id}",
        "",
        f"**Overall Risk Score:** {result.overall_risk_score:.1f}/100",
        "",
        f"**Total Inconsistencies:** {len(result.inconsistencies)}",
        "",
    ]
    if not result.inconsistencies:
        lines.append("No inconsistencies detected across documents.")
        return "\n".join(lines) + "\n"

    for severity in SEVERITY_ORDER:
        items = [i for i in result.inconsistencies if i.severity == severity]
        if not items:
            continue
        lines.append(f"## {severity.value} Severity ({len(items)})")
        lines.append("")
        for item in items:
            lines.append(f"### {item.type.value}")
            lines.append(f"**Description:** {item.description}")
            lines.append(f"**Confidence:** {item.confidence * 100:.1f}%")
            lines.append(f"**Affected Documents:** {', '.join(item.affected_documents)}")
            lines.append("**Evidence:**")
            lines.extend(f"- {e}" for e in item.evidence)
            lines.append("")

    return "\n".join(lines) + "\n"
