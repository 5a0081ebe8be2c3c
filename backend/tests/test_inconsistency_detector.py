"""Unit tests for cross-document inconsistency detection."""

import pytest

from fakes import FakeExtractionProvider
from factories import make_document, make_extraction
from docintel.core.exceptions import ExtractionError
from docintel.models.extraction import FieldCategory, IdentificationNumber
from docintel.models.inconsistency import Inconsistency, InconsistencyType, Severity
from docintel.services.inconsistency_detector import (
    InconsistencyDetector,
    calculate_risk_score,
    format_discrepancy_report,
)


def _types(result):
    return [i.type for i in result.inconsistencies]


@pytest.fixture
def detector(document_service):
    return InconsistencyDetector(document_service, FakeExtractionProvider())


class TestRiskScore:
    """Aggregate risk score over findings."""

    def test_no_findings_scores_zero(self):
        assert calculate_risk_score([]) == 0.0

    def test_single_critical_finding_at_full_confidence(self):
        finding = Inconsistency(
            type=InconsistencyType.ID_NUMBER_MISMATCH,
            severity=Severity.CRITICAL,
            description="Identification number mismatch detected",
            affected_documents=["doc_a", "doc_b"],
            confidence=1.0,
        )
        assert calculate_risk_score([finding]) == pytest.approx(40.0)

    def test_score_is_mean_over_findings(self):
        findings = [
            Inconsistency(type=InconsistencyType.NAME_MISMATCH, severity=Severity.HIGH,
                          description="", affected_documents=[], confidence=1.0),
            Inconsistency(type=InconsistencyType.ADDRESS_MISMATCH, severity=Severity.LOW,
                          description="", affected_documents=[], confidence=1.0),
        ]
        assert calculate_risk_score(findings) == pytest.approx(20.0)


class TestPairwiseComparison:
    """Field-level comparison of two documents."""

    def test_near_name_with_same_ssn(self, detector):
        """John Smith vs Jon Smith with one SSN: a name mismatch only."""
        result = detector.analyze("app_1", [
            make_extraction("doc_a", name="John Smith", ssn="123-45-6789"),
            make_extraction("doc_b", name="Jon Smith", ssn="123-45-6789"),
        ])

        assert _types(result) == [InconsistencyType.NAME_MISMATCH]
        finding = result.inconsistencies[0]
        assert finding.severity == Severity.HIGH
        assert finding.confidence == 0.9
        assert finding.affected_documents == ["doc_a", "doc_b"]
        assert [v.value for v in finding.conflicting_values] == ["John Smith", "Jon Smith"]

    def test_identical_ids_never_conflict(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", ssn="123-45-6789"),
            make_extraction("doc_b", ssn="123 45 6789"),
        ])

        assert InconsistencyType.ID_NUMBER_MISMATCH not in _types(result)
        assert result.document_comparisons[0].matching_fields == ["identification_number"]
        assert result.document_comparisons[0].similarity_score == 1.0

    def test_differing_ids_are_critical(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", ssn="123-45-6789"),
            make_extraction("doc_b", ssn="987-65-4321"),
        ])

        assert _types(result) == [InconsistencyType.ID_NUMBER_MISMATCH]
        finding = result.inconsistencies[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.confidence == 0.95
        assert result.overall_risk_score == pytest.approx(38.0)

    def test_id_without_digits_is_skipped(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", ssn="N/A"),
            make_extraction("doc_b", ssn="987-65-4321"),
        ])

        assert result.inconsistencies == []
        assert result.document_comparisons[0].similarity_score == 0.0

    def test_ids_of_different_types_are_not_compared(self, detector):
        doc_a = make_extraction("doc_a", name="John Smith", ssn="123-45-6789")
        doc_b = make_extraction("doc_b", name="John Smith")
        doc_b.personal.identification_numbers = [
            IdentificationNumber(type="EIN", value="98-7654321", confidence=0.9),
        ]

        result = detector.analyze("app_1", [doc_a, doc_b])

        assert result.inconsistencies == []
        assert result.document_comparisons[0].matching_fields == ["name"]

    def test_ids_are_paired_by_type(self, detector):
        doc_a = make_extraction("doc_a", ssn="123-45-6789")
        doc_b = make_extraction("doc_b", ssn="987-65-4321")
        doc_b.personal.identification_numbers.insert(
            0, IdentificationNumber(type="EIN", value="98-7654321", confidence=0.9)
        )

        result = detector.analyze("app_1", [doc_a, doc_b])

        assert _types(result) == [InconsistencyType.ID_NUMBER_MISMATCH]
        values = [v.value for v in result.inconsistencies[0].conflicting_values]
        assert values == ["123-45-6789", "987-65-4321"]

    def test_address_mismatch(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", address="123 Main Street, Springfield"),
            make_extraction("doc_b", address="98 Oak Avenue, Shelbyville"),
        ])

        assert _types(result) == [InconsistencyType.ADDRESS_MISMATCH]
        assert result.inconsistencies[0].severity == Severity.MEDIUM

    def test_business_name_and_ein_conflict_yield_one_finding(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", business_name="Acme Holdings LLC", ein="12-3456789"),
            make_extraction("doc_b", business_name="Zenith Trading Co", ein="98-7654321"),
        ])

        assert _types(result) == [InconsistencyType.BUSINESS_INFO_CONFLICT]
        finding = result.inconsistencies[0]
        assert finding.severity == Severity.HIGH
        assert finding.conflicting_values[0].value == {"name": "Acme Holdings LLC", "ein": "12-3456789"}

    def test_business_address_conflict_is_not_a_finding(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", business_name="Acme LLC", business_address="1 Market Plaza"),
            make_extraction("doc_b", business_name="Acme LLC", business_address="77 Harbor Road"),
        ])

        comparison = result.document_comparisons[0]
        assert result.inconsistencies == []
        assert comparison.conflicting_fields == ["business_address"]
        assert comparison.similarity_score == pytest.approx(0.5)

    def test_account_number_last_four_is_partial_match(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", account_number="000123456789"),
            make_extraction("doc_b", account_number="****6789"),
        ])

        comparison = result.document_comparisons[0]
        assert result.inconsistencies == []
        assert comparison.matching_fields == ["account_number_partial"]
        assert comparison.similarity_score == pytest.approx(0.5)

    def test_account_number_conflict(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", account_number="111122223333"),
            make_extraction("doc_b", account_number="444455556666"),
        ])

        assert _types(result) == [InconsistencyType.AMOUNT_DISCREPANCY]
        assert result.inconsistencies[0].confidence == 0.8

    def test_differing_amounts_only_lower_similarity(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", amounts=[1500.00]),
            make_extraction("doc_b", amounts=[2750.00]),
        ])

        assert result.inconsistencies == []
        assert result.document_comparisons[0].similarity_score == 0.0

    def test_every_unordered_pair_is_compared(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", name="John Smith"),
            make_extraction("doc_b", name="John Smith"),
            make_extraction("doc_c", name="John Smith"),
        ])

        pairs = {(c.document1_id, c.document2_id) for c in result.document_comparisons}
        assert pairs == {("doc_a", "doc_b"), ("doc_a", "doc_c"), ("doc_b", "doc_c")}


class TestDetectInconsistencies:
    """End-to-end detection over stored documents."""

    @pytest.mark.asyncio
    async def test_fewer_than_two_documents(self, document_service):
        await document_service.save_document(make_document("doc_a"))
        detector = InconsistencyDetector(document_service, FakeExtractionProvider())

        result = await detector.detect_inconsistencies("app_1")

        assert result.inconsistencies == []
        assert result.overall_risk_score == 0.0

    @pytest.mark.asyncio
    async def test_partial_extraction_failure_is_tolerated(self, document_service):
        for doc_id in ("doc_a", "doc_b"):
            await document_service.save_document(make_document(doc_id))
        provider = FakeExtractionProvider(
            results={
                "doc_a": make_extraction("doc_a", ssn="123-45-6789", account_number="111122223333"),
                "doc_b": make_extraction("doc_b", ssn="987-65-4321", account_number="111122223333"),
            },
            failures={("doc_b", FieldCategory.PERSONAL): ExtractionError("OCR timeout")},
        )
        detector = InconsistencyDetector(document_service, provider)

        result = await detector.detect_inconsistencies("app_1")

        assert result.inconsistencies == []
        assert len(result.document_comparisons) == 1

    @pytest.mark.asyncio
    async def test_document_with_no_groups_is_excluded(self, document_service):
        for doc_id in ("doc_a", "doc_b", "doc_c"):
            await document_service.save_document(make_document(doc_id))
        provider = FakeExtractionProvider(results={
            "doc_a": make_extraction("doc_a", ssn="123-45-6789"),
            "doc_b": make_extraction("doc_b", ssn="987-65-4321"),
        })
        detector = InconsistencyDetector(document_service, provider)

        result = await detector.detect_inconsistencies("app_1")

        assert len(result.document_comparisons) == 1
        assert _types(result) == [InconsistencyType.ID_NUMBER_MISMATCH]


class TestDiscrepancyReport:
    """Markdown report formatting."""

    def test_report_without_findings(self, detector):
        report = format_discrepancy_report(detector.analyze("app_1", []))
        assert "# Discrepancy Report for Application app_1" in report
        assert "No inconsistencies detected across documents." in report

    def test_report_groups_by_severity(self, detector):
        result = detector.analyze("app_1", [
            make_extraction("doc_a", name="John Smith", ssn="123-45-6789"),
            make_extraction("doc_b", name="Maria Lopez", ssn="987-65-4321"),
        ])
        report = format_discrepancy_report(result)

        assert report.index("## CRITICAL Severity (1)") < report.index("## HIGH Severity (1)")
        assert "### ID_NUMBER_MISMATCH" in report
        assert "**Affected Documents:** doc_a, doc_b" in report
        assert "- SSN/EIN does not match across documents" in report
