"""Unit tests for document quality scoring."""

import pytest

from factories import make_document, make_layout, make_lines
from docintel.core.exceptions import AnalysisUnavailableError
from docintel.models.analysis import QualityCategory
from docintel.services.document_quality_service import DocumentQualityService


@pytest.fixture
def quality(document_service, layout_provider):
    return DocumentQualityService(document_service, layout_provider)


def _categories(assessment):
    return [QualityCategory(r.category) for r in assessment.recommendations]


class TestAssessLayout:
    """Scoring of a single layout."""

    def test_clean_scan(self, quality):
        assessment = quality.assess_layout(make_layout("doc_a", pairs=[("Name", "John Smith", 0.95)]))

        assert assessment.overall_score == 100
        assert assessment.is_acceptable is True
        assert assessment.recommendations == []
        assert assessment.image_quality.clarity_score == pytest.approx(0.95)

    def test_low_resolution_and_skew(self, quality):
        layout = make_layout("doc_a", pairs=[("Name", "John Smith", 0.95)], width=800, height=1000, angle=12)

        assessment = quality.assess_layout(layout)

        assert assessment.image_quality.score == 50
        assert assessment.overall_score == 85
        assert _categories(assessment) == [QualityCategory.RESOLUTION, QualityCategory.ORIENTATION]
        assert assessment.recommendations[1].issue == "Document is rotated (12.0 degrees)"

    def test_blurry_lines(self, quality):
        layout = make_layout("doc_a", pairs=[("Name", "John Smith", 0.95)], lines=make_lines(8, confidence=0.4))

        assessment = quality.assess_layout(layout)

        assert assessment.image_quality.clarity_acceptable is False
        assert assessment.image_quality.score == 60
        assert QualityCategory.CLARITY in _categories(assessment)

    def test_missing_required_fields_for_document_type(self, quality):
        layout = make_layout("doc_a", pairs=[("Name", "John Smith", 0.95), ("SSN", "123-45-6789", 0.95)])

        assessment = quality.assess_layout(layout, "W9")

        assert assessment.completeness.missing_fields == ["Business name", "Tax classification", "Address", "EIN"]
        assert assessment.completeness.score == 50
        assert assessment.overall_score == 80
        assert assessment.recommendations[0].issue == (
            "Missing required fields: Business name, Tax classification, Address, EIN"
        )

    def test_empty_document_is_not_acceptable(self, quality):
        assessment = quality.assess_layout(make_layout("doc_a", lines=[], pages=0))

        assert assessment.completeness.has_all_pages is False
        assert assessment.readability.text_extractable is False
        assert assessment.readability.score == 20
        assert assessment.overall_score == 56
        assert assessment.is_acceptable is False
        assert _categories(assessment) == [
            QualityCategory.COMPLETENESS, QualityCategory.READABILITY, QualityCategory.COMPLETENESS,
        ]
        assert assessment.recommendations[-1].issue == "Overall quality score (56) is below acceptable threshold"

    def test_many_low_confidence_fields(self, quality):
        pairs = [(f"Field {i}", "value", 0.5) for i in range(4)]

        assessment = quality.assess_layout(make_layout("doc_a", pairs=pairs))

        assert assessment.readability.low_confidence_areas == 4
        assert assessment.readability.score == 50
        assert "Multiple areas have low confidence scores" in [r.issue for r in assessment.recommendations]


class TestStoredDocuments:
    """Assessment and feedback over stored layouts."""

    @pytest.mark.asyncio
    async def test_assess_quality_uses_document_type(self, quality, document_service, layout_provider):
        await document_service.save_document(make_document("doc_a", document_type="BANK_STATEMENT"))
        await layout_provider.save_layout(make_layout("doc_a", pairs=[
            ("Account Number", "000123456789", 0.95),
            ("Statement Date", "2024-01-31", 0.95),
            ("Closing Balance", "$12,450.00", 0.95),
        ]))

        assessment = await quality.assess_quality("doc_a")

        assert assessment.completeness.has_required_fields is True
        assert assessment.overall_score == 100

    @pytest.mark.asyncio
    async def test_missing_layout(self, quality, document_service):
        await document_service.save_document(make_document("doc_a"))

        with pytest.raises(AnalysisUnavailableError):
            await quality.assess_quality("doc_a")

    @pytest.mark.asyncio
    async def test_real_time_feedback_for_readable_document(self, quality, layout_provider):
        await layout_provider.save_layout(make_layout("doc_a", pairs=[("Name", "John Smith", 0.95)]))

        feedback = await quality.get_real_time_feedback("doc_a")

        assert feedback.quality_score == 100
        assert feedback.can_proceed is True
        assert feedback.immediate_issues == []

    @pytest.mark.asyncio
    async def test_real_time_feedback_for_blank_document(self, quality, layout_provider):
        await layout_provider.save_layout(make_layout("doc_a", lines=[], pages=0))

        feedback = await quality.get_real_time_feedback("doc_a")

        assert feedback.quality_score == 0
        assert feedback.can_proceed is False
        assert feedback.immediate_issues == [
            "Document appears to be empty or unreadable",
            "Text quality is poor",
            "No pages detected",
        ]
