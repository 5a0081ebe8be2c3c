"""Unit tests for structured field extraction."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from fakes import FakeExtractionProvider
from factories import make_document, make_extraction, make_layout
from docintel.core.exceptions import AnalysisUnavailableError, ExtractionError
from docintel.models.extraction import BusinessInfo, FieldCategory, PersonalInfo
from docintel.services.field_extraction_service import (
    FieldExtractionService,
    extract_field_groups,
    parse_monetary_value,
)
from docintel.services.inconsistency_detector import InconsistencyDetector
from docintel.services.llm_extraction_service import LLMExtractionService

W9_PAIRS = [
    ("Name", "John A Smith", 0.96),
    ("Address", "123 Main Street, Springfield", 0.92),
    ("SSN", "123-45-6789", 0.98),
    ("Business Name", "Acme Holdings LLC", 0.94),
    ("EIN", "12-3456789", 0.97),
    ("Business Address", "1 Market Plaza", 0.9),
    ("Phone", "555-0100", 0.9),
    ("Email", "john@example.com", 0.88),
    ("Date of Birth", "1980-04-02", 0.9),
]

STATEMENT_PAIRS = [
    ("Account Number", "000123456789", 0.97),
    ("Routing Number", "021000021", 0.95),
    ("Bank Name", "First National", 0.9),
    ("Opening Balance", "$10,000.00", 0.93),
    ("Deposits", "$2,450.50", 0.91),
    ("Fees", "-25.00", 0.9),
]


@pytest.fixture
def extractor(layout_provider):
    return FieldExtractionService(layout_provider)


class TestParseMonetaryValue:
    """Amount parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("$12,345.67", 12345.67),
        ("1500", 1500.0),
        ("-25.00", None),
        ("0", None),
        ("N/A", None),
        ("", None),
        (None, None),
    ])
    def test_parse(self, text, expected):
        assert parse_monetary_value(text) == expected


class TestLayoutExtraction:
    """Key/value extraction per group."""

    def test_personal_info(self, extractor):
        personal = extractor.extract_personal_info(make_layout("doc_a", pairs=W9_PAIRS))

        assert [n.full_name for n in personal.names] == ["John A Smith"]
        assert personal.names[0].first_name == "John"
        assert personal.names[0].last_name == "Smith"
        assert [a.street_address for a in personal.addresses] == ["123 Main Street, Springfield"]
        assert [(i.type, i.value) for i in personal.identification_numbers] == [("SSN", "123-45-6789")]
        assert personal.contact_info.phone_numbers == ["555-0100"]
        assert personal.contact_info.email_addresses == ["john@example.com"]
        assert personal.date_of_birth == "1980-04-02"
        assert 0.88 <= personal.confidence <= 0.98

    def test_business_info(self, extractor):
        business = extractor.extract_business_info(make_layout("doc_a", pairs=W9_PAIRS))

        assert business.business_name == "Acme Holdings LLC"
        assert business.ein == "12-3456789"
        assert business.business_address.street_address == "1 Market Plaza"
        assert business.confidence == pytest.approx((0.94 + 0.97 + 0.9) / 3)

    def test_financial_data(self, extractor):
        financial = extractor.extract_financial_data(make_layout("doc_a", pairs=STATEMENT_PAIRS))

        assert [a.value for a in financial.amounts] == [10000.0, 2450.5]
        assert [b.context for b in financial.balances] == ["Opening Balance"]
        assert len(financial.accounts) == 1
        account = financial.accounts[0]
        assert account.account_number == "000123456789"
        assert account.routing_number == "021000021"
        assert account.bank_name == "First National"

    def test_empty_layout(self, extractor):
        layout = make_layout("doc_a")

        assert extractor.extract_personal_info(layout).confidence == 0.0
        assert extractor.extract_business_info(layout).business_name is None
        assert extractor.extract_financial_data(layout).amounts == []

    def test_only_person_name_keys_are_personal_names(self, extractor):
        layout = make_layout("doc_a", pairs=[
            ("Bank Name", "First National Bank", 0.95),
            ("Employer Name", "Globex Corporation", 0.95),
            ("Business Name", "Acme Holdings LLC", 0.95),
            ("Account Holder Name", "John Smith", 0.95),
            ("Name (as shown on your income tax return)", "John A Smith", 0.9),
        ])

        personal = extractor.extract_personal_info(layout)

        assert [n.full_name for n in personal.names] == ["John Smith", "John A Smith"]

    def test_ein_is_business_only(self, extractor):
        layout = make_layout("doc_a", pairs=[("Name", "John Smith", 0.95), ("EIN", "98-7654321", 0.95)])

        assert extractor.extract_personal_info(layout).identification_numbers == []
        assert extractor.extract_business_info(layout).ein == "98-7654321"

    @pytest.mark.asyncio
    async def test_extract_by_category(self, extractor, layout_provider):
        await layout_provider.save_layout(make_layout("doc_a", pairs=W9_PAIRS))

        personal = await extractor.extract("doc_a", FieldCategory.PERSONAL)
        business = await extractor.extract("doc_a", "business")

        assert isinstance(personal, PersonalInfo)
        assert isinstance(business, BusinessInfo)

    @pytest.mark.asyncio
    async def test_extract_all(self, extractor, layout_provider):
        await layout_provider.save_layout(make_layout("doc_a", pairs=W9_PAIRS + STATEMENT_PAIRS))

        result = await extractor.extract_all("doc_a")

        assert result.document_id == "doc_a"
        assert result.has_data() is True
        assert result.financial.accounts[0].account_number == "000123456789"

    @pytest.mark.asyncio
    async def test_missing_layout(self, extractor):
        with pytest.raises(AnalysisUnavailableError):
            await extractor.extract("doc_missing", FieldCategory.PERSONAL)


class TestLayoutExtractionIntoDetection:
    """Layout extraction feeding cross-document comparison."""

    @pytest.fixture
    def detector(self, document_service, extractor):
        return InconsistencyDetector(document_service, extractor)

    async def _analyze(self, detector, extractor, layout_provider, layouts):
        for layout in layouts:
            await layout_provider.save_layout(layout)
        field_sets = [await extractor.extract_all(layout.document_id) for layout in layouts]
        return detector.analyze("app_1", field_sets)

    @pytest.mark.asyncio
    async def test_ssn_and_ein_documents_do_not_conflict(self, detector, extractor, layout_provider):
        result = await self._analyze(detector, extractor, layout_provider, [
            make_layout("doc_a", pairs=[("Name", "John Smith", 0.95), ("SSN", "123-45-6789", 0.95)]),
            make_layout("doc_b", pairs=[("Name", "John Smith", 0.95), ("EIN", "98-7654321", 0.95)]),
        ])

        assert result.inconsistencies == []

    @pytest.mark.asyncio
    async def test_bank_name_is_not_the_applicant(self, detector, extractor, layout_provider):
        result = await self._analyze(detector, extractor, layout_provider, [
            make_layout("doc_a", pairs=[("Name", "John Smith", 0.95)]),
            make_layout("doc_b", pairs=[
                ("Bank Name", "First National Bank", 0.95),
                ("Account Holder Name", "John Smith", 0.95),
            ]),
        ])

        assert result.inconsistencies == []
        assert result.document_comparisons[0].matching_fields == ["name"]

    @pytest.mark.asyncio
    async def test_differing_ssns_still_conflict(self, detector, extractor, layout_provider):
        result = await self._analyze(detector, extractor, layout_provider, [
            make_layout("doc_a", pairs=[("SSN", "123-45-6789", 0.95)]),
            make_layout("doc_b", pairs=[("EIN", "98-7654321", 0.95), ("SSN", "987-65-4321", 0.95)]),
        ])

        assert [i.type for i in result.inconsistencies] == ["ID_NUMBER_MISMATCH"]


class TestExtractFieldGroups:
    """Concurrent extraction of all groups with partial failures."""

    @pytest.mark.asyncio
    async def test_all_groups(self):
        provider = FakeExtractionProvider(results={
            "doc_a": make_extraction("doc_a", name="John Smith", ein="12-3456789", amounts=[1500.0]),
        })

        result = await extract_field_groups(provider, "doc_a")

        assert result.personal.names[0].full_name == "John Smith"
        assert result.business.ein == "12-3456789"
        assert result.financial.amounts[0].value == 1500.0
        assert {c for _, c in provider.calls} == set(FieldCategory)

    @pytest.mark.asyncio
    async def test_failed_group_is_none(self):
        provider = FakeExtractionProvider(results={
            "doc_a": make_extraction("doc_a", name="John Smith", ein="12-3456789", amounts=[1500.0]),
        }, failures={("doc_a", FieldCategory.BUSINESS): ExtractionError("rate limited")})

        result = await extract_field_groups(provider, "doc_a")

        assert result.business is None
        assert result.personal is not None
        assert result.financial is not None

    @pytest.mark.asyncio
    async def test_all_groups_failing(self):
        assert await extract_field_groups(FakeExtractionProvider(), "doc_a") is None


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestLLMExtraction:
    """Azure OpenAI backed extraction with a mocked client."""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def llm(self, document_service, client):
        return LLMExtractionService(document_service, client=client)

    async def _save(self, document_service, ocr_text="W-9 Request for Taxpayer Identification Number"):
        document = make_document("doc_a")
        document.ocr_text = ocr_text
        await document_service.save_document(document)

    @pytest.mark.asyncio
    async def test_fenced_json_response(self, llm, client, document_service):
        await self._save(document_service)
        client.chat.completions.create.return_value = _completion(
            'Here is the data:\n```json\n{"business_name": "Acme Holdings LLC", "ein": "12-3456789", "confidence": 0.9}\n```'
        )

        business = await llm.extract("doc_a", FieldCategory.BUSINESS)

        assert isinstance(business, BusinessInfo)
        assert business.business_name == "Acme Holdings LLC"
        assert business.confidence == 0.9
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert "W-9 Request for Taxpayer Identification Number" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_bare_json_response(self, llm, client, document_service):
        await self._save(document_service)
        client.chat.completions.create.return_value = _completion(
            '{"names": [{"full_name": "John Smith", "confidence": 0.95}], "confidence": 0.95}'
        )

        personal = await llm.extract("doc_a", FieldCategory.PERSONAL)

        assert personal.names[0].full_name == "John Smith"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "no json here", "```json\n{not valid}\n```", "[1, 2]"])
    async def test_unusable_response(self, llm, client, document_service, content):
        await self._save(document_service)
        client.chat.completions.create.return_value = _completion(content)

        with pytest.raises(ExtractionError):
            await llm.extract("doc_a", FieldCategory.FINANCIAL)

    @pytest.mark.asyncio
    async def test_api_failure_is_wrapped(self, llm, client, document_service):
        await self._save(document_service)
        client.chat.completions.create.side_effect = RuntimeError("429 Too Many Requests")

        with pytest.raises(ExtractionError, match="LLM extraction failed"):
            await llm.extract("doc_a", FieldCategory.PERSONAL)

    @pytest.mark.asyncio
    async def test_document_without_ocr_text(self, llm, client, document_service):
        await self._save(document_service, ocr_text=None)

        with pytest.raises(ExtractionError):
            await llm.extract("doc_a", FieldCategory.PERSONAL)
        client.chat.completions.create.assert_not_called()
