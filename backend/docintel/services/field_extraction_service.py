"""
Structured Field Extraction Service

Pulls personal, business and financial fields out of the key/value pairs of a
document's layout analysis.
"""
from typing import Any, Dict, List, Optional, Protocol, Union
import asyncio
import logging
import re

from docintel.models.analysis import KeyValuePair, LayoutAnalysis
from docintel.models.extraction import (
    BusinessInfo,
    ContactInfo,
    ExtractedAccount,
    ExtractedAddress,
    ExtractedAmount,
    ExtractedName,
    ExtractionResult,
    FieldCategory,
    FinancialInfo,
    IdentificationNumber,
    PersonalInfo,
)
from docintel.services.layout_analysis_service import LayoutAnalysisProvider

logger = logging.getLogger(__name__)

ExtractedGroup = Union[PersonalInfo, BusinessInfo, FinancialInfo]

_AMOUNT_RE = re.compile(r"^-?\d+(\.\d+)?$")
_EIN_KEY_RE = re.compile(r"\bein\b|employer identification")
_PERSON_NAME_KEY_RE = re.compile(
    r"^(?:(?:full|legal|applicant|borrower|co-borrower|account holder|taxpayer|customer|owner|primary)\s+)?name\b"
)

class FieldExtractionProvider(Protocol):
    async def extract(self, document_id: str, category: FieldCategory) -> ExtractedGroup:
        ...

def parse_monetary_value(text: Optional[str]) -> Optional[float]:
    """Parse "$12,345.67" style values; only positive amounts count"""
    if not text:
        return None
    cleaned = re.sub(r"[$,\s]", "", text)
    if not _AMOUNT_RE.match(cleaned):
        return None
    value = float(cleaned)
    return value if value > 0 else None

async def extract_field_groups(provider: FieldExtractionProvider, document_id: str) -> Optional[ExtractionResult]:
    """
    Extract all three field groups, tolerating per-group failures

    Returns:
        The groups that succeeded (failed ones are None), or None when every group failed
    """
    categories = [FieldCategory.FINANCIAL, FieldCategory.PERSONAL, FieldCategory.BUSINESS]
    outcomes = await asyncio.gather(
        *(provider.extract(document_id, c) for c in categories),
        return_exceptions=True
    )

    groups: Dict[FieldCategory, Any] = {}
    for category, outcome in zip(categories, outcomes):
        if isinstance(outcome, Exception):
            logger.warning(f"{category.value} extraction failed for {document_id}: {outcome}")
            groups[category] = None
        else:
            groups[category] = outcome

    if all(g is None for g in groups.values()):
        logger.error(f"All extractions failed for {document_id}")
        return None

    return ExtractionResult(
        document_id=document_id,
        personal=groups[FieldCategory.PERSONAL],
        business=groups[FieldCategory.BUSINESS],
        financial=groups[FieldCategory.FINANCIAL],
    )

def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0

def _split_name(full_name: str) -> ExtractedName:
    parts = full_name.split()
    return ExtractedName(
        full_name=full_name,
        first_name=parts[0] if parts else None,
        last_name=parts[-1] if len(parts) > 1 else None,
    )

class FieldExtractionService:
    """Deterministic key/value extraction over stored layout analyses"""

    def __init__(self, layout_provider: LayoutAnalysisProvider):
        self.layout_provider = layout_provider

    async def extract(self, document_id: str, category: FieldCategory) -> ExtractedGroup:
        layout = await self.layout_provider.get_layout(document_id)
        category = FieldCategory(category)
        if category == FieldCategory.PERSONAL:
            return self.extract_personal_info(layout)
        if category == FieldCategory.BUSINESS:
            return self.extract_business_info(layout)
        return self.extract_financial_data(layout)

    async def extract_all(self, document_id: str) -> ExtractionResult:
        layout = await self.layout_provider.get_layout(document_id)
        return ExtractionResult(
            document_id=document_id,
            personal=self.extract_personal_info(layout),
            business=self.extract_business_info(layout),
            financial=self.extract_financial_data(layout),
        )

    # Personal

    def extract_personal_info(self, layout: LayoutAnalysis) -> PersonalInfo:
        names: List[ExtractedName] = []
        addresses: List[ExtractedAddress] = []
        ids: List[IdentificationNumber] = []
        contact = ContactInfo()
        contact_confidences: List[float] = []
        date_of_birth = None

        for kvp in layout.key_value_pairs:
            key = kvp.key.lower()
            value = (kvp.value or "").strip()
            if not value:
                continue

            if _PERSON_NAME_KEY_RE.match(key.strip()):
                name = _split_name(value)
                name.confidence = kvp.confidence
                names.append(name)
            elif "address" in key and "business" not in key and "email" not in key:
                addresses.append(ExtractedAddress(street_address=value, confidence=kvp.confidence))
            elif "ssn" in key or "social security" in key:
                ids.append(IdentificationNumber(type="SSN", value=value, confidence=kvp.confidence))
            elif "phone" in key or "tel" in key:
                contact.phone_numbers.append(value)
                contact_confidences.append(kvp.confidence)
            elif "email" in key:
                contact.email_addresses.append(value)
                contact_confidences.append(kvp.confidence)
            elif ("birth" in key or "dob" in key) and date_of_birth is None:
                date_of_birth = value

        confidence = _mean(
            [n.confidence for n in names]
            + [a.confidence for a in addresses]
            + [i.confidence for i in ids]
            + contact_confidences
        )
        return PersonalInfo(
            names=names,
            addresses=addresses,
            identification_numbers=ids,
            contact_info=contact,
            date_of_birth=date_of_birth,
            confidence=confidence,
        )

    # Business

    def extract_business_info(self, layout: LayoutAnalysis) -> BusinessInfo:
        business_name = self._first(layout, lambda k: ("business" in k and "name" in k) or "company" in k)
        ein = self._first(layout, lambda k: bool(_EIN_KEY_RE.search(k)))
        address = self._first(layout, lambda k: "business" in k and "address" in k)
        business_type = self._first(layout, lambda k: ("business" in k and "type" in k) or "entity type" in k)

        revenue = None
        for kvp in layout.key_value_pairs:
            key = kvp.key.lower()
            if "revenue" in key or "income" in key:
                amount = parse_monetary_value(kvp.value)
                if amount is not None:
                    revenue = amount
                    break

        found = [f for f in (business_name, ein, address) if f is not None]
        return BusinessInfo(
            business_name=business_name.value if business_name else None,
            ein=ein.value if ein else None,
            business_address=(
                ExtractedAddress(street_address=address.value, confidence=address.confidence)
                if address else None
            ),
            business_type=business_type.value if business_type else None,
            annual_revenue=revenue,
            confidence=_mean([f.confidence for f in found]),
        )

    # Financial

    def extract_financial_data(self, layout: LayoutAnalysis) -> FinancialInfo:
        amounts: List[ExtractedAmount] = []
        accounts: List[ExtractedAccount] = []
        balances: List[ExtractedAmount] = []

        for kvp in layout.key_value_pairs:
            key = kvp.key.lower()
            value = (kvp.value or "").strip()

            # account/routing/licence numbers are identifiers, not money
            amount = None if "number" in key else parse_monetary_value(value)
            if amount is not None:
                entry = ExtractedAmount(value=amount, context=kvp.key, confidence=kvp.confidence)
                amounts.append(entry)
                if "balance" in key or "total" in key:
                    balances.append(entry)

            if "account" in key and "number" in key and value:
                accounts.append(ExtractedAccount(account_number=value, confidence=kvp.confidence))
            elif "routing" in key and "number" in key and accounts:
                accounts[-1].routing_number = value
            elif "bank" in key and "name" in key and accounts:
                accounts[-1].bank_name = value

        confidence = _mean(
            [a.confidence for a in amounts] + [a.confidence for a in accounts] + [b.confidence for b in balances]
        )
        return FinancialInfo(amounts=amounts, accounts=accounts, balances=balances, confidence=confidence)

    @staticmethod
    def _first(layout: LayoutAnalysis, predicate) -> Optional[KeyValuePair]:
        for kvp in layout.key_value_pairs:
            if kvp.value and kvp.value.strip() and predicate(kvp.key.lower()):
                return kvp
        return None
