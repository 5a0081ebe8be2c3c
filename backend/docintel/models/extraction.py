"""
Extracted Field Models
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum

class FieldCategory(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"
    FINANCIAL = "financial"

class ExtractedName(BaseModel):
    full_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    confidence: float = 0.0

class ExtractedAddress(BaseModel):
    street_address: str
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    confidence: float = 0.0

class IdentificationNumber(BaseModel):
    type: str = Field(..., description="SSN, EIN, TIN, DRIVERS_LICENSE or PASSPORT")
    value: str
    confidence: float = 0.0

class ContactInfo(BaseModel):
    phone_numbers: List[str] = Field(default_factory=list)
    email_addresses: List[str] = Field(default_factory=list)

class PersonalInfo(BaseModel):
    names: List[ExtractedName] = Field(default_factory=list)
    addresses: List[ExtractedAddress] = Field(default_factory=list)
    identification_numbers: List[IdentificationNumber] = Field(default_factory=list)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    date_of_birth: Optional[str] = None
    confidence: float = 0.0

class BusinessInfo(BaseModel):
    business_name: Optional[str] = None
    ein: Optional[str] = None
    business_address: Optional[ExtractedAddress] = None
    business_type: Optional[str] = None
    annual_revenue: Optional[float] = None
    confidence: float = 0.0

class ExtractedAmount(BaseModel):
    value: float
    currency: str = "USD"
    context: str = ""
    confidence: float = 0.0

class ExtractedAccount(BaseModel):
    account_number: str
    account_type: Optional[str] = None
    bank_name: Optional[str] = None
    routing_number: Optional[str] = None
    confidence: float = 0.0

class FinancialInfo(BaseModel):
    amounts: List[ExtractedAmount] = Field(default_factory=list)
    accounts: List[ExtractedAccount] = Field(default_factory=list)
    balances: List[ExtractedAmount] = Field(default_factory=list)
    confidence: float = 0.0

class ExtractionResult(BaseModel):
    """All three field groups for one document"""
    document_id: str
    personal: Optional[PersonalInfo] = None
    business: Optional[BusinessInfo] = None
    financial: Optional[FinancialInfo] = None

    @property
    def confidence(self) -> float:
        scores = [g.confidence for g in (self.personal, self.business, self.financial) if g is not None]
        return sum(scores) / len(scores) if scores else 0.0

    def has_data(self) -> bool:
        return bool(
            (self.personal and (self.personal.names or self.personal.addresses or self.personal.identification_numbers))
            or (self.business and (self.business.business_name or self.business.ein))
            or (self.financial and (self.financial.amounts or self.financial.accounts))
        )
