"""
Field Extraction Prompts
"""
from docintel.models.extraction import FieldCategory

def get_extraction_prompt(category: FieldCategory) -> str:
    """
    Get extraction prompt for a field category

    Args:
        category: Which field group to extract

    Returns:
        Extraction prompt
    """
    prompts = {
        FieldCategory.PERSONAL: _get_personal_prompt(),
        FieldCategory.BUSINESS: _get_business_prompt(),
        FieldCategory.FINANCIAL: _get_financial_prompt(),
    }
    return prompts[FieldCategory(category)]

def _get_personal_prompt() -> str:
    return """Extract the personal information of the applicant from this loan document and return as JSON.

FIELDS:
- names: list of {"full_name", "first_name", "last_name", "confidence"}
- addresses: list of {"street_address", "city", "state", "zip_code", "confidence"}
- identification_numbers: list of {"type" (SSN, EIN, TIN, DRIVERS_LICENSE, PASSPORT), "value", "confidence"}
- contact_info: {"phone_numbers": [...], "email_addresses": [...]}
- date_of_birth: Date of birth (YYYY-MM-DD format) or null
- confidence: overall confidence between 0 and 1

Use empty lists for anything not present. Do not guess values.
Return the result as a valid JSON object with the extracted fields."""

def _get_business_prompt() -> str:
    return """Extract the business information from this loan document and return as JSON.

FIELDS:
- business_name: Legal business name or null
- ein: Employer Identification Number (XX-XXXXXXX) or null
- business_address: {"street_address", "city", "state", "zip_code", "confidence"} or null
- business_type: Entity type (LLC, S-Corp, Sole Proprietor, ...) or null
- annual_revenue: Annual revenue as a number or null
- confidence: overall confidence between 0 and 1

Return the result as a valid JSON object with the extracted fields."""

def _get_financial_prompt() -> str:
    return """Extract the financial data from this loan document and return as JSON.

FIELDS:
- amounts: list of {"value" (number), "currency", "context" (what the amount refers to), "confidence"}
- accounts: list of {"account_number", "account_type", "bank_name", "routing_number", "confidence"}
- balances: list of {"value", "currency", "context", "confidence"}
- confidence: overall confidence between 0 and 1

Amounts must be plain numbers without currency symbols or commas.
Return the result as a valid JSON object with the extracted fields."""
