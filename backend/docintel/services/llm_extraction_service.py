"""
LLM Field Extraction Service

Extracts field groups from a document's OCR text with Azure OpenAI.
"""
from typing import Dict, Any
from openai import AzureOpenAI
from pydantic import ValidationError
import asyncio
import json
import logging

from docintel.core.config import settings
from docintel.core.exceptions import ExtractionError
from docintel.models.extraction import BusinessInfo, FieldCategory, FinancialInfo, PersonalInfo
from docintel.prompts.extraction_prompts import get_extraction_prompt
from docintel.services.document_service import DocumentService
from docintel.services.field_extraction_service import ExtractedGroup

logger = logging.getLogger(__name__)

CATEGORY_MODELS = {
    FieldCategory.PERSONAL: PersonalInfo,
    FieldCategory.BUSINESS: BusinessInfo,
    FieldCategory.FINANCIAL: FinancialInfo,
}

class LLMExtractionService:
    """Field extraction provider backed by Azure OpenAI chat completions"""

    def __init__(self, document_service: DocumentService, client: AzureOpenAI = None):
        self.document_service = document_service
        self.client = client
        self.deployment_name = settings.AZURE_OPENAI_DEPLOYMENT_NAME
        if self.client is None:
            if settings.AZURE_OPENAI_API_KEY and settings.AZURE_OPENAI_ENDPOINT:
                self.client = AzureOpenAI(
                    api_key=settings.AZURE_OPENAI_API_KEY,
                    api_version=settings.AZURE_OPENAI_API_VERSION,
                    azure_endpoint=settings.AZURE_OPENAI_ENDPOINT
                )
                logger.info("Azure OpenAI client initialized successfully")
            else:
                logger.warning("Azure OpenAI credentials not configured. LLM extraction is unavailable.")

    async def extract(self, document_id: str, category: FieldCategory) -> ExtractedGroup:
        """
        Extract one field group for a document

        Args:
            document_id: Document to extract from
            category: personal, business or financial

        Returns:
            The matching PersonalInfo, BusinessInfo or FinancialInfo model
        """
        if self.client is None:
            raise ExtractionError("Azure OpenAI client is not configured")

        category = FieldCategory(category)
        document = await self.document_service.get_document(document_id)
        if not document.ocr_text or len(document.ocr_text.strip()) < 10:
            raise ExtractionError(f"Document {document_id} has no usable OCR text")

        full_prompt = f"""{get_extraction_prompt(category)}

Extracted OCR Text from Document:
{document.ocr_text}

Please extract the structured data from the OCR text above and return it as JSON."""

        logger.info(f"Calling Azure OpenAI for {category.value} extraction of {document_id} ({len(document.ocr_text)} chars)")
        try:
            response = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=self.deployment_name,
                messages=[{"role": "user", "content": full_prompt}],
                max_tokens=2000,
                temperature=0.0,
                top_p=0.95
            )
        except Exception as e:
            logger.error(f"Azure OpenAI extraction call failed for {document_id}: {e}")
            raise ExtractionError(f"LLM extraction failed: {e}") from e

        parsed = self._parse_extraction_response(response.choices[0].message.content)
        try:
            return CATEGORY_MODELS[category](**parsed)
        except ValidationError as e:
            raise ExtractionError(f"LLM returned malformed {category.value} data: {e}") from e

    def _parse_extraction_response(self, response_text: str) -> Dict[str, Any]:
        """Parse JSON from AI response"""
        if not response_text or not isinstance(response_text, str):
            raise ExtractionError("Empty response from LLM")

        json_str = None
        if "```json" in response_text:
            start = response_text.find("```json") + 7
            end = response_text.find("```", start)
            if end > start:
                json_str = response_text[start:end].strip()
        elif "```" in response_text:
            start = response_text.find("```") + 3
            end = response_text.find("```", start)
            if end > start:
                json_str = response_text[start:end].strip()
        else:
            start = response_text.find("{")
            end = response_text.rfind("}") + 1
            if start >= 0 and end > start:
                json_str = response_text[start:end]

        if not json_str:
            raise ExtractionError("No JSON object found in LLM response")
        try:
            parsed = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Invalid JSON in LLM response: {e}") from e
        if not isinstance(parsed, dict):
            raise ExtractionError("LLM response JSON is not an object")
        return parsed
