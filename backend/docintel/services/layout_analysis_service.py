"""
Layout/OCR analysis access

The OCR stage runs outside this service and stores its layout output in the
layout_analyses collection; everything downstream reads it through a provider.
"""
from typing import Protocol
import logging

from docintel.core.exceptions import AnalysisUnavailableError
from docintel.models.analysis import LayoutAnalysis

logger = logging.getLogger(__name__)

class LayoutAnalysisProvider(Protocol):
    async def get_layout(self, document_id: str) -> LayoutAnalysis:
        ...

class StoredLayoutAnalysisProvider:
    """Reads layout analyses previously written to MongoDB"""

    def __init__(self, db):
        self.db = db

    async def get_layout(self, document_id: str) -> LayoutAnalysis:
        doc = await self.db.layout_analyses.find_one({"document_id": document_id})
        if not doc:
            logger.warning(f"No layout analysis stored for document {document_id}")
            raise AnalysisUnavailableError(document_id)
        doc.pop("_id", None)
        return LayoutAnalysis(**doc)

    async def save_layout(self, layout: LayoutAnalysis) -> None:
        await self.db.layout_analyses.replace_one(
            {"document_id": layout.document_id},
            layout.model_dump(mode="python"),
            upsert=True
        )
