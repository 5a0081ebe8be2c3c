"""
Document, application and analysis persistence
"""
from typing import List, Optional
import logging

from docintel.core.exceptions import ApplicationNotFoundError, DocumentNotFoundError
from docintel.models.document import Application, Document, DocumentAnalysis

logger = logging.getLogger(__name__)

def _strip_id(doc: dict) -> dict:
    doc.pop("_id", None)
    return doc

class DocumentService:
    """Read/write access to the documents, applications and document_analyses collections"""

    def __init__(self, db):
        self.db = db

    async def get_document(self, document_id: str) -> Document:
        doc = await self.db.documents.find_one({"document_id": document_id})
        if not doc:
            raise DocumentNotFoundError(document_id)
        return Document(**_strip_id(doc))

    async def find_documents_by_application(self, application_id: str) -> List[Document]:
        cursor = self.db.documents.find({"application_id": application_id}).sort("uploaded_at", 1)
        return [Document(**_strip_id(doc)) async for doc in cursor]

    async def get_application(self, application_id: str) -> Application:
        doc = await self.db.applications.find_one({"application_id": application_id})
        if not doc:
            raise ApplicationNotFoundError(application_id)
        return Application(**_strip_id(doc))

    async def save_document(self, document: Document) -> Document:
        await self.db.documents.replace_one(
            {"document_id": document.document_id},
            document.model_dump(mode="python"),
            upsert=True
        )
        return document

    async def save_application(self, application: Application) -> Application:
        await self.db.applications.replace_one(
            {"application_id": application.application_id},
            application.model_dump(mode="python"),
            upsert=True
        )
        return application

    async def save_analysis(self, analysis: DocumentAnalysis) -> DocumentAnalysis:
        await self.db.document_analyses.insert_one(analysis.model_dump(mode="python"))
        logger.debug(f"Stored analysis for document {analysis.document_id}")
        return analysis

    async def get_latest_analysis(self, document_id: str) -> Optional[DocumentAnalysis]:
        cursor = self.db.document_analyses.find({"document_id": document_id}).sort("analyzed_at", -1).limit(1)
        async for doc in cursor:
            return DocumentAnalysis(**_strip_id(doc))
        return None
