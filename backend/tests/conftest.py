"""Shared pytest fixtures for the document intelligence services."""

import pytest
from mongomock_motor import AsyncMongoMockClient

from fakes import RecordingSink, fake_transaction
from docintel.services.anomaly_repository import AnomalyRepository
from docintel.services.document_service import DocumentService
from docintel.services.layout_analysis_service import StoredLayoutAnalysisProvider


@pytest.fixture
def db():
    """Fresh in-memory motor database per test."""
    return AsyncMongoMockClient()["docintel_test"]


@pytest.fixture
def document_service(db) -> DocumentService:
    return DocumentService(db)


@pytest.fixture
def layout_provider(db) -> StoredLayoutAnalysisProvider:
    return StoredLayoutAnalysisProvider(db)


@pytest.fixture
def anomaly_repository(db) -> AnomalyRepository:
    return AnomalyRepository(db, transaction_factory=fake_transaction)


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()
