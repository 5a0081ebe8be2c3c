"""
MongoDB Database Connection
"""
from contextlib import asynccontextmanager
from motor.motor_asyncio import AsyncIOMotorClient
from docintel.core.config import settings
import logging

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None

database = Database()

async def get_database():
    """Get database instance"""
    return database.client[settings.MONGODB_DB_NAME]

async def init_db():
    """Initialize database connection"""
    try:
        database.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
        await database.client.admin.command('ping')
        logger.info("Connected to MongoDB")

        db = database.client[settings.MONGODB_DB_NAME]

        # Documents collection indexes
        await db.documents.create_index("document_id", unique=True)
        await db.documents.create_index("application_id")
        await db.documents.create_index("uploaded_at")

        # Applications collection indexes
        await db.applications.create_index("application_id", unique=True)

        # Layout analyses written upstream by the OCR stage
        await db.layout_analyses.create_index("document_id", unique=True)

        # Document analyses indexes
        await db.document_analyses.create_index("document_id")
        await db.document_analyses.create_index("analyzed_at")

        # Anomaly detections indexes
        await db.anomaly_detections.create_index("anomaly_id", unique=True)
        await db.anomaly_detections.create_index("application_id")
        await db.anomaly_detections.create_index("document_id")
        await db.anomaly_detections.create_index("severity")
        await db.anomaly_detections.create_index("status")
        await db.anomaly_detections.create_index("anomaly_type")
        await db.anomaly_detections.create_index([("created_at", -1)])
        await db.anomaly_detections.create_index([("application_id", 1), ("status", 1)])
        await db.anomaly_detections.create_index([("severity_rank", 1), ("status", 1)])

        logger.info("Database indexes created")

    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise

async def close_db():
    """Close database connection"""
    if database.client:
        database.client.close()
        logger.info("Disconnected from MongoDB")

@asynccontextmanager
async def start_transaction():
    """
    Open a session with a running transaction.

    The transaction commits when the block exits normally and aborts when it raises.
    Requires MongoDB running as a replica set.
    """
    async with await database.client.start_session() as session:
        async with session.start_transaction():
            yield session
