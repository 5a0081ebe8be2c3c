"""
Anomaly Repository

MongoDB persistence for anomaly records in the anomaly_detections collection.
"""
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional
from datetime import datetime, timezone
from pymongo import ReturnDocument
import logging
import uuid

from docintel.core.database import start_transaction
from docintel.core.exceptions import AnomalyNotFoundError, InvalidStateTransitionError
from docintel.models.anomaly import (
    ALLOWED_TRANSITIONS,
    AnomalyCreate,
    AnomalyRecord,
    AnomalyReview,
    AnomalyStatistics,
    AnomalyStatus,
    AuditEntry,
)
from docintel.models.inconsistency import SEVERITY_RANK, Severity

logger = logging.getLogger(__name__)

TransactionFactory = Callable[[], AsyncContextManager[Any]]

SYSTEM_ACTOR = "system"

class AnomalyRepository:
    """CRUD and review state machine for anomaly records"""

    def __init__(self, db, transaction_factory: Optional[TransactionFactory] = None):
        self.collection = db.anomaly_detections
        self.transaction_factory = transaction_factory or start_transaction

    def _build(self, data: AnomalyCreate) -> AnomalyRecord:
        now = datetime.now(timezone.utc)
        severity = Severity(data.severity)
        return AnomalyRecord(
            anomaly_id=str(uuid.uuid4()),
            **data.model_dump(),
            status=AnomalyStatus.PENDING,
            created_at=now,
            updated_at=now,
            audit_trail=[AuditEntry(
                timestamp=now,
                action="ANOMALY_CREATED",
                performed_by=SYSTEM_ACTOR,
                details=f"{data.anomaly_type} recorded with {severity.value} severity",
            )],
        )

    @staticmethod
    def _to_document(record: AnomalyRecord) -> Dict[str, Any]:
        doc = record.model_dump(mode="python")
        doc["severity_rank"] = SEVERITY_RANK[Severity(record.severity)]
        return doc

    @staticmethod
    def _to_record(doc: Dict[str, Any]) -> AnomalyRecord:
        doc.pop("_id", None)
        doc.pop("severity_rank", None)
        return AnomalyRecord(**doc)

    async def create(self, data: AnomalyCreate) -> AnomalyRecord:
        record = self._build(data)
        await self.collection.insert_one(self._to_document(record))
        logger.info(f"Anomaly {record.anomaly_id} created: {record.anomaly_type} ({record.severity})")
        return record

    async def create_batch(self, items: List[AnomalyCreate]) -> List[AnomalyRecord]:
        """Insert all records in one transaction: either every record is written or none is"""
        if not items:
            return []

        records = [self._build(item) for item in items]
        try:
            async with self.transaction_factory() as session:
                await self.collection.insert_many([self._to_document(r) for r in records], session=session)
        except Exception as e:
            logger.error(f"Batch anomaly insert of {len(records)} records rolled back: {e}")
            raise

        logger.info(f"Created {len(records)} anomaly records")
        return records

    async def find_by_id(self, anomaly_id: str) -> Optional[AnomalyRecord]:
        doc = await self.collection.find_one({"anomaly_id": anomaly_id})
        return self._to_record(doc) if doc else None

    async def _find(self, query: Dict[str, Any], sort: List, limit: int = 0) -> List[AnomalyRecord]:
        cursor = self.collection.find(query).sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return [self._to_record(doc) async for doc in cursor]

    async def find_by_application_id(self, application_id: str) -> List[AnomalyRecord]:
        return await self._find(
            {"application_id": application_id},
            [("severity_rank", 1), ("created_at", -1)]
        )

    async def find_by_document_id(self, document_id: str) -> List[AnomalyRecord]:
        return await self._find(
            {"document_id": document_id},
            [("severity_rank", 1), ("created_at", -1)]
        )

    async def find_by_status(self, status: AnomalyStatus, limit: int = 50) -> List[AnomalyRecord]:
        return await self._find({"status": AnomalyStatus(status).value}, [("created_at", -1)], limit)

    async def find_by_severity(self, severity: Severity, limit: int = 50) -> List[AnomalyRecord]:
        return await self._find({"severity": Severity(severity).value}, [("created_at", -1)], limit)

    async def get_pending_reviews(self, limit: int = 50) -> List[AnomalyRecord]:
        """Pending records, most severe first and oldest first within a severity"""
        return await self._find(
            {"status": AnomalyStatus.PENDING.value},
            [("severity_rank", 1), ("created_at", 1)],
            limit
        )

    async def review(self, anomaly_id: str, review: AnomalyReview) -> AnomalyRecord:
        """
        Apply a reviewer decision

        Raises:
            AnomalyNotFoundError: no record with this id
            InvalidStateTransitionError: the record is terminal, or another reviewer got there first
        """
        current = await self.find_by_id(anomaly_id)
        if current is None:
            raise AnomalyNotFoundError(anomaly_id)

        current_status = AnomalyStatus(current.status)
        target = AnomalyStatus(review.status)
        if target not in ALLOWED_TRANSITIONS[current_status]:
            raise InvalidStateTransitionError(anomaly_id, current_status.value, target.value)

        now = datetime.now(timezone.utc)
        entries = [AuditEntry(
            timestamp=now,
            action="ANOMALY_REVIEWED",
            performed_by=review.reviewed_by,
            details=f"Status changed from {current_status.value} to {target.value}",
        )]
        changes = {
            "status": target.value,
            "reviewed_by": review.reviewed_by,
            "reviewed_at": now,
            "updated_at": now,
        }
        if review.resolution_notes:
            changes["resolution_notes"] = review.resolution_notes
            entries.append(AuditEntry(
                timestamp=now,
                action="RESOLUTION_NOTES_ADDED",
                performed_by=review.reviewed_by,
                details=review.resolution_notes,
            ))

        # Conditional on the status we validated against
        updated = await self.collection.find_one_and_update(
            {"anomaly_id": anomaly_id, "status": current_status.value},
            {
                "$set": changes,
                "$push": {"audit_trail": {"$each": [e.model_dump() for e in entries]}},
            },
            return_document=ReturnDocument.AFTER
        )
        if updated is None:
            latest = await self.find_by_id(anomaly_id)
            if latest is None:
                raise AnomalyNotFoundError(anomaly_id)
            raise InvalidStateTransitionError(anomaly_id, AnomalyStatus(latest.status).value, target.value)

        logger.info(f"Anomaly {anomaly_id} reviewed by {review.reviewed_by}: {current_status.value} -> {target.value}")
        return self._to_record(updated)

    async def get_statistics(self, application_id: Optional[str] = None) -> AnomalyStatistics:
        match = {"application_id": application_id} if application_id else {}
        stats = AnomalyStatistics()

        async def grouped(field_name: str) -> Dict[str, int]:
            pipeline = [{"$match": match}, {"$group": {"_id": f"${field_name}", "count": {"$sum": 1}}}]
            return {row["_id"]: row["count"] async for row in self.collection.aggregate(pipeline)}

        stats.by_severity.update(await grouped("severity"))
        stats.by_status.update(await grouped("status"))
        stats.by_type = await grouped("anomaly_type")

        totals = [{"$match": match}, {"$group": {"_id": None, "total": {"$sum": 1}, "avg": {"$avg": "$confidence"}}}]
        async for row in self.collection.aggregate(totals):
            stats.total = row["total"]
            stats.avg_confidence = row["avg"] or 0.0

        return stats

    async def delete(self, anomaly_id: str) -> bool:
        result = await self.collection.delete_one({"anomaly_id": anomaly_id})
        return result.deleted_count > 0

    async def delete_by_application_id(self, application_id: str) -> int:
        result = await self.collection.delete_many({"application_id": application_id})
        logger.info(f"Deleted {result.deleted_count} anomalies for application {application_id}")
        return result.deleted_count
