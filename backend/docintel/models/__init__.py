from .document import Document, DocumentType, Application, DocumentAnalysis
from .inconsistency import Severity, InconsistencyType, Inconsistency, InconsistencyResult
from .processing import ProcessingJob, ProcessingJobType, JobStatus, QueueOptions, JobEvent
from .anomaly import AnomalyRecord, AnomalyStatus, AnomalyCreate, AnomalyReview, AnomalyStatistics
from .risk_assessment import RiskAssessment, RiskCategory, Recommendation

__all__ = [
    "Document", "DocumentType", "Application", "DocumentAnalysis",
    "Severity", "InconsistencyType", "Inconsistency", "InconsistencyResult",
    "ProcessingJob", "ProcessingJobType", "JobStatus", "QueueOptions", "JobEvent",
    "AnomalyRecord", "AnomalyStatus", "AnomalyCreate", "AnomalyReview", "AnomalyStatistics",
    "RiskAssessment", "RiskCategory", "Recommendation",
]
