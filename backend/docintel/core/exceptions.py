"""
Custom exceptions for the document intelligence pipeline.
"""

class DocumentIntelligenceError(Exception):
    """Base exception for all document intelligence errors"""
    pass

class JobNotFoundError(DocumentIntelligenceError):
    """Raised when a processing job id is not known to the queue"""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")

class AnomalyNotFoundError(DocumentIntelligenceError):
    """Raised when an anomaly record does not exist"""

    def __init__(self, anomaly_id: str):
        self.anomaly_id = anomaly_id
        super().__init__(f"Anomaly not found: {anomaly_id}")

class InvalidStateTransitionError(DocumentIntelligenceError):
    """Raised when a review would move an anomaly out of a terminal status"""

    def __init__(self, anomaly_id: str, current_status: str, requested_status: str):
        self.anomaly_id = anomaly_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Cannot change anomaly {anomaly_id} from {current_status} to {requested_status}"
        )

class ApplicationNotFoundError(DocumentIntelligenceError):
    """Raised when an application does not exist"""

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Application not found: {application_id}")

class DocumentNotFoundError(DocumentIntelligenceError):
    """Raised when a document does not exist"""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")

class AnalysisUnavailableError(DocumentIntelligenceError):
    """Raised when no layout analysis has been stored for a document"""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"No layout analysis available for document: {document_id}")

class ExtractionError(DocumentIntelligenceError):
    """Raised when structured field extraction fails"""
    pass
