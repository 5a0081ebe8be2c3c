"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # Azure OpenAI (only needed by the LLM extraction backend)
    AZURE_OPENAI_ENDPOINT: str = ""
    AZURE_OPENAI_API_KEY: str = ""
    AZURE_OPENAI_API_VERSION: str = "2024-02-15-preview"
    AZURE_OPENAI_DEPLOYMENT_NAME: str = "gpt-4o"

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "document_intelligence"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    # "layout" reads key/value pairs from stored layout analyses, "llm" asks Azure OpenAI
    EXTRACTION_BACKEND: str = "layout"

    # Processing queue defaults
    QUEUE_MAX_CONCURRENT: int = 5
    QUEUE_TIMEOUT_SECONDS: float = 300.0
    QUEUE_RETRY_ATTEMPTS: int = 2
    QUEUE_RETRY_DELAY_SECONDS: float = 2.0
    QUEUE_POLL_INTERVAL_SECONDS: float = 0.1
    JOB_RETENTION_HOURS: int = 24

    # Detection thresholds
    MANIPULATION_THRESHOLD: float = 0.7
    MIN_ACCEPTABLE_QUALITY_SCORE: int = 70
    AUTO_RESOLVE_CONFIDENCE_THRESHOLD: float = 0.6

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
