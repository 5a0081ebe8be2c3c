"""
Logging setup
"""
import logging
from typing import Optional
from docintel.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

def configure_logging(level: Optional[str] = None):
    """Configure root logging from settings.LOG_LEVEL (or an explicit level)"""
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT
    )
    # motor/pymongo are chatty at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)
