from .config import settings
from .database import AsyncSessionLocal, engine
from .logging import logger, setup_logging
from .redis import redis_service

__all__ = [
    "AsyncSessionLocal",
    "engine",
    "logger",
    "redis_service",
    "settings",
    "setup_logging"
]
