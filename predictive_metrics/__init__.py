from .config import config
from .logging_setup import logger, get_logger
from .exceptions import (
    PredictiveMetricsError, DatabaseError, InferenceError, InferenceTimeoutError,
    ValidationError, NotFoundError
)

__all__ = [
    'config',
    'logger',
    'get_logger',
    'PredictiveMetricsError',
    'DatabaseError',
    'InferenceError',
    'InferenceTimeoutError',
    'ValidationError',
    'NotFoundError'
]
