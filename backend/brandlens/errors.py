"""
Error taxonomy for brandlens
Validation, upstream, persistence and consistency failures
"""

import logging
import warnings
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class BrandLensError(Exception):
    """Base exception for brandlens errors"""
    pass


class ValidationError(BrandLensError):
    """Missing or invalid input, rejected before any state is created"""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class UpstreamError(BrandLensError):
    """An external collaborator failed or timed out"""
    def __init__(self, message: str, collaborator: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.collaborator = collaborator
        self.details = details or {}


class PersistenceError(BrandLensError):
    """The store is unavailable or rejected a write"""
    pass


class ConsistencyWarning(UserWarning):
    """Degenerate aggregation input resolved to a neutral value"""
    pass


def note_inconsistency(message: str, neutral: Any = 0.0) -> Any:
    """Log a consistency warning and return the neutral value to use instead"""
    logger.warning(message)
    warnings.warn(message, ConsistencyWarning, stacklevel=2)
    return neutral
