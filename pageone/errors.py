"""
Page-One Engine Exceptions

Only one condition inside the engine is allowed to abort a request:
an organic, page-eligible listing that ends with zero units. Everything
else is a data condition and is logged, not raised.
"""

from typing import Any, Dict, Optional


class PageOneError(Exception):
    """Base class for engine errors."""


class HardInvariantViolation(PageOneError):
    """
    Raised when the allocation produced an impossible state.

    This is a logic defect, not a data condition. The caller must fail the
    whole request instead of surfacing the page.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ProfileLookupError(PageOneError):
    """Calibration profile store failed. Always caught and treated as 'not found'."""
