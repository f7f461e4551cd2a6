# hmpi_errors.py
"""
Exceptions raised by the HMPI index engine.

Every error raised on bad caller input derives from HMPIError, so a caller
that just wants "anything the engine rejected" can catch that one class.
"""

from typing import Optional


class HMPIError(Exception):
    """Base class for index-engine errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidSampleError(HMPIError, ValueError):
    """A sample (concentrations, coordinates, identity) failed validation."""


class InvalidStandardsError(HMPIError, ValueError):
    """A standards table is incomplete or has unusable limits."""


class EmptyDatasetError(HMPIError):
    """Raised by callers that require at least one sample."""
