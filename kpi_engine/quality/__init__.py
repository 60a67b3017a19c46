"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    VALIDATORS,
)

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "VALIDATORS",
]
