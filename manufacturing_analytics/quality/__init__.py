"""
Data Quality Module
"""
from .validators import DataValidator, ValidationResult, create_raw_intake_validator

__all__ = [
    "DataValidator",
    "ValidationResult",
    "create_raw_intake_validator",
]
