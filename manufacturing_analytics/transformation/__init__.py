"""
Data Transformation Module
"""
from .cleaners import CoercionError, RawDataCleaner
from .normalizers import DIMENSIONS, DimensionNormalizer, DimensionSpec, NormalizationResult
from .fact_loader import FactLoader, FactLoadResult, RejectionReport

__all__ = [
    "CoercionError",
    "RawDataCleaner",
    "DIMENSIONS",
    "DimensionNormalizer",
    "DimensionSpec",
    "NormalizationResult",
    "FactLoader",
    "FactLoadResult",
    "RejectionReport",
]
