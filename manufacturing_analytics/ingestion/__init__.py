"""
Data Ingestion Module
"""
from .raw_intake import RAW_COLUMNS, RawIntakeReader, raw_manufacturing_data

__all__ = [
    "RAW_COLUMNS",
    "RawIntakeReader",
    "raw_manufacturing_data",
]
