"""
Pipeline Workflows
"""
from .etl import ManufacturingETL, PipelineResult, run_pipeline

__all__ = [
    "ManufacturingETL",
    "PipelineResult",
    "run_pipeline",
]
