"""
Metric View Layer
"""
from .grading import QualityGrade, grade_for
from .views import VIEWS, ViewSpec, fetch_kpis, fetch_rows, get_view, install_views, read_view

__all__ = [
    "QualityGrade",
    "grade_for",
    "VIEWS",
    "ViewSpec",
    "fetch_kpis",
    "fetch_rows",
    "get_view",
    "install_views",
    "read_view",
]
