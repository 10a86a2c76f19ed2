"""
Quality grading

Classifies a production record by its rejection rate,
rejected / (produced + rejected). Bands are checked in order and the first
match wins:

    Perfect            rejected = 0
    Excellent          rate <= 5 %
    Good               rate <= 10 %
    Needs Improvement  rate <= 20 %
    Critical           otherwise

Records with nothing produced and nothing rejected have no grade.
"""

from enum import Enum
from typing import Any, List, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.sql.elements import ColumnElement

from manufacturing_analytics.analytics.expressions import null_ratio


class QualityGrade(str, Enum):
    PERFECT = "Perfect"
    EXCELLENT = "Excellent"
    GOOD = "Good"
    NEEDS_IMPROVEMENT = "Needs Improvement"
    CRITICAL = "Critical"


# Upper bound of the rejection rate (inclusive) for each band after Perfect
GRADE_THRESHOLDS: List[Tuple[float, QualityGrade]] = [
    (0.05, QualityGrade.EXCELLENT),
    (0.10, QualityGrade.GOOD),
    (0.20, QualityGrade.NEEDS_IMPROVEMENT),
]


def grade_for(produced: int, rejected: int) -> Optional[QualityGrade]:
    """Grade a single record; None when produced and rejected are both 0"""
    produced = produced or 0
    rejected = rejected or 0
    if produced + rejected <= 0:
        return None
    if rejected == 0:
        return QualityGrade.PERFECT

    rate = rejected / (produced + rejected)
    for threshold, grade in GRADE_THRESHOLDS:
        if rate <= threshold:
            return grade
    return QualityGrade.CRITICAL


def quality_grade_expr(produced: Any, rejected: Any) -> ColumnElement:
    """SQL counterpart of grade_for()"""
    rate = null_ratio(rejected, produced + rejected)
    return case(
        (rejected == 0, QualityGrade.PERFECT.value),
        *[(rate <= threshold, grade.value) for threshold, grade in GRADE_THRESHOLDS],
        else_=QualityGrade.CRITICAL.value,
    )
