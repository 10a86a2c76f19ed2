"""
Reusable SQL expressions for the metric views.

Two safe-division conventions exist and each view keeps its own:

- null_* : NULLIF on the denominator, a zero or NULL denominator yields NULL
- zero_* : CASE on a positive denominator, anything else yields 0

Numerators are cast to float so integer counters never use integer division.
Literals that can end up in a GROUP BY are emitted as literal columns so that
PostgreSQL sees identical SELECT and GROUP BY expressions.
"""

from typing import Any

from sqlalchemy import Float, Integer, Numeric, String, case, cast, extract, func, literal_column
from sqlalchemy.sql.elements import ColumnElement

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
# Index matches EXTRACT(dow): 0 is Sunday on both PostgreSQL and SQLite
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def as_float(expr: Any) -> ColumnElement:
    return cast(expr, Float)


def null_ratio(numerator: Any, denominator: Any) -> ColumnElement:
    """numerator / denominator, NULL when the denominator is 0 or NULL"""
    return as_float(numerator) / func.nullif(denominator, 0)


def null_percent(numerator: Any, denominator: Any) -> ColumnElement:
    return null_ratio(numerator, denominator) * 100


def zero_ratio(numerator: Any, denominator: Any) -> ColumnElement:
    """numerator / denominator when the denominator is positive, else 0"""
    return case(
        (denominator > 0, as_float(numerator) / denominator),
        else_=0.0,
    )


def zero_percent(numerator: Any, denominator: Any) -> ColumnElement:
    return case(
        (denominator > 0, as_float(numerator) / denominator * 100),
        else_=0.0,
    )


def rounded(expr: Any, digits: int = 2) -> ColumnElement:
    """ROUND to ``digits`` places; PostgreSQL only rounds numerics"""
    return func.round(cast(expr, Numeric), digits, type_=Float)


def _int_literal(value: int) -> ColumnElement:
    return literal_column(str(int(value)), Integer)


def _str_literal(value: str) -> ColumnElement:
    return literal_column("'" + value.replace("'", "''") + "'", String)


def calendar_year(column: Any) -> ColumnElement:
    return cast(extract("year", column), Integer)


def calendar_month(column: Any) -> ColumnElement:
    return cast(extract("month", column), Integer)


def month_name(column: Any) -> ColumnElement:
    """English month name of a date column"""
    month = calendar_month(column)
    return case(
        *[(month == _int_literal(number), _str_literal(name)) for number, name in enumerate(MONTH_NAMES, start=1)]
    )


def day_name(column: Any) -> ColumnElement:
    """English weekday name of a date column"""
    dow = cast(extract("dow", column), Integer)
    return case(
        *[(dow == _int_literal(number), _str_literal(name)) for number, name in enumerate(DAY_NAMES)]
    )
