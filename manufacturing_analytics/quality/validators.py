"""
Data Validation Module

Rule-based data quality checks for the raw intake buffer, inspired by
Great Expectations. Validation reports problems; it never raises and never
filters rows. Row exclusion is the fact loader's job.

Features:
- Blank / null checks
- Parseability checks (dates, numbers)
- Range checks
- Uniqueness checks
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

import polars as pl
import structlog

from manufacturing_analytics.config import get_settings
from manufacturing_analytics.ingestion.raw_intake import DOC_DATE, DOC_NUM, QUANTITY_COLUMNS, TOTAL_VALUE
from manufacturing_analytics.transformation.cleaners import (
    CoercionError,
    parse_amount,
    parse_doc_date,
    parse_quantity,
)

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Rows will be rejected by the loader
    WARNING = "warning"  # Loaded, but worth a look
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def get_check(self, name: str) -> Optional[ValidationCheck]:
        return next((check for check in self.checks if check.name == name), None)


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


class DataValidator:
    """
    Data validator with a fluent check builder.

    Example:
        validator = DataValidator()
        validator.add_not_blank_check("Doc Num")
        validator.add_range_check("Produced Qty", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    def add_not_blank_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null or whitespace-only values in column"""
        name = f"not_blank_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            blank_count = df.filter(
                pl.col(column).is_null()
                | (pl.col(column).cast(pl.Utf8).str.strip_chars() == "")
            ).height
            total = len(df)
            passed = blank_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {blank_count} blank values" if not passed else f"Column '{column}' has no blank values",
                details={"blank_count": blank_count, "blank_percentage": (blank_count / total) * 100 if total > 0 else 0},
                failed_rows=blank_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_parse_check(
        self,
        column: str,
        parser: Callable[[Any], Any],
        kind: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every non-blank value is accepted by ``parser``"""
        name = f"{kind}_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            values = [v for v in df[column].to_list() if v is not None and str(v).strip()]
            invalid = []
            for value in values:
                try:
                    parser(value)
                except CoercionError:
                    invalid.append(value)

            passed = not invalid
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {len(invalid)} values that are not a valid {kind}" if not passed else f"All '{column}' values are valid",
                details={"invalid_count": len(invalid), "examples": invalid[:5]},
                failed_rows=len(invalid),
                total_rows=len(values),
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range; unparseable values are ignored"""
        name = f"range_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            numbers = df.select(
                pl.col(column).cast(pl.Utf8).str.replace_all(",", "").cast(pl.Float64, strict=False)
            ).to_series()

            conditions = []
            if min_value is not None:
                conditions.append(numbers < min_value)
            if max_value is not None:
                conditions.append(numbers > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = int(combined.fill_null(False).sum())
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of non-null column values"""
        name = f"unique_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            present = df[column].drop_nulls()
            total = len(present)
            duplicate_count = total - present.n_unique()
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {duplicate_count} duplicate values" if not passed else f"Column '{column}' values are unique",
                details={"unique_count": present.n_unique(), "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.info("Running validation checks", checks=len(self._checks), rows=len(df))

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = datetime.utcnow()

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            f"Validation complete: {status.value}",
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


def create_raw_intake_validator(date_formats: Optional[Iterable[str]] = None) -> DataValidator:
    """Create pre-configured validator for the raw manufacturing intake"""
    formats = list(date_formats or get_settings().pipeline.date_formats)

    validator = (
        DataValidator()
        .add_not_blank_check(DOC_NUM)
        .add_not_blank_check(DOC_DATE)
        .add_parse_check(DOC_DATE, lambda v: parse_doc_date(v, formats), kind="date")
        .add_parse_check(TOTAL_VALUE, parse_amount, kind="amount")
    )
    for column in QUANTITY_COLUMNS:
        validator.add_parse_check(column, parse_quantity, kind="quantity")
        validator.add_range_check(column, min_value=0, severity=ValidationSeverity.WARNING)
    validator.add_range_check(TOTAL_VALUE, min_value=0, severity=ValidationSeverity.WARNING)

    return validator
