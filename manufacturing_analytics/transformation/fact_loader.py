"""
Fact Loader

Maps each eligible raw intake row to exactly one production_records row.

- A row is eligible when it has a non-blank Doc Num and a parseable Doc Date
- Missing counters default to 0 and a missing TotalValue to 0.00
- Dimension codes are resolved against the dimension tables; codes that are
  not found are stored as NULL and the row is still loaded
- The fact table is append-only: loading the same rows twice stores them twice

Rows that cannot be loaded are never raised as errors. They are counted and
sampled in a RejectionReport so the drop is visible to the caller.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

import polars as pl
import structlog
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from manufacturing_analytics.config import get_settings
from manufacturing_analytics.database.models import ProductionRecord
from manufacturing_analytics.ingestion import raw_intake as raw
from manufacturing_analytics.transformation.cleaners import (
    INTEGER_MAX,
    INTEGER_MIN,
    CoercionError,
    clean_text,
    numeric_limit,
    parse_amount,
    parse_doc_date,
    parse_quantity,
    parse_repeat_flag,
)
from manufacturing_analytics.transformation.normalizers import (
    CUSTOMERS,
    DimensionSpec,
    EMPLOYEES,
    ITEMS,
    MACHINES,
    OPERATIONS,
)

logger = structlog.get_logger(__name__)

# Raw header -> (fact column, dimension it references)
REFERENCE_COLUMNS: Dict[str, DimensionSpec] = {
    raw.CUST_CODE: CUSTOMERS,
    raw.EMP_CODE: EMPLOYEES,
    raw.ITEM_CODE: ITEMS,
    raw.MACHINE_CODE: MACHINES,
    raw.OPERATION_CODE: OPERATIONS,
}

TEXT_COLUMNS: Dict[str, str] = {
    raw.DEPARTMENT_NAME: "department_name",
    raw.DESIGNER: "designer",
    raw.DELIVERY_PERIOD: "delivery_period",
}


@dataclass
class RejectedRow:
    """A raw row excluded from loading"""
    row_index: int
    reason: str
    doc_num: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class RejectionReport:
    """Count and sample of raw rows excluded from the fact table"""
    sample_size: int = 20
    total: int = 0
    by_reason: Counter = field(default_factory=Counter)
    samples: List[RejectedRow] = field(default_factory=list)

    def add(self, row: RejectedRow) -> None:
        self.total += 1
        self.by_reason[row.reason] += 1
        if len(self.samples) < self.sample_size:
            self.samples.append(row)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_reason": dict(self.by_reason),
            "samples": [vars(sample) for sample in self.samples],
        }


@dataclass
class FactLoadResult:
    """Outcome of a fact load"""
    rows_seen: int
    rows_loaded: int
    record_ids: List[int]
    unresolved_references: Dict[str, int]
    rejections: RejectionReport
    started_at: datetime
    completed_at: datetime

    @property
    def rows_rejected(self) -> int:
        return self.rejections.total

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


class FactLoader:
    """
    Loads production_records from the raw intake buffer.

    Example:
        loader = FactLoader(session)
        result = await loader.load(raw_df)
        print(result.rows_loaded, result.rejections.by_reason)
    """

    def __init__(
        self,
        session: AsyncSession,
        chunk_size: Optional[int] = None,
        date_formats: Optional[Iterable[str]] = None,
        sample_size: Optional[int] = None,
    ):
        pipeline = get_settings().pipeline
        self.session = session
        self.chunk_size = chunk_size or pipeline.chunk_size
        self.date_formats = list(date_formats or pipeline.date_formats)
        self.sample_size = pipeline.rejection_sample_size if sample_size is None else sample_size
        self._text_lengths = {
            column: ProductionRecord.__table__.c[column].type.length
            for column in ["doc_num", *TEXT_COLUMNS.values()]
        }
        amount_type = ProductionRecord.__table__.c.total_value.type
        self._amount_limit = numeric_limit(amount_type.precision, amount_type.scale)

    async def _known_codes(self, spec: DimensionSpec) -> Set[str]:
        result = await self.session.execute(select(spec.key_column))
        return set(result.scalars().all())

    def _check_length(self, column: str, value: Optional[str]) -> Optional[str]:
        length = self._text_lengths[column]
        if value is not None and length and len(value) > length:
            raise CoercionError("value_too_long", column, value)
        return value

    def build_record(
        self,
        row: Dict[str, Any],
        known_codes: Dict[str, Set[str]],
        unresolved: Counter,
    ) -> Dict[str, Any]:
        """
        Map one raw row to production_records column values.

        Raises:
            CoercionError: If the row has to be rejected
        """
        doc_num = clean_text(row.get(raw.DOC_NUM))
        if doc_num is None:
            raise CoercionError("missing_doc_num", raw.DOC_NUM, row.get(raw.DOC_NUM))

        doc_date = parse_doc_date(row.get(raw.DOC_DATE), self.date_formats, column=raw.DOC_DATE)
        if doc_date is None:
            raise CoercionError("missing_doc_date", raw.DOC_DATE, row.get(raw.DOC_DATE))

        record: Dict[str, Any] = {
            "doc_num": self._check_length("doc_num", doc_num),
            "doc_date": doc_date,
        }

        for header, spec in REFERENCE_COLUMNS.items():
            code = clean_text(row.get(header))
            if code is not None and code not in known_codes[spec.name]:
                unresolved[spec.name] += 1
                code = None
            record[spec.key] = code

        for header, column in TEXT_COLUMNS.items():
            record[column] = self._check_length(column, clean_text(row.get(header)))

        for header, column in raw.QUANTITY_COLUMNS.items():
            record[column] = parse_quantity(
                row.get(header), column=header, min_value=INTEGER_MIN, max_value=INTEGER_MAX
            )

        record["total_value"] = parse_amount(
            row.get(raw.TOTAL_VALUE), column=raw.TOTAL_VALUE, limit=self._amount_limit
        )
        record["repeat_order"] = parse_repeat_flag(row.get(raw.REPEAT))
        return record

    async def _insert(self, records: List[Dict[str, Any]]) -> List[int]:
        ids: List[int] = []
        for i in range(0, len(records), self.chunk_size):
            chunk = records[i:i + self.chunk_size]
            result = await self.session.execute(
                insert(ProductionRecord).returning(
                    ProductionRecord.record_id, sort_by_parameter_order=True
                ),
                chunk,
            )
            ids.extend(result.scalars().all())
            logger.debug("Inserted fact chunk", rows=len(chunk), offset=i)
        return ids

    async def load(self, df: pl.DataFrame) -> FactLoadResult:
        """
        Load every eligible raw row.

        Args:
            df: Raw intake frame (spreadsheet headers as columns)

        Returns:
            FactLoadResult with generated ids and the rejection report
        """
        started_at = datetime.utcnow()
        report = RejectionReport(sample_size=self.sample_size)
        unresolved: Counter = Counter()

        logger.info("Starting fact load", rows=len(df))

        known_codes = {
            spec.name: await self._known_codes(spec)
            for spec in REFERENCE_COLUMNS.values()
        }

        records = []
        for index, row in enumerate(df.to_dicts()):
            try:
                records.append(self.build_record(row, known_codes, unresolved))
            except CoercionError as e:
                report.add(RejectedRow(
                    row_index=index,
                    reason=e.reason,
                    doc_num=clean_text(row.get(raw.DOC_NUM)),
                    detail=str(e),
                ))

        record_ids = await self._insert(records) if records else []

        result = FactLoadResult(
            rows_seen=len(df),
            rows_loaded=len(record_ids),
            record_ids=record_ids,
            unresolved_references={spec.name: unresolved[spec.name] for spec in REFERENCE_COLUMNS.values()},
            rejections=report,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

        if report.total:
            logger.warning(
                "Raw rows rejected during fact load",
                rejected=report.total,
                by_reason=dict(report.by_reason),
            )
        logger.info(
            "Fact load completed",
            rows_loaded=result.rows_loaded,
            rows_rejected=result.rows_rejected,
            unresolved_references={k: v for k, v in result.unresolved_references.items() if v},
            duration_seconds=result.duration_seconds,
        )
        return result
