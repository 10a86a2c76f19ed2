"""
Raw Intake Buffer

The denormalized table the spreadsheet import tool fills. Columns mirror the
spreadsheet headers verbatim, spaces and casing included. The table is owned
by the import tool, not by the warehouse schema, so it lives on its own
MetaData and is never created by ``create_schema``.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import polars as pl
import structlog
from sqlalchemy import Column, MetaData, Table, Text, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from manufacturing_analytics.config import get_settings

logger = structlog.get_logger(__name__)

# Spreadsheet headers, in source order
CUST_CODE = "Cust Code"
CUST_NAME = "Cust Name"
BUYER = "Buyer"
EMP_CODE = "EMP Code"
EMP_NAME = "Emp Name"
ITEM_CODE = "Item Code"
ITEM_NAME = "Item Name"
MACHINE_CODE = "Machine Code"
MACHINE_COST = "Per day Machine Cost"
OPERATION_CODE = "Operation Code"
OPERATION_NAME = "Operation Name"
DEPARTMENT_NAME = "Department Name"
DOC_NUM = "Doc Num"
DOC_DATE = "Doc Date"
DESIGNER = "Designer"
DELIVERY_PERIOD = "Delivery Period"
PRESS_QTY = "Press Qty"
PROCESSED_QTY = "Processed Qty"
PRODUCED_QTY = "Produced Qty"
REJECTED_QTY = "Rejected Qty"
TODAY_MANUFACTURED_QTY = "today Manufactured qty"
TOTAL_QTY = "TotalQty"
WO_QTY = "WO Qty"
TOTAL_VALUE = "TotalValue"
REPEAT = "Repeat"

RAW_COLUMNS: List[str] = [
    CUST_CODE,
    CUST_NAME,
    BUYER,
    EMP_CODE,
    EMP_NAME,
    ITEM_CODE,
    ITEM_NAME,
    MACHINE_CODE,
    MACHINE_COST,
    OPERATION_CODE,
    OPERATION_NAME,
    DEPARTMENT_NAME,
    DOC_NUM,
    DOC_DATE,
    DESIGNER,
    DELIVERY_PERIOD,
    PRESS_QTY,
    PROCESSED_QTY,
    PRODUCED_QTY,
    REJECTED_QTY,
    TODAY_MANUFACTURED_QTY,
    TOTAL_QTY,
    WO_QTY,
    TOTAL_VALUE,
    REPEAT,
]

# Quantity counters mapped to their production_records column
QUANTITY_COLUMNS: Dict[str, str] = {
    PRESS_QTY: "press_qty",
    PROCESSED_QTY: "processed_qty",
    PRODUCED_QTY: "produced_qty",
    REJECTED_QTY: "rejected_qty",
    TODAY_MANUFACTURED_QTY: "today_manufactured_qty",
    TOTAL_QTY: "total_qty",
    WO_QTY: "wo_qty",
}

RAW_SCHEMA = {column: pl.Utf8 for column in RAW_COLUMNS}

raw_metadata = MetaData()


def build_raw_table(name: str, metadata: Optional[MetaData] = None) -> Table:
    """Untyped text table with one column per spreadsheet header"""
    return Table(
        name,
        metadata if metadata is not None else raw_metadata,
        *[Column(column, Text) for column in RAW_COLUMNS],
    )


raw_manufacturing_data = build_raw_table("raw_manufacturing_data")


def _stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class RawIntakeReader:
    """
    Reads the raw intake buffer into a polars DataFrame.

    Every reader returns the same shape: all 25 spreadsheet columns, in source
    order, typed as strings. Typing happens later in the cleaners.

    Example:
        reader = RawIntakeReader()
        raw = await reader.read_table(session)
    """

    def __init__(self, table_name: Optional[str] = None):
        name = table_name or get_settings().pipeline.raw_table
        if name == raw_manufacturing_data.name:
            self.table = raw_manufacturing_data
        else:
            self.table = build_raw_table(name, MetaData())

    def frame_from_records(self, records: Iterable[Mapping[str, Any]]) -> pl.DataFrame:
        """Build a raw frame from mappings keyed by spreadsheet header"""
        rows = [
            {column: _stringify(record.get(column)) for column in RAW_COLUMNS}
            for record in records
        ]
        return pl.DataFrame(rows, schema=RAW_SCHEMA)

    def conform(self, df: pl.DataFrame) -> pl.DataFrame:
        """Add missing headers as null columns and cast everything to string"""
        missing = [column for column in RAW_COLUMNS if column not in df.columns]
        if missing:
            logger.warning("Raw frame is missing columns", missing=missing)
            df = df.with_columns([pl.lit(None, dtype=pl.Utf8).alias(column) for column in missing])

        return df.select([pl.col(column).cast(pl.Utf8) for column in RAW_COLUMNS])

    async def read_table(self, session: AsyncSession) -> pl.DataFrame:
        """Read the whole raw intake table"""
        result = await session.execute(select(self.table))
        records = [dict(row._mapping) for row in result]

        logger.info("Read raw intake table", table=self.table.name, rows=len(records))
        return self.frame_from_records(records)

    def read_csv(self, file_path: Union[str, Path]) -> pl.DataFrame:
        """Read a spreadsheet CSV export with every value kept as text"""
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        df = pl.read_csv(file_path, infer_schema_length=0)
        logger.info("Read raw intake file", file=str(file_path), rows=len(df))
        return self.conform(df)

    async def ensure_table(self, session: AsyncSession) -> None:
        """Create the intake table when staging into an empty database"""
        connection = await session.connection()
        await connection.run_sync(lambda sync_conn: self.table.create(sync_conn, checkfirst=True))

    async def stage_records(self, session: AsyncSession, df: pl.DataFrame) -> int:
        """Append raw rows to the intake table"""
        rows = self.conform(df).to_dicts()
        if rows:
            await session.execute(insert(self.table), rows)

        logger.info("Staged raw rows", table=self.table.name, rows=len(rows))
        return len(rows)
