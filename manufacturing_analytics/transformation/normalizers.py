"""
Dimension Normalizer

Extracts the distinct members of each dimension (customer, employee, item,
machine, operation, department) from the raw intake buffer and upserts them
into the lookup tables.

Rules:
- Rows whose natural key is null or blank are skipped for that dimension
- When the raw data repeats a key with different attributes, the last row wins
- An existing key has all of its descriptive attributes overwritten
- Dimensions only grow; nothing is ever deleted here
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

import polars as pl
import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from manufacturing_analytics.database.models import (
    Base,
    Customer,
    Department,
    Employee,
    Item,
    Machine,
    Operation,
)
from manufacturing_analytics.ingestion import raw_intake as raw
from manufacturing_analytics.transformation.cleaners import (
    CoercionError,
    RawDataCleaner,
    clean_text,
    numeric_limit,
    parse_amount,
)

logger = structlog.get_logger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_COST_TYPE = Machine.__table__.c.per_day_cost.type
_COST_LIMIT = numeric_limit(_COST_TYPE.precision, _COST_TYPE.scale)


def _machine_cost(value: Any) -> Any:
    try:
        return parse_amount(value, column=raw.MACHINE_COST, default=None, limit=_COST_LIMIT)
    except CoercionError as e:
        logger.warning("Unusable machine cost stored as null", value=e.value)
        return None


@dataclass(frozen=True)
class DimensionSpec:
    """How one dimension is populated from the raw intake"""
    name: str
    model: Type[Base]
    key: str
    raw_key: str
    attributes: Dict[str, str] = field(default_factory=dict)  # raw header -> model column
    coercers: Dict[str, Callable[[Any], Any]] = field(default_factory=dict)  # model column -> coercer

    @property
    def key_column(self):
        return getattr(self.model, self.key)


CUSTOMERS = DimensionSpec(
    name="customer",
    model=Customer,
    key="cust_code",
    raw_key=raw.CUST_CODE,
    attributes={raw.CUST_NAME: "cust_name", raw.BUYER: "buyer"},
)
EMPLOYEES = DimensionSpec(
    name="employee",
    model=Employee,
    key="emp_code",
    raw_key=raw.EMP_CODE,
    attributes={raw.EMP_NAME: "emp_name"},
)
ITEMS = DimensionSpec(
    name="item",
    model=Item,
    key="item_code",
    raw_key=raw.ITEM_CODE,
    attributes={raw.ITEM_NAME: "item_name"},
)
MACHINES = DimensionSpec(
    name="machine",
    model=Machine,
    key="machine_code",
    raw_key=raw.MACHINE_CODE,
    attributes={raw.MACHINE_COST: "per_day_cost"},
    coercers={"per_day_cost": _machine_cost},
)
OPERATIONS = DimensionSpec(
    name="operation",
    model=Operation,
    key="operation_code",
    raw_key=raw.OPERATION_CODE,
    attributes={raw.OPERATION_NAME: "operation_name"},
)
# Surrogate key; the unique name is the natural key
DEPARTMENTS = DimensionSpec(
    name="department",
    model=Department,
    key="department_name",
    raw_key=raw.DEPARTMENT_NAME,
)

DIMENSIONS: List[DimensionSpec] = [CUSTOMERS, EMPLOYEES, ITEMS, MACHINES, OPERATIONS, DEPARTMENTS]


@dataclass
class NormalizationResult:
    """Outcome of normalizing one dimension"""
    dimension: str
    source_rows: int
    distinct_keys: int
    inserted: int
    updated: int
    skipped_rows: int = 0  # rows without a usable key for this dimension


class DimensionNormalizer:
    """
    Populates the dimension tables from the raw intake buffer.

    Example:
        normalizer = DimensionNormalizer(session)
        results = await normalizer.normalize(raw_df)
    """

    def __init__(
        self,
        session: AsyncSession,
        dimensions: Optional[Sequence[DimensionSpec]] = None,
        chunk_size: int = 500,
    ):
        self.session = session
        self.dimensions = list(dimensions or DIMENSIONS)
        self.chunk_size = chunk_size
        self.cleaner = RawDataCleaner()

    def distinct_members(self, df: pl.DataFrame, spec: DimensionSpec) -> pl.DataFrame:
        """
        Distinct non-blank keys with the attributes of the last row seen.

        Returns a frame whose columns are the model's column names.
        """
        raw_columns = [spec.raw_key, *spec.attributes]
        frame = self.cleaner.prepare(df.select(raw_columns))

        return (
            frame
            .filter(pl.col(spec.raw_key).is_not_null())
            .unique(subset=[spec.raw_key], keep="last", maintain_order=True)
            .rename({spec.raw_key: spec.key, **spec.attributes})
        )

    def _to_records(self, members: pl.DataFrame, spec: DimensionSpec) -> List[Dict[str, Any]]:
        table = spec.model.__table__
        key_length = table.c[spec.key].type.length

        records = []
        for row in members.to_dicts():
            if key_length and len(row[spec.key]) > key_length:
                logger.warning("Dimension key too long, skipped", dimension=spec.name, key=row[spec.key])
                continue
            for column in spec.attributes.values():
                if column in spec.coercers:
                    row[column] = spec.coercers[column](row[column])
                    continue
                length = getattr(table.c[column].type, "length", None)
                if length and row[column] is not None and len(row[column]) > length:
                    logger.warning("Dimension attribute truncated", dimension=spec.name, column=column, key=row[spec.key])
                    row[column] = row[column][:length]
            records.append(row)
        return records

    def _chunks(self, items: List[Any]) -> List[List[Any]]:
        return [items[i:i + self.chunk_size] for i in range(0, len(items), self.chunk_size)]

    async def _existing_keys(self, spec: DimensionSpec, keys: List[str]) -> set:
        existing = set()
        for chunk in self._chunks(keys):
            result = await self.session.execute(select(spec.key_column).where(spec.key_column.in_(chunk)))
            existing.update(result.scalars().all())
        return existing

    async def upsert(self, spec: DimensionSpec, records: List[Dict[str, Any]]) -> None:
        """Insert new keys and overwrite the attributes of existing ones"""
        if not records:
            return

        insert = _UPSERT_INSERTS.get(self.session.get_bind().dialect.name)
        if insert is None:
            await self._merge(spec, records)
            return

        attribute_columns = list(spec.attributes.values())
        for chunk in self._chunks(records):
            stmt = insert(spec.model).values(chunk)
            if attribute_columns:
                stmt = stmt.on_conflict_do_update(
                    index_elements=[spec.key],
                    set_={column: stmt.excluded[column] for column in attribute_columns},
                )
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=[spec.key])
            await self.session.execute(stmt)

    async def _merge(self, spec: DimensionSpec, records: List[Dict[str, Any]]) -> None:
        """Look-up-then-write upsert for dialects without ON CONFLICT"""
        for record in records:
            existing = await self.get_or_none(spec, record[spec.key])
            if existing is None:
                self.session.add(spec.model(**record))
                continue
            for column in spec.attributes.values():
                setattr(existing, column, record[column])
        await self.session.flush()

    async def get_or_none(self, spec: DimensionSpec, code: Optional[str]) -> Optional[Base]:
        """Look up a dimension member by natural key"""
        code = clean_text(code)
        if code is None:
            return None
        result = await self.session.execute(select(spec.model).where(spec.key_column == code))
        return result.scalar_one_or_none()

    async def normalize_dimension(self, df: pl.DataFrame, spec: DimensionSpec) -> NormalizationResult:
        """Normalize a single dimension"""
        members = self.distinct_members(df, spec)
        records = self._to_records(members, spec)
        keys = [record[spec.key] for record in records]

        existing = await self._existing_keys(spec, keys)
        await self.upsert(spec, records)

        keyed_rows = df.filter(
            pl.col(spec.raw_key).is_not_null()
            & (pl.col(spec.raw_key).str.strip_chars() != "")
        ).height

        result = NormalizationResult(
            dimension=spec.name,
            source_rows=len(df),
            distinct_keys=len(keys),
            inserted=len(keys) - len(existing),
            updated=len(existing),
            skipped_rows=len(df) - keyed_rows,
        )
        logger.info(
            "Dimension normalized",
            dimension=spec.name,
            distinct_keys=result.distinct_keys,
            inserted=result.inserted,
            updated=result.updated,
            skipped_rows=result.skipped_rows,
        )
        return result

    async def normalize(self, df: pl.DataFrame) -> List[NormalizationResult]:
        """Normalize every configured dimension"""
        results = []
        for spec in self.dimensions:
            results.append(await self.normalize_dimension(df, spec))
        await self.session.flush()
        return results
