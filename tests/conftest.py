"""
Test Suite Configuration
"""
from typing import Any, AsyncGenerator, Callable, Dict, Iterable, List

import polars as pl
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from manufacturing_analytics.config import Settings
from manufacturing_analytics.database.connection import build_engine
from manufacturing_analytics.database.models import Base
from manufacturing_analytics.ingestion.raw_intake import RawIntakeReader, raw_metadata

MEMORY_URL = "sqlite+aiosqlite://"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
    )


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with the warehouse schema and the raw intake table"""
    engine = build_engine(MEMORY_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(raw_metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_raw() -> Callable[[Iterable[Dict[str, Any]]], pl.DataFrame]:
    """Build a raw intake frame from mappings keyed by spreadsheet header"""
    reader = RawIntakeReader()

    def _make(records: Iterable[Dict[str, Any]]) -> pl.DataFrame:
        return reader.frame_from_records(list(records))

    return _make


@pytest.fixture
def example_record() -> Dict[str, Any]:
    """The reference row: one customer, one fact, 10 % rejection"""
    return {
        "Cust Code": "C001",
        "Cust Name": "Acme",
        "Doc Num": "DOC-1",
        "Doc Date": "2024-01-15",
        "Produced Qty": 100,
        "Rejected Qty": 10,
        "TotalQty": 100,
        "TotalValue": "5000.00",
    }


@pytest.fixture
def sample_records() -> List[Dict[str, Any]]:
    """A small batch touching every dimension"""
    return [
        {
            "Cust Code": "C001",
            "Cust Name": "Acme",
            "Buyer": "Jane",
            "EMP Code": "E01",
            "Emp Name": "Ravi",
            "Item Code": "IT-1",
            "Item Name": "Bracket",
            "Machine Code": "M-1",
            "Per day Machine Cost": "1,250.50",
            "Operation Code": "OP-1",
            "Operation Name": "Pressing",
            "Department Name": "Press Shop",
            "Doc Num": "DOC-1",
            "Doc Date": "2024-01-15",
            "Designer": "Lee",
            "Delivery Period": "2 weeks",
            "Press Qty": "120",
            "Processed Qty": "110",
            "Produced Qty": "95",
            "Rejected Qty": "5",
            "today Manufactured qty": "40",
            "TotalQty": "100",
            "WO Qty": "100",
            "TotalValue": "2000.00",
            "Repeat": "1",
        },
        {
            "Cust Code": "C002",
            "Cust Name": "Globex",
            "Buyer": "Hank",
            "EMP Code": "E02",
            "Emp Name": "Mei",
            "Item Code": "IT-2",
            "Item Name": "Hinge",
            "Machine Code": "M-2",
            "Per day Machine Cost": "800",
            "Operation Code": "OP-2",
            "Operation Name": "Drilling",
            "Department Name": "Machining",
            "Doc Num": "DOC-2",
            "Doc Date": "2024-03-02",
            "Produced Qty": "50",
            "Rejected Qty": "0",
            "TotalQty": "50",
            "WO Qty": "40",
            "TotalValue": "1500.00",
            "Repeat": "0",
        },
        {
            "Cust Code": "C001",
            "Cust Name": "Acme",
            "Buyer": "Jane",
            "EMP Code": "E01",
            "Emp Name": "Ravi",
            "Item Code": "IT-2",
            "Item Name": "Hinge",
            "Machine Code": "M-1",
            "Per day Machine Cost": "1250.50",
            "Operation Code": "OP-1",
            "Operation Name": "Pressing",
            "Department Name": "Press Shop",
            "Doc Num": "DOC-3",
            "Doc Date": "2024-01-20",
            "Produced Qty": "70",
            "Rejected Qty": "30",
            "TotalQty": "100",
            "WO Qty": "0",
            "TotalValue": "900.00",
        },
    ]
