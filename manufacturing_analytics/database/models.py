"""
Database Models - Star Schema Design

This module defines the production data models following a star schema design
pattern for manufacturing analytics. The schema consists of:

Fact Tables:
- ProductionRecord: One row per manufacturing document line

Dimension Tables:
- Customer, Employee, Item, Machine, Operation: keyed by their natural code
- Department: surrogate key over a unique name

Foreign keys on production_records are nullable. The fact loader resolves
codes before insert and stores NULL for codes missing from a dimension, so
the declared constraints only ever see resolved codes.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class Customer(Base):
    """
    Customer Dimension Table

    Keyed by the customer code from the source spreadsheet.
    """
    __tablename__ = "customers"

    cust_code: Mapped[str] = mapped_column(String(20), primary_key=True)
    cust_name: Mapped[Optional[str]] = mapped_column(String(100))
    buyer: Mapped[Optional[str]] = mapped_column(String(100))

    records: Mapped[List["ProductionRecord"]] = relationship(back_populates="customer")

    __table_args__ = (
        Index("idx_cust_name", "cust_name"),
    )


class Employee(Base):
    """Employee Dimension Table"""
    __tablename__ = "employees"

    emp_code: Mapped[str] = mapped_column(String(20), primary_key=True)
    emp_name: Mapped[Optional[str]] = mapped_column(String(100))

    records: Mapped[List["ProductionRecord"]] = relationship(back_populates="employee")

    __table_args__ = (
        Index("idx_emp_name", "emp_name"),
    )


class Item(Base):
    """Item Dimension Table"""
    __tablename__ = "items"

    item_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    item_name: Mapped[Optional[str]] = mapped_column(String(200))

    records: Mapped[List["ProductionRecord"]] = relationship(back_populates="item")

    __table_args__ = (
        Index("idx_item_name", "item_name"),
    )


class Machine(Base):
    """
    Machine Dimension Table

    Carries the per-day running cost used by the utilization view.
    """
    __tablename__ = "machines"

    machine_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    per_day_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    records: Mapped[List["ProductionRecord"]] = relationship(back_populates="machine")


class Operation(Base):
    """Operation Dimension Table"""
    __tablename__ = "operations"

    operation_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    operation_name: Mapped[Optional[str]] = mapped_column(String(100))

    records: Mapped[List["ProductionRecord"]] = relationship(back_populates="operation")

    __table_args__ = (
        Index("idx_operation_name", "operation_name"),
    )


class Department(Base):
    """
    Department Dimension Table

    Production records keep the department as free text; this table is the
    distinct list of department names seen in the raw intake.
    """
    __tablename__ = "departments"

    department_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    department_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


# =============================================================================
# FACT TABLES
# =============================================================================

class ProductionRecord(Base):
    """
    Production Fact Table

    Grain: one row per manufacturing document line. Append-only; the table
    has no natural key, so loading the same document twice stores it twice.
    """
    __tablename__ = "production_records"

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    doc_num: Mapped[str] = mapped_column(String(50), nullable=False)
    doc_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Dimension foreign keys (soft references, see module docstring)
    cust_code: Mapped[Optional[str]] = mapped_column(String(20), ForeignKey("customers.cust_code"))
    emp_code: Mapped[Optional[str]] = mapped_column(String(20), ForeignKey("employees.emp_code"))
    item_code: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("items.item_code"))
    machine_code: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("machines.machine_code"))
    operation_code: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("operations.operation_code"))

    # Denormalized text
    department_name: Mapped[Optional[str]] = mapped_column(String(100))
    designer: Mapped[Optional[str]] = mapped_column(String(100))
    delivery_period: Mapped[Optional[str]] = mapped_column(String(50))

    # Measures
    press_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    produced_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejected_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    today_manufactured_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wo_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    # Flags
    repeat_order: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    # Relationships
    customer: Mapped[Optional["Customer"]] = relationship(back_populates="records")
    employee: Mapped[Optional["Employee"]] = relationship(back_populates="records")
    item: Mapped[Optional["Item"]] = relationship(back_populates="records")
    machine: Mapped[Optional["Machine"]] = relationship(back_populates="records")
    operation: Mapped[Optional["Operation"]] = relationship(back_populates="records")

    __table_args__ = (
        Index("idx_doc_num", "doc_num"),
        Index("idx_doc_date", "doc_date"),
        Index("idx_department", "department_name"),
        Index("idx_designer", "designer"),
        Index("idx_prod_cust_code", "cust_code"),
        Index("idx_prod_emp_code", "emp_code"),
        Index("idx_prod_item_code", "item_code"),
        Index("idx_prod_machine_code", "machine_code"),
        Index("idx_prod_operation_code", "operation_code"),
    )
