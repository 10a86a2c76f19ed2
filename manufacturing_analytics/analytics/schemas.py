"""
Row models for the metric views.

One pydantic model per view; field names match the view's column names.
Money columns are Decimal so cents survive the trip from the store to the
API, where they serialize as strings.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from manufacturing_analytics.analytics.grading import QualityGrade


class DashboardRow(BaseModel):
    """One production record with its dimension names and derived metrics"""
    record_id: int
    doc_num: str
    doc_date: date
    cust_code: Optional[str] = None
    emp_code: Optional[str] = None
    item_code: Optional[str] = None
    machine_code: Optional[str] = None
    operation_code: Optional[str] = None
    department_name: Optional[str] = None
    designer: Optional[str] = None
    delivery_period: Optional[str] = None
    press_qty: int
    processed_qty: int
    produced_qty: int
    rejected_qty: int
    today_manufactured_qty: int
    total_qty: int
    wo_qty: int
    total_value: Decimal
    repeat_order: bool
    cust_name: Optional[str] = None
    buyer: Optional[str] = None
    emp_name: Optional[str] = None
    item_name: Optional[str] = None
    machine_cost: Optional[Decimal] = None
    operation_name: Optional[str] = None
    rejection_rate_percent: float
    production_efficiency_percent: float
    value_per_unit: float
    production_year: int
    production_month: int
    production_month_name: str
    production_day_name: str


class KpiRow(BaseModel):
    """Global rollup; sums are null while the fact table is empty"""
    total_orders: int
    unique_customers: int
    unique_items: int
    active_employees: int
    total_production: Optional[int] = None
    total_rejections: Optional[int] = None
    total_revenue: Optional[Decimal] = None
    avg_rejection_rate: Optional[float] = None
    avg_efficiency: Optional[float] = None


class QualityMetricsRow(BaseModel):
    cust_name: Optional[str] = None
    item_name: Optional[str] = None
    operation_name: Optional[str] = None
    department_name: Optional[str] = None
    total_produced: int
    total_rejected: int
    avg_rejection_rate: Optional[float] = None
    total_orders: int


class ProductionSummaryRow(BaseModel):
    production_date: date
    department_name: Optional[str] = None
    emp_name: Optional[str] = None
    daily_production: int
    daily_rejections: int
    daily_value: Decimal
    unique_items_produced: int


class MachineUtilizationRow(BaseModel):
    machine_code: Optional[str] = None
    per_day_cost: Optional[Decimal] = None
    operation_name: Optional[str] = None
    total_operations: int
    total_units_produced: int
    total_value_generated: Decimal
    avg_units_per_operation: Optional[float] = None


class DailyProductionRow(BaseModel):
    production_date: date
    cust_code: Optional[str] = None
    department_name: Optional[str] = None
    total_records: int
    total_produced: int
    total_rejected: int
    daily_manufactured: int
    total_value: Decimal
    avg_value: Optional[Decimal] = None


class CustomerAnalysisRow(BaseModel):
    """One row per known customer, including customers without orders"""
    cust_code: str
    cust_name: Optional[str] = None
    buyer: Optional[str] = None
    total_orders: int
    total_revenue: Optional[Decimal] = None
    total_units: Optional[int] = None
    avg_rejection_rate: Optional[float] = None
    last_order_date: Optional[date] = None
    unique_items_ordered: int


class CustomerSummaryRow(BaseModel):
    cust_code: Optional[str] = None
    total_orders: int
    total_production: int
    total_rejected: int
    total_business_value: Decimal
    avg_order_value: Optional[Decimal] = None


class MonthlyTrendRow(BaseModel):
    year: int
    month: int
    month_name: str
    total_operations: int
    total_produced: int
    total_rejected: int
    monthly_revenue: Decimal
    avg_order_value: Optional[Decimal] = None


class DepartmentPerformanceRow(BaseModel):
    department_name: str
    total_operations: int
    unique_customers: int
    unique_employees: int
    total_produced: int
    total_rejected: int
    rejection_rate_percent: Optional[float] = None
    department_revenue: Decimal


class QualityAnalysisRow(BaseModel):
    doc_date: date
    cust_code: Optional[str] = None
    department_name: Optional[str] = None
    machine_code: Optional[str] = None
    operation_code: Optional[str] = None
    produced_qty: int
    rejected_qty: int
    rejection_rate_percent: float
    total_value: Decimal
    quality_grade: QualityGrade
