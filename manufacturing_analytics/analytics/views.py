"""
Metric View Layer

Each view is a pure function of the current store state, defined once as a
SQLAlchemy ``Select``. The same select serves two consumers:

- ``read_view()`` runs it (wrapped as a subquery) with optional date filters,
  ordering and paging, returning pydantic rows for the API
- ``install_views()`` compiles it into ``CREATE VIEW`` statements so BI tools
  connected with the read-only login see identical definitions

Views join facts to dimensions with outer joins only, so a fact is never
dropped for a missing dimension member. Null grouping keys form their own
group unless the view filters them out explicitly.
"""

from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Type

import structlog
from pydantic import BaseModel
from sqlalchemy import Select, distinct, func, or_, select
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncSession

from manufacturing_analytics.analytics import schemas
from manufacturing_analytics.analytics.expressions import (
    calendar_month,
    calendar_year,
    day_name,
    month_name,
    null_percent,
    null_ratio,
    rounded,
    zero_percent,
    zero_ratio,
)
from manufacturing_analytics.analytics.grading import quality_grade_expr
from manufacturing_analytics.database.models import (
    Customer,
    Employee,
    Item,
    Machine,
    Operation,
    ProductionRecord,
)

logger = structlog.get_logger(__name__)

pr = ProductionRecord


# =============================================================================
# VIEW DEFINITIONS
# =============================================================================

def manufacturing_dashboard() -> Select:
    """Every fact with dimension names, ratio metrics and calendar attributes (0 on zero denominators)"""
    fact_columns = [column for column in ProductionRecord.__table__.c if column.name != "created_at"]
    return (
        select(
            *fact_columns,
            Customer.cust_name,
            Customer.buyer,
            Employee.emp_name,
            Item.item_name,
            Machine.per_day_cost.label("machine_cost"),
            Operation.operation_name,
            zero_percent(pr.rejected_qty, pr.produced_qty).label("rejection_rate_percent"),
            zero_percent(pr.produced_qty, pr.wo_qty).label("production_efficiency_percent"),
            zero_ratio(pr.total_value, pr.total_qty).label("value_per_unit"),
            calendar_year(pr.doc_date).label("production_year"),
            calendar_month(pr.doc_date).label("production_month"),
            month_name(pr.doc_date).label("production_month_name"),
            day_name(pr.doc_date).label("production_day_name"),
        )
        .select_from(ProductionRecord)
        .outerjoin(Customer, pr.cust_code == Customer.cust_code)
        .outerjoin(Employee, pr.emp_code == Employee.emp_code)
        .outerjoin(Item, pr.item_code == Item.item_code)
        .outerjoin(Machine, pr.machine_code == Machine.machine_code)
        .outerjoin(Operation, pr.operation_code == Operation.operation_code)
    )


def manufacturing_kpis() -> Select:
    """
    Single-row global rollup.

    Rejection rate and efficiency are averaged per record, not computed as a
    ratio of sums, so every order weighs the same regardless of volume.
    """
    return select(
        func.count().label("total_orders"),
        func.count(distinct(pr.cust_code)).label("unique_customers"),
        func.count(distinct(pr.item_code)).label("unique_items"),
        func.count(distinct(pr.emp_code)).label("active_employees"),
        func.sum(pr.produced_qty).label("total_production"),
        func.sum(pr.rejected_qty).label("total_rejections"),
        func.sum(pr.total_value).label("total_revenue"),
        func.avg(zero_percent(pr.rejected_qty, pr.produced_qty)).label("avg_rejection_rate"),
        func.avg(zero_percent(pr.produced_qty, pr.wo_qty)).label("avg_efficiency"),
    ).select_from(ProductionRecord)


def quality_metrics() -> Select:
    """Rejections by customer, item, operation and department (null rate when nothing produced)"""
    return (
        select(
            Customer.cust_name,
            Item.item_name,
            Operation.operation_name,
            pr.department_name,
            func.sum(pr.produced_qty).label("total_produced"),
            func.sum(pr.rejected_qty).label("total_rejected"),
            (func.avg(null_ratio(pr.rejected_qty, pr.produced_qty)) * 100).label("avg_rejection_rate"),
            func.count().label("total_orders"),
        )
        .select_from(ProductionRecord)
        .outerjoin(Customer, pr.cust_code == Customer.cust_code)
        .outerjoin(Item, pr.item_code == Item.item_code)
        .outerjoin(Operation, pr.operation_code == Operation.operation_code)
        .group_by(Customer.cust_name, Item.item_name, Operation.operation_name, pr.department_name)
    )


def production_summary() -> Select:
    return (
        select(
            pr.doc_date.label("production_date"),
            pr.department_name,
            Employee.emp_name,
            func.sum(pr.produced_qty).label("daily_production"),
            func.sum(pr.rejected_qty).label("daily_rejections"),
            func.sum(pr.total_value).label("daily_value"),
            func.count(distinct(pr.item_code)).label("unique_items_produced"),
        )
        .select_from(ProductionRecord)
        .outerjoin(Employee, pr.emp_code == Employee.emp_code)
        .group_by(pr.doc_date, pr.department_name, Employee.emp_name)
    )


def machine_utilization() -> Select:
    return (
        select(
            Machine.machine_code,
            Machine.per_day_cost,
            Operation.operation_name,
            func.count().label("total_operations"),
            func.sum(pr.produced_qty).label("total_units_produced"),
            func.sum(pr.total_value).label("total_value_generated"),
            func.avg(pr.produced_qty).label("avg_units_per_operation"),
        )
        .select_from(ProductionRecord)
        .outerjoin(Machine, pr.machine_code == Machine.machine_code)
        .outerjoin(Operation, pr.operation_code == Operation.operation_code)
        .group_by(Machine.machine_code, Machine.per_day_cost, Operation.operation_name)
    )


def daily_production_summary() -> Select:
    return (
        select(
            pr.doc_date.label("production_date"),
            pr.cust_code,
            pr.department_name,
            func.count().label("total_records"),
            func.sum(pr.produced_qty).label("total_produced"),
            func.sum(pr.rejected_qty).label("total_rejected"),
            func.sum(pr.today_manufactured_qty).label("daily_manufactured"),
            func.sum(pr.total_value).label("total_value"),
            func.avg(pr.total_value).label("avg_value"),
        )
        .where(pr.doc_date.is_not(None))
        .group_by(pr.doc_date, pr.cust_code, pr.department_name)
    )


def customer_analysis() -> Select:
    """One row per customer dimension member, with or without orders"""
    return (
        select(
            Customer.cust_code,
            Customer.cust_name,
            Customer.buyer,
            func.count(pr.record_id).label("total_orders"),
            func.sum(pr.total_value).label("total_revenue"),
            func.sum(pr.produced_qty).label("total_units"),
            func.avg(zero_percent(pr.rejected_qty, pr.produced_qty)).label("avg_rejection_rate"),
            func.max(pr.doc_date).label("last_order_date"),
            func.count(distinct(pr.item_code)).label("unique_items_ordered"),
        )
        .select_from(Customer)
        .outerjoin(ProductionRecord, Customer.cust_code == pr.cust_code)
        .group_by(Customer.cust_code, Customer.cust_name, Customer.buyer)
    )


def customer_summary() -> Select:
    """Rollup by the fact's customer code; unresolved customers share the null group"""
    return (
        select(
            pr.cust_code,
            func.count().label("total_orders"),
            func.sum(pr.produced_qty).label("total_production"),
            func.sum(pr.rejected_qty).label("total_rejected"),
            func.sum(pr.total_value).label("total_business_value"),
            func.avg(pr.total_value).label("avg_order_value"),
        )
        .group_by(pr.cust_code)
    )


def monthly_production_trends() -> Select:
    year = calendar_year(pr.doc_date)
    month = calendar_month(pr.doc_date)
    name = month_name(pr.doc_date)
    return (
        select(
            year.label("year"),
            month.label("month"),
            name.label("month_name"),
            func.count().label("total_operations"),
            func.sum(pr.produced_qty).label("total_produced"),
            func.sum(pr.rejected_qty).label("total_rejected"),
            func.sum(pr.total_value).label("monthly_revenue"),
            rounded(func.avg(pr.total_value)).label("avg_order_value"),
        )
        .where(pr.doc_date.is_not(None))
        .group_by(year, month, name)
    )


def department_performance() -> Select:
    """Per-department rollup; rejection % of everything that went through (null when empty)"""
    return (
        select(
            pr.department_name,
            func.count().label("total_operations"),
            func.count(distinct(pr.cust_code)).label("unique_customers"),
            func.count(distinct(pr.emp_code)).label("unique_employees"),
            func.sum(pr.produced_qty).label("total_produced"),
            func.sum(pr.rejected_qty).label("total_rejected"),
            rounded(
                null_percent(func.sum(pr.rejected_qty), func.sum(pr.produced_qty + pr.rejected_qty))
            ).label("rejection_rate_percent"),
            func.sum(pr.total_value).label("department_revenue"),
        )
        .where(pr.department_name.is_not(None))
        .group_by(pr.department_name)
    )


def quality_analysis() -> Select:
    """Graded records; records with nothing produced and nothing rejected are left out"""
    throughput = pr.produced_qty + pr.rejected_qty
    return (
        select(
            pr.doc_date,
            pr.cust_code,
            pr.department_name,
            pr.machine_code,
            pr.operation_code,
            pr.produced_qty,
            pr.rejected_qty,
            rounded(zero_percent(pr.rejected_qty, throughput)).label("rejection_rate_percent"),
            pr.total_value,
            quality_grade_expr(pr.produced_qty, pr.rejected_qty).label("quality_grade"),
        )
        .where(or_(pr.produced_qty > 0, pr.rejected_qty > 0))
    )


# =============================================================================
# REGISTRY
# =============================================================================

@dataclass(frozen=True)
class ViewSpec:
    """A named metric view"""
    name: str
    build: Callable[[], Select]
    row_model: Type[BaseModel]
    description: str
    date_column: Optional[str] = None  # column the start/end filters apply to
    default_order: Sequence[str] = ()  # "-column" sorts descending

    def columns(self) -> List[str]:
        return list(self.build().subquery().c.keys())

    def query(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Select:
        """
        Build the filtered, ordered and paged read query.

        Raises:
            ValueError: On a date filter for a view without a date column, an
                inverted date range, an unknown order column or bad paging
        """
        view = self.build().subquery(self.name)
        stmt = select(view)

        if start_date is not None or end_date is not None:
            if self.date_column is None:
                raise ValueError(f"View '{self.name}' has no date column to filter on")
            if start_date is not None and end_date is not None and start_date > end_date:
                raise ValueError("start_date must not be after end_date")
            column = view.c[self.date_column]
            if start_date is not None:
                stmt = stmt.where(column >= start_date)
            if end_date is not None:
                stmt = stmt.where(column <= end_date)

        for key in ([order_by] if order_by else list(self.default_order)):
            descending = key.startswith("-")
            name = key.lstrip("-")
            if name not in view.c:
                raise ValueError(f"Cannot order view '{self.name}' by unknown column '{name}'")
            column = view.c[name]
            stmt = stmt.order_by(column.desc().nulls_last() if descending else column.asc().nulls_last())

        if limit is not None:
            if limit < 0:
                raise ValueError("limit must not be negative")
            stmt = stmt.limit(limit)
        if offset:
            if offset < 0:
                raise ValueError("offset must not be negative")
            stmt = stmt.offset(offset)

        return stmt

    def compile(self, dialect: Dialect) -> str:
        """Render the view body as literal SQL for ``dialect``"""
        return str(self.build().compile(dialect=dialect, compile_kwargs={"literal_binds": True}))


VIEWS: Dict[str, ViewSpec] = {
    spec.name: spec
    for spec in [
        ViewSpec(
            name="manufacturing_dashboard",
            build=manufacturing_dashboard,
            row_model=schemas.DashboardRow,
            description="Production records with dimension names, ratios and calendar attributes",
            date_column="doc_date",
            default_order=("record_id",),
        ),
        ViewSpec(
            name="manufacturing_kpis",
            build=manufacturing_kpis,
            row_model=schemas.KpiRow,
            description="Global KPI rollup",
        ),
        ViewSpec(
            name="quality_metrics",
            build=quality_metrics,
            row_model=schemas.QualityMetricsRow,
            description="Rejections by customer, item, operation and department",
        ),
        ViewSpec(
            name="production_summary",
            build=production_summary,
            row_model=schemas.ProductionSummaryRow,
            description="Daily production by department and employee",
            date_column="production_date",
            default_order=("production_date",),
        ),
        ViewSpec(
            name="machine_utilization",
            build=machine_utilization,
            row_model=schemas.MachineUtilizationRow,
            description="Operations and output by machine and operation",
        ),
        ViewSpec(
            name="daily_production_summary",
            build=daily_production_summary,
            row_model=schemas.DailyProductionRow,
            description="Daily production by customer and department",
            date_column="production_date",
            default_order=("production_date",),
        ),
        ViewSpec(
            name="customer_analysis",
            build=customer_analysis,
            row_model=schemas.CustomerAnalysisRow,
            description="Order history per customer, highest revenue first",
            default_order=("-total_revenue",),
        ),
        ViewSpec(
            name="customer_summary",
            build=customer_summary,
            row_model=schemas.CustomerSummaryRow,
            description="Business volume per customer code",
        ),
        ViewSpec(
            name="monthly_production_trends",
            build=monthly_production_trends,
            row_model=schemas.MonthlyTrendRow,
            description="Monthly production and revenue",
            default_order=("year", "month"),
        ),
        ViewSpec(
            name="department_performance",
            build=department_performance,
            row_model=schemas.DepartmentPerformanceRow,
            description="Output, rejection rate and revenue per department",
            default_order=("department_name",),
        ),
        ViewSpec(
            name="quality_analysis",
            build=quality_analysis,
            row_model=schemas.QualityAnalysisRow,
            description="Graded production records",
            date_column="doc_date",
            default_order=("doc_date",),
        ),
    ]
}


def get_view(name: str) -> ViewSpec:
    """
    Raises:
        KeyError: If no view has this name
    """
    try:
        return VIEWS[name]
    except KeyError:
        raise KeyError(f"Unknown view: {name}") from None


# =============================================================================
# READ / INSTALL
# =============================================================================

async def read_view(
    session: AsyncSession,
    name: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    order_by: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[BaseModel]:
    """
    Read rows of a metric view.

    Args:
        session: Database session
        name: View name
        start_date: Inclusive lower bound on the view's date column
        end_date: Inclusive upper bound on the view's date column
        order_by: Column name, prefixed with "-" for descending
        limit: Maximum number of rows
        offset: Rows to skip

    Returns:
        List of the view's row models
    """
    spec = get_view(name)
    stmt = spec.query(start_date=start_date, end_date=end_date, order_by=order_by, limit=limit, offset=offset)
    return await fetch_rows(session, spec, stmt)


async def fetch_rows(session: AsyncSession, spec: ViewSpec, stmt: Select) -> List[BaseModel]:
    """Execute a query built by ``spec.query()``"""
    result = await session.execute(stmt)
    rows = [spec.row_model.model_validate(dict(row._mapping)) for row in result]

    logger.debug("View read", view=spec.name, rows=len(rows))
    return rows


async def fetch_kpis(session: AsyncSession) -> schemas.KpiRow:
    """The single KPI row"""
    rows = await read_view(session, "manufacturing_kpis")
    return rows[0]


async def install_views(session: AsyncSession, names: Optional[Sequence[str]] = None) -> List[str]:
    """
    (Re)create the metric views as database views.

    Returns:
        Names of the installed views
    """
    specs = [get_view(name) for name in names] if names else list(VIEWS.values())
    connection = await session.connection()

    for spec in specs:
        body = spec.compile(connection.dialect)
        await connection.exec_driver_sql(f"DROP VIEW IF EXISTS {spec.name}")
        await connection.exec_driver_sql(f"CREATE VIEW {spec.name} AS {body}")

    installed = [spec.name for spec in specs]
    logger.info("Metric views installed", views=installed, dialect=connection.dialect.name)
    return installed
