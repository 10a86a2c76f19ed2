"""
Integration Tests - Metric Views
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text

from manufacturing_analytics.analytics.grading import QualityGrade
from manufacturing_analytics.analytics.views import VIEWS, fetch_kpis, install_views, read_view
from manufacturing_analytics.transformation.fact_loader import FactLoader
from manufacturing_analytics.transformation.normalizers import DimensionNormalizer


async def load(session, frame):
    await DimensionNormalizer(session).normalize(frame)
    await FactLoader(session).load(frame)


def fact(doc_num, doc_date, produced=0, rejected=0, **extra):
    return {
        "Doc Num": doc_num,
        "Doc Date": doc_date,
        "Produced Qty": produced,
        "Rejected Qty": rejected,
        **extra,
    }


class TestDashboard:
    """manufacturing_dashboard"""

    async def test_example_row(self, test_db, make_raw, example_record):
        await load(test_db, make_raw([example_record]))

        rows = await read_view(test_db, "manufacturing_dashboard")

        assert len(rows) == 1
        row = rows[0]
        assert row.cust_name == "Acme"
        assert row.rejection_rate_percent == pytest.approx(10.0)
        assert row.value_per_unit == pytest.approx(50.0)
        assert row.production_month_name == "January"
        assert row.production_year == 2024
        assert row.production_month == 1
        assert row.production_day_name == "Monday"
        assert row.total_value == Decimal("5000.00")

    async def test_zero_denominators_yield_zero(self, test_db, make_raw):
        await load(test_db, make_raw([fact("D1", "2024-02-10")]))

        row = (await read_view(test_db, "manufacturing_dashboard"))[0]

        assert row.rejection_rate_percent == 0
        assert row.production_efficiency_percent == 0
        assert row.value_per_unit == 0
        assert row.production_day_name == "Saturday"

    async def test_missing_dimensions_keep_the_fact(self, test_db, make_raw):
        await FactLoader(test_db).load(make_raw([fact("D1", "2024-02-10", 10, 1, **{"Cust Code": "C404"})]))

        rows = await read_view(test_db, "manufacturing_dashboard")

        assert len(rows) == 1
        assert rows[0].cust_code is None
        assert rows[0].cust_name is None

    async def test_date_filters(self, test_db, make_raw):
        await load(test_db, make_raw([
            fact("D1", "2024-01-05"),
            fact("D2", "2024-01-20"),
            fact("D3", "2024-02-01"),
        ]))

        rows = await read_view(
            test_db,
            "manufacturing_dashboard",
            start_date=date(2024, 1, 10),
            end_date=date(2024, 2, 1),
        )

        assert [row.doc_num for row in rows] == ["D2", "D3"]

    async def test_order_and_paging(self, test_db, make_raw):
        await load(test_db, make_raw([fact(f"D{i}", "2024-01-05", produced=i) for i in range(1, 6)]))

        rows = await read_view(test_db, "manufacturing_dashboard", order_by="-produced_qty", limit=2, offset=1)

        assert [row.produced_qty for row in rows] == [4, 3]


class TestKpis:
    """manufacturing_kpis"""

    async def test_per_row_average(self, test_db, make_raw):
        await load(test_db, make_raw([
            fact("D1", "2024-01-05", 100, 10, **{"Cust Code": "C1", "WO Qty": 200, "TotalValue": "100"}),
            fact("D2", "2024-01-06", 0, 5, **{"Cust Code": "C2", "TotalValue": "50.50"}),
            fact("D3", "2024-01-07", 900, 0, **{"Cust Code": "C1", "WO Qty": 900}),
        ]))

        kpis = await fetch_kpis(test_db)

        assert kpis.total_orders == 3
        assert kpis.unique_customers == 2
        assert kpis.total_production == 1000
        assert kpis.total_rejections == 15
        assert kpis.total_revenue == Decimal("150.50")
        # (10 + 0 + 0) / 3, not 15 / 1000
        assert kpis.avg_rejection_rate == pytest.approx(10 / 3)
        assert kpis.avg_efficiency == pytest.approx((50 + 0 + 100) / 3)

    async def test_empty_store(self, test_db):
        kpis = await fetch_kpis(test_db)

        assert kpis.total_orders == 0
        assert kpis.unique_customers == 0
        assert kpis.total_revenue is None


class TestQualityAnalysis:
    """quality_analysis"""

    async def test_grades_and_exclusion(self, test_db, make_raw):
        await load(test_db, make_raw([
            fact("D1", "2024-01-01", 95, 5),
            fact("D2", "2024-01-02", 100, 0),
            fact("D3", "2024-01-03", 0, 0),
            fact("D4", "2024-01-04", 70, 30),
            fact("D5", "2024-01-05", 85, 15),
        ]))

        rows = await read_view(test_db, "quality_analysis")

        assert [row.doc_date.day for row in rows] == [1, 2, 4, 5]
        assert [row.quality_grade for row in rows] == [
            QualityGrade.EXCELLENT,
            QualityGrade.PERFECT,
            QualityGrade.CRITICAL,
            QualityGrade.NEEDS_IMPROVEMENT,
        ]
        assert rows[0].rejection_rate_percent == pytest.approx(5.0)
        assert rows[1].rejection_rate_percent == 0


class TestRollups:
    """Group-by views"""

    async def test_monthly_trends_sorted(self, test_db, make_raw):
        await load(test_db, make_raw([
            fact("D1", "2024-03-02", 10, **{"TotalValue": "10"}),
            fact("D2", "2024-01-15", 20, **{"TotalValue": "20"}),
            fact("D3", "2023-01-31", 30, **{"TotalValue": "30"}),
            fact("D4", "2024-01-16", 40, **{"TotalValue": "25"}),
        ]))

        rows = await read_view(test_db, "monthly_production_trends")

        assert [(row.year, row.month) for row in rows] == [(2023, 1), (2024, 1), (2024, 3)]
        assert [row.month_name for row in rows] == ["January", "January", "March"]
        jan_2024 = rows[1]
        assert jan_2024.total_operations == 2
        assert jan_2024.total_produced == 60
        assert jan_2024.avg_order_value == Decimal("22.5")

    async def test_department_performance(self, test_db, make_raw):
        await load(test_db, make_raw([
            fact("D1", "2024-01-01", 100, 10, **{"Department Name": "Press"}),
            fact("D2", "2024-01-02", 50, 0, **{"Department Name": "Press"}),
            fact("D3", "2024-01-03", 5, 5),
            fact("D4", "2024-01-04", 0, 0, **{"Department Name": "Idle"}),
        ]))

        rows = {row.department_name: row for row in await read_view(test_db, "department_performance")}

        assert set(rows) == {"Idle", "Press"}
        assert rows["Press"].rejection_rate_percent == pytest.approx(6.25)
        assert rows["Press"].total_operations == 2
        assert rows["Idle"].rejection_rate_percent is None

    async def test_quality_metrics_null_rate(self, test_db, make_raw):
        await load(test_db, make_raw([fact("D1", "2024-01-01", 0, 5, **{"Cust Code": "C1", "Cust Name": "Acme"})]))

        rows = await read_view(test_db, "quality_metrics")

        assert len(rows) == 1
        assert rows[0].cust_name == "Acme"
        assert rows[0].avg_rejection_rate is None

    async def test_null_group_keys_are_kept(self, test_db, make_raw):
        await load(test_db, make_raw([
            fact("D1", "2024-01-01", 10, **{"Cust Code": "C1"}),
            fact("D2", "2024-01-01", 20),
            fact("D3", "2024-01-02", 30),
        ]))

        summary = {row.cust_code: row for row in await read_view(test_db, "customer_summary")}

        assert set(summary) == {"C1", None}
        assert summary[None].total_orders == 2
        assert summary[None].total_production == 50

    async def test_money_sums_keep_cents(self, test_db, make_raw):
        await load(test_db, make_raw([
            fact(f"D{i}", "2024-01-01", 1, **{"Cust Code": "C1", "TotalValue": "0.10"}) for i in range(3)
        ]))

        row = (await read_view(test_db, "customer_summary"))[0]

        assert isinstance(row.total_business_value, Decimal)
        assert row.total_business_value == Decimal("0.30")

    async def test_customer_analysis_includes_customers_without_orders(self, test_db, make_raw):
        await DimensionNormalizer(test_db).normalize(make_raw([{"Cust Code": "C0", "Cust Name": "Quiet"}]))
        await load(test_db, make_raw([
            fact("D1", "2024-01-01", 10, **{"Cust Code": "C1", "TotalValue": "100"}),
            fact("D2", "2024-01-09", 10, **{"Cust Code": "C2", "TotalValue": "300"}),
        ]))

        rows = await read_view(test_db, "customer_analysis")

        assert [row.cust_code for row in rows] == ["C2", "C1", "C0"]
        assert rows[2].total_orders == 0
        assert rows[2].total_revenue is None
        assert rows[0].last_order_date == date(2024, 1, 9)

    async def test_daily_and_production_summaries(self, test_db, make_raw):
        await load(test_db, make_raw([
            fact("D1", "2024-01-01", 10, **{"Item Code": "I1", "EMP Code": "E1", "Emp Name": "Ravi", "today Manufactured qty": 4}),
            fact("D2", "2024-01-01", 20, **{"Item Code": "I2", "EMP Code": "E1", "Emp Name": "Ravi", "today Manufactured qty": 6}),
        ]))

        daily = await read_view(test_db, "daily_production_summary")
        production = await read_view(test_db, "production_summary")

        assert len(daily) == 1
        assert daily[0].total_records == 2
        assert daily[0].daily_manufactured == 10
        assert len(production) == 1
        assert production[0].emp_name == "Ravi"
        assert production[0].unique_items_produced == 2

    async def test_machine_utilization(self, test_db, make_raw, sample_records):
        await load(test_db, make_raw(sample_records))

        rows = {(row.machine_code, row.operation_name): row for row in await read_view(test_db, "machine_utilization")}

        assert rows[("M-1", "Pressing")].total_operations == 2
        assert rows[("M-1", "Pressing")].per_day_cost == Decimal("1250.50")
        assert rows[("M-1", "Pressing")].avg_units_per_operation == pytest.approx(82.5)


class TestInstallViews:
    """install_views"""

    async def test_installed_views_are_queryable(self, test_db, make_raw, example_record):
        await load(test_db, make_raw([example_record]))

        installed = await install_views(test_db)

        assert set(installed) == set(VIEWS)
        row = (await test_db.execute(text(
            "SELECT rejection_rate_percent, value_per_unit, production_month_name FROM manufacturing_dashboard"
        ))).one()
        assert row.rejection_rate_percent == pytest.approx(10.0)
        assert row.value_per_unit == pytest.approx(50.0)
        assert row.production_month_name == "January"

    async def test_reinstall_replaces_views(self, test_db, make_raw):
        await load(test_db, make_raw([fact("D1", "2024-01-01", 95, 5)]))

        await install_views(test_db, names=["quality_analysis"])
        await install_views(test_db, names=["quality_analysis"])

        grade = (await test_db.execute(text("SELECT quality_grade FROM quality_analysis"))).scalar_one()
        assert grade == "Excellent"
