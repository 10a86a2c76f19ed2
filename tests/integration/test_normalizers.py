"""
Integration Tests - Dimension Normalizer
"""
from decimal import Decimal

from sqlalchemy import func, select

from manufacturing_analytics.database.models import (
    Customer,
    Department,
    Employee,
    Item,
    Machine,
    Operation,
)
from manufacturing_analytics.transformation.normalizers import (
    CUSTOMERS,
    MACHINES,
    DimensionNormalizer,
)


async def snapshot(session):
    """Every dimension row as plain tuples (bypasses the identity map)"""
    tables = {
        "customers": select(Customer.cust_code, Customer.cust_name, Customer.buyer).order_by(Customer.cust_code),
        "employees": select(Employee.emp_code, Employee.emp_name).order_by(Employee.emp_code),
        "items": select(Item.item_code, Item.item_name).order_by(Item.item_code),
        "machines": select(Machine.machine_code, Machine.per_day_cost).order_by(Machine.machine_code),
        "operations": select(Operation.operation_code, Operation.operation_name).order_by(Operation.operation_code),
        "departments": select(Department.department_id, Department.department_name).order_by(Department.department_id),
    }
    return {name: (await session.execute(stmt)).all() for name, stmt in tables.items()}


class TestDimensionNormalizer:
    """Tests for DimensionNormalizer"""

    async def test_one_entry_per_distinct_key(self, test_db, make_raw, sample_records):
        results = await DimensionNormalizer(test_db).normalize(make_raw(sample_records))

        state = await snapshot(test_db)
        assert [row.cust_code for row in state["customers"]] == ["C001", "C002"]
        assert [row.item_code for row in state["items"]] == ["IT-1", "IT-2"]
        assert sorted(row.department_name for row in state["departments"]) == ["Machining", "Press Shop"]

        by_dimension = {result.dimension: result for result in results}
        assert by_dimension["customer"].distinct_keys == 2
        assert by_dimension["customer"].inserted == 2
        assert by_dimension["customer"].source_rows == 3

    async def test_example_row_creates_customer(self, test_db, make_raw, example_record):
        await DimensionNormalizer(test_db).normalize(make_raw([example_record]))

        rows = (await test_db.execute(select(Customer.cust_code, Customer.cust_name))).all()
        assert [tuple(row) for row in rows] == [("C001", "Acme")]

    async def test_rerun_is_idempotent(self, test_db, make_raw, sample_records):
        raw = make_raw(sample_records)
        normalizer = DimensionNormalizer(test_db)

        await normalizer.normalize(raw)
        before = await snapshot(test_db)
        results = await normalizer.normalize(raw)
        after = await snapshot(test_db)

        assert before == after
        assert all(result.inserted == 0 for result in results)

    async def test_last_row_wins_within_batch(self, test_db, make_raw):
        raw = make_raw([
            {"Cust Code": "C001", "Cust Name": "Acme"},
            {"Cust Code": "C001", "Cust Name": "Acme Corp", "Buyer": "Jane"},
        ])

        await DimensionNormalizer(test_db, dimensions=[CUSTOMERS]).normalize(raw)

        rows = (await test_db.execute(select(Customer.cust_name, Customer.buyer))).all()
        assert [tuple(row) for row in rows] == [("Acme Corp", "Jane")]

    async def test_existing_key_is_overwritten(self, test_db, make_raw):
        normalizer = DimensionNormalizer(test_db, dimensions=[CUSTOMERS])
        await normalizer.normalize(make_raw([{"Cust Code": "C001", "Cust Name": "Acme", "Buyer": "Jane"}]))

        results = await normalizer.normalize(make_raw([{"Cust Code": "C001", "Cust Name": "Acme Ltd"}]))

        rows = (await test_db.execute(select(Customer.cust_code, Customer.cust_name, Customer.buyer))).all()
        assert [tuple(row) for row in rows] == [("C001", "Acme Ltd", None)]
        assert results[0].updated == 1
        assert results[0].inserted == 0

    async def test_blank_keys_are_skipped(self, test_db, make_raw):
        raw = make_raw([
            {"Cust Code": "", "Cust Name": "Nobody"},
            {"Cust Code": "   ", "Cust Name": "Nobody"},
            {"Cust Code": None, "Cust Name": "Nobody"},
            {"Cust Code": " C009 ", "Cust Name": " Trimmed "},
        ])

        results = await DimensionNormalizer(test_db, dimensions=[CUSTOMERS]).normalize(raw)

        rows = (await test_db.execute(select(Customer.cust_code, Customer.cust_name))).all()
        assert [tuple(row) for row in rows] == [("C009", "Trimmed")]
        assert results[0].skipped_rows == 3

    async def test_machine_cost_is_parsed(self, test_db, make_raw):
        raw = make_raw([
            {"Machine Code": "M-1", "Per day Machine Cost": "1,250.50"},
            {"Machine Code": "M-2", "Per day Machine Cost": "broken"},
        ])

        await DimensionNormalizer(test_db, dimensions=[MACHINES]).normalize(raw)

        costs = dict((await test_db.execute(select(Machine.machine_code, Machine.per_day_cost))).all())
        assert costs["M-1"] == Decimal("1250.50")
        assert costs["M-2"] is None

    async def test_machine_cost_out_of_range_is_nulled(self, test_db, make_raw):
        raw = make_raw([
            {"Machine Code": "M-1", "Per day Machine Cost": "99999999.99"},
            {"Machine Code": "M-2", "Per day Machine Cost": "100000000"},
            {"Machine Code": "M-3", "Per day Machine Cost": "1e30"},
        ])

        results = await DimensionNormalizer(test_db, dimensions=[MACHINES]).normalize(raw)

        assert results[0].distinct_keys == 3
        costs = dict((await test_db.execute(select(Machine.machine_code, Machine.per_day_cost))).all())
        assert costs["M-1"] == Decimal("99999999.99")
        assert costs["M-2"] is None
        assert costs["M-3"] is None

    async def test_overlong_key_is_skipped(self, test_db, make_raw):
        raw = make_raw([{"Cust Code": "X" * 21, "Cust Name": "Too long"}, {"Cust Code": "C001"}])

        await DimensionNormalizer(test_db, dimensions=[CUSTOMERS]).normalize(raw)

        count = (await test_db.execute(select(func.count()).select_from(Customer))).scalar_one()
        assert count == 1

    async def test_get_or_none(self, test_db, make_raw, example_record):
        normalizer = DimensionNormalizer(test_db)
        await normalizer.normalize(make_raw([example_record]))

        customer = await normalizer.get_or_none(CUSTOMERS, " C001 ")

        assert customer is not None
        assert customer.cust_name == "Acme"
        assert await normalizer.get_or_none(CUSTOMERS, "C404") is None
        assert await normalizer.get_or_none(CUSTOMERS, "") is None
