"""Tests for data models."""

from datetime import date

import pytest
from pydantic import ValidationError

from fintrack.models.investment import (
    AssetType,
    Currency,
    GroupedPosition,
    InvestmentAction,
    InvestmentTransaction,
)
from fintrack.models.ledger import (
    CategoryData,
    RecurringDefinition,
    Transaction,
    TransactionType,
)


class TestTransaction:
    def test_create_expense(self) -> None:
        txn = Transaction(
            date=date(2025, 1, 15),
            amount=500.0,
            type=TransactionType.EXPENSE,
            category="Groceries",
            description="Weekly shop",
        )
        assert txn.is_expense
        assert not txn.is_income
        assert txn.is_recurring is False
        assert txn.id

    def test_accepts_both_date_encodings(self) -> None:
        a = Transaction(date="15-01-2025", amount=1, type="INCOME", category="Salary")
        b = Transaction(date="2025-01-15", amount=1, type="INCOME", category="Salary")
        assert a.date == b.date == date(2025, 1, 15)

    def test_rejects_invalid_date(self) -> None:
        with pytest.raises(ValidationError):
            Transaction(date="someday", amount=1, type="INCOME", category="Salary")

    @pytest.mark.parametrize("amount", [0, -10.0])
    def test_rejects_non_positive_amount(self, amount: float) -> None:
        with pytest.raises(ValidationError):
            Transaction(date=date(2025, 1, 1), amount=amount, type="EXPENSE", category="Rent")

    def test_record_shape(self) -> None:
        txn = Transaction(
            id="abc",
            date=date(2025, 1, 5),
            amount=12.5,
            type=TransactionType.EXPENSE,
            category="Dining",
            is_recurring=True,
        )
        assert txn.to_record() == {
            "id": "abc",
            "date": "05-01-2025",
            "amount": 12.5,
            "type": "EXPENSE",
            "category": "Dining",
            "description": "",
            "isRecurring": True,
        }

    def test_load_from_record(self) -> None:
        record = {
            "id": "abc",
            "date": "05-01-2025",
            "amount": 12.5,
            "type": "EXPENSE",
            "category": "Dining",
            "description": "",
            "isRecurring": True,
        }
        txn = Transaction.model_validate(record)
        assert txn.is_recurring is True
        assert txn.to_record() == record


class TestRecurringDefinition:
    def test_aliases(self) -> None:
        rec = RecurringDefinition.model_validate(
            {
                "id": "r1",
                "type": "EXPENSE",
                "category": "Housing",
                "description": "Rent",
                "amount": 4000,
                "dayOfMonth": 10,
                "active": True,
                "lastProcessedDate": "10-02-2025",
            }
        )
        assert rec.day_of_month == 10
        assert rec.last_processed_date == date(2025, 2, 10)
        assert rec.to_record()["lastProcessedDate"] == "10-02-2025"

    def test_corrupt_marker_reads_as_absent(self) -> None:
        rec = RecurringDefinition(
            type="EXPENSE",
            category="Housing",
            amount=1,
            day_of_month=1,
            last_processed_date="garbage",
        )
        assert rec.last_processed_date is None
        assert "lastProcessedDate" not in rec.to_record()

    @pytest.mark.parametrize("day", [0, 32])
    def test_day_of_month_range(self, day: int) -> None:
        with pytest.raises(ValidationError):
            RecurringDefinition(type="EXPENSE", category="Rent", amount=1, day_of_month=day)


class TestInvestmentTransaction:
    def test_symbol_uppercased(self) -> None:
        inv = InvestmentTransaction(
            type=InvestmentAction.BUY,
            symbol="  aapl ",
            date="2025-01-02",
            quantity=1,
            price_per_unit=100,
        )
        assert inv.symbol == "AAPL"
        assert inv.asset_type == AssetType.STOCK
        assert inv.currency == Currency.USD

    def test_quantity_rounded_to_eight_places(self) -> None:
        inv = InvestmentTransaction(
            type="BUY",
            asset_type="CRYPTO",
            symbol="btc",
            date="02-01-2025",
            quantity=0.123456789123,
            price_per_unit=50000,
        )
        assert inv.quantity == 0.12345679

    def test_record_uses_camel_case(self) -> None:
        inv = InvestmentTransaction(
            id="i1",
            type="SELL",
            asset_type=AssetType.REAL_ESTATE,
            symbol="Main St Apt",
            date=date(2025, 1, 2),
            quantity=1,
            price_per_unit=1_000_000,
            currency=Currency.ILS,
        )
        record = inv.to_record()
        assert record["assetType"] == "REAL_ESTATE"
        assert record["pricePerUnit"] == 1_000_000
        assert record["date"] == "02-01-2025"
        assert record["symbol"] == "MAIN ST APT"
        assert "fees" not in record
        assert InvestmentTransaction.model_validate(record) == inv

    def test_rejects_zero_price(self) -> None:
        with pytest.raises(ValidationError):
            InvestmentTransaction(
                type="BUY", symbol="X", date="2025-01-02", quantity=1, price_per_unit=0
            )

    def test_notional(self) -> None:
        inv = InvestmentTransaction(
            type="BUY", symbol="X", date="2025-01-02", quantity=3, price_per_unit=2.5, fees=4
        )
        assert inv.notional == 7.5


class TestCategoryData:
    def test_for_type_returns_copy(self) -> None:
        data = CategoryData(income=["Salary"], expense=["Rent"])
        labels = data.for_type(TransactionType.EXPENSE)
        labels.append("Other")
        assert data.expense == ["Rent"]

    def test_with_list(self) -> None:
        data = CategoryData(income=["Salary"], expense=["Rent"])
        updated = data.with_list(TransactionType.INCOME, ["Salary", "Bonus"])
        assert updated.income == ["Salary", "Bonus"]
        assert data.income == ["Salary"]


class TestGroupedPosition:
    def test_defaults(self) -> None:
        pos = GroupedPosition(symbol="AAPL", asset_type=AssetType.STOCK)
        assert pos.quantity == 0
        assert pos.current_price is None
        assert pos.transactions == []
        assert not pos.is_open
