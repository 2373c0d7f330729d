"""
Monthly balance cache, closing balances and the per-account ledger.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.db.types import InvalidCurrencyError
from ledger_kernel.exceptions import AccountNotFoundError, InvalidPeriodError
from ledger_kernel.models.balance import AccountBalance
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.balance_materializer import BalanceMaterializer, month_bounds


@pytest.fixture
def materializer(session, deterministic_clock, settings):
    return BalanceMaterializer(session, deterministic_clock, settings)


@pytest.fixture
def post(writer, make_entry, tenant_id):
    def _post(lines, entry_date=date(2024, 1, 15), **kwargs):
        return writer.post_entry(tenant_id, make_entry(lines, entry_date=entry_date, **kwargs))

    return _post


class TestMonthBounds:

    def test_leap_february(self):
        assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_december(self):
        assert month_bounds(2023, 12) == (date(2023, 12, 1), date(2023, 12, 31))

    @pytest.mark.parametrize("year,month", [(2024, 0), (2024, 13), (0, 1), (10000, 1)])
    def test_invalid_period(self, year, month):
        with pytest.raises(InvalidPeriodError) as exc_info:
            month_bounds(year, month)
        assert exc_info.value.code == "INVALID_PERIOD"


class TestGetBalance:

    def test_debit_and_credit_normal_accounts(self, materializer, tenant_accounts, post, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "1000", "0"), (revenue.id, "0", "1000")])
        post([(revenue.id, "200", "0"), (cash.id, "0", "200")])

        cash_balance = materializer.get_balance(cash.id, tenant_id, 2024, 1)
        revenue_balance = materializer.get_balance(revenue.id, tenant_id, 2024, 1)

        assert cash_balance.balance == Decimal("800")
        assert cash_balance.total_debits == Decimal("1000")
        assert cash_balance.total_credits == Decimal("200")
        assert cash_balance.line_count == 2
        assert cash_balance.currency == "KES"
        assert revenue_balance.balance == Decimal("800")
        assert revenue_balance.net_debit == Decimal("-800")

    def test_only_lines_in_month(self, materializer, tenant_accounts, post, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "10", "0"), (revenue.id, "0", "10")], entry_date=date(2024, 1, 31))
        post([(cash.id, "20", "0"), (revenue.id, "0", "20")], entry_date=date(2024, 2, 1))

        assert materializer.get_balance(cash.id, tenant_id, 2024, 1).balance == Decimal("10")
        assert materializer.get_balance(cash.id, tenant_id, 2024, 2).balance == Decimal("20")
        assert materializer.get_balance(cash.id, tenant_id, 2024, 3).balance == Decimal("0")

    def test_currency_filter(self, materializer, tenant_accounts, post, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "10", "0"), (revenue.id, "0", "10")], currency="USD")
        post([(cash.id, "700", "0"), (revenue.id, "0", "700")])

        assert materializer.get_balance(cash.id, tenant_id, 2024, 1, "usd").balance == Decimal("10")
        assert materializer.get_balance(cash.id, tenant_id, 2024, 1).balance == Decimal("700")

    def test_tenant_isolation_on_shared_account(
        self, materializer, system_chart, writer, make_entry, session, settings
    ):
        from ledger_kernel.selectors.account_selector import AccountSelector

        accounts = AccountSelector(session, settings.system_tenant_id)
        cash = accounts.get_by_code("1000", "t-one")
        fees = accounts.get_by_code("4100", "t-one")
        writer.post_entry("t-one", make_entry([(cash.id, "30", "0"), (fees.id, "0", "30")]))
        writer.post_entry("t-two", make_entry([(cash.id, "5", "0"), (fees.id, "0", "5")]))

        assert materializer.get_balance(cash.id, "t-one", 2024, 1).balance == Decimal("30")
        assert materializer.get_balance(cash.id, "t-two", 2024, 1).balance == Decimal("5")

    def test_unknown_account(self, materializer, tenant_id):
        with pytest.raises(AccountNotFoundError):
            materializer.get_balance(uuid4(), tenant_id, 2024, 1)

    def test_invalid_period(self, materializer, tenant_accounts, tenant_id):
        with pytest.raises(InvalidPeriodError):
            materializer.get_balance(tenant_accounts["cash"].id, tenant_id, 2024, 13)

    def test_invalid_currency(self, materializer, tenant_accounts, tenant_id):
        with pytest.raises(InvalidCurrencyError):
            materializer.get_balance(tenant_accounts["cash"].id, tenant_id, 2024, 1, "ZZZ")


class TestCacheFreshness:

    def test_second_read_served_from_cache(self, materializer, tenant_accounts, post, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "10", "0"), (revenue.id, "0", "10")])

        first = materializer.get_balance(cash.id, tenant_id, 2024, 1)
        second = materializer.get_balance(cash.id, tenant_id, 2024, 1)

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.balance == first.balance

    def test_new_line_invalidates_cache(
        self, materializer, tenant_accounts, post, tenant_id, captured_logs
    ):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "10", "0"), (revenue.id, "0", "10")])
        materializer.get_balance(cash.id, tenant_id, 2024, 1)

        post([(cash.id, "5", "0"), (revenue.id, "0", "5")])
        refreshed = materializer.get_balance(cash.id, tenant_id, 2024, 1)

        assert refreshed.from_cache is False
        assert refreshed.balance == Decimal("15")
        assert refreshed.line_count == 2
        stale = [r for r in captured_logs() if r["message"] == "balance_cache_stale"]
        assert stale and stale[0]["cached_lines"] == 1 and stale[0]["current_lines"] == 2

    def test_one_row_per_key(self, materializer, session, tenant_accounts, post, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "10", "0"), (revenue.id, "0", "10")])
        materializer.get_balance(cash.id, tenant_id, 2024, 1)
        post([(cash.id, "5", "0"), (revenue.id, "0", "5")])
        materializer.get_balance(cash.id, tenant_id, 2024, 1)
        materializer.recompute_balance(cash.id, tenant_id, 2024, 1)

        rows = session.scalar(
            select(func.count()).select_from(AccountBalance).where(
                AccountBalance.tenant_id == tenant_id,
                AccountBalance.account_id == cash.id,
            )
        )
        assert rows == 1

    def test_corrupted_cache_repaired_by_recompute(
        self, materializer, session, tenant_accounts, post, tenant_id
    ):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "10", "0"), (revenue.id, "0", "10")])
        materializer.get_balance(cash.id, tenant_id, 2024, 1)

        row = session.scalars(
            select(AccountBalance).where(AccountBalance.account_id == cash.id)
        ).one()
        row.balance = Decimal("999")
        session.flush()

        assert materializer.recompute_balance(cash.id, tenant_id, 2024, 1).balance == Decimal("10")

    def test_insert_race_falls_back_to_update(
        self, materializer, session, tenant_accounts, post, tenant_id, monkeypatch,
        deterministic_clock,
    ):
        """Another worker inserted the row between our read and our insert."""
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "10", "0"), (revenue.id, "0", "10")])
        session.add(
            AccountBalance(
                tenant_id=tenant_id, account_id=cash.id, period_year=2024, period_month=1,
                currency="KES", total_debits=Decimal("10"), total_credits=Decimal("0"),
                balance=Decimal("10"), line_count=0, computed_at=deterministic_clock.now(),
            )
        )
        session.flush()

        original = BalanceMaterializer._cached_row
        calls = {"n": 0}

        def _miss_twice(self, *args):
            calls["n"] += 1
            return None if calls["n"] <= 2 else original(self, *args)

        monkeypatch.setattr(BalanceMaterializer, "_cached_row", _miss_twice)

        balance = materializer.get_balance(cash.id, tenant_id, 2024, 1)

        assert balance.balance == Decimal("10")
        assert balance.line_count == 1


class TestRebuildPeriod:

    def test_rebuild_covers_activity_and_cached_keys(
        self, materializer, tenant_accounts, post, tenant_id
    ):
        a = tenant_accounts
        post([(a["cash"].id, "10", "0"), (a["revenue"].id, "0", "10")])
        post([(a["expense"].id, "4", "0"), (a["cash"].id, "0", "4")], currency="USD")
        materializer.get_balance(a["payable"].id, tenant_id, 2024, 1)

        written = materializer.rebuild_period(tenant_id, 2024, 1)

        # cash/KES, revenue/KES, expense/USD, cash/USD, payable/KES
        assert written == 5

    def test_rebuild_empty_period(self, materializer, tenant_id):
        assert materializer.rebuild_period(tenant_id, 2030, 6) == 0


class TestClosingBalance:

    def test_cumulative_to_month_end(self, materializer, tenant_accounts, post, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "100", "0"), (revenue.id, "0", "100")], entry_date=date(2023, 11, 3))
        post([(cash.id, "50", "0"), (revenue.id, "0", "50")], entry_date=date(2024, 1, 31))
        post([(cash.id, "7", "0"), (revenue.id, "0", "7")], entry_date=date(2024, 2, 1))

        closing = materializer.get_closing_balance(cash.id, tenant_id, 2024, 1)

        assert closing.as_of == date(2024, 1, 31)
        assert closing.balance == Decimal("150")
        assert closing.total_debits == Decimal("150")

    def test_credit_normal_closing(self, materializer, tenant_accounts, post, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "100", "0"), (revenue.id, "0", "100")], entry_date=date(2023, 5, 1))

        assert materializer.get_closing_balance(revenue.id, tenant_id, 2024, 1).balance == Decimal("100")

    def test_closing_balance_not_cached(self, materializer, session, tenant_accounts, post, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        post([(cash.id, "100", "0"), (revenue.id, "0", "100")])

        materializer.get_closing_balance(cash.id, tenant_id, 2024, 1)

        assert session.scalar(
            select(func.count()).select_from(AccountBalance).where(
                AccountBalance.tenant_id == tenant_id
            )
        ) == 0


class TestLedger:

    def test_posting_order(self, session, writer, tenant_accounts, make_entry, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        # Later entry_date posted first; the ledger follows posting order
        first = writer.post_entry(
            tenant_id,
            make_entry([(cash.id, "1", "0"), (revenue.id, "0", "1")],
                       reference="A", entry_date=date(2024, 1, 20)),
        )
        second = writer.post_entry(
            tenant_id,
            make_entry([(revenue.id, "2", "0"), (cash.id, "0", "2")],
                       reference="B", entry_date=date(2024, 1, 10)),
        )

        lines = LedgerSelector(session).get_ledger(cash.id, tenant_id)

        assert [line.entry_id for line in lines] == [first.entry_id, second.entry_id]
        assert [line.entry_reference for line in lines] == ["A", "B"]
        assert lines[0].account_code == "1000"
        assert lines[0].account_name == "Cash"
        assert lines[0].debit_amount == Decimal("1")
        assert lines[1].credit_amount == Decimal("2")
        assert lines[1].line_no == 2

    def test_order_holds_when_clock_stands_still(
        self, session, writer, tenant_accounts, make_entry, tenant_id
    ):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        for i in range(8):
            writer.post_entry(
                tenant_id,
                make_entry([(cash.id, "1", "0"), (revenue.id, "0", "1")], reference=f"R{i}"),
            )

        lines = LedgerSelector(session).get_ledger(cash.id, tenant_id)

        assert len({line.posted_at for line in lines}) == 1
        assert [line.entry_reference for line in lines] == [f"R{i}" for i in range(8)]
        assert [line.posting_seq for line in lines] == list(range(1, 9))

    def test_same_account_twice_in_entry(self, session, writer, tenant_accounts, make_entry, tenant_id):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        writer.post_entry(
            tenant_id,
            make_entry([(cash.id, "3", "0"), (cash.id, "2", "0"), (revenue.id, "0", "5")]),
        )

        lines = LedgerSelector(session).get_ledger(cash.id, tenant_id)
        assert [line.line_no for line in lines] == [1, 2]

    def test_ledger_is_tenant_scoped(self, session, tenant_accounts, tenant_id):
        assert LedgerSelector(session).get_ledger(tenant_accounts["cash"].id, "someone-else") == []
