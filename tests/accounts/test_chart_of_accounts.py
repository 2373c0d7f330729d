"""
Chart of accounts: creation, tenant scoping, system fallback, activation
and hierarchy.
"""

from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    AccountHierarchyCycleError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    ImmutabilityViolationError,
    InvalidAccountError,
    UnknownParentAccountError,
)
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.services.account_service import AccountSpec


@pytest.fixture
def selector(session, settings):
    return AccountSelector(session, settings.system_tenant_id)


class TestCreateAccount:

    def test_create_returns_dto(self, account_service, tenant_id):
        account = account_service.create_account(
            tenant_id, "1000", "Cash", "ASSET", "DEBIT", description="Till"
        )

        assert account.tenant_id == tenant_id
        assert account.code == "1000"
        assert account.account_type == "ASSET"
        assert account.balance_type == "DEBIT"
        assert account.is_active is True
        assert account.description == "Till"

    def test_enums_accepted(self, account_service, tenant_id):
        account = account_service.create_account(
            tenant_id, "2000", "Payables", AccountType.LIABILITY, "credit"
        )
        assert account.account_type == "LIABILITY"
        assert account.balance_type == "CREDIT"

    def test_duplicate_code_in_same_tenant(self, account_service, tenant_id):
        account_service.create_account(tenant_id, "1000", "Cash", "ASSET", "DEBIT")

        with pytest.raises(DuplicateAccountCodeError) as exc_info:
            account_service.create_account(tenant_id, "1000", "Cash again", "ASSET", "DEBIT")

        assert exc_info.value.code == "DUPLICATE_CODE"
        assert exc_info.value.account_code == "1000"

    def test_same_code_in_different_tenants(self, account_service):
        a = account_service.create_account("tenant-a", "1000", "Cash", "ASSET", "DEBIT")
        b = account_service.create_account("tenant-b", "1000", "Cash", "ASSET", "DEBIT")

        assert a.id != b.id

    def test_concurrent_insert_reported_as_duplicate(self, account_service, session, tenant_id):
        """A row that slips in after the pre-read is caught by the unique constraint."""
        original = account_service._own_account_by_code
        calls = {"n": 0}

        def _miss_first(t, c):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return original(t, c)

        session.add(
            Account(
                tenant_id=tenant_id, code="1000", name="Racer",
                account_type="ASSET", balance_type="DEBIT", is_active=True,
            )
        )
        session.flush()
        account_service._own_account_by_code = _miss_first

        with pytest.raises(DuplicateAccountCodeError):
            account_service.create_account(tenant_id, "1000", "Cash", "ASSET", "DEBIT")

    @pytest.mark.parametrize(
        "code,name,account_type,balance_type,field_name",
        [
            ("", "Cash", "ASSET", "DEBIT", "code"),
            ("   ", "Cash", "ASSET", "DEBIT", "code"),
            ("X" * 21, "Cash", "ASSET", "DEBIT", "code"),
            ("1000", "", "ASSET", "DEBIT", "name"),
            ("1000", "Cash", "EQUITYISH", "DEBIT", "account_type"),
            ("1000", "Cash", "ASSET", "SIDEWAYS", "balance_type"),
        ],
    )
    def test_invalid_fields(
        self, account_service, tenant_id, code, name, account_type, balance_type, field_name
    ):
        with pytest.raises(InvalidAccountError) as exc_info:
            account_service.create_account(tenant_id, code, name, account_type, balance_type)
        assert exc_info.value.field_name == field_name

    def test_unknown_parent(self, account_service, tenant_id):
        with pytest.raises(UnknownParentAccountError) as exc_info:
            account_service.create_account(
                tenant_id, "1100", "Bank", "ASSET", "DEBIT", parent_id=uuid4()
            )
        assert exc_info.value.code == "UNKNOWN_PARENT"
        assert exc_info.value.is_transient is True

    def test_parent_in_system_tenant(self, account_service, system_chart, selector, tenant_id):
        system_parent = selector.get_by_code("2000", "system")

        child = account_service.create_account(
            tenant_id, "2900", "Tenant payable", "LIABILITY", "CREDIT",
            parent_id=system_parent.id,
        )
        assert child.parent_id == system_parent.id

    def test_parent_in_other_tenant_rejected(self, account_service, tenant_id):
        foreign = account_service.create_account("tenant-other", "1000", "Cash", "ASSET", "DEBIT")

        with pytest.raises(UnknownParentAccountError):
            account_service.create_account(
                tenant_id, "1100", "Bank", "ASSET", "DEBIT", parent_id=foreign.id
            )

    def test_created_log(self, account_service, tenant_id, captured_logs):
        account_service.create_account(tenant_id, "1000", "Cash", "ASSET", "DEBIT")

        records = [r for r in captured_logs() if r["message"] == "account_created"]
        assert len(records) == 1
        assert records[0]["account_code"] == "1000"
        assert records[0]["tenant_id"] == tenant_id


class TestAccountResolution:

    def test_system_fallback_by_code(self, selector, system_chart, tenant_id):
        account = selector.get_by_code("1000", tenant_id)

        assert account.tenant_id == "system"
        assert account.name == "Cash and Bank"

    def test_tenant_override_wins(self, account_service, selector, system_chart, tenant_id):
        override = account_service.create_account(
            tenant_id, "1000", "Tenant Cash", "ASSET", "DEBIT"
        )

        resolved = selector.get_by_code("1000", tenant_id)
        assert resolved.id == override.id
        assert resolved.tenant_id == tenant_id

    def test_override_does_not_leak_to_other_tenants(
        self, account_service, selector, system_chart, tenant_id
    ):
        account_service.create_account(tenant_id, "1000", "Tenant Cash", "ASSET", "DEBIT")

        assert selector.get_by_code("1000", "tenant-elsewhere").tenant_id == "system"

    def test_get_by_id_with_fallback(self, selector, system_chart, tenant_id):
        system_cash = selector.get_by_code("1000", "system")

        assert selector.get_by_id(system_cash.id, tenant_id).id == system_cash.id

    def test_other_tenant_account_not_visible(self, account_service, selector, tenant_id):
        foreign = account_service.create_account("tenant-other", "1000", "Cash", "ASSET", "DEBIT")

        assert selector.find_by_id(foreign.id, tenant_id) is None
        with pytest.raises(AccountNotFoundError):
            selector.get_by_id(foreign.id, tenant_id)

    def test_unknown_code(self, selector, system_chart, tenant_id):
        with pytest.raises(AccountNotFoundError) as exc_info:
            selector.get_by_code("9999", tenant_id)
        assert exc_info.value.code == "NOT_FOUND"
        assert exc_info.value.account_ref == "9999"

    def test_get_many_mixed_scopes(self, account_service, selector, system_chart, tenant_id):
        own = account_service.create_account(tenant_id, "7000", "Own", "EXPENSE", "DEBIT")
        shared = selector.get_by_code("4000", "system")
        missing = uuid4()

        found = selector.get_many({own.id, shared.id, missing}, tenant_id)

        assert set(found) == {own.id, shared.id}


class TestEffectiveChart:

    def test_lists_system_accounts_by_code(self, selector, system_chart, ledger_config, tenant_id):
        accounts = selector.list_accounts(tenant_id)

        codes = [a.code for a in accounts]
        assert codes == sorted(codes)
        assert set(codes) == {seed.code for seed in ledger_config.accounts}

    def test_override_replaces_default(self, account_service, selector, system_chart, tenant_id):
        account_service.create_account(tenant_id, "1000", "Tenant Cash", "ASSET", "DEBIT")

        cash = [a for a in selector.list_accounts(tenant_id) if a.code == "1000"]
        assert len(cash) == 1
        assert cash[0].tenant_id == tenant_id

    def test_filter_by_type(self, selector, system_chart, tenant_id):
        income = selector.list_accounts(tenant_id, account_type="INCOME")

        assert income
        assert all(a.account_type == "INCOME" for a in income)

    def test_inactive_hidden_unless_requested(self, account_service, selector, tenant_id):
        account = account_service.create_account(tenant_id, "6000", "Old", "EXPENSE", "DEBIT")
        account_service.deactivate_account(account.id, tenant_id)

        assert account.id not in {a.id for a in selector.list_accounts(tenant_id)}
        assert account.id in {
            a.id for a in selector.list_accounts(tenant_id, include_inactive=True)
        }

    def test_inactive_override_still_hides_default(
        self, account_service, selector, system_chart, tenant_id
    ):
        override = account_service.create_account(
            tenant_id, "1000", "Tenant Cash", "ASSET", "DEBIT"
        )
        account_service.deactivate_account(override.id, tenant_id)

        assert "1000" not in {a.code for a in selector.list_accounts(tenant_id)}


class TestActivation:

    def test_deactivate_and_reactivate(self, account_service, selector, tenant_id):
        account = account_service.create_account(tenant_id, "1000", "Cash", "ASSET", "DEBIT")

        assert account_service.deactivate_account(account.id, tenant_id).is_active is False
        assert account_service.deactivate_account(account.id, tenant_id).is_active is False
        assert account_service.reactivate_account(account.id, tenant_id).is_active is True

    def test_deactivated_account_still_resolves(self, account_service, selector, tenant_id):
        account = account_service.create_account(tenant_id, "1000", "Cash", "ASSET", "DEBIT")
        account_service.deactivate_account(account.id, tenant_id)

        assert selector.get_by_id(account.id, tenant_id).is_active is False
        assert selector.get_by_code("1000", tenant_id).id == account.id

    def test_cannot_deactivate_system_account_from_tenant(
        self, account_service, selector, system_chart, tenant_id
    ):
        system_cash = selector.get_by_code("1000", "system")

        with pytest.raises(AccountNotFoundError):
            account_service.deactivate_account(system_cash.id, tenant_id)

    def test_accounts_cannot_be_deleted(self, account_service, session, tenant_id):
        account = account_service.create_account(tenant_id, "1000", "Cash", "ASSET", "DEBIT")
        model = session.get(Account, account.id)

        session.delete(model)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_account_identity_is_fixed(self, account_service, session, tenant_id):
        account = account_service.create_account(tenant_id, "1000", "Cash", "ASSET", "DEBIT")
        model = session.get(Account, account.id)

        model.balance_type = "CREDIT"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "balance_type" in str(exc_info.value)
        session.rollback()


class TestHierarchy:

    def test_set_parent(self, account_service, tenant_id):
        parent = account_service.create_account(tenant_id, "1000", "Assets", "ASSET", "DEBIT")
        child = account_service.create_account(tenant_id, "1100", "Bank", "ASSET", "DEBIT")

        updated = account_service.set_parent(child.id, tenant_id, parent.id)
        assert updated.parent_id == parent.id

    def test_self_parent_is_cycle(self, account_service, tenant_id):
        account = account_service.create_account(tenant_id, "1000", "Assets", "ASSET", "DEBIT")

        with pytest.raises(AccountHierarchyCycleError):
            account_service.set_parent(account.id, tenant_id, account.id)

    def test_descendant_parent_is_cycle(self, account_service, tenant_id):
        root = account_service.create_account(tenant_id, "1000", "Assets", "ASSET", "DEBIT")
        mid = account_service.create_account(
            tenant_id, "1100", "Bank", "ASSET", "DEBIT", parent_id=root.id
        )
        leaf = account_service.create_account(
            tenant_id, "1110", "Branch", "ASSET", "DEBIT", parent_id=mid.id
        )

        with pytest.raises(AccountHierarchyCycleError) as exc_info:
            account_service.set_parent(root.id, tenant_id, leaf.id)
        assert exc_info.value.code == "ACCOUNT_HIERARCHY_CYCLE"

    def test_clear_parent(self, account_service, tenant_id):
        root = account_service.create_account(tenant_id, "1000", "Assets", "ASSET", "DEBIT")
        child = account_service.create_account(
            tenant_id, "1100", "Bank", "ASSET", "DEBIT", parent_id=root.id
        )

        assert account_service.set_parent(child.id, tenant_id, None).parent_id is None


class TestSeedChart:

    def test_seed_is_idempotent(self, session, ledger_config):
        from ledger_config.bridges import seed_system_chart

        first = seed_system_chart(session, ledger_config)
        second = seed_system_chart(session, ledger_config)

        assert first == len(ledger_config.accounts)
        assert second == 0

    def test_seed_links_parents(self, selector, system_chart):
        parent = selector.get_by_code("4000", "system")
        child = selector.get_by_code("4100", "system")

        assert child.parent_id == parent.id

    def test_seed_tenant_chart(self, account_service, selector, tenant_id):
        specs = [
            AccountSpec("1000", "Cash", "ASSET", "DEBIT"),
            AccountSpec("1100", "Bank", "ASSET", "DEBIT", parent_code="1000"),
        ]

        assert account_service.seed_chart(tenant_id, specs) == 2
        assert selector.get_by_code("1100", tenant_id).parent_id == (
            selector.get_by_code("1000", tenant_id).id
        )

    def test_seed_unknown_parent(self, account_service, tenant_id):
        specs = [AccountSpec("1100", "Bank", "ASSET", "DEBIT", parent_code="0999")]

        with pytest.raises(UnknownParentAccountError):
            account_service.seed_chart(tenant_id, specs)
