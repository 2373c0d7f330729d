"""
Config -> Kernel Bridges.

Functions that convert a LedgerConfig into kernel inputs.  They live in
ledger_config (the producer) because the kernel must never import
ledger_config.

Usage:
    from ledger_config import get_active_config
    from ledger_config.bridges import build_ledger_settings, init_engine_from_config

    config = get_active_config()
    init_engine_from_config(config)
    settings = build_ledger_settings(config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import init_engine_from_url
from ledger_kernel.domain.settings import LedgerSettings
from ledger_kernel.services.account_service import AccountService, AccountSpec


def build_ledger_settings(config: LedgerConfig) -> LedgerSettings:
    return LedgerSettings(
        system_tenant_id=config.tenancy.system_tenant_id,
        default_currency=config.tenancy.default_currency,
    )


def build_account_specs(config: LedgerConfig) -> list[AccountSpec]:
    """The shared chart as AccountService seed specs, parents first."""
    return [
        AccountSpec(
            code=seed.code,
            name=seed.name,
            account_type=seed.account_type,
            balance_type=seed.balance_type,
            parent_code=seed.parent_code,
            description=seed.description,
        )
        for seed in config.accounts
    ]


def seed_system_chart(session: Session, config: LedgerConfig) -> int:
    """
    Create any missing shared accounts in the system tenant.

    Flushes only; the caller commits.  Returns the number created.
    """
    settings = build_ledger_settings(config)
    service = AccountService(session, settings)
    return service.seed_chart(settings.system_tenant_id, build_account_specs(config))


def init_engine_from_config(config: LedgerConfig) -> Engine:
    return init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        **config.database.pool_options,
    )
