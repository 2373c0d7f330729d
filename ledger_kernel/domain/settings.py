"""
LedgerSettings -- kernel-side view of tenancy configuration.

The kernel never reads configuration files.  ledger_config builds a
LedgerSettings from the active YAML set and hands it to the services; tests
construct one directly.
"""

from dataclasses import dataclass

from ledger_kernel.db.types import validate_currency

SYSTEM_TENANT_ID = "system"
DEFAULT_CURRENCY = "KES"


@dataclass(frozen=True)
class LedgerSettings:
    """
    Tenancy defaults shared by every kernel service.

    system_tenant_id owns the shared default chart of accounts that every
    tenant falls back to.  default_currency applies to lines and balance
    queries that do not name one.
    """

    system_tenant_id: str = SYSTEM_TENANT_ID
    default_currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        if not self.system_tenant_id:
            raise ValueError("system_tenant_id must not be empty")
        object.__setattr__(
            self, "default_currency", validate_currency(self.default_currency)
        )
