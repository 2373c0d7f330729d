"""
Ledger Kernel

A multi-tenant double-entry general ledger with:
- Per-tenant charts of accounts with a shared system fallback
- Balanced, idempotent, append-only journal posting
- Materialized monthly balances and trial balances
- Transactional outbox for ledger.posted notifications
"""

__version__ = "0.1.0"
