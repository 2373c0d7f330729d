"""
ledger_ingestion -- event-driven posting from upstream domain services.

Decodes bus messages into typed events, maps them to journal entries with
the configured posting rules, and posts them with bounded retry.

Architecture:
    ledger_ingestion/ is a top-level package.  Nothing in ledger_kernel/ or
    ledger_config/ imports from ingestion.
"""
