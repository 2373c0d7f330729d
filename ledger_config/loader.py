"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``ledger_config.schema`` dataclasses.  Runtime callers go through
``ledger_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Seeded account codes are unique and every parent precedes its children.
* Posting rules are unique per event type and their description templates
  only use the documented placeholders.
* ``compute_checksum`` is a deterministic SHA-256 over the parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import string
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    AccountSeed,
    DatabaseConfig,
    LedgerConfig,
    PostingRuleDef,
    RetryPolicy,
    TenancyConfig,
)
from ledger_kernel.models.account import AccountType, BalanceType
from ledger_kernel.utils.hashing import hash_payload

TEMPLATE_FIELDS = frozenset({"source_id", "amount", "currency", "tenant_id"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_tenancy(data: dict[str, Any]) -> TenancyConfig:
    return TenancyConfig(
        system_tenant_id=str(data.get("system_tenant_id", "system")),
        default_currency=str(data.get("default_currency", "KES")).upper(),
    )


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=str(data.get("url", DatabaseConfig.url)),
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", DatabaseConfig.pool_size)),
        max_overflow=int(data.get("max_overflow", DatabaseConfig.max_overflow)),
        pool_timeout=int(data.get("pool_timeout", DatabaseConfig.pool_timeout)),
    )


def parse_retry(data: dict[str, Any]) -> RetryPolicy:
    """
    Raises:
        ValueError: if max_attempts < 1 or backoff_seconds < 0.
    """
    policy = RetryPolicy(
        max_attempts=int(data.get("max_attempts", RetryPolicy.max_attempts)),
        backoff_seconds=float(data.get("backoff_seconds", RetryPolicy.backoff_seconds)),
    )
    if policy.max_attempts < 1:
        raise ValueError(f"retry.max_attempts must be >= 1, got {policy.max_attempts}")
    if policy.backoff_seconds < 0:
        raise ValueError(
            f"retry.backoff_seconds must be >= 0, got {policy.backoff_seconds}"
        )
    return policy


def parse_account_seed(data: dict[str, Any]) -> AccountSeed:
    """
    Raises:
        KeyError: if code, name, account_type or balance_type is missing.
        ValueError: if account_type or balance_type is not a known value.
    """
    account_type = str(data["account_type"]).upper()
    balance_type = str(data["balance_type"]).upper()
    if account_type not in {t.value for t in AccountType}:
        raise ValueError(f"Account {data['code']!r}: unknown account_type {account_type!r}")
    if balance_type not in {b.value for b in BalanceType}:
        raise ValueError(f"Account {data['code']!r}: unknown balance_type {balance_type!r}")
    return AccountSeed(
        code=str(data["code"]),
        name=data["name"],
        account_type=account_type,
        balance_type=balance_type,
        parent_code=str(data["parent_code"]) if data.get("parent_code") else None,
        description=data.get("description"),
    )


def parse_posting_rule(data: dict[str, Any]) -> PostingRuleDef:
    """
    Parse a ``PostingRuleDef`` from a dict.

    skip_when may be a mapping ({field: value}) or a list of
    {field, value} items.

    Raises:
        KeyError: if event_type, debit_account or credit_account is missing.
        ValueError: if the description template uses an unknown placeholder.
    """
    skip_raw = data.get("skip_when") or {}
    if isinstance(skip_raw, dict):
        skip_when = tuple(sorted(skip_raw.items()))
    else:
        skip_when = tuple((item["field"], item["value"]) for item in skip_raw)

    description = data.get("description", "")
    _check_template(data["event_type"], description)

    return PostingRuleDef(
        event_type=data["event_type"],
        debit_account=str(data["debit_account"]),
        credit_account=str(data["credit_account"]),
        reference_prefix=data.get("reference_prefix", ""),
        description=description,
        skip_when=skip_when,
    )


def parse_ledger_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a whole configuration document.

    Raises:
        KeyError: if config_id is missing.
        ValueError: on duplicate codes or rules, or a parent that does not
            precede its child.
    """
    accounts = tuple(parse_account_seed(a) for a in data.get("accounts", []))
    _check_account_order(accounts)

    rules = tuple(parse_posting_rule(r) for r in data.get("posting_rules", []))
    seen_events: set[str] = set()
    for rule in rules:
        if rule.event_type in seen_events:
            raise ValueError(f"Duplicate posting rule for event type {rule.event_type!r}")
        seen_events.add(rule.event_type)

    informational = tuple(data.get("informational_events", []))
    overlap = seen_events.intersection(informational)
    if overlap:
        raise ValueError(
            f"Event types both posted and informational: {sorted(overlap)}"
        )

    return LedgerConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        tenancy=parse_tenancy(data.get("tenancy", {})),
        database=parse_database(data.get("database", {})),
        retry=parse_retry(data.get("retry", {})),
        accounts=accounts,
        posting_rules=rules,
        informational_events=informational,
        checksum=compute_checksum(data),
    )


def load_ledger_config(path: Path) -> LedgerConfig:
    return parse_ledger_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    return hash_payload(data)


def _check_template(event_type: str, template: str) -> None:
    for _, field_name, _, _ in string.Formatter().parse(template):
        if field_name is not None and field_name not in TEMPLATE_FIELDS:
            raise ValueError(
                f"Posting rule {event_type!r}: unknown placeholder {{{field_name}}} "
                f"in description; allowed: {sorted(TEMPLATE_FIELDS)}"
            )


def _check_account_order(accounts: tuple[AccountSeed, ...]) -> None:
    seen: set[str] = set()
    for account in accounts:
        if account.code in seen:
            raise ValueError(f"Duplicate account code {account.code!r}")
        if account.parent_code is not None and account.parent_code not in seen:
            raise ValueError(
                f"Account {account.code!r}: parent {account.parent_code!r} "
                "must be declared before it"
            )
        seen.add(account.code)
