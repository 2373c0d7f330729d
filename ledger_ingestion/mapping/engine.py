"""
Mapping engine: pure transformation from a decoded event to a posting plan.

ZERO I/O.  Posting rules come from ledger_config; account codes are left
unresolved so the consumer can resolve them inside its unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_config.schema import PostingRuleDef
from ledger_kernel.domain.dtos import LineRequest, PostEntryRequest
from ledger_kernel.utils.hashing import format_decimal

from ledger_ingestion.domain.events import EVENT_TYPES, LedgerEvent, MonetaryEvent

SYSTEM_ACTOR = "system"


# -----------------------------------------------------------------------------
# Result types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PostingPlan:
    """A two-line entry waiting for its account codes to be resolved."""

    tenant_id: str
    source_event: str
    source_id: str
    reference: str
    description: str
    debit_account: str
    credit_account: str
    amount: Decimal
    currency: str | None

    def to_request(self, debit_account_id: UUID, credit_account_id: UUID) -> PostEntryRequest:
        return PostEntryRequest(
            reference=self.reference,
            description=self.description or None,
            lines=(
                LineRequest.debit(debit_account_id, self.amount, self.currency),
                LineRequest.credit(credit_account_id, self.amount, self.currency),
            ),
            posted_by=SYSTEM_ACTOR,
            source_event=self.source_event,
            source_id=self.source_id,
        )


@dataclass(frozen=True)
class MappingOutcome:
    """
    What the mapper decided for one event.

    plan is None when nothing is posted; reason then says why
    ("informational", "no_rule" or "skip_when").
    """

    event: LedgerEvent
    plan: PostingPlan | None = None
    reason: str | None = None

    @property
    def is_posting(self) -> bool:
        return self.plan is not None


# -----------------------------------------------------------------------------
# Mapper
# -----------------------------------------------------------------------------


class EventMapper:
    """
    Applies configured posting rules to decoded events.

    Rules are checked once at construction: each must name a known, postable
    event type and skip_when may only reference fields of that event.
    """

    def __init__(
        self,
        rules: tuple[PostingRuleDef, ...] | list[PostingRuleDef],
        informational_events: tuple[str, ...] | list[str] = (),
    ):
        self._rules: dict[str, PostingRuleDef] = {}
        for rule in rules:
            event_cls = EVENT_TYPES.get(rule.event_type)
            if event_cls is None:
                raise ValueError(f"Posting rule for unknown event type {rule.event_type!r}")
            if not issubclass(event_cls, MonetaryEvent):
                raise ValueError(
                    f"Posting rule for {rule.event_type!r}: event carries no amount"
                )
            unknown = {f for f, _ in rule.skip_when} - event_cls.field_names()
            if unknown:
                raise ValueError(
                    f"Posting rule for {rule.event_type!r}: skip_when references "
                    f"unknown fields {sorted(unknown)}"
                )
            self._rules[rule.event_type] = rule
        self._informational = frozenset(informational_events)

    @property
    def event_types(self) -> frozenset[str]:
        return frozenset(self._rules)

    def map(self, event: LedgerEvent) -> MappingOutcome:
        if event.event_type in self._informational:
            return MappingOutcome(event=event, reason="informational")

        rule = self._rules.get(event.event_type)
        if rule is None or not isinstance(event, MonetaryEvent):
            return MappingOutcome(event=event, reason="no_rule")

        for field_name, value in rule.skip_when:
            if getattr(event, field_name) == value:
                return MappingOutcome(event=event, reason="skip_when")

        return MappingOutcome(event=event, plan=self._plan(rule, event))

    def _plan(self, rule: PostingRuleDef, event: MonetaryEvent) -> PostingPlan:
        description = rule.description.format(
            source_id=event.source_id,
            amount=format_decimal(event.amount),
            currency=event.currency or "",
            tenant_id=event.tenant_id,
        )
        return PostingPlan(
            tenant_id=event.tenant_id,
            source_event=event.event_type,
            source_id=event.source_id,
            reference=f"{rule.reference_prefix}{event.source_id}",
            description=description,
            debit_account=rule.debit_account,
            credit_account=rule.credit_account,
            amount=event.amount,
            currency=event.currency,
        )
