"""
ledger_ingestion.domain.events -- typed inbound domain events.

ZERO I/O.  Raw bus messages are decoded here into frozen dataclasses keyed
by event type; nothing downstream sees a string-keyed map.

Two wire shapes are accepted:

    raw map (loan services)       {"eventType": "loan.disbursed", "tenantId": ..., ...}
    DomainEvent envelope          {"type": "payment.completed", "tenantId": ...,
                                   "payload": {"tenantId": ..., ...}}

The tenant is read from the payload first, then from the top level.
Unknown fields are ignored.  Missing required fields, a missing tenant and
non-positive, non-decimal or unstorable amounts (a non-zero digit past the
ninth decimal place) raise MalformedEventError; an event type with no variant raises
UnsupportedEventError.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, ClassVar

from ledger_kernel.db.types import (
    MONEY_SCALE,
    InvalidCurrencyError,
    fits_money_column,
    validate_currency,
)
from ledger_kernel.exceptions import MalformedEventError, UnsupportedEventError

# =============================================================================
# Event variants
# =============================================================================


@dataclass(frozen=True)
class LedgerEvent:
    """Base of every decoded event.  source_id is the natural idempotency id."""

    EVENT_TYPE: ClassVar[str] = ""

    tenant_id: str
    source_id: str

    @property
    def event_type(self) -> str:
        return self.EVENT_TYPE

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))


@dataclass(frozen=True)
class MonetaryEvent(LedgerEvent):
    """An event that moves money and can be posted."""

    amount: Decimal
    currency: str | None = None


@dataclass(frozen=True)
class LoanDisbursed(MonetaryEvent):
    EVENT_TYPE: ClassVar[str] = "loan.disbursed"

    loan_id: str | None = None


@dataclass(frozen=True)
class PaymentCompleted(MonetaryEvent):
    EVENT_TYPE: ClassVar[str] = "payment.completed"

    payment_type: str | None = None
    loan_id: str | None = None


@dataclass(frozen=True)
class PaymentReversed(MonetaryEvent):
    EVENT_TYPE: ClassVar[str] = "payment.reversed"

    reason: str | None = None


@dataclass(frozen=True)
class FeeCollected(MonetaryEvent):
    EVENT_TYPE: ClassVar[str] = "fee.collected"

    fee_type: str | None = None
    loan_id: str | None = None


@dataclass(frozen=True)
class FloatAllocated(MonetaryEvent):
    EVENT_TYPE: ClassVar[str] = "float.allocated"

    float_account_id: str | None = None


@dataclass(frozen=True)
class LoanClosed(LedgerEvent):
    """Informational: the loan balance was already cleared by repayments."""

    EVENT_TYPE: ClassVar[str] = "loan.closed"


@dataclass(frozen=True)
class LoanStageChanged(LedgerEvent):
    """Informational: provisioning review may follow, but nothing is posted."""

    EVENT_TYPE: ClassVar[str] = "loan.stage.changed"

    new_stage: str | None = None
    previous_stage: str | None = None


EVENT_TYPES: dict[str, type[LedgerEvent]] = {
    cls.EVENT_TYPE: cls
    for cls in (
        LoanDisbursed,
        PaymentCompleted,
        PaymentReversed,
        FeeCollected,
        FloatAllocated,
        LoanClosed,
        LoanStageChanged,
    )
}


# =============================================================================
# Envelope handling
# =============================================================================


def parse_message(raw: Mapping[str, Any] | bytes | str) -> Mapping[str, Any]:
    """Accept a decoded map or a JSON document."""
    if isinstance(raw, Mapping):
        return raw
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedEventError(None, f"body is not JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise MalformedEventError(None, "body is not a JSON object")
    return data


def resolve_event_type(message: Mapping[str, Any]) -> str | None:
    if message.get("eventType"):
        return str(message["eventType"])
    if message.get("type"):
        return str(message["type"])
    return None


def resolve_payload(message: Mapping[str, Any]) -> Mapping[str, Any]:
    payload = message.get("payload")
    if isinstance(payload, Mapping):
        return payload
    return message


def resolve_tenant(message: Mapping[str, Any], payload: Mapping[str, Any]) -> str | None:
    for source in (payload, message):
        value = source.get("tenantId")
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


# =============================================================================
# Field extraction
# =============================================================================


def _text(payload: Mapping[str, Any], *keys: str) -> str | None:
    """First non-blank value among keys, as a stripped string."""
    for key in keys:
        value = payload.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _require_text(event_type: str, payload: Mapping[str, Any], *keys: str) -> str:
    value = _text(payload, *keys)
    if value is None:
        raise MalformedEventError(event_type, f"missing {' or '.join(keys)}")
    return value


def _amount(event_type: str, payload: Mapping[str, Any]) -> Decimal:
    raw = payload.get("amount")
    if raw is None or isinstance(raw, bool):
        raise MalformedEventError(event_type, "missing or invalid amount")
    try:
        # JSON numbers arrive as int/float; str() keeps the printed digits
        amount = Decimal(str(raw).strip())
    except InvalidOperation:
        raise MalformedEventError(event_type, f"amount {raw!r} is not a decimal") from None
    if not amount.is_finite() or amount <= 0:
        raise MalformedEventError(event_type, f"amount must be positive, got {raw!r}")
    if not fits_money_column(amount):
        raise MalformedEventError(
            event_type, f"amount {raw!r} exceeds {MONEY_SCALE} decimal places or the column size"
        )
    return amount


def _currency(event_type: str, payload: Mapping[str, Any]) -> str | None:
    value = _text(payload, "currency")
    if value is None:
        return None
    try:
        return validate_currency(value)
    except InvalidCurrencyError as exc:
        raise MalformedEventError(event_type, str(exc)) from None


# =============================================================================
# Decoders
# =============================================================================


def _loan_disbursed(tenant_id: str, p: Mapping[str, Any]) -> LoanDisbursed:
    t = LoanDisbursed.EVENT_TYPE
    return LoanDisbursed(
        tenant_id=tenant_id,
        source_id=_require_text(t, p, "applicationId", "loanId"),
        amount=_amount(t, p),
        currency=_currency(t, p),
        loan_id=_text(p, "loanId"),
    )


def _payment_completed(tenant_id: str, p: Mapping[str, Any]) -> PaymentCompleted:
    t = PaymentCompleted.EVENT_TYPE
    return PaymentCompleted(
        tenant_id=tenant_id,
        source_id=_require_text(t, p, "paymentId", "internalReference"),
        amount=_amount(t, p),
        currency=_currency(t, p),
        payment_type=_text(p, "paymentType"),
        loan_id=_text(p, "loanId"),
    )


def _payment_reversed(tenant_id: str, p: Mapping[str, Any]) -> PaymentReversed:
    t = PaymentReversed.EVENT_TYPE
    return PaymentReversed(
        tenant_id=tenant_id,
        source_id=_require_text(t, p, "paymentId"),
        amount=_amount(t, p),
        currency=_currency(t, p),
        reason=_text(p, "reason"),
    )


def _fee_collected(tenant_id: str, p: Mapping[str, Any]) -> FeeCollected:
    t = FeeCollected.EVENT_TYPE
    return FeeCollected(
        tenant_id=tenant_id,
        source_id=_require_text(t, p, "feeId", "chargeId"),
        amount=_amount(t, p),
        currency=_currency(t, p),
        fee_type=_text(p, "feeType"),
        loan_id=_text(p, "loanId"),
    )


def _float_allocated(tenant_id: str, p: Mapping[str, Any]) -> FloatAllocated:
    t = FloatAllocated.EVENT_TYPE
    return FloatAllocated(
        tenant_id=tenant_id,
        source_id=_require_text(t, p, "allocationId"),
        amount=_amount(t, p),
        currency=_currency(t, p),
        float_account_id=_text(p, "floatAccountId"),
    )


def _loan_closed(tenant_id: str, p: Mapping[str, Any]) -> LoanClosed:
    return LoanClosed(
        tenant_id=tenant_id,
        source_id=_require_text(LoanClosed.EVENT_TYPE, p, "loanId"),
    )


def _loan_stage_changed(tenant_id: str, p: Mapping[str, Any]) -> LoanStageChanged:
    return LoanStageChanged(
        tenant_id=tenant_id,
        source_id=_require_text(LoanStageChanged.EVENT_TYPE, p, "loanId"),
        new_stage=_text(p, "newStage"),
        previous_stage=_text(p, "previousStage", "oldStage"),
    )


_DECODERS: dict[str, Callable[[str, Mapping[str, Any]], LedgerEvent]] = {
    LoanDisbursed.EVENT_TYPE: _loan_disbursed,
    PaymentCompleted.EVENT_TYPE: _payment_completed,
    PaymentReversed.EVENT_TYPE: _payment_reversed,
    FeeCollected.EVENT_TYPE: _fee_collected,
    FloatAllocated.EVENT_TYPE: _float_allocated,
    LoanClosed.EVENT_TYPE: _loan_closed,
    LoanStageChanged.EVENT_TYPE: _loan_stage_changed,
}


def decode_event(raw: Mapping[str, Any] | bytes | str) -> LedgerEvent:
    """
    Decode one bus message into its typed variant.

    Raises:
        MalformedEventError: Unparseable body, no event type, no tenant, or
            a missing or invalid required field.
        UnsupportedEventError: No variant for the event type.
    """
    message = parse_message(raw)
    event_type = resolve_event_type(message)
    if event_type is None:
        raise MalformedEventError(None, "no eventType or type field")

    decoder = _DECODERS.get(event_type)
    if decoder is None:
        raise UnsupportedEventError(event_type)

    payload = resolve_payload(message)
    tenant_id = resolve_tenant(message, payload)
    if tenant_id is None:
        raise MalformedEventError(event_type, "missing tenantId")

    return decoder(tenant_id, payload)
