"""
Module: ledger_kernel.db.types
Responsibility: Money coercion and currency validation shared by the
    models, services and event decoders.
Architecture position: Kernel > DB.  May be imported by models/, services/
    and selectors/.  MUST NOT import from any of those layers.

CRITICAL: No floats anywhere in the ledger.  All monetary amounts are
Decimal and are compared exactly.
"""

from decimal import Decimal, InvalidOperation

ZERO = Decimal("0")

# Every money column is Numeric(MONEY_PRECISION, MONEY_SCALE)
MONEY_PRECISION = 38
MONEY_SCALE = 9


def to_money(value) -> Decimal:
    """
    Coerce a wire value to Decimal.

    Strings and ints convert exactly.  Floats are rejected; a float has
    already lost the amount the sender meant.

    Raises:
        ValueError: If value is a float, a bool, or not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Monetary amounts must not be {type(value).__name__}: {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a decimal amount: {value!r}") from exc
    else:
        raise ValueError(f"Not a decimal amount: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def fits_money_column(amount: Decimal) -> bool:
    """
    True if amount is stored exactly by a money column.

    Trailing zeros beyond MONEY_SCALE are fine; any other digit past the
    ninth decimal place would be rounded away on write.
    """
    _, digits, exponent = amount.as_tuple()
    excess = -MONEY_SCALE - exponent
    if excess > 0 and any(digits[-excess:]):
        return False
    integer_digits = len(digits) + exponent
    return integer_digits <= MONEY_PRECISION - MONEY_SCALE


ISO_4217_CURRENCIES: set[str] = {
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL", "BSD", "BTN", "BWP", "BYN", "BZD",
    "CDF", "CLP", "CNY", "COP", "CRC", "CUP", "CVE", "CZK",
    "DJF", "DKK", "DOP", "DZD",
    "EGP", "ERN", "ETB",
    "FJD", "FKP",
    "GEL", "GHS", "GIP", "GMD", "GNF", "GTQ", "GYD",
    "HKD", "HNL", "HTG", "HUF",
    "IDR", "ILS", "INR", "IQD", "IRR", "ISK",
    "JMD", "JOD",
    "KES", "KGS", "KHR", "KMF", "KPW", "KRW", "KWD", "KYD", "KZT",
    "LAK", "LBP", "LKR", "LRD", "LSL", "LYD",
    "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU", "MUR", "MVR", "MWK", "MXN", "MYR", "MZN",
    "NAD", "NGN", "NIO", "NOK", "NPR",
    "OMR",
    "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG",
    "QAR",
    "RON", "RSD", "RUB", "RWF",
    "SAR", "SBD", "SCR", "SDG", "SEK", "SGD", "SHP", "SLE", "SOS", "SRD", "SSP", "STN", "SYP", "SZL",
    "THB", "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS",
    "UAH", "UGX", "UYU", "UZS",
    "VES", "VND", "VUV",
    "WST",
    "XAF", "XCD", "XOF", "XPF",
    "YER",
    "ZAR", "ZMW", "ZWL",
}


class InvalidCurrencyError(ValueError):
    """Raised when an invalid ISO 4217 currency code is provided."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


def validate_currency(currency: str) -> str:
    """
    Validate and normalize an ISO 4217 currency code.

    Returns:
        The uppercase, trimmed code.

    Raises:
        InvalidCurrencyError: If the code is not a known ISO 4217 code.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()
    if normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized
