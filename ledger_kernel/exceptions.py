"""
Typed exception hierarchy for the ledger kernel.

Every error raised by the kernel is a ``LedgerError`` subclass that carries a
machine-readable ``code`` class attribute and its context as structured
attributes.  Callers catch by type and report ``e.code``; nothing parses
message strings.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- AccountError
    |   +-- DuplicateAccountCodeError
    |   +-- UnknownParentAccountError
    |   +-- AccountNotFoundError
    |   +-- AccountHierarchyCycleError
    |   +-- InvalidAccountError
    |
    +-- PostingError
    |   +-- InvalidEntryError
    |   +-- UnknownAccountError
    |   |   +-- AccountInactiveError
    |   +-- InvalidLineError
    |   +-- UnbalancedEntryError
    |
    +-- QueryError
    |   +-- EntryNotFoundError
    |   +-- InvalidPeriodError
    |   +-- InvalidPageError
    |
    +-- LedgerIntegrityError
    |   +-- DataIntegrityViolationError
    |
    +-- StorageError
    |
    +-- IngestionError
    |   +-- MalformedEventError
    |   +-- UnsupportedEventError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                      | When Raised
-----------|---------------------------|------------------------------------------
Account    | DUPLICATE_CODE            | Code already exists for the tenant
           | UNKNOWN_PARENT            | Parent not in tenant or system chart
           | NOT_FOUND                 | Account id/code does not resolve
           | ACCOUNT_HIERARCHY_CYCLE   | Parent chain would loop
           | INVALID_ACCOUNT           | Empty or oversized code/name, bad enum
-----------|---------------------------|------------------------------------------
Posting    | INVALID_ENTRY             | Fewer than two lines, half a source key
           | UNKNOWN_ACCOUNT           | Line account does not resolve
           | ACCOUNT_INACTIVE          | Line account is deactivated
           | INVALID_LINE              | Wrong debit/credit shape or currency
           | UNBALANCED_ENTRY          | Debits != credits for a currency
-----------|---------------------------|------------------------------------------
Query      | NOT_FOUND                 | Entry id missing or owned by other tenant
           | INVALID_PERIOD            | Year/month out of range
           | INVALID_PAGE              | Negative page or non-positive size
-----------|---------------------------|------------------------------------------
Integrity  | DATA_INTEGRITY_VIOLATION  | Trial balance does not balance
-----------|---------------------------|------------------------------------------
Storage    | STORAGE_ERROR             | Persistence failure; caller may retry
-----------|---------------------------|------------------------------------------
Ingestion  | MALFORMED_EVENT           | Event missing fields or bad amount
           | UNSUPPORTED_EVENT         | No decoder for the event type
-----------|---------------------------|------------------------------------------
Immutable  | IMMUTABILITY_VIOLATION    | UPDATE/DELETE of entry, line or account

An idempotent replay of a known ``(source_event, source_id)`` pair is not an
error: the posting engine returns ``PostingStatus.ALREADY_POSTED`` with the
original entry.

``is_transient`` is True only for the errors the ingestion boundary may
retry: an account that is not provisioned yet can appear after an
event-ordering race with account setup.
"""


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "LEDGER_ERROR"
    is_transient: bool = False


# Account-related exceptions


class AccountError(LedgerError):
    """Base exception for chart-of-accounts errors."""

    code: str = "ACCOUNT_ERROR"


class DuplicateAccountCodeError(AccountError):
    """Account code already exists within the tenant."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, tenant_id: str, account_code: str):
        self.tenant_id = tenant_id
        self.account_code = account_code
        super().__init__(
            f"Account code '{account_code}' already exists for tenant {tenant_id}"
        )


class UnknownParentAccountError(AccountError):
    """Parent account does not resolve in the tenant or the system tenant."""

    code: str = "UNKNOWN_PARENT"
    is_transient: bool = True

    def __init__(self, tenant_id: str, parent_id: str):
        self.tenant_id = tenant_id
        self.parent_id = parent_id
        super().__init__(
            f"Parent account {parent_id} not found for tenant {tenant_id}"
        )


class AccountNotFoundError(AccountError):
    """Account id or code does not resolve for the tenant."""

    code: str = "NOT_FOUND"
    is_transient: bool = True

    def __init__(self, tenant_id: str, account_ref: str):
        self.tenant_id = tenant_id
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref} (tenant {tenant_id})")


class AccountHierarchyCycleError(AccountError):
    """Assigning the parent would make an account its own ancestor."""

    code: str = "ACCOUNT_HIERARCHY_CYCLE"

    def __init__(self, account_id: str, parent_id: str):
        self.account_id = account_id
        self.parent_id = parent_id
        super().__init__(
            f"Parent {parent_id} would create a cycle for account {account_id}"
        )


class InvalidAccountError(AccountError):
    """Account definition fails field validation."""

    code: str = "INVALID_ACCOUNT"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid account {field_name}: {reason}")


# Posting-related exceptions


class PostingError(LedgerError):
    """Base exception for posting errors."""

    code: str = "POSTING_ERROR"


class InvalidEntryError(PostingError):
    """Journal entry header is structurally invalid."""

    code: str = "INVALID_ENTRY"

    def __init__(self, reason_code: str, message: str):
        self.reason_code = reason_code
        super().__init__(f"{reason_code}: {message}")


class UnknownAccountError(PostingError):
    """A line references an account that does not resolve."""

    code: str = "UNKNOWN_ACCOUNT"
    is_transient: bool = True

    reason: str = "unknown account"

    def __init__(self, tenant_id: str, account_id: str, line_no: int | None = None):
        self.tenant_id = tenant_id
        self.account_id = account_id
        self.line_no = line_no
        super().__init__(
            f"Line {line_no}: {self.reason} {account_id} for tenant {tenant_id}"
        )


class AccountInactiveError(UnknownAccountError):
    """A line references a deactivated account."""

    code: str = "ACCOUNT_INACTIVE"
    is_transient: bool = False
    reason: str = "inactive account"


class InvalidLineError(PostingError):
    """A line does not have exactly one strictly positive side."""

    code: str = "INVALID_LINE"

    def __init__(self, line_no: int, reason: str):
        self.line_no = line_no
        self.reason = reason
        super().__init__(f"Invalid line {line_no}: {reason}")


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}"
        )


# Query-related exceptions


class QueryError(LedgerError):
    """Base exception for read-side errors."""

    code: str = "QUERY_ERROR"


class EntryNotFoundError(QueryError):
    """Journal entry does not exist for the tenant."""

    code: str = "NOT_FOUND"

    def __init__(self, tenant_id: str, entry_id: str):
        self.tenant_id = tenant_id
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id} (tenant {tenant_id})")


class InvalidPeriodError(QueryError):
    """Year or month is outside the calendar range."""

    code: str = "INVALID_PERIOD"

    def __init__(self, year: int, month: int):
        self.year = year
        self.month = month
        super().__init__(f"Invalid period {year}-{month}")


class InvalidPageError(QueryError):
    """Pagination arguments are out of range."""

    code: str = "INVALID_PAGE"

    def __init__(self, page: int, size: int):
        self.page = page
        self.size = size
        super().__init__(f"Invalid page request: page={page}, size={size}")


# Integrity exceptions


class LedgerIntegrityError(LedgerError):
    """Base exception for ledger-wide invariant violations."""

    code: str = "LEDGER_INTEGRITY_ERROR"


class DataIntegrityViolationError(LedgerIntegrityError):
    """
    Trial balance does not balance.

    Every posted entry balances on its own, so an unbalanced trial balance
    points at a materialization defect.  It is reported, never corrected.
    """

    code: str = "DATA_INTEGRITY_VIOLATION"

    def __init__(
        self,
        tenant_id: str,
        year: int,
        month: int,
        total_debits: str,
        total_credits: str,
    ):
        self.tenant_id = tenant_id
        self.year = year
        self.month = month
        self.total_debits = total_debits
        self.total_credits = total_credits
        super().__init__(
            f"Trial balance for tenant {tenant_id} {year}-{month:02d} does not "
            f"balance: debits={total_debits}, credits={total_credits}"
        )


# Storage exceptions


class StorageError(LedgerError):
    """Persistence failure other than an idempotency conflict."""

    code: str = "STORAGE_ERROR"
    is_transient: bool = True

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


# Ingestion exceptions


class IngestionError(LedgerError):
    """Base exception for inbound event errors."""

    code: str = "INGESTION_ERROR"


class MalformedEventError(IngestionError):
    """Inbound event is missing required fields or carries bad values."""

    code: str = "MALFORMED_EVENT"

    def __init__(self, event_type: str | None, reason: str):
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Malformed event {event_type or '<unknown>'}: {reason}")


class UnsupportedEventError(IngestionError):
    """No decoder is registered for the event type."""

    code: str = "UNSUPPORTED_EVENT"

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unsupported event type: {event_type}")


# Immutability exceptions


class ImmutabilityViolationError(LedgerError):
    """Attempted UPDATE or DELETE of a record the ledger never mutates."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
