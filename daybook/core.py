"""
Core types and pure functions for the daybook ledger.

This module provides the foundational data structures of the ledger:
1. Enums: EntryKind, EntryOrigin, ExecuteResult
2. Exceptions: LedgerError and domain-specific error types
3. Immutable entries: Transaction (validated at construction)
4. Rule lifetimes: Indefinite, FixedCount, FixedDuration
5. RecurringRule: the template that materializes transactions month by month
6. Builders: new_transaction, new_rule

Invalid states are rejected in __post_init__, so a Transaction or
RecurringRule that exists has already passed validation. The one exception
is Transaction.restore(), used when reading persisted data back; the balance
propagation engine re-checks those records and reports bad ones.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation, getcontext
from enum import Enum
from typing import Any, Optional, Tuple, Union
import uuid

from .dates import LedgerDate, InvalidMonth


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Balances are accumulated over a whole ledger history, so arithmetic must be
# deterministic. The global context is configured once at import.
#
#   - prec=50: precision well beyond any realistic balance
#   - rounding=ROUND_HALF_EVEN: banker's rounding (unbiased)
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

ZERO = Decimal("0")

# Balances are stored in cents.
CASH_DECIMAL_PLACES = 2
_CASH_QUANTIZER = Decimal(10) ** -CASH_DECIMAL_PLACES


# ============================================================================
# ENUMS
# ============================================================================

class EntryKind(Enum):
    """
    Direction of a ledger entry. Values are the labels used in persisted data.

    CREDIT adds to the balance, DEBIT and DAILY_ADJUSTMENT subtract from it.
    DAILY_ADJUSTMENT is a same-day spending entry that never comes from a
    recurring rule.
    """
    CREDIT = "entrada"
    DEBIT = "saida"
    DAILY_ADJUSTMENT = "diario"


class EntryOrigin(Enum):
    """Where a ledger entry came from."""
    MANUAL = "manual"
    RECURRING = "recurring"
    QUICK_ENTRY = "quick_entry"


class ExecuteResult(Enum):
    """
    Outcome of recording an entry.

    APPLIED: The entry was stored and balances were recalculated.
    ALREADY_APPLIED: The same logical entry was already handled (idempotent no-op).
    REJECTED: The entry could not be recorded (inactive rule, rule not started, ...).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class TransactionValidationError(LedgerError, ValueError):
    """Raised when a transaction is built with an invalid field."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RuleValidationError(LedgerError, ValueError):
    """Raised when a recurring rule is built with an invalid field."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RuleStateError(LedgerError):
    """Raised on malformed lifetime state (negative or non-integer counters)."""
    pass


class TransactionNotFound(LedgerError, KeyError):
    """Raised when a transaction id is not present in the ledger."""
    pass


class RuleNotFound(LedgerError, KeyError):
    """Raised when a rule id is not present in the rule registry."""
    pass


class PersistenceError(LedgerError):
    """Raised when the persistence collaborator fails to load or save."""
    pass


# ============================================================================
# DECIMAL HELPERS
# ============================================================================

def is_valid_amount(value: Any) -> bool:
    """True if value is a finite Decimal strictly greater than zero, in whole cents."""
    return (
        isinstance(value, Decimal)
        and value.is_finite()
        and value > ZERO
        and value.normalize().as_tuple().exponent >= -CASH_DECIMAL_PLACES
    )


def round_cash(value: Decimal) -> Decimal:
    """Quantize a balance to cents using banker's rounding."""
    return value.quantize(_CASH_QUANTIZER, rounding=ROUND_HALF_EVEN)


def to_amount(value: Any, field_name: str = "amount") -> Decimal:
    """
    Convert user input to a positive Decimal amount.

    Accepts Decimal, int, float and numeric strings; floats go through str()
    so 0.1 becomes Decimal("0.1") rather than its binary expansion.

    Raises:
        TransactionValidationError: If the value is not a finite positive number
    """
    if isinstance(value, bool):
        raise TransactionValidationError(f"{field_name} must be a number, got {value!r}", field=field_name)
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise TransactionValidationError(
                f"{field_name} must be a number, got {value!r}", field=field_name
            ) from None
    if not is_valid_amount(amount):
        raise TransactionValidationError(
            f"{field_name} must be a finite amount greater than zero in whole cents, got {value!r}",
            field=field_name,
        )
    return amount


def _normalize_decimal(d: Decimal) -> str:
    """
    Canonical string for a Decimal: Decimal("1.0") and Decimal("1.00") both
    become "1". Used wherever amounts feed a hash.
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


# ============================================================================
# TRANSACTION
# ============================================================================

@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A single ledger entry on a calendar day.

    Attributes:
        id: Unique identifier within the ledger
        date: Day the entry belongs to
        kind: CREDIT, DEBIT or DAILY_ADJUSTMENT; the sign is implied by kind
        amount: Positive Decimal
        description: Free text
        origin: MANUAL, RECURRING or QUICK_ENTRY
        recurring_rule_id: Back-reference to the generating rule; set if and
            only if origin is RECURRING

    This class is immutable (frozen=True) and memory-optimized (slots=True).
    All fields are validated in __post_init__.
    """
    id: str
    date: LedgerDate
    kind: EntryKind
    amount: Decimal
    description: str = ""
    origin: EntryOrigin = EntryOrigin.MANUAL
    recurring_rule_id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise TransactionValidationError("Transaction id cannot be empty", field="id")
        if not isinstance(self.date, LedgerDate):
            raise TransactionValidationError(
                f"Transaction date must be a LedgerDate, got {type(self.date).__name__}", field="date"
            )
        if not isinstance(self.kind, EntryKind):
            raise TransactionValidationError(f"Invalid kind: {self.kind!r}", field="kind")
        if not isinstance(self.origin, EntryOrigin):
            raise TransactionValidationError(f"Invalid origin: {self.origin!r}", field="origin")
        if not isinstance(self.amount, Decimal):
            raise TransactionValidationError(
                f"Transaction amount must be Decimal, got {type(self.amount).__name__}", field="amount"
            )
        if not is_valid_amount(self.amount):
            raise TransactionValidationError(
                f"Transaction amount must be finite and greater than zero in whole cents, got {self.amount}",
                field="amount",
            )
        if not isinstance(self.description, str):
            raise TransactionValidationError("Transaction description must be a string", field="description")
        if self.origin is EntryOrigin.RECURRING:
            if not self.recurring_rule_id:
                raise TransactionValidationError(
                    "Recurring transactions must reference their rule", field="recurring_rule_id"
                )
            if self.kind is EntryKind.DAILY_ADJUSTMENT:
                raise TransactionValidationError(
                    "Daily adjustments cannot come from a recurring rule", field="kind"
                )
        elif self.recurring_rule_id is not None:
            raise TransactionValidationError(
                f"Only recurring transactions carry a rule id (origin={self.origin.value})",
                field="recurring_rule_id",
            )

    @classmethod
    def restore(
        cls,
        id: str,
        date: LedgerDate,
        kind: EntryKind,
        amount: Decimal,
        description: str = "",
        origin: EntryOrigin = EntryOrigin.MANUAL,
        recurring_rule_id: Optional[str] = None,
    ) -> Transaction:
        """
        Rebuild a persisted transaction without running validation.

        Structural fields (date, kind, origin) must already be typed; the
        amount is taken as-is so that a corrupt stored value reaches the
        propagation engine, which reports it and leaves it out of the sums.
        """
        tx = object.__new__(cls)
        object.__setattr__(tx, 'id', id)
        object.__setattr__(tx, 'date', date)
        object.__setattr__(tx, 'kind', kind)
        object.__setattr__(tx, 'amount', amount)
        object.__setattr__(tx, 'description', description)
        object.__setattr__(tx, 'origin', origin)
        object.__setattr__(tx, 'recurring_rule_id', recurring_rule_id)
        return tx

    @property
    def signed_amount(self) -> Decimal:
        """Contribution of this entry to the running balance."""
        if self.kind is EntryKind.CREDIT:
            return self.amount
        return -self.amount

    @property
    def is_recurring(self) -> bool:
        return self.origin is EntryOrigin.RECURRING

    def __repr__(self) -> str:
        ref = f", rule={self.recurring_rule_id}" if self.recurring_rule_id else ""
        return (
            f"Transaction({self.id} {self.date} {self.kind.name} {self.amount} "
            f"{self.origin.value}{ref})"
        )


def new_transaction(
    year: int,
    month: int,
    day: int,
    kind: EntryKind,
    amount: Any,
    description: str = "",
    origin: EntryOrigin = EntryOrigin.MANUAL,
    transaction_id: Optional[str] = None,
) -> Transaction:
    """
    Build a manual or quick-entry Transaction from loose input.

    This is the standard way for callers to create entries. The amount is
    converted with to_amount() and an id is generated when none is given.

    Raises:
        TransactionValidationError: On an invalid day, amount, kind or origin
        InvalidMonth: If month is outside [0, 11] (programmer error)

    Example:
        tx = new_transaction(2025, 0, 15, EntryKind.DEBIT, "300.00", "groceries")
    """
    try:
        when = LedgerDate(year, month, day)
    except InvalidMonth:
        raise
    except ValueError as e:
        raise TransactionValidationError(str(e), field="date") from None
    return Transaction(
        id=transaction_id or _generate_id("tx"),
        date=when,
        kind=kind,
        amount=to_amount(amount),
        description=description,
        origin=origin,
    )


# ============================================================================
# RULE LIFETIMES
# ============================================================================

def _check_counter(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RuleStateError(f"{name} must be an int, got {value!r}")
    if value < 0:
        raise RuleStateError(f"{name} cannot be negative, got {value}")


@dataclass(frozen=True, slots=True)
class Indefinite:
    """The rule fires every month until it is removed."""

    def is_exhausted(self) -> bool:
        return False

    def consume(self) -> Indefinite:
        return self


@dataclass(frozen=True, slots=True)
class FixedCount:
    """The rule fires `remaining` more times."""
    remaining: int

    def __post_init__(self):
        _check_counter(self.remaining, "FixedCount.remaining")

    def is_exhausted(self) -> bool:
        return self.remaining == 0

    def consume(self) -> FixedCount:
        if self.remaining == 0:
            raise RuleStateError("Cannot consume an exhausted FixedCount")
        return FixedCount(self.remaining - 1)


@dataclass(frozen=True, slots=True)
class FixedDuration:
    """The rule fires for `months_remaining` more months."""
    months_remaining: int

    def __post_init__(self):
        _check_counter(self.months_remaining, "FixedDuration.months_remaining")

    def is_exhausted(self) -> bool:
        return self.months_remaining == 0

    def consume(self) -> FixedDuration:
        if self.months_remaining == 0:
            raise RuleStateError("Cannot consume an exhausted FixedDuration")
        return FixedDuration(self.months_remaining - 1)


Lifetime = Union[Indefinite, FixedCount, FixedDuration]

_LIFETIME_TYPES: Tuple[type, ...] = (Indefinite, FixedCount, FixedDuration)


# ============================================================================
# RECURRING RULE
# ============================================================================

@dataclass(slots=True)
class RecurringRule:
    """
    Template that materializes one Transaction per eligible month.

    Rules are mutable: is_active and lifetime change as the rule fires. Only
    the recurring expander mutates them, and only while the idempotency
    controller has admitted the rule+month being materialized.

    Attributes:
        id: Unique identifier within the rule registry
        day_of_month: 1..31; clamped to the month length at expansion time
        kind: CREDIT or DEBIT
        amount: Positive Decimal
        description: Free text copied onto every materialized entry
        start_date: Nothing is materialized before this date
        lifetime: Indefinite, FixedCount or FixedDuration
        is_active: Once False, the rule produces nothing further
    """
    id: str
    day_of_month: int
    kind: EntryKind
    amount: Decimal
    description: str
    start_date: LedgerDate
    lifetime: Lifetime = field(default_factory=Indefinite)
    is_active: bool = True

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise RuleValidationError("Rule id cannot be empty", field="id")
        if isinstance(self.day_of_month, bool) or not isinstance(self.day_of_month, int) \
                or not 1 <= self.day_of_month <= 31:
            raise RuleValidationError(
                f"day_of_month must be in [1, 31], got {self.day_of_month!r}", field="day_of_month"
            )
        if self.kind not in (EntryKind.CREDIT, EntryKind.DEBIT):
            raise RuleValidationError(f"Recurring rules must be CREDIT or DEBIT, got {self.kind!r}", field="kind")
        if not is_valid_amount(self.amount):
            raise RuleValidationError(
                f"Rule amount must be a finite Decimal greater than zero in whole cents, got {self.amount!r}", field="amount"
            )
        if not isinstance(self.start_date, LedgerDate):
            raise RuleValidationError("start_date must be a LedgerDate", field="start_date")
        if not isinstance(self.lifetime, _LIFETIME_TYPES):
            raise RuleStateError(f"Unknown lifetime: {self.lifetime!r}")

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return (
            f"RecurringRule({self.id} day={self.day_of_month} {self.kind.name} {self.amount} "
            f"from {self.start_date} {self.lifetime} {state})"
        )


def new_rule(
    day_of_month: int,
    kind: EntryKind,
    amount: Any,
    start_date: LedgerDate,
    description: str = "",
    lifetime: Optional[Lifetime] = None,
    rule_id: Optional[str] = None,
) -> RecurringRule:
    """
    Build a RecurringRule from loose input.

    A rule created with an exhausted lifetime (FixedCount(0) or
    FixedDuration(0)) starts inactive.

    Raises:
        RuleValidationError: On an invalid day, kind or amount
    """
    try:
        converted = to_amount(amount)
    except TransactionValidationError as e:
        raise RuleValidationError(str(e), field="amount") from None
    lifetime = lifetime if lifetime is not None else Indefinite()
    rule = RecurringRule(
        id=rule_id or _generate_id("rule"),
        day_of_month=day_of_month,
        kind=kind,
        amount=converted,
        description=description,
        start_date=start_date,
        lifetime=lifetime,
    )
    if isinstance(lifetime, _LIFETIME_TYPES) and lifetime.is_exhausted():
        rule.is_active = False
    return rule
