"""
daybook - Personal ledger continuity library

Records day-level movements, rolls them up into monthly and yearly balances,
expands recurring rules into dated entries, and never applies the same entry
twice.

Usage:
    from daybook import LedgerService, EntryKind, LedgerDate, new_transaction, new_rule

    service = LedgerService(verbose=False)
    service.record_manual_transaction(
        new_transaction(2025, 0, 1, EntryKind.CREDIT, "1000", "salary"))
    service.record_manual_transaction(
        new_transaction(2025, 0, 15, EntryKind.DEBIT, "300", "groceries"))
    service.get_balance(2025, 0)            # Decimal('700.00')

    rent = service.add_rule(new_rule(5, EntryKind.DEBIT, "450", LedgerDate(2025, 1, 1), "rent"))
    service.materialize_recurring_for_month(rent.id, 2025, 1)
    service.get_inherited_balance(2026)     # Decimal('250.00')

Months are 0-indexed (0 = January) everywhere.
"""

# Core types
from .core import (
    EntryKind,
    EntryOrigin,
    ExecuteResult,
    Transaction,
    RecurringRule,
    Indefinite,
    FixedCount,
    FixedDuration,
    Lifetime,
    LedgerError,
    TransactionValidationError,
    RuleValidationError,
    RuleStateError,
    TransactionNotFound,
    RuleNotFound,
    PersistenceError,
    new_transaction,
    new_rule,
    to_amount,
    round_cash,
    is_valid_amount,
    ZERO,
    CASH_DECIMAL_PLACES,
)

# Calendar
from .dates import (
    LedgerDate,
    InvalidMonth,
    days_in_month,
    clamp_day,
    is_leap_year,
    compare_dates,
    next_month,
    previous_month,
    month_label,
)

# Ledger store
from .ledger import Ledger, YearLedger, MonthLedger, DayLedger

# Balance propagation
from .propagation import (
    BalancePropagationEngine,
    RecalculationResult,
    IntegrityReport,
    Diagnostic,
    MonthlyTotals,
)

# Recurring rules
from .recurring import (
    RuleRegistry,
    expand,
    candidate_for,
    consume_occurrence,
    upcoming_dates,
    recurring_transaction_id,
)

# Idempotency
from .idempotency import (
    IdempotencyController,
    Admission,
    RecurringRecord,
    ControllerStats,
    manual_fingerprint,
    recurring_fingerprint,
    fingerprint_for,
    DEFAULT_RESUBMIT_GUARD,
    DEFAULT_COMMIT_RETENTION,
    DEFAULT_SWEEP_INTERVAL,
)

# Persistence
from .persistence import (
    LedgerSnapshot,
    LedgerStore,
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    snapshot_to_dict,
    snapshot_from_dict,
)

# Service
from .service import LedgerService, RecordOutcome

__all__ = [
    # Core
    'EntryKind', 'EntryOrigin', 'ExecuteResult',
    'Transaction', 'RecurringRule',
    'Indefinite', 'FixedCount', 'FixedDuration', 'Lifetime',
    'LedgerError', 'TransactionValidationError', 'RuleValidationError',
    'RuleStateError', 'TransactionNotFound', 'RuleNotFound', 'PersistenceError',
    'new_transaction', 'new_rule', 'to_amount', 'round_cash', 'is_valid_amount',
    'ZERO', 'CASH_DECIMAL_PLACES',
    # Calendar
    'LedgerDate', 'InvalidMonth', 'days_in_month', 'clamp_day', 'is_leap_year',
    'compare_dates', 'next_month', 'previous_month', 'month_label',
    # Ledger
    'Ledger', 'YearLedger', 'MonthLedger', 'DayLedger',
    # Propagation
    'BalancePropagationEngine', 'RecalculationResult', 'IntegrityReport',
    'Diagnostic', 'MonthlyTotals',
    # Recurring
    'RuleRegistry', 'expand', 'candidate_for', 'consume_occurrence',
    'upcoming_dates', 'recurring_transaction_id',
    # Idempotency
    'IdempotencyController', 'Admission', 'RecurringRecord', 'ControllerStats',
    'manual_fingerprint', 'recurring_fingerprint', 'fingerprint_for',
    'DEFAULT_RESUBMIT_GUARD', 'DEFAULT_COMMIT_RETENTION', 'DEFAULT_SWEEP_INTERVAL',
    # Persistence
    'LedgerSnapshot', 'LedgerStore', 'InMemoryLedgerStore', 'JsonFileLedgerStore',
    'snapshot_to_dict', 'snapshot_from_dict',
    # Service
    'LedgerService', 'RecordOutcome',
]

__version__ = '1.0.0'
