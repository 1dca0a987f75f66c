"""
idempotency.py - Duplicate-submission control

Makes "record this manual entry" and "materialize this rule for this month"
safe to invoke any number of times.

Two mechanisms:

1. Fingerprint admission (manual and quick entries, and the recurring path
   while it is being committed). A fingerprint is a content hash of the
   logical operation. The controller keeps
       in_flight:  fingerprint -> time the attempt began
       committed:  fingerprint -> time the attempt finished
   try_begin() rejects a fingerprint that is in flight, or that was committed
   less than resubmit_guard ago. Committed entries are forgotten after
   retention, so the same content may legitimately be recorded again later.

2. Sticky recurring records, keyed by (rule id, year, month). These never
   expire: a rule materializes at most once ever for a given month. They are
   persisted with the ledger so a reload cannot re-materialize.

Rejection is an ordinary outcome, not an error: try_begin() never raises.

The controller is a plain object owned by whoever constructs it. There is no
module-level instance.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import hashlib

from .core import EntryKind, EntryOrigin, Transaction, _normalize_decimal
from .dates import check_month, month_label


# ============================================================================
# CONFIGURATION
# ============================================================================

DEFAULT_RESUBMIT_GUARD = timedelta(seconds=5)
DEFAULT_COMMIT_RETENTION = timedelta(minutes=5)
DEFAULT_SWEEP_INTERVAL = timedelta(minutes=1)

# Admission reasons
ADMITTED = "admitted"
IN_FLIGHT = "in_flight"
RECENTLY_COMMITTED = "recently_committed"


# ============================================================================
# FINGERPRINTS
# ============================================================================

def _digest(content: str) -> str:
    return hashlib.sha256(content.encode()).hexdigest()[:16]


def manual_fingerprint(
    year: int,
    month: int,
    day: int,
    kind: EntryKind,
    amount: Decimal,
    origin: EntryOrigin,
) -> str:
    """
    Fingerprint of a manual or quick entry.

    Built from (date, kind, amount, origin) only; description and id are not
    part of it. Amounts are normalized so 300, 300.0 and 300.00 agree.
    """
    check_month(month)
    content = "|".join([
        "manual",
        f"date:{year:04d}-{month:02d}-{day:02d}",
        f"kind:{kind.value}",
        f"amount:{_normalize_decimal(amount)}",
        f"origin:{origin.value}",
    ])
    return _digest(content)


def recurring_fingerprint(rule_id: str, year: int, month: int, day: int) -> str:
    """Fingerprint of a recurring materialization (per rule id, never per content)."""
    check_month(month)
    return _digest(f"recurring|rule:{rule_id}|date:{year:04d}-{month:02d}-{day:02d}")


def fingerprint_for(tx: Transaction) -> str:
    """Fingerprint of an existing transaction."""
    d = tx.date
    if tx.origin is EntryOrigin.RECURRING:
        return recurring_fingerprint(tx.recurring_rule_id, d.year, d.month, d.day)
    return manual_fingerprint(d.year, d.month, d.day, tx.kind, tx.amount, tx.origin)


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Admission:
    """
    Answer of try_begin().

    Truthy when admitted. reason is ADMITTED, IN_FLIGHT or RECENTLY_COMMITTED.
    """
    fingerprint: str
    admitted: bool
    reason: str = ADMITTED

    def __bool__(self) -> bool:
        return self.admitted


@dataclass(frozen=True, slots=True)
class RecurringRecord:
    """A rule materialized once for a month; day is where the entry landed."""
    rule_id: str
    year: int
    month: int
    day: int
    materialized_at: datetime

    @property
    def key(self) -> Tuple[str, int, int]:
        return self.rule_id, self.year, self.month


@dataclass(frozen=True, slots=True)
class ControllerStats:
    in_flight: int
    committed: int
    recurring: int
    last_sweep: Optional[datetime]


# ============================================================================
# CONTROLLER
# ============================================================================

class IdempotencyController:
    """
    Tracks in-flight and committed fingerprints plus sticky recurring records.

    Args:
        resubmit_guard: Minimum age of a committed fingerprint before the same
            fingerprint is admitted again
        retention: Age after which committed (and abandoned in-flight)
            fingerprints are purged; must be >= resubmit_guard
        sweep_interval: How often try_begin() triggers a sweep
        clock: Returns the current time; inject a fake clock in tests
        verbose: Print admission decisions

    Example:
        controller = IdempotencyController(verbose=False)
        admission = controller.try_begin(fp)
        if admission:
            ...store the entry...
            controller.finish(fp)
    """

    def __init__(
        self,
        resubmit_guard: timedelta = DEFAULT_RESUBMIT_GUARD,
        retention: timedelta = DEFAULT_COMMIT_RETENTION,
        sweep_interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
        verbose: bool = False,
    ):
        if resubmit_guard < timedelta(0):
            raise ValueError(f"resubmit_guard cannot be negative, got {resubmit_guard}")
        if retention < resubmit_guard:
            raise ValueError(
                f"retention ({retention}) must be at least resubmit_guard ({resubmit_guard})"
            )
        if sweep_interval <= timedelta(0):
            raise ValueError(f"sweep_interval must be positive, got {sweep_interval}")
        self.resubmit_guard = resubmit_guard
        self.retention = retention
        self.sweep_interval = sweep_interval
        self.clock = clock
        self.verbose = verbose

        self._in_flight: Dict[str, datetime] = {}
        self._committed: Dict[str, datetime] = {}
        self._recurring: Dict[Tuple[str, int, int], RecurringRecord] = {}
        self._last_sweep: Optional[datetime] = None

    # ========================================================================
    # FINGERPRINT ADMISSION
    # ========================================================================

    def try_begin(self, fingerprint: str) -> Admission:
        """
        Ask to start the operation identified by fingerprint.

        Returns a falsy Admission if the same operation is in flight or was
        committed within the re-submission guard. Never raises.
        """
        self.maybe_sweep()
        now = self.clock()
        if fingerprint in self._in_flight:
            return self._reject(fingerprint, IN_FLIGHT)
        committed_at = self._committed.get(fingerprint)
        if committed_at is not None and now - committed_at < self.resubmit_guard:
            return self._reject(fingerprint, RECENTLY_COMMITTED)
        self._in_flight[fingerprint] = now
        return Admission(fingerprint, True)

    def finish(self, fingerprint: str) -> None:
        """Move fingerprint from in-flight to committed, stamped now."""
        self._in_flight.pop(fingerprint, None)
        self._committed[fingerprint] = self.clock()

    def cancel(self, fingerprint: str) -> None:
        """Drop an in-flight fingerprint without recording a commit."""
        self._in_flight.pop(fingerprint, None)

    def is_in_flight(self, fingerprint: str) -> bool:
        return fingerprint in self._in_flight

    def is_committed(self, fingerprint: str) -> bool:
        """True if fingerprint was committed and has not yet been purged."""
        return fingerprint in self._committed

    def _reject(self, fingerprint: str, reason: str) -> Admission:
        if self.verbose:
            print(f"⚠️  DUPLICATE: fingerprint={fingerprint} ({reason})")
        return Admission(fingerprint, False, reason)

    # ========================================================================
    # STICKY RECURRING RECORDS
    # ========================================================================

    def is_recurring_materialized(
        self, rule_id: str, year: int, month: int, day: Optional[int] = None
    ) -> bool:
        """
        True if rule_id was already materialized in (year, month).

        The month is the unit of at-most-once; day, when given, is accepted
        for symmetry with mark_recurring_materialized() and does not narrow
        the check.
        """
        check_month(month)
        return (rule_id, year, month) in self._recurring

    def mark_recurring_materialized(self, rule_id: str, year: int, month: int, day: int) -> RecurringRecord:
        """Record that rule_id produced its entry for (year, month) on day. Idempotent."""
        check_month(month)
        key = (rule_id, year, month)
        existing = self._recurring.get(key)
        if existing is not None:
            return existing
        record = RecurringRecord(rule_id, year, month, day, self.clock())
        self._recurring[key] = record
        return record

    def forget_recurring(self, rule_id: str, year: int, month: int) -> bool:
        """
        Drop the sticky record for (rule_id, year, month).

        Used to deliberately reprocess a month after its entry was deleted.
        Returns True if a record was removed.
        """
        check_month(month)
        return self._recurring.pop((rule_id, year, month), None) is not None

    def clear_month(self, year: int, month: int) -> int:
        """Drop every sticky record for (year, month); returns how many were removed."""
        check_month(month)
        keys = [k for k in self._recurring if k[1] == year and k[2] == month]
        for key in keys:
            del self._recurring[key]
        if self.verbose and keys:
            print(f"🧹 CLEARED {len(keys)} recurring records for {month_label(year, month)}")
        return len(keys)

    def recurring_records(self) -> List[RecurringRecord]:
        """Sticky records in (year, month, rule id) order."""
        return sorted(self._recurring.values(), key=lambda r: (r.year, r.month, r.rule_id))

    def records_for_year(self, year: int) -> List[RecurringRecord]:
        """Sticky records of one year, in (month, rule id) order."""
        return [r for r in self.recurring_records() if r.year == year]

    def remove_orphaned_records(self, known_rule_ids: Iterable[str]) -> int:
        """
        Drop sticky records whose rule no longer exists.

        Args:
            known_rule_ids: Ids of every rule still registered

        Returns:
            Number of records removed
        """
        known = set(known_rule_ids)
        keys = [k for k in self._recurring if k[0] not in known]
        for key in keys:
            del self._recurring[key]
        if self.verbose and keys:
            print(f"🧹 REMOVED {len(keys)} recurring records of deleted rules")
        return len(keys)

    def restore_recurring(self, records: Iterable[RecurringRecord]) -> None:
        """Load persisted sticky records, keeping any already present."""
        for record in records:
            check_month(record.month)
            self._recurring.setdefault(record.key, record)

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    def sweep(self) -> int:
        """
        Purge committed fingerprints older than retention and abandoned
        in-flight fingerprints that began more than retention ago.

        Sticky recurring records are never swept. Returns the number of
        fingerprints removed.
        """
        now = self.clock()
        cutoff = now - self.retention
        stale_committed = [fp for fp, at in self._committed.items() if at < cutoff]
        for fp in stale_committed:
            del self._committed[fp]
        orphaned = [
            fp for fp, at in self._in_flight.items()
            if at < cutoff and fp not in self._committed
        ]
        for fp in orphaned:
            del self._in_flight[fp]
        self._last_sweep = now
        removed = len(stale_committed) + len(orphaned)
        if self.verbose and removed:
            print(f"🧹 SWEPT {len(stale_committed)} committed, {len(orphaned)} orphaned in-flight")
        return removed

    def maybe_sweep(self) -> int:
        """Sweep if sweep_interval has elapsed since the last sweep."""
        now = self.clock()
        if self._last_sweep is not None and now - self._last_sweep < self.sweep_interval:
            return 0
        return self.sweep()

    def stats(self) -> ControllerStats:
        return ControllerStats(
            in_flight=len(self._in_flight),
            committed=len(self._committed),
            recurring=len(self._recurring),
            last_sweep=self._last_sweep,
        )

    def reset(self) -> None:
        """Forget everything, sticky recurring records included."""
        self._in_flight.clear()
        self._committed.clear()
        self._recurring.clear()
        self._last_sweep = None

    def __repr__(self) -> str:
        s = self.stats()
        return (
            f"IdempotencyController(in_flight={s.in_flight}, committed={s.committed}, "
            f"recurring={s.recurring})"
        )
