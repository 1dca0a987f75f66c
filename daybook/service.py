"""
service.py - LedgerService, the boundary used by callers

Every write follows the same sequence:

    IdempotencyController  ->  Ledger  ->  BalancePropagationEngine  ->  store

1. The controller decides whether the operation may proceed. A duplicate
   comes back as ExecuteResult.ALREADY_APPLIED, never as an exception.
2. The ledger is mutated.
3. Balances are recalculated from the affected month forward.
4. If a store is attached, the snapshot is saved (checkpoint). A failed save
   is returned in RecordOutcome.save_error; the write itself stands.

All collaborators are passed in; nothing is a module-level singleton.

Example:
    service = LedgerService(verbose=False)
    service.record_manual_transaction(
        new_transaction(2025, 0, 1, EntryKind.CREDIT, "1000"))
    service.get_balance(2025, 0)   # Decimal('1000.00')
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from .core import EntryOrigin, ExecuteResult, PersistenceError, RecurringRule, Transaction
from .dates import month_label
from .idempotency import IdempotencyController, manual_fingerprint, recurring_fingerprint
from .ledger import Ledger
from .persistence import LedgerSnapshot, LedgerStore
from .propagation import BalancePropagationEngine, MonthlyTotals, RecalculationResult
from .recurring import RuleRegistry, candidate_for, consume_occurrence, target_date


@dataclass(frozen=True, slots=True)
class RecordOutcome:
    """
    Result of a recording operation.

    Attributes:
        result: APPLIED, ALREADY_APPLIED or REJECTED
        transaction: The stored (or already existing) entry, if any
        recalculation: Recalculation run after an APPLIED write
        reason: Why the operation was not applied
        save_error: Set when the write was applied in memory but the
            checkpoint save failed; the entry is not on disk until the next
            successful save
    """
    result: ExecuteResult
    transaction: Optional[Transaction] = None
    recalculation: Optional[RecalculationResult] = None
    reason: str = ""
    save_error: Optional[PersistenceError] = None

    @property
    def applied(self) -> bool:
        return self.result is ExecuteResult.APPLIED

    @property
    def persisted(self) -> bool:
        return self.save_error is None


class LedgerService:
    """
    Facade that sequences idempotency checks, ledger writes, balance
    propagation and persistence checkpoints.

    Args:
        ledger: Ledger to operate on (a new empty one if None)
        rules: Recurring rule registry (a new empty one if None)
        controller: Idempotency controller (a new default one if None)
        store: Optional persistence collaborator; saves happen only at checkpoints
        verbose: Print one line per operation

    Thread Safety:
        Not thread-safe. Single writer, cooperative scheduling.
    """

    def __init__(
        self,
        ledger: Optional[Ledger] = None,
        rules: Optional[RuleRegistry] = None,
        controller: Optional[IdempotencyController] = None,
        store: Optional[LedgerStore] = None,
        verbose: bool = True,
    ):
        self.ledger = ledger if ledger is not None else Ledger()
        self.rules = rules if rules is not None else RuleRegistry()
        self.controller = controller if controller is not None else IdempotencyController()
        self.store = store
        self.verbose = verbose
        self.engine = BalancePropagationEngine(self.ledger, verbose=verbose)

    # ========================================================================
    # MANUAL ENTRIES
    # ========================================================================

    def record_manual_transaction(self, tx: Transaction) -> RecordOutcome:
        """
        Record a manual or quick entry and recalculate balances.

        Returns:
            APPLIED when stored; ALREADY_APPLIED when the same id is already in
            the ledger or the same (date, kind, amount, origin) was submitted
            within the re-submission guard; REJECTED for a recurring-origin
            entry, which must go through materialize_recurring_for_month().
        """
        if tx.origin is EntryOrigin.RECURRING:
            return self._rejected("recurring entries are materialized from their rule", tx)

        existing = self.ledger.find_transaction(tx.id)
        if existing is not None:
            return self._already_applied(f"transaction {tx.id} already recorded", existing)

        fp = manual_fingerprint(tx.date.year, tx.date.month, tx.date.day, tx.kind, tx.amount, tx.origin)
        admission = self.controller.try_begin(fp)
        if not admission:
            return self._already_applied(f"duplicate submission ({admission.reason})", None)

        try:
            self.ledger.add_transaction(tx)
        except Exception:
            self.controller.cancel(fp)
            raise
        self.controller.finish(fp)

        recalculation = self.engine.recalculate_from(tx.date)
        if self.verbose:
            print(f"✓ APPLIED: {tx.kind.name} {tx.amount} on {tx.date} ({tx.id})")
        save_error = self._checkpoint()
        return RecordOutcome(ExecuteResult.APPLIED, tx, recalculation, save_error=save_error)

    def delete_transaction(self, tx_id: str) -> RecalculationResult:
        """
        Remove an entry and recalculate from its month.

        Deleting a recurring entry does not forget that its rule fired for the
        month; call controller.forget_recurring() to allow it again.

        Raises:
            TransactionNotFound: If tx_id is not in the ledger
            PersistenceError: If the checkpoint save fails; the entry is
                already removed in memory
        """
        tx = self.ledger.remove_transaction(tx_id)
        recalculation = self.engine.recalculate_from(tx.date)
        if self.verbose:
            print(f"✓ DELETED: {tx.id} on {tx.date}")
        save_error = self._checkpoint()
        if save_error is not None:
            raise save_error
        return recalculation

    # ========================================================================
    # RECURRING ENTRIES
    # ========================================================================

    def add_rule(self, rule: RecurringRule) -> RecurringRule:
        """Register a recurring rule. Nothing is materialized until asked."""
        self.rules.add(rule)
        if self.verbose:
            print(f"📝 Registered rule: {rule.id} day={rule.day_of_month} {rule.kind.name} {rule.amount}")
        return rule

    def remove_rule(self, rule_id: str) -> RecurringRule:
        """
        Unregister a rule and drop its sticky records.

        Entries the rule already produced stay in the ledger.

        Raises:
            RuleNotFound: If rule_id is not registered
            PersistenceError: If the checkpoint save fails
        """
        rule = self.rules.remove(rule_id)
        self.controller.remove_orphaned_records(r.id for r in self.rules)
        if self.verbose:
            print(f"📝 Removed rule: {rule_id}")
        save_error = self._checkpoint()
        if save_error is not None:
            raise save_error
        return rule

    def materialize_recurring_for_month(self, rule_id: str, year: int, month: int) -> RecordOutcome:
        """
        Produce the entry rule_id owes for (year, month), at most once ever.

        Returns:
            APPLIED with the new entry; ALREADY_APPLIED if the rule already
            fired for that month (even long ago, or before a reload);
            REJECTED if the rule is unknown, inactive, exhausted or has not
            started yet.
        """
        outcome = self._materialize(rule_id, year, month)
        if outcome.applied:
            recalculation = self.engine.recalculate_from(outcome.transaction.date)
            save_error = self._checkpoint()
            outcome = RecordOutcome(
                ExecuteResult.APPLIED, outcome.transaction, recalculation, save_error=save_error
            )
        return outcome

    def materialize_all_for_month(self, year: int, month: int) -> List[RecordOutcome]:
        """
        Materialize every active rule for (year, month).

        Balances are recalculated and saved once at the end of the pass.
        """
        outcomes = [self._materialize(rule.id, year, month) for rule in self.rules.active()]
        applied = [o for o in outcomes if o.applied]
        if applied:
            earliest = min(o.transaction.date for o in applied)
            recalculation = self.engine.recalculate_from(earliest)
            save_error = self._checkpoint()
            outcomes = [
                RecordOutcome(o.result, o.transaction, recalculation, save_error=save_error)
                if o.applied else o
                for o in outcomes
            ]
        if self.verbose:
            print(f"✓ MATERIALIZED {month_label(year, month)}: {len(applied)} of {len(outcomes)} rules applied")
        return outcomes

    def _materialize(self, rule_id: str, year: int, month: int) -> RecordOutcome:
        rule = self.rules.find(rule_id)
        if rule is None:
            return self._rejected(f"rule {rule_id} not found")

        if self.controller.is_recurring_materialized(rule_id, year, month):
            return self._already_applied(
                f"rule {rule_id} already materialized for {month_label(year, month)}",
                self.ledger.find_recurring(rule_id, year, month),
            )
        existing = self.ledger.find_recurring(rule_id, year, month)
        if existing is not None:
            # Stored entry without a sticky record, e.g. from older persisted data.
            self.controller.mark_recurring_materialized(rule_id, year, month, existing.date.day)
            return self._already_applied(
                f"rule {rule_id} already has an entry in {month_label(year, month)}", existing
            )

        when = target_date(rule, year, month)
        fp = recurring_fingerprint(rule_id, when.year, when.month, when.day)
        admission = self.controller.try_begin(fp)
        if not admission:
            return self._already_applied(f"materialization in progress ({admission.reason})", None)

        tx = candidate_for(rule, year, month)
        if tx is None:
            self.controller.cancel(fp)
            return self._rejected(self._skip_reason(rule, year, month))

        try:
            self.ledger.add_transaction(tx)
        except Exception:
            self.controller.cancel(fp)
            raise
        consume_occurrence(rule)
        self.controller.finish(fp)
        self.controller.mark_recurring_materialized(rule_id, year, month, tx.date.day)
        if self.verbose:
            state = "" if rule.is_active else " (rule now inactive)"
            print(f"✓ APPLIED: {rule_id} -> {tx.kind.name} {tx.amount} on {tx.date}{state}")
        return RecordOutcome(ExecuteResult.APPLIED, tx)

    @staticmethod
    def _skip_reason(rule: RecurringRule, year: int, month: int) -> str:
        label = month_label(year, month)
        if target_date(rule, year, month) < rule.start_date:
            return f"rule {rule.id} starts {rule.start_date}, after {label}"
        return f"rule {rule.id} is inactive"

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_balance(self, year: int, month: int) -> Decimal:
        return self.engine.get_balance(year, month)

    def get_year_end_balance(self, year: int) -> Decimal:
        return self.engine.get_year_end_balance(year)

    def get_inherited_balance(self, year: int) -> Decimal:
        return self.engine.get_inherited_balance(year)

    def monthly_totals(self, year: int, month: int) -> MonthlyTotals:
        return self.engine.monthly_totals(year, month)

    def yearly_totals(self, year: int) -> MonthlyTotals:
        return self.engine.yearly_totals(year)

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            ledger=self.ledger,
            rules=self.rules,
            materialized=self.controller.recurring_records(),
        )

    def save(self) -> None:
        """
        Save the current state to the attached store.

        Raises:
            ValueError: If no store is attached
            PersistenceError: If the store fails
        """
        if self.store is None:
            raise ValueError("No store attached")
        self.store.save_ledger(self.snapshot())

    def _checkpoint(self) -> Optional[PersistenceError]:
        """Save after a committed write; a failure is returned, not raised."""
        if self.store is None:
            return None
        try:
            self.store.save_ledger(self.snapshot())
        except PersistenceError as e:
            if self.verbose:
                print(f"✗ SAVE FAILED: {e}")
            return e
        return None

    @classmethod
    def load(
        cls,
        store: LedgerStore,
        controller: Optional[IdempotencyController] = None,
        verbose: bool = True,
    ) -> LedgerService:
        """
        Build a service from the store's last snapshot (or empty if none).

        Sticky recurring records are restored into the controller, and any
        stored recurring entry without a record is registered as well, so a
        reload can never re-materialize a month. Missing or stale cached
        balances are recalculated before the service is returned.

        Raises:
            PersistenceError: If the stored data cannot be read
        """
        controller = controller if controller is not None else IdempotencyController()
        snapshot = store.load_ledger()
        if snapshot is None:
            return cls(controller=controller, store=store, verbose=verbose)

        controller.restore_recurring(snapshot.materialized)
        for month_ledger in snapshot.ledger.iter_months():
            for tx in month_ledger.transactions():
                if tx.is_recurring:
                    controller.mark_recurring_materialized(
                        tx.recurring_rule_id, tx.date.year, tx.date.month, tx.date.day
                    )
        if verbose:
            print(f"📝 Loaded: {snapshot.ledger!r}, {len(snapshot.rules)} rules")
        service = cls(snapshot.ledger, snapshot.rules, controller, store, verbose)
        # Stored day balances may be missing or stale; the year-end scan reads them.
        service.engine.fix_inconsistencies()
        return service

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _rejected(self, reason: str, tx: Optional[Transaction] = None) -> RecordOutcome:
        if self.verbose:
            print(f"✗ REJECTED: {reason}")
        return RecordOutcome(ExecuteResult.REJECTED, tx, reason=reason)

    def _already_applied(self, reason: str, tx: Optional[Transaction]) -> RecordOutcome:
        if self.verbose:
            print(f"⚠️  ALREADY_APPLIED: {reason}")
        return RecordOutcome(ExecuteResult.ALREADY_APPLIED, tx, reason=reason)

    def __repr__(self) -> str:
        return f"LedgerService({self.ledger!r}, {self.rules!r})"
