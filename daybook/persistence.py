"""
persistence.py - Persistence collaborator

The ledger core owns no I/O. It talks to storage only through the
LedgerStore protocol and only at checkpoints (after a recalculation
completes, after a recurring commit), never mid-computation.

Persisted shape (JSON-compatible, Decimals as strings, months 0-indexed):

    {
      "version": 1,
      "name": "main",
      "ledger": {
        "2025": {
          "0": {
            "openingBalance": "0.00",
            "closingBalance": "700.00",
            "days": {"1": [tx, ...], "15": [tx, ...]},
            "dayBalances": {"1": "1000.00", "15": "700.00"}
          }
        }
      },
      "rules": {"rule_ab12": {...}},
      "materialized": [{"ruleId": ..., "year": ..., "month": ..., "day": ..., "materializedAt": ...}]
    }

Stored transactions are restored with Transaction.restore(), bypassing
constructor validation, so a corrupt amount reaches the propagation engine
and is reported there instead of making the whole ledger unreadable.
Anything structurally wrong (unknown kind, bad date, malformed rule) raises
PersistenceError.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable
import json
import os
import tempfile

from .core import (
    EntryKind, EntryOrigin, FixedCount, FixedDuration, Indefinite, Lifetime,
    PersistenceError, RecurringRule, RuleStateError, Transaction,
)
from .dates import LedgerDate, check_month
from .idempotency import RecurringRecord
from .ledger import DayLedger, Ledger, MonthLedger
from .recurring import RuleRegistry


FORMAT_VERSION = 1


@dataclass
class LedgerSnapshot:
    """Everything that is persisted together: ledger, rules and sticky recurring records."""
    ledger: Ledger
    rules: RuleRegistry = field(default_factory=RuleRegistry)
    materialized: List[RecurringRecord] = field(default_factory=list)


# ============================================================================
# STORE PROTOCOL
# ============================================================================

@runtime_checkable
class LedgerStore(Protocol):
    """
    Protocol for persistence collaborators.

    Both operations are fallible and may be slow. Implementations raise
    PersistenceError on failure.
    """

    def load_ledger(self) -> Optional[LedgerSnapshot]:
        """Return the stored snapshot, or None if nothing was saved yet."""
        ...

    def save_ledger(self, snapshot: LedgerSnapshot) -> None:
        """Persist a snapshot, replacing the previous one."""
        ...


class InMemoryLedgerStore:
    """
    Store that keeps the serialized snapshot in memory.

    The snapshot is kept as JSON text, so loading always yields fresh objects
    that share nothing with the saved ones.
    """

    def __init__(self):
        self._payload: Optional[str] = None
        self.save_count = 0

    def load_ledger(self) -> Optional[LedgerSnapshot]:
        if self._payload is None:
            return None
        return snapshot_from_dict(json.loads(self._payload))

    def save_ledger(self, snapshot: LedgerSnapshot) -> None:
        self._payload = json.dumps(snapshot_to_dict(snapshot), sort_keys=True)
        self.save_count += 1

    def __repr__(self):
        state = "empty" if self._payload is None else f"{len(self._payload)} bytes"
        return f"InMemoryLedgerStore({state}, saves={self.save_count})"


class JsonFileLedgerStore:
    """
    Store backed by a single JSON file.

    Saves write a temporary file next to the target and atomically replace
    it, so a crash mid-save leaves the previous snapshot intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load_ledger(self) -> Optional[LedgerSnapshot]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt ledger file {self.path}: {e}") from e
        return snapshot_from_dict(data)

    def save_ledger(self, snapshot: LedgerSnapshot) -> None:
        payload = json.dumps(snapshot_to_dict(snapshot), indent=2, sort_keys=True)
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e

    def __repr__(self):
        return f"JsonFileLedgerStore({str(self.path)!r})"


# ============================================================================
# SERIALIZATION
# ============================================================================

def _decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def transaction_to_dict(tx: Transaction) -> Dict[str, Any]:
    data = {
        "id": tx.id,
        "date": tx.date.isoformat(),
        "kind": tx.kind.value,
        "amount": str(tx.amount),
        "description": tx.description,
        "origin": tx.origin.value,
    }
    if tx.recurring_rule_id is not None:
        data["recurringRuleId"] = tx.recurring_rule_id
    return data


def lifetime_to_dict(lifetime: Lifetime) -> Dict[str, Any]:
    if isinstance(lifetime, FixedCount):
        return {"type": "fixed_count", "remaining": lifetime.remaining}
    if isinstance(lifetime, FixedDuration):
        return {"type": "fixed_duration", "monthsRemaining": lifetime.months_remaining}
    return {"type": "indefinite"}


def rule_to_dict(rule: RecurringRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "dayOfMonth": rule.day_of_month,
        "kind": rule.kind.value,
        "amount": str(rule.amount),
        "description": rule.description,
        "startDate": rule.start_date.isoformat(),
        "lifetime": lifetime_to_dict(rule.lifetime),
        "isActive": rule.is_active,
    }


def month_to_dict(month_ledger: MonthLedger) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "openingBalance": str(month_ledger.opening_balance),
        "closingBalance": str(month_ledger.closing_balance),
    }
    if month_ledger.days is not None:
        data["days"] = {
            str(day.day): [transaction_to_dict(tx) for tx in day.transactions]
            for day in month_ledger.iter_days()
        }
        data["dayBalances"] = {
            str(day.day): _decimal_to_str(day.balance)
            for day in month_ledger.iter_days()
        }
    return data


def snapshot_to_dict(snapshot: LedgerSnapshot) -> Dict[str, Any]:
    """Convert a snapshot to the JSON-compatible persisted shape."""
    tree: Dict[str, Dict[str, Any]] = {}
    for month_ledger in snapshot.ledger.iter_months():
        tree.setdefault(str(month_ledger.year), {})[str(month_ledger.month)] = month_to_dict(month_ledger)
    return {
        "version": FORMAT_VERSION,
        "name": snapshot.ledger.name,
        "ledger": tree,
        "rules": {rule.id: rule_to_dict(rule) for rule in snapshot.rules.all()},
        "materialized": [
            {
                "ruleId": r.rule_id,
                "year": r.year,
                "month": r.month,
                "day": r.day,
                "materializedAt": r.materialized_at.isoformat(),
            }
            for r in snapshot.materialized
        ],
    }


# ============================================================================
# DESERIALIZATION
# ============================================================================

def _stored_amount(raw: Any) -> Decimal:
    # A corrupt amount becomes NaN; the propagation engine reports and skips it.
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        return Decimal("NaN")


def transaction_from_dict(data: Dict[str, Any]) -> Transaction:
    return Transaction.restore(
        id=str(data["id"]),
        date=LedgerDate.parse(data["date"]),
        kind=EntryKind(data["kind"]),
        amount=_stored_amount(data.get("amount")),
        description=data.get("description", ""),
        origin=EntryOrigin(data.get("origin", EntryOrigin.MANUAL.value)),
        recurring_rule_id=data.get("recurringRuleId"),
    )


def lifetime_from_dict(data: Dict[str, Any]) -> Lifetime:
    kind = data.get("type")
    if kind == "indefinite":
        return Indefinite()
    if kind == "fixed_count":
        return FixedCount(data["remaining"])
    if kind == "fixed_duration":
        return FixedDuration(data["monthsRemaining"])
    raise PersistenceError(f"Unknown lifetime type: {kind!r}")


def rule_from_dict(data: Dict[str, Any]) -> RecurringRule:
    is_active = data.get("isActive", True)
    if not isinstance(is_active, bool):
        raise PersistenceError(f"Rule {data.get('id')!r}: isActive must be a boolean, got {is_active!r}")
    return RecurringRule(
        id=data["id"],
        day_of_month=data["dayOfMonth"],
        kind=EntryKind(data["kind"]),
        amount=Decimal(str(data["amount"])),
        description=data.get("description", ""),
        start_date=LedgerDate.parse(data["startDate"]),
        lifetime=lifetime_from_dict(data.get("lifetime", {"type": "indefinite"})),
        is_active=is_active,
    )


def _month_from_dict(year: int, month: int, data: Dict[str, Any], seen: set) -> MonthLedger:
    month_ledger = MonthLedger(
        year=year,
        month=month,
        opening_balance=Decimal(str(data.get("openingBalance", "0"))),
        closing_balance=Decimal(str(data.get("closingBalance", "0"))),
        days=None,
    )
    if "days" not in data or data["days"] is None:
        return month_ledger

    balances = data.get("dayBalances") or {}
    month_ledger.days = {}
    for day_key, entries in data["days"].items():
        day_number = int(day_key)
        stored_balance = balances.get(day_key)
        day = DayLedger(
            day_number,
            balance=None if stored_balance is None else Decimal(str(stored_balance)),
        )
        for entry in entries:
            tx = transaction_from_dict(entry)
            if (tx.date.year, tx.date.month, tx.date.day) != (year, month, day_number):
                raise PersistenceError(
                    f"Transaction {tx.id} dated {tx.date} is stored under "
                    f"{year}/{month}/{day_number}"
                )
            if tx.id in seen:
                raise PersistenceError(f"Duplicate transaction id {tx.id}")
            seen.add(tx.id)
            day.transactions.append(tx)
        month_ledger.days[day_number] = day
    return month_ledger


def snapshot_from_dict(data: Dict[str, Any]) -> LedgerSnapshot:
    """
    Rebuild a snapshot from the persisted shape.

    Raises:
        PersistenceError: On an unsupported version or malformed structure
    """
    version = data.get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise PersistenceError(f"Unsupported ledger format version {version!r}")
    try:
        ledger = Ledger(data.get("name", "main"))
        seen: set = set()
        for year_key, months in data.get("ledger", {}).items():
            year = int(year_key)
            for month_key, month_data in months.items():
                month = check_month(int(month_key))
                month_ledger = _month_from_dict(year, month, month_data, seen)
                ledger.ensure_month(year, month)
                ledger.years[year].months[month] = month_ledger
        ledger.rebuild_index()

        rules = RuleRegistry()
        for rule_data in data.get("rules", {}).values():
            rules.add(rule_from_dict(rule_data))

        materialized = [
            RecurringRecord(
                rule_id=r["ruleId"],
                year=int(r["year"]),
                month=check_month(int(r["month"])),
                day=int(r["day"]),
                materialized_at=datetime.fromisoformat(r["materializedAt"]),
            )
            for r in data.get("materialized", [])
        ]
    except (KeyError, TypeError, ValueError, InvalidOperation, RuleStateError) as e:
        raise PersistenceError(f"Malformed ledger data: {e}") from e
    return LedgerSnapshot(ledger=ledger, rules=rules, materialized=materialized)
