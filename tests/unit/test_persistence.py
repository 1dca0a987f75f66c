"""
test_persistence.py - Unit tests for the persistence collaborator

Tests:
- snapshot_to_dict: persisted shape, Decimals as strings, 0-indexed months
- snapshot_from_dict: rebuilt ledger, rules, sticky records, index
- Corrupt data: bad amounts reach the engine, structural errors raise
- InMemoryLedgerStore and JsonFileLedgerStore
"""

import json
import pytest
from datetime import datetime
from decimal import Decimal

from daybook import (
    Ledger, LedgerDate, EntryKind, FixedCount, FixedDuration, Indefinite,
    RuleRegistry, RecurringRecord, LedgerSnapshot, LedgerStore,
    InMemoryLedgerStore, JsonFileLedgerStore, PersistenceError,
    BalancePropagationEngine, snapshot_to_dict, snapshot_from_dict,
    new_rule, expand,
)
from daybook.propagation import INVALID_AMOUNT

from tests.entries import credit, debit, populate


def _snapshot():
    ledger = populate(Ledger("home"), credit(2025, 0, 1, "1000", "salary"), debit(2025, 0, 15, "300"))
    rules = RuleRegistry()
    rent = rules.add(new_rule(5, EntryKind.DEBIT, "450", LedgerDate(2025, 1, 1), "rent",
                              lifetime=FixedCount(3), rule_id="rent"))
    rules.add(new_rule(10, EntryKind.CREDIT, "20", LedgerDate(2025, 0, 1), rule_id="gift",
                       lifetime=FixedDuration(2)))
    rules.add(new_rule(28, EntryKind.DEBIT, "9.99", LedgerDate(2025, 0, 1), rule_id="stream"))
    ledger.add_transaction(expand(rent, 2025, 1))
    BalancePropagationEngine(ledger).recalculate_all()
    materialized = [RecurringRecord("rent", 2025, 1, 5, datetime(2025, 2, 5, 9, 0))]
    return LedgerSnapshot(ledger, rules, materialized)


class TestSerialization:
    """The persisted shape."""

    def test_shape(self):
        data = snapshot_to_dict(_snapshot())
        assert data["version"] == 1
        assert data["name"] == "home"
        jan = data["ledger"]["2025"]["0"]
        assert jan["openingBalance"] == "0.00"
        assert jan["closingBalance"] == "700.00"
        assert [tx["amount"] for tx in jan["days"]["1"]] == ["1000"]
        assert jan["dayBalances"]["15"] == "700.00"

    def test_transaction_fields(self):
        data = snapshot_to_dict(_snapshot())
        feb_tx = data["ledger"]["2025"]["1"]["days"]["5"][0]
        assert feb_tx["kind"] == "saida"
        assert feb_tx["origin"] == "recurring"
        assert feb_tx["recurringRuleId"] == "rent"
        assert feb_tx["date"] == "2025-02-05"
        manual = data["ledger"]["2025"]["0"]["days"]["1"][0]
        assert "recurringRuleId" not in manual

    def test_rules_and_records(self):
        data = snapshot_to_dict(_snapshot())
        assert data["rules"]["rent"]["lifetime"] == {"type": "fixed_count", "remaining": 2}
        assert data["rules"]["gift"]["lifetime"] == {"type": "fixed_duration", "monthsRemaining": 2}
        assert data["rules"]["stream"]["lifetime"] == {"type": "indefinite"}
        assert data["materialized"] == [{
            "ruleId": "rent", "year": 2025, "month": 1, "day": 5,
            "materializedAt": "2025-02-05T09:00:00",
        }]

    def test_json_compatible(self):
        json.dumps(snapshot_to_dict(_snapshot()))


class TestDeserialization:
    """Rebuilding a snapshot from stored data."""

    def test_round_trip_preserves_state(self):
        original = _snapshot()
        restored = snapshot_from_dict(json.loads(json.dumps(snapshot_to_dict(original))))

        assert restored.ledger.name == "home"
        assert len(restored.ledger) == 3
        jan = restored.ledger.get_month(2025, 0)
        assert jan.closing_balance == Decimal("700.00")
        assert jan.days[15].balance == Decimal("700.00")
        assert restored.rules.get("rent").lifetime == FixedCount(2)
        assert restored.rules.get("stream").lifetime == Indefinite()
        assert restored.materialized == original.materialized
        assert BalancePropagationEngine(restored.ledger).validate_integrity().valid

    def test_index_rebuilt(self):
        restored = snapshot_from_dict(snapshot_to_dict(_snapshot()))
        tx = restored.ledger.find_recurring("rent", 2025, 1)
        assert restored.ledger.find_transaction(tx.id) is tx

    def test_corrupt_amount_reaches_engine(self):
        data = snapshot_to_dict(_snapshot())
        data["ledger"]["2025"]["0"]["days"]["15"][0]["amount"] = "not-a-number"
        restored = snapshot_from_dict(data)

        result = BalancePropagationEngine(restored.ledger).recalculate_all()
        assert [d.kind for d in result.errors] == [INVALID_AMOUNT]
        assert restored.ledger.get_month(2025, 0).closing_balance == Decimal("1000.00")

    def test_missing_days_key(self):
        data = snapshot_to_dict(_snapshot())
        del data["ledger"]["2025"]["0"]["days"]
        restored = snapshot_from_dict(data)
        assert restored.ledger.get_month(2025, 0).days is None

    def test_missing_day_balances_repaired_by_engine(self):
        data = snapshot_to_dict(_snapshot())
        for month in data["ledger"]["2025"].values():
            month.pop("dayBalances", None)
        restored = snapshot_from_dict(data)
        engine = BalancePropagationEngine(restored.ledger)

        assert restored.ledger.get_month(2025, 0).days[15].balance is None
        assert not engine.validate_integrity().valid

        engine.fix_inconsistencies()
        assert engine.get_year_end_balance(2025) == Decimal("250.00")
        assert engine.validate_integrity().valid

    def test_empty_document(self):
        restored = snapshot_from_dict({})
        assert len(restored.ledger) == 0
        assert len(restored.rules) == 0

    @pytest.mark.parametrize("mutate", [
        lambda d: d["ledger"]["2025"]["0"]["days"]["1"][0].update(kind="bonus"),
        lambda d: d["ledger"]["2025"]["0"]["days"]["1"][0].update(date="2025-02-30"),
        lambda d: d["ledger"]["2025"]["0"]["days"]["1"][0].update(date="2025-01-02"),
        lambda d: d["ledger"]["2025"].update({"12": {}}),
        lambda d: d["rules"]["rent"].update(dayOfMonth=40),
        lambda d: d["rules"]["rent"].update(lifetime={"type": "fixed_count", "remaining": -1}),
        lambda d: d["rules"]["rent"].update(lifetime={"type": "forever"}),
        lambda d: d["rules"]["rent"].update(isActive="false"),
        lambda d: d["rules"]["rent"].update(isActive=0),
        lambda d: d["materialized"][0].pop("ruleId"),
        lambda d: d.update(version=99),
    ])
    def test_structural_errors(self, mutate):
        data = snapshot_to_dict(_snapshot())
        mutate(data)
        with pytest.raises(PersistenceError):
            snapshot_from_dict(data)

    def test_duplicate_transaction_ids(self):
        data = snapshot_to_dict(_snapshot())
        days = data["ledger"]["2025"]["0"]["days"]
        days["1"].append(dict(days["1"][0]))
        with pytest.raises(PersistenceError, match="Duplicate"):
            snapshot_from_dict(data)


class TestInMemoryStore:
    """In-memory store."""

    def test_empty_store_loads_none(self):
        assert InMemoryLedgerStore().load_ledger() is None

    def test_save_and_load(self):
        store = InMemoryLedgerStore()
        store.save_ledger(_snapshot())
        assert store.save_count == 1
        loaded = store.load_ledger()
        assert loaded.ledger.get_month(2025, 0).closing_balance == Decimal("700.00")

    def test_loads_are_independent(self):
        store = InMemoryLedgerStore()
        store.save_ledger(_snapshot())
        first = store.load_ledger()
        first.ledger.add_transaction(credit(2025, 5, 1, "1"))
        assert len(store.load_ledger().ledger) == 3

    def test_implements_protocol(self):
        assert isinstance(InMemoryLedgerStore(), LedgerStore)
        assert isinstance(JsonFileLedgerStore("x.json"), LedgerStore)


class TestJsonFileStore:
    """JSON file store."""

    def test_missing_file_loads_none(self, tmp_path):
        assert JsonFileLedgerStore(tmp_path / "ledger.json").load_ledger() is None

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "ledger.json"
        store = JsonFileLedgerStore(path)
        store.save_ledger(_snapshot())
        assert path.exists()
        loaded = JsonFileLedgerStore(path).load_ledger()
        assert loaded.ledger.get_month(2025, 1).closing_balance == Decimal("250.00")

    def test_no_temp_files_left(self, tmp_path):
        store = JsonFileLedgerStore(tmp_path / "ledger.json")
        store.save_ledger(_snapshot())
        store.save_ledger(_snapshot())
        assert [p.name for p in tmp_path.iterdir()] == ["ledger.json"]

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError, match="Corrupt"):
            JsonFileLedgerStore(path).load_ledger()
