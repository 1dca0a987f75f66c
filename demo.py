#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Daybook Step by Step

A pedagogical walkthrough of the personal ledger. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - The empty ledger, first entries, month balances
  4-5:  Continuity   - Year-end backward scan, inheritance into next year
  6-7:  Recurring    - Rules, month-end clamping, limited lifetimes
  8-9:  Safety       - Duplicate submissions, editing the past
  10:   Persistence  - Save, reload, carry on

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
    python demo.py --quick --file /tmp/daybook.json
"""

from dataclasses import dataclass
from decimal import Decimal
import argparse
import sys
import tempfile
from pathlib import Path

from daybook import (
    LedgerService, LedgerDate, EntryKind, EntryOrigin, ExecuteResult,
    FixedCount, JsonFileLedgerStore, new_transaction, new_rule,
    upcoming_dates, month_label,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    year: int = 2025
    salary: Decimal = Decimal("3000.00")
    opening_deposit: Decimal = Decimal("1000.00")
    groceries: Decimal = Decimal("300.00")
    rent: Decimal = Decimal("1200.00")
    tv_instalment: Decimal = Decimal("99.90")
    tv_instalments: int = 3


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def print_months(service: LedgerService):
    for month in service.ledger.iter_months():
        print(f"  {month_label(month.year, month.month)}  "
              f"open {month.opening_balance:>10}  close {month.closing_balance:>10}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_empty_ledger(store: JsonFileLedgerStore) -> LedgerService:
    step_header(1, "The Empty Ledger",
        "A ledger is a tree of years, months and days holding dated entries.")

    print("""
    Three entry kinds move the balance:

    1. CREDIT            - money in  (+)
    2. DEBIT             - money out (-)
    3. DAILY_ADJUSTMENT  - a quick daily expense (-)

    Months are 0-indexed: month 0 is January.
    """)

    print(">>> service = LedgerService(store=JsonFileLedgerStore(path))")
    service = LedgerService(store=store, verbose=True)
    print(f"Entries recorded:   {len(service.ledger)}")
    print(f"Balance Jan {CONFIG.year}:   {service.get_balance(CONFIG.year, 0)}")
    return service


def step_02_first_entries(service: LedgerService) -> LedgerService:
    step_header(2, "First Entries",
        "Each accepted entry triggers a recalculation and a save.")

    print(">>> service.record_manual_transaction(credit on Jan 1)")
    service.record_manual_transaction(new_transaction(
        CONFIG.year, 0, 1, EntryKind.CREDIT, CONFIG.opening_deposit, "deposit"))
    print(">>> service.record_manual_transaction(debit on Jan 15)")
    service.record_manual_transaction(new_transaction(
        CONFIG.year, 0, 15, EntryKind.DEBIT, CONFIG.groceries, "groceries"))
    print(">>> service.record_manual_transaction(quick entry on Jan 20)")
    service.record_manual_transaction(new_transaction(
        CONFIG.year, 0, 20, EntryKind.DAILY_ADJUSTMENT, "12.50", "coffee",
        origin=EntryOrigin.QUICK_ENTRY))

    section_header("Day Balances")
    for day in service.ledger.get_month(CONFIG.year, 0).iter_days():
        print(f"  day {day.day:>2}: {day.balance}")
    return service


def step_03_month_balances(service: LedgerService) -> LedgerService:
    step_header(3, "Month Balances",
        "A month with nothing recorded carries the last known balance.")

    for month in range(3):
        print(f"get_balance({CONFIG.year}, {month}) = {service.get_balance(CONFIG.year, month)}")
    totals = service.monthly_totals(CONFIG.year, 0)
    print(f"\nJanuary: credits {totals.credits}, debits {totals.debits}, "
          f"daily {totals.daily_adjustments}, net {totals.net}")
    return service


# ============================================================================
# PHASE 2: CONTINUITY (Steps 4-5)
# ============================================================================

def step_04_year_end(service: LedgerService) -> LedgerService:
    step_header(4, "Year-End Balance",
        "The year ends on the last day that carries a balance.")

    print("""
    The year-end balance is found by scanning backwards from December 31st
    to the first day holding a recorded balance. Empty months are skipped.
    """)
    print(f"get_year_end_balance({CONFIG.year}) = {service.get_year_end_balance(CONFIG.year)}")
    return service


def step_05_inheritance(service: LedgerService) -> LedgerService:
    step_header(5, "Inheritance",
        "A new year opens with the previous year's closing balance.")

    print(f"get_inherited_balance({CONFIG.year + 1}) = "
          f"{service.get_inherited_balance(CONFIG.year + 1)}")
    service.record_manual_transaction(new_transaction(
        CONFIG.year + 1, 1, 3, EntryKind.DEBIT, "50", "books"))
    section_header("Months")
    print_months(service)
    return service


# ============================================================================
# PHASE 3: RECURRING (Steps 6-7)
# ============================================================================

def step_06_recurring_rules(service: LedgerService) -> LedgerService:
    step_header(6, "Recurring Rules",
        "A day-31 rule lands on the last day of shorter months.")

    service.add_rule(new_rule(31, EntryKind.CREDIT, CONFIG.salary,
                              LedgerDate(CONFIG.year, 1, 1), "salary", rule_id="salary"))
    service.add_rule(new_rule(5, EntryKind.DEBIT, CONFIG.rent,
                              LedgerDate(CONFIG.year, 1, 1), "rent", rule_id="rent"))

    print("Projected salary dates:")
    for when in upcoming_dates(service.rules.get("salary"), CONFIG.year, 1, 4):
        print(f"  {when}")

    section_header("Materialize February to April")
    for month in range(1, 4):
        service.materialize_all_for_month(CONFIG.year, month)
    print_months(service)
    return service


def step_07_lifetimes(service: LedgerService) -> LedgerService:
    step_header(7, "Limited Lifetimes",
        "A fixed-count rule stops by itself once its instalments are paid.")

    rule = service.add_rule(new_rule(
        10, EntryKind.DEBIT, CONFIG.tv_instalment, LedgerDate(CONFIG.year, 1, 1), "tv",
        lifetime=FixedCount(CONFIG.tv_instalments), rule_id="tv"))
    for month in range(1, 6):
        outcome = service.materialize_recurring_for_month("tv", CONFIG.year, month)
        print(f"  {month_label(CONFIG.year, month)}: {outcome.result.name}")
    print(f"\nRule active: {rule.is_active}, lifetime: {rule.lifetime}")
    return service


# ============================================================================
# PHASE 4: SAFETY (Steps 8-9)
# ============================================================================

def step_08_duplicates(service: LedgerService) -> LedgerService:
    step_header(8, "Duplicate Submissions",
        "A double click, a retry or a second materialization never applies twice.")

    entry = new_transaction(CONFIG.year, 4, 2, EntryKind.DEBIT, "80", "pharmacy")
    for attempt in range(3):
        result = service.record_manual_transaction(entry).result
        print(f"Attempt {attempt + 1}: {result.name}")

    again = new_transaction(CONFIG.year, 4, 2, EntryKind.DEBIT, "80.00", "pharmacy")
    print(f"Same content, new object: {service.record_manual_transaction(again).result.name}")

    rerun = service.materialize_recurring_for_month("rent", CONFIG.year, 1)
    print(f"Rent for February again: {rerun.result.name}")
    return service


def step_09_edit_the_past(service: LedgerService) -> LedgerService:
    step_header(9, "Editing the Past",
        "A backdated entry flows through every later month and year.")

    before = service.get_inherited_balance(CONFIG.year + 1)
    outcome = service.record_manual_transaction(new_transaction(
        CONFIG.year, 0, 25, EntryKind.DEBIT, "200", "forgotten bill"))
    after = service.get_inherited_balance(CONFIG.year + 1)
    print(f"Months recalculated: {[month_label(y, m) for y, m in outcome.recalculation.affected_months]}")
    print(f"Inherited into {CONFIG.year + 1}: {before} -> {after}")
    print(f"Integrity: {service.engine.validate_integrity().valid}")
    return service


# ============================================================================
# PHASE 5: PERSISTENCE (Step 10)
# ============================================================================

def step_10_reload(store: JsonFileLedgerStore) -> LedgerService:
    step_header(10, "Save and Reload",
        "The ledger, rules and materialization records survive a restart.")

    service = LedgerService.load(store, verbose=True)
    print(f"Entries after reload: {len(service.ledger)}")
    outcomes = service.materialize_all_for_month(CONFIG.year, 1)
    already = sum(o.result is ExecuteResult.ALREADY_APPLIED for o in outcomes)
    print(f"February rules re-run after reload: {already} already applied")
    print(f"Year-end {CONFIG.year}: {service.get_year_end_balance(CONFIG.year)}")
    return service


def main():
    parser = argparse.ArgumentParser(description="Daybook interactive tutorial")
    parser.add_argument("--quick", action="store_true", help="run without pausing")
    parser.add_argument("--file", type=Path, help="ledger file (default: temporary)")
    args = parser.parse_args()

    print("=" * 70)
    print("       DAYBOOK - INTERACTIVE TUTORIAL")
    print("=" * 70)

    with tempfile.TemporaryDirectory() as tmp:
        path = args.file or Path(tmp) / "daybook.json"
        store = JsonFileLedgerStore(path)

        service = step_01_empty_ledger(store)
        wait_for_enter()
        for step in (step_02_first_entries, step_03_month_balances, step_04_year_end,
                     step_05_inheritance, step_06_recurring_rules, step_07_lifetimes,
                     step_08_duplicates, step_09_edit_the_past):
            service = step(service)
            wait_for_enter()
        step_10_reload(store)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See daybook/service.py for the full operation set
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
