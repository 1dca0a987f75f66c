"""
conftest.py - Shared pytest fixtures for daybook tests

Provides common fixtures used across unit, functional and conformance tests:
- Empty ledgers, engines and rule registries
- Idempotency controllers driven by a fake clock
- Services wired to an in-memory store
"""

import pytest
from datetime import datetime

from daybook import (
    Ledger, BalancePropagationEngine, IdempotencyController, RuleRegistry,
    InMemoryLedgerStore, LedgerService,
)

from tests.entries import credit, debit
from tests.fake_clock import FakeClock


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Fresh empty ledger."""
    return Ledger("test")


@pytest.fixture
def engine(ledger):
    """Propagation engine over the empty ledger."""
    return BalancePropagationEngine(ledger, verbose=False)


@pytest.fixture
def rules():
    return RuleRegistry()


@pytest.fixture
def clock():
    """Fake clock starting 2025-01-01 12:00."""
    return FakeClock(datetime(2025, 1, 1, 12, 0, 0))


@pytest.fixture
def controller(clock):
    """Idempotency controller with default windows on the fake clock."""
    return IdempotencyController(clock=clock, verbose=False)


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def service(controller, store):
    """Service with an empty ledger, fake-clock controller and in-memory store."""
    return LedgerService(controller=controller, store=store, verbose=False)


@pytest.fixture
def january_service(service):
    """Service holding a 1000 credit on 2025-01-01 and a 300 debit on 2025-01-15."""
    service.record_manual_transaction(credit(2025, 0, 1, "1000", "salary"))
    service.record_manual_transaction(debit(2025, 0, 15, "300", "groceries"))
    return service
