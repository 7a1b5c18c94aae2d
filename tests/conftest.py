"""Pytest configuration and fixtures."""

from datetime import date
from decimal import Decimal
from typing import Callable

import pytest

from caisse_engine.clock import FixedClock
from caisse_engine.engine.state import installment_due_dates
from caisse_engine.models import (
    BonusSettings,
    CaisseType,
    Contract,
    Payment,
    PenaltyRules,
)
from caisse_engine.services import ContractService
from caisse_engine.sinks import ConsoleSink
from caisse_engine.store import InMemoryContractStore


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def start_date() -> date:
    """First due date of the sample contract."""
    return date(2024, 1, 1)


@pytest.fixture
def standard_settings() -> BonusSettings:
    """Active STANDARD settings: bonus from M4, 1% per late day."""
    return BonusSettings.from_dict(
        {
            "id": "std-v1",
            "caisseType": "STANDARD",
            "bonusTable": {"M4": 1.5, "M5": 2, "M6": 2.5},
            "isActive": True,
            "penaltyRules": {"day4To12": {"perDay": 1}},
        }
    )


@pytest.fixture
def sample_contract(start_date: date) -> Contract:
    """Six-month STANDARD contract of 50 000 per month."""
    return Contract(
        contract_id="ctr-test-001",
        member_id="mbr-test-001",
        caisse_type=CaisseType.STANDARD,
        monthly_amount=Decimal("50000"),
        duration_months=6,
        start_date=start_date,
        settings_id_used_at_creation="std-v1",
    )


@pytest.fixture
def make_payment() -> Callable[..., Payment]:
    """Factory for a ledger entry, paid on its due date by default."""

    def _make(contract: Contract, index: int, paid_at: date | None = None) -> Payment:
        due_at = installment_due_dates(contract)[index]
        return Payment(
            contract_id=contract.contract_id,
            due_month_index=index,
            due_at=due_at,
            paid_at=paid_at or due_at,
            amount=contract.monthly_amount,
        )

    return _make


@pytest.fixture
def penalty_rules() -> PenaltyRules:
    """1% of the monthly amount per late day."""
    return PenaltyRules(per_day_percent=Decimal("1"))


@pytest.fixture
def store(standard_settings: BonusSettings) -> InMemoryContractStore:
    """Fresh store with STANDARD settings active."""
    store = InMemoryContractStore()
    store.save_settings(standard_settings)
    return store


@pytest.fixture
def clock(start_date: date) -> FixedClock:
    """Clock pinned to the sample start date."""
    return FixedClock(start_date)


@pytest.fixture
def notifier() -> ConsoleSink:
    """Console sink that records every notification."""
    return ConsoleSink(pretty=False)


@pytest.fixture
def service(store: InMemoryContractStore, clock: FixedClock, notifier: ConsoleSink) -> ContractService:
    """Contract service over the in-memory store."""
    return ContractService(store, clock, notifier)
