"""Contract stores implementing the engine's boundary ports."""

from caisse_engine.store.base import ContractRepository, PaymentLedger, RefundStore, SettingsReader
from caisse_engine.store.memory import InMemoryContractStore
from caisse_engine.store.postgres import PostgresContractStore

__all__ = [
    "ContractRepository",
    "InMemoryContractStore",
    "PaymentLedger",
    "PostgresContractStore",
    "RefundStore",
    "SettingsReader",
]
