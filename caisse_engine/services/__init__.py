"""Contract service orchestrating the engine against a store."""

from caisse_engine.services.contracts import PAYMENT_BLOCKED_STATES, ContractService, PaymentReceipt

__all__ = ["PAYMENT_BLOCKED_STATES", "ContractService", "PaymentReceipt"]
