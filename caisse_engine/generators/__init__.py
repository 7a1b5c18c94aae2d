"""Synthetic contract and ledger generators."""

from caisse_engine.generators.base import BaseGenerator
from caisse_engine.generators.contracts import ContractGenerator, PaymentBehavior, PaymentProfile

__all__ = ["BaseGenerator", "ContractGenerator", "PaymentBehavior", "PaymentProfile"]
