"""Domain models for the contract financial engine."""

from caisse_engine.models.contract import (
    Contract,
    Installment,
    Payment,
    Refund,
    RefundAmounts,
)
from caisse_engine.models.events import ContractEvent
from caisse_engine.models.enums import (
    CaisseType,
    ContractStatus,
    CreditType,
    LatenessTier,
    PaymentMode,
    RefundStatus,
    RefundType,
)
from caisse_engine.models.schedule import (
    CreditContract,
    CreditSimulation,
    GuarantorRow,
    PlannedPayment,
    ReferenceRow,
    SavingsSchedule,
    ScheduleItem,
    ScheduleRow,
)
from caisse_engine.models.settings import BonusSettings, PenaltyRules, PenaltyStep

__all__ = [
    "BonusSettings",
    "CaisseType",
    "Contract",
    "ContractEvent",
    "ContractStatus",
    "CreditContract",
    "CreditSimulation",
    "CreditType",
    "GuarantorRow",
    "Installment",
    "LatenessTier",
    "Payment",
    "PaymentMode",
    "PenaltyRules",
    "PenaltyStep",
    "PlannedPayment",
    "ReferenceRow",
    "Refund",
    "RefundAmounts",
    "RefundStatus",
    "RefundType",
    "SavingsSchedule",
    "ScheduleItem",
    "ScheduleRow",
]
