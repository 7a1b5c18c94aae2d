"""Contract financial engine: pure computations, no I/O."""

from caisse_engine.engine.amortization import (
    amortize,
    build_amortization_schedule,
    build_custom_schedule,
    schedule_for_contract,
)
from caisse_engine.engine.bonus import BonusRate, bonus_base, compute_bonus_amount, resolve_bonus_rate
from caisse_engine.engine.credit import (
    build_guarantor_remuneration,
    build_reference_schedule,
    minimum_monthly_payment,
    simulate_custom,
    simulate_proposed,
    simulate_standard,
)
from caisse_engine.engine.penalty import (
    classify_lateness,
    compute_credit_penalty,
    compute_penalty,
    days_late,
)
from caisse_engine.engine.refund import compute_refund, refund_deadline
from caisse_engine.engine.rounding import custom_round, to_decimal
from caisse_engine.engine.schedule import build_schedule, simulate_schedule
from caisse_engine.engine.state import (
    can_transition,
    current_due_installment,
    derive_state,
    installment_due_dates,
    recompute_state,
)

__all__ = [
    "BonusRate",
    "amortize",
    "bonus_base",
    "build_amortization_schedule",
    "build_custom_schedule",
    "build_guarantor_remuneration",
    "build_reference_schedule",
    "build_schedule",
    "can_transition",
    "classify_lateness",
    "compute_bonus_amount",
    "compute_credit_penalty",
    "compute_penalty",
    "compute_refund",
    "current_due_installment",
    "custom_round",
    "days_late",
    "derive_state",
    "installment_due_dates",
    "minimum_monthly_payment",
    "recompute_state",
    "refund_deadline",
    "resolve_bonus_rate",
    "schedule_for_contract",
    "simulate_custom",
    "simulate_proposed",
    "simulate_schedule",
    "simulate_standard",
    "to_decimal",
]
