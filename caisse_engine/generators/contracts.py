"""Savings contract and payment ledger generators."""

from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterator

from dateutil.relativedelta import relativedelta

from caisse_engine.engine.penalty import DEFAULT_AFTER_DAYS, GRACE_DAYS, compute_penalty
from caisse_engine.engine.state import installment_due_dates
from caisse_engine.models import CaisseType, Contract, Payment, PaymentMode, PenaltyRules
from caisse_engine.generators.base import BaseGenerator


class PaymentProfile(str, Enum):
    """How a synthetic member pays their installments."""

    PUNCTUAL = "punctual"
    GRACE_LATE = "grace_late"
    PENALTY_LATE = "penalty_late"
    DEFAULTER = "defaulter"


class ContractGenerator(BaseGenerator):
    """Generate plausible savings contracts.

    Distribution of caisse types:
    - STANDARD: ~50%
    - JOURNALIERE: ~20%
    - LIBRE: ~15%
    - STANDARD_CHARITABLE: ~10%
    - CREDIT: ~5%
    """

    CAISSE_TYPES = [
        CaisseType.STANDARD,
        CaisseType.JOURNALIERE,
        CaisseType.LIBRE,
        CaisseType.STANDARD_CHARITABLE,
        CaisseType.CREDIT,
    ]
    CAISSE_TYPE_WEIGHTS = [0.50, 0.20, 0.15, 0.10, 0.05]

    DURATIONS = [6, 9, 12, 18, 24]

    def generate(
        self,
        caisse_type: CaisseType | None = None,
        start_date: date | None = None,
        settings_id: str | None = None,
    ) -> Contract:
        """Generate a single contract.

        Parameters
        ----------
        caisse_type : CaisseType | None
            Product variant; drawn from the type distribution when omitted.
        start_date : date | None
            First due date; a first-of-month date in the last two years when
            omitted.
        settings_id : str | None
            Settings version to pin on the contract.

        Returns
        -------
        Contract
            Generated contract in DRAFT status.
        """
        if caisse_type is None:
            caisse_type = self.rng.choices(self.CAISSE_TYPES, weights=self.CAISSE_TYPE_WEIGHTS, k=1)[0]
        if start_date is None:
            start_date = self.fake.date_between(start_date="-2y", end_date="today").replace(day=1)

        return Contract(
            contract_id=self.fake.uuid4(),
            member_id=f"MBR-{self.fake.unique.random_number(digits=6, fix_len=True)}",
            caisse_type=caisse_type,
            monthly_amount=self._monthly_amount(caisse_type),
            duration_months=self.rng.choice(self.DURATIONS),
            start_date=start_date,
            settings_id_used_at_creation=settings_id,
        )

    def generate_batch(self, count: int, **kwargs) -> Iterator[Contract]:
        for _ in range(count):
            yield self.generate(**kwargs)

    def _monthly_amount(self, caisse_type: CaisseType) -> Decimal:
        # Amounts in XAF, multiples of 5000
        if caisse_type == CaisseType.LIBRE:
            return Decimal(self.rng.randint(20, 100) * 5000)
        if caisse_type == CaisseType.JOURNALIERE:
            # 30 daily contributions of 500-5000
            return Decimal(self.rng.randint(1, 10) * 500 * 30)
        return Decimal(self.rng.randint(2, 40) * 5000)


class PaymentBehavior(BaseGenerator):
    """Generate a payment ledger for a contract following a payment profile.

    Only installments due on or before ``as_of`` are considered, and only
    payments made on or before ``as_of`` are returned.
    """

    MODES = list(PaymentMode)
    MODE_WEIGHTS = [0.35, 0.35, 0.20, 0.10]

    def __init__(
        self,
        seed: int | None = None,
        penalty_rules: PenaltyRules | None = None,
    ) -> None:
        super().__init__(seed)
        self.penalty_rules = penalty_rules

    def _delay(self, profile: PaymentProfile) -> int:
        if profile == PaymentProfile.GRACE_LATE:
            return self.rng.randint(1, GRACE_DAYS)
        if profile == PaymentProfile.PENALTY_LATE:
            return self.rng.randint(GRACE_DAYS + 1, DEFAULT_AFTER_DAYS)
        return -self.rng.randint(0, 2)

    def generate(
        self,
        contract: Contract,
        profile: PaymentProfile,
        as_of: date,
        paid_installments: int | None = None,
    ) -> list[Payment]:
        """Generate ledger entries for ``contract``.

        Parameters
        ----------
        contract : Contract
            Contract to pay.
        profile : PaymentProfile
            Payment habit to simulate.
        as_of : date
            Reference date; nothing is paid after it.
        paid_installments : int | None
            For ``DEFAULTER``, how many installments are paid punctually
            before the member stops (default: about half of those due).

        Returns
        -------
        list[Payment]
            Payments ordered by installment index.
        """
        due_dates = [d for d in installment_due_dates(contract) if d <= as_of]
        if profile == PaymentProfile.DEFAULTER:
            if paid_installments is None:
                paid_installments = max(1, len(due_dates) // 2)
            due_dates = due_dates[:paid_installments]

        payments = []
        for index, due_at in enumerate(due_dates):
            delay = 0 if profile == PaymentProfile.DEFAULTER else self._delay(profile)
            paid_at = max(contract.start_date, due_at + timedelta(days=delay))
            if paid_at > as_of:
                break
            penalty = compute_penalty(due_at, paid_at, contract.monthly_amount, self.penalty_rules)
            payments.append(
                Payment(
                    contract_id=contract.contract_id,
                    due_month_index=index,
                    due_at=due_at,
                    paid_at=paid_at,
                    amount=contract.monthly_amount,
                    penalty_applied=Decimal(penalty) if penalty else None,
                    mode=self.rng.choices(self.MODES, weights=self.MODE_WEIGHTS, k=1)[0],
                )
            )
        return payments

    def default_date(self, contract: Contract, paid_installments: int) -> date:
        """First day a defaulter with ``paid_installments`` paid is in default."""
        due_at = contract.start_date + relativedelta(months=paid_installments)
        return due_at + timedelta(days=DEFAULT_AFTER_DAYS + 1)
