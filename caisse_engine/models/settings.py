"""Versioned bonus settings records."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from caisse_engine.exceptions import InvalidContractParametersError
from caisse_engine.models.enums import CaisseType


@dataclass(frozen=True)
class PenaltyStep:
    """Per-day penalty amount for a band of late days.

    Day offsets count from the end of the grace window: 1 is J+4 and
    9 is J+12.
    """

    from_day: int
    to_day: int
    amount_per_day: Decimal

    def __post_init__(self) -> None:
        if self.from_day < 1 or self.to_day < self.from_day:
            raise InvalidContractParametersError(
                f"Invalid penalty step range {self.from_day}..{self.to_day}"
            )
        if self.amount_per_day < 0:
            raise InvalidContractParametersError("Penalty step amount cannot be negative")


@dataclass(frozen=True)
class PenaltyRules:
    """Penalty configuration for installments paid J+4 to J+12.

    Either a percentage of the monthly amount charged per late day, or a
    list of day bands with a fixed amount per day. Bands win when both are
    set.
    """

    per_day_percent: Decimal | None = None
    steps: tuple[PenaltyStep, ...] = ()

    def __post_init__(self) -> None:
        if self.per_day_percent is not None and self.per_day_percent < 0:
            raise InvalidContractParametersError("Penalty rate cannot be negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PenaltyRules":
        """Build rules from a stored ``day4To12`` mapping.

        Accepts ``{"perDay": 1.5}`` or
        ``{"steps": [{"from": 1, "to": 3, "rate": 500}, ...]}``.
        """
        if "day4To12" in data:
            data = data["day4To12"]

        steps = tuple(
            PenaltyStep(
                from_day=int(step["from"]),
                to_day=int(step["to"]),
                amount_per_day=Decimal(str(step["rate"])),
            )
            for step in data.get("steps") or []
        )
        per_day = data.get("perDay")
        return cls(
            per_day_percent=Decimal(str(per_day)) if per_day is not None else None,
            steps=steps,
        )


@dataclass(frozen=True)
class BonusSettings:
    """Versioned bonus configuration for one caisse type.

    ``bonus_table`` maps 0-based month indices to a bonus percentage. A
    record is read-only once created; activation state is owned by the
    settings store.
    """

    settings_id: str
    caisse_type: CaisseType
    bonus_table: dict[int, Decimal] = field(default_factory=dict)
    is_active: bool = False
    effective_at: datetime | None = None
    penalty_rules: PenaltyRules | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BonusSettings":
        """Build settings from a stored document.

        Bonus keys may be month labels (``"M4"``, 1-based) or integer
        month indices (0-based).
        """
        table: dict[int, Decimal] = {}
        for key, rate in (data.get("bonusTable") or {}).items():
            if isinstance(key, str) and key.upper().startswith("M"):
                index = int(key[1:]) - 1
            else:
                index = int(key)
            table[index] = Decimal(str(rate))

        rules = data.get("penaltyRules")
        effective_at = data.get("effectiveAt")
        if isinstance(effective_at, str):
            effective_at = datetime.fromisoformat(effective_at)

        return cls(
            settings_id=data["id"],
            caisse_type=CaisseType(data["caisseType"]),
            bonus_table=table,
            is_active=bool(data.get("isActive", False)),
            effective_at=effective_at,
            penalty_rules=PenaltyRules.from_dict(rules) if rules else None,
        )
