"""PostgreSQL contract store (psycopg 3).

Writes that must be all-or-nothing run inside ``conn.transaction()``:
activating a settings version switches the current one off and the
target on in the same transaction, and the primary key on ``(contract_id, due_month_index)`` rejects a second payment
for the same installment.
"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from caisse_engine.config import PostgresConfig
from caisse_engine.exceptions import (
    ConfigurationError,
    DuplicateInstallmentError,
    EntityNotFoundError,
    InvalidContractParametersError,
)
from caisse_engine.models import (
    BonusSettings,
    CaisseType,
    Contract,
    ContractStatus,
    Payment,
    PaymentMode,
    PenaltyRules,
    Refund,
    RefundStatus,
    RefundType,
)

logger = logging.getLogger(__name__)

SCHEMA_DDL = [
    """
    CREATE TABLE IF NOT EXISTS bonus_settings (
        id TEXT PRIMARY KEY,
        caisse_type TEXT NOT NULL,
        bonus_table JSONB NOT NULL DEFAULT '{}',
        penalty_rules JSONB,
        is_active BOOLEAN NOT NULL DEFAULT FALSE,
        effective_at TIMESTAMPTZ
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS bonus_settings_one_active
        ON bonus_settings (caisse_type) WHERE is_active
    """,
    """
    CREATE TABLE IF NOT EXISTS contracts (
        id TEXT PRIMARY KEY,
        member_id TEXT NOT NULL,
        caisse_type TEXT NOT NULL,
        monthly_amount NUMERIC(15, 2) NOT NULL CHECK (monthly_amount > 0),
        duration_months INTEGER NOT NULL CHECK (duration_months > 0),
        start_date DATE NOT NULL,
        status TEXT NOT NULL,
        settings_id TEXT REFERENCES bonus_settings (id),
        early_withdraw_requested_at DATE,
        rescinded_at DATE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        contract_id TEXT NOT NULL REFERENCES contracts (id),
        due_month_index INTEGER NOT NULL,
        due_at DATE NOT NULL,
        paid_at DATE,
        amount NUMERIC(15, 2) NOT NULL,
        penalty_applied NUMERIC(15, 2),
        mode TEXT NOT NULL,
        recorded_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        PRIMARY KEY (contract_id, due_month_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS refunds (
        id TEXT PRIMARY KEY,
        contract_id TEXT NOT NULL REFERENCES contracts (id),
        refund_type TEXT NOT NULL,
        amount_nominal BIGINT NOT NULL,
        amount_bonus BIGINT NOT NULL,
        status TEXT NOT NULL,
        deadline_at DATE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
]


def _rules_to_json(rules: PenaltyRules | None) -> Jsonb | None:
    if rules is None:
        return None
    data: dict[str, Any] = {}
    if rules.per_day_percent is not None:
        data["perDay"] = str(rules.per_day_percent)
    if rules.steps:
        data["steps"] = [
            {"from": s.from_day, "to": s.to_day, "rate": str(s.amount_per_day)} for s in rules.steps
        ]
    return Jsonb(data)


def _row_to_settings(row: dict[str, Any]) -> BonusSettings:
    return BonusSettings.from_dict(
        {
            "id": row["id"],
            "caisseType": row["caisse_type"],
            "bonusTable": {int(k): v for k, v in (row["bonus_table"] or {}).items()},
            "penaltyRules": row["penalty_rules"],
            "isActive": row["is_active"],
            "effectiveAt": row["effective_at"],
        }
    )


def _row_to_contract(row: dict[str, Any]) -> Contract:
    return Contract(
        contract_id=row["id"],
        member_id=row["member_id"],
        caisse_type=CaisseType(row["caisse_type"]),
        monthly_amount=Decimal(row["monthly_amount"]),
        duration_months=row["duration_months"],
        start_date=row["start_date"],
        status=ContractStatus(row["status"]),
        settings_id_used_at_creation=row["settings_id"],
        early_withdraw_requested_at=row["early_withdraw_requested_at"],
        rescinded_at=row["rescinded_at"],
        created_at=row["created_at"],
    )


def _row_to_payment(row: dict[str, Any]) -> Payment:
    penalty = row["penalty_applied"]
    return Payment(
        contract_id=row["contract_id"],
        due_month_index=row["due_month_index"],
        due_at=row["due_at"],
        paid_at=row["paid_at"],
        amount=Decimal(row["amount"]),
        penalty_applied=Decimal(penalty) if penalty is not None else None,
        mode=PaymentMode(row["mode"]),
        recorded_at=row["recorded_at"],
    )


def _row_to_refund(row: dict[str, Any]) -> Refund:
    return Refund(
        refund_id=row["id"],
        contract_id=row["contract_id"],
        refund_type=RefundType(row["refund_type"]),
        amount_nominal=row["amount_nominal"],
        amount_bonus=row["amount_bonus"],
        status=RefundStatus(row["status"]),
        deadline_at=row["deadline_at"],
        created_at=row["created_at"],
    )


class PostgresContractStore:
    """Contract store backed by PostgreSQL."""

    def __init__(self, config: PostgresConfig | str) -> None:
        """Initialize the store.

        Parameters
        ----------
        config : PostgresConfig | str
            Connection configuration or a libpq connection string.
        """
        if isinstance(config, PostgresConfig):
            config = config.connection_string
        self.conninfo = config
        self._conn: psycopg.Connection | None = None

    @property
    def conn(self) -> psycopg.Connection:
        if self._conn is None or self._conn.closed:
            self._conn = psycopg.connect(self.conninfo, autocommit=True, row_factory=dict_row)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def create_schema(self) -> None:
        """Create tables and the one-active-version index if missing."""
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                for statement in SCHEMA_DDL:
                    cur.execute(statement)
        logger.info("Contract schema ready")

    def _fetch_one(self, query: str, params: tuple) -> dict[str, Any] | None:
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchone()

    def _fetch_all(self, query: str, params: tuple) -> list[dict[str, Any]]:
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    # Settings

    def save_settings(self, settings: BonusSettings) -> None:
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO bonus_settings "
                    "(id, caisse_type, bonus_table, penalty_rules, is_active, effective_at) "
                    "VALUES (%s, %s, %s, %s, FALSE, %s)",
                    (
                        settings.settings_id,
                        settings.caisse_type.value,
                        Jsonb({str(k): str(v) for k, v in settings.bonus_table.items()}),
                        _rules_to_json(settings.penalty_rules),
                        settings.effective_at,
                    ),
                )
        if settings.is_active:
            self.activate_settings(settings.settings_id)

    def get_settings(self, settings_id: str) -> BonusSettings:
        row = self._fetch_one("SELECT * FROM bonus_settings WHERE id = %s", (settings_id,))
        if row is None:
            raise EntityNotFoundError(f"Settings {settings_id} not found")
        return _row_to_settings(row)

    def get_active_settings(self, caisse_type: CaisseType) -> BonusSettings | None:
        row = self._fetch_one(
            "SELECT * FROM bonus_settings WHERE caisse_type = %s AND is_active",
            (caisse_type.value,),
        )
        return _row_to_settings(row) if row else None

    def activate_settings(self, settings_id: str) -> BonusSettings:
        """Activate one version and deactivate its siblings atomically.

        The one-active index is checked row by row, so the current version
        is switched off before the target is switched on.
        """
        try:
            with self.conn.transaction():
                with self.conn.cursor() as cur:
                    cur.execute(
                        "SELECT caisse_type FROM bonus_settings WHERE id = %s FOR UPDATE",
                        (settings_id,),
                    )
                    row = cur.fetchone()
                    if row is None:
                        raise EntityNotFoundError(f"Settings {settings_id} not found")
                    caisse_type = row["caisse_type"]
                    cur.execute(
                        "UPDATE bonus_settings SET is_active = FALSE "
                        "WHERE caisse_type = %s AND is_active AND id <> %s",
                        (caisse_type, settings_id),
                    )
                    cur.execute(
                        "UPDATE bonus_settings SET is_active = TRUE WHERE id = %s",
                        (settings_id,),
                    )
        except psycopg.errors.UniqueViolation as e:
            raise ConfigurationError(
                f"Settings {settings_id} could not be activated: another version is active"
            ) from e
        logger.info("Activated settings %s for %s", settings_id, caisse_type)
        return self.get_settings(settings_id)

    # Contracts

    def add_contract(self, contract: Contract) -> None:
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO contracts (id, member_id, caisse_type, monthly_amount, "
                    "duration_months, start_date, status, settings_id, created_at) "
                    "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)",
                    (
                        contract.contract_id,
                        contract.member_id,
                        contract.caisse_type.value,
                        contract.monthly_amount,
                        contract.duration_months,
                        contract.start_date,
                        contract.status.value,
                        contract.settings_id_used_at_creation,
                        contract.created_at or datetime.now(),
                    ),
                )

    def get_contract(self, contract_id: str) -> Contract:
        row = self._fetch_one("SELECT * FROM contracts WHERE id = %s", (contract_id,))
        if row is None:
            raise EntityNotFoundError(f"Contract {contract_id} not found")
        return _row_to_contract(row)

    def update_contract(self, contract: Contract) -> None:
        """Persist status and administrative markers; terms are never rewritten."""
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                cur.execute(
                    "UPDATE contracts SET status = %s, early_withdraw_requested_at = %s, "
                    "rescinded_at = %s WHERE id = %s AND start_date = %s",
                    (
                        contract.status.value,
                        contract.early_withdraw_requested_at,
                        contract.rescinded_at,
                        contract.contract_id,
                        contract.start_date,
                    ),
                )
                if cur.rowcount != 1:
                    raise InvalidContractParametersError(
                        f"Contract {contract.contract_id} not found or start_date changed"
                    )

    # Payment ledger

    def get_payments(self, contract_id: str) -> list[Payment]:
        rows = self._fetch_all(
            "SELECT * FROM payments WHERE contract_id = %s ORDER BY due_month_index",
            (contract_id,),
        )
        return [_row_to_payment(row) for row in rows]

    def record_payment(
        self,
        contract_id: str,
        due_month_index: int,
        paid_at: date,
        amount: Decimal,
        penalty_applied: Decimal | None = None,
        *,
        due_at: date | None = None,
        mode: PaymentMode = PaymentMode.CASH,
        recorded_at: datetime | None = None,
    ) -> Payment:
        if due_at is None:
            raise InvalidContractParametersError("due_at is required to record a payment")
        try:
            with self.conn.transaction():
                with self.conn.cursor() as cur:
                    cur.execute(
                        "INSERT INTO payments (contract_id, due_month_index, due_at, paid_at, "
                        "amount, penalty_applied, mode, recorded_at) "
                        "VALUES (%s, %s, %s, %s, %s, %s, %s, COALESCE(%s, now())) "
                        "RETURNING *",
                        (
                            contract_id,
                            due_month_index,
                            due_at,
                            paid_at,
                            amount,
                            penalty_applied,
                            mode.value,
                            recorded_at,
                        ),
                    )
                    row = cur.fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise DuplicateInstallmentError(contract_id, due_month_index) from e
        return _row_to_payment(row)

    # Refunds

    def save_refund(
        self,
        contract_id: str,
        refund_type: RefundType,
        amount_nominal: int,
        amount_bonus: int,
        *,
        deadline_at: date | None = None,
        created_at: datetime | None = None,
    ) -> str:
        refund_id = str(uuid.uuid4())
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO refunds (id, contract_id, refund_type, amount_nominal, "
                    "amount_bonus, status, deadline_at, created_at) "
                    "VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
                    (
                        refund_id,
                        contract_id,
                        refund_type.value,
                        amount_nominal,
                        amount_bonus,
                        RefundStatus.PENDING.value,
                        deadline_at,
                        created_at or datetime.now(),
                    ),
                )
        return refund_id

    def get_refunds(self, contract_id: str) -> list[Refund]:
        rows = self._fetch_all(
            "SELECT * FROM refunds WHERE contract_id = %s ORDER BY created_at", (contract_id,)
        )
        return [_row_to_refund(row) for row in rows]

    def update_refund_status(self, contract_id: str, refund_id: str, status: RefundStatus) -> Refund:
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                cur.execute(
                    "UPDATE refunds SET status = %s WHERE id = %s AND contract_id = %s RETURNING *",
                    (status.value, refund_id, contract_id),
                )
                row = cur.fetchone()
        if row is None:
            raise EntityNotFoundError(f"Refund {refund_id} not found for contract {contract_id}")
        return _row_to_refund(row)
