"""Enumeration types for contract engine entities."""

from enum import Enum


class CaisseType(str, Enum):
    STANDARD = "STANDARD"
    STANDARD_CHARITABLE = "STANDARD_CHARITABLE"
    JOURNALIERE = "JOURNALIERE"
    LIBRE = "LIBRE"
    CREDIT = "CREDIT"


class ContractStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    LATE_NO_PENALTY = "LATE_NO_PENALTY"
    LATE_WITH_PENALTY = "LATE_WITH_PENALTY"
    DEFAULTED_AFTER_J12 = "DEFAULTED_AFTER_J12"
    EARLY_WITHDRAW_REQUESTED = "EARLY_WITHDRAW_REQUESTED"
    FINAL_REFUND_PENDING = "FINAL_REFUND_PENDING"
    EARLY_REFUND_PENDING = "EARLY_REFUND_PENDING"
    RESCINDED = "RESCINDED"
    CLOSED = "CLOSED"


class RefundType(str, Enum):
    EARLY = "EARLY"
    FINAL = "FINAL"


class RefundStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    ARCHIVED = "ARCHIVED"


class PaymentMode(str, Enum):
    CASH = "CASH"
    AIRTEL_MONEY = "AIRTEL_MONEY"
    MOBICASH = "MOBICASH"
    BANK_TRANSFER = "BANK_TRANSFER"


class LatenessTier(str, Enum):
    ON_TIME = "ON_TIME"
    GRACE = "GRACE"
    PENALTY = "PENALTY"
    DEFAULT = "DEFAULT"


class CreditType(str, Enum):
    SPECIALE = "SPECIALE"
    AIDE = "AIDE"
    FIXE = "FIXE"
