"""
ORM models for the lending kernel.

Importing this package registers every table on ``Base.metadata``.
"""

from lending_kernel.models.account import Account
from lending_kernel.models.financing import Financing, FinancingStatus
from lending_kernel.models.installment import (
    OUTSTANDING_STATUSES,
    TERMINAL_STATUSES,
    Installment,
    InstallmentStatus,
)
from lending_kernel.models.investment import Investment, InvestmentStatus
from lending_kernel.models.system_setting import SystemSetting
from lending_kernel.models.transaction import (
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Account",
    "Financing",
    "FinancingStatus",
    "Installment",
    "InstallmentStatus",
    "Investment",
    "InvestmentStatus",
    "LedgerTransaction",
    "OUTSTANDING_STATUSES",
    "SystemSetting",
    "TERMINAL_STATUSES",
    "TransactionStatus",
    "TransactionType",
]
