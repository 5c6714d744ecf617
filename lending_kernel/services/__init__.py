"""
Lending kernel services -- everything that writes.

All services are flush-only and run inside ``LedgerStore.unit_of_work()``.
"""

from lending_kernel.services.credit_engine import CreditEngine
from lending_kernel.services.financing_lifecycle import FinancingLifecycleService
from lending_kernel.services.installment_engine import InstallmentEngine
from lending_kernel.services.investment_service import InvestmentService
from lending_kernel.services.system_settings import (
    SettingDefault,
    SettingsRateProvider,
    SystemSettingsService,
)

__all__ = [
    "CreditEngine",
    "FinancingLifecycleService",
    "InstallmentEngine",
    "InvestmentService",
    "SettingDefault",
    "SettingsRateProvider",
    "SystemSettingsService",
]
