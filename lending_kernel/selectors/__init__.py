"""Read-only selectors for the lending kernel."""

from lending_kernel.selectors.financing_selector import (
    FinancingDetail,
    FinancingListItem,
    FinancingPage,
    FinancingSelector,
    FinancingStats,
    InstallmentCounts,
    UpcomingInstallment,
)
from lending_kernel.selectors.investment_selector import (
    InvestmentDetail,
    InvestmentPage,
    InvestmentSelector,
    InvestmentStats,
)

__all__ = [
    "FinancingDetail",
    "FinancingListItem",
    "FinancingPage",
    "FinancingSelector",
    "FinancingStats",
    "InstallmentCounts",
    "InvestmentDetail",
    "InvestmentPage",
    "InvestmentSelector",
    "InvestmentStats",
    "UpcomingInstallment",
]
