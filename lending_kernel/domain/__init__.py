"""
Domain layer -- pure values and rules with no I/O.

Money arithmetic, the schedule builder, the rate provider interface, the
clock, audit entries and the snapshot types services hand back.
"""

from lending_kernel.domain.audit import (
    AuditAction,
    AuditEmitter,
    AuditEntry,
    AuditOutcome,
    InMemoryAuditEmitter,
    LoggingAuditEmitter,
)
from lending_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from lending_kernel.domain.money import ZERO, percent_of, round_money, to_money
from lending_kernel.domain.rates import RateKey, RateProvider, StaticRateProvider
from lending_kernel.domain.schedule import (
    FinancingLimits,
    FinancingSimulation,
    ScheduleLine,
    build_schedule,
    first_due_date,
    simulate,
)

__all__ = [
    "AuditAction",
    "AuditEmitter",
    "AuditEntry",
    "AuditOutcome",
    "Clock",
    "DeterministicClock",
    "FinancingLimits",
    "FinancingSimulation",
    "InMemoryAuditEmitter",
    "LoggingAuditEmitter",
    "RateKey",
    "RateProvider",
    "ScheduleLine",
    "StaticRateProvider",
    "SystemClock",
    "ZERO",
    "build_schedule",
    "first_due_date",
    "percent_of",
    "round_money",
    "to_money",
]
