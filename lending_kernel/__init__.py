"""
Lending Kernel - credit-backed installment financing engine

A transactional core for collateralised financing with:
- Credit limit / credit used tracking on collateral investments
- Installment schedules and per-installment state machine
- Atomic payment, waiver, extension and forced liquidation
- Optimistic concurrency tokens on every mutable row
- Structured audit emission for every mutation
"""

__version__ = "0.1.0"
