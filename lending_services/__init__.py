"""
Lending services - the request boundary above the kernel.

Validates operator input, owns the unit of work, emits audit entries after
commit and offers caller-side conflict retry.  Imports the kernel and
``lending_config``; the kernel imports neither.
"""

from lending_services.backoffice import (
    BackofficeOperations,
    OperatorContext,
    parse_identifier,
    validate_reason,
)
from lending_services.retry import retry_on_conflict
from lending_services.wiring import (
    build_operations,
    build_retry,
    build_store,
    seed_settings,
)

__all__ = [
    "BackofficeOperations",
    "OperatorContext",
    "build_operations",
    "build_retry",
    "build_store",
    "parse_identifier",
    "retry_on_conflict",
    "seed_settings",
    "validate_reason",
]
