"""
dispatch_services -- transactional entry points over the dispatch kernel.

Usage:
    from dispatch_services import TransactionCoordinator
"""

from dispatch_services.coordinator import (
    TransactionCoordinator,
    build_transaction_coordinator,
)

__all__ = ["TransactionCoordinator", "build_transaction_coordinator"]
