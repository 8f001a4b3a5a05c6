"""
Dispatch Kernel

Assignment and lifecycle engine for warehouse picking work orders and their
dispatch guides:
- Round-robin assignment over persisted rotation counters
- Role-gated state machines for work orders and dispatch guides
- Row-level locking inside single atomic transactions
"""

__version__ = "0.1.0"
