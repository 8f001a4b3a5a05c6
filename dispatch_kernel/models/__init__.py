"""Domain models for the dispatch kernel."""

from dispatch_kernel.models.assignment_counter import AssignmentCounter
from dispatch_kernel.models.directory import Handler, SalesOrder, Worker
from dispatch_kernel.models.work_order import DispatchGuide, WorkOrder

__all__ = [
    "AssignmentCounter",
    "DispatchGuide",
    "Handler",
    "SalesOrder",
    "Worker",
    "WorkOrder",
]
