"""Kernel services: flush-only writers over the dispatch models."""

from dispatch_kernel.services.assignment_service import AssignmentService
from dispatch_kernel.services.base import BaseService
from dispatch_kernel.services.counter_service import CounterService
from dispatch_kernel.services.dispatch_guide_service import DispatchGuideService
from dispatch_kernel.services.work_order_service import WorkOrderService

__all__ = [
    "AssignmentService",
    "BaseService",
    "CounterService",
    "DispatchGuideService",
    "WorkOrderService",
]
