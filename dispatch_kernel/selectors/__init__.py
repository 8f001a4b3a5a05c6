"""Read-only query selectors for the dispatch kernel."""

from dispatch_kernel.selectors.balance_selector import BalanceSelector
from dispatch_kernel.selectors.base import BaseSelector
from dispatch_kernel.selectors.directory_selector import DirectorySelector
from dispatch_kernel.selectors.worklist_selector import WorklistSelector

__all__ = [
    "BalanceSelector",
    "BaseSelector",
    "DirectorySelector",
    "WorklistSelector",
]
