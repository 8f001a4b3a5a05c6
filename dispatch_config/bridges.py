"""
Config -> Kernel Bridges.

Functions that convert a DispatchConfiguration into kernel-compatible
inputs.  These live in dispatch_config (the producer) because the kernel
must never import dispatch_config.

Usage:
    from dispatch_config.bridges import build_permission_table

    config = get_active_config()
    permissions = build_permission_table(config)
"""

from __future__ import annotations

from datetime import timedelta

from dispatch_config.schema import DispatchConfiguration
from dispatch_kernel.domain.permissions import FieldPermissionTable


def build_permission_table(config: DispatchConfiguration) -> FieldPermissionTable:
    """Build the kernel field permission table from the configured grants."""
    return FieldPermissionTable.from_mapping(config.permission_mapping())


def date_drift_tolerance(config: DispatchConfiguration) -> timedelta:
    return timedelta(hours=config.date_drift_tolerance_hours)
