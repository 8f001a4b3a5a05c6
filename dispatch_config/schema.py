"""
DispatchConfiguration schema.

The human-authored source artifact for dispatch rules.  YAML is parsed into
these frozen types by the loader and translated into kernel inputs by
``dispatch_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class FieldGrantDef:
    """Fields one role may edit on one entity."""

    entity: str
    role: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class DispatchConfiguration:
    """A complete, versioned dispatch configuration set."""

    config_id: str
    version: int
    grants: tuple[FieldGrantDef, ...]
    date_drift_tolerance_hours: int = 24
    order_number_prefix: str = "PV"
    pending_work_order_states: tuple[str, ...] = (
        "CREATED",
        "ASSIGNED",
        "IN_PROGRESS",
    )
    description: str = ""
    checksum: str = field(default="", compare=False)

    def permission_mapping(self) -> dict[str, dict[str, tuple[str, ...]]]:
        """Grants as ``{entity: {role: fields}}``."""
        mapping: dict[str, dict[str, tuple[str, ...]]] = {}
        for grant in self.grants:
            mapping.setdefault(grant.entity, {})[grant.role] = grant.fields
        return mapping
