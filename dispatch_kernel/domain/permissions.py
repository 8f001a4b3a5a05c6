"""
Field permission table (``dispatch_kernel.domain.permissions``).

Responsibility
--------------
One declarative (entity x role x field) table consulted uniformly by the
work-order and dispatch-guide machines.  Fields a role may not edit are
dropped from the request silently; a role with no entry for an entity may
not update that entity at all.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  The table is built from the
active configuration set by ``dispatch_config.bridges`` and injected into
the kernel services.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from dispatch_kernel.exceptions import UnauthorizedError


class Entity(str, Enum):
    WORK_ORDER = "work_order"
    DISPATCH_GUIDE = "dispatch_guide"


class WorkOrderField(str, Enum):
    DATE = "date"
    WORKER_ID = "worker_id"
    STATE = "state"
    NOTES = "notes"


class GuideField(str, Enum):
    DATE = "date"
    COURIER_ID = "courier_id"
    STATE = "state"
    HANDLER_ID = "handler_id"
    DELIVERY_ADDRESS = "delivery_address"


ENTITY_FIELDS: dict[Entity, frozenset[str]] = {
    Entity.WORK_ORDER: frozenset(f.value for f in WorkOrderField),
    Entity.DISPATCH_GUIDE: frozenset(f.value for f in GuideField),
}


@dataclass(frozen=True)
class FieldPermissionTable:
    """(entity, role) -> editable fields.

    Contract: frozen; every field named belongs to its entity's vocabulary
    (checked by ``from_mapping``).
    """

    grants: Mapping[tuple[Entity, str], frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, Mapping[str, Iterable[str]]]
    ) -> FieldPermissionTable:
        """Build from ``{entity: {role: [field, ...]}}``.

        Raises:
            ValueError: on an unknown entity or field name.
        """
        grants: dict[tuple[Entity, str], frozenset[str]] = {}
        for entity_name, roles in mapping.items():
            entity = Entity(entity_name)
            vocabulary = ENTITY_FIELDS[entity]
            for role, fields in roles.items():
                names = frozenset(fields)
                unknown = names - vocabulary
                if unknown:
                    raise ValueError(
                        f"Unknown {entity.value} fields for role {role}: "
                        f"{sorted(unknown)}"
                    )
                grants[(entity, role)] = names
        return cls(grants=grants)

    def allowed_fields(self, entity: Entity, role: str) -> frozenset[str]:
        """Fields ``role`` may edit on ``entity``.

        Raises:
            UnauthorizedError: if the role has no entry for the entity.
        """
        try:
            return self.grants[(entity, role)]
        except KeyError:
            raise UnauthorizedError(role, entity.value) from None

    def permits(self, entity: Entity, role: str, field_name: str) -> bool:
        return field_name in self.grants.get((entity, role), frozenset())
