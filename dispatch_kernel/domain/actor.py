"""
Actors, staff roles and counter categories.

The engine never verifies credentials.  It consumes an already authenticated
``Actor`` (id plus role) and uses the role to look up field permissions and
courier-company rules.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class StaffRole(str, Enum):
    """Role tag of a staff directory entry."""

    SUPERVISOR = "SUPERVISOR"
    WORKER_LOGISTICS = "WORKER_LOGISTICS"
    COURIER = "COURIER"


class CounterCategory(str, Enum):
    """Rotation pools kept by the counter store."""

    WORKER_LOGISTICS = "WORKER_LOGISTICS"
    COURIER = "COURIER"
    HANDLER = "HANDLER"


# Spellings used by the legacy back office
_ROLE_ALIASES: dict[str, StaffRole] = {
    "JEFE_LOGISTICA": StaffRole.SUPERVISOR,
    "LOGISTICS_SUPERVISOR": StaffRole.SUPERVISOR,
    "EMPLEADO_LOGISTICA": StaffRole.WORKER_LOGISTICS,
    "LOGISTICS_WORKER": StaffRole.WORKER_LOGISTICS,
    "TRANSPORTISTA": StaffRole.COURIER,
}

_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_role(value: object) -> str:
    """Canonical role string.

    Known spellings map onto StaffRole values; anything else is returned
    upper-cased so that the permission table can reject it.
    """
    token = _SEPARATORS.sub("_", str(value or "").strip()).upper()
    if token in _ROLE_ALIASES:
        return _ROLE_ALIASES[token].value
    return token


@dataclass(frozen=True)
class Actor:
    """Authenticated caller: staff id plus normalized role."""

    id: int
    role: str

    @classmethod
    def of(cls, actor_id: int, role: object) -> Actor:
        return cls(id=int(actor_id), role=normalize_role(role))

    @property
    def is_supervisor(self) -> bool:
        return self.role == StaffRole.SUPERVISOR.value

    @property
    def is_courier(self) -> bool:
        return self.role == StaffRole.COURIER.value
