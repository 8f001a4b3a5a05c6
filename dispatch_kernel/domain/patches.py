"""
Update patches for work orders and dispatch guides.

A patch is the set of fields a caller *sent* for one entity.  Key presence is
significant: ``{"handler_id": None}`` means "clear the handler", while a
missing ``handler_id`` means "leave it alone".  Single and batch updates both
travel as a sequence of patches (length 1 for the single case).

``from_payload`` accepts the legacy back-office field names as well as the
canonical ones, so request bodies such as
``{"updates": [{"id_ot": 7, "estado": "COMPLETADA"}]}`` can be passed through
unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from dispatch_kernel.exceptions import MalformedFieldError, MissingFieldError
from dispatch_kernel.domain.permissions import GuideField, WorkOrderField

_WORK_ORDER_KEYS: dict[str, str] = {
    "id_empleado": WorkOrderField.WORKER_ID.value,
    "fecha": WorkOrderField.DATE.value,
    "estado": WorkOrderField.STATE.value,
    "observaciones": WorkOrderField.NOTES.value,
}

_GUIDE_KEYS: dict[str, str] = {
    "id_transportista": GuideField.COURIER_ID.value,
    "id_encargado": GuideField.HANDLER_ID.value,
    "fecha": GuideField.DATE.value,
    "estado": GuideField.STATE.value,
    "direccion_entrega": GuideField.DELIVERY_ADDRESS.value,
}

_ID_FIELDS = frozenset({"worker_id", "courier_id", "handler_id"})


def _coerce_id(field_name: str, value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise MalformedFieldError(field_name, value)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedFieldError(field_name, value) from exc


def _canonical_changes(
    payload: Mapping[str, Any],
    aliases: Mapping[str, str],
    vocabulary: frozenset[str],
) -> MappingProxyType:
    changes: dict[str, Any] = {}
    for key, value in payload.items():
        name = aliases.get(key, key)
        if name not in vocabulary:
            continue
        if name in _ID_FIELDS:
            value = _coerce_id(name, value)
        changes[name] = value
    return MappingProxyType(changes)


def _extract_target(
    payload: Mapping[str, Any], keys: tuple[str, ...], default: Any
) -> int:
    for key in keys:
        if key in payload and payload[key] not in (None, ""):
            target = _coerce_id(keys[0], payload[key])
            assert target is not None
            return target
    if default not in (None, ""):
        target = _coerce_id(keys[0], default)
        assert target is not None
        return target
    raise MissingFieldError(keys[0])


class _Patch:
    changes: Mapping[str, Any]

    def has(self, field_name: str) -> bool:
        return field_name in self.changes

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.changes.get(field_name, default)

    def fields(self) -> frozenset[str]:
        return frozenset(self.changes)


@dataclass(frozen=True)
class WorkOrderPatch(_Patch):
    """Fields sent for one work order."""

    work_order_id: int
    changes: Mapping[str, Any]

    _VOCABULARY = frozenset(f.value for f in WorkOrderField)

    @classmethod
    def of(cls, work_order_id: int, **changes: Any) -> WorkOrderPatch:
        return cls.from_payload(changes, default_id=work_order_id)

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], default_id: Any = None
    ) -> WorkOrderPatch:
        """Build from a request item; raises MissingFieldError without an id."""
        target = _extract_target(payload, ("work_order_id", "id_ot"), default_id)
        return cls(
            work_order_id=target,
            changes=_canonical_changes(payload, _WORK_ORDER_KEYS, cls._VOCABULARY),
        )

    @classmethod
    def batch_from_request(
        cls, body: Mapping[str, Any], path_id: Any = None
    ) -> list[WorkOrderPatch]:
        """``{"updates": [...]}`` becomes a batch; anything else a single patch."""
        return _batch(cls, body, path_id)


@dataclass(frozen=True)
class GuidePatch(_Patch):
    """Fields sent for one dispatch guide."""

    guide_id: int
    changes: Mapping[str, Any]

    _VOCABULARY = frozenset(f.value for f in GuideField)

    @classmethod
    def of(cls, guide_id: int, **changes: Any) -> GuidePatch:
        return cls.from_payload(changes, default_id=guide_id)

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], default_id: Any = None
    ) -> GuidePatch:
        """Build from a request item; raises MissingFieldError without an id."""
        target = _extract_target(payload, ("guide_id", "id_guia"), default_id)
        return cls(
            guide_id=target,
            changes=_canonical_changes(payload, _GUIDE_KEYS, cls._VOCABULARY),
        )

    @classmethod
    def batch_from_request(
        cls, body: Mapping[str, Any], path_id: Any = None
    ) -> list[GuidePatch]:
        """``{"updates": [...]}`` becomes a batch; anything else a single patch."""
        return _batch(cls, body, path_id)


def _batch(patch_cls, body: Mapping[str, Any], path_id: Any) -> list:
    updates = body.get("updates")
    if isinstance(updates, Iterable) and not isinstance(updates, (str, bytes, Mapping)):
        return [patch_cls.from_payload(item) for item in updates]
    return [patch_cls.from_payload(body, default_id=path_id)]
