"""
Tests for the (entity x role x field) permission table and role aliases.
"""

import pytest

from dispatch_kernel.domain.actor import Actor, StaffRole, normalize_role
from dispatch_kernel.domain.permissions import Entity, FieldPermissionTable
from dispatch_kernel.exceptions import UnauthorizedError


@pytest.fixture
def table():
    return FieldPermissionTable.from_mapping(
        {
            "work_order": {
                "SUPERVISOR": ["date", "worker_id", "state", "notes"],
                "WORKER_LOGISTICS": ["date", "state", "notes"],
            },
            "dispatch_guide": {
                "COURIER": ["date", "state", "handler_id"],
            },
        }
    )


class TestFieldPermissionTable:
    def test_allowed_fields(self, table):
        assert table.allowed_fields(Entity.WORK_ORDER, "WORKER_LOGISTICS") == frozenset(
            {"date", "state", "notes"}
        )

    def test_role_without_entry_is_unauthorized(self, table):
        with pytest.raises(UnauthorizedError) as exc_info:
            table.allowed_fields(Entity.DISPATCH_GUIDE, "WORKER_LOGISTICS")
        assert exc_info.value.code == "UNAUTHORIZED"
        assert exc_info.value.http_status == 403

    def test_permits(self, table):
        assert table.permits(Entity.DISPATCH_GUIDE, "COURIER", "handler_id")
        assert not table.permits(Entity.DISPATCH_GUIDE, "COURIER", "courier_id")
        assert not table.permits(Entity.DISPATCH_GUIDE, "GUEST", "state")

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            FieldPermissionTable.from_mapping(
                {"work_order": {"SUPERVISOR": ["handler_id"]}}
            )

    def test_unknown_entity_rejected(self):
        with pytest.raises(ValueError):
            FieldPermissionTable.from_mapping({"invoice": {"SUPERVISOR": []}})


class TestRoles:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("JEFE_LOGISTICA", StaffRole.SUPERVISOR.value),
            ("jefe logistica", StaffRole.SUPERVISOR.value),
            ("EMPLEADO_LOGISTICA", StaffRole.WORKER_LOGISTICS.value),
            ("transportista", StaffRole.COURIER.value),
            ("COURIER", StaffRole.COURIER.value),
            ("guest", "GUEST"),
        ],
    )
    def test_normalize_role(self, raw, expected):
        assert normalize_role(raw) == expected

    def test_actor_flags(self):
        assert Actor.of(1, "TRANSPORTISTA").is_courier
        assert Actor.of("2", "JEFE_LOGISTICA").is_supervisor
        assert Actor.of("2", "JEFE_LOGISTICA").id == 2
