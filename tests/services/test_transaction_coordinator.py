"""
Tests for TransactionCoordinator: transaction boundaries, error mapping,
log context, the end-to-end order-to-delivery flow and the manual
creation and worklist operations.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from dispatch_kernel.domain.actor import Actor, StaffRole
from dispatch_kernel.exceptions import (
    DatastoreError,
    DuplicateGuideError,
    DuplicateWorkOrderError,
    MissingFieldError,
    UnauthenticatedError,
    WorkOrderNotCompletedError,
)
from dispatch_kernel.models.work_order import DispatchGuide, WorkOrder
from dispatch_kernel.services.work_order_service import WorkOrderService


class TestOrderToDelivery:
    def test_full_flow(
        self,
        session,
        coordinator,
        make_order,
        make_handler,
        logistics_worker,
        courier_company,
        supervisor_actor,
        courier_actor,
        worker_actor,
        clock,
    ):
        order = make_order(order_id=42)
        created = coordinator.create_work_order(order.id)
        assert created.order_number == "PV-000042"

        coordinator.update_work_order(
            worker_actor, created.work_order_id, {"estado": "COMPLETADA"}
        )

        handler = make_handler(courier_company)
        clock.advance(120)
        coordinator.update_dispatch_guide(
            courier_actor, created.guide_id, {"id_encargado": handler.id}
        )

        session.expire_all()
        guide = session.get(DispatchGuide, created.guide_id)
        assert guide.state == "ASIGNADA"
        assert guide.handler_id == handler.id
        assert guide.date == clock.now()

        coordinator.update_dispatch_guide(
            courier_actor, created.guide_id, {"estado": "ENTREGADA"}
        )
        session.expire_all()
        assert session.get(DispatchGuide, created.guide_id).state == "ENTREGADA"

        with pytest.raises(DuplicateWorkOrderError):
            coordinator.create_work_order(order.id)

    def test_legacy_batch_body(
        self, session, coordinator, make_order, logistics_worker, courier_company,
        supervisor_actor,
    ):
        first = coordinator.create_work_order(make_order().id)
        second = coordinator.create_work_order(make_order().id)

        result = coordinator.update_work_orders(
            supervisor_actor,
            [
                {"id_ot": first.work_order_id, "observaciones": "a"},
                {"id_ot": second.work_order_id, "observaciones": "b"},
            ],
        )

        assert result.updated_ids == (first.work_order_id, second.work_order_id)
        session.expire_all()
        assert session.get(WorkOrder, second.work_order_id).notes == "b"


class TestRollback:
    def test_failed_batch_applies_nothing(
        self, session, coordinator, make_order, logistics_worker, courier_company,
        supervisor_actor,
    ):
        done = coordinator.create_work_order(make_order().id)
        coordinator.update_work_order(
            supervisor_actor, done.work_order_id, {"state": "COMPLETED"}
        )
        picking = coordinator.create_work_order(make_order().id)

        with pytest.raises(WorkOrderNotCompletedError):
            coordinator.update_dispatch_guides(
                supervisor_actor,
                [
                    {"guide_id": done.guide_id, "delivery_address": "Changed 1"},
                    {"guide_id": picking.guide_id, "state": "ASIGNADA"},
                ],
            )

        session.expire_all()
        assert session.get(DispatchGuide, done.guide_id).delivery_address != "Changed 1"

    def test_duplicate_creation_leaves_single_work_order(
        self, session, coordinator, make_order, logistics_worker
    ):
        order = make_order()
        coordinator.create_work_order(order.id)
        with pytest.raises(DuplicateWorkOrderError):
            coordinator.create_work_order(order.id)

        session.expire_all()
        count = session.execute(
            select(func.count(WorkOrder.id)).where(WorkOrder.sales_order_id == order.id)
        ).scalar_one()
        assert count == 1

    def test_datastore_failure_is_wrapped(
        self, coordinator, make_order, monkeypatch, captured_logs
    ):
        def _lost_connection(self, sales_order_id):
            raise OperationalError("INSERT INTO work_orders", {}, Exception("gone"))

        monkeypatch.setattr(WorkOrderService, "create_from_order", _lost_connection)

        with pytest.raises(DatastoreError) as exc_info:
            coordinator.create_work_order(make_order().id)
        assert exc_info.value.code == "DATASTORE_ERROR"
        assert exc_info.value.to_dict()["category"] == "INTERNAL"
        assert exc_info.value.http_status == 500

        rolled_back = [
            r for r in captured_logs() if r["message"] == "transaction_rolled_back"
        ]
        assert rolled_back[-1]["code"] == "DATASTORE_ERROR"

    def test_missing_actor(self, coordinator, make_order, logistics_worker):
        created = coordinator.create_work_order(make_order().id)
        with pytest.raises(UnauthenticatedError) as exc_info:
            coordinator.update_work_order(None, created.work_order_id, {"notes": "x"})
        assert exc_info.value.to_dict() == {
            "success": False,
            "code": "UNAUTHENTICATED",
            "category": "AUTH",
            "status": 401,
            "message": str(exc_info.value),
        }

    def test_batch_item_without_id(self, coordinator, supervisor_actor):
        with pytest.raises(MissingFieldError):
            coordinator.update_dispatch_guides(supervisor_actor, [{"state": "ENTREGADA"}])


class TestLogging:
    def test_commit_logged_with_context(
        self, coordinator, make_order, logistics_worker, supervisor_actor,
        captured_logs,
    ):
        created = coordinator.create_work_order(make_order().id)
        coordinator.update_work_order(
            supervisor_actor, created.work_order_id, {"notes": "n"}
        )

        committed = [
            r for r in captured_logs() if r["message"] == "transaction_committed"
        ]
        assert [r["operation"] for r in committed] == [
            "create_work_order",
            "update_work_orders",
        ]
        assert committed[1]["actor_id"] == str(supervisor_actor.id)
        assert committed[0]["correlation_id"] != committed[1]["correlation_id"]

    def test_batch_updates_carry_batch_id(
        self, coordinator, make_order, logistics_worker, supervisor_actor,
        captured_logs,
    ):
        first = coordinator.create_work_order(make_order().id)
        second = coordinator.create_work_order(make_order().id)
        coordinator.update_work_orders(
            supervisor_actor,
            [
                {"work_order_id": first.work_order_id, "notes": "a"},
                {"work_order_id": second.work_order_id, "notes": "b"},
            ],
        )
        coordinator.update_work_order(
            supervisor_actor, first.work_order_id, {"notes": "c"}
        )

        logs = captured_logs()
        committed = [r for r in logs if r["message"] == "transaction_committed"]
        creation, _, batch, single = committed
        assert "batch_id" not in creation
        assert batch["batch_size"] == 2
        assert single["batch_size"] == 1
        assert batch["batch_id"] != single["batch_id"]
        updated = [r for r in logs if r["message"] == "work_order_updated"]
        assert {r["batch_id"] for r in updated[:2]} == {batch["batch_id"]}

    def test_kernel_events_share_correlation_id(
        self, coordinator, make_order, logistics_worker, captured_logs
    ):
        coordinator.create_work_order(make_order().id)
        logs = captured_logs()
        created = next(r for r in logs if r["message"] == "work_order_created")
        committed = next(r for r in logs if r["message"] == "transaction_committed")
        assert created["correlation_id"] == committed["correlation_id"]


class TestReadOperations:
    def test_resolve_actor(self, coordinator, supervisor, make_worker):
        legacy = make_worker("TRANSPORTISTA")

        assert coordinator.resolve_actor(supervisor.id) == Actor(
            id=supervisor.id, role=StaffRole.SUPERVISOR.value
        )
        assert coordinator.resolve_actor(legacy.id).is_courier
        assert coordinator.resolve_actor(123_456) is None
        assert coordinator.resolve_actor(None) is None

    def test_balance_stats(
        self, coordinator, make_order, logistics_worker, courier_company
    ):
        coordinator.create_work_order(make_order().id)

        stats = coordinator.get_balance_stats()

        assert [(w.subject_id, w.load, w.counter) for w in stats.workers] == [
            (logistics_worker.id, 1, 1)
        ]
        assert [(c.subject_id, c.load, c.counter) for c in stats.couriers] == [
            (courier_company.id, 1, 1)
        ]


class TestManualOperations:
    def test_manual_work_order_then_guide(
        self,
        session,
        coordinator,
        supervisor_actor,
        worker_actor,
        courier_actor,
        logistics_worker,
        courier_company,
        make_handler,
    ):
        opened = coordinator.create_manual_work_order(
            supervisor_actor, logistics_worker.id, notes="Cycle count"
        )
        guide = coordinator.create_dispatch_guide(
            supervisor_actor, opened.id, delivery_address="Dock 3"
        )
        assert guide.state == "EN_PICKING"

        coordinator.update_work_order(worker_actor, opened.id, {"state": "COMPLETED"})
        coordinator.update_dispatch_guide(
            supervisor_actor, guide.id, {"courier_id": courier_company.id}
        )
        coordinator.update_dispatch_guide(
            courier_actor, guide.id, {"handler_id": make_handler(courier_company).id}
        )

        (mine,) = coordinator.my_work_orders(worker_actor)
        assert (mine.id, mine.state, mine.notes) == (
            opened.id,
            "COMPLETED",
            "Cycle count",
        )
        (held,) = coordinator.my_dispatch_guides(courier_actor)
        assert (held.id, held.state, held.delivery_address) == (
            guide.id,
            "ASIGNADA",
            "Dock 3",
        )

        session.expire_all()
        assert session.get(WorkOrder, opened.id).guide.id == guide.id

    def test_duplicate_guide_rolls_back(
        self, session, coordinator, make_order, logistics_worker, supervisor_actor,
        captured_logs,
    ):
        created = coordinator.create_work_order(make_order().id)

        with pytest.raises(DuplicateGuideError):
            coordinator.create_dispatch_guide(supervisor_actor, created.work_order_id)

        rolled_back = [
            r for r in captured_logs() if r["message"] == "transaction_rolled_back"
        ]
        assert rolled_back[-1]["operation"] == "create_dispatch_guide"
        assert rolled_back[-1]["entity_id"] == str(created.work_order_id)
        session.expire_all()
        count = session.execute(
            select(func.count(DispatchGuide.id)).where(
                DispatchGuide.work_order_id == created.work_order_id
            )
        ).scalar_one()
        assert count == 1

    def test_worklists_require_actor(self, coordinator):
        with pytest.raises(UnauthenticatedError):
            coordinator.my_work_orders(None)
        with pytest.raises(UnauthenticatedError):
            coordinator.my_dispatch_guides(None)
