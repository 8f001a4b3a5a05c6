"""
Tests for AssignmentService pool loading and rotation.
"""

from dispatch_kernel.domain.actor import CounterCategory, StaffRole
from dispatch_kernel.models.assignment_counter import AssignmentCounter


class TestPool:
    def test_pool_is_filtered_by_role(self, assignments, make_worker):
        w1 = make_worker(StaffRole.WORKER_LOGISTICS)
        make_worker(StaffRole.COURIER)
        make_worker(StaffRole.SUPERVISOR)

        pool = assignments.pool(CounterCategory.WORKER_LOGISTICS)
        assert [c.subject_id for c in pool] == [w1.id]
        assert pool[0].counter is None

    def test_pool_carries_counters(self, session, assignments, make_worker):
        courier = make_worker(StaffRole.COURIER)
        session.add(
            AssignmentCounter(subject_id=courier.id, category="COURIER", value=3)
        )
        session.flush()

        (candidate,) = assignments.pool(CounterCategory.COURIER)
        assert candidate.counter == 3

    def test_counters_of_other_categories_ignored(
        self, session, assignments, make_worker
    ):
        worker = make_worker(StaffRole.WORKER_LOGISTICS)
        session.add(AssignmentCounter(subject_id=worker.id, category="HANDLER", value=7))
        session.flush()

        (candidate,) = assignments.pool(CounterCategory.WORKER_LOGISTICS)
        assert candidate.counter is None

    def test_handler_pool(self, assignments, courier_company, make_handler):
        handler = make_handler(courier_company)
        pool = assignments.pool(CounterCategory.HANDLER)
        assert [c.subject_id for c in pool] == [handler.id]


class TestPickAndAssign:
    def test_empty_pool(self, assignments, captured_logs):
        assert assignments.pick(CounterCategory.COURIER) is None
        assert any(r["message"] == "assignment_pool_empty" for r in captured_logs())

    def test_fresh_worker_preferred(self, session, assignments, counters, make_worker):
        busy = make_worker(StaffRole.WORKER_LOGISTICS)
        fresh = make_worker(StaffRole.WORKER_LOGISTICS)
        session.add(
            AssignmentCounter(subject_id=busy.id, category="WORKER_LOGISTICS", value=0)
        )
        session.flush()

        assert assignments.pick(CounterCategory.WORKER_LOGISTICS) == fresh.id

    def test_pick_does_not_record(self, assignments, counters, courier_company):
        assignments.pick(CounterCategory.COURIER)
        assert counters.current_value(CounterCategory.COURIER, courier_company.id) is None

    def test_assign_rotates_evenly(self, assignments, counters, make_worker):
        workers = [make_worker(StaffRole.WORKER_LOGISTICS) for _ in range(3)]

        picks = [assignments.assign(CounterCategory.WORKER_LOGISTICS) for _ in range(7)]

        assert picks[:3] == [w.id for w in workers]
        values = sorted(
            counters.current_value(CounterCategory.WORKER_LOGISTICS, w.id)
            for w in workers
        )
        assert values == [2, 2, 3]

    def test_selection_is_logged(self, assignments, courier_company, captured_logs):
        assignments.pick(CounterCategory.COURIER)
        selected = [r for r in captured_logs() if r["message"] == "assignment_selected"]
        assert selected[0]["subject_id"] == courier_company.id
        assert selected[0]["pool_size"] == 1
