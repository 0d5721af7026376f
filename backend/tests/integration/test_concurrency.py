"""
CONCURRENCY TEST: threads racing for one work cell and one parent order

Each thread gets its own session on a file-backed SQLite database, so
writes only become visible to the other thread once committed.

Test Scenarios:
1. Two threads book the same earliest slot on one work cell
2. Two sibling orders complete at the same time under one parent
"""
import threading
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mesflow.db.base import Base
from mesflow.db.session import transactional
from mesflow.models import ManufacturingOrder, ProductionEvent, ProductionSchedule, WorkCell
from mesflow.services.completion import complete_order
from mesflow.services.routing_cache import routing_cache
from mesflow.services.scheduling import CapacityScheduler, no_overlapping_schedules

from tests.factories import (
    create_test_bom,
    create_test_item,
    create_test_order,
    create_test_work_cell,
    reset_sequences,
)

pytestmark = pytest.mark.integration

MONDAY = datetime(2025, 1, 6, 8, 0)


@pytest.fixture
def session_factory(tmp_path):
    """Sessions on a shared SQLite file; one connection per session"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    reset_sequences()
    routing_cache.clear()
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        routing_cache.clear()
        engine.dispose()


def run_together(*targets):
    """Start every target at the same moment and re-raise the first failure"""
    barrier = threading.Barrier(len(targets))
    errors = []

    def wrap(target):
        def run():
            barrier.wait(10)
            try:
                target()
            except Exception as exc:
                errors.append(exc)
        return run

    threads = [threading.Thread(target=wrap(t)) for t in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(60)

    assert not any(thread.is_alive() for thread in threads)
    if errors:
        raise errors[0]


class TestConcurrency:

    def test_parallel_bookings_get_consecutive_slots(self, session_factory):
        setup = session_factory()
        cell = create_test_work_cell(setup, code="WC-PRESS")
        orders = [create_test_order(setup, create_test_item(setup), 1) for _ in range(2)]
        setup.commit()
        cell_id = cell.id
        order_ids = [o.id for o in orders]
        setup.close()

        booked = []

        def book(order_id):
            def run():
                db = session_factory()
                try:
                    order = db.get(ManufacturingOrder, order_id)
                    work_cell = db.get(WorkCell, cell_id)
                    schedule = CapacityScheduler(db).book_slot(order, work_cell, MONDAY, 60)
                    booked.append((schedule.scheduled_start, schedule.scheduled_end))
                finally:
                    db.close()
            return run

        run_together(*[book(order_id) for order_id in order_ids])

        assert sorted(booked) == [
            (datetime(2025, 1, 6, 8, 0), datetime(2025, 1, 6, 9, 0)),
            (datetime(2025, 1, 6, 9, 0), datetime(2025, 1, 6, 10, 0)),
        ]
        check = session_factory()
        try:
            assert no_overlapping_schedules(check.query(ProductionSchedule).all())
        finally:
            check.close()

    def test_siblings_completing_together_complete_parent_once(self, session_factory):
        setup = session_factory()
        cart = create_test_item(setup, name="Cart")
        wheel = create_test_item(setup, name="Wheel")
        handle = create_test_item(setup, name="Handle")
        bom = create_test_bom(setup, cart, lines=[
            {"item": wheel, "quantity": 4},
            {"item": handle, "quantity": 1},
        ])
        parent = create_test_order(setup, cart, 1, bom=bom)
        parent_id = parent.id
        child_ids = [child.id for child in parent.children]
        setup.close()
        assert len(child_ids) == 2

        def finish(child_id):
            def run():
                db = session_factory()
                try:
                    child = db.get(ManufacturingOrder, child_id)
                    with transactional(db):
                        complete_order(db, child, actor_id=1, now=MONDAY)
                finally:
                    db.close()
            return run

        run_together(*[finish(child_id) for child_id in child_ids])

        check = session_factory()
        try:
            parent = check.get(ManufacturingOrder, parent_id)
            assert parent.status == "completed"
            assert parent.child_orders_count == 2
            assert parent.completed_child_orders_count == 2
            completions = (
                check.query(ProductionEvent)
                .filter_by(manufacturing_order_id=parent_id, event_type="order_completed")
                .count()
            )
            assert completions == 1
        finally:
            check.close()
