"""
FULL FLOW TEST: BOM -> Order -> Explosion -> Schedule -> Execute -> Complete

Walks one order tree through every service in sequence. Each step has
assertions, so the first failure shows where the flow breaks.

Test Scenario:
1. Setup: Cabinet -> Door (x2) -> Hinge (x3), routings on Cabinet and Door
2. Order: 10 cabinets, exploded into 20 doors and 60 hinges
3. Schedule: the whole tree lands on the work cells bottom-up
4. Route: the hinge order inherits the door routing
5. Execute: hinge order runs its steps, including a sampled quality check
6. Complete: finishing the hinges completes the doors and then the cabinets
"""
import pytest
from datetime import datetime
from decimal import Decimal

from mesflow.models import ManufacturingOrder, ProductionSchedule
from mesflow.services.manufacturing_order_service import build_route_from_routing, release_order
from mesflow.services.routing_resolver import RoutingResolver
from mesflow.services.scheduling import CapacityScheduler, no_overlapping_schedules
from mesflow.services.step_state_machine import complete_execution, start_step

from tests.factories import (
    create_test_bom,
    create_test_item,
    create_test_order,
    create_test_routing,
    create_test_work_cell,
    find_bom_item,
    reset_sequences,
)

pytestmark = pytest.mark.integration

MONDAY = datetime(2025, 1, 6, 8, 0)


class TestFullFlow:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        """Reset sequences and store db for all tests"""
        reset_sequences()
        self.db = db_session

    def test_order_tree_from_bom_to_completion(self, db_session):
        # === STEP 0: SETUP ===
        print("\n[STEP 0] Creating items, BOM and routings...")
        saw = create_test_work_cell(db_session, code="WC-SAW")
        bench = create_test_work_cell(db_session, code="WC-BENCH")
        cabinet = create_test_item(db_session, name="Cabinet")
        door = create_test_item(db_session, name="Door")
        hinge = create_test_item(db_session, name="Hinge")
        bom = create_test_bom(db_session, cabinet, lines=[
            {"item": door, "quantity": 2, "children": [{"item": hinge, "quantity": 3}]},
        ])
        door_routing = create_test_routing(db_session, find_bom_item(bom, door), steps=[
            {"name": "Cut", "work_cell": saw, "cycle_time": Decimal("0.5")},
            {"name": "Inspect", "work_cell": saw, "step_type": "quality_check",
             "quality_check_mode": "sampling"},
        ])
        create_test_routing(db_session, find_bom_item(bom, cabinet), steps=[
            {"name": "Assemble", "work_cell": bench, "setup_time": 10, "cycle_time": 3},
        ])
        db_session.commit()
        print("[PASS] STEP 0")

        # === STEP 1: CREATE AND EXPLODE ===
        print("\n[STEP 1] Creating order for 10 cabinets...")
        order = create_test_order(db_session, cabinet, 10, bom=bom, actor_id=1)

        door_order = db_session.query(ManufacturingOrder).filter_by(item_id=door.id).one()
        hinge_order = db_session.query(ManufacturingOrder).filter_by(item_id=hinge.id).one()
        assert door_order.quantity == Decimal("20")
        assert hinge_order.quantity == Decimal("60")
        assert door_order.order_number == f"{order.order_number}-001"
        assert hinge_order.order_number == f"{order.order_number}-001-001"
        assert order.child_orders_count == 1
        assert door_order.child_orders_count == 1
        print(f"   {order.order_number}: {order.quantity} -> {door_order.quantity} -> {hinge_order.quantity}")
        print("[PASS] STEP 1")

        # === STEP 2: SCHEDULE ===
        print("\n[STEP 2] Scheduling the order tree...")
        result = CapacityScheduler(db_session).schedule_production(order, start_at=MONDAY, actor_id=1)

        assert not result.has_conflicts
        # Hinges and doors both run the door routing on the saw, then the cabinet on the bench
        assert [s.work_cell_id for s in result.scheduled] == [saw.id, saw.id, saw.id, saw.id, bench.id]
        starts = [s.scheduled_start for s in result.scheduled]
        assert starts == sorted(starts)
        assert result.scheduled[-1].scheduled_start > result.scheduled[-2].scheduled_end
        assert order.status == "planned"
        assert no_overlapping_schedules(db_session.query(ProductionSchedule).all())
        print(f"   Planned {order.planned_start_date} -> {order.planned_end_date}")
        print("[PASS] STEP 2")

        # === STEP 3: ROUTE THE HINGE ORDER ===
        print("\n[STEP 3] Resolving the hinge routing...")
        resolver = RoutingResolver(db_session)
        hinge_node = find_bom_item(bom, hinge)
        routing = resolver.resolve(hinge_node)
        assert routing.id == door_routing.id

        route = build_route_from_routing(db_session, hinge_order, routing, resolver=resolver)
        assert [s.name for s in route.steps] == ["Cut", "Inspect"]
        print("[PASS] STEP 3")

        # === STEP 4: EXECUTE ===
        print("\n[STEP 4] Running the hinge order...")
        queued = release_order(db_session, hinge_order, actor_id=1, now=MONDAY)
        assert [s.name for s in queued] == ["Cut"]

        cut, inspect = route.steps
        for execution in start_step(db_session, cut, actor_id=1, now=MONDAY):
            complete_execution(db_session, execution, actor_id=1, now=datetime(2025, 1, 6, 8, 30))
        assert inspect.status == "queued"

        samples = start_step(db_session, inspect, actor_id=1, now=datetime(2025, 1, 6, 8, 35))
        # Lot of 60 -> 20 samples
        assert len(samples) == 20
        for execution in samples:
            complete_execution(
                db_session, execution, actor_id=1, quality_result="passed",
                now=datetime(2025, 1, 6, 9, 0),
            )
        print("[PASS] STEP 4")

        # === STEP 5: COMPLETION PROPAGATES ===
        print("\n[STEP 5] Checking completion up the tree...")
        db_session.refresh(order)
        db_session.refresh(door_order)
        db_session.refresh(hinge_order)

        assert hinge_order.status == "completed"
        assert hinge_order.quantity_completed == Decimal("60")
        assert door_order.status == "completed"
        assert door_order.completed_child_orders_count == 1
        assert order.status == "completed"
        assert order.completed_child_orders_count == 1
        assert order.actual_end_date == datetime(2025, 1, 6, 9, 0)
        # The finished tree no longer holds any work cell time
        assert {s.status for s in db_session.query(ProductionSchedule).all()} == {"completed"}
        assert CapacityScheduler(db_session).check_capacity(saw.id, MONDAY, datetime(2025, 1, 6, 17, 0)) == []
        print("[PASS] STEP 5")
