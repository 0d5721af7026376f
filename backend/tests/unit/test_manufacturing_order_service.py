"""
Tests for the manufacturing order lifecycle service.
"""
import pytest
from datetime import date, datetime
from decimal import Decimal

from mesflow.exceptions import InvalidStateError, ValidationError
from mesflow.models import ManufacturingOrder, ProductionEvent
from mesflow.services.completion import complete_order
from mesflow.services.manufacturing_order_service import (
    build_route_from_routing,
    cancel_order,
    create_order,
    create_order_from_bom,
    release_order,
)
from mesflow.services.scheduling import schedule_production
from mesflow.services.step_state_machine import start_step

from tests.factories import (
    create_test_bom,
    create_test_item,
    create_test_order,
    create_test_routing,
    create_test_work_cell,
    find_bom_item,
)

MONDAY = datetime(2025, 1, 6, 8, 0)


@pytest.fixture
def press_line(db_session):
    """Press -> Plate (x4); both routed through one press cell"""
    cell = create_test_work_cell(db_session)
    press = create_test_item(db_session, name="Press")
    plate = create_test_item(db_session, name="Plate")
    bom = create_test_bom(db_session, press, lines=[{"item": plate, "quantity": 4}])
    routing = create_test_routing(db_session, find_bom_item(bom, press), steps=[
        {"name": "Stamp", "work_cell": cell, "cycle_time": 2},
        {"name": "Trim", "work_cell": cell, "cycle_time": 1},
    ])
    return {"press": press, "plate": plate, "bom": bom, "routing": routing, "cell": cell}


class TestCreateOrder:

    def test_defaults(self, db_session):
        item = create_test_item(db_session, unit_of_measure="KG")

        order = create_order(db_session, item, "2.5", actor_id=4, requested_date=date(2025, 2, 1))

        assert order.status == "draft"
        assert order.quantity == Decimal("2.5")
        assert order.unit_of_measure == "KG"
        assert order.priority == 50
        assert order.parent_id is None
        assert order.requested_date == date(2025, 2, 1)
        event = db_session.query(ProductionEvent).filter_by(manufacturing_order_id=order.id).one()
        assert event.event_type == "order_created"
        assert event.actor_id == 4

    @pytest.mark.parametrize("quantity", [0, -5, "0"])
    def test_quantity_must_be_positive(self, db_session, quantity):
        item = create_test_item(db_session)
        with pytest.raises(ValidationError):
            create_order(db_session, item, quantity)
        assert db_session.query(ManufacturingOrder).count() == 0

    @pytest.mark.parametrize("priority", [-1, 101])
    def test_priority_range(self, db_session, priority):
        item = create_test_item(db_session)
        with pytest.raises(ValidationError) as exc_info:
            create_order(db_session, item, 1, priority=priority)
        assert exc_info.value.details["field"] == "priority"

    def test_from_bom_uses_output_item(self, db_session, press_line):
        order = create_order_from_bom(db_session, press_line["bom"], 2)

        assert order.item_id == press_line["press"].id
        assert order.child_orders_count == 1

    def test_unexploded_order_has_no_children(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"], explode=False)
        assert order.children == []


class TestBuildRoute:

    def test_copies_routing_steps(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])

        route = build_route_from_routing(db_session, order, press_line["routing"], actor_id=2)

        assert route.production_routing_id == press_line["routing"].id
        assert [s.name for s in route.steps] == ["Stamp", "Trim"]
        assert [s.status for s in route.steps] == ["pending", "pending"]
        assert route.steps[1].depends_on_step_id == route.steps[0].id
        assert route.steps[0].routing_step_id == press_line["routing"].steps[0].id

    def test_rebuilding_replaces_active_route(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])
        first = build_route_from_routing(db_session, order, press_line["routing"])

        second = build_route_from_routing(db_session, order, press_line["routing"])

        assert order.active_route.id == second.id
        assert first.is_active is False


class TestRelease:

    def test_release_queues_first_step(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])
        build_route_from_routing(db_session, order, press_line["routing"])

        queued = release_order(db_session, order, actor_id=1, now=MONDAY)

        assert order.status == "released"
        assert [s.name for s in queued] == ["Stamp"]
        assert "order_released" in [e.event_type for e in order.events]

    def test_release_needs_route(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])

        with pytest.raises(InvalidStateError):
            release_order(db_session, order)
        assert order.status == "draft"

    def test_scheduled_order_can_be_released(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])
        schedule_production(db_session, order, start_at=MONDAY)
        assert order.status == "planned"

        queued = release_order(db_session, order, now=MONDAY)

        assert [s.name for s in queued] == ["Stamp"]

    def test_released_order_cannot_be_released_again(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])
        build_route_from_routing(db_session, order, press_line["routing"])
        release_order(db_session, order, now=MONDAY)

        with pytest.raises(InvalidStateError):
            release_order(db_session, order, now=MONDAY)


class TestCancel:

    def test_cancel_cascades_down_the_tree(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])
        schedule_production(db_session, order, start_at=MONDAY)
        child, = order.children

        cancel_order(db_session, order, actor_id=3, reason="customer withdrew", now=MONDAY)

        assert order.status == "cancelled"
        assert order.cancelled_at == MONDAY
        assert "customer withdrew" in order.notes
        assert child.status == "cancelled"
        assert {s.status for s in order.active_route.steps} == {"skipped"}
        assert {s.status for s in order.schedules} == {"cancelled"}
        assert order.child_orders_count == 0

    def test_cancelling_child_updates_parent_counters(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])
        child, = order.children

        cancel_order(db_session, child)

        db_session.refresh(order)
        assert order.status == "draft"
        assert order.child_orders_count == 0

    def test_cancelling_last_open_child_completes_parent(self, db_session):
        frame = create_test_item(db_session, name="Frame")
        wheel = create_test_item(db_session, name="Wheel")
        seat = create_test_item(db_session, name="Seat")
        bom = create_test_bom(db_session, frame, lines=[
            {"item": wheel, "quantity": 2},
            {"item": seat, "quantity": 1},
        ])
        order = create_test_order(db_session, frame, 1, bom=bom)
        wheel_order = db_session.query(ManufacturingOrder).filter_by(item_id=wheel.id).one()
        seat_order = db_session.query(ManufacturingOrder).filter_by(item_id=seat.id).one()

        complete_order(db_session, wheel_order, now=MONDAY)
        assert order.status == "draft"

        cancel_order(db_session, seat_order, reason="seat dropped from kit", now=MONDAY)

        db_session.refresh(order)
        assert order.child_orders_count == 1
        assert order.completed_child_orders_count == 1
        assert order.status == "completed"
        assert order.actual_end_date == MONDAY

    def test_cancelled_order_cannot_start_steps(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])
        build_route_from_routing(db_session, order, press_line["routing"])
        release_order(db_session, order, now=MONDAY)
        cancel_order(db_session, order, now=MONDAY)

        with pytest.raises(InvalidStateError):
            start_step(db_session, order.active_route.steps[0], now=MONDAY)

    def test_terminal_order_cannot_be_cancelled(self, db_session, press_line):
        order = create_test_order(db_session, press_line["press"], 2, bom=press_line["bom"])
        cancel_order(db_session, order)

        with pytest.raises(InvalidStateError):
            cancel_order(db_session, order)
