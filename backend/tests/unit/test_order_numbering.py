"""
Tests for manufacturing order numbering.
"""
from datetime import datetime
from decimal import Decimal

from mesflow.models import ManufacturingOrder
from mesflow.services.order_numbering import generate_child_order_number, generate_order_number

from tests.factories import create_test_item


def _order(db, item, number, parent=None):
    order = ManufacturingOrder(
        order_number=number,
        item_id=item.id,
        parent=parent,
        quantity=Decimal("1"),
        status="draft",
    )
    db.add(order)
    db.flush()
    return order


class TestTopLevelNumbers:

    def test_first_order_of_month(self, db_session):
        assert generate_order_number(db_session, now=datetime(2025, 1, 15)) == "MO-00001-2501"

    def test_continues_monthly_sequence(self, db_session):
        item = create_test_item(db_session)
        _order(db_session, item, "MO-00041-2501")
        _order(db_session, item, "MO-00099-2412")

        assert generate_order_number(db_session, now=datetime(2025, 1, 31)) == "MO-00042-2501"
        assert generate_order_number(db_session, now=datetime(2025, 2, 1)) == "MO-00001-2502"

    def test_child_numbers_do_not_advance_top_level_sequence(self, db_session):
        item = create_test_item(db_session)
        parent = _order(db_session, item, "MO-00003-2501")
        _order(db_session, item, "MO-00003-2501-001", parent=parent)

        assert generate_order_number(db_session, now=datetime(2025, 1, 2)) == "MO-00004-2501"


class TestChildNumbers:

    def test_prefix_count_ignores_grandchildren(self, db_session):
        item = create_test_item(db_session)
        parent = _order(db_session, item, "MO-00001-2501")
        first = _order(db_session, item, "MO-00001-2501-001", parent=parent)
        _order(db_session, item, "MO-00001-2501-001-001", parent=first)
        _order(db_session, item, "MO-00001-2501-001-002", parent=first)

        assert generate_child_order_number(db_session, parent, mode="prefix_count") == "MO-00001-2501-002"
        assert generate_child_order_number(db_session, first, mode="prefix_count") == "MO-00001-2501-001-003"

    def test_per_parent_counter_is_monotonic(self, db_session):
        item = create_test_item(db_session)
        parent = _order(db_session, item, "MO-00001-2501")

        numbers = [generate_child_order_number(db_session, parent, mode="per_parent_counter") for _ in range(3)]

        assert numbers == ["MO-00001-2501-001", "MO-00001-2501-002", "MO-00001-2501-003"]
        assert parent.last_child_sequence == 3
