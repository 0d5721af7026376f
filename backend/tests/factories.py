"""
Test data factories for MesFlow.

Provides functions to create test entities with sensible defaults.
BOMs, routings and orders go through the services so the tree and
numbering invariants hold for every test.

Usage:
    from tests.factories import create_test_item, create_test_bom

    def test_something(db_session):
        frame = create_test_item(db_session, name="Frame")
        bike = create_test_item(db_session, name="Bike")
        bom = create_test_bom(db_session, bike, lines=[{"item": frame, "quantity": 2}])
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session


# =============================================================================
# SEQUENCE MANAGEMENT
# =============================================================================

_sequences: Dict[str, int] = {}


def reset_sequences():
    """Reset all sequences. Call between tests for predictable codes."""
    global _sequences
    _sequences = {}


def _next(name: str) -> int:
    """Get next sequence number for a given entity type."""
    _sequences[name] = _sequences.get(name, 0) + 1
    return _sequences[name]


# =============================================================================
# ITEM FACTORY
# =============================================================================

def create_test_item(
    db: Session,
    name: Optional[str] = None,
    item_number: Optional[str] = None,
    **overrides
) -> "Item":
    """
    Create a test item.

    Args:
        db: Database session
        name: Item name (auto-generated if not provided)
        item_number: Item number (auto-generated if not provided)
        **overrides: Additional field overrides

    Returns:
        Created Item instance
    """
    from mesflow.models.item import Item

    seq = _next("item")

    item = Item(
        item_number=item_number or f"ITEM-{seq:04d}",
        name=name or f"Test Item {seq}",
        unit_of_measure=overrides.pop("unit_of_measure", "EA"),
        unit_cost=overrides.pop("unit_cost", None),
        can_be_manufactured=overrides.pop("can_be_manufactured", True),
        is_active=overrides.pop("is_active", True),
        **overrides
    )
    db.add(item)
    db.flush()
    return item


# =============================================================================
# WORK CELL FACTORY
# =============================================================================

def create_test_work_cell(
    db: Session,
    code: Optional[str] = None,
    name: Optional[str] = None,
    **overrides
) -> "WorkCell":
    """Create a work cell (8 hours/day at 100% unless overridden)."""
    from mesflow.models.work_cell import WorkCell

    seq = _next("work_cell")

    cell = WorkCell(
        code=code or f"WC-{seq:03d}",
        name=name or f"Work Cell {seq}",
        cell_type=overrides.pop("cell_type", "internal"),
        available_hours_per_day=Decimal(str(overrides.pop("available_hours_per_day", 8))),
        efficiency_percentage=Decimal(str(overrides.pop("efficiency_percentage", 100))),
        is_active=overrides.pop("is_active", True),
        **overrides
    )
    db.add(cell)
    db.flush()
    return cell


# =============================================================================
# BOM FACTORY
# =============================================================================

def create_test_bom(
    db: Session,
    output_item: "Item",
    lines: Optional[List[Dict[str, Any]]] = None,
    is_primary: bool = False,
    **overrides
) -> "BillOfMaterial":
    """
    Create a BOM whose current version holds a root item plus ``lines``.

    Args:
        db: Database session
        output_item: Item the BOM produces (becomes the root node)
        lines: List of {"item": Item, "quantity": n, "children": [...]};
            children nest under the line's node
        is_primary: Make this the output item's primary BOM

    Returns:
        Created BillOfMaterial instance
    """
    from mesflow.services.bom_service import add_bom_item, create_bill_of_material

    bom = create_bill_of_material(
        db,
        output_item,
        name=overrides.pop("name", None),
        is_primary=is_primary,
        actor_id=overrides.pop("actor_id", None),
    )
    version = bom.current_version

    def _add(parent, line_specs):
        for line in line_specs:
            node = add_bom_item(
                db,
                version,
                line["item"],
                line.get("quantity", 1),
                parent=parent,
                sequence_number=line.get("sequence_number"),
            )
            _add(node, line.get("children", []))

    _add(version.root_item, lines or [])
    db.flush()
    return bom


def find_bom_item(bom: "BillOfMaterial", item: "Item") -> "BomItem":
    """First node for ``item`` in the BOM's current version."""
    for bom_item in bom.current_version.items:
        if bom_item.item_id == item.id:
            return bom_item
    raise LookupError(f"{item.item_number} is not in {bom.bom_number}")


# =============================================================================
# ROUTING FACTORY
# =============================================================================

def create_test_routing(
    db: Session,
    bom_item: "BomItem",
    steps: Optional[List[Dict[str, Any]]] = None,
    name: Optional[str] = None,
    cache=None,
) -> "ProductionRouting":
    """
    Attach a defined routing with ``steps`` to a BOM item.

    Args:
        db: Database session
        bom_item: Node the routing is attached to
        steps: List of add_routing_step keyword dicts, e.g.
            {"name": "Cut", "work_cell": cell, "cycle_time": 2}
        name: Routing name
        cache: Routing cache to invalidate (process cache by default)

    Returns:
        Created ProductionRouting instance
    """
    from mesflow.services.routing_resolver import add_routing_step, attach_routing

    seq = _next("routing")
    routing = attach_routing(db, bom_item, name=name or f"Test Routing {seq}", cache=cache)
    for step_def in steps or []:
        add_routing_step(db, routing, **step_def)
    db.flush()
    return routing


# =============================================================================
# ORDER FACTORY
# =============================================================================

def create_test_order(
    db: Session,
    item: "Item",
    quantity=1,
    bom: Optional["BillOfMaterial"] = None,
    explode: bool = True,
    **overrides
) -> "ManufacturingOrder":
    """Create a top-level order through the order service (exploded when it has a BOM)."""
    from mesflow.services.manufacturing_order_service import create_order

    return create_order(
        db,
        item,
        quantity,
        bill_of_material=bom,
        explode=explode,
        **overrides
    )


# =============================================================================
# SCHEDULE FACTORY
# =============================================================================

def create_test_schedule(
    db: Session,
    order: "ManufacturingOrder",
    work_cell: "WorkCell",
    start: datetime,
    end: datetime,
    status: str = "scheduled",
    **overrides
) -> "ProductionSchedule":
    """Book an interval directly, bypassing conflict checks."""
    from mesflow.models.work_cell import ProductionSchedule

    schedule = ProductionSchedule(
        manufacturing_order_id=order.id,
        work_cell_id=work_cell.id,
        scheduled_start=start,
        scheduled_end=end,
        status=status,
        **overrides
    )
    db.add(schedule)
    db.flush()
    return schedule
