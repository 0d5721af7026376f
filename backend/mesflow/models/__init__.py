"""Database models"""
from mesflow.models.item import Item
from mesflow.models.bom import BillOfMaterial, BomVersion, BomItem
from mesflow.models.routing import ProductionRouting, RoutingStep
from mesflow.models.work_cell import WorkCell, ProductionSchedule
from mesflow.models.manufacturing_order import (
    ManufacturingOrder, ManufacturingRoute, ManufacturingStep, ManufacturingStepExecution
)
from mesflow.models.production_event import ProductionEvent

__all__ = [
    # Catalog
    "Item",
    # Bills of material
    "BillOfMaterial",
    "BomVersion",
    "BomItem",
    # Routings
    "ProductionRouting",
    "RoutingStep",
    # Capacity
    "WorkCell",
    "ProductionSchedule",
    # Orders and execution
    "ManufacturingOrder",
    "ManufacturingRoute",
    "ManufacturingStep",
    "ManufacturingStepExecution",
    "ProductionEvent",
]
