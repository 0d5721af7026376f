"""
Bill of Materials schemas
"""
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel


class BomItemChange(BaseModel):
    """Quantity change for one item between two versions"""
    item_id: int
    old_quantity: Decimal
    new_quantity: Decimal


class VersionDiff(BaseModel):
    """Items added, removed, or changed between two BOM versions (keyed by item id)"""
    from_version_id: int
    to_version_id: int
    added_item_ids: List[int] = []
    removed_item_ids: List[int] = []
    changed: List[BomItemChange] = []

    @property
    def is_identical(self) -> bool:
        return not (self.added_item_ids or self.removed_item_ids or self.changed)


class CostLine(BaseModel):
    bom_item_id: int
    item_id: int
    level: int
    extended_quantity: Decimal
    unit_cost: Decimal
    extended_cost: Decimal


class CostRollup(BaseModel):
    """Material cost for one unit of the BOM output"""
    bom_version_id: int
    total_cost: Decimal
    lines: List[CostLine] = []
    missing_cost_item_ids: List[int] = []


class TreeIssue(BaseModel):
    """A structural problem in a BOM version"""
    bom_item_id: Optional[int] = None
    issue: str
