"""
Routing resolution schemas
"""
from typing import List, Optional
from pydantic import BaseModel


class InheritanceTreeNode(BaseModel):
    """One level of a BOM item's routing inheritance chain"""
    bom_item_id: int
    item_id: int
    level: int
    routing_id: Optional[int] = None
    routing_number: Optional[str] = None
    routing_type: Optional[str] = None


class RoutingValidationIssue(BaseModel):
    """A BOM item without a usable routing, or a step on an unusable work cell"""
    bom_item_id: Optional[int] = None
    item_id: Optional[int] = None
    routing_step_id: Optional[int] = None
    work_cell_id: Optional[int] = None
    issue: str


class EffectiveStep(BaseModel):
    """A resolved routing step with item-level adjustments applied"""
    routing_step_id: int
    step_number: int
    name: str
    work_cell_id: Optional[int] = None
    setup_time: float
    cycle_time: float
    tear_down_time: float
    step_type: str
    quality_check_mode: Optional[str] = None
    sampling_size: Optional[int] = None


class ResolvedRouting(BaseModel):
    """Which routing governs a node and where it came from"""
    bom_item_id: int
    routing_id: Optional[int] = None
    source_bom_item_id: Optional[int] = None
    inherited: bool = False
    steps: List[EffectiveStep] = []
