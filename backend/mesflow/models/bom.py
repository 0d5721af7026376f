"""
Bill of Materials models

BillOfMaterial -> BomVersion -> BomItem tree. Items in a version form a
tree through ``parent_id``; the root item's underlying item must be the
BOM's output item.
"""
from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from mesflow.db.base import Base


class BillOfMaterial(Base):
    """What is produced, plus an ordered list of versions (one current)."""
    __tablename__ = "bill_of_materials"

    id = Column(Integer, primary_key=True, index=True)
    bom_number = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    output_item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)

    # The primary BOM of its output item drives explosion re-rooting
    is_primary = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    output_item = relationship("Item", back_populates="bills_of_material", foreign_keys=[output_item_id])
    versions = relationship(
        "BomVersion", back_populates="bill_of_material",
        cascade="all, delete-orphan", order_by="BomVersion.version_number",
    )

    def __repr__(self):
        return f"<BillOfMaterial {self.bom_number} output_item_id={self.output_item_id}>"

    @property
    def current_version(self):
        for version in self.versions:
            if version.is_current:
                return version
        return None


class BomVersion(Base):
    """
    A snapshot of a BOM's item tree.

    Published versions are never mutated; new revisions are produced by
    cloning. At most one version per BOM has ``is_current = True``.
    """
    __tablename__ = "bom_versions"
    __table_args__ = (
        UniqueConstraint("bill_of_material_id", "version_number", name="uq_bom_version_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_of_material_id = Column(
        Integer, ForeignKey("bill_of_materials.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_number = Column(Integer, nullable=False)
    version_name = Column(String(100), nullable=True)
    change_notes = Column(Text, nullable=True)
    is_current = Column(Boolean, default=False, nullable=False)

    published_at = Column(DateTime, nullable=True)
    published_by = Column(Integer, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    bill_of_material = relationship("BillOfMaterial", back_populates="versions")
    items = relationship(
        "BomItem", back_populates="bom_version",
        cascade="all, delete-orphan", order_by="[BomItem.level, BomItem.sequence_number]",
    )

    def __repr__(self):
        return f"<BomVersion bom_id={self.bill_of_material_id} v{self.version_number}>"

    @property
    def is_published(self) -> bool:
        return self.published_at is not None

    @property
    def root_items(self) -> List["BomItem"]:
        return [i for i in self.items if i.parent_id is None]

    @property
    def root_item(self):
        roots = self.root_items
        return roots[0] if len(roots) == 1 else None


class BomItem(Base):
    """
    A node in the BOM tree.

    ``quantity`` is the per-parent multiplier, ``level`` the depth (0 for
    the root), siblings are ordered by ``sequence_number``.
    """
    __tablename__ = "bom_items"

    id = Column(Integer, primary_key=True, index=True)
    bom_version_id = Column(Integer, ForeignKey("bom_versions.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("bom_items.id"), nullable=True, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)

    quantity = Column(Numeric(18, 4), default=1, nullable=False)
    unit_of_measure = Column(String(20), default="EA", nullable=False)
    level = Column(Integer, default=0, nullable=False)
    sequence_number = Column(Integer, default=1, nullable=False)
    reference_designators = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Opaque scannable code supplied by an external generator
    qr_code = Column(String(255), nullable=True, unique=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    bom_version = relationship("BomVersion", back_populates="items")
    item = relationship("Item")
    parent = relationship("BomItem", remote_side=[id], back_populates="children")
    children = relationship("BomItem", back_populates="parent", order_by="BomItem.sequence_number")
    routings = relationship("ProductionRouting", back_populates="bom_item", order_by="ProductionRouting.id")

    def __repr__(self):
        return f"<BomItem {self.id} item_id={self.item_id} qty={self.quantity} level={self.level}>"

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def routing(self):
        """The active routing attached directly to this node, if any."""
        active = [r for r in self.routings if r.is_active]
        return active[-1] if active else None

    def ancestors(self) -> List["BomItem"]:
        """Parent chain, nearest first."""
        result = []
        node = self.parent
        while node is not None:
            result.append(node)
            node = node.parent
        return result

    def descendants(self) -> List["BomItem"]:
        """All nodes below this one, depth-first in sequence order."""
        result = []
        for child in self.children:
            result.append(child)
            result.extend(child.descendants())
        return result

    def total_quantity(self) -> Decimal:
        """Quantity per one unit of the root: product of quantities along the path."""
        total = Decimal(str(self.quantity))
        for ancestor in self.ancestors():
            if ancestor.parent_id is None:
                break  # the root anchors the tree, its own quantity is the order quantity
            total *= Decimal(str(ancestor.quantity))
        return total
