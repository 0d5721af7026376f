"""
Item model - catalog entries used by BOMs and manufacturing orders
"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import relationship

from mesflow.db.base import Base


class Item(Base):
    """
    A catalog entry.

    Capability flags are independent (an item can be both manufactured and
    purchased). An item that is itself an assembly owns a primary BOM: the
    active BillOfMaterial flagged ``is_primary`` whose output is this item.
    """
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    item_number = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    unit_of_measure = Column(String(20), default="EA", nullable=False)
    unit_cost = Column(Numeric(18, 4), nullable=True)

    # Capability flags
    can_be_manufactured = Column(Boolean, default=False, nullable=False)
    can_be_purchased = Column(Boolean, default=False, nullable=False)
    can_be_sold = Column(Boolean, default=False, nullable=False)
    is_phantom = Column(Boolean, default=False, nullable=False)

    # Free-form attributes, e.g. {"cycle_time_multiplier": 1.5}
    custom_attributes = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    bills_of_material = relationship(
        "BillOfMaterial", back_populates="output_item",
        foreign_keys="BillOfMaterial.output_item_id",
    )
    primary_bom = relationship(
        "BillOfMaterial",
        primaryjoin=(
            "and_(Item.id == BillOfMaterial.output_item_id, "
            "BillOfMaterial.is_primary == True, BillOfMaterial.is_active == True)"
        ),
        foreign_keys="BillOfMaterial.output_item_id",
        uselist=False,
        viewonly=True,
    )

    def __repr__(self):
        return f"<Item {self.item_number}: {self.name}>"

    def get_attribute(self, key: str, default=None):
        """Read one custom attribute."""
        return (self.custom_attributes or {}).get(key, default)

