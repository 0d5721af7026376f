"""
BOM Service

Authoring and versioning of bills of material:
- BOM numbering (BOM-YYMM-NNNNN)
- Creating BOMs with an initial current version and root item
- Adding items with level and root invariants enforced
- Cloning versions (never mutating published ones)
- Version comparison and cost rollup
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from mesflow.db.session import transactional
from mesflow.exceptions import InvalidStateError, StructuralError, ValidationError
from mesflow.logging_config import get_logger
from mesflow.models import BillOfMaterial, BomItem, BomVersion, Item
from mesflow.schemas.bom import BomItemChange, CostLine, CostRollup, TreeIssue, VersionDiff

logger = get_logger(__name__)


def generate_bom_number(db: Session, now: Optional[datetime] = None) -> str:
    """Generate next BOM number in format BOM-YYMM-NNNNN"""
    now = now or datetime.utcnow()
    period = now.strftime("%y%m")
    last_bom = (
        db.query(BillOfMaterial)
        .filter(BillOfMaterial.bom_number.like(f"BOM-{period}-%"))
        .order_by(desc(BillOfMaterial.bom_number))
        .first()
    )

    if last_bom:
        last_num = int(last_bom.bom_number.split("-")[2])
        next_num = last_num + 1
    else:
        next_num = 1

    return f"BOM-{period}-{next_num:05d}"


def create_bill_of_material(
    db: Session,
    output_item: Item,
    name: Optional[str] = None,
    actor_id: Optional[int] = None,
    is_primary: bool = False,
    description: Optional[str] = None,
) -> BillOfMaterial:
    """
    Create a BOM with version 1 (current) and its root item.

    Marking the BOM primary demotes any other primary BOM of the same
    output item.
    """
    with transactional(db):
        if is_primary:
            _clear_primary(db, output_item.id)

        bom = BillOfMaterial(
            bom_number=generate_bom_number(db),
            name=name or output_item.name,
            description=description,
            output_item_id=output_item.id,
            is_primary=is_primary,
            created_by=actor_id,
        )
        db.add(bom)
        db.flush()

        version = BomVersion(
            bill_of_material=bom,
            version_number=1,
            is_current=True,
            created_by=actor_id,
        )
        db.add(version)
        db.flush()

        root = BomItem(
            bom_version=version,
            item_id=output_item.id,
            quantity=Decimal("1"),
            level=0,
            sequence_number=1,
        )
        db.add(root)
        db.flush()

    logger.info(
        f"Created BOM {bom.bom_number} for item {output_item.item_number}",
        extra={"bom_id": bom.id, "output_item_id": output_item.id},
    )
    return bom


def set_primary_bom(db: Session, bom: BillOfMaterial) -> BillOfMaterial:
    """Make ``bom`` the primary BOM of its output item."""
    with transactional(db):
        _clear_primary(db, bom.output_item_id, keep_id=bom.id)
        bom.is_primary = True
        bom.is_active = True
    return bom


def get_primary_bom(db: Session, item_id: int) -> Optional[BillOfMaterial]:
    """Active primary BOM of an item, if any."""
    return (
        db.query(BillOfMaterial)
        .filter(
            BillOfMaterial.output_item_id == item_id,
            BillOfMaterial.is_primary.is_(True),
            BillOfMaterial.is_active.is_(True),
        )
        .first()
    )


def _clear_primary(db: Session, item_id: int, keep_id: Optional[int] = None) -> None:
    query = db.query(BillOfMaterial).filter(
        BillOfMaterial.output_item_id == item_id,
        BillOfMaterial.is_primary.is_(True),
    )
    if keep_id is not None:
        query = query.filter(BillOfMaterial.id != keep_id)
    for other in query.all():
        other.is_primary = False


def add_bom_item(
    db: Session,
    version: BomVersion,
    item: Item,
    quantity,
    parent: Optional[BomItem] = None,
    sequence_number: Optional[int] = None,
    notes: Optional[str] = None,
) -> BomItem:
    """
    Add a node to a version's tree.

    Raises:
        ValidationError: quantity <= 0, or parent from another version
        InvalidStateError: version already published
        StructuralError: second root, or root item differs from the BOM output
    """
    quantity = Decimal(str(quantity))
    if quantity <= 0:
        raise ValidationError("BOM item quantity must be greater than zero", field="quantity", value=quantity)
    if version.is_published:
        raise InvalidStateError(
            f"BOM version {version.version_number} is published; clone it to make changes",
            current_state="published",
        )

    if parent is None:
        if version.root_items:
            raise StructuralError(
                "BOM version already has a root item",
                bom_id=version.bill_of_material_id, version_id=version.id,
            )
        if item.id != version.bill_of_material.output_item_id:
            raise StructuralError(
                "Root item must be the BOM output item",
                bom_id=version.bill_of_material_id, version_id=version.id,
            )
        level = 0
    else:
        if parent.bom_version_id != version.id:
            raise ValidationError("Parent item belongs to a different BOM version", field="parent_id", value=parent.id)
        level = parent.level + 1

    if sequence_number is None:
        siblings = parent.children if parent is not None else []
        sequence_number = max((s.sequence_number for s in siblings), default=0) + 1

    bom_item = BomItem(
        bom_version=version,
        parent=parent,
        item_id=item.id,
        quantity=quantity,
        unit_of_measure=item.unit_of_measure,
        level=level,
        sequence_number=sequence_number,
        notes=notes,
    )
    db.add(bom_item)
    db.flush()
    return bom_item


def publish_version(db: Session, version: BomVersion, actor_id: Optional[int] = None) -> BomVersion:
    """Freeze a version. Published versions only change by cloning."""
    if version.is_published:
        raise InvalidStateError("BOM version is already published", current_state="published")
    issues = validate_version_tree(version)
    if issues:
        raise StructuralError(
            f"Cannot publish BOM version with structural problems: {issues[0].issue}",
            bom_id=version.bill_of_material_id,
            version_id=version.id,
            details={"issues": [i.model_dump() for i in issues]},
        )
    with transactional(db):
        version.published_at = datetime.utcnow()
        version.published_by = actor_id
    return version


def set_current_version(db: Session, bom: BillOfMaterial, version: BomVersion) -> BomVersion:
    """Make ``version`` the single current version of ``bom``."""
    if version.bill_of_material_id != bom.id:
        raise ValidationError("Version does not belong to this BOM", field="version_id", value=version.id)
    with transactional(db):
        for other in bom.versions:
            other.is_current = other.id == version.id
    return version


def create_version(
    db: Session,
    bom: BillOfMaterial,
    actor_id: Optional[int] = None,
    change_notes: Optional[str] = None,
    copy_from: Optional[BomVersion] = None,
    make_current: bool = True,
) -> BomVersion:
    """
    Create the next version of a BOM, optionally cloning another version's tree.

    Cloned items get new ids with parent links rewired to the clones.
    Routings and scannable codes stay with the source items.
    """
    with transactional(db):
        next_number = max((v.version_number for v in bom.versions), default=0) + 1
        version = BomVersion(
            bill_of_material=bom,
            version_number=next_number,
            change_notes=change_notes,
            created_by=actor_id,
            is_current=False,
        )
        db.add(version)
        db.flush()

        if copy_from is not None:
            _clone_items(db, copy_from, version)

        if make_current:
            for other in bom.versions:
                other.is_current = other.id == version.id

    logger.info(
        f"Created BOM {bom.bom_number} version {next_number}",
        extra={"bom_id": bom.id, "copied_from": copy_from.id if copy_from else None},
    )
    return version


def _clone_items(db: Session, source: BomVersion, target: BomVersion) -> None:
    # Parents first so every clone's parent already has a clone
    id_map: Dict[int, BomItem] = {}
    for item in sorted(source.items, key=lambda i: (i.level, i.sequence_number, i.id)):
        clone = BomItem(
            bom_version=target,
            parent=id_map.get(item.parent_id) if item.parent_id else None,
            item_id=item.item_id,
            quantity=item.quantity,
            unit_of_measure=item.unit_of_measure,
            level=item.level,
            sequence_number=item.sequence_number,
            reference_designators=item.reference_designators,
            notes=item.notes,
        )
        db.add(clone)
        id_map[item.id] = clone
    db.flush()


def validate_version_tree(version: BomVersion) -> List[TreeIssue]:
    """
    Check the tree invariants of a version.

    Returns a list of problems; empty means the tree is sound.
    """
    issues: List[TreeIssue] = []
    roots = version.root_items
    output_item_id = version.bill_of_material.output_item_id

    if not roots:
        issues.append(TreeIssue(issue="BOM version has no root item"))
    elif len(roots) > 1:
        for root in roots:
            issues.append(TreeIssue(bom_item_id=root.id, issue="BOM version has more than one root item"))
    elif roots[0].item_id != output_item_id:
        issues.append(TreeIssue(bom_item_id=roots[0].id, issue="Root item does not match BOM output item"))

    for item in version.items:
        if Decimal(str(item.quantity)) <= 0:
            issues.append(TreeIssue(bom_item_id=item.id, issue="Quantity must be greater than zero"))
        expected_level = 0 if item.parent is None else item.parent.level + 1
        if item.level != expected_level:
            issues.append(TreeIssue(bom_item_id=item.id, issue=f"Level {item.level} should be {expected_level}"))

    return issues


def require_root_item(bom: BillOfMaterial, expected_item_id: int) -> BomItem:
    """
    Root item of the current version, checked against ``expected_item_id``.

    Raises:
        StructuralError: no current version, no root, several roots, or mismatch
    """
    version = bom.current_version
    if version is None:
        raise StructuralError(f"BOM {bom.bom_number} has no current version", bom_id=bom.id)

    roots = version.root_items
    if not roots:
        raise StructuralError(
            f"BOM {bom.bom_number} has no root item", bom_id=bom.id, version_id=version.id
        )
    if len(roots) > 1:
        raise StructuralError(
            f"BOM {bom.bom_number} has {len(roots)} root items", bom_id=bom.id, version_id=version.id
        )
    root = roots[0]
    if root.item_id != expected_item_id:
        raise StructuralError(
            f"Root item of BOM {bom.bom_number} does not match the order item",
            bom_id=bom.id,
            version_id=version.id,
            details={"root_item_id": root.item_id, "expected_item_id": expected_item_id},
        )
    return root


def compare_versions(from_version: BomVersion, to_version: BomVersion) -> VersionDiff:
    """Diff two versions by item id (quantities summed when an item repeats)."""
    def totals(version: BomVersion) -> Dict[int, Decimal]:
        result: Dict[int, Decimal] = {}
        for bom_item in version.items:
            if bom_item.parent_id is None:
                continue  # root is the output item
            result[bom_item.item_id] = result.get(bom_item.item_id, Decimal("0")) + Decimal(str(bom_item.quantity))
        return result

    old, new = totals(from_version), totals(to_version)
    changed = [
        BomItemChange(item_id=item_id, old_quantity=old[item_id], new_quantity=new[item_id])
        for item_id in sorted(old.keys() & new.keys())
        if old[item_id] != new[item_id]
    ]
    return VersionDiff(
        from_version_id=from_version.id,
        to_version_id=to_version.id,
        added_item_ids=sorted(new.keys() - old.keys()),
        removed_item_ids=sorted(old.keys() - new.keys()),
        changed=changed,
    )


def cost_rollup(version: BomVersion) -> CostRollup:
    """
    Material cost of one unit of output.

    Only leaves are costed; an assembly's cost is the sum of what's under it.
    """
    lines: List[CostLine] = []
    missing: List[int] = []
    total = Decimal("0")

    for bom_item in version.items:
        if bom_item.parent_id is None or bom_item.children:
            continue
        unit_cost = bom_item.item.unit_cost
        if unit_cost is None:
            missing.append(bom_item.item_id)
            unit_cost = Decimal("0")
        extended_qty = bom_item.total_quantity()
        extended_cost = extended_qty * Decimal(str(unit_cost))
        total += extended_cost
        lines.append(CostLine(
            bom_item_id=bom_item.id,
            item_id=bom_item.item_id,
            level=bom_item.level,
            extended_quantity=extended_qty,
            unit_cost=Decimal(str(unit_cost)),
            extended_cost=extended_cost,
        ))

    return CostRollup(
        bom_version_id=version.id,
        total_cost=total,
        lines=lines,
        missing_cost_item_ids=sorted(set(missing)),
    )
