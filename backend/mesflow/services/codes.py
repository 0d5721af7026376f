"""
Scannable code assignment

Codes are produced by an external generator and only stored and compared
here; the encoding (QR payload, image) is not this package's concern.
"""
from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from mesflow.db.session import transactional
from mesflow.exceptions import ValidationError
from mesflow.models import BomItem, BomVersion


class CodeGenerator(Protocol):
    """Given a BOM item, return a unique scannable code string."""

    def generate(self, bom_item: BomItem) -> str:
        ...


def assign_codes(
    db: Session,
    version: BomVersion,
    generator: CodeGenerator,
    overwrite: bool = False,
) -> List[BomItem]:
    """
    Store generated codes on a version's items.

    Items that already carry a code are left alone unless ``overwrite``.
    Returns the items that received a new code.
    """
    updated = []
    with transactional(db):
        for bom_item in version.items:
            if bom_item.qr_code and not overwrite:
                continue
            code = generator.generate(bom_item)
            if not code:
                raise ValidationError("Code generator returned an empty code", field="qr_code")
            clash = find_bom_item_by_code(db, code)
            if clash is not None and clash.id != bom_item.id:
                raise ValidationError(f"Code {code} is already assigned", field="qr_code", value=code)
            bom_item.qr_code = code
            db.flush()
            updated.append(bom_item)
    return updated


def find_bom_item_by_code(db: Session, code: str) -> Optional[BomItem]:
    return db.query(BomItem).filter(BomItem.qr_code == code).first()
