"""
Tests for scannable code assignment.
"""
import pytest

from mesflow.exceptions import ValidationError
from mesflow.services.codes import assign_codes, find_bom_item_by_code

from tests.factories import create_test_bom, create_test_item, find_bom_item


class SequentialCodes:
    """Generator stand-in producing predictable codes"""

    def __init__(self, prefix="QR"):
        self.prefix = prefix
        self.issued = 0

    def generate(self, bom_item):
        self.issued += 1
        return f"{self.prefix}-{bom_item.id}"


class ConstantCode:
    def generate(self, bom_item):
        return "SAME"


@pytest.fixture
def small_bom(db_session):
    lamp = create_test_item(db_session, name="Lamp")
    shade = create_test_item(db_session, name="Shade")
    bom = create_test_bom(db_session, lamp, lines=[{"item": shade, "quantity": 1}])
    return bom, shade


def test_assigns_codes_to_every_item(db_session, small_bom):
    bom, shade = small_bom
    generator = SequentialCodes()

    updated = assign_codes(db_session, bom.current_version, generator)

    assert len(updated) == 2
    node = find_bom_item(bom, shade)
    assert find_bom_item_by_code(db_session, f"QR-{node.id}").id == node.id


def test_existing_codes_kept_unless_overwrite(db_session, small_bom):
    bom, _ = small_bom
    version = bom.current_version
    assign_codes(db_session, version, SequentialCodes())

    generator = SequentialCodes(prefix="NEW")
    assert assign_codes(db_session, version, generator) == []
    assert generator.issued == 0

    assert len(assign_codes(db_session, version, generator, overwrite=True)) == 2


def test_duplicate_code_rejected(db_session, small_bom):
    bom, _ = small_bom
    with pytest.raises(ValidationError):
        assign_codes(db_session, bom.current_version, ConstantCode())
    assert find_bom_item_by_code(db_session, "SAME") is None


def test_unknown_code(db_session):
    assert find_bom_item_by_code(db_session, "missing") is None
