import logging

import pytest

from edi_errors import MappingConfigError
from field_mapping import FieldMappingRule, FieldMappingTable, apply_field_mappings, reverse_field_mappings

pytestmark = pytest.mark.unit


@pytest.fixture
def order_table() -> FieldMappingTable:
    return FieldMappingTable.from_dict({"id": "itemId", "qty": "quantity"}, name="orders", document_type="850")

# --- Table construction ---

def test_table_from_rules_accepts_document_map_shape():
    table = FieldMappingTable.from_rules([
        {"sourceField": "SKU", "targetField": "itemId"},
        FieldMappingRule(source_field="Qty", target_field="quantity"),
    ])
    assert dict(table.forward) == {"SKU": "itemId", "Qty": "quantity"}
    assert dict(table.reverse) == {"itemId": "SKU", "quantity": "Qty"}

def test_table_rejects_two_externals_for_one_canonical_field():
    with pytest.raises(MappingConfigError, match="maps both"):
        FieldMappingTable.from_dict({"id": "itemId", "sku": "itemId"})

def test_table_rejects_conflicting_rules_for_one_external_field():
    with pytest.raises(MappingConfigError):
        FieldMappingTable.from_rules([
            {"sourceField": "id", "targetField": "itemId"},
            {"sourceField": "id", "targetField": "lineNumber"},
        ])

def test_table_rejects_malformed_rules():
    with pytest.raises(MappingConfigError, match="malformed"):
        FieldMappingTable.from_rules([{"sourceField": "id"}])
    with pytest.raises(MappingConfigError):
        FieldMappingTable.from_dict({"": "itemId"})

def test_table_is_read_only(order_table: FieldMappingTable):
    with pytest.raises(TypeError):
        order_table.forward["new"] = "field"

def test_overlay_replaces_entries_sharing_a_name():
    base = FieldMappingTable.from_dict({"BEG03": "orderNumber", "PO107": "itemId", "PO102": "quantity"})
    partner = FieldMappingTable.from_dict({"PO109": "itemId"}, partner_id="acme")
    merged = base.overlay(partner)
    assert dict(merged.forward) == {"BEG03": "orderNumber", "PO102": "quantity", "PO109": "itemId"}
    assert merged.partner_id == "acme"

# --- Applying tables ---

def test_scenario_a_csv_rows_are_renamed(order_table: FieldMappingTable):
    rows = [{"id": "1", "qty": "5"}, {"id": "2", "qty": "3"}]
    assert apply_field_mappings(rows, order_table) == [
        {"itemId": "1", "quantity": "5"},
        {"itemId": "2", "quantity": "3"},
    ]

def test_unmapped_fields_pass_through_in_order(order_table: FieldMappingTable):
    rows = [{"note": "x", "id": "1", "extra": "y"}]
    mapped = apply_field_mappings(rows, order_table)
    assert list(mapped[0]) == ["note", "itemId", "extra"]

def test_input_rows_are_not_modified(order_table: FieldMappingTable):
    rows = [{"id": "1"}]
    apply_field_mappings(rows, order_table)
    assert rows == [{"id": "1"}]

def test_no_table_returns_copies():
    rows = [{"id": "1"}]
    copied = apply_field_mappings(rows, None)
    assert copied == rows
    assert copied[0] is not rows[0]

def test_plain_dict_is_accepted_as_mapping():
    assert apply_field_mappings([{"id": "1"}], {"id": "itemId"}) == [{"itemId": "1"}]

def test_mapped_field_wins_over_shadowed_pass_through(order_table: FieldMappingTable, caplog):
    with caplog.at_level(logging.WARNING, logger="field_mapping"):
        mapped = apply_field_mappings([{"itemId": "stale", "id": "1"}], order_table)
    assert mapped == [{"itemId": "1"}]
    assert "Dropping field 'itemId'" in caplog.text
    assert "'id'" in caplog.text

def test_mapping_is_invertible(order_table: FieldMappingTable):
    rows = [{"id": "1", "qty": "5", "note": "keep"}, {}, {"other": "z"}]
    assert reverse_field_mappings(apply_field_mappings(rows, order_table), order_table) == rows
    canonical = [{"itemId": "1", "quantity": "5"}]
    assert apply_field_mappings(reverse_field_mappings(canonical, order_table), order_table) == canonical

# --- Defaults and transforms ---

@pytest.fixture
def uom_table() -> FieldMappingTable:
    return FieldMappingTable.from_rules([
        {"sourceField": "SKU", "targetField": "itemId", "transform": "trim"},
        {"sourceField": "UOM", "targetField": "unitOfMeasure", "defaultValue": "EA", "transform": "uppercase"},
        {"sourceField": "Qty", "targetField": "quantity"},
    ])

def test_default_value_fills_missing_and_empty_fields(uom_table: FieldMappingTable):
    rows = [{"UOM": "cs"}, {"UOM": ""}, {}]
    assert apply_field_mappings(rows, uom_table) == [
        {"unitOfMeasure": "CS"},
        {"unitOfMeasure": "EA"},
        {"unitOfMeasure": "EA"},
    ]

def test_string_transforms_apply_both_ways(uom_table: FieldMappingTable):
    mapped = apply_field_mappings([{"SKU": "  A-1 ", "UOM": "ea", "Qty": "2"}], uom_table)
    assert mapped == [{"itemId": "A-1", "unitOfMeasure": "EA", "quantity": "2"}]
    assert reverse_field_mappings([{"itemId": " B-2", "unitOfMeasure": "cs"}], uom_table) == [
        {"SKU": "B-2", "UOM": "CS"}
    ]

@pytest.mark.parametrize("transform,raw,expected", [
    ("number", " 1,250.50 ", "1250.50"),
    ("number", "n/a", "n/a"),
    ("date", "01/31/2024", "2024-01-31"),
    ("date", "20240131", "2024-01-31"),
    ("date", "someday", "someday"),
    ("boolean", "Yes", "true"),
    ("boolean", "0", "false"),
    ("lowercase", "ABC", "abc"),
])
def test_value_transforms(transform: str, raw: str, expected: str):
    table = FieldMappingTable.from_rules([{"sourceField": "in", "targetField": "out", "transform": transform}])
    assert apply_field_mappings([{"in": raw}], table) == [{"out": expected}]

def test_unknown_transform_is_a_config_error():
    with pytest.raises(MappingConfigError, match="malformed"):
        FieldMappingTable.from_rules([{"sourceField": "a", "targetField": "b", "transform": "reverse"}])

def test_overlay_keeps_value_rules_of_surviving_entries(uom_table: FieldMappingTable):
    partner = FieldMappingTable.from_rules([{"sourceField": "Item", "targetField": "itemId"}])
    merged = uom_table.overlay(partner)
    assert [rule.source_field for rule in merged.value_rules] == ["UOM"]
    assert apply_field_mappings([{"Item": " X ", "UOM": ""}], merged) == [{"itemId": " X ", "unitOfMeasure": "EA"}]
