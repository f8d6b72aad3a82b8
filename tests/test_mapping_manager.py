import pytest
import json
import threading
from pathlib import Path

from edi_errors import MappingConfigError
from field_mapping import apply_field_mappings
from mapping_manager import MappingManager, load_mapping_file

pytestmark = pytest.mark.unit

def test_mapping_manager_init_and_load_base_tables(mapping_dir: Path):
    manager = MappingManager(str(mapping_dir))
    assert "850" in manager._base_tables
    assert manager.list_document_types() == ["850"]  # malformed.json fails to load

def test_get_mapping_base(mapping_dir: Path):
    manager = MappingManager(str(mapping_dir))
    table = manager.get_mapping("850")
    assert table is not None
    assert table.name == "Base 850 CSV"
    assert table.canonical_for("PO Number") == "orderNumber"

def test_get_mapping_partner_specific(mapping_dir: Path):
    manager = MappingManager(str(mapping_dir))
    table = manager.get_mapping("850", "acme")
    assert table is not None
    assert table.name == "ACME 850"
    assert table.partner_id == "acme"
    assert table.canonical_for("Units") == "quantity"

def test_get_mapping_partner_fallback_to_base(mapping_dir: Path):
    manager = MappingManager(str(mapping_dir))
    table = manager.get_mapping("850", "globex")
    assert table is not None
    assert table.name == "Base 850 CSV"

def test_get_mapping_not_found(mapping_dir: Path):
    manager = MappingManager(str(mapping_dir))
    assert manager.get_mapping("810", "acme") is None

def test_get_mapping_caching(mapping_dir: Path):
    manager = MappingManager(str(mapping_dir))

    # First call should load from file
    table1 = manager.get_mapping("850", "acme")
    assert "acme" in manager._partner_cache

    # To prove it's cached, delete the file and get it again
    (mapping_dir / "partner-specific" / "acme" / "850_acme.json").unlink()

    table2 = manager.get_mapping("850", "acme")
    assert table2 is not None
    assert table1 == table2

def test_reload_mappings(mapping_dir: Path):
    manager = MappingManager(str(mapping_dir))
    assert "810" not in manager.list_document_types()

    new_map = {
        "documentType": "810",
        "mapName": "Base 810",
        "mappingRules": [{"sourceField": "Invoice", "targetField": "invoiceNumber"}],
    }
    (mapping_dir / "810_base.json").write_text(json.dumps(new_map))

    manager.reload()

    assert "810" in manager.list_document_types()
    assert manager.get_mapping("810").canonical_for("Invoice") == "invoiceNumber"

def test_ambiguous_mapping_file_is_skipped(tmp_path: Path):
    ambiguous = {
        "documentType": "850",
        "mappingRules": [
            {"sourceField": "A", "targetField": "itemId"},
            {"sourceField": "B", "targetField": "itemId"},
        ],
    }
    (tmp_path / "ambiguous.json").write_text(json.dumps(ambiguous))
    manager = MappingManager(str(tmp_path))
    assert manager.get_mapping("850") is None

def test_load_mapping_file_raises_for_malformed_file(mapping_dir: Path):
    with pytest.raises(MappingConfigError):
        load_mapping_file(mapping_dir / "malformed.json")

def test_load_mapping_file_defaults_name_to_file_stem(tmp_path: Path):
    path = tmp_path / "orders.json"
    path.write_text(json.dumps({"documentType": "850", "mappingRules": []}))
    table = load_mapping_file(path)
    assert table.name == "orders"
    assert len(table) == 0

def test_mapping_manager_with_non_existent_path():
    manager = MappingManager("/non/existent/path")
    assert not manager._base_tables
    assert manager.get_mapping("850", "any-partner") is None

def test_mapping_file_rules_keep_defaults_and_transforms(tmp_path: Path):
    path = tmp_path / "850_uom.json"
    path.write_text(json.dumps({
        "documentType": "850",
        "mappingRules": [{"sourceField": "UOM", "targetField": "unitOfMeasure", "defaultValue": "EA", "transform": "uppercase"}],
    }))
    table = load_mapping_file(path)
    assert apply_field_mappings([{"UOM": "ea"}, {}], table) == [{"unitOfMeasure": "EA"}, {"unitOfMeasure": "EA"}]

def test_get_mapping_by_direction(mapping_dir: Path):
    outbound = {
        "documentType": "850",
        "mapName": "ACME 850 outbound",
        "direction": "outbound",
        "mappingRules": [{"sourceField": "Order #", "targetField": "orderNumber"}],
    }
    (mapping_dir / "partner-specific" / "acme" / "850_acme_out.json").write_text(json.dumps(outbound))
    manager = MappingManager(str(mapping_dir))

    assert manager.get_mapping("850", "acme", "outbound").name == "ACME 850 outbound"
    assert manager.get_mapping("850", "acme", "inbound").name == "ACME 850"
    assert manager.get_mapping("850", "acme").name == "ACME 850"
    assert manager.get_mapping("850", None, "outbound").name == "Base 850 CSV"

def test_invalid_direction_is_skipped(tmp_path: Path):
    bad = {"documentType": "850", "direction": "sideways", "mappingRules": []}
    (tmp_path / "bad.json").write_text(json.dumps(bad))
    manager = MappingManager(str(tmp_path))
    assert manager.get_mapping("850") is None

def test_partner_tables_load_once_across_threads(mapping_dir: Path):
    manager = MappingManager(str(mapping_dir))
    results = []

    def worker():
        results.append(manager.get_mapping("850", "acme"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 8
    assert all(table is results[0] for table in results)
