import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from edi_errors import MappingConfigError
from field_mapping import FieldMappingRule, FieldMappingTable

logger = logging.getLogger(__name__)

PARTNER_DIRECTORY = "partner-specific"

Direction = Literal["inbound", "outbound"]
# Document type -> direction (None for maps used both ways) -> table
TableIndex = Dict[str, Dict[Optional[str], FieldMappingTable]]


class DocumentMapFile(BaseModel):
    """On-disk document map: ``{"documentType", "mapName", "direction"?, "mappingRules": [...]}``."""
    documentType: str
    mapName: str = ""
    direction: Optional[Direction] = None
    mappingRules: List[FieldMappingRule] = Field(default_factory=list)


def load_mapping_file(path: Path, partner_id: Optional[str] = None) -> FieldMappingTable:
    """
    Read one document map file into a validated table.

    Raises:
        MappingConfigError: if the file is unreadable, malformed or ambiguous.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            document_map = DocumentMapFile.model_validate(json.load(f))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise MappingConfigError(f"Cannot load mapping file {path.name}: {e}") from e
    return FieldMappingTable.from_rules(
        document_map.mappingRules,
        name=document_map.mapName or path.stem,
        document_type=document_map.documentType,
        partner_id=partner_id,
        direction=document_map.direction,
    )


def _select(tables: TableIndex, document_type: str, direction: Optional[str]) -> Optional[FieldMappingTable]:
    by_direction = tables.get(document_type, {})
    candidates = (direction, None) if direction is not None else (None, "inbound", "outbound")
    for candidate in candidates:
        if candidate in by_direction:
            return by_direction[candidate]
    return None


class MappingManager:
    """
    Loads field mapping tables from the filesystem.

    Base tables live in ``base_path/*.json`` and are keyed by document type and
    direction. Partner overrides live in ``base_path/partner-specific/<partner_id>/*.json``
    and are loaded and cached on first use.
    """

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self._base_tables: TableIndex = {}
        self._partner_cache: Dict[str, TableIndex] = {}
        self._lock = threading.Lock()
        self._load_base_tables()

    def _load_directory(self, directory: Path, partner_id: Optional[str] = None) -> TableIndex:
        tables: TableIndex = {}
        for mapping_file in sorted(directory.glob("*.json")):
            try:
                table = load_mapping_file(mapping_file, partner_id)
            except MappingConfigError as e:
                logger.error(f"Failed to load mapping {mapping_file.name}: {e}")
                continue
            by_direction = tables.setdefault(table.document_type, {})
            if table.direction in by_direction:
                logger.warning(f"Mapping {mapping_file.name} replaces an earlier map for document type {table.document_type}")
            by_direction[table.direction] = table
            logger.info(f"Loaded mapping '{table.name}' for document type {table.document_type}")
        return tables

    def _load_base_tables(self) -> None:
        if not self.base_path.exists():
            logger.warning(f"Mapping base path does not exist: {self.base_path}")
            return
        logger.info(f"Loading base field mappings from: {self.base_path}")
        self._base_tables = self._load_directory(self.base_path)

    def _partner_tables(self, partner_id: str) -> TableIndex:
        with self._lock:
            if partner_id not in self._partner_cache:
                partner_dir = self.base_path / PARTNER_DIRECTORY / partner_id
                tables = self._load_directory(partner_dir, partner_id) if partner_dir.is_dir() else {}
                self._partner_cache[partner_id] = tables
            return self._partner_cache[partner_id]

    def get_mapping(
        self,
        document_type: str,
        partner_id: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> Optional[FieldMappingTable]:
        """
        Mapping for a document type, preferring the partner's own table over the base one.

        Args:
            document_type: Transaction set code the table applies to (e.g. "850")
            partner_id: Trading partner identifier
            direction: "inbound" or "outbound"; a map without a direction serves both

        Returns:
            FieldMappingTable or None if no table is configured
        """
        if partner_id:
            table = _select(self._partner_tables(partner_id), document_type, direction)
            if table is not None:
                logger.debug(f"Using partner mapping for {partner_id}/{document_type}")
                return table
        table = _select(self._base_tables, document_type, direction)
        if table is None:
            logger.debug(f"No mapping configured for document type {document_type}")
        return table

    def get_base_mapping(self, document_type: str, direction: Optional[str] = None) -> Optional[FieldMappingTable]:
        return _select(self._base_tables, document_type, direction)

    def list_document_types(self) -> List[str]:
        return list(self._base_tables.keys())

    def reload(self) -> None:
        """Reload all mappings from the filesystem."""
        with self._lock:
            self._base_tables = {}
            self._partner_cache.clear()
        self._load_base_tables()
