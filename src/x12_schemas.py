# Transaction set layouts for the X12 sets the engine reads and writes (version 004010).
from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field

from edi_defs import TransactionSetCode

DataType = Literal["ID", "AN", "DT", "TM", "N0", "N2", "R"]
Usage = Literal["R", "S"]


class ElementDefinition(BaseModel):
    seq: int
    name: str
    dataType: DataType
    usage: Usage = "S"
    minLength: Optional[int] = None
    maxLength: Optional[int] = None
    # Written when a segment is generated without a value for this element.
    default: Optional[str] = None
    valid_codes: Optional[List[str]] = None


class SegmentDefinition(BaseModel):
    id: str
    name: str
    usage: Usage = "S"
    max_use: int = Field(validation_alias=AliasChoices("max_use", "maxUse"), default=1)
    elements: List[ElementDefinition]
    # Element whose value tells repeated segments apart, e.g. N101 in N1[BY] and N1[SE].
    qualifier_seq: Optional[int] = None

    def element(self, seq: int) -> Optional[ElementDefinition]:
        return next((el for el in self.elements if el.seq == seq), None)


class HierarchicalLevel(BaseModel):
    """An HL level written ahead of the detail loop (856 shipment and order levels)."""
    code: str
    segments: List[str] = Field(default_factory=list)


class LoopDefinition(BaseModel):
    start: str
    children: List[str] = Field(default_factory=list)
    # HL03 level code that opens each iteration when the loop is hierarchical.
    hl_level: Optional[str] = None

    @property
    def segment_ids(self) -> List[str]:
        return [self.start] + self.children


class TransactionSetSchema(BaseModel):
    code: TransactionSetCode
    name: str
    version: str = "004010"
    segmentDefinitions: Dict[str, SegmentDefinition]
    header: List[str]
    hierarchy: List[HierarchicalLevel] = Field(default_factory=list)
    detail: Optional[LoopDefinition] = None
    summary: List[str] = Field(default_factory=list)

    def definition(self, segment_id: str) -> Optional[SegmentDefinition]:
        return self.segmentDefinitions.get(segment_id)

    def header_segment_ids(self) -> List[str]:
        ids = list(self.header)
        for level in self.hierarchy:
            ids.extend(level.segments)
        return ids

    def section_of(self, segment_id: str) -> Optional[str]:
        """'header', 'detail' or 'summary' for segments in this set, None otherwise."""
        if segment_id in self.header_segment_ids():
            return "header"
        if self.detail is not None and segment_id in self.detail.segment_ids:
            return "detail"
        if segment_id in self.summary:
            return "summary"
        return None


def _el(seq, name, data_type, usage="S", min_length=None, max_length=None, default=None, codes=None):
    return {
        "seq": seq, "name": name, "dataType": data_type, "usage": usage,
        "minLength": min_length, "maxLength": max_length, "default": default, "valid_codes": codes,
    }


_COMMON_SEGMENTS = {
    "CUR": {"id": "CUR", "name": "Currency", "elements": [
        _el(1, "Entity Identifier Code", "ID", "R", 2, 3, default="BY"),
        _el(2, "Currency Code", "ID", "R", 3, 3),
    ]},
    "REF": {"id": "REF", "name": "Reference Identification", "maxUse": 12, "qualifier_seq": 1, "elements": [
        _el(1, "Reference Identification Qualifier", "ID", "R", 2, 3),
        _el(2, "Reference Identification", "AN", "S", 1, 30),
        _el(3, "Description", "AN", "S", 1, 80),
    ]},
    "PER": {"id": "PER", "name": "Administrative Communications Contact", "maxUse": 3, "qualifier_seq": 1, "elements": [
        _el(1, "Contact Function Code", "ID", "R", 2, 2),
        _el(2, "Name", "AN", "S", 1, 60),
        _el(3, "Communication Number Qualifier", "ID", "S", 2, 2),
        _el(4, "Communication Number", "AN", "S", 1, 80),
    ]},
    "DTM": {"id": "DTM", "name": "Date/Time Reference", "maxUse": 10, "qualifier_seq": 1, "elements": [
        _el(1, "Date/Time Qualifier", "ID", "R", 3, 3),
        _el(2, "Date", "DT", "S", 8, 8),
        _el(3, "Time", "TM", "S", 4, 8),
    ]},
    "ITD": {"id": "ITD", "name": "Terms of Sale/Deferred Terms of Sale", "elements": [
        _el(1, "Terms Type Code", "ID", "S", 2, 2),
        _el(2, "Terms Basis Date Code", "ID", "S", 1, 2),
        _el(12, "Description", "AN", "S", 1, 80),
    ]},
    "N1": {"id": "N1", "name": "Name", "maxUse": 200, "qualifier_seq": 1, "elements": [
        _el(1, "Entity Identifier Code", "ID", "R", 2, 3),
        _el(2, "Name", "AN", "S", 1, 60),
        _el(3, "Identification Code Qualifier", "ID", "S", 1, 2, default="92"),
        _el(4, "Identification Code", "AN", "S", 2, 80),
    ]},
    "N2": {"id": "N2", "name": "Additional Name Information", "maxUse": 2, "elements": [
        _el(1, "Name", "AN", "R", 1, 60),
        _el(2, "Name", "AN", "S", 1, 60),
    ]},
    "N3": {"id": "N3", "name": "Address Information", "maxUse": 2, "elements": [
        _el(1, "Address Information", "AN", "R", 1, 55),
        _el(2, "Address Information", "AN", "S", 1, 55),
    ]},
    "N4": {"id": "N4", "name": "Geographic Location", "elements": [
        _el(1, "City Name", "AN", "S", 2, 30),
        _el(2, "State or Province Code", "ID", "S", 2, 2),
        _el(3, "Postal Code", "ID", "S", 3, 15),
        _el(4, "Country Code", "ID", "S", 2, 3),
    ]},
    "MSG": {"id": "MSG", "name": "Message Text", "maxUse": 1000, "elements": [
        _el(1, "Free-Form Message Text", "AN", "R", 1, 264),
    ]},
    "PID": {"id": "PID", "name": "Product/Item Description", "maxUse": 1000, "elements": [
        _el(1, "Item Description Type", "ID", "R", 1, 1, default="F", codes=["F", "S", "X"]),
        _el(2, "Product/Process Characteristic Code", "ID", "S", 2, 3),
        _el(5, "Description", "AN", "S", 1, 80),
    ]},
    "CTT": {"id": "CTT", "name": "Transaction Totals", "elements": [
        _el(1, "Number of Line Items", "N0", "R", 1, 6),
        _el(2, "Hash Total", "R", "S", 1, 10),
    ]},
}


def _segments(*ids: str, **extra: dict) -> Dict[str, dict]:
    selected = {segment_id: _COMMON_SEGMENTS[segment_id] for segment_id in ids}
    selected.update(extra)
    return selected


_SCHEMA_DATA = {
    TransactionSetCode.PURCHASE_ORDER: {
        "code": "850",
        "name": "Purchase Order",
        "segmentDefinitions": _segments(
            "CUR", "REF", "PER", "ITD", "DTM", "N1", "N2", "N3", "N4", "MSG", "PID", "CTT",
            BEG={"id": "BEG", "name": "Beginning Segment for Purchase Order", "usage": "R", "elements": [
                _el(1, "Transaction Set Purpose Code", "ID", "R", 2, 2, default="00"),
                _el(2, "Purchase Order Type Code", "ID", "R", 2, 2, default="NE"),
                _el(3, "Purchase Order Number", "AN", "R", 1, 22),
                _el(4, "Release Number", "AN", "S", 1, 30),
                _el(5, "Date", "DT", "R", 8, 8),
            ]},
            PO1={"id": "PO1", "name": "Baseline Item Data", "maxUse": 100000, "elements": [
                _el(1, "Assigned Identification", "AN", "S", 1, 20),
                _el(2, "Quantity Ordered", "R", "S", 1, 15),
                _el(3, "Unit or Basis for Measurement Code", "ID", "S", 2, 2, default="EA"),
                _el(4, "Unit Price", "R", "S", 1, 17),
                _el(5, "Basis of Unit Price Code", "ID", "S", 2, 2),
                _el(6, "Product/Service ID Qualifier", "ID", "S", 2, 2, default="VP"),
                _el(7, "Product/Service ID", "AN", "S", 1, 48),
            ]},
            PO4={"id": "PO4", "name": "Item Physical Details", "elements": [
                _el(1, "Pack", "N0", "S", 1, 6),
                _el(2, "Size", "R", "S", 1, 8),
                _el(3, "Unit or Basis for Measurement Code", "ID", "S", 2, 2),
            ]},
        ),
        "header": ["BEG", "CUR", "REF", "PER", "ITD", "DTM", "N1", "N2", "N3", "N4", "MSG"],
        "detail": {"start": "PO1", "children": ["PID", "PO4"]},
        "summary": ["CTT"],
    },
    TransactionSetCode.INVOICE: {
        "code": "810",
        "name": "Invoice",
        "segmentDefinitions": _segments(
            "CUR", "REF", "N1", "N2", "N3", "N4", "ITD", "DTM", "PID", "CTT",
            BIG={"id": "BIG", "name": "Beginning Segment for Invoice", "usage": "R", "elements": [
                _el(1, "Invoice Date", "DT", "R", 8, 8),
                _el(2, "Invoice Number", "AN", "R", 1, 22),
                _el(3, "Purchase Order Date", "DT", "S", 8, 8),
                _el(4, "Purchase Order Number", "AN", "S", 1, 22),
            ]},
            IT1={"id": "IT1", "name": "Baseline Item Data (Invoice)", "maxUse": 200000, "elements": [
                _el(1, "Assigned Identification", "AN", "S", 1, 20),
                _el(2, "Quantity Invoiced", "R", "S", 1, 10),
                _el(3, "Unit or Basis for Measurement Code", "ID", "S", 2, 2, default="EA"),
                _el(4, "Unit Price", "R", "S", 1, 17),
                _el(5, "Basis of Unit Price Code", "ID", "S", 2, 2),
                _el(6, "Product/Service ID Qualifier", "ID", "S", 2, 2, default="VP"),
                _el(7, "Product/Service ID", "AN", "S", 1, 48),
            ]},
            TDS={"id": "TDS", "name": "Total Monetary Value Summary", "usage": "R", "elements": [
                _el(1, "Amount", "N2", "R", 1, 15),
            ]},
        ),
        "header": ["BIG", "CUR", "REF", "N1", "N2", "N3", "N4", "ITD", "DTM"],
        "detail": {"start": "IT1", "children": ["PID"]},
        "summary": ["TDS", "CTT"],
    },
    TransactionSetCode.SHIP_NOTICE: {
        "code": "856",
        "name": "Ship Notice/Manifest",
        "segmentDefinitions": _segments(
            "REF", "DTM", "N1", "N3", "N4", "PID", "CTT",
            BSN={"id": "BSN", "name": "Beginning Segment for Ship Notice", "usage": "R", "elements": [
                _el(1, "Transaction Set Purpose Code", "ID", "R", 2, 2, default="00"),
                _el(2, "Shipment Identification", "AN", "R", 2, 30),
                _el(3, "Date", "DT", "R", 8, 8),
                _el(4, "Time", "TM", "R", 4, 8, default="0000"),
            ]},
            HL={"id": "HL", "name": "Hierarchical Level", "usage": "R", "maxUse": 200000, "elements": [
                _el(1, "Hierarchical ID Number", "AN", "R", 1, 12),
                _el(2, "Hierarchical Parent ID Number", "AN", "S", 1, 12),
                _el(3, "Hierarchical Level Code", "ID", "R", 1, 2),
                _el(4, "Hierarchical Child Code", "ID", "S", 1, 1, codes=["0", "1"]),
            ]},
            TD1={"id": "TD1", "name": "Carrier Details (Quantity and Weight)", "maxUse": 20, "elements": [
                _el(1, "Packaging Code", "AN", "S", 3, 5),
                _el(2, "Lading Quantity", "N0", "S", 1, 7),
            ]},
            TD5={"id": "TD5", "name": "Carrier Details (Routing Sequence/Transit Time)", "maxUse": 12, "elements": [
                _el(1, "Routing Sequence Code", "ID", "S", 1, 2),
                _el(2, "Identification Code Qualifier", "ID", "S", 1, 2, default="2"),
                _el(3, "Identification Code", "AN", "S", 2, 80),
                _el(4, "Transportation Method/Type Code", "ID", "S", 1, 2),
            ]},
            PRF={"id": "PRF", "name": "Purchase Order Reference", "elements": [
                _el(1, "Purchase Order Number", "AN", "R", 1, 22),
                _el(4, "Date", "DT", "S", 8, 8),
            ]},
            LIN={"id": "LIN", "name": "Item Identification", "elements": [
                _el(1, "Assigned Identification", "AN", "S", 1, 20),
                _el(2, "Product/Service ID Qualifier", "ID", "R", 2, 2, default="VP"),
                _el(3, "Product/Service ID", "AN", "R", 1, 48),
            ]},
            SN1={"id": "SN1", "name": "Item Detail (Shipment)", "elements": [
                _el(1, "Assigned Identification", "AN", "S", 1, 20),
                _el(2, "Number of Units Shipped", "R", "R", 1, 10),
                _el(3, "Unit or Basis for Measurement Code", "ID", "R", 2, 2, default="EA"),
            ]},
        ),
        "header": ["BSN", "DTM"],
        "hierarchy": [
            {"code": "S", "segments": ["TD1", "TD5", "REF", "N1", "N3", "N4"]},
            {"code": "O", "segments": ["PRF"]},
        ],
        "detail": {"start": "LIN", "children": ["SN1", "PID"], "hl_level": "I"},
        "summary": ["CTT"],
    },
}

TRANSACTION_SET_SCHEMAS: Dict[TransactionSetCode, TransactionSetSchema] = {
    code: TransactionSetSchema.model_validate(data) for code, data in _SCHEMA_DATA.items()
}


def get_schema(transaction_set: TransactionSetCode) -> Optional[TransactionSetSchema]:
    return TRANSACTION_SET_SCHEMAS.get(transaction_set)
