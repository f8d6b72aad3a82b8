"""
Translation between X12 transaction sets and element-reference rows.

Rows read from a transaction set use element references as field names:
``BEG03``, ``N1[BY]04`` for a segment told apart by its qualifier element,
and ``MSG(2)01`` for the second occurrence of a segment within one row.
The first row holds the heading segments, each detail loop iteration becomes
one row and the summary segments form a final trailer row.
"""
import logging
import re
from collections import Counter
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from cdm import CdmSegment, CdmTransaction, Row, TranslationIssue
from edi_defs import (
    ElementSyntaxErrorCode,
    GroupAckCode,
    ACK_CODES,
    AckStatus,
    IssueCode,
    SegmentSyntaxErrorCode,
    TransactionSetCode,
    TransactionSyntaxErrorCode,
)
from edi_errors import FormatError
from erp_models import InterpretationOutcome
from field_mapping import FieldMappingTable
from x12_codec import SegmentValues
from x12_schemas import ElementDefinition, SegmentDefinition, TransactionSetSchema, get_schema

logger = logging.getLogger(__name__)

ELEMENT_REF_PATTERN = re.compile(
    r"^(?P<segment>[A-Z][A-Z0-9]{1,2})(?:\[(?P<qualifier>[^\]]+)\])?(?:\((?P<occurrence>\d+)\))?(?P<position>\d{2})$"
)
_INTEGER = re.compile(r"^-?\d+$")
_DECIMAL = re.compile(r"^-?(\d+\.?\d*|\.\d+)$")
_TIME = re.compile(r"^(\d{2})(\d{2})(\d{2}(\d{1,2})?)?$")
_INPUT_DATE_FORMATS = ("%Y-%m-%d", "%Y%m%d", "%m/%d/%Y")
_CENTS = Decimal("0.01")


class ElementRef(NamedTuple):
    segment_id: str
    qualifier: Optional[str]
    occurrence: int
    position: int

    @classmethod
    def parse(cls, key: str) -> Optional["ElementRef"]:
        match = ELEMENT_REF_PATTERN.match(key)
        if not match:
            return None
        return cls(
            match.group("segment"),
            match.group("qualifier"),
            int(match.group("occurrence") or 1),
            int(match.group("position")),
        )

    @property
    def segment_key(self) -> Tuple[str, Optional[str], int]:
        return self.segment_id, self.qualifier, self.occurrence

    def key(self) -> str:
        qualifier = f"[{self.qualifier}]" if self.qualifier else ""
        occurrence = f"({self.occurrence})" if self.occurrence > 1 else ""
        return f"{self.segment_id}{qualifier}{occurrence}{self.position:02d}"


# --- Element validation ---
def _is_date(value: str) -> bool:
    if not (len(value) == 8 and value.isdigit()):
        return False
    try:
        datetime.strptime(value, "%Y%m%d")
        return True
    except ValueError:
        return False


def _is_time(value: str) -> bool:
    match = _TIME.match(value)
    return bool(match) and int(match.group(1)) <= 23 and int(match.group(2)) <= 59


def _significant_length(value: str, data_type: str) -> int:
    # Signs and decimal points do not count toward the length of numeric elements.
    if data_type in ("N0", "N2", "R"):
        return sum(char.isdigit() for char in value)
    return len(value)


class SegmentValidator:
    """Checks segment contents against a transaction set schema and reports X12 syntax error codes."""

    def __init__(self, schema: TransactionSetSchema):
        self.schema = schema

    def validate(self, segment: CdmSegment, position: int) -> List[TranslationIssue]:
        """Validate one segment; ``position`` is the segment's place in the transaction set (ST = 1)."""
        definition = self.schema.definition(segment.segment_id)
        if definition is None:
            logger.debug(f"Segment '{segment.segment_id}' at {position} is not defined for {self.schema.code.value}.")
            return [TranslationIssue(
                code=IssueCode.SEGMENT_ERROR,
                message=f"Segment '{segment.segment_id}' is not defined for transaction set {self.schema.code.value}",
                segment_id=segment.segment_id,
                segment_position=position,
                syntax_error_code=SegmentSyntaxErrorCode.SEGMENT_NOT_IN_DEFINED_TRANSACTION_SET.value,
            )]

        issues: List[TranslationIssue] = []
        values = {element.position: element.value for element in segment.elements}
        for element_def in definition.elements:
            value = values.get(element_def.seq, "")
            error_code = self._check_element(element_def, value)
            if error_code is None:
                continue
            ref = f"{segment.segment_id}{element_def.seq:02d}"
            message = f"Element {ref} ({element_def.name}) value '{value}' failed check: {error_code.name.replace('_', ' ').lower()}"
            logger.debug(f"        [FAIL] {message}")
            issues.append(TranslationIssue(
                code=IssueCode.ELEMENT_ERROR,
                message=message,
                segment_id=segment.segment_id,
                segment_position=position,
                element_position=element_def.seq,
                actual=value,
                syntax_error_code=error_code.value,
            ))
        return issues

    def _check_element(self, element_def: ElementDefinition, value: str) -> Optional[ElementSyntaxErrorCode]:
        if value == "":
            return ElementSyntaxErrorCode.MANDATORY_DATA_ELEMENT_MISSING if element_def.usage == "R" else None

        data_type = element_def.dataType
        if data_type in ("N0", "N2") and not _INTEGER.match(value):
            return ElementSyntaxErrorCode.INVALID_CHARACTER_IN_DATA_ELEMENT
        if data_type == "R" and not _DECIMAL.match(value):
            return ElementSyntaxErrorCode.INVALID_CHARACTER_IN_DATA_ELEMENT
        if data_type == "DT" and not _is_date(value):
            return ElementSyntaxErrorCode.INVALID_DATE
        if data_type == "TM" and not _is_time(value):
            return ElementSyntaxErrorCode.INVALID_TIME

        length = _significant_length(value, data_type)
        if element_def.minLength is not None and length < element_def.minLength:
            return ElementSyntaxErrorCode.DATA_ELEMENT_TOO_SHORT
        if element_def.maxLength is not None and length > element_def.maxLength:
            return ElementSyntaxErrorCode.DATA_ELEMENT_TOO_LONG
        if element_def.valid_codes and value not in element_def.valid_codes:
            return ElementSyntaxErrorCode.INVALID_CODE_VALUE
        return None


# --- Value conversion ---
def _read_value(value: str, element_def: Optional[ElementDefinition]) -> str:
    """Convert an X12 element value to its row representation."""
    if element_def is None:
        return value
    if element_def.dataType == "DT" and _is_date(value):
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    if element_def.dataType == "N2" and _INTEGER.match(value):
        return format(Decimal(value).scaleb(-2).quantize(_CENTS), "f")
    return value


def _write_value(value: str, element_def: Optional[ElementDefinition], ref: str, row_index: int) -> str:
    """Convert a row value to X12 notation for the element's data type."""
    if element_def is None or value == "":
        return value
    if element_def.dataType == "DT":
        for date_format in _INPUT_DATE_FORMATS:
            try:
                return datetime.strptime(value, date_format).strftime("%Y%m%d")
            except ValueError:
                continue
        raise FormatError(f"Field '{ref}' value '{value}' is not a date", row_index=row_index)
    if element_def.dataType == "N2":
        try:
            cents = (Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise FormatError(f"Field '{ref}' value '{value}' is not a number", row_index=row_index)
        return str(int(cents))
    return value


# --- Transaction set -> rows ---
class _RowAccumulator:
    def __init__(self):
        self.row: Row = {}
        self.occurrences: Counter = Counter()

    def add(self, segment: CdmSegment, definition: Optional[SegmentDefinition]) -> None:
        qualifier = None
        qualifier_seq = definition.qualifier_seq if definition else None
        if qualifier_seq:
            qualifier = (segment.get_element(qualifier_seq) or "").strip() or None
        self.occurrences[(segment.segment_id, qualifier)] += 1
        occurrence = self.occurrences[(segment.segment_id, qualifier)]

        for element in segment.elements:
            if element.value == "" or (qualifier and element.position == qualifier_seq):
                continue
            element_def = definition.element(element.position) if definition else None
            key = ElementRef(segment.segment_id, qualifier, occurrence, element.position).key()
            self.row[key] = _read_value(element.value, element_def)


def read_transaction(transaction: CdmTransaction, schema: TransactionSetSchema) -> Tuple[List[Row], List[TranslationIssue]]:
    """
    Flatten one transaction set into header, detail and trailer rows.

    Returns the rows and every issue found: envelope control problems recorded
    by the codec plus segment and element syntax errors.
    """
    logger.debug(f"Reading transaction set {transaction.transaction_set_code} #{transaction.control_number}.")
    validator = SegmentValidator(schema)
    issues: List[TranslationIssue] = list(transaction.errors)
    detail = schema.detail

    header = _RowAccumulator()
    lines: List[_RowAccumulator] = []
    trailer = _RowAccumulator()
    current = header
    seen = set()

    for position, segment in enumerate(transaction.segments, start=2):
        segment_id = segment.segment_id
        seen.add(segment_id)
        issues.extend(validator.validate(segment, position))

        if segment_id == "HL" and detail is not None and detail.hl_level:
            if (segment.get_element(3) or "").strip() == detail.hl_level:
                current = _RowAccumulator()
                lines.append(current)
            else:
                current = header
            continue

        section = schema.section_of(segment_id)
        if detail is not None and not detail.hl_level and segment_id == detail.start:
            current = _RowAccumulator()
            lines.append(current)
        elif section == "summary":
            current = trailer
        current.add(segment, schema.definition(segment_id))

    for segment_id, definition in schema.segmentDefinitions.items():
        if definition.usage == "R" and segment_id not in seen:
            message = f"Mandatory segment '{segment_id}' ({definition.name}) is missing"
            logger.warning(f"{message} from transaction set {transaction.control_number}")
            issues.append(TranslationIssue(
                code=IssueCode.SEGMENT_ERROR,
                message=message,
                segment_id=segment_id,
                syntax_error_code=SegmentSyntaxErrorCode.MANDATORY_SEGMENT_MISSING.value,
            ))

    rows = [header.row] + [line.row for line in lines]
    if trailer.row:
        rows.append(trailer.row)
    logger.debug(f"Transaction set {transaction.control_number} flattened to {len(rows)} rows with {len(issues)} issue(s).")
    return rows, issues


# --- Rows -> transaction set body ---
SegmentGroups = Dict[Tuple[str, Optional[str], int], Dict[int, str]]


def _build_segment(
    segment_key: Tuple[str, Optional[str], int],
    elements: Dict[int, str],
    definition: Optional[SegmentDefinition],
    row_index: int,
) -> SegmentValues:
    segment_id, qualifier, _ = segment_key
    values: Dict[int, str] = {}
    if definition is not None:
        for element_def in definition.elements:
            if element_def.default is not None:
                values[element_def.seq] = element_def.default
        if qualifier and definition.qualifier_seq:
            values[definition.qualifier_seq] = qualifier

    for position, value in elements.items():
        element_def = definition.element(position) if definition else None
        ref = ElementRef(segment_id, qualifier, segment_key[2], position).key()
        converted = _write_value(value, element_def, ref, row_index)
        if converted != "":
            values[position] = converted

    last = max(values) if values else 0
    return [segment_id] + [values.get(position, "") for position in range(1, last + 1)]


def _ordered(groups: SegmentGroups, segment_ids: Sequence[str]) -> List[Tuple[Tuple[str, Optional[str], int], Dict[int, str]]]:
    return [(key, groups[key]) for segment_id in segment_ids for key in groups if key[0] == segment_id]


def build_segments(transaction_set: TransactionSetCode, rows: Sequence[Row]) -> List[SegmentValues]:
    """
    Build the body segments (without ST/SE) of a transaction set from element-reference rows.

    Header and summary segments may come from any row; the first value seen
    for an element wins. Every row that carries detail segments becomes one
    loop iteration. Fields that are not element references have no X12
    representation and are not written.
    """
    schema = get_schema(transaction_set)
    if schema is None:
        raise FormatError(f"Transaction set {transaction_set.value} has no X12 layout")

    header: SegmentGroups = {}
    summary: SegmentGroups = {}
    lines: List[Tuple[int, SegmentGroups]] = []
    origin: Dict[Tuple[str, Optional[str], int], int] = {}

    for row_index, row in enumerate(rows, start=1):
        line: SegmentGroups = {}
        for key, value in row.items():
            ref = ElementRef.parse(key)
            if ref is None:
                logger.debug(f"Field '{key}' in row {row_index} is not an X12 element reference; not written.")
                continue
            section = schema.section_of(ref.segment_id)
            if section is None:
                raise FormatError(
                    f"Segment '{ref.segment_id}' is not part of transaction set {transaction_set.value}",
                    row_index=row_index,
                )
            if section == "detail":
                line.setdefault(ref.segment_key, {})[ref.position] = value
                continue
            groups = header if section == "header" else summary
            elements = groups.setdefault(ref.segment_key, {})
            origin.setdefault(ref.segment_key, row_index)
            if ref.position in elements and elements[ref.position] != value:
                logger.debug(f"Keeping first value for {key}; row {row_index} repeats it with '{value}'.")
                continue
            elements.setdefault(ref.position, value)
        if line:
            lines.append((row_index, line))

    def emit(groups: SegmentGroups, segment_ids: Sequence[str], row_index: Optional[int] = None) -> List[SegmentValues]:
        return [
            _build_segment(key, elements, schema.definition(key[0]), row_index or origin.get(key, 1))
            for key, elements in _ordered(groups, segment_ids)
        ]

    body = emit(header, schema.header)
    detail_ids = schema.detail.segment_ids if schema.detail else []

    if schema.hierarchy:
        parent = ""
        hl_number = 0
        for index, level in enumerate(schema.hierarchy):
            hl_number += 1
            has_children = index < len(schema.hierarchy) - 1 or bool(lines)
            body.append(["HL", str(hl_number), parent, level.code, "1" if has_children else "0"])
            body.extend(emit(header, level.segments))
            parent = str(hl_number)
        for row_index, line in lines:
            hl_number += 1
            body.append(["HL", str(hl_number), parent, schema.detail.hl_level, "0"])
            body.extend(emit(line, detail_ids, row_index))
    else:
        for row_index, line in lines:
            body.extend(emit(line, detail_ids, row_index))

    body.extend(emit(summary, schema.summary))
    logger.debug(f"Built {len(body)} body segments for transaction set {transaction_set.value} ({len(lines)} detail iterations).")
    return body


# --- 997 functional acknowledgment ---
def _segment_error_segments(issues: Sequence[TranslationIssue]) -> List[SegmentValues]:
    grouped: Dict[Tuple[str, Optional[int]], List[TranslationIssue]] = {}
    for issue in issues:
        if issue.code in (IssueCode.SEGMENT_ERROR, IssueCode.ELEMENT_ERROR) and issue.segment_id:
            grouped.setdefault((issue.segment_id, issue.segment_position), []).append(issue)

    segments: List[SegmentValues] = []
    for (segment_id, position), segment_issues in grouped.items():
        element_issues = [issue for issue in segment_issues if issue.code == IssueCode.ELEMENT_ERROR]
        if element_issues:
            segment_code = SegmentSyntaxErrorCode.SEGMENT_HAS_DATA_ELEMENT_ERRORS.value
        else:
            segment_code = segment_issues[0].syntax_error_code or ""
        segments.append(["AK3", segment_id, str(position) if position else "", "", segment_code])
        for issue in element_issues:
            segments.append(["AK4", str(issue.element_position or ""), "", issue.syntax_error_code or ""])
    return segments


def _transaction_error_codes(outcome: InterpretationOutcome) -> List[str]:
    codes: List[str] = []
    for issue in outcome.errors:
        if issue.code in (IssueCode.ENVELOPE_ERROR, IssueCode.UNSUPPORTED_TRANSACTION_SET) and issue.syntax_error_code:
            if issue.syntax_error_code not in codes:
                codes.append(issue.syntax_error_code)
    segment_errors = TransactionSyntaxErrorCode.ONE_OR_MORE_SEGMENTS_IN_ERROR.value
    has_segment_issues = any(issue.code in (IssueCode.SEGMENT_ERROR, IssueCode.ELEMENT_ERROR) for issue in outcome.errors)
    if segment_errors not in codes and (has_segment_issues or (outcome.status != AckStatus.ACCEPTED and not codes)):
        codes.append(segment_errors)
    # AK5 carries at most five syntax error codes.
    return codes[:5]


def group_ack_code(outcomes: Sequence[InterpretationOutcome]) -> GroupAckCode:
    statuses = [outcome.status for outcome in outcomes]
    rejected = statuses.count(AckStatus.REJECTED)
    if statuses and rejected == len(statuses):
        return GroupAckCode.REJECTED
    if rejected:
        return GroupAckCode.PARTIALLY_ACCEPTED
    if AckStatus.ACCEPTED_WITH_ERRORS in statuses:
        return GroupAckCode.ACCEPTED_WITH_ERRORS
    return GroupAckCode.ACCEPTED


def build_997_segments(
    outcomes: Sequence[InterpretationOutcome],
    functional_identifier: str,
    group_control_number: str,
) -> List[SegmentValues]:
    """AK1/AK2/AK3/AK4/AK5/AK9 body of a 997 acknowledging one functional group."""
    body: List[SegmentValues] = [["AK1", functional_identifier, group_control_number]]
    for outcome in outcomes:
        body.append(["AK2", outcome.transaction_set, outcome.transaction_id])
        if outcome.status != AckStatus.ACCEPTED:
            body.extend(_segment_error_segments(outcome.errors))
        body.append(["AK5", ACK_CODES[outcome.status].value] + _transaction_error_codes(outcome))

    accepted = sum(1 for outcome in outcomes if outcome.status != AckStatus.REJECTED)
    body.append(["AK9", group_ack_code(outcomes).value, str(len(outcomes)), str(len(outcomes)), str(accepted)])
    logger.info(f"Built 997 for group {group_control_number}: {len(outcomes)} transaction set(s), {accepted} accepted.")
    return body


# --- Default element-reference maps ---
_DEFAULT_MAPS: Dict[TransactionSetCode, Dict[str, str]] = {
    TransactionSetCode.PURCHASE_ORDER: {
        "BEG03": "orderNumber",
        "BEG05": "orderDate",
        "DTM[010]02": "requestedShipDate",
        "N1[BY]04": "buyerId",
        "N1[SE]04": "vendorId",
        "CUR02": "currency",
        "PO101": "lineNumber",
        "PO102": "quantity",
        "PO103": "unitOfMeasure",
        "PO104": "unitPrice",
        "PO107": "itemId",
        "PID05": "description",
        "CTT01": "lineCount",
        "CTT02": "quantityTotal",
    },
    TransactionSetCode.INVOICE: {
        "BIG01": "invoiceDate",
        "BIG02": "invoiceNumber",
        "BIG04": "poNumber",
        "ITD12": "terms",
        "IT101": "lineNumber",
        "IT102": "quantity",
        "IT103": "unitOfMeasure",
        "IT104": "unitPrice",
        "IT107": "itemId",
        "TDS01": "totalAmount",
        "CTT01": "lineCount",
    },
    TransactionSetCode.SHIP_NOTICE: {
        "BSN02": "shipmentId",
        "BSN03": "shipDate",
        "TD503": "carrier",
        "REF[CN]02": "trackingNumber",
        "PRF01": "poNumber",
        "LIN03": "itemId",
        "SN101": "lineNumber",
        "SN102": "quantity",
        "SN103": "packagingUnit",
        "CTT01": "lineCount",
        "CTT02": "quantityTotal",
    },
}

DEFAULT_FIELD_MAPS: Dict[TransactionSetCode, FieldMappingTable] = {
    code: FieldMappingTable.from_dict(mapping, name=f"x12-{code.value}-default", document_type=code.value)
    for code, mapping in _DEFAULT_MAPS.items()
}


def default_field_map(transaction_set: TransactionSetCode) -> Optional[FieldMappingTable]:
    return DEFAULT_FIELD_MAPS.get(transaction_set)
