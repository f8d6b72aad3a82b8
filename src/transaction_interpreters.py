import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type, Union

from pydantic import BaseModel

from cdm import TranslationIssue
from edi_defs import AckStatus, IssueCode, TransactionSetCode
from edi_errors import (
    ControlTotalMismatch,
    InvalidFieldValue,
    MissingRequiredField,
    TransactionError,
    UnsupportedFormatError,
)
from edi_options import InterpreterOptions
from erp_models import (
    ErpDocument,
    InterpretationOutcome,
    Invoice,
    InvoiceLine,
    PurchaseOrder,
    PurchaseOrderLine,
    ShipmentLine,
    ShipmentNotice,
)

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%d", "%Y%m%d", "%m/%d/%Y")
LINE_KEY = "itemId"
TRAILER_FIELDS = ("lineCount", "quantityTotal", "totalAmount")
CENTS = Decimal("0.01")

RowLike = Mapping[str, str]


# --- Field coercion ---
def _raw(row: RowLike, field: str) -> Optional[str]:
    value = row.get(field)
    if value is None or str(value).strip() == "":
        return None
    return str(value).strip()


def text_field(row: RowLike, field: str, row_index: int, required: bool = False) -> Optional[str]:
    value = _raw(row, field)
    if value is None and required:
        raise MissingRequiredField(field, row_index)
    return value


def decimal_field(row: RowLike, field: str, row_index: int, required: bool = False) -> Optional[Decimal]:
    value = text_field(row, field, row_index, required)
    if value is None:
        return None
    try:
        number = Decimal(value.replace(",", ""))
    except InvalidOperation:
        raise InvalidFieldValue(field, value, row_index)
    if not number.is_finite():
        raise InvalidFieldValue(field, value, row_index)
    return number


def int_field(row: RowLike, field: str, row_index: int, required: bool = False) -> Optional[int]:
    number = decimal_field(row, field, row_index, required)
    if number is None:
        return None
    if number != number.to_integral_value():
        raise InvalidFieldValue(field, row[field], row_index)
    return int(number)


def date_field(row: RowLike, field: str, row_index: int, required: bool = False) -> Optional[date]:
    value = text_field(row, field, row_index, required)
    if value is None:
        return None
    for date_format in DATE_FORMATS:
        try:
            return datetime.strptime(value, date_format).date()
        except ValueError:
            continue
    raise InvalidFieldValue(field, value, row_index)


def format_amount(amount: Decimal) -> str:
    try:
        return f"{amount.quantize(CENTS, rounding=ROUND_HALF_UP):.2f}"
    except InvalidOperation:
        # Too many digits to round to cents within the decimal context.
        return format(amount, "f")


def to_cents(amount: Decimal, field: str, row_index: Optional[int]) -> Decimal:
    try:
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidFieldValue(field, format(amount, "f"), row_index)


def is_trailer_row(row: RowLike) -> bool:
    return _raw(row, LINE_KEY) is None and any(_raw(row, field) is not None for field in TRAILER_FIELDS)


# --- Builders ---
class EntityBuilder:
    """
    Accumulates a header, detail lines and an optional trailer and yields the ERP entity.

    Row 1 is the header. A header row that also carries ``itemId`` is the first
    line as well, since flat documents repeat header fields on every line. The
    last row is a trailer when it carries a control total and no ``itemId``.
    Subclasses declare the header checklist and parse header and line fields.
    """

    transaction_set: TransactionSetCode
    required_header_fields: Tuple[str, ...] = ()
    required_line_fields: Tuple[str, ...] = (LINE_KEY, "quantity")

    def __init__(self, options: Optional[InterpreterOptions] = None):
        self.options = options or InterpreterOptions()
        self.header: Dict[str, Any] = {}
        self.lines: List[BaseModel] = []
        self.warnings: List[TranslationIssue] = []
        self._header_row: RowLike = {}
        self._trailer: Optional[Tuple[int, RowLike]] = None

    # Assembly
    def build_from_rows(self, rows: Sequence[RowLike]) -> ErpDocument:
        if not rows:
            raise TransactionError("No data rows found in document")

        self.set_header(rows[0])
        detail_rows = list(enumerate(rows, start=1))[1:]
        if _raw(rows[0], LINE_KEY) is not None:
            detail_rows.insert(0, (1, rows[0]))
        if len(rows) > 1 and is_trailer_row(rows[-1]):
            self._trailer = detail_rows.pop()

        for position, (row_index, row) in enumerate(detail_rows, start=1):
            self.add_line(row, row_index, position)
        return self.build()

    def set_header(self, row: RowLike) -> None:
        for field in self.required_header_fields:
            text_field(row, field, 1, required=True)
        self._header_row = row
        self.header = self.parse_header(row)

    def add_line(self, row: RowLike, row_index: int, position: int) -> None:
        try:
            for field in self.required_line_fields:
                text_field(row, field, row_index, required=True)
            line = self.parse_line(row, row_index, position)
        except TransactionError as e:
            if not self.options.skip_invalid_lines:
                raise
            logger.warning(f"Skipping invalid {self.transaction_set.value} line: {e}")
            self.warnings.append(TranslationIssue(
                code=IssueCode.INVALID_LINE,
                message=f"Line excluded: {e}",
                row_index=row_index,
                field=getattr(e, "field", None),
            ))
            return
        self.lines.append(line)

    def build(self) -> ErpDocument:
        if self._trailer is not None:
            row_index, trailer = self._trailer
            self.reconcile_trailer(trailer, row_index)
        self.reconcile_header(self._header_row)
        entity = self.make_entity()
        entity.warnings.extend(self.warnings)
        logger.info(
            f"Interpreted {self.transaction_set.value} with {len(self.lines)} line(s) and {len(self.warnings)} warning(s)."
        )
        return entity

    # Control totals
    def control_mismatch(self, field: str, expected: str, actual: str, row_index: Optional[int]) -> None:
        error = ControlTotalMismatch(expected, actual, field=field, row_index=row_index)
        if self.options.strict_control_totals:
            raise error
        logger.warning(f"{self.transaction_set.value}: {error}")
        self.warnings.append(error.to_issue())

    def check_line_count(self, trailer: RowLike, row_index: int) -> None:
        declared = int_field(trailer, "lineCount", row_index)
        if declared is not None and declared != len(self.lines):
            self.control_mismatch("lineCount", str(declared), str(len(self.lines)), row_index)

    def check_quantity_total(self, trailer: RowLike, row_index: int) -> None:
        declared = decimal_field(trailer, "quantityTotal", row_index)
        if declared is None:
            return
        assembled = sum((line.quantity for line in self.lines), Decimal("0"))
        if declared != assembled:
            self.control_mismatch("quantityTotal", format(declared, "f"), format(assembled, "f"), row_index)

    def check_amount(self, declared: Optional[Decimal], assembled: Decimal, field: str, row_index: int) -> None:
        if declared is not None and abs(declared - assembled) > self.options.amount_tolerance:
            self.control_mismatch(field, format_amount(declared), format_amount(assembled), row_index)

    def reconcile_trailer(self, trailer: RowLike, row_index: int) -> None:
        self.check_line_count(trailer, row_index)
        self.check_quantity_total(trailer, row_index)

    def reconcile_header(self, header: RowLike) -> None:
        """Header-level totals; none by default."""

    # Per transaction set
    def parse_header(self, row: RowLike) -> Dict[str, Any]:
        raise NotImplementedError

    def parse_line(self, row: RowLike, row_index: int, position: int) -> BaseModel:
        raise NotImplementedError

    def make_entity(self) -> ErpDocument:
        raise NotImplementedError

    @staticmethod
    def line_identity(row: RowLike, row_index: int, position: int) -> Dict[str, Any]:
        """
        ``line_number`` and ``assigned_id`` for a detail row.

        A non-numeric assigned identifier (PO101 is alphanumeric) is kept as
        ``assigned_id`` and the line is numbered by its position instead.
        """
        try:
            number = int_field(row, "lineNumber", row_index)
        except InvalidFieldValue:
            raw = _raw(row, "lineNumber")
            logger.debug(f"Line {position} has non-numeric assigned identifier '{raw}'; numbering by position.")
            return {"line_number": position, "assigned_id": raw}
        return {"line_number": number if number is not None else position, "assigned_id": None}


class PurchaseOrderBuilder(EntityBuilder):
    transaction_set = TransactionSetCode.PURCHASE_ORDER
    required_header_fields = ("orderNumber", "orderDate")

    def parse_header(self, row: RowLike) -> Dict[str, Any]:
        return {
            "order_number": text_field(row, "orderNumber", 1, required=True),
            "order_date": date_field(row, "orderDate", 1, required=True),
            "requested_ship_date": date_field(row, "requestedShipDate", 1),
            "buyer_id": text_field(row, "buyerId", 1),
            "vendor_id": text_field(row, "vendorId", 1),
            "currency": text_field(row, "currency", 1),
        }

    def parse_line(self, row: RowLike, row_index: int, position: int) -> PurchaseOrderLine:
        return PurchaseOrderLine(
            **self.line_identity(row, row_index, position),
            item_id=text_field(row, "itemId", row_index, required=True),
            quantity=decimal_field(row, "quantity", row_index, required=True),
            unit_price=decimal_field(row, "unitPrice", row_index),
            unit_of_measure=text_field(row, "unitOfMeasure", row_index),
            description=text_field(row, "description", row_index),
        )

    def make_entity(self) -> PurchaseOrder:
        return PurchaseOrder(lines=self.lines, **self.header)


class InvoiceBuilder(EntityBuilder):
    transaction_set = TransactionSetCode.INVOICE
    required_header_fields = ("invoiceNumber", "invoiceDate", "poNumber")

    def parse_header(self, row: RowLike) -> Dict[str, Any]:
        return {
            "invoice_number": text_field(row, "invoiceNumber", 1, required=True),
            "invoice_date": date_field(row, "invoiceDate", 1, required=True),
            "po_number": text_field(row, "poNumber", 1, required=True),
            "terms": text_field(row, "terms", 1),
            "header_total": decimal_field(row, "totalAmount", 1),
        }

    def parse_line(self, row: RowLike, row_index: int, position: int) -> InvoiceLine:
        quantity = decimal_field(row, "quantity", row_index, required=True)
        line_amount = decimal_field(row, "lineAmount", row_index)
        unit_price = decimal_field(row, "unitPrice", row_index, required=line_amount is None)
        if line_amount is None:
            line_amount = to_cents(quantity * unit_price, "lineAmount", row_index)
        return InvoiceLine(
            **self.line_identity(row, row_index, position),
            item_id=text_field(row, "itemId", row_index, required=True),
            quantity=quantity,
            unit_price=unit_price,
            line_amount=line_amount,
            unit_of_measure=text_field(row, "unitOfMeasure", row_index),
        )

    def reconcile_trailer(self, trailer: RowLike, row_index: int) -> None:
        self.check_line_count(trailer, row_index)
        self.check_amount(decimal_field(trailer, "totalAmount", row_index), self._total(), "totalAmount", row_index)

    def reconcile_header(self, header: RowLike) -> None:
        self.check_amount(self.header.get("header_total"), self._total(), "totalAmount", 1)

    def _total(self) -> Decimal:
        return sum((line.line_amount for line in self.lines), Decimal("0"))

    def make_entity(self) -> Invoice:
        return Invoice(lines=self.lines, **self.header)


class ShipmentNoticeBuilder(EntityBuilder):
    transaction_set = TransactionSetCode.SHIP_NOTICE
    required_header_fields = ("shipmentId", "shipDate", "poNumber")

    def parse_header(self, row: RowLike) -> Dict[str, Any]:
        return {
            "shipment_id": text_field(row, "shipmentId", 1, required=True),
            "ship_date": date_field(row, "shipDate", 1, required=True),
            "po_number": text_field(row, "poNumber", 1, required=True),
            "carrier": text_field(row, "carrier", 1),
            "tracking_number": text_field(row, "trackingNumber", 1),
        }

    def parse_line(self, row: RowLike, row_index: int, position: int) -> ShipmentLine:
        return ShipmentLine(
            **self.line_identity(row, row_index, position),
            item_id=text_field(row, "itemId", row_index, required=True),
            quantity=decimal_field(row, "quantity", row_index, required=True),
            packaging_unit=text_field(row, "packagingUnit", row_index),
        )

    def make_entity(self) -> ShipmentNotice:
        return ShipmentNotice(lines=self.lines, **self.header)


BUILDERS: Dict[TransactionSetCode, Type[EntityBuilder]] = {
    TransactionSetCode.PURCHASE_ORDER: PurchaseOrderBuilder,
    TransactionSetCode.INVOICE: InvoiceBuilder,
    TransactionSetCode.SHIP_NOTICE: ShipmentNoticeBuilder,
}


def process_850(rows: Sequence[RowLike], options: Optional[InterpreterOptions] = None) -> PurchaseOrder:
    """Interpret canonical 850 rows as a PurchaseOrder."""
    return PurchaseOrderBuilder(options).build_from_rows(rows)


def process_810(rows: Sequence[RowLike], options: Optional[InterpreterOptions] = None) -> Invoice:
    """Interpret canonical 810 rows as an Invoice."""
    return InvoiceBuilder(options).build_from_rows(rows)


def process_856(rows: Sequence[RowLike], options: Optional[InterpreterOptions] = None) -> ShipmentNotice:
    """Interpret canonical 856 rows as a ShipmentNotice."""
    return ShipmentNoticeBuilder(options).build_from_rows(rows)


def to_transaction_set(value: Union[TransactionSetCode, str]) -> TransactionSetCode:
    try:
        return TransactionSetCode(value)
    except ValueError:
        raise UnsupportedFormatError(f"Unsupported transaction set: '{value}'")


def interpret(
    transaction_set: Union[TransactionSetCode, str],
    rows: Sequence[RowLike],
    options: Optional[InterpreterOptions] = None,
) -> ErpDocument:
    code = to_transaction_set(transaction_set)
    builder_class = BUILDERS.get(code)
    if builder_class is None:
        raise UnsupportedFormatError(f"Transaction set {code.value} cannot be interpreted into an ERP entity")
    return builder_class(options).build_from_rows(rows)


def evaluate_transaction(
    transaction_set: Union[TransactionSetCode, str],
    rows: Sequence[RowLike],
    transaction_id: str,
    options: Optional[InterpreterOptions] = None,
    issues: Sequence[TranslationIssue] = (),
) -> Tuple[Optional[ErpDocument], InterpretationOutcome]:
    """
    Interpret one transaction and summarize the result for acknowledgment.

    A TransactionError rejects the transaction; warnings on the entity make it
    accepted with errors. ``issues`` found before interpretation (envelope and
    segment syntax findings) are attached to the entity as warnings.
    """
    code = to_transaction_set(transaction_set)
    try:
        entity = interpret(code, rows, options)
    except TransactionError as e:
        logger.warning(f"Transaction {transaction_id} ({code.value}) rejected: {e}")
        outcome = InterpretationOutcome(
            transaction_id=transaction_id,
            transaction_set=code.value,
            status=AckStatus.REJECTED,
            errors=list(issues) + [e.to_issue()],
        )
        return None, outcome

    entity.warnings.extend(issues)

    status = AckStatus.ACCEPTED_WITH_ERRORS if entity.has_warnings else AckStatus.ACCEPTED
    outcome = InterpretationOutcome(
        transaction_id=transaction_id,
        transaction_set=code.value,
        status=status,
        errors=list(entity.warnings),
    )
    return entity, outcome
