import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Type

from cdm import Row
from edi_defs import ACK_CODES, TransactionSetCode
from edi_errors import UnsupportedFormatError
from erp_models import ErpDocument, InterpretationOutcome, Invoice, PurchaseOrder, ShipmentNotice
from transaction_interpreters import format_amount

logger = logging.getLogger(__name__)


def _decimal(value: Decimal) -> str:
    return format(value, "f")


def _price(value: Decimal) -> str:
    # Two decimals unless the price carries finer precision.
    if value.as_tuple().exponent >= -2:
        return format_amount(value)
    return _decimal(value)


def _date(value: date) -> str:
    return value.isoformat()


def _put(row: Row, field: str, value, formatter: Callable = str) -> None:
    if value is not None:
        row[field] = formatter(value)


def _quantity_total(lines: Sequence[Row]) -> str:
    return _decimal(sum((Decimal(line["quantity"]) for line in lines), Decimal("0")))


def generate_850(order: PurchaseOrder) -> List[Row]:
    header: Row = {"orderNumber": order.order_number, "orderDate": _date(order.order_date)}
    _put(header, "requestedShipDate", order.requested_ship_date, _date)
    _put(header, "buyerId", order.buyer_id)
    _put(header, "vendorId", order.vendor_id)
    _put(header, "currency", order.currency)

    lines: List[Row] = []
    for line in order.lines:
        row: Row = {"lineNumber": line.assigned_id or str(line.line_number), "itemId": line.item_id, "quantity": _decimal(line.quantity)}
        _put(row, "unitPrice", line.unit_price, _price)
        _put(row, "unitOfMeasure", line.unit_of_measure)
        _put(row, "description", line.description)
        lines.append(row)

    trailer: Row = {"lineCount": str(len(lines)), "quantityTotal": _quantity_total(lines)}
    logger.debug(f"Generated 850 {order.order_number}: {len(lines)} line(s).")
    return [header] + lines + [trailer]


def generate_810(invoice: Invoice) -> List[Row]:
    """
    Header, one row per line and a trailer carrying the invoice total.

    The total is the sum of the two-decimal line amounts as written, so the
    trailer always agrees with the emitted lines.
    """
    header: Row = {
        "invoiceNumber": invoice.invoice_number,
        "invoiceDate": _date(invoice.invoice_date),
        "poNumber": invoice.po_number,
    }
    _put(header, "terms", invoice.terms)

    lines: List[Row] = []
    for line in invoice.lines:
        row: Row = {"lineNumber": line.assigned_id or str(line.line_number), "itemId": line.item_id, "quantity": _decimal(line.quantity)}
        _put(row, "unitPrice", line.unit_price, _price)
        row["lineAmount"] = format_amount(line.line_amount)
        _put(row, "unitOfMeasure", line.unit_of_measure)
        lines.append(row)

    total = sum((Decimal(line["lineAmount"]) for line in lines), Decimal("0"))
    trailer: Row = {"lineCount": str(len(lines)), "totalAmount": format_amount(total)}
    logger.debug(f"Generated 810 {invoice.invoice_number}: {len(lines)} line(s), total {trailer['totalAmount']}.")
    return [header] + lines + [trailer]


def generate_856(notice: ShipmentNotice) -> List[Row]:
    header: Row = {
        "shipmentId": notice.shipment_id,
        "shipDate": _date(notice.ship_date),
        "poNumber": notice.po_number,
    }
    _put(header, "carrier", notice.carrier)
    _put(header, "trackingNumber", notice.tracking_number)

    lines: List[Row] = []
    for line in notice.lines:
        row: Row = {"lineNumber": line.assigned_id or str(line.line_number), "itemId": line.item_id, "quantity": _decimal(line.quantity)}
        _put(row, "packagingUnit", line.packaging_unit)
        lines.append(row)

    trailer: Row = {"lineCount": str(len(lines)), "quantityTotal": _quantity_total(lines)}
    logger.debug(f"Generated 856 {notice.shipment_id}: {len(lines)} line(s).")
    return [header] + lines + [trailer]


def generate_997(outcomes: Sequence[InterpretationOutcome]) -> List[Row]:
    """One acknowledgment row per outcome, in input order."""
    rows: List[Row] = []
    for outcome in outcomes:
        codes = list(dict.fromkeys(issue.code.value for issue in outcome.errors))
        rows.append({
            "transactionId": outcome.transaction_id,
            "transactionSet": outcome.transaction_set,
            "status": outcome.status.value,
            "ackCode": ACK_CODES[outcome.status].value,
            "errorCount": str(len(outcome.errors)),
            "errorCodes": ";".join(codes),
        })
    logger.info(f"Generated acknowledgment rows for {len(rows)} transaction(s).")
    return rows


GENERATORS: Dict[Type[ErpDocument], Callable[..., List[Row]]] = {
    PurchaseOrder: generate_850,
    Invoice: generate_810,
    ShipmentNotice: generate_856,
}

ENTITY_TRANSACTION_SETS: Dict[Type[ErpDocument], TransactionSetCode] = {
    PurchaseOrder: TransactionSetCode.PURCHASE_ORDER,
    Invoice: TransactionSetCode.INVOICE,
    ShipmentNotice: TransactionSetCode.SHIP_NOTICE,
}


def transaction_set_for(entity: ErpDocument) -> TransactionSetCode:
    code: Optional[TransactionSetCode] = ENTITY_TRANSACTION_SETS.get(type(entity))
    if code is None:
        raise UnsupportedFormatError(f"No transaction set generates {type(entity).__name__}")
    return code


def generate(entity: ErpDocument) -> List[Row]:
    """Generate canonical rows for any supported ERP entity."""
    generator = GENERATORS.get(type(entity))
    if generator is None:
        raise UnsupportedFormatError(f"No generator for {type(entity).__name__}")
    return generator(entity)
