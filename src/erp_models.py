# ERP business entities produced by the interpreters and consumed by the generators.
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from cdm import TranslationIssue
from edi_defs import AckStatus


class ErpDocument(BaseModel):
    """Common base: every interpreted entity carries its recoverable warnings."""
    warnings: List[TranslationIssue] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


class PurchaseOrderLine(BaseModel):
    line_number: int
    # Partner line identifier when it is not a plain number (e.g. PO101 "A1").
    assigned_id: Optional[str] = None
    item_id: str
    quantity: Decimal
    unit_price: Optional[Decimal] = None
    unit_of_measure: Optional[str] = None
    description: Optional[str] = None


class PurchaseOrder(ErpDocument):
    order_number: str
    order_date: date
    requested_ship_date: Optional[date] = None
    buyer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    currency: Optional[str] = None
    lines: List[PurchaseOrderLine] = Field(default_factory=list)


class InvoiceLine(BaseModel):
    line_number: int
    assigned_id: Optional[str] = None
    item_id: str
    quantity: Decimal
    unit_price: Optional[Decimal] = None
    line_amount: Decimal
    unit_of_measure: Optional[str] = None


class Invoice(ErpDocument):
    invoice_number: str
    invoice_date: date
    po_number: str
    terms: Optional[str] = None
    # Total declared by the partner on the header, if any.
    header_total: Optional[Decimal] = None
    lines: List[InvoiceLine] = Field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((line.line_amount for line in self.lines), Decimal("0"))


class ShipmentLine(BaseModel):
    line_number: int
    assigned_id: Optional[str] = None
    item_id: str
    quantity: Decimal
    packaging_unit: Optional[str] = None


class ShipmentNotice(ErpDocument):
    shipment_id: str
    ship_date: date
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    po_number: str
    lines: List[ShipmentLine] = Field(default_factory=list)


class InterpretationOutcome(BaseModel):
    """Result of interpreting one inbound transaction, the input to 997 generation."""
    transaction_id: str
    # Kept as the raw ST01 code so unsupported sets can still be acknowledged.
    transaction_set: str
    status: AckStatus
    errors: List[TranslationIssue] = Field(default_factory=list)
