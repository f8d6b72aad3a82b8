# Per-call configuration for codecs, interpreters and the X12 envelope.
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Options(BaseModel):
    model_config = ConfigDict(frozen=True)


class CsvOptions(_Options):
    delimiter: str = ","
    strip_whitespace: bool = False

    @field_validator("delimiter")
    @classmethod
    def _single_character(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("CSV delimiter must be a single character")
        return value


DEFAULT_ROOT_TAG = "Document"
DEFAULT_ROW_TAG = "Row"


class XmlOptions(_Options):
    root_tag: str = DEFAULT_ROOT_TAG
    # When unset, parsing treats every child of the document root as a row.
    row_tag: Optional[str] = None
    include_attributes: bool = False
    attribute_prefix: str = "@"


class JsonOptions(_Options):
    indent: Optional[int] = 2


class X12Options(_Options):
    """Control characters for reading and writing X12."""
    element_separator: str = "*"
    segment_terminator: str = "~"
    component_separator: str = ":"
    repetition_separator: str = "^"
    # Emit a newline after each segment terminator when generating.
    line_break: bool = True
    # Control number written to ST02/SE02 when generating a transaction set.
    transaction_control_number: str = "0001"

    @field_validator("element_separator", "segment_terminator", "component_separator", "repetition_separator")
    @classmethod
    def _single_character(cls, value: str) -> str:
        if len(value) != 1 or value.isalnum():
            raise ValueError(f"X12 delimiter must be a single non-alphanumeric character, got '{value}'")
        return value


class X12EnvelopeOptions(_Options):
    """ISA/GS values for wrapping one generated transaction set."""
    sender_id: str
    receiver_id: str
    timestamp: datetime
    sender_qualifier: str = "ZZ"
    receiver_qualifier: str = "ZZ"
    control_number: int = Field(default=1, ge=1, le=999999999)
    interchange_version: str = "00401"
    group_version: str = "004010"
    usage_indicator: str = "P"
    acknowledgment_requested: bool = False


class InterpreterOptions(_Options):
    # Allowed difference between declared and computed monetary totals.
    amount_tolerance: Decimal = Decimal("0.01")
    # Exclude defective detail rows (flagged as warnings) instead of rejecting the document.
    skip_invalid_lines: bool = False
    # Raise ControlTotalMismatch instead of attaching a warning.
    strict_control_totals: bool = False
