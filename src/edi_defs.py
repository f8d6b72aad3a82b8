# Shared codes and enumerations for the EDI translation engine.
from enum import Enum
from typing import Dict


class EdiFormat(str, Enum):
    """Wire formats a partner document can be encoded in."""
    CSV = "csv"
    XML = "xml"
    JSON = "json"
    X12 = "x12"


class TransactionSetCode(str, Enum):
    """X12 transaction sets handled by the engine."""
    PURCHASE_ORDER = "850"
    INVOICE = "810"
    SHIP_NOTICE = "856"
    FUNCTIONAL_ACKNOWLEDGMENT = "997"


# GS01 functional identifier codes, also used in AK101.
FUNCTIONAL_IDENTIFIERS: Dict[TransactionSetCode, str] = {
    TransactionSetCode.PURCHASE_ORDER: "PO",
    TransactionSetCode.INVOICE: "IN",
    TransactionSetCode.SHIP_NOTICE: "SH",
    TransactionSetCode.FUNCTIONAL_ACKNOWLEDGMENT: "FA",
}

TRANSACTION_SET_LABELS: Dict[TransactionSetCode, str] = {
    TransactionSetCode.PURCHASE_ORDER: "Purchase Order",
    TransactionSetCode.INVOICE: "Invoice",
    TransactionSetCode.SHIP_NOTICE: "Advance Ship Notice",
    TransactionSetCode.FUNCTIONAL_ACKNOWLEDGMENT: "Functional Acknowledgment",
}


class AckStatus(str, Enum):
    ACCEPTED = "accepted"
    ACCEPTED_WITH_ERRORS = "accepted_with_errors"
    REJECTED = "rejected"


class TransactionAckCode(str, Enum):
    """AK501 transaction set acknowledgment codes."""
    ACCEPTED = "A"
    ACCEPTED_WITH_ERRORS = "E"
    REJECTED = "R"


ACK_CODES: Dict[AckStatus, TransactionAckCode] = {
    AckStatus.ACCEPTED: TransactionAckCode.ACCEPTED,
    AckStatus.ACCEPTED_WITH_ERRORS: TransactionAckCode.ACCEPTED_WITH_ERRORS,
    AckStatus.REJECTED: TransactionAckCode.REJECTED,
}


class GroupAckCode(str, Enum):
    """AK901 functional group acknowledgment codes."""
    ACCEPTED = "A"
    ACCEPTED_WITH_ERRORS = "E"
    PARTIALLY_ACCEPTED = "P"
    REJECTED = "R"


class IssueCode(str, Enum):
    """Machine-readable categories for translation findings."""
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_FIELD_VALUE = "INVALID_FIELD_VALUE"
    CONTROL_TOTAL_MISMATCH = "CONTROL_TOTAL_MISMATCH"
    INVALID_LINE = "INVALID_LINE"
    TRANSACTION_ERROR = "TRANSACTION_ERROR"
    FORMAT_ERROR = "FORMAT_ERROR"
    UNSUPPORTED_TRANSACTION_SET = "UNSUPPORTED_TRANSACTION_SET"
    SEGMENT_ERROR = "SEGMENT_ERROR"
    ELEMENT_ERROR = "ELEMENT_ERROR"
    ENVELOPE_ERROR = "ENVELOPE_ERROR"


class SegmentSyntaxErrorCode(str, Enum):
    """AK304 segment syntax error codes."""
    UNRECOGNIZED_SEGMENT_ID = "1"
    UNEXPECTED_SEGMENT = "2"
    MANDATORY_SEGMENT_MISSING = "3"
    LOOP_OCCURS_OVER_MAXIMUM_TIMES = "4"
    SEGMENT_EXCEEDS_MAXIMUM_USE = "5"
    SEGMENT_NOT_IN_DEFINED_TRANSACTION_SET = "6"
    SEGMENT_NOT_IN_PROPER_SEQUENCE = "7"
    SEGMENT_HAS_DATA_ELEMENT_ERRORS = "8"


class ElementSyntaxErrorCode(str, Enum):
    """AK403 data element syntax error codes."""
    MANDATORY_DATA_ELEMENT_MISSING = "1"
    CONDITIONAL_REQUIRED_DATA_ELEMENT_MISSING = "2"
    TOO_MANY_DATA_ELEMENTS = "3"
    DATA_ELEMENT_TOO_SHORT = "4"
    DATA_ELEMENT_TOO_LONG = "5"
    INVALID_CHARACTER_IN_DATA_ELEMENT = "6"
    INVALID_CODE_VALUE = "7"
    INVALID_DATE = "8"
    INVALID_TIME = "9"


class TransactionSyntaxErrorCode(str, Enum):
    """AK502 transaction set syntax error codes."""
    TRANSACTION_SET_NOT_SUPPORTED = "1"
    TRAILER_MISSING = "2"
    CONTROL_NUMBER_MISMATCH = "3"
    SEGMENT_COUNT_MISMATCH = "4"
    ONE_OR_MORE_SEGMENTS_IN_ERROR = "5"
