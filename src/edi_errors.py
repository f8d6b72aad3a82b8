"""
Exception taxonomy for the translation engine.

Codec and dispatcher errors are fatal to the call that raised them.
Transaction errors are fatal to one transaction's interpretation, except
ControlTotalMismatch which is normally attached to the entity as a warning
and only raised when strict control totals are requested.
"""
from typing import Optional

from cdm import TranslationIssue
from edi_defs import IssueCode


class EdiError(Exception):
    """Base class for every error raised by the engine."""


class FormatError(EdiError):
    """Raw document content is malformed for its declared format."""

    def __init__(self, message: str, row_index: Optional[int] = None, segment_position: Optional[int] = None):
        self.message = message
        self.row_index = row_index
        self.segment_position = segment_position
        location = ""
        if row_index is not None:
            location = f" (row {row_index})"
        elif segment_position is not None:
            location = f" (segment {segment_position})"
        super().__init__(f"{message}{location}")

    def to_issue(self) -> TranslationIssue:
        return TranslationIssue(
            code=IssueCode.FORMAT_ERROR,
            message=str(self),
            row_index=self.row_index,
            segment_position=self.segment_position,
        )


class UnsupportedFormatError(EdiError):
    """The caller asked for a format or transaction set the engine does not implement."""


class MappingConfigError(EdiError):
    """A field mapping table is ambiguous or malformed."""


class TransactionError(EdiError):
    """A transaction's rows do not satisfy its transaction-set structure."""
    code = IssueCode.TRANSACTION_ERROR

    def __init__(self, message: str, row_index: Optional[int] = None):
        self.message = message
        self.row_index = row_index
        suffix = f" (row {row_index})" if row_index is not None else ""
        super().__init__(f"{message}{suffix}")

    def to_issue(self) -> TranslationIssue:
        return TranslationIssue(code=self.code, message=str(self), row_index=self.row_index)


class MissingRequiredField(TransactionError):
    code = IssueCode.MISSING_REQUIRED_FIELD

    def __init__(self, field: str, row_index: Optional[int] = None):
        self.field = field
        super().__init__(f"Required field '{field}' is missing", row_index)

    def to_issue(self) -> TranslationIssue:
        issue = super().to_issue()
        issue.field = self.field
        return issue


class InvalidFieldValue(TransactionError):
    code = IssueCode.INVALID_FIELD_VALUE

    def __init__(self, field: str, raw_value: str, row_index: Optional[int] = None):
        self.field = field
        self.raw_value = raw_value
        super().__init__(f"Field '{field}' has invalid value '{raw_value}'", row_index)

    def to_issue(self) -> TranslationIssue:
        issue = super().to_issue()
        issue.field = self.field
        issue.actual = self.raw_value
        return issue


class ControlTotalMismatch(TransactionError):
    code = IssueCode.CONTROL_TOTAL_MISMATCH

    def __init__(self, expected: str, actual: str, field: Optional[str] = None, row_index: Optional[int] = None):
        self.expected = expected
        self.actual = actual
        self.field = field
        label = f"'{field}' " if field else ""
        super().__init__(f"Control total {label}mismatch: declared {expected}, assembled {actual}", row_index)

    def to_issue(self) -> TranslationIssue:
        issue = super().to_issue()
        issue.field = self.field
        issue.expected = self.expected
        issue.actual = self.actual
        return issue
