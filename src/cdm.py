from pydantic import BaseModel, Field
from typing import List, Optional, Dict

from edi_defs import IssueCode

# Canonical Data Model (CDM) shared by every codec.
# Flat formats decode straight to rows; X12 decodes to the segment hierarchy
# below first and is flattened to rows per transaction set afterwards.

Row = Dict[str, str]


class TranslationIssue(BaseModel):
    """A finding raised while parsing or interpreting a document."""
    code: IssueCode
    message: str
    row_index: Optional[int] = None
    segment_id: Optional[str] = None
    segment_position: Optional[int] = None
    element_position: Optional[int] = None
    field: Optional[str] = None
    expected: Optional[str] = None
    actual: Optional[str] = None
    syntax_error_code: Optional[str] = None


class CdmElement(BaseModel):
    """Represents a single data element within a segment."""
    value: str
    position: int


class CdmSegment(BaseModel):
    """Represents a single X12 segment."""
    segment_id: str
    elements: List[CdmElement]
    position: int  # 1-based position of the segment within the document
    raw_segment: str
    errors: List[TranslationIssue] = Field(default_factory=list)

    def get_element(self, position: int) -> Optional[str]:
        """Retrieves the value of an element by its position (1-based index)."""
        if 1 <= position <= len(self.elements):
            return self.elements[position - 1].value
        return None

    def element_values(self) -> List[str]:
        return [element.value for element in self.elements]


class CdmTransaction(BaseModel):
    header: CdmSegment
    trailer: CdmSegment
    segments: List[CdmSegment] = Field(default_factory=list)
    errors: List[TranslationIssue] = Field(default_factory=list)

    @property
    def transaction_set_code(self) -> str:
        return (self.header.get_element(1) or "").strip()

    @property
    def control_number(self) -> str:
        return (self.header.get_element(2) or "").strip()


class CdmFunctionalGroup(BaseModel):
    # Bare transaction sets without a GS/GE envelope are collected in a group with no header.
    header: Optional[CdmSegment] = None
    trailer: Optional[CdmSegment] = None
    transactions: List[CdmTransaction] = Field(default_factory=list)
    errors: List[TranslationIssue] = Field(default_factory=list)

    @property
    def control_number(self) -> str:
        if self.header is None:
            return ""
        return (self.header.get_element(6) or "").strip()

    @property
    def functional_identifier(self) -> str:
        if self.header is None:
            return ""
        return (self.header.get_element(1) or "").strip()


class CdmInterchange(BaseModel):
    header: Optional[CdmSegment] = None
    trailer: Optional[CdmSegment] = None
    functional_groups: List[CdmFunctionalGroup] = Field(default_factory=list)
    errors: List[TranslationIssue] = Field(default_factory=list)

    def all_transactions(self) -> List[CdmTransaction]:
        return [txn for group in self.functional_groups for txn in group.transactions]
