import logging
import re
from typing import List, NamedTuple, Optional, Sequence, Union

from cdm import CdmElement, CdmFunctionalGroup, CdmInterchange, CdmSegment, CdmTransaction, TranslationIssue
from codec_support import decode_content
from edi_defs import FUNCTIONAL_IDENTIFIERS, IssueCode, TransactionSetCode, TransactionSyntaxErrorCode
from edi_errors import FormatError
from edi_options import X12EnvelopeOptions, X12Options

logger = logging.getLogger(__name__)

SEGMENT_ID_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{1,2}$")
# The ISA segment is fixed width: 105 characters plus the segment terminator.
ISA_LENGTH = 106
ISA_ELEMENT_COUNT = 16

SegmentValues = List[str]


class X12Delimiters(NamedTuple):
    element: str
    segment: str
    component: str
    repetition: str


def detect_delimiters(text: str, options: Optional[X12Options] = None) -> X12Delimiters:
    """
    Read the delimiters from the ISA segment, or fall back to the configured ones.

    Delimiters explicitly set on ``options`` must agree with the ISA.
    """
    options = options or X12Options()
    configured = X12Delimiters(
        options.element_separator, options.segment_terminator,
        options.component_separator, options.repetition_separator,
    )
    text = text.lstrip()
    if not text.startswith("ISA"):
        logger.debug("No ISA segment found. Using configured delimiters.")
        return configured

    if len(text) < ISA_LENGTH:
        raise FormatError(f"ISA segment is truncated: expected {ISA_LENGTH} characters, found {len(text)}", segment_position=1)

    element = text[3]
    isa_body = text[:ISA_LENGTH - 2]
    if element.isalnum() or isa_body.count(element) != ISA_ELEMENT_COUNT or isa_body[-1] != element:
        raise FormatError("ISA element separators are not at their fixed positions", segment_position=1)

    repetition = text[82] if not text[82].isalnum() else configured.repetition
    detected = X12Delimiters(element, text[105], text[104], repetition)
    logger.debug(f"Delimiters detected: Element='{detected.element}', Segment='{detected.segment}', Component='{detected.component}'")

    declared = {
        "element_separator": detected.element,
        "segment_terminator": detected.segment,
        "component_separator": detected.component,
    }
    for field_name, found in declared.items():
        if field_name in options.model_fields_set and getattr(options, field_name) != found:
            raise FormatError(
                f"ISA declares {field_name.replace('_', ' ')} '{found}' but '{getattr(options, field_name)}' was configured",
                segment_position=1,
            )
    return detected


def segmentize(text: str, delimiters: X12Delimiters) -> List[CdmSegment]:
    """Split X12 text into segments; every segment identifier must be well formed."""
    terminator = delimiters.segment
    text = text.lstrip()
    if terminator in ("\r", "\n"):
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        terminator = "\n"

    segments: List[CdmSegment] = []
    for raw in text.split(terminator):
        if not raw.strip():
            continue
        clean = raw.strip("\r\n")
        position = len(segments) + 1
        parts = clean.split(delimiters.element)
        segment_id = parts[0]
        if not SEGMENT_ID_PATTERN.match(segment_id):
            raise FormatError(f"Invalid segment identifier '{segment_id[:10]}'", segment_position=position)
        elements = [CdmElement(value=value, position=index + 1) for index, value in enumerate(parts[1:])]
        segments.append(CdmSegment(segment_id=segment_id, elements=elements, position=position, raw_segment=clean))
    logger.debug(f"Segmentized X12 content into {len(segments)} segments.")
    return segments


def _control_issue(message: str, segment: CdmSegment, expected: str, actual: str, syntax_error_code: Optional[str] = None) -> TranslationIssue:
    logger.warning(f"{message} (segment {segment.position})")
    return TranslationIssue(
        code=IssueCode.ENVELOPE_ERROR,
        message=message,
        segment_id=segment.segment_id,
        segment_position=segment.position,
        expected=expected,
        actual=actual,
        syntax_error_code=syntax_error_code,
    )


def _check_transaction(transaction: CdmTransaction) -> None:
    trailer = transaction.trailer
    expected_count = str(len(transaction.segments) + 2)
    declared_count = (trailer.get_element(1) or "").strip()
    if declared_count.lstrip("0") != expected_count:
        transaction.errors.append(_control_issue(
            f"SE01 segment count {declared_count or '(missing)'} does not match {expected_count} included segments",
            trailer, expected_count, declared_count, TransactionSyntaxErrorCode.SEGMENT_COUNT_MISMATCH.value,
        ))
    declared_control = (trailer.get_element(2) or "").strip()
    if declared_control != transaction.control_number:
        transaction.errors.append(_control_issue(
            f"SE02 control number '{declared_control}' does not match ST02 '{transaction.control_number}'",
            trailer, transaction.control_number, declared_control, TransactionSyntaxErrorCode.CONTROL_NUMBER_MISMATCH.value,
        ))


def _check_group(group: CdmFunctionalGroup) -> None:
    trailer = group.trailer
    expected_count = str(len(group.transactions))
    declared_count = (trailer.get_element(1) or "").strip()
    if declared_count.lstrip("0") != expected_count.lstrip("0"):
        group.errors.append(_control_issue(
            f"GE01 transaction count {declared_count or '(missing)'} does not match {expected_count} included transaction sets",
            trailer, expected_count, declared_count,
        ))
    declared_control = (trailer.get_element(2) or "").strip()
    if declared_control != group.control_number:
        group.errors.append(_control_issue(
            f"GE02 control number '{declared_control}' does not match GS06 '{group.control_number}'",
            trailer, group.control_number, declared_control,
        ))


def _check_interchange(interchange: CdmInterchange) -> None:
    trailer = interchange.trailer
    expected_count = str(len([group for group in interchange.functional_groups if group.header is not None]))
    declared_count = (trailer.get_element(1) or "").strip()
    if declared_count.lstrip("0") != expected_count.lstrip("0"):
        interchange.errors.append(_control_issue(
            f"IEA01 group count {declared_count or '(missing)'} does not match {expected_count} included functional groups",
            trailer, expected_count, declared_count,
        ))
    isa_control = (interchange.header.get_element(13) or "").strip()
    declared_control = (trailer.get_element(2) or "").strip()
    if declared_control != isa_control:
        interchange.errors.append(_control_issue(
            f"IEA02 control number '{declared_control}' does not match ISA13 '{isa_control}'",
            trailer, isa_control, declared_control,
        ))


def parse_x12(content: Union[str, bytes], options: Optional[X12Options] = None) -> CdmInterchange:
    """
    Parse X12 content into the interchange/group/transaction hierarchy.

    The ISA/IEA and GS/GE envelopes are optional; bare ST/SE transaction sets are
    collected into a functional group without a header. Structural problems raise
    FormatError, while control count and number mismatches are recorded as issues
    on the affected transaction, group or interchange.
    """
    text = decode_content(content)
    delimiters = detect_delimiters(text, options)
    segments = segmentize(text, delimiters)

    interchange = CdmInterchange()
    group: Optional[CdmFunctionalGroup] = None
    transaction_segments: Optional[List[CdmSegment]] = None
    closed = False

    for segment in segments:
        segment_id = segment.segment_id
        if closed:
            raise FormatError(f"Segment '{segment_id}' follows the IEA trailer", segment_position=segment.position)

        if segment_id == "ISA":
            if interchange.header is not None or group is not None or transaction_segments is not None:
                raise FormatError("Unexpected ISA segment", segment_position=segment.position)
            interchange.header = segment

        elif segment_id == "GS":
            if transaction_segments is not None:
                raise FormatError("GS found before SE closed the open transaction set", segment_position=segment.position)
            if group is not None:
                if group.header is not None:
                    raise FormatError("GS found before GE closed the open functional group", segment_position=segment.position)
                interchange.functional_groups.append(group)
            group = CdmFunctionalGroup(header=segment)

        elif segment_id == "ST":
            if transaction_segments is not None:
                raise FormatError(
                    f"ST found before SE closed the transaction set started at segment {transaction_segments[0].position}",
                    segment_position=segment.position,
                )
            if group is None:
                group = CdmFunctionalGroup()
            transaction_segments = [segment]

        elif segment_id == "SE":
            if transaction_segments is None:
                raise FormatError("SE found without a matching ST", segment_position=segment.position)
            transaction = CdmTransaction(header=transaction_segments[0], trailer=segment, segments=transaction_segments[1:])
            _check_transaction(transaction)
            group.transactions.append(transaction)
            logger.debug(f"Closed transaction set {transaction.transaction_set_code} #{transaction.control_number} with {len(transaction.segments)} body segments.")
            transaction_segments = None

        elif segment_id == "GE":
            if transaction_segments is not None:
                raise FormatError("GE found before SE closed the open transaction set", segment_position=segment.position)
            if group is None or group.header is None:
                raise FormatError("GE found without a matching GS", segment_position=segment.position)
            group.trailer = segment
            _check_group(group)
            interchange.functional_groups.append(group)
            group = None

        elif segment_id == "IEA":
            if transaction_segments is not None:
                raise FormatError("IEA found before SE closed the open transaction set", segment_position=segment.position)
            if group is not None and group.header is not None:
                raise FormatError("IEA found before GE closed the open functional group", segment_position=segment.position)
            if interchange.header is None:
                raise FormatError("IEA found without a matching ISA", segment_position=segment.position)
            if group is not None:
                interchange.functional_groups.append(group)
                group = None
            interchange.trailer = segment
            _check_interchange(interchange)
            closed = True

        else:
            if transaction_segments is None:
                raise FormatError(f"Segment '{segment_id}' is outside a transaction set", segment_position=segment.position)
            transaction_segments.append(segment)

    if transaction_segments is not None:
        raise FormatError("Transaction set is missing its SE trailer", segment_position=transaction_segments[0].position)
    if group is not None:
        if group.header is not None:
            raise FormatError("Functional group is missing its GE trailer", segment_position=group.header.position)
        interchange.functional_groups.append(group)
    if interchange.header is not None and interchange.trailer is None:
        raise FormatError("Interchange is missing its IEA trailer", segment_position=interchange.header.position)

    transactions = interchange.all_transactions()
    logger.info(f"Parsed X12 document: {len(interchange.functional_groups)} functional group(s), {len(transactions)} transaction set(s).")
    return interchange


def format_segment(values: Sequence[str], options: X12Options) -> str:
    """Join one segment's values, dropping trailing empty elements."""
    values = list(values)
    while len(values) > 1 and values[-1] == "":
        values.pop()
    reserved = {options.element_separator, options.segment_terminator}
    for value in values[1:]:
        if any(char in value for char in reserved):
            raise FormatError(f"Value '{value}' in segment '{values[0]}' contains a delimiter character")
    return options.element_separator.join(values) + options.segment_terminator


def serialize_segments(segments: Sequence[SegmentValues], options: Optional[X12Options] = None) -> str:
    options = options or X12Options()
    line_end = "\n" if options.line_break else ""
    return "".join(format_segment(values, options) + line_end for values in segments)


def build_transaction(
    transaction_set: TransactionSetCode,
    body: Sequence[SegmentValues],
    control_number: str = "0001",
) -> List[SegmentValues]:
    """Wrap body segments in ST/SE; SE01 counts ST and SE as well."""
    return (
        [["ST", transaction_set.value, control_number]]
        + [list(values) for values in body]
        + [["SE", str(len(body) + 2), control_number]]
    )


def _fixed(value: str, width: int, field_name: str) -> str:
    if len(value) > width:
        raise FormatError(f"Envelope {field_name} '{value}' exceeds {width} characters")
    return value.ljust(width)


def wrap_interchange(
    transaction: Sequence[SegmentValues],
    transaction_set: TransactionSetCode,
    envelope: X12EnvelopeOptions,
    options: Optional[X12Options] = None,
) -> List[SegmentValues]:
    """Wrap one transaction set in GS/GE and ISA/IEA built from the envelope options."""
    options = options or X12Options()
    stamp = envelope.timestamp
    control = str(envelope.control_number)
    # ISA11 became the repetition separator in version 00501; earlier versions carry the standards id 'U'.
    isa11 = options.repetition_separator if envelope.interchange_version >= "00501" else "U"

    isa = [
        "ISA", "00", " " * 10, "00", " " * 10,
        _fixed(envelope.sender_qualifier, 2, "sender qualifier"),
        _fixed(envelope.sender_id, 15, "sender id"),
        _fixed(envelope.receiver_qualifier, 2, "receiver qualifier"),
        _fixed(envelope.receiver_id, 15, "receiver id"),
        stamp.strftime("%y%m%d"), stamp.strftime("%H%M"),
        isa11, envelope.interchange_version, control.zfill(9),
        "1" if envelope.acknowledgment_requested else "0",
        envelope.usage_indicator, options.component_separator,
    ]
    gs = [
        "GS", FUNCTIONAL_IDENTIFIERS[transaction_set], envelope.sender_id, envelope.receiver_id,
        stamp.strftime("%Y%m%d"), stamp.strftime("%H%M"), control, "X", envelope.group_version,
    ]
    return [isa, gs] + [list(values) for values in transaction] + [["GE", "1", control], ["IEA", "1", control.zfill(9)]]
