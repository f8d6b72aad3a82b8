"""
Routes documents between wire formats, canonical rows and ERP entities.

Inbound:  content -> codec -> rows -> apply_field_mappings -> interpreter -> entity
Outbound: entity -> generator -> rows -> reverse_field_mappings -> codec -> content
"""
import logging
from typing import Callable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from cdm import CdmInterchange, CdmTransaction, Row, TranslationIssue
from csv_codec import generate_csv, parse_csv
from edi_defs import FUNCTIONAL_IDENTIFIERS, AckStatus, EdiFormat, IssueCode, TransactionSetCode, TransactionSyntaxErrorCode
from edi_errors import FormatError, UnsupportedFormatError
from edi_options import CsvOptions, InterpreterOptions, JsonOptions, X12EnvelopeOptions, X12Options, XmlOptions
from erp_models import ErpDocument, InterpretationOutcome, Invoice, PurchaseOrder, ShipmentNotice
from field_mapping import FieldMappingTable, MappingLike, apply_field_mappings, as_mapping_table, reverse_field_mappings
from json_codec import generate_json, parse_json
from transaction_generators import generate, generate_997, transaction_set_for
from transaction_interpreters import evaluate_transaction, interpret, to_transaction_set
from x12_codec import build_transaction, parse_x12, serialize_segments, wrap_interchange
from x12_schemas import get_schema
from x12_transaction_sets import build_997_segments, build_segments, default_field_map, read_transaction
from xml_codec import generate_xml, parse_xml

logger = logging.getLogger(__name__)

CodecOptions = Union[CsvOptions, XmlOptions, JsonOptions, X12Options, None]
MappingResolver = Callable[[TransactionSetCode], MappingLike]

_OPTION_TYPES = {
    EdiFormat.CSV: CsvOptions,
    EdiFormat.XML: XmlOptions,
    EdiFormat.JSON: JsonOptions,
    EdiFormat.X12: X12Options,
}


class InboundResult(BaseModel):
    """One interpreted transaction from an inbound document."""
    transaction_id: str
    transaction_set: str
    entity: Optional[Union[PurchaseOrder, Invoice, ShipmentNotice]] = None
    outcome: InterpretationOutcome
    group_control_number: str = ""
    functional_identifier: str = ""


def to_format(value: Union[EdiFormat, str]) -> EdiFormat:
    if isinstance(value, EdiFormat):
        return value
    try:
        return EdiFormat(str(value).strip().lower())
    except ValueError:
        raise UnsupportedFormatError(f"Unsupported format: '{value}'")


def _checked_options(fmt: EdiFormat, options: CodecOptions) -> CodecOptions:
    expected = _OPTION_TYPES[fmt]
    if options is not None and not isinstance(options, expected):
        raise TypeError(f"{fmt.value} documents take {expected.__name__}, not {type(options).__name__}")
    return options


def _single_transaction(interchange: CdmInterchange) -> CdmTransaction:
    transactions = interchange.all_transactions()
    if not transactions:
        raise FormatError("X12 document contains no transaction set")
    if len(transactions) > 1:
        raise UnsupportedFormatError(
            f"X12 document contains {len(transactions)} transaction sets; use translate_inbound_batch"
        )
    return transactions[0]


def read_x12_transaction(transaction: CdmTransaction) -> Tuple[TransactionSetCode, List[Row], List[TranslationIssue]]:
    """Identify a transaction set from ST01 and flatten it to element-reference rows."""
    code = to_transaction_set(transaction.transaction_set_code)
    schema = get_schema(code)
    if schema is None:
        raise UnsupportedFormatError(f"Inbound X12 transaction set {code.value} is not translated")
    rows, issues = read_transaction(transaction, schema)
    return code, rows, issues


def x12_mapping(transaction_set: TransactionSetCode, mapping: MappingLike = None) -> Optional[FieldMappingTable]:
    """Built-in element-reference map for the set, overlaid with a partner mapping if given."""
    base = default_field_map(transaction_set)
    partner = as_mapping_table(mapping)
    if partner is None:
        return base
    if base is None:
        return partner
    return base.overlay(partner)


def parse_document(content: Union[str, bytes], format: Union[EdiFormat, str], options: CodecOptions = None) -> List[Row]:
    """Decode content of the given format into rows; X12 yields the rows of its single transaction set."""
    fmt = to_format(format)
    options = _checked_options(fmt, options)
    if fmt is EdiFormat.CSV:
        return parse_csv(content, options)
    if fmt is EdiFormat.XML:
        return parse_xml(content, options)
    if fmt is EdiFormat.JSON:
        return parse_json(content, options)
    if fmt is EdiFormat.X12:
        _, rows, _ = read_x12_transaction(_single_transaction(parse_x12(content, options)))
        return rows
    raise UnsupportedFormatError(f"Unsupported format: '{fmt}'")


def generate_document(
    rows: Sequence[Row],
    format: Union[EdiFormat, str],
    options: CodecOptions = None,
    transaction_set: Optional[Union[TransactionSetCode, str]] = None,
) -> str:
    """Encode rows in the given format. X12 output is one ST/SE transaction set and needs ``transaction_set``."""
    fmt = to_format(format)
    options = _checked_options(fmt, options)
    if fmt is EdiFormat.CSV:
        return generate_csv(rows, options)
    if fmt is EdiFormat.XML:
        return generate_xml(rows, options)
    if fmt is EdiFormat.JSON:
        return generate_json(rows, options)
    if fmt is EdiFormat.X12:
        if transaction_set is None:
            raise UnsupportedFormatError("Generating X12 requires a transaction set")
        code = to_transaction_set(transaction_set)
        options = options or X12Options()
        segments = build_transaction(code, build_segments(code, rows), options.transaction_control_number)
        return serialize_segments(segments, options)
    raise UnsupportedFormatError(f"Unsupported format: '{fmt}'")


def translate_inbound(
    content: Union[str, bytes],
    format: Union[EdiFormat, str],
    transaction_set: Optional[Union[TransactionSetCode, str]] = None,
    mapping: MappingLike = None,
    options: CodecOptions = None,
    interpreter_options: Optional[InterpreterOptions] = None,
) -> ErpDocument:
    """
    Translate one inbound document into its ERP entity.

    For X12 the transaction set is read from ST01 (a ``transaction_set`` that
    disagrees is an error) and ``mapping`` overlays the built-in element map.
    Other formats need ``transaction_set`` and map fields with ``mapping``.
    """
    fmt = to_format(format)
    options = _checked_options(fmt, options)

    if fmt is EdiFormat.X12:
        transaction = _single_transaction(parse_x12(content, options))
        code, rows, issues = read_x12_transaction(transaction)
        if transaction_set is not None and to_transaction_set(transaction_set) is not code:
            raise UnsupportedFormatError(
                f"Document holds transaction set {code.value}, not {to_transaction_set(transaction_set).value}"
            )
        entity = interpret(code, apply_field_mappings(rows, x12_mapping(code, mapping)), interpreter_options)
        entity.warnings.extend(issues)
        logger.info(f"Translated inbound X12 {code.value} #{transaction.control_number} with {len(entity.warnings)} warning(s).")
        return entity

    if transaction_set is None:
        raise UnsupportedFormatError(f"A transaction set is required to interpret {fmt.value} documents")
    rows = parse_document(content, fmt, options)
    entity = interpret(transaction_set, apply_field_mappings(rows, mapping), interpreter_options)
    logger.info(f"Translated inbound {fmt.value} document into {type(entity).__name__}.")
    return entity


def _rejected(transaction_id: str, transaction_set: str, issue: TranslationIssue) -> InterpretationOutcome:
    return InterpretationOutcome(
        transaction_id=transaction_id,
        transaction_set=transaction_set,
        status=AckStatus.REJECTED,
        errors=[issue],
    )


def translate_inbound_batch(
    content: Union[str, bytes],
    format: Union[EdiFormat, str],
    transaction_set: Optional[Union[TransactionSetCode, str]] = None,
    mapping: MappingLike = None,
    options: CodecOptions = None,
    interpreter_options: Optional[InterpreterOptions] = None,
    mapping_resolver: Optional[MappingResolver] = None,
    transaction_id: str = "1",
) -> List[InboundResult]:
    """
    Interpret every transaction set in an X12 document, or the one transaction of a flat document.

    Transaction errors are captured per transaction as rejected outcomes instead
    of being raised, so the results can be acknowledged. ``mapping_resolver``
    picks a mapping per transaction set and takes precedence over ``mapping``.
    """
    fmt = to_format(format)
    options = _checked_options(fmt, options)

    def mapping_for(code: TransactionSetCode) -> MappingLike:
        return mapping_resolver(code) if mapping_resolver is not None else mapping

    if fmt is not EdiFormat.X12:
        if transaction_set is None:
            raise UnsupportedFormatError(f"A transaction set is required to interpret {fmt.value} documents")
        code = to_transaction_set(transaction_set)
        rows = apply_field_mappings(parse_document(content, fmt, options), mapping_for(code))
        entity, outcome = evaluate_transaction(code, rows, transaction_id, interpreter_options)
        return [InboundResult(transaction_id=transaction_id, transaction_set=code.value, entity=entity, outcome=outcome)]

    interchange = parse_x12(content, options)
    results: List[InboundResult] = []
    for group in interchange.functional_groups:
        envelope_issues = list(interchange.errors) + list(group.errors)
        for transaction in group.transactions:
            control_number = transaction.control_number
            set_code = transaction.transaction_set_code
            try:
                code, rows, issues = read_x12_transaction(transaction)
            except UnsupportedFormatError as e:
                logger.warning(f"Rejecting transaction {control_number}: {e}")
                issue = TranslationIssue(
                    code=IssueCode.UNSUPPORTED_TRANSACTION_SET,
                    message=str(e),
                    segment_id="ST",
                    segment_position=1,
                    syntax_error_code=TransactionSyntaxErrorCode.TRANSACTION_SET_NOT_SUPPORTED.value,
                )
                outcome = _rejected(control_number, set_code, issue)
                entity = None
            else:
                canonical = apply_field_mappings(rows, x12_mapping(code, mapping_for(code)))
                entity, outcome = evaluate_transaction(
                    code, canonical, control_number, interpreter_options, issues=envelope_issues + issues
                )
            results.append(InboundResult(
                transaction_id=control_number,
                transaction_set=set_code,
                entity=entity,
                outcome=outcome,
                group_control_number=group.control_number,
                functional_identifier=group.functional_identifier,
            ))

    rejected = sum(1 for result in results if result.outcome.status is AckStatus.REJECTED)
    logger.info(f"Translated {len(results)} X12 transaction set(s); {rejected} rejected.")
    return results


def translate_outbound(
    entity: ErpDocument,
    format: Union[EdiFormat, str],
    mapping: MappingLike = None,
    options: CodecOptions = None,
    envelope: Optional[X12EnvelopeOptions] = None,
) -> str:
    """
    Translate an ERP entity into a partner document.

    For X12, ``envelope`` adds ISA/GS/GE/IEA around the transaction set.
    """
    fmt = to_format(format)
    options = _checked_options(fmt, options)
    rows = generate(entity)
    code = transaction_set_for(entity)

    if fmt is EdiFormat.X12:
        options = options or X12Options()
        element_rows = reverse_field_mappings(rows, x12_mapping(code, mapping))
        segments = build_transaction(code, build_segments(code, element_rows), options.transaction_control_number)
        if envelope is not None:
            segments = wrap_interchange(segments, code, envelope, options)
        logger.info(f"Translated outbound {code.value} into X12 ({len(segments)} segments).")
        return serialize_segments(segments, options)

    logger.info(f"Translated outbound {code.value} into {fmt.value} ({len(rows)} rows).")
    return generate_document(reverse_field_mappings(rows, mapping), fmt, options)


def acknowledge(
    outcomes: Sequence[InterpretationOutcome],
    format: Union[EdiFormat, str],
    options: CodecOptions = None,
    envelope: Optional[X12EnvelopeOptions] = None,
    group_control_number: str = "1",
    functional_identifier: Optional[str] = None,
) -> str:
    """
    Produce a functional acknowledgment for interpretation outcomes.

    Flat formats get one row per outcome. X12 gets a 997 transaction set whose
    AK1 names the acknowledged group; the functional identifier defaults to the
    one for the first outcome's transaction set.
    """
    fmt = to_format(format)
    options = _checked_options(fmt, options)
    if fmt is not EdiFormat.X12:
        return generate_document(generate_997(outcomes), fmt, options)

    options = options or X12Options()
    if functional_identifier is None:
        functional_identifier = ""
        if outcomes:
            try:
                functional_identifier = FUNCTIONAL_IDENTIFIERS[TransactionSetCode(outcomes[0].transaction_set)]
            except ValueError:
                logger.debug(f"No functional identifier for transaction set {outcomes[0].transaction_set}")
    code = TransactionSetCode.FUNCTIONAL_ACKNOWLEDGMENT
    body = build_997_segments(outcomes, functional_identifier, group_control_number)
    segments = build_transaction(code, body, options.transaction_control_number)
    if envelope is not None:
        segments = wrap_interchange(segments, code, envelope, options)
    return serialize_segments(segments, options)
