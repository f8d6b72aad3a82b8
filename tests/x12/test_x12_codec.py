import pytest

from edi_defs import IssueCode, TransactionSetCode
from edi_errors import FormatError
from edi_options import X12EnvelopeOptions, X12Options
from x12_codec import (
    build_transaction,
    detect_delimiters,
    format_segment,
    parse_x12,
    serialize_segments,
    wrap_interchange,
)

pytestmark = pytest.mark.unit

# --- Delimiters ---

def test_delimiters_are_read_from_isa(x12_850_string: str):
    delimiters = detect_delimiters(x12_850_string)
    assert delimiters.element == "*"
    assert delimiters.segment == "~"
    assert delimiters.component == ">"
    assert delimiters.repetition == "^"

def test_configured_delimiters_are_used_without_isa():
    options = X12Options(element_separator="|", segment_terminator="!")
    delimiters = detect_delimiters("ST|850|0001!SE|2|0001!", options)
    assert delimiters.element == "|"
    assert delimiters.segment == "!"

def test_parse_x12_with_pipe_separator_and_newline_terminator(x12_850_string: str):
    content = x12_850_string.replace("*", "|").replace("~", "\n")
    interchange = parse_x12(content)
    transaction = interchange.all_transactions()[0]
    assert transaction.transaction_set_code == "850"
    assert transaction.segments[0].get_element(3) == "PO-100"
    assert transaction.errors == []

def test_declared_options_that_contradict_isa_are_rejected(x12_850_string: str):
    with pytest.raises(FormatError) as exc_info:
        parse_x12(x12_850_string, X12Options(element_separator="|"))
    assert exc_info.value.segment_position == 1

def test_default_options_do_not_conflict_with_isa(x12_850_string: str):
    content = x12_850_string.replace("*", "|")
    assert len(parse_x12(content, X12Options()).all_transactions()) == 1

def test_truncated_isa_is_rejected():
    with pytest.raises(FormatError, match="truncated"):
        parse_x12("ISA*00*          *00~")

def test_invalid_segment_identifier_cites_position():
    with pytest.raises(FormatError) as exc_info:
        parse_x12("ST*850*0001~beg*00~SE*3*0001~")
    assert exc_info.value.segment_position == 2

def test_wrong_separator_surfaces_as_invalid_segment():
    with pytest.raises(FormatError):
        parse_x12("ST|850|0001~BEG|00~SE|3|0001~")

# --- Envelope structure ---

def test_parse_enveloped_850(x12_850_string: str):
    interchange = parse_x12(x12_850_string)
    assert interchange.header is not None
    assert interchange.errors == []
    assert len(interchange.functional_groups) == 1

    group = interchange.functional_groups[0]
    assert group.functional_identifier == "PO"
    assert group.control_number == "1"
    assert group.errors == []

    transaction = group.transactions[0]
    assert transaction.transaction_set_code == "850"
    assert transaction.control_number == "0001"
    assert [s.segment_id for s in transaction.segments][:3] == ["BEG", "CUR", "DTM"]
    assert transaction.errors == []

def test_bare_transaction_set_is_grouped_without_header(bare_850_string: str):
    interchange = parse_x12(bare_850_string)
    assert interchange.header is None
    group = interchange.functional_groups[0]
    assert group.header is None
    assert group.control_number == ""
    assert len(group.transactions) == 1

def test_multiple_transactions_in_one_group(x12_batch_string: str):
    interchange = parse_x12(x12_batch_string)
    codes = [t.transaction_set_code for t in interchange.all_transactions()]
    assert codes == ["850", "855"]
    assert interchange.functional_groups[0].errors == []

def test_missing_se_is_a_format_error(x12_850_string: str):
    content = x12_850_string.replace("SE*11*0001~\n", "")
    with pytest.raises(FormatError):
        parse_x12(content)

def test_missing_iea_is_a_format_error(x12_850_string: str):
    content = x12_850_string.replace("IEA*1*000000001~", "")
    with pytest.raises(FormatError, match="IEA"):
        parse_x12(content)

def test_segment_outside_transaction_is_a_format_error():
    with pytest.raises(FormatError, match="outside a transaction set"):
        parse_x12("BEG*00*NE*PO-1~ST*850*0001~SE*2*0001~")

def test_segment_after_iea_is_a_format_error(x12_850_string: str):
    with pytest.raises(FormatError, match="follows the IEA"):
        parse_x12(x12_850_string + "\nST*850*0002~")

# --- Control numbers and counts ---

def test_se_segment_count_mismatch_is_recorded(x12_850_string: str):
    content = x12_850_string.replace("SE*11*0001", "SE*12*0001")
    transaction = parse_x12(content).all_transactions()[0]
    assert len(transaction.errors) == 1
    issue = transaction.errors[0]
    assert issue.code == IssueCode.ENVELOPE_ERROR
    assert issue.syntax_error_code == "4"
    assert issue.expected == "11"
    assert issue.actual == "12"

def test_se_control_number_mismatch_is_recorded(x12_850_string: str):
    content = x12_850_string.replace("SE*11*0001", "SE*11*0009")
    transaction = parse_x12(content).all_transactions()[0]
    assert [e.syntax_error_code for e in transaction.errors] == ["3"]

def test_ge_and_iea_mismatches_are_recorded(x12_850_string: str):
    content = x12_850_string.replace("GE*1*1~", "GE*2*7~").replace("IEA*1*000000001", "IEA*1*000000002")
    interchange = parse_x12(content)
    group_messages = [e.message for e in interchange.functional_groups[0].errors]
    assert any("GE01" in m for m in group_messages)
    assert any("GE02" in m for m in group_messages)
    assert any("IEA02" in e.message for e in interchange.errors)

# --- Generation ---

def test_format_segment_drops_trailing_empty_elements():
    assert format_segment(["N1", "BY", "", "", ""], X12Options()) == "N1*BY~"
    assert format_segment(["PO1", "", "5"], X12Options()) == "PO1**5~"

def test_format_segment_rejects_values_containing_delimiters():
    with pytest.raises(FormatError, match="delimiter"):
        format_segment(["MSG", "50% off*today"], X12Options())

def test_build_transaction_counts_st_and_se():
    segments = build_transaction(TransactionSetCode.PURCHASE_ORDER, [["BEG", "00"]], "0042")
    assert segments == [["ST", "850", "0042"], ["BEG", "00"], ["SE", "3", "0042"]]

def test_serialize_segments_line_break_option():
    segments = build_transaction(TransactionSetCode.PURCHASE_ORDER, [["BEG", "00"]])
    assert serialize_segments(segments, X12Options(line_break=False)) == "ST*850*0001~BEG*00~SE*3*0001~"
    assert serialize_segments(segments) == "ST*850*0001~\nBEG*00~\nSE*3*0001~\n"

def test_wrapped_interchange_is_fixed_width_and_parses_cleanly(envelope_options: X12EnvelopeOptions):
    transaction = build_transaction(TransactionSetCode.PURCHASE_ORDER, [["BEG", "00", "NE", "PO-1", "", "20240101"]])
    segments = wrap_interchange(transaction, TransactionSetCode.PURCHASE_ORDER, envelope_options)
    text = serialize_segments(segments)

    isa_line = text.split("\n")[0]
    assert len(isa_line) == 106
    assert isa_line[104] == ":"
    assert segments[1][:2] == ["GS", "PO"]

    interchange = parse_x12(text)
    assert interchange.errors == []
    assert interchange.functional_groups[0].errors == []
    assert interchange.all_transactions()[0].errors == []

def test_isa11_follows_interchange_version(envelope_options: X12EnvelopeOptions):
    transaction = build_transaction(TransactionSetCode.PURCHASE_ORDER, [])
    old = wrap_interchange(transaction, TransactionSetCode.PURCHASE_ORDER, envelope_options)
    new = wrap_interchange(
        transaction,
        TransactionSetCode.PURCHASE_ORDER,
        envelope_options.model_copy(update={"interchange_version": "00501"}),
    )
    assert old[0][11] == "U"
    assert new[0][11] == "^"

def test_oversized_envelope_id_is_rejected(envelope_options: X12EnvelopeOptions):
    envelope = envelope_options.model_copy(update={"sender_id": "A" * 16})
    with pytest.raises(FormatError, match="sender id"):
        wrap_interchange(build_transaction(TransactionSetCode.INVOICE, []), TransactionSetCode.INVOICE, envelope)
