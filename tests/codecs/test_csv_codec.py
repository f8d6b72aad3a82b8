import pytest

from csv_codec import generate_csv, parse_csv
from edi_errors import FormatError
from edi_options import CsvOptions

pytestmark = pytest.mark.unit

# --- Parsing ---

def test_parse_csv_uses_first_record_as_header():
    rows = parse_csv("id,qty\n1,5\n2,3")
    assert rows == [{"id": "1", "qty": "5"}, {"id": "2", "qty": "3"}]

def test_parse_csv_handles_quoted_fields_with_delimiters_and_newlines():
    content = 'name,note\n"Smith, J","line one\nline two"\n'
    rows = parse_csv(content)
    assert rows == [{"name": "Smith, J", "note": "line one\nline two"}]

def test_parse_csv_skips_blank_lines():
    rows = parse_csv("id,qty\n\n1,5\n\n")
    assert rows == [{"id": "1", "qty": "5"}]

def test_parse_csv_accepts_crlf_bytes_and_bom():
    content = "\ufeffid,qty\r\n1,5\r\n".encode("utf-8")
    assert parse_csv(content) == [{"id": "1", "qty": "5"}]

def test_parse_csv_keeps_whitespace_unless_asked():
    assert parse_csv("id,qty\n 1 , 5 ") == [{"id": " 1 ", "qty": " 5 "}]
    stripped = parse_csv("id,qty\n 1 , 5 ", CsvOptions(strip_whitespace=True))
    assert stripped == [{"id": "1", "qty": "5"}]

def test_parse_csv_with_custom_delimiter():
    rows = parse_csv("id|qty\n1|5", CsvOptions(delimiter="|"))
    assert rows == [{"id": "1", "qty": "5"}]

def test_parse_csv_header_only_yields_no_rows():
    assert parse_csv("id,qty\n") == []
    assert parse_csv("") == []

# --- Malformed content ---

def test_parse_csv_rejects_field_count_mismatch_with_row_index():
    with pytest.raises(FormatError) as exc_info:
        parse_csv("id,qty\n1,5\n2,3,9")
    assert exc_info.value.row_index == 2

def test_parse_csv_rejects_unterminated_quote():
    with pytest.raises(FormatError):
        parse_csv('id,qty\n1,"5\n')

def test_parse_csv_rejects_duplicate_header_names():
    with pytest.raises(FormatError, match="Duplicate CSV header"):
        parse_csv("id,id\n1,2")

def test_csv_options_reject_multi_character_delimiter():
    with pytest.raises(ValueError):
        CsvOptions(delimiter="||")

# --- Generation ---

def test_generate_csv_writes_union_of_fields_in_first_seen_order():
    rows = [{"a": "1", "b": "2"}, {"c": "3", "a": "4"}]
    assert generate_csv(rows) == "a,b,c\n1,2,\n4,,3\n"

def test_generate_csv_quotes_only_when_needed():
    output = generate_csv([{"name": "Smith, J", "qty": "5"}])
    assert output == 'name,qty\n"Smith, J",5\n'

def test_generate_csv_with_no_rows_is_empty():
    assert generate_csv([]) == ""

def test_csv_round_trip_preserves_rows():
    rows = [
        {"orderNumber": "PO-1", "note": 'He said "hi"', "qty": "5"},
        {"orderNumber": "PO-1", "note": "multi\nline", "qty": ""},
        {"orderNumber": "PO-1", "note": "carriage\rreturn", "qty": "7"},
    ]
    assert parse_csv(generate_csv(rows)) == rows

def test_generate_csv_is_deterministic():
    rows = [{"a": "1", "b": "x,y"}]
    assert generate_csv(rows) == generate_csv(rows)
