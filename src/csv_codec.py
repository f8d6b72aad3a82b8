import csv
import io
import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

from cdm import Row
from codec_support import decode_content, ordered_field_names, to_text
from edi_errors import FormatError
from edi_options import CsvOptions

logger = logging.getLogger(__name__)


def parse_csv(content: Union[str, bytes], options: Optional[CsvOptions] = None) -> List[Row]:
    """
    Parse CSV content into rows keyed by the header record.

    The first non-blank record is the header. Every later record must have
    exactly as many fields as the header.

    Raises:
        FormatError: on unterminated quotes, duplicate header names or a
            record whose field count differs from the header.
    """
    options = options or CsvOptions()
    text = decode_content(content)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=options.delimiter, strict=True)

    header: Optional[List[str]] = None
    rows: List[Row] = []
    data_index = 0
    try:
        for record in reader:
            if not record:
                continue
            if options.strip_whitespace:
                record = [value.strip() for value in record]

            if header is None:
                duplicates = sorted({name for name in record if record.count(name) > 1})
                if duplicates:
                    raise FormatError(f"Duplicate CSV header field(s): {', '.join(duplicates)}")
                header = record
                logger.debug(f"CSV header: {header}")
                continue

            data_index += 1
            if len(record) != len(header):
                raise FormatError(
                    f"CSV record at line {reader.line_num} has {len(record)} fields, header defines {len(header)}",
                    row_index=data_index,
                )
            rows.append(dict(zip(header, record)))
    except csv.Error as e:
        raise FormatError(f"Malformed CSV near line {reader.line_num}: {e}", row_index=data_index + 1)

    logger.debug(f"Parsed {len(rows)} CSV rows.")
    return rows


def generate_csv(rows: Sequence[Mapping[str, Any]], options: Optional[CsvOptions] = None) -> str:
    """Write rows as CSV; the header is the union of field names in first-seen order."""
    options = options or CsvOptions()
    if not rows:
        return ""

    fieldnames = ordered_field_names(rows)
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=options.delimiter, lineterminator="\n")
    # The writer only quotes characters from its own line terminator, so rows holding a bare
    # carriage return are fully quoted to keep them readable.
    quote_all_writer = csv.writer(buffer, delimiter=options.delimiter, lineterminator="\n", quoting=csv.QUOTE_ALL)

    writer.writerow(fieldnames)
    for row in rows:
        values = [to_text(row.get(name)) for name in fieldnames]
        if any("\r" in value for value in values):
            quote_all_writer.writerow(values)
        else:
            writer.writerow(values)
    return buffer.getvalue()
