import json
import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

from cdm import Row
from codec_support import decode_content, to_text
from edi_errors import FormatError
from edi_options import JsonOptions

logger = logging.getLogger(__name__)

# Keys under which a top-level object may carry its rows.
ROW_CONTAINER_KEYS = ("rows", "data")


def _scalar_text(value: Any, field: str, row_index: int) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        raise FormatError(f"Field '{field}' holds a nested {type(value).__name__}; rows must be flat", row_index=row_index)
    return str(value)


def parse_json(content: Union[str, bytes], options: Optional[JsonOptions] = None) -> List[Row]:
    """
    Parse a JSON array of flat objects, or an object holding one under ``rows`` or ``data``.

    Scalar values are converted to strings: null becomes "", booleans become
    "true"/"false" and numbers keep their JSON notation.
    """
    text = decode_content(content)
    try:
        document = json.loads(text, parse_int=str, parse_float=str)
    except json.JSONDecodeError as e:
        raise FormatError(f"Malformed JSON at line {e.lineno}, column {e.colno}: {e.msg}")

    if isinstance(document, dict):
        container = next((key for key in ROW_CONTAINER_KEYS if key in document), None)
        if container is None:
            raise FormatError(f"JSON object has no {' or '.join(repr(key) for key in ROW_CONTAINER_KEYS)} array")
        document = document[container]
    if not isinstance(document, list):
        raise FormatError(f"Expected a JSON array of objects, found {type(document).__name__}")

    rows: List[Row] = []
    for row_index, item in enumerate(document, start=1):
        if not isinstance(item, dict):
            raise FormatError(f"Expected a JSON object, found {type(item).__name__}", row_index=row_index)
        rows.append({str(key): _scalar_text(value, key, row_index) for key, value in item.items()})
    logger.debug(f"Parsed {len(rows)} JSON rows.")
    return rows


def generate_json(rows: Sequence[Mapping[str, Any]], options: Optional[JsonOptions] = None) -> str:
    """Write ``{"data": [...]}`` with keys in row insertion order."""
    options = options or JsonOptions()
    payload = {"data": [{key: to_text(value) for key, value in row.items()} for row in rows]}
    return json.dumps(payload, indent=options.indent, ensure_ascii=False)
