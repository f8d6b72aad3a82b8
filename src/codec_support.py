# Helpers shared by the format codecs.
from typing import Any, List, Sequence, Union, Mapping

from edi_errors import FormatError

_BOM = "\ufeff"


def decode_content(content: Union[str, bytes]) -> str:
    """Return document text, decoding UTF-8 bytes and dropping a leading byte order mark."""
    if isinstance(content, (bytes, bytearray)):
        try:
            content = bytes(content).decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError(f"Document is not valid UTF-8: {e}")
    if content.startswith(_BOM):
        content = content[1:]
    return content


def to_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def ordered_field_names(rows: Sequence[Mapping[str, Any]]) -> List[str]:
    """Union of field names across rows, in first-seen order."""
    seen = {}
    for row in rows:
        for name in row:
            seen.setdefault(name, None)
    return list(seen)
