import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, List, Mapping, Optional, Sequence, Union

from cdm import Row
from codec_support import decode_content, to_text
from edi_errors import FormatError
from edi_options import DEFAULT_ROW_TAG, XmlOptions

logger = logging.getLogger(__name__)

_XML_NAME = re.compile(r"^[A-Za-z_][\w.\-]*$")
_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if tag.startswith("{") else tag


def parse_xml(content: Union[str, bytes], options: Optional[XmlOptions] = None) -> List[Row]:
    """
    Parse XML content into rows.

    With ``options.row_tag`` set, every element with that (local) tag is a row;
    otherwise each child of the document root is a row. A row's fields are its
    immediate child elements.

    Raises:
        FormatError: for malformed XML, nested field elements or a field repeated within a row.
    """
    options = options or XmlOptions()
    text = decode_content(content)
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        line, column = e.position
        raise FormatError(f"Malformed XML at line {line}, column {column}: {e}")

    if options.row_tag:
        row_elements = [el for el in root.iter() if _local_name(el.tag) == options.row_tag]
    else:
        row_elements = list(root)
    logger.debug(f"Found {len(row_elements)} XML row elements under <{_local_name(root.tag)}>.")

    rows: List[Row] = []
    for row_index, element in enumerate(row_elements, start=1):
        row: Row = {}
        if options.include_attributes:
            for name, value in element.attrib.items():
                row[f"{options.attribute_prefix}{_local_name(name)}"] = value
        for child in element:
            field = _local_name(child.tag)
            if len(child):
                raise FormatError(f"Field element <{field}> contains nested elements", row_index=row_index)
            if field in row:
                raise FormatError(f"Field <{field}> appears more than once", row_index=row_index)
            row[field] = child.text or ""
        rows.append(row)
    return rows


def generate_xml(rows: Sequence[Mapping[str, Any]], options: Optional[XmlOptions] = None) -> str:
    """Wrap rows in ``<root_tag>``/``<row_tag>`` elements with one child element per field."""
    options = options or XmlOptions()
    row_tag = options.row_tag or DEFAULT_ROW_TAG
    for tag in (options.root_tag, row_tag):
        if not _XML_NAME.match(tag):
            raise FormatError(f"'{tag}' is not a valid XML element name")

    root = ET.Element(options.root_tag)
    for row_index, row in enumerate(rows, start=1):
        row_element = ET.SubElement(root, row_tag)
        for name, value in row.items():
            if options.include_attributes and name.startswith(options.attribute_prefix):
                attribute = name[len(options.attribute_prefix):]
                if not _XML_NAME.match(attribute):
                    raise FormatError(f"'{attribute}' is not a valid XML attribute name", row_index=row_index)
                row_element.set(attribute, to_text(value))
                continue
            if not _XML_NAME.match(name):
                raise FormatError(f"Field '{name}' is not a valid XML element name", row_index=row_index)
            ET.SubElement(row_element, name).text = to_text(value)

    ET.indent(root, space="  ")
    # A literal carriage return would read back as a newline.
    body = ET.tostring(root, encoding="unicode").replace("\r", "&#13;")
    return f"{_XML_DECLARATION}\n{body}\n"
