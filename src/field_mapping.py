import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from cdm import Row
from edi_errors import MappingConfigError

logger = logging.getLogger(__name__)

Transform = Literal["uppercase", "lowercase", "trim", "number", "date", "boolean"]

_STRING_TRANSFORMS = {"uppercase": str.upper, "lowercase": str.lower, "trim": str.strip}
_DATE_FORMATS = ("%Y-%m-%d", "%Y%m%d", "%m/%d/%Y", "%Y-%m-%dT%H:%M:%S")
_TRUE_VALUES = ("true", "1", "yes", "y")


def _to_number(value: str) -> Optional[str]:
    try:
        number = Decimal(value.strip().replace(",", ""))
    except InvalidOperation:
        return None
    return format(number, "f") if number.is_finite() else None


def _to_date(value: str) -> Optional[str]:
    for date_format in _DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), date_format).date().isoformat()
        except ValueError:
            continue
    return None


class FieldMappingRule(BaseModel):
    """
    One external field to canonical field rule, as stored in document map files.

    ``defaultValue`` fills a missing or empty source field on the way in.
    ``transform`` normalizes inbound values; only the string transforms
    (uppercase, lowercase, trim) are applied again on the way out. A value the
    number or date transform cannot read is passed on unchanged so the
    interpreter reports it against the canonical field.
    """
    model_config = ConfigDict(frozen=True)

    source_field: str = Field(min_length=1, validation_alias=AliasChoices("sourceField", "source_field"))
    target_field: str = Field(min_length=1, validation_alias=AliasChoices("targetField", "target_field"))
    transform: Optional[Transform] = None
    default_value: Optional[str] = Field(default=None, validation_alias=AliasChoices("defaultValue", "default_value"))

    @property
    def renames_only(self) -> bool:
        return self.transform is None and self.default_value is None

    def inbound(self, value: Optional[str]) -> Optional[str]:
        """Value to store under ``target_field``; None leaves the row as renamed."""
        if value is None or value == "":
            if self.default_value is None:
                return None
            value = self.default_value
        if self.transform is None:
            return value
        if self.transform in _STRING_TRANSFORMS:
            return _STRING_TRANSFORMS[self.transform](value)
        if self.transform == "boolean":
            return "true" if value.strip().lower() in _TRUE_VALUES else "false"
        converted = _to_number(value) if self.transform == "number" else _to_date(value)
        if converted is None:
            logger.warning(f"Cannot apply '{self.transform}' transform to '{self.source_field}' value '{value}'")
            return value
        return converted

    def outbound(self, value: str) -> str:
        if self.transform in _STRING_TRANSFORMS:
            return _STRING_TRANSFORMS[self.transform](value)
        return value


class FieldMappingTable:
    """
    Validated, immutable bidirectional map of external field names to canonical field names.

    A table is scoped to one document type and optionally one trading partner
    and direction. Ambiguity is rejected when the table is built so that
    renaming rows never fails. Rules carrying a default or a transform are kept
    alongside the rename map; a table without them is an exact inverse pair.
    """

    def __init__(
        self,
        mapping: Mapping[str, str],
        name: str = "",
        document_type: Optional[str] = None,
        partner_id: Optional[str] = None,
        rules: Iterable[FieldMappingRule] = (),
        direction: Optional[str] = None,
    ):
        reverse: Dict[str, str] = {}
        for external, canonical in mapping.items():
            if not external or not canonical:
                raise MappingConfigError(f"Mapping table '{name}' contains an empty field name")
            if canonical in reverse:
                raise MappingConfigError(
                    f"Mapping table '{name}' maps both '{reverse[canonical]}' and '{external}' to '{canonical}'"
                )
            reverse[canonical] = external

        value_rules = tuple(rule for rule in rules if not rule.renames_only)
        for rule in value_rules:
            if mapping.get(rule.source_field) != rule.target_field:
                raise MappingConfigError(
                    f"Mapping table '{name}' rule for '{rule.source_field}' does not match its field map"
                )

        self.name = name
        self.document_type = document_type
        self.partner_id = partner_id
        self.direction = direction
        self._forward: Mapping[str, str] = MappingProxyType(dict(mapping))
        self._reverse: Mapping[str, str] = MappingProxyType(reverse)
        self._value_rules: Tuple[FieldMappingRule, ...] = value_rules

    @classmethod
    def from_rules(
        cls,
        rules: Iterable[Union[FieldMappingRule, Mapping[str, Any]]],
        name: str = "",
        document_type: Optional[str] = None,
        partner_id: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> "FieldMappingTable":
        """Build a table from ``{"sourceField", "targetField", "transform"?, "defaultValue"?}`` rules."""
        mapping: Dict[str, str] = {}
        parsed: List[FieldMappingRule] = []
        for index, raw_rule in enumerate(rules, start=1):
            try:
                rule = raw_rule if isinstance(raw_rule, FieldMappingRule) else FieldMappingRule.model_validate(raw_rule)
            except ValidationError as e:
                raise MappingConfigError(f"Mapping table '{name}' rule {index} is malformed: {e}") from e

            existing = mapping.get(rule.source_field)
            if existing is not None and existing != rule.target_field:
                raise MappingConfigError(
                    f"Mapping table '{name}' maps '{rule.source_field}' to both '{existing}' and '{rule.target_field}'"
                )
            if existing is not None and not rule.renames_only:
                raise MappingConfigError(f"Mapping table '{name}' repeats the rule for '{rule.source_field}'")
            mapping[rule.source_field] = rule.target_field
            parsed.append(rule)
        return cls(mapping, name=name, document_type=document_type, partner_id=partner_id, rules=parsed, direction=direction)

    @classmethod
    def from_dict(
        cls,
        mapping: Mapping[str, str],
        name: str = "",
        document_type: Optional[str] = None,
        partner_id: Optional[str] = None,
    ) -> "FieldMappingTable":
        return cls(mapping, name=name, document_type=document_type, partner_id=partner_id)

    @property
    def forward(self) -> Mapping[str, str]:
        """External name to canonical name."""
        return self._forward

    @property
    def reverse(self) -> Mapping[str, str]:
        """Canonical name to external name."""
        return self._reverse

    @property
    def value_rules(self) -> Tuple[FieldMappingRule, ...]:
        """Rules that fill defaults or transform values, in file order."""
        return self._value_rules

    def canonical_for(self, external: str) -> str:
        return self._forward.get(external, external)

    def external_for(self, canonical: str) -> str:
        return self._reverse.get(canonical, canonical)

    def overlay(self, override: "FieldMappingTable") -> "FieldMappingTable":
        """
        Layer ``override`` on top of this table.

        Base entries sharing an external or a canonical name with an override entry are dropped,
        so a partner map can re-point a canonical field at a different external field.
        """
        merged = {
            external: canonical
            for external, canonical in self._forward.items()
            if external not in override.forward and canonical not in override.reverse
        }
        merged.update(override.forward)
        rules = [rule for rule in self._value_rules if rule.source_field in merged and rule.source_field not in override.forward]
        rules.extend(override.value_rules)
        return FieldMappingTable(
            merged,
            name=override.name or self.name,
            document_type=override.document_type or self.document_type,
            partner_id=override.partner_id or self.partner_id,
            rules=rules,
            direction=override.direction or self.direction,
        )

    def __len__(self) -> int:
        return len(self._forward)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldMappingTable):
            return NotImplemented
        return dict(self._forward) == dict(other._forward) and self._value_rules == other._value_rules

    def __repr__(self) -> str:
        return f"FieldMappingTable(name={self.name!r}, document_type={self.document_type!r}, entries={len(self)})"


MappingLike = Union[FieldMappingTable, Mapping[str, str], Sequence[Mapping[str, Any]], None]


def as_mapping_table(mapping: MappingLike) -> Optional[FieldMappingTable]:
    """Accept a table, a plain ``{external: canonical}`` dict or a list of rules."""
    if mapping is None or isinstance(mapping, FieldMappingTable):
        return mapping
    if isinstance(mapping, Mapping):
        return FieldMappingTable.from_dict(mapping)
    return FieldMappingTable.from_rules(mapping)


def _rename(row: Mapping[str, str], names: Mapping[str, str]) -> Row:
    # An unmapped field whose name is also produced by a mapped field is shadowed by the mapped value.
    claimed = {names[key]: key for key in row if key in names}
    renamed: Row = {}
    for key, value in row.items():
        if key in names:
            renamed[names[key]] = value
        elif key in claimed:
            logger.warning(f"Dropping field '{key}': the name is taken by mapped field '{claimed[key]}'")
        else:
            renamed[key] = value
    return renamed


def _apply_row(row: Mapping[str, str], table: FieldMappingTable) -> Row:
    renamed = _rename(row, table.forward)
    for rule in table.value_rules:
        value = rule.inbound(row.get(rule.source_field))
        if value is not None:
            renamed[rule.target_field] = value
    return renamed


def _reverse_row(row: Mapping[str, str], table: FieldMappingTable) -> Row:
    renamed = _rename(row, table.reverse)
    for rule in table.value_rules:
        if rule.target_field in row:
            renamed[rule.source_field] = rule.outbound(row[rule.target_field])
    return renamed


def apply_field_mappings(rows: Sequence[Mapping[str, str]], mapping: MappingLike) -> List[Row]:
    """
    Rename external fields to canonical fields. Unmapped fields pass through; input rows are not modified.

    Rule defaults and transforms are applied after renaming.
    """
    table = as_mapping_table(mapping)
    if table is None:
        return [dict(row) for row in rows]
    logger.debug(f"Applying mapping table {table!r} to {len(rows)} rows.")
    return [_apply_row(row, table) for row in rows]


def reverse_field_mappings(rows: Sequence[Mapping[str, str]], mapping: MappingLike) -> List[Row]:
    """Rename canonical fields back to external fields; the inverse of apply_field_mappings for rename-only rules."""
    table = as_mapping_table(mapping)
    if table is None:
        return [dict(row) for row in rows]
    logger.debug(f"Reversing mapping table {table!r} over {len(rows)} rows.")
    return [_reverse_row(row, table) for row in rows]
