"""
Result enrichment for ConsumerView lookups.

The API returns short codes (e.g. "Match": "P"). An AttributeTransformerRegistry
holds one AttributeCodeTable per attribute name and replaces each known code with
its descriptor. Attributes with no registered table pass through untouched.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from . import code_tables
from .errors import UnrecognizedAttributeValue


@dataclass(frozen=True)
class AttributeCodeTable:
    """Immutable mapping from raw API code to descriptor for one attribute."""

    name: str
    codes: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze both the table and each descriptor so a shared table cannot drift.
        frozen = {code: MappingProxyType(dict(desc)) for code, desc in self.codes.items()}
        object.__setattr__(self, "codes", MappingProxyType(frozen))

    def lookup(self, code: Any) -> Dict[str, Any]:
        """Return a fresh copy of the descriptor for `code`.

        Raises:
            UnrecognizedAttributeValue: If the code is not in the table
        """
        try:
            descriptor = self.codes[code]
        except (KeyError, TypeError):
            raise UnrecognizedAttributeValue(self.name, code) from None
        return dict(descriptor)

    def __contains__(self, code: Any) -> bool:
        try:
            return code in self.codes
        except TypeError:
            return False

    def __len__(self) -> int:
        return len(self.codes)


class AttributeTransformerRegistry:
    """
    Registry of code tables keyed by attribute name.

    Example:
        registry = AttributeTransformerRegistry()
        registry.register(MATCH)
        registry.transform({"Match": "P"})
        # {"Match": {"api_code": "P", "match_level": "person"}}
    """

    def __init__(self, tables: Optional[list] = None):
        self._tables: Dict[str, AttributeCodeTable] = {}
        for table in tables or []:
            self.register(table)

    def register_attribute(self, name: str, code_table: AttributeCodeTable) -> None:
        """Register `code_table` under `name`, replacing any existing table."""
        self._tables[name] = code_table

    def register(self, code_table: AttributeCodeTable) -> None:
        """Register a code table under its own name."""
        self.register_attribute(code_table.name, code_table)

    def attribute_names(self) -> list:
        return list(self._tables)

    def transform(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Enrich a single raw result record.

        Args:
            record: Raw attribute -> code mapping for one looked-up item

        Returns:
            New dict with registered attributes replaced by their descriptors

        Raises:
            UnrecognizedAttributeValue: If a registered attribute has an unknown code
        """
        enriched = {}
        for attribute, raw in record.items():
            table = self._tables.get(attribute)
            enriched[attribute] = table.lookup(raw) if table is not None else raw
        return enriched


class NoOpTransformer:
    """Identity transformer for callers who want the raw API records."""

    def transform(self, record: Mapping[str, Any]) -> Mapping[str, Any]:
        return record


MATCH = AttributeCodeTable(code_tables.MATCH_ATTRIBUTE, code_tables.MATCH_CODES)
MOSAIC_UK_6_GROUP = AttributeCodeTable(
    code_tables.MOSAIC_UK_6_GROUP_ATTRIBUTE, code_tables.MOSAIC_UK_6_GROUP_CODES
)
MOSAIC_UK_6_TYPE = AttributeCodeTable(
    code_tables.MOSAIC_UK_6_TYPE_ATTRIBUTE, code_tables.MOSAIC_UK_6_TYPE_CODES
)

DEFAULT_CODE_TABLES = (MATCH, MOSAIC_UK_6_GROUP, MOSAIC_UK_6_TYPE)


def default_registry() -> AttributeTransformerRegistry:
    """Build a new registry holding the default code tables.

    Each call returns an independent registry; cache it yourself if you need
    a shared instance.
    """
    return AttributeTransformerRegistry(list(DEFAULT_CODE_TABLES))
