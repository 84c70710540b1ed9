"""
Field-Label Resolver.

Derives the columns of a listing or export from the stored
submissions themselves. Submissions of one form may have
different key sets (fields added or removed over time), so
the columns are the ordered union of all keys seen.
"""

import json
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping

from database_storage.config import IgnoreRules
from storage.models.database_storage import DatabaseStorage
from storage.resources import ResourceReference


class FieldLabelResolver:
    """
    Column resolution and cell rendering for stored submissions.

    Built per call from the current ignore rules.
    """

    def __init__(self, ignore_rules: IgnoreRules, datetime_format: str = "%Y-%m-%d %H:%M:%S") -> None:
        self._ignore_rules = ignore_rules
        self._datetime_format = datetime_format

    def is_ignored(self, field_key: str) -> bool:
        return self._ignore_rules.is_ignored(field_key)

    def resolve_labels(self, records: Iterable[DatabaseStorage]) -> List[str]:
        """Union of property keys across records, first-seen order, minus ignored keys."""
        seen: Dict[str, None] = {}
        for record in records:
            for key in record.raw_properties:
                if key not in seen and not self.is_ignored(key):
                    seen[key] = None
        return list(seen)

    def resolve_declared_labels(self, field_identifiers: Iterable[str]) -> List[str]:
        """Same as resolve_labels, for a form's declared field list."""
        seen: Dict[str, None] = {}
        for key in field_identifiers:
            if key not in seen and not self.is_ignored(key):
                seen[key] = None
        return list(seen)

    def value_of(self, record: DatabaseStorage, key: str) -> Any:
        """
        Display value of one property.

        Missing keys render as an empty string.
        """
        properties = record.properties
        if key not in properties:
            return ""
        return self.format_value(properties[key])

    def format_value(self, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, ResourceReference):
            return value.display_value()
        if isinstance(value, bool):
            return "1" if value else ""
        if isinstance(value, datetime):
            return value.strftime(self._datetime_format)
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, (list, tuple)):
            return ", ".join(str(self.format_value(item)) for item in value)
        if isinstance(value, Mapping):
            return json.dumps(
                {k: self.format_value(v) for k, v in value.items()},
                ensure_ascii=False,
                separators=(",", ":"),
            )
        return value

    def row_for(self, record: DatabaseStorage, labels: Iterable[str]) -> Dict[str, Any]:
        properties = record.properties
        return {
            label: self.format_value(properties[label]) if label in properties else ""
            for label in labels
        }
