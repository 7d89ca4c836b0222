"""Plain record types passed between sync stages.

SourceRecord is one ERP row; TargetUpdatePayload is what gets written to
the commerce store for one sku. Neither knows anything about a database.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping

# ERP column → SourceRecord field
SOURCE_COLUMNS = {
    "CODIGO": "key",
    "MATID": "internal_id",
    "DESCRIP": "display_name",
    "UNIDAD": "unit_label",
    "GRUPMATID": "group_id",
    "EXISTENC": "stock_quantity",
    "PRECIO1": "base_price",
    "PRECIO2": "alternate_price",
    "INACTIVO": "inactive_flag",
}


@dataclass(frozen=True)
class SourceRecord:
    key: str
    internal_id: Any = None
    display_name: str | None = None
    unit_label: str | None = None
    group_id: Any = None
    stock_quantity: Any = None
    base_price: Any = None
    alternate_price: Any = None
    inactive_flag: str | None = None
    active_marker: str = "N"

    @classmethod
    def from_row(cls, row: Mapping[str, Any], active_marker: str = "N") -> "SourceRecord":
        """Build from an ERP row mapping keyed by column name (case-insensitive)."""
        upper = {str(k).upper(): v for k, v in row.items()}
        values = {field: upper.get(col) for col, field in SOURCE_COLUMNS.items()}
        key = values.pop("key")
        # CHAR columns come back blank-padded from the ERP
        if isinstance(key, str):
            key = key.strip()
        values["key"] = "" if key is None else str(key)
        return cls(active_marker=active_marker, **values)

    @property
    def is_inactive(self) -> bool:
        """Absent flag or the active marker both mean active."""
        if self.inactive_flag is None:
            return False
        flag = str(self.inactive_flag).strip().upper()
        if not flag:
            return False
        return flag != self.active_marker.strip().upper()


@dataclass(frozen=True)
class TargetUpdatePayload:
    name: str
    slug: str
    description: str
    price: float
    discount_price: float | None
    stock: int
    active: bool

    def as_values(self) -> dict:
        return asdict(self)


class ItemOutcome(str, Enum):
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    ERROR = "error"
