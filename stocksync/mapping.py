"""Deterministic ERP → commerce mapping — pure Python, no I/O.

Turns one SourceRecord into the payload written for its sku:
  - Name: passed through verbatim, also used as description
  - Slug: "Tornillo Áspero" → "tornillo-aspero"
  - Price: negative or missing → 0
  - Discount: kept only when 0 < alternate < price, otherwise None
  - Stock: negative or missing → 0, truncated to int
  - Active: false only when the ERP flag says inactive
"""

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any

from .records import SourceRecord, TargetUpdatePayload

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")
_THOUSANDS = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")


def slugify(text: str | None) -> str:
    """URL-safe, lowercase, diacritic-free, hyphenated form of text."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", str(text))
    s = "".join(c for c in decomposed if not unicodedata.combining(c)).lower()
    s = _NON_SLUG_CHARS.sub("", s).strip()
    s = _WHITESPACE.sub("-", s)
    s = _HYPHENS.sub("-", s)
    return s.strip("-")


def _to_number(raw: Any) -> float:
    """Coerce an ERP numeric (Decimal, int, float, numeric string) to float. Unparseable → 0.

    In strings a comma is only accepted as a thousands separator ("1,250.75").
    Any other comma ("12,50") is ambiguous and treated as unparseable.
    """
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float, Decimal)):
        value = float(raw)
    else:
        s = str(raw).strip()
        if "," in s:
            if not _THOUSANDS.match(s):
                return 0.0
            s = s.replace(",", "")
        try:
            value = float(Decimal(s))
        except (InvalidOperation, ValueError):
            return 0.0
    if value != value:  # NaN
        return 0.0
    return value


def clamp_price(raw: Any) -> float:
    return max(0.0, _to_number(raw))


def clamp_stock(raw: Any) -> int:
    return max(0, int(_to_number(raw)))


def discount_for(alternate: Any, price: float) -> float | None:
    """Alternate price is a discount only when strictly between 0 and price."""
    value = _to_number(alternate)
    if 0 < value < price:
        return value
    return None


def map_to_update(record: SourceRecord) -> TargetUpdatePayload:
    name = record.display_name if record.display_name is not None else ""
    price = clamp_price(record.base_price)
    return TargetUpdatePayload(
        name=name,
        slug=slugify(name),
        description=name,
        price=price,
        discount_price=discount_for(record.alternate_price, price),
        stock=clamp_stock(record.stock_quantity),
        active=not record.is_inactive,
    )
