"""
Record normalization: raw spreadsheet rows -> canonical sales records.

Rows that cannot be turned into a record (no store, no product, missing or
zero quantity) are skipped and counted, never raised.
"""

import logging
import math
import re
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from functools import lru_cache
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from columns import resolve_header_map, resolve_row

logger = logging.getLogger(__name__)


class NumberLocale(str, Enum):
    """How grouping and decimal separators are read from text cells.

    LEGACY reproduces the historical import rule: quantities drop both ``,``
    and ``.``, prices drop ``,`` and keep ``.`` as the decimal point.
    """
    LEGACY = "legacy"
    DOT_DECIMAL = "dot_decimal"
    COMMA_DECIMAL = "comma_decimal"


_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_YMD_DASH = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_YMD_SLASH = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")


@dataclass(frozen=True)
class SalesRecord:
    store: str
    product: str
    date: str
    qty: int | float
    year: int | None = None
    ean: str | None = None
    grupo: str | None = None
    price: float | None = None
    total: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SalesRecord":
        return cls(
            store=str(data["store"]),
            product=str(data["product"]),
            date=str(data.get("date", "")),
            qty=data["qty"],
            year=data.get("year"),
            ean=data.get("ean"),
            grupo=data.get("grupo"),
            price=data.get("price"),
            total=data.get("total"),
        )


@dataclass(frozen=True)
class Positional:
    """A row given as values aligned with the header list."""
    values: Sequence[Any]


@dataclass(frozen=True)
class Keyed:
    """A row given as header -> value."""
    values: Mapping[str, Any]


@dataclass
class NormalizeResult:
    records: list[SalesRecord] = field(default_factory=list)
    skipped: int = 0


def to_keyed(row: Positional | Keyed | Sequence[Any] | Mapping[str, Any], headers: Sequence[str]) -> Keyed:
    if isinstance(row, Keyed):
        return row
    if isinstance(row, Mapping):
        return Keyed(dict(row))
    values = row.values if isinstance(row, Positional) else row
    keyed: dict[str, Any] = {}
    for idx, header in enumerate(headers):
        if header:
            keyed[str(header)] = values[idx] if idx < len(values) else None
    return Keyed(keyed)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strip_grouping(text: str, locale: NumberLocale, for_price: bool) -> str:
    if locale is NumberLocale.COMMA_DECIMAL:
        text = text.replace(".", "")
        return text.replace(",", ".") if for_price else text
    if locale is NumberLocale.LEGACY and not for_price:
        return text.replace(",", "").replace(".", "")
    return text.replace(",", "")


def parse_quantity(raw: Any, locale: NumberLocale = NumberLocale.LEGACY) -> int | float | None:
    """Units sold, or None when the value is missing, non-numeric or zero."""
    if raw is None:
        return None
    if _is_number(raw):
        if isinstance(raw, float):
            if math.isnan(raw):
                return None
            if raw.is_integer():
                raw = int(raw)
        return raw or None
    m = _INT_PREFIX.match(_strip_grouping(str(raw), locale, for_price=False))
    if not m:
        return None
    return int(m.group(1)) or None


def parse_price(raw: Any, locale: NumberLocale = NumberLocale.LEGACY) -> float | None:
    if raw is None:
        return None
    if _is_number(raw):
        if not raw or (isinstance(raw, float) and math.isnan(raw)):
            return None
        return float(raw)
    m = _FLOAT_PREFIX.match(_strip_grouping(str(raw), locale, for_price=True))
    return float(m.group(1)) if m else None


def extract_year(date_text: str) -> int | None:
    """Year of an unambiguous date shape (D/M/YYYY, YYYY-M-D, YYYY/M/D)."""
    m = _DMY.match(date_text)
    if m:
        return int(m.group(3))
    m = _YMD_DASH.match(date_text) or _YMD_SLASH.match(date_text)
    if m:
        return int(m.group(1))
    return None


@lru_cache(maxsize=4096)
def parse_sale_date(date_text: str) -> date | None:
    """Calendar date of a record's date text. Slash dates with the year last are day-first."""
    text = (date_text or "").strip()
    if not text:
        return None
    dmy = _DMY.match(text)
    ymd = _YMD_DASH.match(text) or _YMD_SLASH.match(text)
    try:
        if dmy:
            return date(int(dmy.group(3)), int(dmy.group(2)), int(dmy.group(1)))
        if ymd:
            return date(int(ymd.group(1)), int(ymd.group(2)), int(ymd.group(3)))
    except ValueError:
        return None
    ts = pd.to_datetime(text, dayfirst=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.date()


def normalize_row(row: Keyed, locale: NumberLocale = NumberLocale.LEGACY) -> SalesRecord | None:
    fields = resolve_row(row.values)
    store, product = fields["store"], fields["product"]
    if store is None or product is None:
        return None

    qty = parse_quantity(fields["qty"], locale)
    if qty is None:
        return None

    date_text = "" if fields["date"] is None else str(fields["date"])
    price = parse_price(fields["price"], locale)
    return SalesRecord(
        store=str(store),
        product=str(product),
        date=date_text,
        qty=qty,
        year=extract_year(date_text),
        ean=str(fields["ean"]) if fields["ean"] is not None else None,
        grupo=str(fields["grupo"]) if fields["grupo"] is not None else None,
        price=price,
        total=qty * price if price is not None else None,
    )


def normalize_rows(
    headers: Sequence[str],
    rows: Iterable[Positional | Keyed | Sequence[Any] | Mapping[str, Any]],
    locale: NumberLocale = NumberLocale.LEGACY,
) -> NormalizeResult:
    headers = [str(h).strip() if h is not None else "" for h in headers]
    logger.debug("Column mapping: %s", resolve_header_map(headers))

    result = NormalizeResult()
    for row in rows:
        record = normalize_row(to_keyed(row, headers), locale)
        if record is None:
            result.skipped += 1
            continue
        result.records.append(record)

    logger.info(
        "Normalized %d records (%d rows skipped, %d columns)",
        len(result.records), result.skipped, len(headers),
    )
    return result
