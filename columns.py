"""
Column resolution for point-of-sale exports.

Each canonical field has an ordered list of accepted header names. Earlier
aliases win when a row carries more than one matching column.
"""

import math
from typing import Any, Mapping


COLUMN_ALIASES: dict[str, list[str]] = {
    "ean": ["EAN", "Código EAN del item", "Codigo EAN", "ean", "código", "codigo"],
    "store": [
        "TIENDA", "Descripción", "Punto de venta", "Almacén",
        "tienda", "almacen", "store", "sucursal",
    ],
    "date": ["FECHA", "Fecha Inicial", "Fecha", "fecha", "date", "Fecha de venta"],
    "grupo": ["GRUPO", "Grupo", "grupo", "category", "categoria", "categoría", "Categoría"],
    "product": [
        "DESCRIPCION", "Descripción del Ítem", "Producto", "producto",
        "descripcion", "product", "item", "Item",
    ],
    "qty": ["Cantidad Vendida", "Cantidad", "cantidad", "qty", "quantity", "unidades", "Unidades"],
    "price": ["Precio neto al consumido sin impuestos", "Precio", "precio", "price", "valor", "Valor"],
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value == ""


def find_column_value(row: Mapping[str, Any], aliases: list[str]) -> Any | None:
    for name in aliases:
        if name in row and not _is_blank(row[name]):
            return row[name]
    return None


def resolve_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Resolve every canonical field of a keyed row. Missing fields map to None."""
    return {field: find_column_value(row, aliases) for field, aliases in COLUMN_ALIASES.items()}


def resolve_header_map(headers: list[str]) -> dict[str, str | None]:
    """Which header feeds each canonical field (first alias present in the header list)."""
    present = {h for h in headers if h}
    out: dict[str, str | None] = {}
    for field, aliases in COLUMN_ALIASES.items():
        out[field] = next((a for a in aliases if a in present), None)
    return out
