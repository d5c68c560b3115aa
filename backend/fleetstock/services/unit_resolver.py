# Overview: Resolve a caller-supplied unit label or layer index to a packaging layer.

from __future__ import annotations

from typing import Any

from ..errors import UnitResolutionError
from .packaging import PackagingLayer, base_layer_index


CANONICAL_PIECE = "piece"
CANONICAL_CARTON = "carton"

UNIT_ALIASES = {
    "pcs": CANONICAL_PIECE,
    "pc": CANONICAL_PIECE,
    "piece": CANONICAL_PIECE,
    "pieces": CANONICAL_PIECE,
    "unit": CANONICAL_PIECE,
    "units": CANONICAL_PIECE,
    "ctn": CANONICAL_CARTON,
    "ctns": CANONICAL_CARTON,
    "carton": CANONICAL_CARTON,
    "cartons": CANONICAL_CARTON,
    "box": CANONICAL_CARTON,
    "boxes": CANONICAL_CARTON,
}


def canonical_unit(unit: str) -> str:
    key = unit.strip().casefold().rstrip(".")
    return UNIT_ALIASES.get(key, key)


def _as_index(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def resolve(
    layers: list[PackagingLayer],
    layer_index: Any = None,
    unit: str | None = None,
    *,
    item_id: int | None = None,
) -> int:
    """
    Resolution order:
    1. numeric layer_index within range
    2. exact (case-insensitive) unit label
    3. alias match (pcs/pc/pieces -> piece, ctn/box/boxes -> carton)
    4. fallback: unmatched "piece" -> base layer, unmatched "carton" -> layer 0
    """
    idx = _as_index(layer_index)
    if idx is not None and 0 <= idx < len(layers):
        return idx

    if unit is None or not str(unit).strip():
        raise UnitResolutionError(
            f"layer {layer_index!r} is outside the packaging structure and no unit was given",
            layer_index=layer_index,
            item_id=item_id,
        )

    requested = str(unit).strip()
    folded = requested.casefold()
    for layer in layers:
        if layer.unit.strip().casefold() == folded:
            return layer.layer_index

    wanted = canonical_unit(requested)
    for layer in layers:
        if canonical_unit(layer.unit) == wanted:
            return layer.layer_index

    if wanted == CANONICAL_PIECE:
        return base_layer_index(layers)
    if wanted == CANONICAL_CARTON:
        return 0

    raise UnitResolutionError(
        f"unit {requested!r} does not match any layer ({', '.join(l.unit for l in layers)})",
        unit=requested,
        layer_index=layer_index,
        item_id=item_id,
    )
