"""
Packaging hierarchy tests.

Verifies:
- Every accepted raw shape normalizes to the same canonical layers
- pieces_per_unit / layer stock derivation
- Malformed structures are rejected
"""

import pytest

from fleetstock.errors import InvalidPackagingStructureError, UnitResolutionError
from fleetstock.services import packaging
from fleetstock.services.packaging import PackagingLayer


CANONICAL = [
    PackagingLayer(0, "CTN", 10),
    PackagingLayer(1, "DZ", 12),
    PackagingLayer(2, "PCS", 1),
]


# =============================================================================
# NORMALIZATION
# =============================================================================


class TestNormalize:

    def test_flat_array(self):
        raw = [
            {"layerIndex": 0, "unit": "CTN", "qty": 10},
            {"layerIndex": 1, "unit": "DZ", "qty": 12},
            {"layerIndex": 2, "unit": "PCS"},
        ]
        assert packaging.normalize(raw) == CANONICAL

    def test_flat_array_sorted_by_index(self):
        raw = [
            {"layer_index": 2, "unit": "PCS"},
            {"layer_index": 0, "unit": "CTN", "qty": 10},
            {"layer_index": 1, "unit": "DZ", "qty": 12},
        ]
        assert packaging.normalize(raw) == CANONICAL

    def test_missing_indexes_assigned_in_order(self):
        raw = [{"unit": "CTN", "qty": 10}, {"unit": "DZ", "qty": 12}, {"unit": "PCS"}]
        assert packaging.normalize(raw) == CANONICAL

    def test_legacy_contains_key(self):
        raw = [{"name": "CTN", "contains": 10}, {"name": "DZ", "contains": 12}, "PCS"]
        assert packaging.normalize(raw) == CANONICAL

    def test_legacy_nested(self):
        raw = {
            "outer": {"unit": "CTN", "qty": 10},
            "inner": {"outer": {"unit": "DZ", "qty": 12}, "inner": "PCS"},
        }
        assert packaging.detect_form(raw) == packaging.FORM_LEGACY_NESTED
        assert packaging.normalize(raw) == CANONICAL

    def test_carton_packet_object(self):
        raw = {"cartonSize": 10, "packetSize": 12}
        assert packaging.detect_form(raw) == packaging.FORM_CARTON_PACKET
        layers = packaging.normalize(raw)
        assert [(l.unit, l.qty) for l in layers] == [("carton", 10), ("packet", 12), ("piece", 1)]

    def test_bare_unit_string(self):
        assert packaging.normalize("PCS") == [PackagingLayer(0, "PCS", 1)]

    @pytest.mark.parametrize("raw", [None, "", "   ", []])
    def test_empty_defaults_to_piece(self, raw):
        assert packaging.normalize(raw) == [PackagingLayer(0, "piece", 1)]

    def test_base_qty_forced_to_one(self):
        layers = packaging.normalize([{"unit": "BOX", "qty": 6}, {"unit": "PCS", "qty": 99}])
        assert layers[-1].qty == 1

    def test_serialize_round_trips(self):
        assert packaging.normalize(packaging.serialize(CANONICAL)) == CANONICAL


class TestNormalizeRejects:

    @pytest.mark.parametrize("qty", [0, -3, "abc", 2.5, True])
    def test_bad_qty(self, qty):
        with pytest.raises(InvalidPackagingStructureError):
            packaging.normalize([{"unit": "CTN", "qty": qty}, {"unit": "PCS"}])

    def test_non_base_layer_without_qty(self):
        with pytest.raises(InvalidPackagingStructureError):
            packaging.normalize([{"unit": "CTN"}, {"unit": "PCS"}])

    def test_blank_unit(self):
        with pytest.raises(InvalidPackagingStructureError):
            packaging.normalize([{"unit": " ", "qty": 10}, {"unit": "PCS"}])

    def test_index_gap(self):
        with pytest.raises(InvalidPackagingStructureError):
            packaging.normalize([{"layerIndex": 0, "unit": "CTN", "qty": 10}, {"layerIndex": 2, "unit": "PCS"}])

    def test_duplicate_index(self):
        with pytest.raises(InvalidPackagingStructureError):
            packaging.normalize([{"layerIndex": 0, "unit": "CTN", "qty": 10}, {"layerIndex": 0, "unit": "PCS"}])

    def test_packaging_error_is_a_validation_error(self):
        from fleetstock.errors import ValidationError

        with pytest.raises(ValidationError):
            packaging.normalize([{"unit": "CTN", "qty": 0}, {"unit": "PCS"}])


# =============================================================================
# CONVERSION
# =============================================================================


class TestPiecesPerUnit:

    def test_scenario_hierarchy(self):
        assert [packaging.pieces_per_unit(CANONICAL, i) for i in range(3)] == [120, 12, 1]

    def test_non_increasing_and_base_is_one(self):
        layers = packaging.normalize([{"unit": "PLT", "qty": 4}, {"unit": "CTN", "qty": 6}, {"unit": "PK", "qty": 5}, "PCS"])
        values = [packaging.pieces_per_unit(layers, i) for i in range(len(layers))]
        assert values == sorted(values, reverse=True)
        assert values[-1] == 1
        assert values[0] == 4 * 6 * 5

    @pytest.mark.parametrize("index", [-1, 3, "0", None])
    def test_out_of_range(self, index):
        with pytest.raises(UnitResolutionError):
            packaging.pieces_per_unit(CANONICAL, index)

    def test_to_base_pieces(self):
        assert packaging.to_base_pieces(CANONICAL, 0, 5) == 600
        assert packaging.to_base_pieces(CANONICAL, 1, 3) == 36
        assert packaging.to_base_pieces(CANONICAL, 2, 7) == 7


class TestDeriveLayerStocks:

    def test_scenario_stock(self):
        assert packaging.derive_layer_stocks(CANONICAL, 2880) == {0: 24, 1: 240, 2: 2880}

    def test_floors_partial_units(self):
        assert packaging.derive_layer_stocks(CANONICAL, 131) == {0: 1, 1: 10, 2: 131}

    def test_base_layer_equals_total(self):
        for total in (0, 1, 119, 120, 9999):
            assert packaging.derive_layer_stocks(CANONICAL, total)[2] == total
