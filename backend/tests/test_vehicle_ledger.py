"""
Vehicle stock ledger tests.
"""

import pytest

from fleetstock.errors import (
    ExceedsLoadedQuantityError,
    InvalidStateError,
    NotFoundError,
    UnitResolutionError,
    ValidationError,
)
from fleetstock.models import UnitBreakdown
from fleetstock.services import transfer_service, vehicle_service


def one_carton(item_id):
    return [{"inventoryId": item_id, "layers": [{"unit": "CTN", "quantity": 1}]}]


class TestVehicles:

    def test_create_and_get(self, db_session):
        vehicle = vehicle_service.create_vehicle("Van One", "abc-123", notes="north route")
        assert vehicle.vehicle_number == "ABC-123"
        assert vehicle_service.get_vehicle(vehicle.id).vehicle_name == "Van One"

    def test_duplicate_number(self, db_session, make_vehicle):
        make_vehicle(number="DUP-1")
        with pytest.raises(ValidationError):
            vehicle_service.create_vehicle("Other", "dup-1")

    def test_unknown_vehicle(self, db_session):
        with pytest.raises(NotFoundError):
            vehicle_service.get_vehicle(404)

    def test_list_vehicles(self, db_session, make_vehicle):
        make_vehicle(name="B van")
        make_vehicle(name="A van")
        assert [v.vehicle_name for v in vehicle_service.list_vehicles()] == ["A van", "B van"]

    def test_update_details(self, db_session, make_vehicle):
        vehicle = make_vehicle(number="OLD-1")
        vehicle = vehicle_service.update_vehicle(vehicle.id, vehicle_name="Truck", vehicle_number="new-1", notes="east")
        assert (vehicle.vehicle_name, vehicle.vehicle_number, vehicle.notes) == ("Truck", "NEW-1", "east")

        vehicle = vehicle_service.update_vehicle(vehicle.id, notes="")
        assert vehicle.notes is None
        assert vehicle.vehicle_name == "Truck"

    def test_update_to_taken_number(self, db_session, make_vehicle):
        make_vehicle(number="TAKEN-1")
        vehicle = make_vehicle(number="FREE-1")
        with pytest.raises(ValidationError):
            vehicle_service.update_vehicle(vehicle.id, vehicle_number="taken-1")
        assert vehicle_service.get_vehicle(vehicle.id).vehicle_number == "FREE-1"

    def test_update_keeps_own_number(self, db_session, make_vehicle):
        vehicle = make_vehicle(number="SAME-1")
        assert vehicle_service.update_vehicle(vehicle.id, vehicle_number="same-1").vehicle_number == "SAME-1"

    def test_is_active_must_be_boolean(self, db_session, van):
        with pytest.raises(ValidationError):
            vehicle_service.update_vehicle(van.id, is_active="no")


class TestDeactivate:

    def test_idle_vehicle_is_retired(self, db_session, biscuits, van):
        vehicle = vehicle_service.deactivate_vehicle(van.id)
        assert vehicle.is_active is False
        assert vehicle_service.list_vehicles() == []
        assert len(vehicle_service.list_vehicles(include_inactive=True)) == 1

        with pytest.raises(InvalidStateError):
            transfer_service.create_transfer(van.id, one_carton(biscuits.id))
        with pytest.raises(InvalidStateError):
            vehicle_service.break_unit(van.id, biscuits.id, 0, 1, 1)

    def test_refused_while_loaded(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 1, 2)
        with pytest.raises(InvalidStateError):
            vehicle_service.deactivate_vehicle(van.id)
        assert vehicle_service.get_vehicle(van.id).is_active is True

    @pytest.mark.parametrize("approve", [False, True])
    def test_refused_with_open_transfer(self, db_session, biscuits, van, approve):
        t = transfer_service.create_transfer(van.id, one_carton(biscuits.id))
        if approve:
            transfer_service.approve_transfer(t.id)
        with pytest.raises(InvalidStateError):
            vehicle_service.deactivate_vehicle(van.id)

    def test_allowed_after_cancel(self, db_session, biscuits, van):
        t = transfer_service.create_transfer(van.id, one_carton(biscuits.id))
        transfer_service.cancel_transfer(t.id, "not needed")
        assert vehicle_service.deactivate_vehicle(van.id).is_active is False

    def test_reactivate(self, db_session, van):
        vehicle_service.deactivate_vehicle(van.id)
        assert vehicle_service.update_vehicle(van.id, is_active=True).is_active is True


class TestDeltas:

    def test_issue_creates_entry(self, db_session, biscuits, van):
        entry = vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 5)
        assert entry.quantity == 5
        assert entry.unit == "CTN"
        assert vehicle_service.loaded(van.id, biscuits.id) == [{"layer_index": 0, "quantity": 5}]

    def test_issue_accumulates_per_layer(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 5)
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 2)
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 1, 3)
        assert vehicle_service.loaded(van.id, biscuits.id) == [
            {"layer_index": 0, "quantity": 7},
            {"layer_index": 1, "quantity": 3},
        ]
        assert vehicle_service.total_base_pieces(van.id, biscuits.id) == 7 * 120 + 3 * 12

    def test_total_with_explicit_structure(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 2)
        structure = [{"unit": "CTN", "qty": 6}, {"unit": "PCS"}]
        assert vehicle_service.total_base_pieces(van.id, biscuits.id, structure) == 12

    def test_issue_to_unknown_layer(self, db_session, biscuits, van):
        with pytest.raises(UnitResolutionError):
            vehicle_service.apply_issue_delta(van.id, biscuits.id, 3, 1)

    def test_return_decrements(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 5)
        entry = vehicle_service.apply_return_delta(van.id, biscuits.id, 0, 3)
        assert entry.quantity == 2

    def test_return_more_than_loaded(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 5)
        with pytest.raises(ExceedsLoadedQuantityError) as exc:
            vehicle_service.apply_return_delta(van.id, biscuits.id, 0, 6)
        assert exc.value.loaded == 5
        assert exc.value.requested == 6
        assert vehicle_service.loaded_quantity(van.id, biscuits.id, 0) == 5

    def test_return_from_empty_layer(self, db_session, biscuits, van):
        with pytest.raises(ExceedsLoadedQuantityError) as exc:
            vehicle_service.apply_return_delta(van.id, biscuits.id, 1, 1)
        assert exc.value.loaded == 0


class TestVehicleInventory:

    def test_view_skips_empty_entries(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 1)
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 2, 4)
        vehicle_service.apply_return_delta(van.id, biscuits.id, 2, 4)
        rows = vehicle_service.get_vehicle_inventory(van.id)
        assert len(rows) == 1
        assert rows[0]["product_name"] == "Biscuits"
        assert rows[0]["pieces_per_unit"] == 120
        assert rows[0]["base_pieces"] == 120


class TestBreakUnit:

    def test_break_carton_into_dozens(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 3)
        before = vehicle_service.total_base_pieces(van.id, biscuits.id)

        breakdown = vehicle_service.break_unit(van.id, biscuits.id, 0, 1, 1, performed_by="driver-7")

        assert breakdown.conversion_rate == 10
        assert breakdown.resulting_quantity == 10
        assert vehicle_service.loaded(van.id, biscuits.id) == [
            {"layer_index": 0, "quantity": 2},
            {"layer_index": 1, "quantity": 10},
        ]
        assert vehicle_service.total_base_pieces(van.id, biscuits.id) == before
        assert db_session.query(UnitBreakdown).count() == 1

    def test_break_skipping_a_layer(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 1)
        breakdown = vehicle_service.break_unit(van.id, biscuits.id, 0, 2, 1)
        assert breakdown.resulting_quantity == 120

    def test_break_requires_outer_to_inner(self, db_session, biscuits, van):
        with pytest.raises(ValidationError):
            vehicle_service.break_unit(van.id, biscuits.id, 1, 0, 1)

    def test_break_more_than_loaded(self, db_session, biscuits, van):
        vehicle_service.apply_issue_delta(van.id, biscuits.id, 0, 1)
        with pytest.raises(ExceedsLoadedQuantityError):
            vehicle_service.break_unit(van.id, biscuits.id, 0, 1, 2)
        assert vehicle_service.loaded_quantity(van.id, biscuits.id, 1) == 0
