"""
HTTP route tests.

Verifies the JSON surface: camelCase request keys, error bodies carrying
code/details, and status codes per error type.
"""

import pytest


ACTOR = {"X-Actor-Id": "manager-1"}


@pytest.fixture
def item_id(client, db_session):
    resp = client.post("/api/inventory", json={
        "productName": "Biscuits",
        "category": "Snacks",
        "packagingStructure": [
            {"layerIndex": 0, "unit": "CTN", "qty": 10},
            {"layerIndex": 1, "unit": "DZ", "qty": 12},
            {"layerIndex": 2, "unit": "PCS"},
        ],
        "openingStock": 24,
        "openingLayerIndex": 0,
    })
    assert resp.status_code == 201, resp.json
    return resp.json["id"]


@pytest.fixture
def vehicle_id(client, db_session):
    resp = client.post("/api/vehicles", json={"vehicleName": "Van 1", "vehicleNumber": "ABC-123"})
    assert resp.status_code == 201, resp.json
    return resp.json["id"]


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_unknown_route_is_404(self, client, db_session):
        assert client.get("/api/nope").status_code == 404


class TestInventoryRoutes:

    def test_list_inventory(self, client, item_id):
        resp = client.get("/api/inventory")
        assert resp.status_code == 200
        item = resp.json["items"][0]
        assert item["total_base_pieces"] == 2880
        assert [s["stock"] for s in item["layer_stocks"]] == [24, 240, 2880]

    def test_replenish(self, client, item_id):
        resp = client.post(f"/api/inventory/{item_id}/replenish", json={
            "quantity": 2, "layerIndex": 0, "invoiceRef": "INV-9",
        }, headers=ACTOR)
        assert resp.status_code == 200
        assert resp.json["total_base_pieces"] == 3120

        history = client.get(f"/api/inventory/{item_id}/adjustments").json["adjustments"]
        assert history[0]["reason"] == "replenish"
        assert history[0]["actor_id"] == "manager-1"

    def test_replenish_without_invoice(self, client, item_id):
        resp = client.post(f"/api/inventory/{item_id}/replenish", json={"quantity": 2})
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"
        assert resp.json["field"] == "invoice_ref"

    def test_bad_packaging(self, client, db_session):
        resp = client.post("/api/inventory", json={
            "productName": "Broken",
            "packagingStructure": [{"unit": "CTN", "qty": -1}, {"unit": "PCS"}],
        })
        assert resp.status_code == 400
        assert resp.json["code"] == "INVALID_PACKAGING_STRUCTURE"

    def test_available(self, client, item_id):
        resp = client.get(f"/api/inventory/{item_id}/available?unit=dz")
        assert resp.json["available"] == 240

    def test_adjust_below_zero(self, client, item_id):
        resp = client.post(f"/api/inventory/{item_id}/adjust", json={"delta": -3000, "reason": "damage"})
        assert resp.status_code == 409
        assert resp.json["code"] == "INSUFFICIENT_STOCK"
        assert resp.json["available"] == 2880

    def test_adjust_by_layer(self, client, item_id):
        resp = client.post(f"/api/inventory/{item_id}/adjust-layer", json={
            "quantity": -2, "unit": "ctn", "reason": "damage", "note": "crushed",
        })
        assert resp.status_code == 200, resp.json
        assert resp.json["total_base_pieces"] == 2640

        resp = client.post(f"/api/inventory/{item_id}/adjust-layer", json={"quantity": 0, "layerIndex": 0})
        assert resp.status_code == 400

    def test_stock_position_unchanged_by_issue(self, client, item_id, vehicle_id):
        assert client.get("/api/inventory/stock-position").json == {
            "warehouse_base_pieces": 2880, "vehicle_base_pieces": 0, "total_base_pieces": 2880,
        }
        transfer = client.post("/api/transfers", json={
            "vehicleId": vehicle_id,
            "items": [{"inventoryId": item_id, "layers": [{"unit": "CTN", "quantity": 3}, {"unit": "DZ", "quantity": 1}]}],
        }).json
        client.post(f"/api/transfers/{transfer['id']}/approve")

        position = client.get("/api/inventory/stock-position").json
        assert position["vehicle_base_pieces"] == 372
        assert position["warehouse_base_pieces"] == 2508
        assert position["total_base_pieces"] == 2880

    def test_low_stock(self, client, item_id):
        resp = client.get("/api/inventory/low-stock?threshold=5000")
        assert [i["id"] for i in resp.json["items"]] == [item_id]

    def test_missing_item(self, client, db_session):
        resp = client.get("/api/inventory/12345")
        assert resp.status_code == 404
        assert resp.json["code"] == "NOT_FOUND"

    def test_delete_item(self, client, item_id):
        resp = client.delete(f"/api/inventory/{item_id}")
        assert resp.status_code == 200
        assert resp.json["is_active"] is False


class TestTransferRoutes:

    def test_issue_approve_confirm(self, client, item_id, vehicle_id):
        resp = client.post("/api/transfers", json={
            "vehicleId": vehicle_id,
            "items": [{"inventoryId": item_id, "layers": [{"unit": "CTN", "quantity": 5}]}],
            "notes": "first load",
        }, headers=ACTOR)
        assert resp.status_code == 201, resp.json
        transfer = resp.json
        assert transfer["status"] == "pending"
        assert transfer["created_by"] == "manager-1"

        resp = client.post(f"/api/transfers/{transfer['id']}/approve", headers=ACTOR)
        assert resp.status_code == 200
        assert resp.json["status"] == "approved"

        resp = client.get(f"/api/vehicles/{vehicle_id}/inventory")
        assert resp.json["items"][0]["quantity"] == 5
        assert resp.json["total_base_pieces"] == 600

        assert client.post(f"/api/transfers/{transfer['id']}/confirm").json["status"] == "collected"
        assert client.post(f"/api/transfers/{transfer['id']}/confirm").status_code == 200

        assert client.get("/api/inventory").json["items"][0]["total_base_pieces"] == 2280

    def test_approve_twice_conflict(self, client, item_id, vehicle_id):
        transfer = client.post("/api/transfers", json={
            "vehicleId": vehicle_id,
            "items": [{"inventoryId": item_id, "layers": [{"layerIndex": 0, "quantity": 1}]}],
        }).json
        client.post(f"/api/transfers/{transfer['id']}/approve")
        resp = client.post(f"/api/transfers/{transfer['id']}/approve")
        assert resp.status_code == 409
        assert resp.json["code"] == "INVALID_STATE"
        assert resp.json["current_status"] == "approved"

    def test_return_exceeding_load(self, client, item_id, vehicle_id):
        resp = client.post("/api/transfers/returns", json={
            "vehicleId": vehicle_id,
            "items": [{"inventoryId": item_id, "quantity": 1, "unit": "CTN"}],
        })
        assert resp.status_code == 409
        assert resp.json["code"] == "EXCEEDS_LOADED_QUANTITY"
        assert resp.json["loaded"] == 0

    def test_cancel_and_list(self, client, item_id, vehicle_id):
        transfer = client.post("/api/transfers", json={
            "vehicleId": vehicle_id,
            "items": [{"inventoryId": item_id, "layers": [{"unit": "PCS", "quantity": 10}]}],
        }).json
        assert client.get("/api/transfers/pending").json["transfers"][0]["id"] == transfer["id"]

        resp = client.post(f"/api/transfers/{transfer['id']}/cancel", json={"reason": "duplicate"})
        assert resp.json["status"] == "cancelled"

        listing = client.get(f"/api/transfers?vehicle_id={vehicle_id}&status=cancelled").json
        assert listing["pagination"]["total"] == 1

    def test_missing_vehicle_id(self, client, item_id):
        resp = client.post("/api/transfers", json={"items": []})
        assert resp.status_code == 400

    def test_bad_date_filter(self, client, db_session):
        resp = client.get("/api/transfers?start=yesterday")
        assert resp.status_code == 400


class TestVehicleRoutes:

    def test_duplicate_vehicle(self, client, vehicle_id):
        resp = client.post("/api/vehicles", json={"vehicleName": "Other", "vehicleNumber": "abc-123"})
        assert resp.status_code == 400

    def test_break_unit(self, client, item_id, vehicle_id):
        transfer = client.post("/api/transfers", json={
            "vehicleId": vehicle_id,
            "items": [{"inventoryId": item_id, "layers": [{"unit": "CTN", "quantity": 1}]}],
        }).json
        client.post(f"/api/transfers/{transfer['id']}/approve")

        resp = client.post(f"/api/vehicles/{vehicle_id}/break-unit", json={
            "inventoryId": item_id, "fromLayer": 0, "toLayer": 1, "quantity": 1,
        })
        assert resp.status_code == 201
        assert resp.json["resulting_quantity"] == 10
        assert client.get(f"/api/vehicles/{vehicle_id}/inventory").json["total_base_pieces"] == 120

    def test_update_vehicle(self, client, vehicle_id):
        resp = client.put(f"/api/vehicles/{vehicle_id}", json={"vehicleName": "Van 2", "vehicleNumber": "xyz-9"})
        assert resp.status_code == 200
        assert resp.json["vehicle_number"] == "XYZ-9"
        assert resp.json["vehicle_name"] == "Van 2"

    def test_update_to_taken_number(self, client, vehicle_id):
        other = client.post("/api/vehicles", json={"vehicleName": "Van 2", "vehicleNumber": "DEF-456"}).json
        resp = client.put(f"/api/vehicles/{other['id']}", json={"vehicleNumber": "abc-123"})
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"

    def test_delete_loaded_vehicle_conflict(self, client, item_id, vehicle_id):
        transfer = client.post("/api/transfers", json={
            "vehicleId": vehicle_id,
            "items": [{"inventoryId": item_id, "layers": [{"unit": "CTN", "quantity": 1}]}],
        }).json
        assert client.delete(f"/api/vehicles/{vehicle_id}").status_code == 409

        client.post(f"/api/transfers/{transfer['id']}/approve")
        client.post(f"/api/transfers/{transfer['id']}/confirm")
        resp = client.delete(f"/api/vehicles/{vehicle_id}")
        assert resp.status_code == 409
        assert resp.json["code"] == "INVALID_STATE"

    def test_delete_idle_vehicle(self, client, vehicle_id):
        resp = client.delete(f"/api/vehicles/{vehicle_id}")
        assert resp.status_code == 200
        assert resp.json["is_active"] is False
        assert client.get("/api/vehicles").json["vehicles"] == []

    def test_collected_items(self, client, item_id, vehicle_id):
        transfer = client.post("/api/transfers", json={
            "vehicleId": vehicle_id,
            "items": [{"inventoryId": item_id, "layers": [{"unit": "DZ", "quantity": 4}]}],
        }).json
        client.post(f"/api/transfers/{transfer['id']}/approve")
        assert client.get(f"/api/vehicles/{vehicle_id}/collected-items").json["count"] == 0

        client.post(f"/api/transfers/{transfer['id']}/confirm")
        resp = client.get(f"/api/vehicles/{vehicle_id}/collected-items")
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["quantity"] == 4
        assert resp.json["items"][0]["transferId"] == transfer["id"]

    def test_collected_items_unknown_vehicle(self, client, db_session):
        assert client.get("/api/vehicles/999/collected-items").status_code == 404
