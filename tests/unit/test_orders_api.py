"""Unit tests for the order, admin, kitchen and realtime endpoints."""
import pytest
from sqlalchemy import create_engine

from orderflow.core import dependencies
from orderflow.db.models import OrderItem

A1_ORDER = {"booth_id": "A1", "items": [{"menu_id": 1, "quantity": 3}]}


def _submit(client, body=A1_ORDER):
    response = client.post("/api/orders", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def _confirm(client, order_id):
    return client.post("/api/admin/confirm-payment", json={"order_id": order_id})


class TestOrdersAPI:
    """Test customer order endpoints."""

    def test_submit_order(self, test_client):
        data = _submit(test_client)

        assert data["success"] is True
        assert data["outcome"] == "applied"
        assert data["order"]["total_price"] == 3000
        assert data["order"]["payment_status"] == "unpaid"
        assert data["order"]["items"][0]["item_status"] == "processing"

    def test_submit_with_matching_total(self, test_client):
        data = _submit(
            test_client,
            {
                "booth_id": "B2",
                "items": [
                    {"menu_id": 7, "quantity": 2, "unit_price": 5000},
                    {"menu_id": 3, "quantity": 1, "unit_price": 3000},
                ],
                "total_price": 13000,
                "note": "extra sauce",
            },
        )

        assert data["order"]["total_price"] == 13000
        assert data["order"]["note"] == "extra sauce"

    def test_total_mismatch_is_400(self, test_client):
        response = test_client.post(
            "/api/orders",
            json={
                "booth_id": "B2",
                "items": [
                    {"menu_id": 7, "quantity": 2},
                    {"menu_id": 3, "quantity": 1},
                ],
                "total_price": 12000,
            },
        )

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["outcome"] == "rejected"

    @pytest.mark.parametrize(
        "body",
        [
            {"booth_id": "A1", "items": []},
            {"booth_id": "", "items": [{"menu_id": 1, "quantity": 1}]},
            {"booth_id": "A1", "items": [{"menu_id": 1, "quantity": 0}]},
            {"booth_id": "A1", "items": [{"menu_id": 999, "quantity": 1}]},
            {"items": [{"menu_id": 1, "quantity": 1}]},
        ],
    )
    def test_invalid_submissions_are_400(self, test_client, body):
        response = test_client.post("/api/orders", json=body)

        assert response.status_code == 400
        assert response.json()["outcome"] == "rejected"
        assert test_client.get("/api/orders/A1").json() == []

    def test_order_history(self, test_client):
        first = _submit(test_client)
        _submit(test_client, {"booth_id": "C3", "items": [{"menu_id": 3, "quantity": 1}]})
        second = _submit(test_client, {"booth_id": "A1", "items": [{"menu_id": 7, "quantity": 2}]})

        response = test_client.get("/api/orders/A1")

        assert response.status_code == 200
        history = response.json()
        assert [order["order_id"] for order in history] == [second["order_id"], first["order_id"]]
        item = history[0]["items"][0]
        assert item["name"] == "fried chicken"
        assert item["quantity"] == 2
        assert item["unit_price"] == 5000

    def test_store_fault_is_503(self, test_client, test_settings):
        """A persistence fault is reported as retryable."""
        engine = create_engine(test_settings.database_url.replace("+aiosqlite", ""))
        OrderItem.__table__.drop(engine)
        engine.dispose()

        response = test_client.post("/api/orders", json=A1_ORDER)

        assert response.status_code == 503
        assert response.json()["retryable"] is True


class TestAdminAPI:
    """Test payment desk and serving endpoints."""

    def test_confirm_payment(self, authenticated_client):
        order = _submit(authenticated_client)

        response = _confirm(authenticated_client, order["order_id"])

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["order"]["payment_status"] == "paid"
        assert data["order"]["status"] == "processing"

    def test_confirm_payment_twice_is_409(self, authenticated_client):
        order = _submit(authenticated_client)
        _confirm(authenticated_client, order["order_id"])

        response = _confirm(authenticated_client, order["order_id"])

        assert response.status_code == 409
        assert response.json()["outcome"] == "already_processed"

    def test_confirm_unknown_order_is_404(self, authenticated_client):
        response = _confirm(authenticated_client, 9999)

        assert response.status_code == 404
        assert response.json()["outcome"] == "not_found"

    def test_order_lists(self, authenticated_client):
        unpaid = _submit(authenticated_client)
        paid = _submit(authenticated_client, {"booth_id": "B1", "items": [{"menu_id": 3, "quantity": 1}]})
        _confirm(authenticated_client, paid["order_id"])

        all_orders = authenticated_client.get("/api/admin/orders").json()
        unpaid_orders = authenticated_client.get("/api/admin/unpaid-orders").json()
        active_items = authenticated_client.get("/api/admin/active-items").json()

        assert {order["order_id"] for order in all_orders} == {unpaid["order_id"], paid["order_id"]}
        assert [order["order_id"] for order in unpaid_orders] == [unpaid["order_id"]]
        assert [item["order_id"] for item in active_items] == [paid["order_id"]]
        assert active_items[0]["booth_id"] == "B1"

    def test_full_lifecycle(self, authenticated_client):
        order = _submit(authenticated_client)
        order_id = order["order_id"]
        item_id = order["order"]["items"][0]["item_id"]

        assert _confirm(authenticated_client, order_id).status_code == 200

        kitchen = authenticated_client.get("/api/kitchen/items").json()
        assert [item["item_id"] for item in kitchen] == [item_id]

        assert authenticated_client.post("/api/kitchen/accept", json={"item_id": item_id}).status_code == 200
        assert authenticated_client.post("/api/kitchen/complete", json={"item_id": item_id}).status_code == 200

        assert authenticated_client.get("/api/kitchen/items").json() == []
        serving = authenticated_client.get("/api/admin/serving-items").json()
        assert [item["item_id"] for item in serving] == [item_id]

        response = authenticated_client.post("/api/admin/complete-serving", json={"item_id": item_id})
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "completed"

        completed = authenticated_client.get("/api/admin/completed-orders").json()
        assert [order["order_id"] for order in completed] == [order_id]
        assert authenticated_client.get("/api/admin/active-items").json() == []

    def test_serve_twice_is_409(self, authenticated_client):
        order = _submit(authenticated_client)
        item_id = order["order"]["items"][0]["item_id"]
        _confirm(authenticated_client, order["order_id"])
        authenticated_client.post("/api/kitchen/accept", json={"item_id": item_id})
        authenticated_client.post("/api/kitchen/complete", json={"item_id": item_id})
        authenticated_client.post("/api/admin/complete-serving", json={"item_id": item_id})

        response = authenticated_client.post("/api/admin/complete-serving", json={"item_id": item_id})

        assert response.status_code == 409
        assert response.json()["outcome"] == "already_processed"


class TestKitchenAPI:
    """Test kitchen endpoints."""

    def test_accept_unpaid_item_is_409(self, authenticated_client):
        order = _submit(authenticated_client)
        item_id = order["order"]["items"][0]["item_id"]

        response = authenticated_client.post("/api/kitchen/accept", json={"item_id": item_id})

        assert response.status_code == 409
        assert response.json()["outcome"] == "not_ready"
        assert authenticated_client.get("/api/kitchen/items").json() == []

    def test_accept_unknown_item_is_404(self, authenticated_client):
        response = authenticated_client.post("/api/kitchen/accept", json={"item_id": 4242})
        assert response.status_code == 404

    def test_change_status(self, authenticated_client):
        order = _submit(authenticated_client)
        item_id = order["order"]["items"][0]["item_id"]
        _confirm(authenticated_client, order["order_id"])

        cooking = authenticated_client.post(
            "/api/kitchen/change-status", json={"item_id": item_id, "new_status": "cooking"}
        )
        ready = authenticated_client.post(
            "/api/kitchen/change-status", json={"item_id": item_id, "new_status": "ready_to_serve"}
        )

        assert cooking.status_code == 200
        assert cooking.json()["item"]["item_status"] == "cooking"
        assert ready.status_code == 200
        assert ready.json()["item"]["item_status"] == "ready_to_serve"

    @pytest.mark.parametrize("new_status", ["served", "processing", "completed"])
    def test_change_status_unsupported(self, authenticated_client, new_status):
        order = _submit(authenticated_client)
        item_id = order["order"]["items"][0]["item_id"]

        response = authenticated_client.post(
            "/api/kitchen/change-status", json={"item_id": item_id, "new_status": new_status}
        )

        assert response.status_code == 400


class TestRealtimeAPI:
    """Test the realtime WebSocket endpoint."""

    def test_connect_and_ping(self, test_client):
        with test_client.websocket_connect("/ws") as ws:
            connected = ws.receive_json()
            assert connected["type"] == "connected"
            assert connected["connection_id"]

            assert test_client.get("/health").json()["connections"] == 1

            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

        assert test_client.get("/health").json()["connections"] == 0

    def test_malformed_frames_keep_socket_open(self, test_client):
        with test_client.websocket_connect("/ws") as ws:
            ws.receive_json()

            ws.send_text("not json")
            assert ws.receive_json()["type"] == "error"

            ws.send_json(["subscribe"])
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"action": "subscribe", "channel": "bar"})
            error = ws.receive_json()
            assert error["type"] == "error"
            assert "bar" in error["detail"]

            ws.send_json({"action": "dance"})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_kitchen_board_receives_snapshot_then_deltas(self, authenticated_client):
        """Subscribing after items are cooking still shows them."""
        order = _submit(
            authenticated_client,
            {"booth_id": "A1", "items": [{"menu_id": 1, "quantity": 1}, {"menu_id": 3, "quantity": 1}]},
        )
        first, second = [item["item_id"] for item in order["order"]["items"]]
        _confirm(authenticated_client, order["order_id"])
        authenticated_client.post("/api/kitchen/accept", json={"item_id": first})

        with authenticated_client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"action": "subscribe", "channel": "kitchen"})

            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["channel"] == "kitchen"
            assert {item["item_id"]: item["item_status"] for item in snapshot["data"]["items"]} == {
                first: "cooking",
                second: "processing",
            }

            authenticated_client.post("/api/kitchen/complete", json={"item_id": first})

            delta = ws.receive_json()
            assert delta["type"] == "item_ready"
            assert delta["channel"] == "kitchen"
            assert delta["data"]["item_id"] == first
            assert delta["data"]["item_status"] == "ready_to_serve"
            assert delta["sequence"] > snapshot["sequence"]

    def test_unsubscribe_stops_deltas(self, authenticated_client):
        order = _submit(authenticated_client)
        item_id = order["order"]["items"][0]["item_id"]

        with authenticated_client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"action": "subscribe", "channel": "kitchen"})
            assert ws.receive_json()["type"] == "snapshot"

            ws.send_json({"action": "unsubscribe", "channel": "kitchen"})
            assert ws.receive_json() == {"type": "unsubscribed", "channel": "kitchen"}

            _confirm(authenticated_client, order["order_id"])
            authenticated_client.post("/api/kitchen/accept", json={"item_id": item_id})

            # Next frame is the pong, not a kitchen delta
            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_submit_order_over_websocket(self, test_client):
        with test_client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"action": "subscribe", "channel": "payment-desk"})
            assert ws.receive_json()["data"] == {"orders": []}

            ws.send_json({"action": "submit_order", **A1_ORDER})

            # The delta is scheduled, so it may arrive on either side of the result
            frames = {frame["type"]: frame for frame in (ws.receive_json(), ws.receive_json())}
            submitted = frames["order_submitted"]
            assert submitted["data"]["total_price"] == 3000

            result = frames["command_result"]
            assert result["success"] is True
            assert result["order_id"] == submitted["data"]["order_id"]

            ws.send_json(
                {"action": "submit_order", "booth_id": "A1", "items": [{"menu_id": 999, "quantity": 1}]}
            )
            rejected = ws.receive_json()
            assert rejected["type"] == "command_result"
            assert rejected["outcome"] == "rejected"

    def test_snapshot_action_resends_state(self, authenticated_client):
        with authenticated_client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"action": "subscribe", "channel": "payment-desk"})
            assert ws.receive_json()["data"]["orders"] == []

            order = _submit(authenticated_client)
            assert ws.receive_json()["type"] == "order_submitted"

            ws.send_json({"action": "snapshot", "channel": "payment-desk"})
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert [o["order_id"] for o in snapshot["data"]["orders"]] == [order["order_id"]]

    def test_dropped_board_recovers_with_snapshot(self, authenticated_client):
        """A board dropped after a failed push rejoins and catches up by asking for a snapshot."""
        order = _submit(authenticated_client)
        item_id = order["order"]["items"][0]["item_id"]

        with authenticated_client.websocket_connect("/ws") as ws:
            connection_id = ws.receive_json()["connection_id"]
            ws.send_json({"action": "subscribe", "channel": "kitchen"})
            assert ws.receive_json()["data"] == {"items": []}

            # Dropped without the socket closing, then the payment is missed
            dependencies.registry.unregister(connection_id)
            _confirm(authenticated_client, order["order_id"])

            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            ws.send_json({"action": "snapshot", "channel": "kitchen"})
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert [item["item_id"] for item in snapshot["data"]["items"]] == [item_id]

            authenticated_client.post("/api/kitchen/accept", json={"item_id": item_id})
            delta = ws.receive_json()
            assert delta["type"] == "item_accepted"
            assert delta["data"]["item_status"] == "cooking"
            assert delta["sequence"] > snapshot["sequence"]

        assert authenticated_client.get("/health").json()["connections"] == 0
