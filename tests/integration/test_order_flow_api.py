from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from fulfillment.api.main import app


def _headers(role: str | None = None, actor_id: str | None = None) -> dict[str, str]:
    headers: dict[str, str] = {}
    if role is not None:
        headers["X-Actor-Role"] = role
    if actor_id is not None:
        headers["X-Actor-Id"] = actor_id
    return headers


def _order_payload(payment_method: str = "cash", quantity: int = 2) -> dict:
    return {
        "items": [
            {"menuItemId": "itm_001", "name": "Doro Wat", "unitPriceCents": 12500, "quantity": quantity},
        ],
        "customer": {
            "name": "Hana Tesfaye",
            "phone": "+251911234567",
            "email": "hana@example.com",
            "fulfillment": "delivery",
            "address": "Bole Road",
            "area": "Bole",
        },
        "paymentMethod": payment_method,
    }


def test_order_lifecycle_through_api() -> None:
    with TestClient(app) as client:
        created = client.post("/orders", json=_order_payload(), headers=_headers(actor_id="cus_flow"))
        assert created.status_code == 201
        body = created.json()
        order_id = body["orderId"]
        assert body["status"] == "pending"
        assert body["totalAmount"] == {"amountCents": 25000, "currency": "ETB"}
        assert body["customerId"] == "cus_flow"

        admin = _headers("admin", "adm_001")
        confirmed = client.patch(f"/orders/{order_id}/status", json={"status": "confirmed"}, headers=admin)
        assert confirmed.status_code == 200
        assert confirmed.json()["version"] == 2

        preparing = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "preparing", "staffId": "stf_chef_001"},
            headers=_headers("chef", "stf_chef_001"),
        )
        assert preparing.status_code == 200
        assert preparing.json()["assignedChef"]["staffId"] == "stf_chef_001"

        ready = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "ready"},
            headers=_headers("chef", "stf_chef_001"),
        )
        assert ready.status_code == 200

        delivered = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "delivered", "staffId": "stf_dlv_001"},
            headers=_headers("delivery", "stf_dlv_001"),
        )
        assert delivered.status_code == 200
        body = delivered.json()
        assert body["status"] == "delivered"
        assert body["assignedDelivery"]["name"] == "Abebe"
        assert [entry["status"] for entry in body["statusHistory"]] == [
            "pending",
            "confirmed",
            "preparing",
            "ready",
            "delivered",
        ]

        fetched = client.get(f"/orders/{order_id}", headers=_headers(actor_id="cus_flow"))
        assert fetched.status_code == 200
        assert fetched.json() == body


def test_illegal_transition_returns_error_envelope() -> None:
    with TestClient(app) as client:
        order_id = client.post("/orders", json=_order_payload()).json()["orderId"]

        response = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "preparing"},
            headers={**_headers("admin"), "X-Request-Id": "req-illegal-1"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"]["code"] == "INVALID_ORDER_TRANSITION"
        assert "pending→preparing" in body["error"]["message"]
        assert body["error"]["details"]["edge"] == "pending→preparing"
        assert body["requestId"] == "req-illegal-1"
        assert response.headers["X-Request-Id"] == "req-illegal-1"

        unchanged = client.get(f"/orders/{order_id}").json()
        assert unchanged["status"] == "pending"
        assert unchanged["version"] == 1


def test_role_checks() -> None:
    with TestClient(app) as client:
        order_id = client.post("/orders", json=_order_payload()).json()["orderId"]

        unknown = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "confirmed"},
            headers=_headers("waiter"),
        )
        assert unknown.status_code == 401
        assert unknown.json()["error"]["code"] == "UNKNOWN_ROLE"

        forbidden = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "confirmed"},
            headers=_headers("chef"),
        )
        assert forbidden.status_code == 403
        assert forbidden.json()["error"]["code"] == "FORBIDDEN"


def test_idempotent_order_creation() -> None:
    key = f"idem-{uuid.uuid4().hex}"
    with TestClient(app) as client:
        first = client.post("/orders", json=_order_payload(), headers={"Idempotency-Key": key})
        replay = client.post("/orders", json=_order_payload(), headers={"Idempotency-Key": key})
        mismatch = client.post("/orders", json=_order_payload(quantity=5), headers={"Idempotency-Key": key})

    assert first.status_code == 201
    assert replay.status_code == 200
    assert replay.json()["orderId"] == first.json()["orderId"]
    assert mismatch.status_code == 409
    assert mismatch.json()["error"]["code"] == "IDEMPOTENCY_KEY_REPLAY_DIFFERENT_PAYLOAD"


def test_invalid_payloads_are_rejected() -> None:
    with TestClient(app) as client:
        missing_fields = client.post("/orders", json={"items": []})
        empty_items = client.post("/orders", json={**_order_payload(), "items": []})
        bad_customer = _order_payload()
        bad_customer["customer"]["email"] = "nope"
        bad_email = client.post("/orders", json=bad_customer)

    assert missing_fields.status_code == 400
    assert missing_fields.json()["error"]["code"] == "INVALID_REQUEST"
    assert empty_items.status_code == 400
    assert empty_items.json()["error"]["code"] == "VALIDATION_ERROR"
    assert bad_email.status_code == 400
    assert bad_email.json()["error"]["details"] == {"email": "invalid email"}


def test_unknown_order_returns_not_found() -> None:
    with TestClient(app) as client:
        response = client.get("/orders/ord_does_not_exist")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"


def test_customer_cancels_and_lists_own_orders() -> None:
    customer = _headers(actor_id=f"cus_{uuid.uuid4().hex[:8]}")
    with TestClient(app) as client:
        order_ids = []
        for _ in range(3):
            created = client.post("/orders", json=_order_payload(), headers=customer)
            order_ids.append(created.json()["orderId"])
        cancelled = client.patch(
            f"/orders/{order_ids[0]}/cancel",
            json={"notes": "changed my mind"},
            headers=customer,
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        first_page = client.get("/orders", params={"limit": 2}, headers=customer)
        assert first_page.status_code == 200
        cursor = first_page.json()["nextCursor"]
        assert cursor is not None
        second_page = client.get("/orders", params={"limit": 2, "cursor": cursor}, headers=customer)

        listed = [order["orderId"] for order in first_page.json()["orders"] + second_page.json()["orders"]]
        assert sorted(listed) == sorted(order_ids)
        assert second_page.json()["nextCursor"] is None

        only_cancelled = client.get("/orders", params={"status": "CANCELLED"}, headers=customer)
        assert [order["orderId"] for order in only_cancelled.json()["orders"]] == [order_ids[0]]

        bad_cursor = client.get("/orders", params={"cursor": "not-a-cursor"}, headers=customer)
        assert bad_cursor.status_code == 400


def test_cancel_after_kitchen_started_needs_override() -> None:
    admin = _headers("admin", "adm_001")
    with TestClient(app) as client:
        order_id = client.post("/orders", json=_order_payload()).json()["orderId"]
        client.patch(f"/orders/{order_id}/status", json={"status": "confirmed"}, headers=admin)
        client.patch(
            f"/orders/{order_id}/status",
            json={"status": "preparing", "staffId": "stf_chef_002"},
            headers=admin,
        )

        plain = client.patch(f"/orders/{order_id}/cancel", headers=admin)
        assert plain.status_code == 409

        override = client.patch(f"/orders/{order_id}/cancel", json={"override": True}, headers=admin)
        assert override.status_code == 200
        assert override.json()["statusHistory"][-1]["override"] is True


def test_websocket_requires_scope() -> None:
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass
    assert exc_info.value.code == 1008


def test_customers_cannot_touch_foreign_orders() -> None:
    owner = _headers(actor_id=f"cus_{uuid.uuid4().hex[:8]}")
    intruder = _headers("customer", "cus_intruder")
    with TestClient(app) as client:
        order_id = client.post("/orders", json=_order_payload(), headers=owner).json()["orderId"]

        read = client.get(f"/orders/{order_id}", headers=intruder)
        cancel = client.patch(f"/orders/{order_id}/cancel", headers=intruder)
        via_status = client.patch(
            f"/orders/{order_id}/status", json={"status": "cancelled"}, headers=intruder
        )
        own_read = client.get(f"/orders/{order_id}", headers=owner)

    assert read.status_code == 403
    assert read.json()["error"]["code"] == "FORBIDDEN"
    assert cancel.status_code == 403
    assert via_status.status_code == 403
    assert own_read.status_code == 200
    assert own_read.json()["status"] == "pending"
    assert own_read.json()["version"] == 1
