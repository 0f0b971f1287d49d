"""
Tests for order endpoints.

Tests verify:
- Order creation computes totals and applies discount codes server side
- Rejected codes leave no order behind
- Status changes, listing and lookups
- Custom notifications
"""

from sqlalchemy import func, select

from rest_api.models import DiscountEvent, DiscountRedemption, Order


def _order_payload(store_id: int, **overrides) -> dict:
    payload = {
        "tienda_id": store_id,
        "cliente_nombre": "Ana Pérez",
        "cliente_telefono": "+5491100000001",
        "cliente_direccion": "Av. Siempre Viva 742",
        "metodo_pago": "efectivo",
        "items": [
            {"producto_id": 1, "cantidad": 2, "precio_unitario_cents": 5_000},
            {"producto_id": 2, "cantidad": 1, "precio_unitario_cents": 2_500},
        ],
    }
    payload.update(overrides)
    return payload


def _count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


class TestCreateOrder:

    def test_create_order(self, client, seed_store):
        response = client.post("/api/ordenes", json=_order_payload(seed_store.id))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["subtotal_cents"] == 12_500
        assert data["descuento_cents"] == 0
        assert data["total_cents"] == 12_500
        assert data["estado"] == "pendiente"
        assert data["numero_orden"].startswith("ORD-")
        assert data["whatsapp_url"].startswith("https://wa.me/5491155550000?text=")

    def test_create_order_with_code(self, client, db_session, seed_store, seed_discount):
        response = client.post(
            "/api/ordenes",
            json=_order_payload(seed_store.id, codigo_descuento="PROMO10"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["descuento_cents"] == 1_250
        assert data["total_cents"] == 11_250

        db_session.expire_all()
        assert db_session.get(DiscountEvent, seed_discount.id).usage_count == 1
        redemption = db_session.scalar(select(DiscountRedemption))
        assert redemption.order_id == data["orden_id"]
        assert redemption.discount_applied_cents == 1_250
        assert redemption.customer_phone == "+5491100000001"

    def test_same_customer_cannot_reuse_code(self, client, db_session, seed_store, seed_discount):
        payload = _order_payload(seed_store.id, codigo_descuento="PROMO10")
        assert client.post("/api/ordenes", json=payload).status_code == 200

        response = client.post("/api/ordenes", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "customer-exhausted"
        assert _count(db_session, Order) == 1

    def test_unknown_code_rejects_order(self, client, db_session, seed_store, seed_discount):
        response = client.post(
            "/api/ordenes",
            json=_order_payload(seed_store.id, codigo_descuento="NOEXISTE"),
        )

        assert response.status_code == 404
        assert response.json()["detail"] == {
            "valid": False,
            "reason": "not-found",
            "error": "Código no válido",
        }
        assert _count(db_session, Order) == 0

    def test_empty_order_rejected(self, client, seed_store):
        response = client.post("/api/ordenes", json=_order_payload(seed_store.id, items=[]))

        assert response.status_code == 400
        assert response.json()["detail"] == "La orden debe tener al menos un producto"

    def test_invalid_payment_method(self, client, seed_store):
        response = client.post("/api/ordenes", json=_order_payload(seed_store.id, metodo_pago="bitcoin"))

        assert response.status_code == 400

    def test_unknown_store(self, client, seed_store):
        response = client.post("/api/ordenes", json=_order_payload(999))

        assert response.status_code == 404

    def test_missing_customer_name(self, client, seed_store):
        payload = _order_payload(seed_store.id)
        del payload["cliente_nombre"]

        assert client.post("/api/ordenes", json=payload).status_code == 422


class TestOrderQueries:

    def test_get_by_id_and_number(self, client, seed_store):
        created = client.post("/api/ordenes", json=_order_payload(seed_store.id)).json()

        by_id = client.get(f"/api/ordenes/{created['orden_id']}")
        by_number = client.get(f"/api/ordenes/numero/{created['numero_orden']}")

        assert by_id.status_code == 200
        assert by_number.status_code == 200
        assert by_id.json()["numero_orden"] == created["numero_orden"]
        assert len(by_number.json()["items"]) == 2

    def test_unknown_order(self, client, seed_store):
        assert client.get("/api/ordenes/999").status_code == 404
        assert client.get("/api/ordenes/numero/ORD-000000-000").status_code == 404

    def test_list_store_orders(self, client, seed_store):
        for _ in range(3):
            client.post("/api/ordenes", json=_order_payload(seed_store.id))

        response = client.get(f"/api/ordenes/tienda/{seed_store.id}?limite=2")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert len(data["ordenes"]) == 2
        assert data["paginas"] == 2

    def test_list_filtered_by_status(self, client, seed_store):
        created = client.post("/api/ordenes", json=_order_payload(seed_store.id)).json()
        client.post("/api/ordenes", json=_order_payload(seed_store.id))
        client.put(f"/api/ordenes/{created['orden_id']}/estado", json={"estado": "confirmada"})

        response = client.get(f"/api/ordenes/tienda/{seed_store.id}?estado=confirmada")

        assert response.json()["total"] == 1

    def test_list_invalid_status(self, client, seed_store):
        assert client.get(f"/api/ordenes/tienda/{seed_store.id}?estado=perdida").status_code == 400


class TestOrderStatus:

    def test_update_status(self, client, seed_store):
        created = client.post("/api/ordenes", json=_order_payload(seed_store.id)).json()

        response = client.put(f"/api/ordenes/{created['orden_id']}/estado", json={"estado": "confirmada"})

        assert response.status_code == 200
        data = response.json()
        assert data["estado"] == "confirmada"
        assert data["estado_anterior"] == "pendiente"
        assert data["notificacion_enviada"] is True

    def test_invalid_status(self, client, seed_store):
        created = client.post("/api/ordenes", json=_order_payload(seed_store.id)).json()

        response = client.put(f"/api/ordenes/{created['orden_id']}/estado", json={"estado": "volando"})

        assert response.status_code == 400

    def test_final_status_cannot_change(self, client, seed_store):
        created = client.post("/api/ordenes", json=_order_payload(seed_store.id)).json()
        client.put(f"/api/ordenes/{created['orden_id']}/estado", json={"estado": "entregada"})

        response = client.put(f"/api/ordenes/{created['orden_id']}/estado", json={"estado": "pendiente"})

        assert response.status_code == 400

    def test_unknown_order(self, client, seed_store):
        assert client.put("/api/ordenes/999/estado", json={"estado": "confirmada"}).status_code == 404


class TestOrderNotifications:

    def test_notify_store(self, client, seed_store):
        created = client.post("/api/ordenes", json=_order_payload(seed_store.id)).json()

        response = client.post(
            f"/api/ordenes/{created['orden_id']}/notificar",
            json={"tipo": "warning", "mensaje": "Demora en cocina"},
        )

        assert response.status_code == 200
        assert response.json()["enviada_a"] == f"store:{seed_store.id}"

    def test_notify_customer_default_message(self, client, seed_store):
        created = client.post("/api/ordenes", json=_order_payload(seed_store.id)).json()

        response = client.post(f"/api/ordenes/{created['orden_id']}/notificar-cliente", json={})

        assert response.status_code == 200
        data = response.json()
        assert data["enviada_a"] == f"store:{seed_store.id}:customers"
        assert data["cliente"] == "Ana Pérez"
        assert data["mensaje_enviado"]

    def test_invalid_kind(self, client, seed_store):
        created = client.post("/api/ordenes", json=_order_payload(seed_store.id)).json()

        response = client.post(
            f"/api/ordenes/{created['orden_id']}/notificar",
            json={"tipo": "urgente", "mensaje": "x"},
        )

        assert response.status_code == 400
