from models.order import Order, SyncStatus
from models.user import Role

ORDER_JSON = {
    "customer": {"name": "Budi", "phone": "0812"},
    "items": [{"product_name": "Brosur A5", "qty": 100, "unit_price": 500}],
    "paid_amount": 50000,
    "received_by": "Kasir",
}


def _use_fake_remote(app, remote):
    sync = app.extensions["order_sync"]
    sync.remote = remote
    sync.connectivity = None
    return sync


def test_requires_login(client):
    resp = client.get("/orders/")
    assert resp.status_code == 401
    assert resp.get_json()["ok"] is False


def test_bad_credentials(client, login):
    login(Role.CASHIER)
    client.post("/auth/logout")
    resp = client.post("/auth/login", json={"email": "cashier@test.com", "password": "wrong"})
    assert resp.status_code == 401


def test_create_and_list_orders(client, login):
    login(Role.CASHIER)

    resp = client.post("/orders/", json=ORDER_JSON)
    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["sync_status"] == SyncStatus.PENDING
    assert order["payment_status"] == "PAID"
    assert order["remaining_amount"] == 0.0

    listed = client.get("/orders/?sync_status=PENDING").get_json()["orders"]
    assert [o["id"] for o in listed] == [order["id"]]

    assert client.get("/orders/?sync_status=NOPE").status_code == 400
    assert client.get(f"/orders/{order['id']}").status_code == 200
    assert client.get("/orders/999").status_code == 404


def test_create_order_validation_error(client, login):
    login(Role.CASHIER)
    resp = client.post("/orders/", json={"items": []})
    assert resp.status_code == 400
    assert "cliente" in resp.get_json()["error"]


def test_cashier_cannot_cancel_or_run_sync(client, login, make_order):
    order = make_order()
    login(Role.CASHIER)
    assert client.post(f"/orders/{order.id}/cancel", json={"reason": "x"}).status_code == 403
    assert client.post("/sync/run").status_code == 403


def test_status_change_on_synced_order_queues_an_update(client, db, login, make_order):
    order = make_order()
    order.sync_status = SyncStatus.SYNCED
    order.server_id = "srv-1"
    db.session.commit()
    login(Role.CASHIER)

    resp = client.post(f"/orders/{order.id}/production-status", json={"status": "in_progress", "assigned_to": "Andi"})
    assert resp.status_code == 200
    assert resp.get_json()["order"]["sync_status"] == SyncStatus.UPDATE_PENDING

    resp = client.post(f"/orders/{order.id}/payments", json={"amount": 100000, "received_by": "Kasir"})
    assert resp.get_json()["order"]["payment_status"] == "PAID"


def test_run_sync_and_status(app, client, db, login, remote):
    _use_fake_remote(app, remote)
    login(Role.OWNER)
    client.post("/orders/", json=ORDER_JSON)

    status = client.get("/sync/status").get_json()
    assert status["counts"][SyncStatus.PENDING] == 1
    assert status["is_syncing"] is False
    assert status["online"] is None

    resp = client.post("/sync/run")
    assert resp.status_code == 200
    assert resp.get_json()["result"] == {"processed": 1, "succeeded": 1, "failed": 0}

    db.session.expire_all()
    order = db.session.query(Order).one()
    assert order.sync_status == SyncStatus.SYNCED
    assert order.server_order_number == "JGL-0001"


def test_failed_orders_listing(client, db, login, make_order):
    order = make_order()
    order.sync_status = SyncStatus.SYNC_FAILED
    order.sync_attempts = 10
    order.last_sync_error = "HTTP 503"
    db.session.commit()
    login(Role.ADMIN)

    rows = client.get("/sync/failed").get_json()["orders"]
    assert rows[0]["id"] == order.id
    assert rows[0]["last_sync_error"] == "HTTP 503"
    assert rows[0]["sync_attempts"] == 10
