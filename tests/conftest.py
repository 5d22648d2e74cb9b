from datetime import datetime, timedelta

import pytest

from app import create_app
from config import TestConfig
from models import db as _db
from models.user import Role, User
from services.order_sync import OrderSyncService
from services.orders import create_local_order
from services.supabase_client import DuplicateKeyError, RemoteUnavailableError


class FakeRemote:
    """Backend remoto en memoria con unicidad por llave de idempotencia."""

    def __init__(self):
        self.rows = {}
        self.create_calls = []
        self.update_calls = []
        self.lookup_calls = []
        self.create_error = None
        self.create_hook = None
        self.update_hook = None
        self.lookup_result = "auto"
        self.drop_next_ack = False
        self._seq = 0

    def create_order(self, payload):
        self.create_calls.append(payload)
        if self.create_hook:
            self.create_hook(payload)
        if self.create_error:
            raise self.create_error

        key = payload["idempotency_key"]
        if key in self.rows:
            raise DuplicateKeyError(
                'duplicate key value violates unique constraint "idx_orders_ref_local_id"',
                status_code=409,
                code="23505",
            )

        self._seq += 1
        row = {
            "id": f"srv-{self._seq}",
            "order_number": f"JGL-{self._seq:04d}",
            "status": "UNPAID",
            "ref_local_id": payload["ref_local_id"],
            "idempotency_key": key,
        }
        self.rows[key] = row

        if self.drop_next_ack:
            # La fila quedó escrita pero la respuesta se perdió
            self.drop_next_ack = False
            raise RemoteUnavailableError("network error: connection reset by peer")

        return {"success": True, "order_id": row["id"], "order_number": row["order_number"], "status": row["status"]}

    def update_order(self, server_id, fields, *, local_id=None):
        self.update_calls.append({"server_id": server_id, "fields": fields, "local_id": local_id})
        if self.update_hook:
            return self.update_hook(server_id, fields)
        return {"id": server_id, **fields}

    def find_by_local_ref(self, local_id, idempotency_key=None):
        self.lookup_calls.append({"local_id": local_id, "idempotency_key": idempotency_key})
        if self.lookup_result != "auto":
            return self.lookup_result
        for row in self.rows.values():
            if row["ref_local_id"] != local_id:
                continue
            if idempotency_key and row["idempotency_key"] != idempotency_key:
                continue
            return {"id": row["id"], "order_number": row["order_number"], "status": row["status"]}
        return None


class Clock:
    def __init__(self, start=datetime(2026, 2, 8, 9, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def sync(app, remote, clock):
    return OrderSyncService(
        app,
        remote,
        batch_size=5,
        max_attempts=10,
        update_timeout_s=0.2,
        machine_id="T",
        now=clock,
        rand=lambda: 0.5,
    )


@pytest.fixture
def make_order(db, clock):
    def _make(**overrides):
        data = {
            "customer": {"name": "Budi", "phone": "08123456789"},
            "items": [{"product_name": "Banner Flexi", "qty": 2, "unit_price": 50000}],
            "paid_amount": 0,
        }
        data.update(overrides)
        order = create_local_order(db.session, data=data, machine_id="T", now=clock())
        db.session.commit()
        return order

    return _make


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client, db):
    def _login(role=Role.OWNER):
        email = f"{role.lower()}@test.com"
        user = db.session.query(User).filter_by(email=email).first()
        if not user:
            user = User(email=email, full_name=f"{role} Test", role=role)
            user.set_password("secret")
            db.session.add(user)
            db.session.commit()
        resp = client.post("/auth/login", json={"email": email, "password": "secret"})
        assert resp.status_code == 200
        return user

    return _login
