from datetime import datetime

from models import db


class SyncStatus:
    PENDING = "PENDING"
    UPDATE_PENDING = "UPDATE_PENDING"
    SYNCED = "SYNCED"
    SYNC_FAILED = "SYNC_FAILED"

    # Estados de entrada: los fija la aplicación, el orquestador solo los consume
    OUTBOX = (PENDING, UPDATE_PENDING)
    ALL = {PENDING, UPDATE_PENDING, SYNCED, SYNC_FAILED}


class PaymentStatus:
    UNPAID = "UNPAID"
    DP = "DP"  # anticipo (down payment)
    PAID = "PAID"

    ALL = {UNPAID, DP, PAID}


class ProductionStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    ALL = {PENDING, IN_PROGRESS, READY, DELIVERED, CANCELLED}


class FinancialAction:
    NONE = "NONE"
    REFUND = "REFUND"
    FORFEIT = "FORFEIT"

    ALL = {NONE, REFUND, FORFEIT}


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    # Llave de idempotencia (se genera perezosamente si falta)
    uuid = db.Column(db.String(36), nullable=True, unique=True, index=True)
    order_number = db.Column(db.String(40), nullable=False, index=True)

    # Solo se llenan después de sincronizar
    server_id = db.Column(db.String(64), nullable=True, index=True)
    server_order_number = db.Column(db.String(40), nullable=True)
    status = db.Column(db.String(20), nullable=True)

    # Cliente (snapshot)
    customer_name = db.Column(db.String(160), nullable=False)
    customer_phone = db.Column(db.String(40), nullable=True)

    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default="0.00")
    paid_amount = db.Column(db.Numeric(14, 2), nullable=False, default="0.00")
    remaining_amount = db.Column(db.Numeric(14, 2), nullable=False, default="0.00")
    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.UNPAID, index=True)
    payment_method = db.Column(db.String(20), nullable=False, default="TUNAI")
    received_by = db.Column(db.String(120), nullable=True)
    is_tempo = db.Column(db.Boolean, nullable=False, default=False)

    production_status = db.Column(db.String(20), nullable=False, default=ProductionStatus.PENDING, index=True)
    assigned_to = db.Column(db.String(120), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)

    cancel_reason = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    financial_action = db.Column(db.String(20), nullable=True)

    # Evidencia de marketing (sidecar)
    marketing_evidence_url = db.Column(db.String(255), nullable=True)
    is_public_content = db.Column(db.Boolean, nullable=False, default=False)
    is_approved_for_social = db.Column(db.Boolean, nullable=False, default=False)

    notes = db.Column(db.Text, nullable=True)
    meta = db.Column(db.JSON, nullable=True)

    # Metadatos de sincronización
    sync_status = db.Column(db.String(20), nullable=False, default=SyncStatus.PENDING, index=True)
    sync_attempts = db.Column(db.Integer, nullable=False, default=0)
    # Sube con cada cambio local; el sweep solo marca SYNCED si no cambió en vuelo
    sync_version = db.Column(db.Integer, nullable=False, default=0)
    last_sync_attempt_at = db.Column(db.DateTime, nullable=True)
    next_sync_attempt_at = db.Column(db.DateTime, nullable=True, index=True)
    last_sync_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        db.Index("ix_orders_sync_status_next", "sync_status", "next_sync_attempt_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "order_number": self.order_number,
            "server_id": self.server_id,
            "server_order_number": self.server_order_number,
            "customer": {"name": self.customer_name, "phone": self.customer_phone},
            "items": [it.to_dict() for it in self.items],
            "total_amount": float(self.total_amount or 0),
            "paid_amount": float(self.paid_amount or 0),
            "remaining_amount": float(self.remaining_amount or 0),
            "payment_status": self.payment_status,
            "production_status": self.production_status,
            "is_tempo": bool(self.is_tempo),
            "sync_status": self.sync_status,
            "sync_attempts": self.sync_attempts,
            "last_sync_error": self.last_sync_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Order {self.id} {self.order_number} sync={self.sync_status}>"


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    product_id = db.Column(db.String(64), nullable=True)
    # Snapshot del nombre (para nota y auditoría)
    product_name = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)
    pricing_type = db.Column(db.String(20), nullable=True)  # AREA / LINEAR / MATRIX / UNIT / MANUAL

    qty = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False)

    # dimensiones, acabados, etc.
    specs = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "description": self.description,
            "pricing_type": self.pricing_type,
            "qty": float(self.qty),
            "unit_price": float(self.unit_price),
            "subtotal": float(self.subtotal),
            "specs": self.specs or {},
        }

    def __repr__(self):
        return f"<OrderItem order={self.order_id} {self.product_name} qty={self.qty}>"
