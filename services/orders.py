import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from models.order import (
    FinancialAction,
    Order,
    OrderItem,
    PaymentStatus,
    ProductionStatus,
    SyncStatus,
)


def _to_dec(val, places: str = "0.01") -> Decimal:
    """
    Soporta montos con coma/punto. Devuelve Decimal >= 0.
    """
    if val is None:
        return Decimal("0").quantize(Decimal(places))
    s = str(val).strip().replace(",", ".")
    try:
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return Decimal("0").quantize(Decimal(places))
    if d < 0:
        return Decimal("0").quantize(Decimal(places))
    return d.quantize(Decimal(places))


def _payment_status(total: Decimal, paid: Decimal) -> str:
    if paid <= 0:
        return PaymentStatus.UNPAID
    if paid >= total:
        return PaymentStatus.PAID
    return PaymentStatus.DP


def next_order_number(db: Session, *, machine_id: str, when: datetime) -> str:
    """JGL-<MACHINE_ID>-<YYYYMMDD>-<seq>. El MACHINE_ID evita choques entre terminales offline."""
    prefix = f"JGL-{machine_id}-{when.strftime('%Y%m%d')}-"
    count = (
        db.query(Order.id)
        .filter(Order.order_number.like(f"{prefix}%"))
        .count()
    )
    return f"{prefix}{count + 1:04d}"


def create_local_order(
    db: Session,
    *,
    data: dict,
    machine_id: str,
    now: Optional[datetime] = None
) -> Order:
    """
    Registra una orden en el cache local con sync_status=PENDING.
    El orquestador de sync la empuja al servidor después.
    """
    now = now or datetime.utcnow()

    customer = data.get("customer") or {}
    customer_name = (customer.get("name") or data.get("customer_name") or "").strip()
    if not customer_name:
        raise ValueError("El nombre del cliente es obligatorio")

    raw_items = data.get("items") or []
    if not raw_items:
        raise ValueError("La orden debe tener al menos un item")

    order = Order(
        uuid=str(uuid.uuid4()),
        order_number=next_order_number(db, machine_id=machine_id, when=now),
        customer_name=customer_name,
        customer_phone=(customer.get("phone") or data.get("customer_phone") or "").strip() or None,
        payment_method=(data.get("payment_method") or "TUNAI").strip().upper(),
        received_by=data.get("received_by"),
        is_tempo=bool(data.get("is_tempo")),
        notes=data.get("notes"),
        meta=dict(data.get("meta") or {}, machine_id=machine_id),
        production_status=ProductionStatus.PENDING,
        sync_status=SyncStatus.PENDING,
        sync_attempts=0,
        sync_version=0,
        created_at=now,
        updated_at=now,
    )

    total = Decimal("0.00")
    for raw in raw_items:
        name = (raw.get("product_name") or raw.get("name") or "").strip()
        if not name:
            raise ValueError("Cada item necesita product_name")
        qty = _to_dec(raw.get("qty"), "0.001")
        if qty <= 0:
            raise ValueError(f"qty debe ser > 0 ({name})")
        unit_price = _to_dec(raw.get("unit_price"))
        subtotal = (qty * unit_price).quantize(Decimal("0.01"))
        total += subtotal

        order.items.append(
            OrderItem(
                product_id=raw.get("product_id"),
                product_name=name,
                description=raw.get("description"),
                pricing_type=raw.get("pricing_type"),
                qty=qty,
                unit_price=unit_price,
                subtotal=subtotal,
                specs=raw.get("specs") or {},
            )
        )

    paid = min(_to_dec(data.get("paid_amount")), total)
    order.total_amount = total
    order.paid_amount = paid
    order.remaining_amount = total - paid
    order.payment_status = _payment_status(total, paid)

    db.add(order)
    db.flush()
    return order


def mark_for_update(order: Order) -> None:
    """
    Una orden ya sincronizada pasa a UPDATE_PENDING.
    PENDING se queda igual (el insert lleva el estado completo) y SYNC_FAILED
    requiere intervención manual.
    """
    if order.sync_status == SyncStatus.SYNCED:
        order.sync_status = SyncStatus.UPDATE_PENDING
    order.sync_version = (order.sync_version or 0) + 1
    order.updated_at = datetime.utcnow()


def update_production_status(
    db: Session,
    *,
    order: Order,
    status: str,
    assigned_to: Optional[str] = None
) -> Order:
    if status not in ProductionStatus.ALL:
        raise ValueError("production_status inválido")
    if order.production_status == ProductionStatus.CANCELLED:
        raise ValueError("La orden está cancelada")

    now = datetime.utcnow()
    order.production_status = status
    if status == ProductionStatus.IN_PROGRESS and assigned_to:
        order.assigned_to = assigned_to
    if status == ProductionStatus.READY:
        order.completed_at = now
    if status == ProductionStatus.DELIVERED:
        order.delivered_at = now

    mark_for_update(order)
    db.flush()
    return order


def record_payment(
    db: Session,
    *,
    order: Order,
    amount,
    received_by: str,
    method: str = "TUNAI"
) -> Order:
    a = _to_dec(amount)
    if a <= 0:
        raise ValueError("El monto debe ser > 0")
    if not (received_by or "").strip():
        raise ValueError("received_by es obligatorio")
    if order.production_status == ProductionStatus.CANCELLED:
        raise ValueError("La orden está cancelada")

    total = _to_dec(order.total_amount)
    paid = _to_dec(order.paid_amount) + a
    if paid > total:
        raise ValueError(f"Pago excede el saldo. Pendiente={total - _to_dec(order.paid_amount)}")

    order.paid_amount = paid
    order.remaining_amount = total - paid
    order.payment_status = _payment_status(total, paid)
    order.received_by = received_by.strip()
    order.payment_method = (method or "TUNAI").strip().upper()

    mark_for_update(order)
    db.flush()
    return order


def cancel_order(
    db: Session,
    *,
    order: Order,
    reason: str,
    financial_action: str = FinancialAction.NONE
) -> Order:
    if financial_action not in FinancialAction.ALL:
        raise ValueError("financial_action inválido")
    if not (reason or "").strip():
        raise ValueError("El motivo de cancelación es obligatorio")

    order.production_status = ProductionStatus.CANCELLED
    order.cancel_reason = reason.strip()
    order.cancelled_at = datetime.utcnow()
    order.financial_action = financial_action

    mark_for_update(order)
    db.flush()
    return order
