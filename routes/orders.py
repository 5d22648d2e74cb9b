from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import login_required

from models import db
from models.order import Order, ProductionStatus, SyncStatus
from models.user import Role
from routes.guards import require_roles
from services.orders import cancel_order, create_local_order, record_payment, update_production_status


orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


def _json() -> dict:
    return request.get_json(silent=True) or {}


def _get_order_or_404(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        abort(404)
    return order


def _bad_request(e: Exception):
    db.session.rollback()
    return jsonify({"ok": False, "error": str(e)}), 400


@orders_bp.post("/")
@login_required
@require_roles(Role.CASHIER, Role.ADMIN, Role.OWNER)
def create():
    try:
        order = create_local_order(
            db.session,
            data=_json(),
            machine_id=current_app.config["MACHINE_ID"],
        )
        db.session.commit()
    except ValueError as e:
        return _bad_request(e)

    current_app.logger.info("Orden %s registrada localmente (uuid=%s)", order.order_number, order.uuid)
    return jsonify({"ok": True, "order": order.to_dict()}), 201


@orders_bp.get("/")
@login_required
def list_orders():
    q = db.session.query(Order)

    sync_status = (request.args.get("sync_status") or "").strip().upper()
    if sync_status:
        if sync_status not in SyncStatus.ALL:
            return jsonify({"ok": False, "error": "sync_status inválido"}), 400
        q = q.filter(Order.sync_status == sync_status)

    production_status = (request.args.get("production_status") or "").strip().upper()
    if production_status:
        if production_status not in ProductionStatus.ALL:
            return jsonify({"ok": False, "error": "production_status inválido"}), 400
        q = q.filter(Order.production_status == production_status)

    try:
        limit = min(max(int(request.args.get("limit", 50)), 1), 200)
    except ValueError:
        limit = 50

    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
    return jsonify({"ok": True, "orders": [o.to_dict() for o in orders]})


@orders_bp.get("/<int:order_id>")
@login_required
def detail(order_id: int):
    order = _get_order_or_404(order_id)
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/<int:order_id>/production-status")
@login_required
@require_roles(Role.CASHIER, Role.ADMIN, Role.OWNER)
def set_production_status(order_id: int):
    order = _get_order_or_404(order_id)
    data = _json()
    try:
        update_production_status(
            db.session,
            order=order,
            status=(data.get("status") or "").strip().upper(),
            assigned_to=data.get("assigned_to"),
        )
        db.session.commit()
    except ValueError as e:
        return _bad_request(e)
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/<int:order_id>/payments")
@login_required
@require_roles(Role.CASHIER, Role.ADMIN, Role.OWNER)
def add_payment(order_id: int):
    order = _get_order_or_404(order_id)
    data = _json()
    try:
        record_payment(
            db.session,
            order=order,
            amount=data.get("amount"),
            received_by=data.get("received_by") or "",
            method=data.get("method") or "TUNAI",
        )
        db.session.commit()
    except ValueError as e:
        return _bad_request(e)
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/<int:order_id>/cancel")
@login_required
@require_roles(Role.ADMIN, Role.OWNER)
def cancel(order_id: int):
    order = _get_order_or_404(order_id)
    data = _json()
    try:
        cancel_order(
            db.session,
            order=order,
            reason=data.get("reason") or "",
            financial_action=(data.get("financial_action") or "NONE").strip().upper(),
        )
        db.session.commit()
    except ValueError as e:
        return _bad_request(e)
    return jsonify({"ok": True, "order": order.to_dict()})
