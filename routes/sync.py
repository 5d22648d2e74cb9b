from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from flask_login import login_required

from models import db
from models.order import Order, SyncStatus
from models.user import Role
from routes.guards import require_roles


sync_bp = Blueprint("sync", __name__, url_prefix="/sync")


def _sync_service():
    return current_app.extensions["order_sync"]


@sync_bp.get("/status")
@login_required
def status():
    sync = _sync_service()
    online = sync.connectivity.is_online() if sync.connectivity is not None else None
    return jsonify({
        "counts": sync.status_counts(),
        "is_syncing": sync.is_syncing,
        "online": online,
    })


@sync_bp.post("/run")
@login_required
@require_roles(Role.ADMIN, Role.OWNER)
def run():
    """Dispara un sweep manual (mismo camino que el timer)."""
    sync = _sync_service()
    if sync.is_syncing:
        return jsonify({"ok": False, "error": "Ya hay una sincronización en curso."}), 409

    result = sync.sweep()
    if result is None:
        return jsonify({"ok": False, "error": "Sincronización omitida (sin conexión o en curso)."}), 409
    return jsonify({"ok": True, "result": result})


@sync_bp.get("/failed")
@login_required
@require_roles(Role.ADMIN, Role.OWNER)
def failed():
    """Órdenes que se rindieron: requieren revisión manual."""
    rows = (
        db.session.query(Order)
        .filter(Order.sync_status == SyncStatus.SYNC_FAILED)
        .order_by(Order.last_sync_attempt_at.desc())
        .all()
    )
    return jsonify({
        "ok": True,
        "orders": [
            {
                "id": o.id,
                "order_number": o.order_number,
                "uuid": o.uuid,
                "sync_attempts": o.sync_attempts,
                "last_sync_error": o.last_sync_error,
                "last_sync_attempt_at": o.last_sync_attempt_at.isoformat() if o.last_sync_attempt_at else None,
            }
            for o in rows
        ],
    })
