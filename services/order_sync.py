"""
Sincronización de órdenes offline hacia el backend remoto.

Estrategia:
1. Leer del cache local las órdenes PENDING / UPDATE_PENDING listas
   (fuera de su ventana de backoff), máximo `batch_size`.
2. PENDING -> RPC de inserción con llave de idempotencia (uuid).
   UPDATE_PENDING -> update parcial por server_id, con timeout.
3. Guardar el resultado en el cache local (SYNCED / reintento / SYNC_FAILED).

Un solo sweep a la vez; un disparo durante un sweep activo se descarta.
"""
import logging
import random
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from contextlib import nullcontext
from datetime import datetime

from flask import current_app, has_app_context
from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.order import Order, SyncStatus
from services.backoff import next_attempt_at
from services.supabase_client import DuplicateKeyError, RemoteSyncError, RemoteTimeoutError

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
MAX_ATTEMPTS = 10
UPDATE_TIMEOUT_S = 20.0
DEFAULT_INTERVAL_MS = 60000

TIMEOUT_MARKER = "TIMEOUT_EXCEEDED"


def _iso(v):
    return v.isoformat() if v else None


def _num(v) -> float:
    return float(v or 0)


def _state_fields(order: Order) -> dict:
    """Estado mutable de la orden; va completo en el insert y en cada update."""
    return {
        "production_status": order.production_status,
        "payment_status": order.payment_status,
        "is_tempo": bool(order.is_tempo),
        "paid_amount": _num(order.paid_amount),
        "remaining_amount": _num(order.remaining_amount),
        "assigned_to": order.assigned_to,
        "completed_at": _iso(order.completed_at),
        "delivered_at": _iso(order.delivered_at),
        "cancel_reason": order.cancel_reason,
        "cancelled_at": _iso(order.cancelled_at),
        "financial_action": order.financial_action,
        "marketing_evidence_url": order.marketing_evidence_url,
        "is_public_content": bool(order.is_public_content),
        "is_approved_for_social": bool(order.is_approved_for_social),
    }


def build_insert_payload(order: Order, *, machine_id: str) -> dict:
    """Orden completa + campos que exige el RPC (ref_local_id, source, idempotency_key...)."""
    created = _iso(order.created_at)
    meta = dict(order.meta or {})
    meta.setdefault("machine_id", machine_id)

    payload = _state_fields(order)
    payload.update({
        # El id remoto es el mismo uuid local
        "id": order.uuid,
        "idempotency_key": order.uuid,
        "ref_local_id": order.id,
        "local_created_at": created,
        "created_at": created,
        "source": "OFFLINE",
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "customer": {
            "name": order.customer_name or "Guest",
            "phone": order.customer_phone or "-",
        },
        "items": [it.to_dict() for it in order.items],
        "total_amount": _num(order.total_amount),
        "payment": {
            "amount": _num(order.paid_amount),
            "method": order.payment_method or "TUNAI",
            "received_by": order.received_by or "System",
        },
        "notes": order.notes,
        "meta": meta,
    })
    return payload


def build_update_payload(order: Order, *, now: datetime) -> dict:
    # Items y cliente no se tocan en un update
    payload = _state_fields(order)
    payload["updated_at"] = _iso(now)
    return payload


class OrderSyncService:
    """
    Orquestador de sincronización. Se construye una vez en create_app()
    y queda en app.extensions["order_sync"].
    """

    def __init__(
        self,
        app,
        remote,
        *,
        batch_size: int = BATCH_SIZE,
        max_attempts: int = MAX_ATTEMPTS,
        update_timeout_s: float = UPDATE_TIMEOUT_S,
        machine_id: str = "A",
        connectivity=None,
        now=None,
        rand=None,
    ):
        self.app = app
        self.remote = remote
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.update_timeout_s = update_timeout_s
        self.machine_id = machine_id
        self.connectivity = connectivity
        self._now = now or datetime.utcnow
        self._rand = rand or random.random

        # Guardia de re-entrada: no encola, descarta
        self._sweep_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._loop_thread = None
        self._executor = None

    @property
    def is_syncing(self) -> bool:
        return self._sweep_lock.locked()

    # -------------------------
    # Ciclo de vida
    # -------------------------
    def start(self, interval_ms: int = DEFAULT_INTERVAL_MS) -> None:
        if self._loop_thread and self._loop_thread.is_alive():
            if not self._stop_event.is_set():
                return
            # stop() reciente: el loop anterior sale al terminar su sweep
            self._loop_thread.join()
        logger.info("Servicio de sincronización iniciado (cada %s ms)", interval_ms)

        self._stop_event.clear()
        if self.connectivity is not None:
            self.connectivity.add_listener(self.trigger)
            self.connectivity.start()

        self._loop_thread = threading.Thread(
            target=self._loop,
            args=(interval_ms / 1000.0,),
            name="order-sync",
            daemon=True,
        )
        self._loop_thread.start()

    def stop(self) -> None:
        """Evita sweeps futuros. Un sweep en curso termina normalmente."""
        self._stop_event.set()
        if self.connectivity is not None:
            self.connectivity.remove_listener(self.trigger)
            self.connectivity.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        logger.info("Servicio de sincronización detenido")

    def _loop(self, interval_s: float) -> None:
        self.trigger()
        while not self._stop_event.wait(interval_s):
            self.trigger()

    def trigger(self) -> None:
        self.sweep()

    # -------------------------
    # Sweep
    # -------------------------
    def _app_context(self):
        if has_app_context() and current_app._get_current_object() is self.app:
            return nullcontext()
        return self.app.app_context()

    def sweep(self):
        """
        Un barrido. Devuelve {"processed", "succeeded", "failed"} o None si
        no corrió (otro sweep activo, o sin red).
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.debug("Sweep en curso; disparo descartado")
            return None
        try:
            if self.connectivity is not None and not self.connectivity.is_online():
                logger.debug("Offline: se omite la sincronización")
                return None

            with self._app_context():
                try:
                    return self._run_sweep()
                except Exception:
                    logger.exception("Error inesperado en la sincronización")
                    db.session.rollback()
                    return None
        finally:
            self._sweep_lock.release()

    def _ready_orders(self):
        now = self._now()
        return (
            db.session.query(Order)
            .filter(
                Order.sync_status.in_(SyncStatus.OUTBOX),
                or_(Order.next_sync_attempt_at.is_(None), Order.next_sync_attempt_at <= now),
            )
            .order_by(Order.id.asc())
            .limit(self.batch_size)
            .all()
        )

    def _run_sweep(self) -> dict:
        orders = self._ready_orders()
        result = {"processed": 0, "succeeded": 0, "failed": 0}
        if not orders:
            return result

        logger.info("[SYNC START] %s operaciones pendientes", len(orders))

        # Secuencial a propósito: una llamada de red a la vez
        for order in orders:
            if order.sync_status == SyncStatus.PENDING:
                ok = self._sync_insert(order)
            else:
                ok = self._sync_update(order)

            result["processed"] += 1
            if ok:
                result["succeeded"] += 1
            else:
                result["failed"] += 1

        logger.info(
            "[SYNC RESULT] ok=%s fallidas=%s",
            result["succeeded"],
            result["failed"],
        )
        return result

    # -------------------------
    # INSERT (orden nueva)
    # -------------------------
    def _ensure_uuid(self, order: Order) -> str:
        if not order.uuid:
            order.uuid = str(uuid.uuid4())
            # Se persiste ANTES de tocar la red
            db.session.commit()
            logger.warning("[SELF-HEAL] uuid faltante generado para la orden #%s", order.id)
        return order.uuid

    def _sync_insert(self, order: Order) -> bool:
        seen_version = order.sync_version or 0
        try:
            self._ensure_uuid(order)
            payload = build_insert_payload(order, machine_id=self.machine_id)

            started = time.perf_counter()
            result = self.remote.create_order(payload)
            latency_ms = (time.perf_counter() - started) * 1000
        except DuplicateKeyError as e:
            if self._self_heal(order, seen_version):
                return True
            self._register_failure(order, e, action="INSERT")
            return False
        except Exception as e:
            if isinstance(e, SQLAlchemyError):
                db.session.rollback()
            self._register_failure(order, e, action="INSERT")
            return False

        logger.info(
            "[INSERT OK] orden #%s -> %s (%.0f ms)",
            order.id,
            result.get("order_number"),
            latency_ms,
        )
        self._mark_synced(
            order,
            seen_version=seen_version,
            server_id=result.get("order_id"),
            server_order_number=result.get("order_number"),
            status=result.get("status"),
        )
        return True

    def _self_heal(self, order: Order, seen_version: int) -> bool:
        """
        Llave duplicada = la orden ya llegó al servidor en un intento anterior
        cuya respuesta se perdió. Se busca la fila remota y se enlaza.

        Si la orden cambió localmente desde que se creó, la fila remota puede
        tener un estado anterior: queda UPDATE_PENDING para empujarlo.
        """
        logger.warning("Llave duplicada (ghost sync) en orden #%s; intentando self-heal", order.id)
        try:
            existing = self.remote.find_by_local_ref(order.id, order.uuid)
        except Exception:
            logger.exception("Self-heal falló para la orden #%s", order.id)
            return False

        if not existing:
            logger.warning("Self-heal sin resultado para la orden #%s", order.id)
            return False

        logger.info("Self-heal OK: orden #%s enlazada a %s", order.id, existing.get("order_number"))
        self._mark_synced(
            order,
            seen_version=seen_version,
            server_id=existing.get("id"),
            server_order_number=existing.get("order_number"),
            stale=seen_version > 0,
        )
        return True

    # -------------------------
    # UPDATE (orden existente)
    # -------------------------
    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="order-sync-update")
        return self._executor

    def _call_with_timeout(self, fn, *args, **kwargs):
        future = self._get_executor().submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.update_timeout_s)
        except FuturesTimeout:
            # La llamada sigue corriendo hasta el timeout de requests; su resultado se descarta
            raise RemoteTimeoutError(TIMEOUT_MARKER)

    def _sync_update(self, order: Order) -> bool:
        seen_version = order.sync_version or 0
        try:
            payload = build_update_payload(order, now=self._now())
            logger.info("[UPDATE START] orden #%s server_id=%s", order.id, order.server_id)
            self._call_with_timeout(
                self.remote.update_order,
                order.server_id,
                payload,
                local_id=order.id,
            )
        except Exception as e:
            if isinstance(e, SQLAlchemyError):
                db.session.rollback()
            self._register_failure(order, e, action="UPDATE")
            return False

        logger.info("[UPDATE OK] orden #%s", order.id)
        self._mark_synced(order, seen_version=seen_version)
        return True

    # -------------------------
    # Resultado local
    # -------------------------
    def _mark_synced(
        self,
        order: Order,
        *,
        seen_version: int,
        server_id=None,
        server_order_number=None,
        status=None,
        stale: bool = False,
    ) -> str:
        """
        SYNCED solo si sync_version sigue igual que al enviar. Un cambio local
        durante la llamada deja la orden en UPDATE_PENDING.
        """
        now = self._now()
        values = {
            "last_sync_attempt_at": now,
            "next_sync_attempt_at": None,
            "last_sync_error": None,
            "updated_at": now,
        }
        if server_id:
            values["server_id"] = str(server_id)
        if server_order_number:
            values["server_order_number"] = server_order_number
        if status:
            values["status"] = status

        order_id = order.id
        target = SyncStatus.UPDATE_PENDING if stale else SyncStatus.SYNCED
        db.session.flush()
        res = db.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.sync_version == seen_version)
            .values(sync_status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            target = SyncStatus.UPDATE_PENDING
            db.session.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(sync_status=target, **values)
                .execution_options(synchronize_session=False)
            )
            logger.info("Orden #%s cambió durante la sincronización; queda UPDATE_PENDING", order_id)
        db.session.commit()
        return target

    def _register_failure(self, order: Order, err: Exception, *, action: str) -> None:
        now = self._now()
        attempts = (order.sync_attempts or 0) + 1
        permanent = isinstance(err, RemoteSyncError) and not err.transient

        order.sync_attempts = attempts
        order.last_sync_attempt_at = now
        order.next_sync_attempt_at = next_attempt_at(now, attempts, self._rand)
        order.last_sync_error = str(err) or err.__class__.__name__
        order.updated_at = now

        if isinstance(err, RemoteTimeoutError):
            logger.warning("[NETWORK] %s orden #%s: %s", action, order.id, err)
        else:
            logger.warning("[%s FAIL] orden #%s (intento %s): %s", action, order.id, attempts, err)

        if permanent or attempts >= self.max_attempts:
            order.sync_status = SyncStatus.SYNC_FAILED
            logger.error(
                "Se abandona la orden %s tras %s intentos (%s)",
                order.order_number,
                attempts,
                "rechazo permanente" if permanent else "máximo de intentos",
            )

        db.session.commit()

    # -------------------------
    # Consultas
    # -------------------------
    def status_counts(self) -> dict:
        with self._app_context():
            rows = (
                db.session.query(Order.sync_status, func.count(Order.id))
                .group_by(Order.sync_status)
                .all()
            )
        counts = {s: 0 for s in sorted(SyncStatus.ALL)}
        counts.update({status: n for status, n in rows})
        return counts
