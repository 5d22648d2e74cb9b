from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class RemoteSyncError(Exception):
    """Error devuelto (o provocado) por el backend remoto.

    `transient` indica si vale la pena reintentar. Los errores permanentes
    (validación, regla de negocio) pasan directo a SYNC_FAILED.
    """

    transient = True

    def __init__(self, message: str, *, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class DuplicateKeyError(RemoteSyncError):
    """Violación de unicidad (la orden ya existe en el servidor)."""


class RemoteRejectedError(RemoteSyncError):
    transient = False


class RemoteNotFoundError(RemoteSyncError):
    """La fila a actualizar no existe (todavía) en el servidor."""


class RemoteTimeoutError(RemoteSyncError):
    pass


class RemoteUnavailableError(RemoteSyncError):
    pass


# Códigos Postgres que nunca se resuelven reintentando (clase 22 = datos, 23 = integridad)
_PERMANENT_PG_CLASSES = ("22", "23")
_DUPLICATE_MARKERS = ("duplicate key", "idx_orders_ref_local_id")
# PGRST0xx conexión, PGRST2xx schema cache (RPC/tabla/columna), PGRST3xx JWT
_CONFIG_PGRST_PREFIXES = ("PGRST0", "PGRST2", "PGRST3")


def _error_body(resp: requests.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {"message": (resp.text or "").strip()}
    return data if isinstance(data, dict) else {"message": str(data)}


def classify_http_error(resp: requests.Response) -> RemoteSyncError:
    body = _error_body(resp)
    code = str(body.get("code") or "")
    message = body.get("message") or body.get("error") or f"HTTP {resp.status_code}"
    status = resp.status_code

    if code == "23505" or status == 409 or any(m in message.lower() for m in _DUPLICATE_MARKERS):
        return DuplicateKeyError(message, status_code=status, code=code or None)

    if status in (408, 429) or status >= 500:
        return RemoteUnavailableError(message, status_code=status, code=code or None)

    # 401/403/404 y errores de PostgREST sobre la configuración (URL, RPC, JWT):
    # se corrigen sin tocar la orden
    if status in (401, 403, 404) or code.startswith(_CONFIG_PGRST_PREFIXES):
        return RemoteUnavailableError(message, status_code=status, code=code or None)

    if code[:2] in _PERMANENT_PG_CLASSES or status in (400, 422):
        return RemoteRejectedError(message, status_code=status, code=code or None)

    return RemoteSyncError(message, status_code=status, code=code or None)


class SupabaseOrderClient:
    """Cliente mínimo sobre la superficie REST (PostgREST) de Supabase."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        create_rpc: str = "create_pos_order_notary",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.create_rpc = create_rpc
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/rest/v1/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self.session.request(method, self._url(path), **kwargs)
        except requests.Timeout as e:
            raise RemoteTimeoutError(f"network timeout: {e}") from e
        except requests.RequestException as e:
            raise RemoteUnavailableError(f"network error: {e}") from e

        if resp.status_code >= 400:
            raise classify_http_error(resp)
        return resp

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """RPC de inserción. Devuelve {success, order_id, order_number, status}."""
        resp = self._request("POST", f"rpc/{self.create_rpc}", json={"p_payload": payload})
        result = resp.json() if resp.content else {}
        if not isinstance(result, dict) or not result.get("success"):
            message = (result or {}).get("message") if isinstance(result, dict) else None
            message = message or "RPC returned false success"
            if any(m in message.lower() for m in _DUPLICATE_MARKERS):
                raise DuplicateKeyError(message)
            raise RemoteRejectedError(message)
        return result

    def update_order(
        self,
        server_id: Optional[str],
        fields: Dict[str, Any],
        *,
        local_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        if server_id:
            params = {"id": f"eq.{server_id}"}
        elif local_id is not None:
            params = {"ref_local_id": f"eq.{local_id}"}
        else:
            raise RemoteRejectedError("Cannot sync update: missing target id (server_id or local id).")

        resp = self._request(
            "PATCH",
            "orders",
            params=params,
            json=fields,
            headers={"Prefer": "return=representation"},
        )
        rows = resp.json() if resp.content else []
        if not rows:
            raise RemoteNotFoundError(f"order not found on server ({params})", status_code=resp.status_code)
        return rows[0]

    def find_by_local_ref(self, local_id: int, idempotency_key: Optional[str] = None) -> Optional[Dict[str, Any]]:
        params = {
            "select": "id,order_number,status",
            "ref_local_id": f"eq.{local_id}",
            "limit": "1",
        }
        # Con varias terminales el id local se repite; la llave de idempotencia desambigua
        if idempotency_key:
            params["idempotency_key"] = f"eq.{idempotency_key}"

        resp = self._request("GET", "orders", params=params)
        rows = resp.json() if resp.content else []
        return rows[0] if rows else None

    def ping(self) -> bool:
        if not self.base_url:
            return False
        try:
            self._request("GET", "", timeout=min(self.timeout, 5.0))
        except RemoteSyncError as e:
            if e.status_code is not None and e.status_code < 500:
                # responde, aunque no le guste la petición: hay red
                return True
            logger.debug("Supabase no disponible: %s", e)
            return False
        return True
