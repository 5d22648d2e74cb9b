import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """
    Sondea el backend cada `interval_s` segundos y avisa a los listeners
    cuando la red vuelve (transición offline -> online).
    """

    def __init__(self, probe: Callable[[], bool], interval_s: float = 15.0, online: bool = True):
        self._probe = probe
        self.interval_s = interval_s
        self._online = online
        self._listeners: List[Callable[[], object]] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    def is_online(self) -> bool:
        return self._online

    def add_listener(self, fn: Callable[[], object]) -> None:
        with self._lock:
            if fn not in self._listeners:
                self._listeners.append(fn)

    def remove_listener(self, fn: Callable[[], object]) -> None:
        with self._lock:
            if fn in self._listeners:
                self._listeners.remove(fn)

    def check(self) -> bool:
        """Un sondeo. Devuelve el estado actual y dispara listeners si hubo reconexión."""
        try:
            online = bool(self._probe())
        except Exception:
            logger.exception("Sondeo de conectividad falló")
            online = False

        was_online = self._online
        self._online = online

        if online and not was_online:
            logger.info("Red restablecida: disparando sincronización")
            with self._lock:
                listeners = list(self._listeners)
            for fn in listeners:
                try:
                    fn()
                except Exception:
                    logger.exception("Listener de reconexión falló")
        elif was_online and not online:
            logger.warning("Sin conexión con el backend")
        return online

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="connectivity-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            self.check()
