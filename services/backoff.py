import random
from datetime import datetime, timedelta
from typing import Callable

BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000
MAX_JITTER_MS = 1000


def compute_backoff_ms(attempts: int, rand: Callable[[], float] = random.random) -> int:
    """
    Espera (ms) antes del siguiente intento:
        min(30000, 1000 * 2^n) + jitter[0, 1000)
    El jitter evita que todas las órdenes fallidas reintenten a la vez
    cuando vuelve la red.
    """
    n = max(0, int(attempts or 0))
    # 2^5 ya supera el tope; evita enteros enormes con n grande
    delay = MAX_DELAY_MS if n >= 5 else min(MAX_DELAY_MS, BASE_DELAY_MS * (2 ** n))
    return delay + int(rand() * MAX_JITTER_MS)


def next_attempt_at(
    last_attempt_at: datetime,
    attempts: int,
    rand: Callable[[], float] = random.random,
) -> datetime:
    return last_attempt_at + timedelta(milliseconds=compute_backoff_ms(attempts, rand))
