"""Evento de liquidacao em processo e espera limitada por pagamento.

O webhook (ou a reconciliacao) publica ``broker.publish(request_id)``; quem
esta esperando acorda na hora em vez de aguardar o proximo ciclo de polling.
O polling continua como rede de seguranca, limitado por ``pix.expires_at``.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("portal.payments")

OUTCOME_SETTLED = "settled"
OUTCOME_UNDER_REVIEW = "under_review"
OUTCOME_EXPIRED = "expired"
OUTCOME_TIMEOUT = "timeout"
OUTCOME_DISCONNECTED = "disconnected"


class SettlementBroker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._waiters: dict[str, set[tuple[asyncio.AbstractEventLoop, asyncio.Event]]] = {}

    def subscribe(self, request_id: str) -> asyncio.Event:
        event = asyncio.Event()
        entry = (asyncio.get_running_loop(), event)
        with self._lock:
            self._waiters.setdefault(request_id, set()).add(entry)
        return event

    def unsubscribe(self, request_id: str, event: asyncio.Event) -> None:
        with self._lock:
            waiters = self._waiters.get(request_id)
            if not waiters:
                return
            for entry in [item for item in waiters if item[1] is event]:
                waiters.discard(entry)
            if not waiters:
                self._waiters.pop(request_id, None)

    def subscriber_count(self, request_id: str) -> int:
        with self._lock:
            return len(self._waiters.get(request_id, ()))

    def publish(self, request_id: str) -> int:
        """Acorda os assinantes. Pode ser chamado de qualquer thread."""
        with self._lock:
            waiters = list(self._waiters.get(request_id, ()))
        for loop, event in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(event.set)
        return len(waiters)


broker = SettlementBroker()


async def wait_for_settlement(
    request_id: str,
    current_outcome: Callable[[], Optional[str]],
    expires_at: Optional[datetime],
    poll_interval: float = 2.0,
    timeout: float = 60.0,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    source: Optional[SettlementBroker] = None,
) -> str:
    """``current_outcome`` roda em thread (acessa o banco) e devolve o desfecho ou None."""
    source = source or broker
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    event = source.subscribe(request_id)
    try:
        while True:
            outcome = await asyncio.to_thread(current_outcome)
            if outcome:
                return outcome
            if expires_at is not None and datetime.utcnow() >= expires_at:
                return OUTCOME_EXPIRED
            remaining = deadline - loop.time()
            if remaining <= 0:
                return OUTCOME_TIMEOUT
            if is_disconnected is not None and await is_disconnected():
                return OUTCOME_DISCONNECTED
            try:
                await asyncio.wait_for(event.wait(), timeout=min(poll_interval, remaining))
            except asyncio.TimeoutError:
                pass
            event.clear()
    finally:
        source.unsubscribe(request_id, event)
        logger.debug("settlement wait released request=%s", request_id)
