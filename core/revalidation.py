"""Cache invalidation signal for the presentation layer.

After a successful mutation the services name the view paths whose cached
rendering is stale. Delivery is fire-and-forget: a failing listener is logged
and never changes the outcome of the mutation that emitted the signal.
"""

import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]

_listeners: List[Listener] = []


def register_listener(listener: Listener) -> None:
    if listener not in _listeners:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def clear_listeners() -> None:
    _listeners.clear()


def revalidate_path(path: str) -> None:
    logger.debug("revalidate %s", path)
    for listener in list(_listeners):
        try:
            listener(path)
        except Exception:
            logger.warning("revalidation listener %r failed for %s", listener, path, exc_info=True)


def revalidate_obra(obra_id: int, work_order_id: Optional[int] = None) -> None:
    revalidate_path(f"/obras/{obra_id}")
    revalidate_path(f"/obras/{obra_id}/ots")
    if work_order_id is not None:
        revalidate_path(f"/obras/{obra_id}/ots/{work_order_id}")
