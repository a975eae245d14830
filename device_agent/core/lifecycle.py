# device_agent/core/lifecycle.py
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

EVENT_DATA = "data"
EVENT_ERROR = "error"


class LifecycleManager:
    """
    Synchronous observer channel for one run. Handlers run in registration
    order on the agent's thread, so notifications arrive in round order.
    """

    def __init__(self):
        self._registry: Dict[str, List[Callable]] = {}

    def register(self, event_name: str, handler: Callable):
        self._registry.setdefault(event_name, []).append(handler)

    def emit(self, event_name: str, payload: Any):
        handlers = self._registry.get(event_name, [])
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("[Lifecycle] Error in %s handler %r", event_name, handler)
