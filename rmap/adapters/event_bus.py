from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..utils.log import log_line

Handler = Callable[[Dict[str, Any]], None]
Transport = Callable[[str, Dict[str, Any]], None]

class EventBus:
    """
    Bidirectional event link to the server.
    Inbound events are dispatched to handlers in arrival order; outbound
    requests go to the transport (if any) and are always kept in the outbox.
    """

    def __init__(self, transport: Optional[Transport] = None):
        self.transport = transport
        self.outbox: List[Tuple[str, Dict[str, Any]]] = []
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        self._handlers[event].append(handler)

        def _off():
            if handler in self._handlers.get(event, []):
                self._handlers[event].remove(handler)
        return _off

    def deliver(self, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Dispatch one inbound event. Returns the number of handlers that ran."""
        handlers = list(self._handlers.get(event, []))
        if not handlers:
            log_line(f"BUS | unhandled inbound event={event}", "DEBUG")
            return 0
        for h in handlers:
            h(payload or {})
        return len(handlers)

    def push(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        payload = dict(payload or {})
        self.outbox.append((event, payload))
        if self.transport is not None:
            self.transport(event, payload)

    def sent(self, event: str) -> List[Dict[str, Any]]:
        return [p for e, p in self.outbox if e == event]

    def clear_handlers(self) -> None:
        self._handlers.clear()
