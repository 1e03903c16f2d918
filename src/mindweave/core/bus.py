"""Synchronous typed publish/subscribe channel for store changes."""

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from mindweave.models.events import Event, EventKind, EventSource

Handler = Callable[[Event], None]


@dataclass(frozen=True, eq=False)
class _Subscription:
    kind: EventKind | None
    handler: Handler
    ignore_source: EventSource | None


class ChangeBus:
    """Fan-out of change events to independent views.

    Delivery is synchronous and FIFO per subscriber: ``emit`` returns only
    after every current subscriber has been called. No buffering, no retry.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(
        self,
        kind: EventKind | None,
        handler: Handler,
        *,
        ignore_source: EventSource | None = None,
    ) -> Callable[[], None]:
        """Register ``handler`` for one event kind (or all kinds when None).

        Views pass their own identity as ``ignore_source`` so they never see
        the echo of changes they caused.

        Returns:
            A callable that removes this subscription.
        """
        sub = _Subscription(kind=kind, handler=handler, ignore_source=ignore_source)
        self._subscriptions.append(sub)

        def _unsubscribe() -> None:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return _unsubscribe

    def unsubscribe(self, handler: Handler) -> None:
        """Remove every subscription of ``handler``."""
        self._subscriptions = [s for s in self._subscriptions if s.handler != handler]

    def emit(self, event: Event) -> None:
        # Snapshot so handlers may (un)subscribe while we deliver.
        for sub in list(self._subscriptions):
            if sub.kind is not None and sub.kind != event.kind:
                continue
            if sub.ignore_source is not None and event.source == sub.ignore_source:
                continue
            try:
                sub.handler(event)
            except Exception:
                logger.exception("Subscriber failed while handling {}", event.kind)

    def subscriber_count(self) -> int:
        return len(self._subscriptions)
