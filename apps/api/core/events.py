"""
Change feed for table-level notifications.

The store gateway publishes one event per committed row change; subscribers
register a table plus a column filter and get called back, mirroring the
realtime channel of a hosted database.
"""
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @property
    def record(self) -> Dict[str, Any]:
        return self.new if self.new is not None else (self.old or {})


ChangeHandler = Callable[[ChangeEvent], None]


@dataclass
class _Subscription:
    table: str
    filter: Dict[str, Any]
    handler: ChangeHandler

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if not self.filter:
            return True
        for record in (event.new, event.old):
            if record is not None and all(record.get(k) == v for k, v in self.filter.items()):
                return True
        return False


@dataclass
class ChangeFeed:
    """In-process publish/subscribe registry keyed by table."""

    _subscriptions: Dict[int, _Subscription] = field(default_factory=dict)
    _ids: count = field(default_factory=count)

    def subscribe(
        self,
        table: str,
        filter: Optional[Mapping[str, Any]],
        on_change: ChangeHandler,
    ) -> Callable[[], None]:
        """
        Subscribe to changes on a table.

        Args:
            table: Table name (e.g. 'workout_sets')
            filter: Column -> value pairs the new or old row must match
            on_change: Called with the ChangeEvent

        Returns:
            An unsubscribe callable; calling it more than once is harmless.
        """
        sub_id = next(self._ids)
        self._subscriptions[sub_id] = _Subscription(table, dict(filter or {}), on_change)
        logger.debug(f"Subscribed to {table} changes with filter {filter}")

        def unsubscribe() -> None:
            self._subscriptions.pop(sub_id, None)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        for sub in list(self._subscriptions.values()):
            if not sub.matches(event):
                continue
            try:
                sub.handler(event)
            except Exception as e:
                logger.error(f"Error in change handler for {event.table}: {e}", exc_info=True)

    def subscriber_count(self, table: Optional[str] = None) -> int:
        if table is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions.values() if s.table == table)


# Process-wide feed used by the HTTP app's store gateway.
default_feed = ChangeFeed()
