"""
Subscription Registry - Key-Scoped Change Notification

🔄 Pub/Sub for Cache Keys:
Maps cache keys to the listeners interested in them. Publishing is
synchronous and runs to completion: every listener registered for the key is
called, in subscription order, before ``publish`` returns.

A by-id key also reaches every subscribed query key of the same table, since
any query may include the changed row.
"""

import itertools
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from ..persistence.cache.keys import TableKey

logger = logging.getLogger(__name__)

Listener = Callable[['TableKey'], Any]
Unsubscribe = Callable[[], None]

_subscription_ids = itertools.count(1)


@dataclass
class RegistryMetrics:
    """Metrics tracking for registry operations"""
    publishes: int = 0
    deliveries: int = 0
    subscriptions_created: int = 0
    listener_errors: int = 0
    start_time: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publishes": self.publishes,
            "deliveries": self.deliveries,
            "subscriptions_created": self.subscriptions_created,
            "listener_errors": self.listener_errors,
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds()
        }


class Subscription:
    """One listener's interest in one key"""

    def __init__(self, key: 'TableKey', listener: Listener):
        self.subscription_id = next(_subscription_ids)
        self.key = key
        self.listener = listener
        self.disabled = False
        self.created_at = datetime.now()
        self.notifications = 0

    def __repr__(self):
        return f"Subscription({self.subscription_id}, {self.key})"


class SubscriptionRegistry:
    """
    Registry of listeners per cache key.

    Listener errors are isolated: they are logged and counted, and never reach
    the writer that triggered the publish.
    """

    def __init__(self):
        # OrderedDict keeps query fan-out in first-subscription order
        self._subscriptions: 'OrderedDict[TableKey, List[Subscription]]' = OrderedDict()
        self.metrics = RegistryMetrics()

    def subscribe(self, key: 'TableKey', listener: Listener) -> Unsubscribe:
        """
        Register ``listener`` for ``key``.

        Returns:
            A callable removing the subscription; safe to call any number of times
        """
        subscription = Subscription(key, listener)
        self._subscriptions.setdefault(key, []).append(subscription)
        self.metrics.subscriptions_created += 1

        def unsubscribe():
            self._remove(subscription)

        return unsubscribe

    def _remove(self, subscription: Subscription):
        if subscription.disabled:
            return
        subscription.disabled = True
        listeners = self._subscriptions.get(subscription.key)
        if listeners is None:
            return
        if subscription in listeners:
            listeners.remove(subscription)
        if not listeners:
            del self._subscriptions[subscription.key]

    def publish(self, key: 'TableKey') -> int:
        """
        Notify the listeners of ``key``; by-id keys also notify same-table queries.

        Returns:
            Number of listeners called
        """
        targets = list(self._subscriptions.get(key, ()))
        if not key.is_query:
            for other_key, listeners in self._subscriptions.items():
                if other_key.is_query and other_key.table == key.table:
                    targets.extend(listeners)
        return self._deliver(targets)

    def publish_table(self, table: str) -> int:
        """Notify every listener of every key of ``table``"""
        targets = []
        for key, listeners in self._subscriptions.items():
            if key.table == table:
                targets.extend(listeners)
        return self._deliver(targets)

    def _deliver(self, targets: List[Subscription]) -> int:
        self.metrics.publishes += 1
        delivered = 0
        for subscription in targets:
            # May have been removed by an earlier listener of this publish
            if subscription.disabled:
                continue
            try:
                subscription.listener(subscription.key)
                subscription.notifications += 1
                delivered += 1
            except Exception:
                self.metrics.listener_errors += 1
                logger.exception(f"Listener for {subscription.key} failed")
        self.metrics.deliveries += delivered
        return delivered

    def subscription_count(self, key: Optional['TableKey'] = None) -> int:
        if key is not None:
            return len(self._subscriptions.get(key, ()))
        return sum(len(listeners) for listeners in self._subscriptions.values())

    def active_keys(self, table: Optional[str] = None) -> List['TableKey']:
        return [key for key in self._subscriptions if table is None or key.table == table]

    def get_metrics(self) -> Dict[str, Any]:
        metrics = self.metrics.to_dict()
        metrics.update({
            "active_keys": len(self._subscriptions),
            "active_subscriptions": self.subscription_count()
        })
        return metrics

    def clear(self):
        for listeners in self._subscriptions.values():
            for subscription in listeners:
                subscription.disabled = True
        self._subscriptions.clear()


__all__ = ["SubscriptionRegistry", "Subscription", "RegistryMetrics", "Listener", "Unsubscribe"]
