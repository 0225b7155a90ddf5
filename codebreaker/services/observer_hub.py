"""
Service: observer_hub.py
- Canaux de notification typés (game, guess, solved, error), indépendants de toute UI.
- subscribe(channel, callback) rejoue la dernière valeur connue puis livre chaque mise à jour.
- Renvoie un handle `Subscription` (unsubscribe() pour se détacher).
- Snapshots immuables des abonnés pour éviter "list changed size during iteration".
- Un observateur qui lève une exception est journalisé ; les autres sont quand même servis.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Observer = Callable[[Any], None]


class Channel(str, Enum):
    GAME = "game"      # Game courant (None après suppression)
    GUESS = "guess"    # dernière Guess acceptée
    SOLVED = "solved"  # drapeau résolu (bool)
    ERROR = "error"    # Failure classifié


@dataclass(eq=False)
class Subscription:
    hub: "ObserverHub" = field(repr=False)
    channel: Channel
    callback: Observer = field(repr=False)
    active: bool = True

    def unsubscribe(self) -> None:
        """Détache l'observateur (idempotent)."""
        if self.active:
            self.hub._remove(self)
            self.active = False


@dataclass
class ObserverHub:
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    # channel -> abonnés dans l'ordre d'inscription
    _subscriptions: Dict[Channel, List[Subscription]] = field(default_factory=dict, init=False)
    # channel -> dernière valeur publiée (absente si jamais publiée ou effacée)
    _last: Dict[Channel, Any] = field(default_factory=dict, init=False)

    def subscribe(self, channel: Channel, callback: Observer) -> Subscription:
        """Inscrit `callback` ; rejoue immédiatement la valeur courante si elle existe."""
        channel = Channel(channel)
        with self._lock:
            subscription = Subscription(hub=self, channel=channel, callback=callback)
            self._subscriptions.setdefault(channel, []).append(subscription)
            if channel in self._last:
                self._deliver(subscription, self._last[channel])
        return subscription

    def publish(self, channel: Channel, value: Any) -> int:
        """Mémorise `value` et la livre à tous les abonnés ; renvoie le nombre de livraisons réussies."""
        with self._lock:
            self._last[channel] = value
            targets = list(self._subscriptions.get(channel, ()))
        delivered = 0
        for subscription in targets:
            if subscription.active and self._deliver(subscription, value):
                delivered += 1
        logger.debug("Published notification", extra={"channel": channel.value, "delivered": delivered})
        return delivered

    def clear(self, channel: Channel) -> None:
        """Oublie la dernière valeur (plus de rejeu) sans notifier."""
        with self._lock:
            self._last.pop(channel, None)

    def has_value(self, channel: Channel) -> bool:
        with self._lock:
            return channel in self._last

    def last(self, channel: Channel, default: Any = None) -> Any:
        with self._lock:
            return self._last.get(channel, default)

    def subscriber_count(self, channel: Channel) -> int:
        with self._lock:
            return len(self._subscriptions.get(channel, ()))

    # ---------- interne ----------
    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            bucket = self._subscriptions.get(subscription.channel)
            if bucket and subscription in bucket:
                bucket.remove(subscription)

    @staticmethod
    def _deliver(subscription: Subscription, value: Any) -> bool:
        try:
            subscription.callback(value)
            return True
        except Exception:
            logger.exception("Observer failed", extra={"channel": subscription.channel.value})
            return False
