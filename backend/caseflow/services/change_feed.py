"""
Change notification hub for the Document Store.

Every committed write is announced here with its collection name. Local
listeners (store subscriptions, WebSocket bridges) are called in-process;
when enabled, the announcement is also published on Redis so other API
processes can re-query their own subscriptions.

Redis is optional: if it cannot be reached the feed logs a warning and
keeps working in-process only.
"""

import json
import logging
import threading
import uuid
from typing import Callable, Dict, List, Optional

import redis
from redis.exceptions import RedisError

from ..core.config import settings


logger = logging.getLogger(__name__)

Listener = Callable[[str, Optional[str]], None]


class ChangeFeed:
    """
    Thread-safe registry of change listeners keyed by collection.

    Listeners receive ``(collection, doc_id)`` after the write has been
    committed. A listener that raises is logged and skipped; it never
    affects the writer or other listeners.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        channel_prefix: str = "caseflow:changes",
        enabled: bool = False,
    ):
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.RLock()
        self._channel_prefix = channel_prefix
        self._origin = uuid.uuid4().hex
        self._redis: Optional[redis.Redis] = None
        self._relay_thread = None
        self._pubsub = None

        if enabled and redis_url:
            self._connect(redis_url)

    @classmethod
    def from_settings(cls) -> "ChangeFeed":
        return cls(
            redis_url=settings.redis_url,
            channel_prefix=settings.change_feed_channel_prefix,
            enabled=settings.change_feed_enabled,
        )

    def _connect(self, redis_url: str) -> None:
        """Establish the Redis connection used for cross-process fan-out."""
        try:
            self._redis = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            self._redis.ping()
            logger.info("Change feed connected to Redis")
        except RedisError as e:
            logger.warning(f"Redis connection failed: {e}. Change feed is in-process only.")
            self._redis = None

    @property
    def mode(self) -> str:
        """``redis`` when publishing cross-process, otherwise ``local``."""
        return "redis" if self._redis is not None else "local"

    # =========================================================================
    # Listener registry
    # =========================================================================

    def listen(self, collection: str, listener: Listener) -> Callable[[], None]:
        """
        Register ``listener`` for writes to ``collection``.

        Returns:
            A function that removes the listener. Calling it twice is a no-op.
        """
        with self._lock:
            self._listeners.setdefault(collection, []).append(listener)

        def remove() -> None:
            with self._lock:
                listeners = self._listeners.get(collection)
                if listeners and listener in listeners:
                    listeners.remove(listener)
                    if not listeners:
                        self._listeners.pop(collection, None)

        return remove

    def listener_count(self, collection: str) -> int:
        with self._lock:
            return len(self._listeners.get(collection, []))

    # =========================================================================
    # Notification
    # =========================================================================

    def notify(self, collection: str, doc_id: Optional[str] = None) -> None:
        """Announce a committed write to local listeners and, if enabled, Redis."""
        self._dispatch(collection, doc_id)
        self._publish(collection, doc_id)

    def _dispatch(self, collection: str, doc_id: Optional[str]) -> None:
        with self._lock:
            targets = list(self._listeners.get(collection, []))
        for listener in targets:
            try:
                listener(collection, doc_id)
            except Exception:
                logger.exception(f"Change listener failed for collection {collection}")

    def _publish(self, collection: str, doc_id: Optional[str]) -> None:
        if self._redis is None:
            return
        message = json.dumps({"origin": self._origin, "collection": collection, "docId": doc_id})
        try:
            self._redis.publish(f"{self._channel_prefix}:{collection}", message)
        except RedisError as e:
            logger.warning(f"Change feed publish failed for {collection}: {e}")

    # =========================================================================
    # Cross-process relay
    # =========================================================================

    def start_relay(self) -> bool:
        """
        Start relaying changes published by other processes to local listeners.

        Returns:
            True if the relay is running, False when Redis is not in use.
        """
        if self._redis is None:
            return False
        if self._relay_thread is not None:
            return True

        try:
            self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
            self._pubsub.psubscribe(**{f"{self._channel_prefix}:*": self._on_remote_message})
            self._relay_thread = self._pubsub.run_in_thread(sleep_time=0.5, daemon=True)
        except RedisError as e:
            logger.warning(f"Change feed relay could not start: {e}")
            self._pubsub = None
            return False

        logger.info("Change feed relay started")
        return True

    def _on_remote_message(self, message: dict) -> None:
        try:
            payload = json.loads(message["data"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Ignoring malformed change feed message")
            return
        if payload.get("origin") == self._origin:
            return
        self._dispatch(payload.get("collection", ""), payload.get("docId"))

    def close(self) -> None:
        """Stop the relay and drop all listeners."""
        if self._relay_thread is not None:
            self._relay_thread.stop()
            self._relay_thread = None
        if self._pubsub is not None:
            try:
                self._pubsub.close()
            except RedisError as e:
                logger.warning(f"Error closing change feed subscription: {e}")
            self._pubsub = None
        with self._lock:
            self._listeners.clear()
