"""
In-process live update channel.

Publishers hand events to every connected subscriber without blocking: each
subscriber owns a bounded queue and an event is dropped for a subscriber whose
queue is full. Delivery is at-most-once with no replay, so clients re-fetch
full state whenever they (re)connect or see an event.
"""

import json
import logging
import queue
import threading

logger = logging.getLogger(__name__)

PICK_UPDATE = "pick:update"
PICK_FINALIZE = "pick:finalize"
SCORES_UPDATE = "scores:update"

DEFAULT_QUEUE_SIZE = 100
DEFAULT_HEARTBEAT_SECONDS = 25.0


def make_event(event_type, user_id=None, week=None, **extra):
    """Build the minimal event payload; consumers re-fetch instead of trusting it"""
    payload = {"userId": user_id, "week": week}
    payload.update(extra)
    return {"type": event_type, "payload": payload}


class Subscription:
    """One connected client"""

    def __init__(self, channel, maxsize):
        self._channel = channel
        self._queue = queue.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def offer(self, event):
        """Non-blocking enqueue; returns False when the event was dropped"""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def get(self, timeout=None):
        """Next event, or None if nothing arrived within timeout"""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self):
        if not self.closed:
            self.closed = True
            self._channel.unsubscribe(self)


class LiveChannel:
    def __init__(self, app=None):
        self._lock = threading.Lock()
        self._subscribers = set()
        self._listeners = []
        self.queue_size = DEFAULT_QUEUE_SIZE
        self.heartbeat_seconds = DEFAULT_HEARTBEAT_SECONDS

        if app:
            self.init_app(app)

    def init_app(self, app):
        self.queue_size = app.config.get("LIVE_QUEUE_SIZE", DEFAULT_QUEUE_SIZE)
        self.heartbeat_seconds = app.config.get(
            "LIVE_HEARTBEAT_SECONDS", DEFAULT_HEARTBEAT_SECONDS
        )
        app.extensions["live_channel"] = self

    @property
    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)

    def subscribe(self):
        subscription = Subscription(self, self.queue_size)
        with self._lock:
            self._subscribers.add(subscription)
        logger.debug(f"Live subscriber added ({self.subscriber_count} connected)")
        return subscription

    def unsubscribe(self, subscription):
        with self._lock:
            self._subscribers.discard(subscription)
        logger.debug(f"Live subscriber removed ({self.subscriber_count} connected)")

    def add_listener(self, callback):
        """Register a callable invoked synchronously for every published event"""
        with self._lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def remove_listener(self, callback):
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def prune(self):
        """Drop subscribers that have gone away"""
        with self._lock:
            dead = {s for s in self._subscribers if s.closed}
            self._subscribers -= dead
        return len(dead)

    def publish(self, event):
        """Fan an event out; never raises and never blocks on a slow client"""
        with self._lock:
            subscribers = list(self._subscribers)
            listeners = list(self._listeners)

        delivered = 0
        for subscription in subscribers:
            if subscription.closed:
                continue
            if subscription.offer(event):
                delivered += 1
            else:
                logger.debug(f"Dropped {event.get('type')} for a full live subscriber")

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Live listener failed for {event.get('type')}: {e}")

        self.prune()
        return delivered

    def sse_stream(self, subscription, heartbeat_seconds=None):
        """
        Server-Sent-Events framing for one subscription.

        Yields a connect comment, one "data:" frame per event, and a comment
        heartbeat whenever the connection has been idle for heartbeat_seconds.
        """
        interval = heartbeat_seconds or self.heartbeat_seconds
        try:
            yield ": connected\n\n"
            while not subscription.closed:
                event = subscription.get(timeout=interval)
                if event is None:
                    self.prune()
                    yield ": ping\n\n"
                    continue
                yield f"data: {json.dumps(event, separators=(',', ':'))}\n\n"
        finally:
            subscription.close()
