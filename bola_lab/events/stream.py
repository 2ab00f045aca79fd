"""
Event Stream Publisher

Pushes security events to connected subscribers:

- on subscribe, one ``{"type": "initial", "logs": [...], "offset": n}`` message
  with the last N persisted events (or, when the subscriber presents a
  previously recorded offset, every event appended since that offset);
- afterwards one ``{"type": "new", "log": {...}, "offset": n}`` message per
  event, in log order.

Every subscription tails the security log by byte offset and only consumes
complete lines, so reads are safe while the emitter appends. The cursor moves
past an event only after it was delivered (at-least-once); a failed delivery
is retried on the next poll, and after ``max_failures`` consecutive failures
the subscription is closed without affecting any other subscriber. The
offset is clamped to 0 when the file shrank or was replaced by rotation.

The transport is Flask-SocketIO (namespace ``/events``, event ``message``).
"""

import json
import os
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import structlog
from flask import request
from flask_socketio import ConnectionRefusedError, Namespace, SocketIO

from bola_lab.auth.exceptions import AuthenticationError, StreamDeliveryError
from bola_lab.auth.identity import IdentityResolver, extract_bearer_token
from bola_lab.monitoring.metrics import stream_metrics

logger = structlog.get_logger(__name__)

STREAM_NAMESPACE = '/events'
STREAM_EVENT = 'message'

_READ_BLOCK_SIZE = 64 * 1024

Message = Dict[str, Any]
SendFunction = Callable[[Message], None]


@dataclass
class TailBatch:
    """Complete records read from the log with the offset just past each one."""

    entries: List[Tuple[Dict[str, Any], int]] = field(default_factory=list)
    offset: int = 0
    inode: Optional[int] = None
    reset: bool = False

    @property
    def records(self) -> List[Dict[str, Any]]:
        return [record for record, _ in self.entries]


def _parse_line(raw: bytes, path: Path) -> Optional[Dict[str, Any]]:
    line = raw.strip()
    if not line:
        return None
    try:
        record = json.loads(line.decode('utf-8'))
    except (UnicodeDecodeError, ValueError):
        logger.debug("Skipping malformed event log line", path=str(path), length=len(line))
        return None
    if not isinstance(record, dict):
        logger.debug("Skipping non-object event log line", path=str(path))
        return None
    return record


class LogTailer:
    """Offset-based reader over an append-only JSON-lines log."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read_since(self, offset: int, inode: Optional[int] = None) -> TailBatch:
        """
        Read the complete lines after ``offset``.

        When the file is missing the batch is empty at offset 0. When it is
        shorter than ``offset`` or its inode differs from ``inode``, reading
        restarts at 0 and ``reset`` is set.
        """
        try:
            handle = self.path.open('rb')
        except FileNotFoundError:
            return TailBatch(offset=0, inode=None, reset=offset > 0)

        with handle:
            stat = os.fstat(handle.fileno())
            reset = False
            if offset > stat.st_size or (inode is not None and stat.st_ino != inode):
                reset = offset > 0 or inode is not None
                offset = 0
            handle.seek(offset)
            data = handle.read(stat.st_size - offset)

        complete = data.rfind(b'\n') + 1
        entries = []
        position = offset
        for raw in data[:complete].splitlines(keepends=True):
            position += len(raw)
            record = _parse_line(raw, self.path)
            if record is not None:
                entries.append((record, position))

        return TailBatch(entries=entries, offset=offset + complete, inode=stat.st_ino, reset=reset)

    def read_backlog(self, limit: int) -> TailBatch:
        """Read the last ``limit`` valid records, scanning backwards from the end."""
        try:
            handle = self.path.open('rb')
        except FileNotFoundError:
            return TailBatch()

        with handle:
            stat = os.fstat(handle.fileno())
            position = stat.st_size
            data = b''
            while position > 0 and data.count(b'\n') <= limit:
                step = min(_READ_BLOCK_SIZE, position)
                position -= step
                handle.seek(position)
                data = handle.read(step) + data

        complete = data.rfind(b'\n') + 1
        lines = data[:complete].splitlines(keepends=True)
        start = position
        if position > 0 and lines:
            # first line may be the tail of an earlier record
            start += len(lines[0])
            lines = lines[1:]

        entries = []
        cursor = start
        for raw in lines:
            cursor += len(raw)
            record = _parse_line(raw, self.path)
            if record is not None:
                entries.append((record, cursor))

        return TailBatch(
            entries=entries[-limit:] if limit > 0 else [],
            offset=position + complete,
            inode=stat.st_ino
        )

    def read_recent(self, limit: int) -> List[Dict[str, Any]]:
        return self.read_backlog(limit).records


class SubscriptionState(Enum):
    CONNECTING = 'connecting'
    STREAMING = 'streaming'
    CLOSED = 'closed'


class StreamSubscription:
    """
    Delivery state of one subscriber: its cursor into the log and its
    lifecycle ``CONNECTING -> STREAMING -> CLOSED``.

    Args:
        subscription_id: Transport session id
        send: Delivers one message; raising means the delivery failed
        tailer: Reader over the security log
        offset: Resume point recorded by the subscriber, if any
        backlog_size: Events replayed on a fresh subscribe
        max_failures: Consecutive failed deliveries tolerated before closing
    """

    def __init__(
        self,
        subscription_id: str,
        send: SendFunction,
        tailer: LogTailer,
        offset: Optional[int] = None,
        backlog_size: int = 20,
        max_failures: int = 3
    ):
        self.subscription_id = subscription_id
        self.send = send
        self.tailer = tailer
        self.resume_offset = offset
        self.backlog_size = backlog_size
        self.max_failures = max_failures
        self.state = SubscriptionState.CONNECTING
        self.offset = 0
        self.inode: Optional[int] = None
        self.failures = 0
        self._lock = threading.Lock()

    @property
    def is_closed(self) -> bool:
        return self.state is SubscriptionState.CLOSED

    def _deliver(self, message: Message) -> bool:
        try:
            self.send(message)
        except Exception as e:
            self.failures += 1
            stream_metrics['delivery_failures_total'].labels(action='retry').inc()
            logger.warning(
                "Stream delivery failed",
                subscription_id=self.subscription_id,
                failures=self.failures,
                error=str(e)
            )
            if self.failures >= self.max_failures:
                self._close()
                raise StreamDeliveryError(
                    f"Delivery to subscription {self.subscription_id} failed "
                    f"{self.failures} times: {e}",
                    subscription_id=self.subscription_id
                ) from e
            return False

        self.failures = 0
        stream_metrics['deliveries_total'].labels(message_type=message['type']).inc()
        return True

    def start(self) -> bool:
        """
        Send the initial batch and switch to STREAMING.

        Returns False when the delivery failed; the next ``poll`` retries it.
        """
        with self._lock:
            if self.state is not SubscriptionState.CONNECTING:
                return self.state is SubscriptionState.STREAMING

            if self.resume_offset is not None:
                batch = self.tailer.read_since(max(int(self.resume_offset), 0))
            else:
                batch = self.tailer.read_backlog(self.backlog_size)

            message = {'type': 'initial', 'logs': batch.records, 'offset': batch.offset}
            if not self._deliver(message):
                return False

            self.offset = batch.offset
            self.inode = batch.inode
            self.state = SubscriptionState.STREAMING
            stream_metrics['active_subscriptions'].inc()
            logger.info(
                "Stream subscription started",
                subscription_id=self.subscription_id,
                backlog=len(batch.entries),
                offset=self.offset,
                resumed=self.resume_offset is not None
            )
            return True

    def poll(self) -> int:
        """
        Deliver the events appended since the cursor.

        Returns:
            Number of events delivered

        Raises:
            StreamDeliveryError: When the subscription was closed after
                repeated delivery failures
        """
        if self.state is SubscriptionState.CONNECTING:
            return 1 if self.start() else 0
        if self.state is SubscriptionState.CLOSED:
            return 0

        with self._lock:
            batch = self.tailer.read_since(self.offset, self.inode)
            if batch.reset:
                logger.info(
                    "Event log rotated or truncated, restarting from offset 0",
                    subscription_id=self.subscription_id
                )
                self.offset = 0
            self.inode = batch.inode

            delivered = 0
            for record, end_offset in batch.entries:
                if not self._deliver({'type': 'new', 'log': record, 'offset': end_offset}):
                    return delivered
                self.offset = end_offset
                delivered += 1

            # trailing malformed lines are consumed too
            self.offset = batch.offset
            return delivered

    def _close(self) -> None:
        if self.state is SubscriptionState.STREAMING:
            stream_metrics['active_subscriptions'].dec()
        self.state = SubscriptionState.CLOSED

    def close(self) -> None:
        with self._lock:
            self._close()


class EventStreamPublisher:
    """
    Fan-out of the security log to every subscription.

    Args:
        log_path: Security event log
        backlog_size: Events replayed to a new subscriber
        poll_interval: Seconds between tail polls
        max_failures: Consecutive delivery failures before a subscriber is dropped
    """

    def __init__(
        self,
        log_path: Union[str, Path],
        backlog_size: int = 20,
        poll_interval: float = 0.5,
        max_failures: int = 3
    ):
        self.tailer = LogTailer(log_path)
        self.backlog_size = backlog_size
        self.poll_interval = poll_interval
        self.max_failures = max_failures
        self._subscriptions: Dict[str, StreamSubscription] = {}
        self._lock = threading.Lock()
        self._running = False

    @property
    def subscriptions(self) -> List[StreamSubscription]:
        with self._lock:
            return list(self._subscriptions.values())

    def subscribe(
        self,
        send: SendFunction,
        offset: Optional[int] = None,
        subscription_id: Optional[str] = None
    ) -> StreamSubscription:
        subscription = StreamSubscription(
            subscription_id or uuid.uuid4().hex,
            send,
            self.tailer,
            offset=offset,
            backlog_size=self.backlog_size,
            max_failures=self.max_failures
        )
        with self._lock:
            self._subscriptions[subscription.subscription_id] = subscription
        try:
            subscription.start()
        except StreamDeliveryError:
            self.unsubscribe(subscription.subscription_id)
            raise
        return subscription

    def unsubscribe(self, subscription_id: str) -> None:
        with self._lock:
            subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is not None:
            subscription.close()
            logger.info("Stream subscription closed", subscription_id=subscription_id)

    def poll_once(self) -> int:
        """Poll every subscription; a failing subscriber never affects the others."""
        delivered = 0
        for subscription in self.subscriptions:
            try:
                delivered += subscription.poll()
            except StreamDeliveryError as e:
                stream_metrics['delivery_failures_total'].labels(action='dropped').inc()
                logger.warning(
                    "Dropping stream subscription after repeated failures",
                    subscription_id=e.subscription_id,
                    error_id=e.error_id
                )
                self.unsubscribe(subscription.subscription_id)
            except OSError as e:
                logger.error(
                    "Event log read failed",
                    subscription_id=subscription.subscription_id,
                    error=str(e)
                )
        return delivered

    def run(self, sleep: Callable[[float], Any]) -> None:
        """Poll until ``stop`` is called; ``sleep`` must cooperate with the transport."""
        logger.info("Event stream publisher started", poll_interval=self.poll_interval)
        while self._running:
            self.poll_once()
            sleep(self.poll_interval)
        logger.info("Event stream publisher stopped")

    def start_background(self, socketio: SocketIO) -> bool:
        """Start the polling loop as a Flask-SocketIO background task, once."""
        with self._lock:
            if self._running:
                return False
            self._running = True
        socketio.start_background_task(self.run, socketio.sleep)
        return True

    def stop(self) -> None:
        self._running = False
        for subscription in self.subscriptions:
            self.unsubscribe(subscription.subscription_id)

    def recent(self, limit: int) -> List[Dict[str, Any]]:
        return self.tailer.read_recent(limit)


def _parse_offset(raw: Any) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        offset = int(raw)
    except (TypeError, ValueError):
        return None
    return offset if offset >= 0 else None


class EventStreamNamespace(Namespace):
    """
    Socket.IO namespace serving the event stream.

    Connect payload: ``{"token": "<jwt>", "offset": <int, optional>}``; the
    token may also come from an ``Authorization: Bearer`` header or a
    ``token`` query parameter.
    """

    def __init__(
        self,
        publisher: EventStreamPublisher,
        identity_resolver: IdentityResolver,
        require_admin: bool = True,
        autostart: bool = True,
        namespace: str = STREAM_NAMESPACE
    ):
        super().__init__(namespace)
        self.publisher = publisher
        self.identity_resolver = identity_resolver
        self.require_admin = require_admin
        self.autostart = autostart

    def on_connect(self, auth=None):
        auth = auth if isinstance(auth, dict) else {}
        token = (
            auth.get('token') or
            extract_bearer_token(request.headers.get('Authorization')) or
            request.args.get('token')
        )
        try:
            subject = self.identity_resolver.resolve(token)
        except AuthenticationError as e:
            logger.warning("Stream connection rejected", reason=e.message)
            raise ConnectionRefusedError(e.user_message)

        if self.require_admin and not subject.is_admin:
            logger.warning("Stream connection rejected", reason="admin required", subject_id=subject.id)
            raise ConnectionRefusedError('Admin role required')

        sid = request.sid
        offset = _parse_offset(auth.get('offset', request.args.get('offset')))

        def send(message: Message) -> None:
            self.socketio.emit(STREAM_EVENT, message, to=sid, namespace=self.namespace)

        try:
            self.publisher.subscribe(send, offset=offset, subscription_id=sid)
        except StreamDeliveryError as e:
            raise ConnectionRefusedError(e.user_message)

        if self.autostart:
            self.publisher.start_background(self.socketio)

    def on_disconnect(self, *args):
        self.publisher.unsubscribe(request.sid)


def register_event_stream(
    socketio: SocketIO,
    publisher: EventStreamPublisher,
    identity_resolver: IdentityResolver,
    require_admin: bool = True,
    autostart: bool = True
) -> EventStreamNamespace:
    namespace = EventStreamNamespace(
        publisher,
        identity_resolver,
        require_admin=require_admin,
        autostart=autostart
    )
    socketio.on_namespace(namespace)
    return namespace


__all__ = [
    'STREAM_NAMESPACE',
    'STREAM_EVENT',
    'TailBatch',
    'LogTailer',
    'SubscriptionState',
    'StreamSubscription',
    'EventStreamPublisher',
    'EventStreamNamespace',
    'register_event_stream',
]
