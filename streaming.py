import asyncio
import json
from typing import AsyncIterator, Optional

from backend import Message, RelayBackend
from constants import RELAY_DISCONNECT_POLL_SECONDS, RELAY_SUBSCRIBER_QUEUE_SIZE
from exceptions import SubscriberDeliveryError
from logging_config import get_logger

logger = get_logger(__name__)


class QueueSubscriber:
    """Per-connection subscriber that buffers room messages for one push stream.

    Delivery happens on the event loop thread (the relay routes are async), so
    `put_nowait` is safe here. A full or closed queue raises, which makes the
    backend drop this subscriber.
    """

    def __init__(self, maxsize: int = RELAY_SUBSCRIBER_QUEUE_SIZE):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.failed = False

    def deliver(self, message: Message) -> None:
        if self.closed:
            raise SubscriberDeliveryError("Stream already closed")
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull as e:
            self.failed = True
            raise SubscriberDeliveryError("Subscriber is not keeping up, dropping stream") from e

    def close(self) -> None:
        self.closed = True


def sse_event(data: dict) -> dict:
    return {"data": json.dumps(data)}


def connected_event(room_id: str) -> dict:
    return sse_event({"type": "connected", "roomId": room_id})


async def room_event_stream(
    request,
    backend: RelayBackend,
    room_id: str,
    subscriber: Optional[QueueSubscriber] = None,
    poll_interval: float = RELAY_DISCONNECT_POLL_SECONDS,
) -> AsyncIterator[dict]:
    """Yield the SSE frames for one connection to a room.

    One `connected` frame first, then every message the room accepts while the
    connection is open. The subscription is released when the client goes
    away, when the task is cancelled on shutdown, or when delivery fails.
    """
    subscriber = subscriber or QueueSubscriber()
    unsubscribe = backend.subscribe(room_id, subscriber)
    client = getattr(request, "client", None)
    client_host = client.host if client else "unknown"
    logger.info(f"Event stream opened for room {room_id} from {client_host}")
    sent = 0
    try:
        yield connected_event(room_id)
        while True:
            if await request.is_disconnected():
                logger.info(f"Client {client_host} disconnected from room {room_id} event stream")
                break
            if subscriber.failed:
                logger.warning(f"Event stream for room {room_id} fell behind, flushing and closing it")
                while True:
                    try:
                        message = subscriber.queue.get_nowait()
                    except asyncio.QueueEmpty:
                        break
                    sent += 1
                    yield sse_event(message.to_dict())
                break
            try:
                message = await asyncio.wait_for(subscriber.queue.get(), timeout=poll_interval)
            except asyncio.TimeoutError:
                continue
            sent += 1
            yield sse_event(message.to_dict())
    except asyncio.CancelledError:
        logger.info(f"Event stream for room {room_id} cancelled")
        raise
    finally:
        subscriber.close()
        try:
            unsubscribe()
        except Exception as e:
            logger.error(f"Error releasing subscription for room {room_id}: {e}", exc_info=True)
        logger.info(f"Event stream closed for room {room_id} after {sent} messages")
