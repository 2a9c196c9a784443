"""Keep-alive for long-lived event streams."""

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator

from synapse.events import HEARTBEAT, Event, error_event, make_event

logger = logging.getLogger(__name__)


async def with_heartbeat(
    events: AsyncIterable[Event],
    interval: float = 15.0,
    idle_timeout: float = 120.0,
) -> AsyncIterator[Event]:
    """Relay ``events``, inserting a heartbeat every ``interval`` seconds of silence.

    If no real event arrives for ``idle_timeout`` seconds the source is closed
    and a terminal error is emitted instead of leaving the client hanging.
    """
    iterator = aiter(events)
    loop = asyncio.get_running_loop()
    last_event = loop.time()
    pending: asyncio.Future | None = None

    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(anext(iterator))

            idle_left = idle_timeout - (loop.time() - last_event)
            if idle_left <= 0:
                logger.warning("Event stream idle for %.0fs, closing", idle_timeout)
                yield error_event(f"No activity for {idle_timeout:.0f}s", fatal=True)
                return

            done, _ = await asyncio.wait({pending}, timeout=min(interval, idle_left))
            if not done:
                if loop.time() - last_event < idle_timeout:
                    yield make_event(HEARTBEAT)
                continue

            finished, pending = pending, None
            try:
                event = finished.result()
            except StopAsyncIteration:
                return
            last_event = loop.time()
            yield event
    finally:
        if pending is not None:
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
