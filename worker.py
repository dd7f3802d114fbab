"""
Notification Worker
Version: 1.2

Drains the notification outbox (Redis list) and delivers each event
through the platform e-mail function.

1. CONCURRENT delivery - up to MAX_CONCURRENT e-mails in flight
2. GRACEFUL shutdown - SIGTERM stops reading; in-flight sends get DRAIN_TIMEOUT
3. Failed deliveries go to the dead-letter list, they are never retried
"""

import asyncio
import signal
import logging
import sys
import time
from typing import Optional, Set

import redis.asyncio as aioredis

from config import get_settings
from services.logging_config import configure_logging
from services.notifications import EmailSender, NotificationEvent, RedisOutbox

settings = get_settings()

logger = logging.getLogger(__name__)


class InFlightSends:
    """Tracks delivery tasks so shutdown can wait for them."""

    def __init__(self):
        self.stopping = asyncio.Event()
        self.tasks: Set[asyncio.Task] = set()

    def stop(self):
        if not self.stopping.is_set():
            logger.info("Shutdown requested, no new events will be taken")
        self.stopping.set()

    def add(self, task: asyncio.Task):
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def drain(self, timeout: float):
        if not self.tasks:
            return

        pending = list(self.tasks)
        logger.info(f"Waiting for {len(pending)} e-mail(s) in flight")
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(f"Cancelled {len(still_running)} e-mail(s) after {timeout:.0f}s")


async def connect_redis(max_retries: int = 30, delay: float = 2) -> aioredis.Redis:
    """Retry until Redis answers; the worker is useless without it."""
    client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS
    )
    for attempt in range(1, max_retries + 1):
        try:
            await client.ping()
            logger.info("Redis connected")
            return client
        except Exception as e:
            logger.warning(f"Redis not ready ({attempt}/{max_retries}): {e}")
            await asyncio.sleep(delay)

    await client.aclose()
    raise RuntimeError("Could not connect to Redis")


class NotificationWorker:
    """
    Outbox consumer.

    outbox and sender are built from settings when not given.
    """

    MAX_CONCURRENT = 5
    DRAIN_TIMEOUT = 30.0
    REPORT_INTERVAL = 60

    def __init__(self, outbox: Optional[RedisOutbox] = None, sender: Optional[EmailSender] = None):
        self.outbox = outbox
        self.sender = sender
        self.in_flight = InFlightSends()
        self._redis: Optional[aioredis.Redis] = None
        self._slots = asyncio.Semaphore(self.MAX_CONCURRENT)

        self.sent = 0
        self.failed = 0
        self._started_at = time.monotonic()

    async def start(self):
        logger.info(f"Notification worker starting (max concurrent: {self.MAX_CONCURRENT})")
        self._started_at = time.monotonic()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.in_flight.stop)

        if self.outbox is None:
            self._redis = await connect_redis()
            self.outbox = RedisOutbox(self._redis)
        if self.sender is None:
            self.sender = EmailSender(
                settings.PLATFORM_URL,
                settings.PLATFORM_SERVICE_KEY,
                settings.EMAIL_FUNCTION,
                settings.HTTP_TIMEOUT,
            )

        reporter = asyncio.create_task(self._report_loop())
        try:
            await self._consume()
        finally:
            reporter.cancel()
            await self.in_flight.drain(self.DRAIN_TIMEOUT)
            await self._close()

    async def _consume(self):
        while not self.in_flight.stopping.is_set():
            try:
                event = await self.outbox.take(timeout=1)
            except Exception as e:
                logger.error(f"Outbox read error: {e}")
                await asyncio.sleep(1)
                continue

            if event is None:
                continue

            await self._slots.acquire()
            self.in_flight.add(asyncio.create_task(self._send_one(event)))

    async def _send_one(self, event: NotificationEvent):
        try:
            await self.deliver(event)
        except asyncio.CancelledError:
            # Already popped from the queue, so park it rather than lose it
            self.failed += 1
            await self.outbox.store_dlq(event, "cancelled during shutdown")
            raise
        finally:
            self._slots.release()

    async def deliver(self, event: NotificationEvent) -> bool:
        """Send one event; a failed send is parked in the dead-letter list."""
        try:
            sent = await self.sender.send(event)
            error = None if sent else "e-mail function rejected the request"
        except Exception as e:
            sent = False
            error = str(e)

        if sent:
            self.sent += 1
            return True

        self.failed += 1
        await self.outbox.store_dlq(event, error)
        return False

    async def _report_loop(self):
        while True:
            await asyncio.sleep(self.REPORT_INTERVAL)
            logger.info(
                f"Health: sent={self.sent}, failed={self.failed}, "
                f"in_flight={len(self.in_flight.tasks)}"
            )

    async def _close(self):
        uptime = time.monotonic() - self._started_at
        logger.info(f"Stats: {self.sent} sent, {self.failed} failed, uptime {uptime:.0f}s")

        if self.sender:
            await self.sender.close()
        if self._redis:
            await self._redis.aclose()

        logger.info("Worker stopped")


async def main():
    configure_logging(log_level=settings.LOG_LEVEL)

    try:
        await NotificationWorker().start()
    except asyncio.CancelledError:
        logger.info("Worker cancelled")
    except Exception as e:
        logger.error(f"Worker fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
