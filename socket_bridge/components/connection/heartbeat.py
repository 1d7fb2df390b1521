"""
Heartbeat Monitor for Socket Bridge.

Periodically probes every live connection with a ping and evicts the ones
that do not answer with a pong within ping_timeout.

Disabled entirely when heartbeat_interval is 0: no task, no liveness
tracking, and ping/pong frames are relayed like any other payload.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from typing import TYPE_CHECKING, Awaitable, Callable

from socket_bridge.components.connection.registry import HeartbeatState
from socket_bridge.components.core.constants import BridgeConstants, MSG_PING_JSON, MSG_PONG_JSON
from socket_bridge.components.core.exceptions import HeartbeatTimeoutError
from socket_bridge.components.core.protocol import is_ping

if TYPE_CHECKING:
    from socket_bridge.components.connection.registry import (
        Connection,
        ConnectionRegistry,
        Transport,
    )
    from socket_bridge.components.metrics.collector import MetricsCollector
    from socket_bridge.config.settings import RelayConfig

logger = logging.getLogger(__name__)

EvictCallback = Callable[["Connection", str], Awaitable[bool]]


class HeartbeatMonitor:
    """
    Drives the per-connection heartbeat state machine.

    Each tick:
    - AWAITING_PONG connections whose ping has gone unanswered for longer
      than ping_timeout are evicted (closed with HEARTBEAT_TIMEOUT and removed
      from the registry) and not pinged again.
    - NOT_PROBED and IDLE connections are pinged and move to AWAITING_PONG.
    - AWAITING_PONG connections still within their timeout are left alone.

    When ping_timeout is shorter than the interval, a deadline sweep runs
    ping_timeout after the pings went out, inside the same period, so an
    unresponsive connection is gone about interval + ping_timeout after its
    first probe.
    """

    # Wake slightly after the deadline so the sweep never lands a hair early
    _DEADLINE_SLACK = 0.005

    def __init__(
        self,
        config: "RelayConfig",
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector",
        evict_callback: EvictCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize heartbeat monitor.

        Args:
            config: Provides heartbeat_interval and ping_timeout (seconds).
            registry: Live connections to probe.
            metrics: Collects ping/pong/eviction counts.
            evict_callback: Removes an evicted connection from the registry
                (and announces it). Returns True if it removed it. Defaults
                to a plain registry.remove().
            clock: Monotonic clock; injectable for tests.
        """
        self._interval = config.heartbeat_interval
        self._ping_timeout = config.ping_timeout
        self._registry = registry
        self._metrics = metrics
        self._evict_callback = evict_callback
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def enabled(self) -> bool:
        """Whether heartbeat tracking is on."""
        return self._interval > 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def ping_timeout(self) -> float:
        return self._ping_timeout

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # Task control
    # =========================================================================

    def start(self) -> None:
        """Start the background tick loop (no-op when disabled)."""
        if not self.enabled:
            logger.info("Heartbeat monitor disabled (interval is 0)")
            return
        if self.is_running:
            logger.warning("Heartbeat monitor already running")
            return

        self._task = asyncio.create_task(self._run(), name="heartbeat_monitor")
        logger.info(
            "Heartbeat monitor started",
            interval=self._interval,
            ping_timeout=self._ping_timeout,
        )

    async def stop(self, timeout: float = BridgeConstants.MONITOR_STOP_TIMEOUT) -> None:
        """Cancel the tick loop and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await asyncio.wait_for(task, timeout=timeout)
        except asyncio.CancelledError:
            pass
        except asyncio.TimeoutError:
            logger.warning("Heartbeat monitor did not stop in time")
        logger.info("Heartbeat monitor stopped")

    async def _run(self) -> None:
        """
        Tick every heartbeat_interval until cancelled.

        Ticks are scheduled against fixed deadlines, so the deadline sweep
        runs inside the period instead of stretching it. Ticks missed
        because a sweep overran are skipped, not replayed.
        """
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval
        while True:
            try:
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                tick_started = loop.time()
                await self.tick()

                next_tick += self._interval
                if next_tick <= loop.time():
                    next_tick = loop.time() + self._interval

                if self._ping_timeout < self._interval:
                    sweep_at = tick_started + self._ping_timeout + self._DEADLINE_SLACK
                    await asyncio.sleep(max(0.0, sweep_at - loop.time()))
                    await self.sweep_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Keep ticking; one bad sweep must not end liveness tracking
                logger.error("Error in heartbeat tick", error=str(e), exc_info=True)

    # =========================================================================
    # Sweeps
    # =========================================================================

    async def tick(self, now: float | None = None) -> list[int]:
        """
        Run one heartbeat tick.

        Args:
            now: Monotonic timestamp to use; defaults to the clock.

        Returns:
            Ids of the connections evicted in this tick.
        """
        now = self._clock() if now is None else now

        evicted = await self.sweep_expired(now)

        to_probe = [
            c for c in self._registry.snapshot()
            if c.heartbeat.state in (HeartbeatState.NOT_PROBED, HeartbeatState.IDLE)
        ]
        if to_probe:
            results = await asyncio.gather(*[self._ping(c, now) for c in to_probe])
            self._metrics.add_pings_sent(sum(1 for ok in results if ok))

        return evicted

    async def sweep_expired(self, now: float | None = None) -> list[int]:
        """
        Evict every connection whose ping went unanswered for longer than ping_timeout.

        Returns:
            Ids of the connections evicted.
        """
        now = self._clock() if now is None else now
        expired = [
            c for c in self._registry.snapshot()
            if c.heartbeat.is_expired(now, self._ping_timeout)
        ]

        evicted = []
        for connection in expired:
            if await self._evict(connection, now):
                evicted.append(connection.id)
        return evicted

    async def _ping(self, connection: "Connection", now: float) -> bool:
        """
        Probe one connection.

        The state moves to AWAITING_PONG before the send so a fast pong is
        never overwritten. A failed send leaves it AWAITING_PONG; the
        timeout evicts it if it never answers.
        """
        connection.heartbeat.mark_ping_sent(now)
        try:
            await connection.transport.send_text(MSG_PING_JSON)
            return True
        except Exception as e:
            logger.debug("Failed to send ping", client_id=connection.id, error=str(e))
            return False

    async def _evict(self, connection: "Connection", now: float) -> bool:
        """
        AWAITING_PONG -> EVICTED: close the transport and remove it.

        Returns:
            True if this call performed the eviction.
        """
        if self._registry.get(connection.id) is not connection:
            return False
        if not connection.heartbeat.mark_evicted():
            return False

        timeout_error = HeartbeatTimeoutError(connection.id, now - connection.heartbeat.last_ping)
        logger.info(
            "Evicting unresponsive connection",
            client_id=connection.id,
            name=connection.name,
            elapsed=round(timeout_error.elapsed, 3),
            ping_timeout=self._ping_timeout,
        )

        try:
            await connection.transport.close(
                code=timeout_error.close_code, reason=timeout_error.reason
            )
        except Exception as e:
            logger.debug(
                "Failed to close evicted connection", client_id=connection.id, error=str(e)
            )

        if self._evict_callback is not None:
            await self._evict_callback(connection, "heartbeat_timeout")
        else:
            await self._registry.remove(connection.id)

        self._metrics.increment_evictions()
        return True

    # =========================================================================
    # Pong handling
    # =========================================================================

    def record_pong(self, connection_id: int, now: float | None = None) -> bool:
        """
        A connection answered a ping: back to IDLE.

        Returns:
            False if the connection is unknown or already evicted.
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            return False

        now = self._clock() if now is None else now
        if not connection.heartbeat.mark_pong_received(now):
            return False

        self._metrics.increment_pongs()
        return True

    def get_stats(self) -> dict[str, float | int | bool]:
        """Get heartbeat monitor statistics."""
        states = Counter(c.heartbeat.state for c in self._registry.snapshot())
        return {
            "enabled": self.enabled,
            "running": self.is_running,
            "interval_seconds": self._interval,
            "ping_timeout_seconds": self._ping_timeout,
            "not_probed": states[HeartbeatState.NOT_PROBED],
            "awaiting_pong": states[HeartbeatState.AWAITING_PONG],
            "idle": states[HeartbeatState.IDLE],
        }


async def handle_heartbeat(transport: "Transport", data: str) -> bool:
    """
    Answer a client-initiated ping.

    Only the JSON ``{"type": "ping"}`` frame counts; bare "ping" is chat text.

    Args:
        transport: The connection's transport.
        data: The received message data.

    Returns:
        True if message was a ping and was handled, False otherwise.
    """
    if not is_ping(data):
        return False
    try:
        await transport.send_text(MSG_PONG_JSON)
    except (ConnectionError, RuntimeError, OSError):
        # Connection may have closed - the receive loop handles cleanup
        pass
    return True
