from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

logger = logging.getLogger(__name__)


class FeedUnavailable(Exception):
    pass


def safe(name: Optional[str]) -> str:
    name = (name or "").strip()
    return name or "unknown"


def stream_key(clinic: Optional[str], patient: Optional[str]) -> str:
    return f"{safe(clinic)}|{safe(patient)}"


class FrameBroker:
    """
    Camera frame fan-out.

    One desktop feed connection pushes frames; browsers subscribe per
    clinic|patient key. Connections only need async send_bytes/send_text/close.
    """

    def __init__(self):
        self._streams: Dict[str, Set[Any]] = {}
        self._feed: Optional[Any] = None
        self._lock = asyncio.Lock()
        self._feed_lock = asyncio.Lock()

    # ---- subscribers ----
    async def subscribe(self, key: str, conn: Any) -> None:
        async with self._lock:
            self._streams.setdefault(key, set()).add(conn)
        logger.info("Stream subscriber connected: %s", key)

    async def unsubscribe(self, key: str, conn: Any) -> None:
        async with self._lock:
            conns = self._streams.get(key)
            if conns is not None:
                conns.discard(conn)
                if not conns:
                    del self._streams[key]
        logger.info("Stream subscriber disconnected: %s", key)

    def subscriber_count(self, key: str) -> int:
        return len(self._streams.get(key, ()))

    def stream_counts(self) -> Dict[str, int]:
        return {k: len(v) for k, v in self._streams.items()}

    async def broadcast(self, key: str, frame: bytes) -> int:
        """Send a frame to every subscriber of key; failed ones are dropped."""
        async with self._lock:
            conns = self._streams.get(key)
            if not conns:
                return 0

            dead = []
            for conn in list(conns):
                try:
                    await conn.send_bytes(frame)
                except Exception:  # noqa: BLE001
                    dead.append(conn)

            for conn in dead:
                conns.discard(conn)
                try:
                    await conn.close()
                except Exception:  # noqa: BLE001
                    pass
            if not conns:
                del self._streams[key]
            return len(conns)

    # ---- feed ----
    @property
    def has_feed(self) -> bool:
        return self._feed is not None

    async def set_feed(self, conn: Any) -> None:
        async with self._feed_lock:
            old, self._feed = self._feed, conn
        if old is not None and old is not conn:
            try:
                await old.close()
            except Exception:  # noqa: BLE001
                pass
        logger.info("Feed WS connected")

    async def clear_feed(self, conn: Any) -> None:
        async with self._feed_lock:
            if self._feed is conn:
                self._feed = None

    async def send_control(self, command: str) -> None:
        async with self._feed_lock:
            if self._feed is None:
                raise FeedUnavailable("no desktop connected")
            try:
                await self._feed.send_text(command)
            except Exception as e:  # noqa: BLE001
                self._feed = None
                raise FeedUnavailable(f"failed to send command: {e}") from e
