"""
Runs device sessions end to end, at most one per channel.

A channel is whatever the caller uses as a key: one per WebSocket device
endpoint, one for the desktop "forward" control.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from shared.schemas.device_events import DeviceKind
from src.bridge.errors import (
    DeliveryError,
    LaunchError,
    SessionAlreadyRunning,
    TemperatureParseError,
)
from src.bridge.parsers.line_parsers import select_parser
from src.bridge.process.device_process import (
    DeviceToolConfig,
    ExitOutcome,
    ExitStatus,
    ProcessSession,
)
from src.bridge.sinks.base import Sink

logger = logging.getLogger(__name__)

SessionFactory = Callable[[DeviceKind, Optional[Sequence[str]]], ProcessSession]


class SessionSupervisor:
    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        cfg: Optional[DeviceToolConfig] = None,
    ):
        self.cfg = cfg or DeviceToolConfig.default()
        self._factory = session_factory or self._default_factory
        self._lock = threading.Lock()
        self._active: Dict[str, ProcessSession] = {}

    def _default_factory(self, kind: DeviceKind, args: Optional[Sequence[str]]) -> ProcessSession:
        return ProcessSession(kind, args, cfg=self.cfg)

    # ---- channel table ----
    def is_active(self, channel: str) -> bool:
        with self._lock:
            return channel in self._active

    def active_session(self, channel: str) -> Optional[ProcessSession]:
        with self._lock:
            return self._active.get(channel)

    def active_channels(self) -> List[str]:
        with self._lock:
            return sorted(self._active)

    def _release(self, channel: str, session: ProcessSession) -> None:
        with self._lock:
            if self._active.get(channel) is session:
                del self._active[channel]

    # ---- lifecycle ----
    def start(
        self,
        channel: str,
        kind: DeviceKind,
        args: Optional[Sequence[str]] = None,
    ) -> ProcessSession:
        session = self._factory(DeviceKind(kind), args)
        with self._lock:
            if channel in self._active:
                raise SessionAlreadyRunning(channel)
            # slot is reserved before spawning so a slow launch cannot be raced
            self._active[channel] = session

        try:
            session.start()
        except LaunchError:
            self._release(channel, session)
            logger.error("Launch failed on channel %s", channel, exc_info=True)
            raise
        return session

    def cancel(self, channel: str) -> bool:
        session = self.active_session(channel)
        if session is None:
            return False
        session.cancel()
        return True

    def run(self, channel: str, session: ProcessSession, sink: Sink) -> ExitOutcome:
        """
        Forward parsed lines to the sink until EOF, cancellation, or a fatal
        delivery failure. Always reaps the process and frees the channel.
        """
        parser = select_parser(session.kind)
        drained = False
        try:
            while True:
                line = session.next_line()
                if line is None:
                    drained = True
                    break

                try:
                    event = parser(line)
                except TemperatureParseError as e:
                    logger.warning("Skipping line on %s: %s", channel, e)
                    continue
                if event is None:
                    continue

                try:
                    sink.deliver(event)
                except DeliveryError as e:
                    if sink.fatal_on_failure:
                        logger.info("Consumer gone on %s: %s", channel, e)
                        break
                    logger.warning("Error sending data on %s: %s", channel, e)
                else:
                    logger.debug("Sent %s on %s", event.to_wire(), channel)
        finally:
            outcome = self._teardown(channel, session, drained)
        return outcome

    def abandon(self, channel: str, session: ProcessSession) -> ExitOutcome:
        """Tear down a started session that will never be run."""
        return self._teardown(channel, session, drained=False)

    def _teardown(self, channel: str, session: ProcessSession, drained: bool) -> ExitOutcome:
        try:
            if not drained:
                session.cancel()
            outcome = session.wait()
        finally:
            self._release(channel, session)

        if outcome.status is ExitStatus.CANCELLED:
            logger.info("Process on %s stopped", channel)
        elif outcome.status is ExitStatus.ABNORMAL:
            logger.warning("Process on %s finished with exit code %s", channel, outcome.returncode)
        else:
            logger.info("Process on %s finished successfully", channel)
        return outcome

    def serve(
        self,
        channel: str,
        kind: DeviceKind,
        sink: Sink,
        args: Optional[Sequence[str]] = None,
    ) -> ExitOutcome:
        session = self.start(channel, kind, args)
        return self.run(channel, session, sink)
