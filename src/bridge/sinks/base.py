from typing import Protocol, runtime_checkable

from shared.schemas.device_events import DeviceEvent


@runtime_checkable
class Sink(Protocol):
    """Downstream consumer of parsed device events."""

    # True: a failed delivery means the consumer is gone and the session ends.
    # False: the failure is logged and the next line is still read.
    fatal_on_failure: bool

    def deliver(self, event: DeviceEvent) -> None:
        """Send one event; raise DeliveryError on failure."""
