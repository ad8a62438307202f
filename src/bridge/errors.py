class BridgeError(Exception):
    """Base class for device bridge failures."""


class LaunchError(BridgeError):
    """The device tool could not be started; the session never ran."""


class SpawnFailed(LaunchError):
    pass


class StreamUnavailable(LaunchError):
    pass


class SessionStateError(BridgeError):
    """Lifecycle call made in a state that does not allow it."""


class SessionAlreadyRunning(BridgeError):
    def __init__(self, channel: str):
        super().__init__(f"already running: {channel}")
        self.channel = channel


class DeliveryError(BridgeError):
    """A sink could not hand an event to its remote party."""


class TemperatureParseError(ValueError):
    # the integer parsers default to 0 instead; this one is kept loud
    def __init__(self, raw: str):
        super().__init__(f"invalid temperature value: {raw!r}")
        self.raw = raw
