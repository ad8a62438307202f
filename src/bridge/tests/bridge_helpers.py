import sys
import textwrap
import time
from pathlib import Path
from typing import Callable, List

from shared.schemas.device_events import DeviceEvent, DeviceKind
from src.bridge.errors import DeliveryError
from src.bridge.process.device_process import DeviceToolConfig, ProcessSession

# the python interpreter stands in for lepu_cli; scripts are passed with -c
PY_TOOL = DeviceToolConfig(executable=sys.executable, fallback_dir=Path.cwd())

HEART_RATE_SCRIPT = """
for line in ["DATA:PR=80,SPO2=97", "STATUS:PROBE_OFF", "garbage", "DATA:PR=81,SPO2=96"]:
    print(line, flush=True)
"""

# one reading, then hangs like a device waiting for the next measurement
HANGING_SCRIPT = """
import time
print("DATA:PR=70,SPO2=99", flush=True)
time.sleep(60)
"""

ENDLESS_SCRIPT = """
import time
while True:
    print("DATA:PR=75,SPO2=98", flush=True)
    time.sleep(0.05)
"""


def script_session(kind: DeviceKind, script: str) -> ProcessSession:
    return ProcessSession(kind, ["-c", textwrap.dedent(script)], cfg=PY_TOOL)


class RecordingSink:
    def __init__(self, fatal: bool = True, fail: bool = False):
        self.fatal_on_failure = fatal
        self.fail = fail
        self.attempts: List[DeviceEvent] = []

    def deliver(self, event: DeviceEvent) -> None:
        self.attempts.append(event)
        if self.fail:
            raise DeliveryError("peer gone")

    @property
    def wire(self):
        return [e.to_wire() for e in self.attempts]


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()
