import logging
import os
import shutil
import subprocess
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from shared.schemas.device_events import DeviceKind
from src.bridge.errors import SessionStateError, SpawnFailed, StreamUnavailable

logger = logging.getLogger(__name__)


@dataclass
class DeviceToolConfig:
    executable: str
    fallback_dir: Path

    @staticmethod
    def default() -> "DeviceToolConfig":
        return DeviceToolConfig(
            executable=os.getenv("DEVICE_CLI", "lepu_cli.exe"),
            fallback_dir=Path(os.getenv("DEVICE_CLI_CWD", ".")),
        )


def resolve_executable(name: str, fallback_dir: Optional[Path] = None) -> Path:
    """
    Look the tool up on PATH first, then next to the working directory.
    Raises SpawnFailed when neither exists.
    """
    found = shutil.which(name)
    if found:
        return Path(found)
    candidate = (fallback_dir or Path.cwd()) / name
    if candidate.is_file():
        return candidate
    raise SpawnFailed(f"device tool not found: {name}")


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    DRAINING = "draining"
    EXITED = "exited"


class ExitStatus(str, Enum):
    NORMAL = "normal"
    CANCELLED = "cancelled"
    ABNORMAL = "abnormal"


@dataclass(frozen=True)
class ExitOutcome:
    status: ExitStatus
    returncode: Optional[int]


class ProcessSession:
    """
    One run of the device tool: spawn, stdout lines, cancel, reap.

    next_line() is meant for a single reader thread; cancel() may come from
    any thread and kills the process, which closes stdout and unblocks the
    reader.
    """
    def __init__(
        self,
        kind: DeviceKind,
        args: Optional[Sequence[str]] = None,
        cfg: Optional[DeviceToolConfig] = None,
    ):
        self.kind = DeviceKind(kind)
        self.args: List[str] = list(args) if args is not None else [self.kind.mode_flag]
        self.cfg = cfg or DeviceToolConfig.default()
        self.state = SessionState.NOT_STARTED
        self.outcome: Optional[ExitOutcome] = None
        self.proc: Optional[subprocess.Popen] = None
        self._cancelled = threading.Event()
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def pid(self) -> Optional[int]:
        return self.proc.pid if self.proc else None

    def start(self) -> "ProcessSession":
        with self._lock:
            if self.state is not SessionState.NOT_STARTED:
                raise SessionStateError(f"session already {self.state.value}")

            path = resolve_executable(self.cfg.executable, self.cfg.fallback_dir)
            cmd = [str(path), *self.args]
            try:
                self.proc = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.DEVNULL,
                    stdin=subprocess.DEVNULL,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    bufsize=1,
                )
            except OSError as e:
                raise SpawnFailed(f"cannot start {path}: {e}") from e

            # Popen only leaves stdout unset if the PIPE request was dropped
            if self.proc.stdout is None:
                self.proc.kill()
                self.proc.wait()
                raise StreamUnavailable(f"no stdout for {path}")

            self.state = SessionState.RUNNING
            if self._cancelled.is_set():
                self.proc.kill()
        logger.info("Started %s (%s) pid=%s", self.kind.value, path, self.proc.pid)
        return self

    def next_line(self) -> Optional[str]:
        if self.state is SessionState.NOT_STARTED:
            raise SessionStateError("session not started")
        if self.state is not SessionState.RUNNING:
            return None
        if self._cancelled.is_set():
            self.state = SessionState.DRAINING
            return None

        assert self.proc is not None and self.proc.stdout is not None
        try:
            raw = self.proc.stdout.readline()
        except (OSError, ValueError):
            # pipe torn down under us by cancel()
            raw = ""

        if raw == "" or self._cancelled.is_set():
            self.state = SessionState.DRAINING
            return None
        return raw.rstrip("\r\n")

    def __iter__(self) -> Iterator[str]:
        while True:
            line = self.next_line()
            if line is None:
                return
            yield line

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            proc = self.proc
            if proc is None or self.state is SessionState.EXITED:
                return
            if proc.poll() is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
        logger.info("Cancelled %s session pid=%s", self.kind.value, proc.pid)

    def wait(self) -> ExitOutcome:
        with self._lock:
            if self.state in (SessionState.NOT_STARTED, SessionState.EXITED):
                raise SessionStateError(f"cannot wait on a {self.state.value} session")
            assert self.proc is not None

        returncode = self.proc.wait()
        if self.proc.stdout is not None:
            self.proc.stdout.close()

        if self._cancelled.is_set():
            status = ExitStatus.CANCELLED
        elif returncode != 0:
            status = ExitStatus.ABNORMAL
        else:
            status = ExitStatus.NORMAL

        with self._lock:
            self.state = SessionState.EXITED
            self.outcome = ExitOutcome(status=status, returncode=returncode)
        return self.outcome
