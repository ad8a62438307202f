from typing import List, Optional

import pytest

from bridge_helpers import PY_TOOL, script_session
from src.bridge.process.device_process import DeviceToolConfig, ProcessSession
from src.bridge.supervisor.session_supervisor import SessionSupervisor


@pytest.fixture
def script_supervisor():
    """Build a supervisor whose sessions run a python script instead of lepu_cli."""

    def make(script: str, cfg: Optional[DeviceToolConfig] = None):
        sessions: List[ProcessSession] = []

        def factory(kind, args):
            s = script_session(kind, script)
            sessions.append(s)
            return s

        return SessionSupervisor(session_factory=factory, cfg=cfg or PY_TOOL), sessions

    return make
