import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Optional

from shared.contracts.bridge_contracts import CameraCommandResponse
from src.bridge.errors import SpawnFailed
from src.bridge.process.device_process import DeviceToolConfig, resolve_executable

logger = logging.getLogger(__name__)

CAMERA_ACTIONS: Dict[str, str] = {
    "list": "-list",
    "move-left": "-move-left",
    "move-right": "-move-right",
    "move-up": "-move-up",
    "move-down": "-move-down",
}

CAMERA_TIMEOUT = 30.0


def camera_tool_config() -> DeviceToolConfig:
    return DeviceToolConfig(
        executable=os.getenv("CAMERA_CLI", "camera_cli.exe"),
        fallback_dir=Path(os.getenv("DEVICE_CLI_CWD", ".")),
    )


def run_camera_command(action: str, cfg: Optional[DeviceToolConfig] = None) -> CameraCommandResponse:
    """Run one camera_cli action and report its combined output."""
    if action not in CAMERA_ACTIONS:
        raise ValueError(f"unknown camera action: {action}")
    cfg = cfg or camera_tool_config()

    try:
        path = resolve_executable(cfg.executable, cfg.fallback_dir)
        done = subprocess.run(
            [str(path), CAMERA_ACTIONS[action]],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=CAMERA_TIMEOUT,
        )
    except (SpawnFailed, OSError, subprocess.TimeoutExpired) as e:
        logger.error("Error running camera %s: %s", action, e)
        return CameraCommandResponse(ok=False, action=action, output="", error=str(e))

    output = done.stdout.strip()
    if output:
        logger.info("Camera output: %s", output)

    if done.returncode != 0:
        return CameraCommandResponse(
            ok=False, action=action, output=output, error=f"exit code {done.returncode}"
        )
    if output.upper().startswith("DATA:ERROR"):
        return CameraCommandResponse(ok=False, action=action, output=output, error=output)

    logger.info("Camera %s completed", action)
    return CameraCommandResponse(ok=True, action=action, output=output)
