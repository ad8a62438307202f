from pydantic import BaseModel, Field
from typing import Optional, List

from shared.schemas.device_events import DeviceKind

class ForwardStartRequest(BaseModel):
    kind: DeviceKind
    target_url: str = Field(..., min_length=1, description="collector endpoint, e.g. http://localhost:8080/api/data")
    patient_name: str = Field(..., min_length=1)
    clinic_name: Optional[str] = None

class ForwardStartResponse(BaseModel):
    ok: bool
    channel: str
    kind: DeviceKind
    pid: Optional[int] = None

class ForwardStopResponse(BaseModel):
    ok: bool
    stopped: bool

class BridgeStatusResponse(BaseModel):
    active_channels: List[str]
    device_cli: str
    camera_cli: str

class CameraCommandResponse(BaseModel):
    ok: bool
    action: str
    output: str = ""
    error: Optional[str] = None
