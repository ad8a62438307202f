from pydantic import BaseModel
from typing import Optional

class FeedMeta(BaseModel):
    # sent by the desktop as a text frame before camera frames
    clinic_name: Optional[str] = None
    patient_name: Optional[str] = None

class FeedControlResponse(BaseModel):
    ok: bool
    command: str

class RelayStatusResponse(BaseModel):
    feed_connected: bool
    streams: dict
