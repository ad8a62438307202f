from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class DeviceKind(str, Enum):
    HEART_RATE = "heartrate"
    NIBP = "nibp"
    GLUCOSE = "glu"
    TEMPERATURE = "temperature"

    @property
    def mode_flag(self) -> str:
        # lepu_cli takes one flag per device, e.g. "-heartrate"
        return f"-{self.value}"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """Wire form sent to browsers and collectors (aliases, always with "type")."""
        return self.model_dump(by_alias=True)


class HeartRateReading(_Event):
    type: Literal["data"] = "data"
    pulse_rate: int = Field(..., alias="pr")
    spo2: int


class DeviceStatus(_Event):
    type: Literal["status"] = "status"
    message: str = Field(..., alias="msg")


class CuffUpdate(_Event):
    type: Literal["cuff_update"] = "cuff_update"
    cuff_pressure: int


class NIBPResult(_Event):
    type: Literal["result"] = "result"
    systolic: int = Field(..., alias="sys")
    diastolic: int = Field(..., alias="dia")
    mean_pressure: int = Field(..., alias="map")
    pulse_rate: int = Field(..., alias="pr")
    irregular: bool = Field(False, alias="irr")


class NIBPError(_Event):
    type: Literal["error"] = "error"
    code: int


class GlucoseReading(_Event):
    type: Literal["data"] = "data"
    glucose: int = Field(..., alias="glu")


class TemperatureReading(_Event):
    type: Literal["data"] = "data"
    temperature_celsius: float = Field(..., alias="temp")


DeviceEvent = Union[
    HeartRateReading,
    DeviceStatus,
    CuffUpdate,
    NIBPResult,
    NIBPError,
    GlucoseReading,
    TemperatureReading,
]
