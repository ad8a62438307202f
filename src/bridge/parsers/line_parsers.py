"""
Line parsers for lepu_cli stdout.

Each parser maps one line to at most one DeviceEvent. Lines that do not match
a known shape return None (firmware prints plenty of noise). Integer fields
that fail to parse become 0; the temperature parser is the exception and
raises TemperatureParseError.
"""
from __future__ import annotations

import math
import re
from typing import Callable, Dict, Optional

from shared.schemas.device_events import (
    CuffUpdate,
    DeviceEvent,
    DeviceKind,
    DeviceStatus,
    GlucoseReading,
    HeartRateReading,
    NIBPError,
    NIBPResult,
    TemperatureReading,
)
from src.bridge.errors import TemperatureParseError

LineParser = Callable[[str], Optional[DeviceEvent]]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?")

# bare "KEY<digits>" form in NIBP results, checked in this order
_NIBP_BARE_KEYS = ("MAP", "PR", "SYS", "DIA")


def _to_int(raw: Optional[str]) -> int:
    if raw is None or not _INT_RE.fullmatch(raw):
        return 0
    return int(raw)


def parse_kv(text: str) -> Dict[str, str]:
    """Split "A=1,B=2" into a dict. Pairs without "=" are ignored, last key wins."""
    result: Dict[str, str] = {}
    for pair in text.split(","):
        key, sep, value = pair.partition("=")
        if sep:
            result[key.strip()] = value.strip()
    return result


def parse_heart_rate_line(line: str) -> Optional[DeviceEvent]:
    # DATA:PR=75,SPO2=98  |  STATUS:PROBE_OFF
    line = line.strip()
    if line.startswith("DATA:"):
        kv = parse_kv(line[len("DATA:"):])
        return HeartRateReading(pulse_rate=_to_int(kv.get("PR")), spo2=_to_int(kv.get("SPO2")))
    if line.startswith("STATUS:"):
        return DeviceStatus(message=line[len("STATUS:"):])
    return None


def _normalize_nibp(line: str) -> str:
    return line.replace(" ", "").replace("\r", "").upper()


def _nibp_result_fields(text: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for part in text.split(","):
        if "=" in part:
            key, _, value = part.partition("=")
            fields[key] = value
            continue
        for key in _NIBP_BARE_KEYS:
            if part.startswith(key):
                fields[key] = part[len(key):]
                break
    return fields


def parse_nibp_line(line: str) -> Optional[DeviceEvent]:
    normalized = _normalize_nibp(line)

    if normalized.startswith("DATA:CUFF_PRESSURE="):
        return CuffUpdate(cuff_pressure=_to_int(normalized[len("DATA:CUFF_PRESSURE="):]))

    if normalized.startswith("DATA:NIBP_RESULT:"):
        fields = _nibp_result_fields(normalized[len("DATA:NIBP_RESULT:"):])
        return NIBPResult(
            systolic=_to_int(fields.get("SYS")),
            diastolic=_to_int(fields.get("DIA")),
            mean_pressure=_to_int(fields.get("MAP")),
            pulse_rate=_to_int(fields.get("PR")),
            irregular=fields.get("IRR") == "TRUE",
        )

    if normalized.startswith("STATUS:NIBP_ERROR="):
        return NIBPError(code=_to_int(normalized[len("STATUS:NIBP_ERROR="):]))

    if normalized.startswith("STATUS:NIBP_END"):
        return DeviceStatus(message="NIBP_END")

    return None


def parse_glucose_line(line: str) -> Optional[DeviceEvent]:
    line = line.strip()
    if line.startswith("DATA:GLU="):
        return GlucoseReading(glucose=_to_int(line[len("DATA:GLU="):]))
    return None


def parse_temperature_line(line: str) -> Optional[DeviceEvent]:
    line = line.strip()
    if not line.startswith("DATA:TEMP="):
        return None
    raw = line[len("DATA:TEMP="):]
    if not _FLOAT_RE.fullmatch(raw):
        raise TemperatureParseError(raw)
    value = float(raw)
    if not math.isfinite(value):
        # exponent overflow, e.g. 1e999
        raise TemperatureParseError(raw)
    return TemperatureReading(temperature_celsius=value)


PARSERS: Dict[DeviceKind, LineParser] = {
    DeviceKind.HEART_RATE: parse_heart_rate_line,
    DeviceKind.NIBP: parse_nibp_line,
    DeviceKind.GLUCOSE: parse_glucose_line,
    DeviceKind.TEMPERATURE: parse_temperature_line,
}


def select_parser(kind: DeviceKind) -> LineParser:
    return PARSERS[DeviceKind(kind)]


def parse_line(line: str, kind: DeviceKind) -> Optional[DeviceEvent]:
    return select_parser(kind)(line)
