from __future__ import annotations

import os
from typing import Any, Dict, Optional

import requests

from shared.schemas.device_events import DeviceEvent
from src.bridge.errors import DeliveryError

FORWARD_TIMEOUT = float(os.getenv("FORWARD_TIMEOUT", "10"))


class HTTPForwardSink:
    """
    POSTs each event to a collector URL, tagged with patient/clinic names.
    One request per event, no batching and no retry.
    """
    fatal_on_failure = False

    def __init__(
        self,
        target_url: str,
        patient_name: str,
        clinic_name: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = FORWARD_TIMEOUT,
    ):
        self.target_url = target_url
        self.patient_name = patient_name
        self.clinic_name = clinic_name
        self.session = session or requests.Session()
        self.timeout = timeout

    def payload(self, event: DeviceEvent) -> Dict[str, Any]:
        data = event.to_wire()
        data["patient_name"] = self.patient_name
        if self.clinic_name is not None:
            data["clinic_name"] = self.clinic_name
        return data

    def deliver(self, event: DeviceEvent) -> None:
        try:
            r = self.session.post(self.target_url, json=self.payload(event), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"cannot reach {self.target_url}: {e}") from e
        if not 200 <= r.status_code < 300:
            raise DeliveryError(f"server returned status {r.status_code}: {r.text[:200]}")

    def close(self) -> None:
        self.session.close()
