import logging
from typing import Any, Dict, List, Optional

import requests

from jingchen_bridge import env
from jingchen_bridge.models import LabelPage

logger = logging.getLogger(__name__)


class BridgeClient:
    """HTTP client for a running bridge."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, timeout: float = 120):
        self.base_url = (base_url or env.BRIDGE_URL).rstrip("/")
        self.api_key = env.API_KEY if api_key is None else api_key
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        h: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            h["X-API-Key"] = self.api_key
        return h

    def _get(self, path: str, **params) -> Dict[str, Any]:
        r = requests.get(f"{self.base_url}{path}", params=params or None, headers=self._headers(), timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        r = requests.post(f"{self.base_url}{path}", json=payload or {}, headers=self._headers(), timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def health(self) -> Dict[str, Any]:
        return self._get("/health")

    def status(self) -> Dict[str, Any]:
        return self._get("/printer/status")

    def scan(self, kind: str = "usb") -> List[Dict[str, Any]]:
        return self._get("/printer/scan", kind=kind)["printers"]

    def print_label(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._post("/print-label", payload)

    def print_pages(
        self,
        pages: List[LabelPage],
        width: float,
        height: float,
        printer: Optional[Dict[str, Any]] = None,
        job_id: Optional[str] = None,
        **label,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "label": {"width": width, "height": height, **label},
            "labels": [p.model_dump(by_alias=True, exclude_none=True) for p in pages],
        }
        if printer:
            payload["printer"] = printer
        if job_id:
            payload["jobId"] = job_id
        logger.info("Submitting %d label(s) to %s", len(pages), self.base_url)
        return self.print_label(payload)

    def job(self, job_id: str) -> Dict[str, Any]:
        return self._get(f"/print-label/{job_id}")

    def cancel(self, job_id: str) -> Dict[str, Any]:
        return self._post(f"/print-label/{job_id}/cancel")

    def preview(self, content: List[Dict[str, Any]], width: float, height: float, display_scale: Optional[float] = None) -> str:
        payload: Dict[str, Any] = {"label": {"width": width, "height": height}, "content": content}
        if display_scale:
            payload["displayScale"] = display_scale
        return self._post("/printer/preview", payload)["imageData"]

    def configure_wifi(self, wifi_name: str, wifi_password: str) -> Dict[str, Any]:
        return self._post("/printer/wifi-config", {"wifiName": wifi_name, "wifiPassword": wifi_password})
