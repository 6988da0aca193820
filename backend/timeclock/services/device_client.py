"""HTTP client for the Control iD device API (``*.fcgi`` endpoints)."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from timeclock.config import settings
from timeclock.exceptions import DeviceError

logger = logging.getLogger(__name__)


class DeviceClient:
    """Talks to one device. ``login`` must run before any other call."""

    def __init__(
        self,
        device_ip: str,
        login: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.device_ip = device_ip
        self.login_name = login or settings.DEVICE_DEFAULT_LOGIN
        self.password = password or settings.DEVICE_DEFAULT_PASSWORD
        self.timeout = float(timeout if timeout is not None else settings.DEVICE_TIMEOUT_SECONDS)
        self.session: Optional[str] = None

    def _url(self, path: str) -> str:
        return f"http://{self.device_ip}/{path.lstrip('/')}"

    def _json(self, response) -> Dict[str, Any]:
        try:
            return response.json() or {}
        except ValueError as exc:
            raise DeviceError("Invalid response from device", str(exc))

    def _session_params(self) -> Dict[str, str]:
        if not self.session:
            raise DeviceError("Device session not established")
        return {"session": self.session}

    def login(self) -> str:
        try:
            response = httpx.post(
                self._url("login.fcgi"),
                json={"login": self.login_name, "password": self.password},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise DeviceError("Failed to connect to device", str(exc))
        if response.status_code >= 400:
            raise DeviceError("Login failed", f"Device returned {response.status_code}", status=response.status_code)

        session = self._json(response).get("session")
        if not session:
            raise DeviceError("No session returned from device")
        self.session = session
        logger.info("[device-sync] logged in to %s", self.device_ip)
        return session

    def load_objects(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = httpx.post(
                self._url("load_objects.fcgi"),
                params=self._session_params(),
                json=body,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeviceError(f"Failed to load {body.get('object')}", str(exc))
        return self._json(response)

    def load_access_logs(self, since_unix: int) -> List[Dict[str, Any]]:
        data = self.load_objects(
            {
                "object": "access_logs",
                "where": {"access_logs": {"time": {">=": int(since_unix)}}},
            }
        )
        return list(data.get("access_logs") or [])

    def load_users(self) -> List[Dict[str, Any]]:
        return list(self.load_objects({"object": "users"}).get("users") or [])

    def get_configuration(self) -> Optional[Dict[str, Any]]:
        try:
            response = httpx.get(
                self._url("get_configuration.fcgi"),
                params=self._session_params(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("[device-sync] configuration read failed on %s: %s", self.device_ip, exc)
            return None
        if response.status_code >= 400:
            return None
        try:
            return self._json(response)
        except DeviceError as exc:
            logger.warning("[device-sync] configuration read failed on %s: %s", self.device_ip, exc)
            return None
