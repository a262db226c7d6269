"""Client for the camera's local VAPIX HTTP API.

Only two calls are used: the temperature sensor query, which answers with a
bare number, and ``basicdeviceinfo``, which answers with a JSON property list.
Any failure surfaces as :class:`~lhserver.errors.VapixError` so the caching
layer can fall back to the last good value.
"""

from __future__ import annotations

import logging
import math
from typing import Any

import httpx
import msgspec

from .const import (
    DEFAULT_TEMPERATURE_SENSOR_ID,
    DEFAULT_VAPIX_AUTH,
    DEFAULT_VAPIX_BASE_URL,
    DEFAULT_VAPIX_TIMEOUT,
    SERVICE_NAME,
    TEMPERATURE_SANE_MAX,
    TEMPERATURE_SANE_MIN,
)
from .errors import VapixError

logger = logging.getLogger("lhserver.vapix")

TEMPERATURE_PATH = "/axis-cgi/temperaturecontrol.cgi"
DEVICE_INFO_PATH = "/axis-cgi/basicdeviceinfo.cgi"

_FIELD_LIMITS = {
    "serial": 63,
    "firmware": 63,
    "model": 63,
    "architecture": 31,
    "soc": 63,
}

_PROPERTY_FIELDS = (
    ("SerialNumber", "serial"),
    ("Version", "firmware"),
    ("ProdNbr", "model"),
    ("Architecture", "architecture"),
    ("Soc", "soc"),
)


class DeviceInfo(msgspec.Struct, frozen=True):
    serial: str = ""
    firmware: str = ""
    model: str = ""
    architecture: str = ""
    soc: str = ""

    def as_dict(self) -> dict[str, str]:
        return msgspec.structs.asdict(self)


def parse_temperature(body: str) -> float:
    """Parse the leading number of a temperature response.

    Out-of-range readings are logged but still returned.
    """
    tokens = body.split()
    if not tokens:
        raise VapixError("empty temperature response")
    try:
        value = float(tokens[0])
    except ValueError as exc:
        raise VapixError(f"unparseable temperature response: {tokens[0][:32]!r}") from exc
    if not math.isfinite(value):
        raise VapixError("temperature response is not a finite number")
    if value < TEMPERATURE_SANE_MIN or value > TEMPERATURE_SANE_MAX:
        logger.warning("Temperature value out of range: %.2f", value)
    return value


def parse_device_info(payload: bytes | str, base: DeviceInfo | None = None) -> DeviceInfo:
    """Merge the properties present in *payload* over *base*.

    Absent properties keep the corresponding field of *base*; over-long
    values are truncated.
    """
    try:
        document = msgspec.json.decode(payload)
    except msgspec.DecodeError as exc:
        raise VapixError(f"invalid device info JSON: {exc}") from exc

    data = document.get("data") if isinstance(document, dict) else None
    properties = data.get("propertyList") if isinstance(data, dict) else None
    if not isinstance(properties, dict):
        raise VapixError("device info response lacks data.propertyList")

    changes: dict[str, str] = {}
    for key, field_name in _PROPERTY_FIELDS:
        value = properties.get(key)
        if isinstance(value, str):
            changes[field_name] = value[: _FIELD_LIMITS[field_name]]
    return msgspec.structs.replace(base or DeviceInfo(), **changes)


class VapixClient:
    """Issue authenticated requests against the local VAPIX endpoint."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_VAPIX_BASE_URL,
        user: str | None = None,
        password: str | None = None,
        auth: str = DEFAULT_VAPIX_AUTH,
        timeout: float = DEFAULT_VAPIX_TIMEOUT,
        sensor_id: int = DEFAULT_TEMPERATURE_SENSOR_ID,
        context_name: str = SERVICE_NAME,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._user = user
        self._password = password
        self._auth_mode = auth
        self._timeout = timeout
        self._sensor_id = sensor_id
        self._context_name = context_name
        self._transport = transport

    @property
    def has_credentials(self) -> bool:
        return bool(self._user) and self._password is not None

    def _auth(self) -> httpx.Auth:
        user, password = self._user, self._password
        if not user or password is None:
            raise VapixError("VAPIX credentials are not configured")
        if self._auth_mode == "basic":
            return httpx.BasicAuth(user, password)
        return httpx.DigestAuth(user, password)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        auth = self._auth()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=auth,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise VapixError(f"{method} {path} failed: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise VapixError(f"{method} {path} returned HTTP {response.status_code}")
        return response

    async def fetch_temperature(self) -> float:
        response = await self._request(
            "GET",
            TEMPERATURE_PATH,
            params={
                "device": "sensor",
                "id": str(self._sensor_id),
                "action": "query",
                "temperatureunit": "celsius",
            },
        )
        temperature = parse_temperature(response.text)
        logger.debug("Fetched temperature %.2f C", temperature)
        return temperature

    async def fetch_device_info(self) -> DeviceInfo:
        response = await self._request(
            "POST",
            DEVICE_INFO_PATH,
            json={
                "apiVersion": "1.0",
                "context": self._context_name,
                "method": "getAllProperties",
            },
        )
        info = parse_device_info(response.content)
        logger.info("Device info fetched: model=%s serial=%s", info.model, info.serial)
        return info


__all__ = [
    "DEVICE_INFO_PATH",
    "DeviceInfo",
    "TEMPERATURE_PATH",
    "VapixClient",
    "parse_device_info",
    "parse_temperature",
]
