"""
Govee Cloud Adapter

Govee developer API v1:
- GET /devices                              -> {"code": 200, "data": {"devices": [...]}}
- GET /devices/state?device=<id>&model=<m>  -> {"code": 200, "data": {"properties": [...]}}

State properties arrive as a list of single-key objects, e.g.
[{"online": "true"}, {"powerState": "on"}, {"brightness": 82}, {"colorTem": 4000}]
"""

from typing import Any, Dict, Iterable, List, Optional

from .base import BrightnessScale, DeviceDescriptor, PERCENT_SCALE, StateProperties, VendorAdapter
from ..commands.models import PowerState
from ..core.exceptions import AdapterDataInvalid, AdapterUnavailable

GOVEE_254_SCALE = BrightnessScale(254)


class GoveeAdapter(VendorAdapter):
    """
    Adapter for Govee Wi-Fi lights via the cloud API

    The API is rate limited per key, so quick cycles skip it.
    """

    name = "govee"
    skip_on_quick = True

    def __init__(
        self,
        api_key: Optional[str],
        api_base: str = "https://developer-api.govee.com/v1",
        models_254: Iterable[str] = (),
        **kwargs
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.models_254 = {m.upper() for m in models_254}

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise AdapterUnavailable(self.name, "No API key configured")
        return {"Govee-API-Key": self.api_key}

    def brightness_scale_for(self, descriptor: DeviceDescriptor) -> BrightnessScale:
        if (descriptor.model or "").upper() in self.models_254:
            return GOVEE_254_SCALE
        return PERCENT_SCALE

    async def list_devices(self) -> List[DeviceDescriptor]:
        body = await self._get_json(f"{self.api_base}/devices", headers=self._headers())
        self._check_envelope(body)

        devices = (body.get("data") or {}).get("devices")
        if not isinstance(devices, list):
            raise AdapterDataInvalid(self.name, "Invalid response format from Govee API")

        descriptors = []
        for raw in devices:
            if not isinstance(raw, dict) or not raw.get("device"):
                self.logger.warning(f"Skipping malformed Govee device entry: {raw!r}")
                continue
            descriptors.append(DeviceDescriptor(
                device=raw["device"],
                brand=self.name,
                model=raw.get("model"),
                device_name=raw.get("deviceName"),
                vendor_data={
                    "controllable": raw.get("controllable"),
                    "retrievable": raw.get("retrievable"),
                    "supportCmds": raw.get("supportCmds") or [],
                },
            ))
        return descriptors

    async def fetch_state(self, descriptor: DeviceDescriptor) -> StateProperties:
        body = await self._get_json(
            f"{self.api_base}/devices/state",
            headers=self._headers(),
            params={"device": descriptor.device, "model": descriptor.model},
        )
        self._check_envelope(body)

        properties = (body.get("data") or {}).get("properties")
        if not isinstance(properties, list):
            raise AdapterDataInvalid(self.name, f"Invalid state data for device {descriptor.device}")

        return self.normalize_state(descriptor, properties)

    def normalize_state(self, descriptor: DeviceDescriptor, properties: List[Any]) -> StateProperties:
        """Flatten the property list and map it onto the canonical scale"""
        flat: Dict[str, Any] = {}
        for prop in properties:
            if isinstance(prop, dict):
                flat.update(prop)

        state = StateProperties()

        if "online" in flat:
            state.online = _parse_bool(flat["online"])

        if "powerState" in flat:
            try:
                state.power_state = PowerState(str(flat["powerState"]).lower())
            except ValueError:
                raise AdapterDataInvalid(
                    self.name, f"Unknown powerState {flat['powerState']!r} for {descriptor.device}"
                )

        if flat.get("brightness") is not None:
            try:
                state.brightness = self.brightness_scale_for(descriptor).to_canonical(flat["brightness"])
            except (TypeError, ValueError):
                raise AdapterDataInvalid(
                    self.name, f"Invalid brightness {flat['brightness']!r} for {descriptor.device}"
                )

        return state

    def _check_envelope(self, body: Any):
        if not isinstance(body, dict):
            raise AdapterDataInvalid(self.name, "Invalid response format from Govee API")
        code = body.get("code", 200)
        if code != 200:
            raise AdapterUnavailable(self.name, body.get("message") or f"API code {code}")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)
