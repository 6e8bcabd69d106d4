"""
Philips Hue Bridge Adapter

Local bridge REST API (v1):
- GET http://<bridge>/api/<key>/lights      -> {"1": {"state": {...}, "name": ..., "uniqueid": ...}, ...}
- GET http://<bridge>/api/<key>/lights/<n>  -> {"state": {...}, ...}

Brightness ("bri") is 1-254. Errors come back as HTTP 200 with a list body:
[{"error": {"type": 1, "address": "/", "description": "unauthorized user"}}]
"""

from typing import Any, Dict, List, Optional

from .base import BrightnessScale, DeviceDescriptor, StateProperties, VendorAdapter
from ..commands.models import PowerState
from ..core.exceptions import AdapterDataInvalid, AdapterUnavailable

HUE_SCALE = BrightnessScale(254, minimum=1)


class HueAdapter(VendorAdapter):
    """
    Adapter for lights behind a local Hue bridge

    The light listing already embeds each light's state, so fetch_state
    reuses it and only calls the bridge for lights it has not listed.
    """

    name = "hue"

    def __init__(self, bridge_ip: Optional[str], api_key: Optional[str], **kwargs):
        super().__init__(**kwargs)
        self.bridge_ip = bridge_ip
        self.api_key = api_key
        self._listed_states: Dict[str, Dict[str, Any]] = {}

    def _base_url(self) -> str:
        if not self.bridge_ip or not self.api_key:
            raise AdapterUnavailable(self.name, "Bridge IP or API key not configured")
        return f"http://{self.bridge_ip}/api/{self.api_key}"

    def brightness_scale_for(self, descriptor: DeviceDescriptor) -> BrightnessScale:
        return HUE_SCALE

    async def list_devices(self) -> List[DeviceDescriptor]:
        body = await self._get_json(f"{self._base_url()}/lights")
        self._check_error(body)
        if not isinstance(body, dict):
            raise AdapterDataInvalid(self.name, "Failed to parse Hue Bridge response")

        self.logger.info(f"Number of Hue devices found: {len(body)}")

        descriptors = []
        listed_states = {}
        for index, raw in body.items():
            if not isinstance(raw, dict):
                self.logger.warning(f"Skipping malformed Hue light {index}")
                continue
            device_id = raw.get("uniqueid") or f"hue-{index}"
            descriptors.append(DeviceDescriptor(
                device=device_id,
                brand=self.name,
                model=raw.get("modelid"),
                device_name=raw.get("name"),
                vendor_data={"light_index": str(index), "type": raw.get("type")},
            ))
            if isinstance(raw.get("state"), dict):
                listed_states[device_id] = raw["state"]

        self._listed_states = listed_states
        return descriptors

    async def fetch_state(self, descriptor: DeviceDescriptor) -> StateProperties:
        raw_state = self._listed_states.get(descriptor.device)
        if raw_state is None:
            index = descriptor.vendor_data.get("light_index")
            if index is None:
                raise AdapterDataInvalid(self.name, f"No light index for {descriptor.device}")
            body = await self._get_json(f"{self._base_url()}/lights/{index}")
            self._check_error(body)
            raw_state = body.get("state") if isinstance(body, dict) else None
            if not isinstance(raw_state, dict):
                raise AdapterDataInvalid(self.name, f"Invalid state data for device {descriptor.device}")

        return self.normalize_state(descriptor, raw_state)

    def normalize_state(self, descriptor: DeviceDescriptor, raw_state: Dict[str, Any]) -> StateProperties:
        state = StateProperties()

        if "on" in raw_state:
            state.power_state = PowerState.ON if raw_state["on"] else PowerState.OFF

        if "reachable" in raw_state:
            state.online = bool(raw_state["reachable"])

        if raw_state.get("bri") is not None:
            try:
                state.brightness = HUE_SCALE.to_canonical(raw_state["bri"])
            except (TypeError, ValueError):
                raise AdapterDataInvalid(
                    self.name, f"Invalid bri {raw_state['bri']!r} for {descriptor.device}"
                )

        return state

    def _check_error(self, body: Any):
        if isinstance(body, list):
            errors = [item.get("error") for item in body if isinstance(item, dict) and item.get("error")]
            if errors:
                description = errors[0].get("description", "unknown error")
                raise AdapterUnavailable(self.name, f"Bridge error: {description}")
            raise AdapterDataInvalid(self.name, "Unexpected list response from Hue Bridge")
